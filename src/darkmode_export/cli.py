from __future__ import annotations

import argparse
import logging
from pathlib import Path

from .artifacts import write_export_report_json
from .contracts import A4_PAGE_SIZE, EXPORT_SCALE, DarkModeConfig, ExportConfig, ExportState, ExportStatus, ImageFormat
from .module import run_dark_export_relpath

logger = logging.getLogger("darkmode_export")

PAGE_SIZES = {
    "a4": A4_PAGE_SIZE,
    "letter": (612.0, 792.0),
}


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="darkmode-export",
        description="Render every PDF page, recolor it for low-light reading, and assemble <name>-dark.pdf.",
    )
    p.add_argument("--data-root", required=True, type=Path, help="Root directory holding the input PDF.")
    p.add_argument("--pdf-relpath", required=True, help="PDF path relative to --data-root.")
    p.add_argument("--out-root", required=True, type=Path, help="Directory for the <name>-dark.pdf output.")
    p.add_argument("--out-report", type=Path, default=None, help="Optional JSON report file.")
    p.add_argument("--scale", type=float, default=EXPORT_SCALE, help="Export raster scale, pixels per point (>= 1.0).")
    p.add_argument("--page-size", choices=sorted(PAGE_SIZES), default="a4", help="Output page size.")
    p.add_argument(
        "--image-format",
        choices=[f.value for f in ImageFormat],
        default=ImageFormat.PNG.value,
        help="Encoding of the embedded page images.",
    )
    p.add_argument("--jpeg-quality", type=int, default=90, help="JPEG quality when --image-format=jpeg.")
    p.add_argument("--workers", type=int, default=1, help="Pages rasterized concurrently when the engine allows it.")
    p.add_argument("--timeout-s", type=float, default=None, help="Wall-clock budget; expiry cancels the export.")
    p.add_argument("--near-white-threshold", type=int, default=220)
    p.add_argument("--near-black-threshold", type=int, default=35)
    p.add_argument("--glare-reduction", type=int, default=30)
    p.add_argument("--tint", default="36,40,52", help='Background tint as "r,g,b".')
    p.add_argument(
        "--compute-source-sha256",
        action="store_true",
        help="Include SHA-256 of the source PDF in the report.",
    )
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return p


def _parse_tint(value: str) -> tuple[int, int, int]:
    parts = [int(v.strip()) for v in value.split(",")]
    if len(parts) != 3:
        raise argparse.ArgumentTypeError(f"--tint expects r,g,b, got {value!r}")
    return parts[0], parts[1], parts[2]


def _log_progress(state: ExportState) -> None:
    if state.status == ExportStatus.RUNNING:
        logger.info("page %d/%d", state.page_index, state.page_count)


def main(argv: list[str] | None = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        config = ExportConfig(
            data_root=args.data_root,
            out_root=args.out_root,
            export_scale=args.scale,
            page_size=PAGE_SIZES[args.page_size],
            image_format=ImageFormat(args.image_format),
            jpeg_quality=args.jpeg_quality,
            max_workers=args.workers,
            timeout_s=args.timeout_s,
            dark_mode=DarkModeConfig(
                near_white_threshold=args.near_white_threshold,
                near_black_threshold=args.near_black_threshold,
                glare_reduction=args.glare_reduction,
                tint=_parse_tint(args.tint),
            ),
            compute_source_sha256=args.compute_source_sha256,
        )
    except (ValueError, argparse.ArgumentTypeError) as e:
        parser.error(str(e))

    result = run_dark_export_relpath(config=config, pdf_relpath=args.pdf_relpath, observers=[_log_progress])
    if args.out_report is not None:
        write_export_report_json(result=result, out_report=args.out_report)

    return 0 if result.ok else 2


if __name__ == "__main__":
    raise SystemExit(main())
