from __future__ import annotations

import logging
import re
from pathlib import PurePosixPath
from typing import Any, Iterable

from .assembler import DocumentAssembler
from .color_transform import ColorTransform
from .contracts import DarkExportResult, ExportConfig, ExportFailure, ExportState
from .data_access import DataAccessError, resolve_under_data_root, sha256_bytes
from .engines import Pypdfium2Engine
from .engines.base import RenderEngine
from .errors import AssemblyError, ExportCancelled, LoadError, RenderError
from .pipeline import CancellationToken, ExportObserver, ExportPipeline
from .rasterizer import PageRasterizer, load_document

logger = logging.getLogger(__name__)

DARK_SUFFIX = "-dark"


def dark_output_name(source_name: str, ext: str = "pdf") -> str:
    """
    `<base>-dark.<ext>`: strip the last extension of the source file name and
    append the fixed suffix.
    """

    name = source_name.replace("\\", "/").split("/")[-1]
    stem = PurePosixPath(name).stem if "." in name.lstrip(".") else name
    stem = re.sub(r"[\x00-\x1f]+", "_", stem).strip()
    return f"{stem or 'document'}{DARK_SUFFIX}.{ext.lstrip('.')}"


def _get_engine() -> RenderEngine:
    return Pypdfium2Engine()


def build_pipeline(
    *,
    config: ExportConfig,
    engine: RenderEngine | None = None,
    observers: Iterable[ExportObserver] = (),
) -> ExportPipeline:
    return ExportPipeline(
        rasterizer=PageRasterizer(engine),
        assembler=DocumentAssembler(
            page_size=config.page_size,
            image_format=config.image_format,
            jpeg_quality=config.jpeg_quality,
            page_background=config.dark_mode.tint,
        ),
        transform=ColorTransform(config.dark_mode),
        export_scale=config.export_scale,
        observers=observers,
        max_workers=config.max_workers,
    )


def export_document_bytes(
    data: bytes,
    *,
    name: str,
    config: ExportConfig,
    engine: RenderEngine | None = None,
    observers: Iterable[ExportObserver] = (),
    cancel_token: CancellationToken | None = None,
) -> tuple[str, bytes]:
    """
    In-memory export: returns (output file name, output bytes).

    Raises LoadError, RenderError, AssemblyError or ExportCancelled.
    """

    engine = engine or _get_engine()
    if cancel_token is None and config.timeout_s is not None:
        cancel_token = CancellationToken(timeout_s=config.timeout_s)

    pipeline = build_pipeline(config=config, engine=engine, observers=observers)
    with load_document(engine, data, name=name) as doc:
        output = pipeline.export(doc, cancel_token=cancel_token)
    return dark_output_name(name), output


def _rendering_params(config: ExportConfig, engine: RenderEngine) -> dict[str, Any]:
    return {
        "backend": engine.backend_id(),
        "backend_version": engine.backend_version(),
        "export_scale": config.export_scale,
        "page_size": list(config.page_size),
        "image_format": config.image_format.value,
        "dark_mode": {
            "near_white_threshold": config.dark_mode.near_white_threshold,
            "near_black_threshold": config.dark_mode.near_black_threshold,
            "glare_reduction": config.dark_mode.glare_reduction,
            "tint": list(config.dark_mode.tint),
        },
    }


def run_dark_export_relpath(
    *,
    config: ExportConfig,
    pdf_relpath: str,
    observers: Iterable[ExportObserver] = (),
    cancel_token: CancellationToken | None = None,
) -> DarkExportResult:
    """
    Export `pdf_relpath` (under `config.data_root`) to
    `<out_root>/<base>-dark.pdf`.

    Nothing is written unless every page succeeds.
    """

    meta: dict[str, Any] = {}
    engine = _get_engine()
    rendering = _rendering_params(config, engine)

    def failed(code: str, message: str, detail: dict[str, Any] | None = None, page_count: int = 0) -> DarkExportResult:
        logger.error("%s: %s", code, message)
        return DarkExportResult(
            ok=False,
            source_relpath=pdf_relpath,
            output_relpath=None,
            page_count=page_count,
            rendering=rendering,
            errors=[ExportFailure(code=code, message=message, detail=detail)],
            meta=meta,
        )

    if not pdf_relpath.lower().endswith(".pdf"):
        return failed(
            "EXPORT_INPUT_NOT_PDF", "Only PDFs are accepted (by .pdf extension)", {"pdf_relpath": pdf_relpath}
        )

    try:
        pdf_file = resolve_under_data_root(data_root=config.data_root, relpath=pdf_relpath)
    except DataAccessError as e:
        return failed(
            "EXPORT_DATA_ACCESS_ERROR", str(e), {"data_root": str(config.data_root), "relpath": pdf_relpath}
        )

    if not pdf_file.is_file():
        return failed("EXPORT_INPUT_NOT_FOUND", "Input PDF not found", {"pdf_relpath": pdf_relpath})

    data = pdf_file.read_bytes()
    if config.compute_source_sha256:
        rendering["source_sha256"] = sha256_bytes(data)

    states: list[ExportState] = []

    try:
        out_name, output = export_document_bytes(
            data,
            name=pdf_file.name,
            config=config,
            engine=engine,
            observers=[states.append, *observers],
            cancel_token=cancel_token,
        )
    except LoadError as e:
        return failed("EXPORT_LOAD_FAILED", str(e), {"pdf_relpath": pdf_relpath})
    except RenderError as e:
        return failed("EXPORT_RENDER_FAILED", str(e), {"page_index": e.page_index})
    except AssemblyError as e:
        return failed("EXPORT_ASSEMBLY_FAILED", str(e), {"page_index": states[-1].page_index if states else None})
    except ExportCancelled as e:
        return failed("EXPORT_CANCELLED", str(e), {"pages_done": e.pages_done})

    page_count = states[-1].page_count if states else 0
    out_file = config.out_root.expanduser().resolve() / out_name
    try:
        out_file.parent.mkdir(parents=True, exist_ok=True)
        out_file.write_bytes(output)
    except OSError as e:
        return failed("EXPORT_WRITE_FAILED", str(e), {"out_file": str(out_file)}, page_count=page_count)

    meta["output_bytes"] = len(output)
    logger.info("wrote %s", out_file)
    return DarkExportResult(
        ok=True,
        source_relpath=pdf_relpath,
        output_relpath=out_name,
        page_count=page_count,
        rendering=rendering,
        errors=[],
        meta=meta,
    )
