from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

# Fixed export rasterization scale; independent of the viewer zoom.
EXPORT_SCALE = 2.0

MIN_VIEW_SCALE = 0.5
MAX_VIEW_SCALE = 2.5
VIEW_SCALE_STEP = 0.1

# A4 portrait in PDF points (reportlab.lib.pagesizes.A4).
A4_PAGE_SIZE = (595.2755905511812, 841.8897637795277)


class ImageFormat(str, Enum):
    PNG = "png"
    JPEG = "jpeg"


class ExportStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (ExportStatus.SUCCEEDED, ExportStatus.FAILED, ExportStatus.CANCELLED)


class LoadState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class PageGeometry:
    width_pt: float
    height_pt: float


@dataclass(frozen=True, slots=True)
class RasterImage:
    """
    Raw page raster: RGBA, row-major, 8 bits per channel.

    Produced fresh per page and never retained across pages.
    """

    width: int
    height: int
    pixels: bytes = field(repr=False)

    def __post_init__(self) -> None:
        if self.width < 0 or self.height < 0:
            raise ValueError("raster dimensions must be >= 0")
        expected = self.width * self.height * 4
        if len(self.pixels) != expected:
            raise ValueError(
                f"pixel buffer length {len(self.pixels)} does not match {self.width}x{self.height} RGBA ({expected})"
            )


@dataclass(frozen=True, slots=True)
class ExportState:
    """
    Snapshot of one export invocation, handed to observers.

    `page_index` is the 1-indexed page about to be rasterized while RUNNING.
    """

    status: ExportStatus = ExportStatus.IDLE
    page_index: int | None = None
    page_count: int = 0
    output: bytes | None = field(default=None, repr=False)
    error: BaseException | None = None


@dataclass(frozen=True, slots=True)
class DarkModeConfig:
    """
    Empirical recoloring constants.

    Pixels are compared after inversion with strict inequalities.
    """

    near_white_threshold: int = 220
    near_black_threshold: int = 35
    glare_reduction: int = 30
    tint: tuple[int, int, int] = (36, 40, 52)

    def __post_init__(self) -> None:
        if not (0 <= self.near_white_threshold <= 255):
            raise ValueError("near_white_threshold must be within [0, 255]")
        if not (0 <= self.near_black_threshold <= 255):
            raise ValueError("near_black_threshold must be within [0, 255]")
        # Softened channels are > near_white_threshold, so they stay >= 0.
        if not (0 <= self.glare_reduction <= self.near_white_threshold + 1):
            raise ValueError("glare_reduction must be within [0, near_white_threshold + 1]")
        if len(self.tint) != 3 or any(not (0 <= int(c) <= 255) for c in self.tint):
            raise ValueError("tint must be three channel values within [0, 255]")


@dataclass(frozen=True, slots=True)
class ExportFailure:
    code: str
    message: str
    detail: dict[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class DarkExportResult:
    ok: bool
    source_relpath: str
    output_relpath: str | None  # relative to out_root; None unless ok
    page_count: int
    rendering: dict[str, Any]
    errors: list[ExportFailure]
    meta: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class ExportConfig:
    """
    Export configuration.

    `data_root` and `out_root` must be passed explicitly; nothing here reads
    environment variables.
    """

    data_root: Path
    out_root: Path
    export_scale: float = EXPORT_SCALE
    page_size: tuple[float, float] = A4_PAGE_SIZE
    image_format: ImageFormat = ImageFormat.PNG
    jpeg_quality: int = 90
    max_workers: int = 1
    timeout_s: float | None = None  # wall-clock budget; expiry is treated as cancellation
    dark_mode: DarkModeConfig = DarkModeConfig()
    compute_source_sha256: bool = False

    def __post_init__(self) -> None:
        if self.export_scale < 1.0:
            raise ValueError("export_scale must be >= 1.0")
        if len(self.page_size) != 2 or min(self.page_size) <= 0:
            raise ValueError("page_size must be two positive point values")
        if not (1 <= self.jpeg_quality <= 95):
            raise ValueError("jpeg_quality must be within [1, 95]")
        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        if self.timeout_s is not None and self.timeout_s <= 0:
            raise ValueError("timeout_s must be > 0 when set")
        if not isinstance(self.data_root, Path) or not isinstance(self.out_root, Path):
            raise TypeError("data_root and out_root must be pathlib.Path")
