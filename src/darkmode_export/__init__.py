"""
Dark-mode PDF export.

Every page is rasterized at a fixed export scale, recolored for low-light
reading, and placed on its own page of a new PDF:
- page count, reading order and aspect ratio are preserved
- text and vector objects are NOT preserved (pages become images)
- the export either fully succeeds or produces no output

`ViewerState` holds the pagination/zoom rules of the single-page viewer.
"""

from .assembler import DocumentAssembler, Placement, compute_placement
from .color_transform import ColorTransform, apply_dark_mode
from .contracts import (
    EXPORT_SCALE,
    DarkExportResult,
    DarkModeConfig,
    ExportConfig,
    ExportFailure,
    ExportState,
    ExportStatus,
    ImageFormat,
    LoadState,
    PageGeometry,
    RasterImage,
)
from .errors import AssemblyError, DarkExportError, ExportCancelled, LoadError, RenderError
from .module import dark_output_name, export_document_bytes, run_dark_export_relpath
from .pipeline import CancellationToken, ExportPipeline
from .rasterizer import PageRasterizer, SourceDocument, load_document
from .viewer_state import ViewerState

__all__ = [
    "EXPORT_SCALE",
    "AssemblyError",
    "CancellationToken",
    "ColorTransform",
    "DarkExportError",
    "DarkExportResult",
    "DarkModeConfig",
    "DocumentAssembler",
    "ExportCancelled",
    "ExportConfig",
    "ExportFailure",
    "ExportPipeline",
    "ExportState",
    "ExportStatus",
    "ImageFormat",
    "LoadError",
    "LoadState",
    "PageGeometry",
    "PageRasterizer",
    "Placement",
    "RasterImage",
    "RenderError",
    "SourceDocument",
    "ViewerState",
    "apply_dark_mode",
    "compute_placement",
    "dark_output_name",
    "export_document_bytes",
    "load_document",
    "run_dark_export_relpath",
]
