from __future__ import annotations


class DarkExportError(Exception):
    """Base class for all export-time failures."""


class LoadError(DarkExportError):
    """Source bytes could not be parsed by the rendering engine."""


class RenderError(DarkExportError):
    """A specific page failed to rasterize."""

    def __init__(self, message: str, *, page_index: int | None = None) -> None:
        super().__init__(message)
        self.page_index = page_index


class AssemblyError(DarkExportError):
    """The output writer rejected a page or failed to finalize."""


class ExportCancelled(DarkExportError):
    """Export was cancelled between pages (explicitly or by deadline)."""

    def __init__(self, message: str = "export cancelled", *, pages_done: int = 0) -> None:
        super().__init__(message)
        self.pages_done = pages_done
