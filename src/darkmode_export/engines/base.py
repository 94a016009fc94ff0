from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from ..contracts import PageGeometry, RasterImage


class RenderEngine(ABC):
    """
    Document rendering engine abstraction.

    Engines must:
    - Parse document bytes into an opaque handle (raise LoadError on malformed input)
    - Report page count and native page geometry in points
    - Rasterize one page (1-indexed) to an RGBA RasterImage, releasing any
      render surface before returning
    """

    # Whether render_page may be called concurrently on one handle.
    supports_concurrent_pages: bool = False

    @abstractmethod
    def backend_id(self) -> str:
        raise NotImplementedError

    def backend_version(self) -> str | None:
        return None

    @abstractmethod
    def parse(self, data: bytes) -> Any:
        raise NotImplementedError

    @abstractmethod
    def page_count(self, handle: Any) -> int:
        raise NotImplementedError

    @abstractmethod
    def page_geometry(self, handle: Any, page_index: int) -> PageGeometry:
        raise NotImplementedError

    @abstractmethod
    def render_page(self, handle: Any, page_index: int, scale: float) -> RasterImage:
        """
        Render `page_index` (1-indexed) at `scale` (pixels per point).

        Output size must be round(width_pt * scale) x round(height_pt * scale).
        """

        raise NotImplementedError

    def close(self, handle: Any) -> None:
        return None
