from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from .contracts import PageGeometry, RasterImage
from .engines.base import RenderEngine
from .errors import LoadError, RenderError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SourceDocument:
    """
    A parsed document owned by the session.

    Every other component only reads from it. Close it (or use it as a context
    manager) when a new document is loaded or the session ends.
    """

    engine: RenderEngine
    handle: Any = field(repr=False)
    page_count: int
    name: str = "document.pdf"
    closed: bool = False

    def page_geometry(self, page_index: int) -> PageGeometry:
        return self.engine.page_geometry(self.handle, page_index)

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.engine.close(self.handle)

    def __enter__(self) -> SourceDocument:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def load_document(engine: RenderEngine, data: bytes, *, name: str = "document.pdf") -> SourceDocument:
    """Parse `data` with `engine`; raises LoadError on malformed input."""

    handle = engine.parse(data)
    try:
        page_count = int(engine.page_count(handle))
    except Exception as e:
        engine.close(handle)
        raise LoadError(f"failed to read page count: {e}") from e
    logger.debug("loaded %s (%d pages) with %s", name, page_count, engine.backend_id())
    return SourceDocument(engine=engine, handle=handle, page_count=page_count, name=name)


class PageRasterizer:
    """
    Rasterize single pages of a SourceDocument.

    The engine acquires and releases its render surface inside each call;
    nothing is kept between pages.
    """

    def __init__(self, engine: RenderEngine | None = None) -> None:
        self.engine = engine

    def rasterize(self, doc: SourceDocument, page_index: int, scale: float) -> RasterImage:
        if doc.closed:
            raise RenderError("document is closed", page_index=page_index)
        if not isinstance(page_index, int) or page_index < 1 or page_index > doc.page_count:
            raise RenderError(
                f"page out of range: {page_index} (1..{doc.page_count})", page_index=page_index
            )
        if scale <= 0:
            raise RenderError(f"scale must be > 0, got {scale}", page_index=page_index)

        engine = self.engine or doc.engine
        try:
            geometry = engine.page_geometry(doc.handle, page_index)
            image = engine.render_page(doc.handle, page_index, scale)
        except RenderError:
            raise
        except Exception as e:
            raise RenderError(f"page {page_index} failed to render: {e}", page_index=page_index) from e

        expected = (round(geometry.width_pt * scale), round(geometry.height_pt * scale))
        if (image.width, image.height) != expected:
            raise RenderError(
                f"page {page_index} rendered at {image.width}x{image.height}, expected {expected[0]}x{expected[1]}",
                page_index=page_index,
            )
        return image
