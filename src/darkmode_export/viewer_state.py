from __future__ import annotations

import logging
from dataclasses import dataclass

from .contracts import MAX_VIEW_SCALE, MIN_VIEW_SCALE, VIEW_SCALE_STEP, LoadState, RasterImage
from .errors import RenderError
from .rasterizer import PageRasterizer, SourceDocument

logger = logging.getLogger(__name__)


def clamp_page(page_number: int, num_pages: int) -> int:
    return max(1, min(page_number, max(num_pages, 1)))


def clamp_scale(scale: float) -> float:
    """Quantize to 0.1 steps and clamp to [0.5, 2.5]."""

    quantized = round(round(scale / VIEW_SCALE_STEP) * VIEW_SCALE_STEP, 1)
    return max(MIN_VIEW_SCALE, min(quantized, MAX_VIEW_SCALE))


@dataclass(slots=True)
class ViewerState:
    """
    Pagination/zoom state for the single-page viewer.

    Navigation only moves within [1, num_pages]; stepping past a bound is a
    no-op. Loading a new document resets the page but keeps the zoom.
    """

    page_number: int = 1
    scale: float = 1.0
    num_pages: int = 0
    load_state: LoadState = LoadState.IDLE
    error_message: str | None = None
    page_error: str | None = None

    def begin_load(self) -> None:
        self.load_state = LoadState.LOADING
        self.page_number = 1
        self.num_pages = 0
        self.error_message = None
        self.page_error = None

    def load_succeeded(self, num_pages: int) -> None:
        if self.load_state != LoadState.LOADING:
            raise RuntimeError(f"load completed while {self.load_state.value}")
        if num_pages < 0:
            raise ValueError("num_pages must be >= 0")
        self.num_pages = num_pages
        self.page_number = 1
        self.load_state = LoadState.READY

    def load_failed(self, message: str) -> None:
        if self.load_state != LoadState.LOADING:
            raise RuntimeError(f"load failed while {self.load_state.value}")
        self.load_state = LoadState.ERROR
        self.error_message = message
        self.num_pages = 0
        self.page_number = 1

    # navigation

    def _change_page(self, offset: int) -> None:
        if self.load_state != LoadState.READY:
            return
        self.page_number = clamp_page(self.page_number + offset, self.num_pages)
        self.page_error = None

    def previous_page(self) -> None:
        self._change_page(-1)

    def next_page(self) -> None:
        self._change_page(1)

    def go_to_page(self, page_number: int) -> None:
        if self.load_state != LoadState.READY:
            return
        self.page_number = clamp_page(page_number, self.num_pages)
        self.page_error = None

    @property
    def can_go_previous(self) -> bool:
        return self.load_state == LoadState.READY and self.page_number > 1

    @property
    def can_go_next(self) -> bool:
        return self.load_state == LoadState.READY and self.page_number < self.num_pages

    # zoom

    def set_scale(self, scale: float) -> None:
        self.scale = clamp_scale(scale)

    def zoom_in(self) -> None:
        self.set_scale(self.scale + VIEW_SCALE_STEP)

    def zoom_out(self) -> None:
        self.set_scale(self.scale - VIEW_SCALE_STEP)

    @property
    def can_zoom_in(self) -> bool:
        return self.scale < MAX_VIEW_SCALE

    @property
    def can_zoom_out(self) -> bool:
        return self.scale > MIN_VIEW_SCALE

    def render_current_page(self, rasterizer: PageRasterizer, doc: SourceDocument) -> RasterImage | None:
        """
        Rasterize the current page at the viewer scale (no recoloring).

        A render failure is kept in `page_error`; it does not affect num_pages
        or navigation.
        """

        if self.load_state != LoadState.READY or self.num_pages == 0:
            return None
        try:
            image = rasterizer.rasterize(doc, self.page_number, self.scale)
        except RenderError as e:
            logger.warning("page %d failed to render: %s", self.page_number, e)
            self.page_error = str(e)
            return None
        self.page_error = None
        return image
