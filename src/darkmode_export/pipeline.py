from __future__ import annotations

import logging
import threading
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Iterable

from .assembler import AssemblyHandle, DocumentAssembler
from .color_transform import ColorTransform
from .contracts import EXPORT_SCALE, ExportState, ExportStatus, RasterImage
from .errors import ExportCancelled
from .rasterizer import PageRasterizer, SourceDocument

logger = logging.getLogger(__name__)

ExportObserver = Callable[[ExportState], None]


class CancellationToken:
    """
    Cooperative cancellation, checked between pages.

    An optional wall-clock budget turns into a deadline; expiry counts as
    cancellation.
    """

    def __init__(self, *, timeout_s: float | None = None) -> None:
        self._event = threading.Event()
        self._deadline = None if timeout_s is None else time.monotonic() + timeout_s

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline


class ExportPipeline:
    """
    Rasterize -> recolor -> assemble, for every page in order.

    The whole export either succeeds with one output page per source page, or
    fails/cancels with no output. Observers receive every ExportState.
    """

    def __init__(
        self,
        *,
        rasterizer: PageRasterizer | None = None,
        assembler: DocumentAssembler | None = None,
        transform: ColorTransform | None = None,
        export_scale: float = EXPORT_SCALE,
        observers: Iterable[ExportObserver] = (),
        max_workers: int = 1,
    ) -> None:
        if export_scale < 1.0:
            raise ValueError("export_scale must be >= 1.0")
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self.rasterizer = rasterizer or PageRasterizer()
        self.assembler = assembler or DocumentAssembler()
        self.transform = transform or ColorTransform()
        self.export_scale = export_scale
        self.observers = list(observers)
        self.max_workers = max_workers
        self.state = ExportState()

    def _set_state(self, new: ExportState) -> None:
        old = self.state
        if old.status.is_terminal:
            raise RuntimeError(f"illegal export transition {old.status.value} -> {new.status.value}")
        if new.status == ExportStatus.IDLE:
            raise RuntimeError(f"illegal export transition {old.status.value} -> idle")
        if (
            new.status == ExportStatus.RUNNING
            and old.status == ExportStatus.RUNNING
            and (new.page_index or 0) <= (old.page_index or 0)
        ):
            raise RuntimeError(f"export progress went backwards: {old.page_index} -> {new.page_index}")

        self.state = new
        for observer in self.observers:
            observer(new)

    def _process_page(self, doc: SourceDocument, page_index: int) -> RasterImage:
        raster = self.rasterizer.rasterize(doc, page_index, self.export_scale)
        return self.transform.transform(raster)

    def export(self, doc: SourceDocument, *, cancel_token: CancellationToken | None = None) -> bytes:
        # One state history per invocation.
        self.state = ExportState(page_count=doc.page_count)
        page_count = doc.page_count
        handle = self.assembler.begin_document()
        logger.info("exporting %s: %d pages at scale %.2f", doc.name, page_count, self.export_scale)

        try:
            if self.max_workers > 1 and page_count > 1 and doc.engine.supports_concurrent_pages:
                self._run_parallel(doc, handle, cancel_token)
            else:
                self._run_sequential(doc, handle, cancel_token)
            output = self.assembler.finalize(handle)
        except ExportCancelled as e:
            self.assembler.discard(handle)
            logger.info("export of %s cancelled after %d pages", doc.name, e.pages_done)
            self._set_state(ExportState(status=ExportStatus.CANCELLED, page_count=page_count, error=e))
            raise
        except BaseException as e:
            self.assembler.discard(handle)
            logger.error("export of %s failed: %s", doc.name, e)
            self._set_state(
                ExportState(
                    status=ExportStatus.FAILED,
                    page_index=self.state.page_index,
                    page_count=page_count,
                    error=e,
                )
            )
            raise

        self._set_state(ExportState(status=ExportStatus.SUCCEEDED, page_count=page_count, output=output))
        logger.info("exported %s: %d pages, %d bytes", doc.name, page_count, len(output))
        return output

    def _check_cancelled(self, cancel_token: CancellationToken | None, pages_done: int) -> None:
        if cancel_token is not None and cancel_token.cancelled:
            raise ExportCancelled(pages_done=pages_done)

    def _run_sequential(
        self, doc: SourceDocument, handle: AssemblyHandle, cancel_token: CancellationToken | None
    ) -> None:
        for page_index in range(1, doc.page_count + 1):
            self._check_cancelled(cancel_token, page_index - 1)
            self._set_state(
                ExportState(status=ExportStatus.RUNNING, page_index=page_index, page_count=doc.page_count)
            )
            dark = self._process_page(doc, page_index)
            self.assembler.add_page(handle, dark)

    def _run_parallel(
        self, doc: SourceDocument, handle: AssemblyHandle, cancel_token: CancellationToken | None
    ) -> None:
        """
        Bounded fan-out: at most `max_workers` pages in flight, consumed in
        page order so add_page order matches source order.
        """

        page_count = doc.page_count
        pending: deque[tuple[int, Future[RasterImage]]] = deque()
        next_page = 1
        pages_done = 0

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            try:
                while pages_done < page_count:
                    self._check_cancelled(cancel_token, pages_done)
                    while next_page <= page_count and len(pending) < self.max_workers:
                        self._check_cancelled(cancel_token, pages_done)
                        self._set_state(
                            ExportState(status=ExportStatus.RUNNING, page_index=next_page, page_count=page_count)
                        )
                        pending.append((next_page, pool.submit(self._process_page, doc, next_page)))
                        next_page += 1

                    page_index, future = pending.popleft()
                    dark = future.result()
                    self.assembler.add_page(handle, dark)
                    pages_done += 1
                    logger.debug("page %d/%d assembled", page_index, page_count)
            except BaseException:
                for _, future in pending:
                    future.cancel()
                raise
