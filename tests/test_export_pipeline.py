from __future__ import annotations

import threading
import time
import unittest

from darkmode_export.color_transform import ColorTransform
from darkmode_export.contracts import ExportState, ExportStatus, PageGeometry, RasterImage
from darkmode_export.errors import AssemblyError, ExportCancelled, RenderError
from darkmode_export.pipeline import CancellationToken, ExportPipeline
from darkmode_export.rasterizer import PageRasterizer, SourceDocument


class _FakeEngine:
    """Renders page i as a 2x1-point page filled with grey level i."""

    def __init__(
        self,
        *,
        fail_on: int | None = None,
        concurrent: bool = False,
        delays: dict[int, float] | None = None,
    ) -> None:
        self.fail_on = fail_on
        self.supports_concurrent_pages = concurrent
        self.delays = delays or {}
        self.rendered: list[tuple[int, float]] = []
        self._lock = threading.Lock()

    def backend_id(self) -> str:
        return "fake"

    def page_geometry(self, handle, page_index: int) -> PageGeometry:
        return PageGeometry(width_pt=2.0, height_pt=1.0)

    def render_page(self, handle, page_index: int, scale: float) -> RasterImage:
        time.sleep(self.delays.get(page_index, 0.0))
        with self._lock:
            self.rendered.append((page_index, scale))
        if page_index == self.fail_on:
            raise ValueError(f"cannot decode page {page_index}")
        w, h = round(2.0 * scale), round(1.0 * scale)
        return RasterImage(width=w, height=h, pixels=bytes((page_index, page_index, page_index, 255)) * (w * h))

    def close(self, handle) -> None:
        pass


class _RecordingAssembler:
    def __init__(self, *, fail_on_page: int | None = None, on_add=None) -> None:
        self.fail_on_page = fail_on_page
        self.on_add = on_add
        self.pages: list[RasterImage] = []
        self.begun = 0
        self.finalized = 0
        self.discarded = 0

    def begin_document(self):
        self.begun += 1
        return object()

    def add_page(self, handle, image: RasterImage) -> None:
        if self.fail_on_page is not None and len(self.pages) + 1 == self.fail_on_page:
            raise AssemblyError("writer rejected page")
        self.pages.append(image)
        if self.on_add is not None:
            self.on_add(len(self.pages))

    def finalize(self, handle) -> bytes:
        self.finalized += 1
        return b"%PDF-" + bytes([len(self.pages)])

    def discard(self, handle) -> None:
        self.discarded += 1


def _doc(engine: _FakeEngine, pages: int) -> SourceDocument:
    return SourceDocument(engine=engine, handle=object(), page_count=pages, name="paper.pdf")


def _grey_levels(assembler: _RecordingAssembler) -> list[int]:
    # Page i is grey i; it inverts to 255 - i (> 220) and is softened to 225 - i.
    return [225 - img.pixels[0] for img in assembler.pages]


class TestExportPipeline(unittest.TestCase):
    def test_all_pages_in_order(self) -> None:
        engine = _FakeEngine()
        asm = _RecordingAssembler()
        states: list[ExportState] = []
        pipeline = ExportPipeline(rasterizer=PageRasterizer(), assembler=asm, observers=[states.append])

        out = pipeline.export(_doc(engine, 5))

        self.assertEqual(out, b"%PDF-\x05")
        self.assertEqual(_grey_levels(asm), [1, 2, 3, 4, 5])
        self.assertEqual([p for p, _ in engine.rendered], [1, 2, 3, 4, 5])
        self.assertEqual(asm.finalized, 1)
        self.assertEqual(asm.discarded, 0)
        self.assertEqual(
            [(s.status, s.page_index) for s in states],
            [(ExportStatus.RUNNING, i) for i in range(1, 6)] + [(ExportStatus.SUCCEEDED, None)],
        )
        self.assertEqual(states[-1].output, out)
        self.assertEqual(pipeline.state.status, ExportStatus.SUCCEEDED)

    def test_pages_are_recolored(self) -> None:
        asm = _RecordingAssembler()
        ExportPipeline(assembler=asm).export(_doc(_FakeEngine(), 2))
        # Grey 1 inverts to 254 (> 220) and is softened by 30.
        self.assertEqual(tuple(asm.pages[0].pixels[:4]), (224, 224, 224, 255))

    def test_export_scale_is_fixed(self) -> None:
        engine = _FakeEngine()
        asm = _RecordingAssembler()
        ExportPipeline(assembler=asm, export_scale=3.0).export(_doc(engine, 2))
        self.assertEqual({s for _, s in engine.rendered}, {3.0})
        self.assertEqual((asm.pages[0].width, asm.pages[0].height), (6, 3))

    def test_export_scale_must_be_at_least_one(self) -> None:
        with self.assertRaises(ValueError):
            ExportPipeline(export_scale=0.5)

    def test_render_failure_aborts_without_output(self) -> None:
        engine = _FakeEngine(fail_on=3)
        asm = _RecordingAssembler()
        states: list[ExportState] = []
        pipeline = ExportPipeline(assembler=asm, observers=[states.append])

        with self.assertRaises(RenderError) as ctx:
            pipeline.export(_doc(engine, 5))

        self.assertEqual(ctx.exception.page_index, 3)
        self.assertEqual([p for p, _ in engine.rendered], [1, 2, 3])
        self.assertEqual(asm.finalized, 0)
        self.assertEqual(asm.discarded, 1)
        self.assertEqual(states[-1].status, ExportStatus.FAILED)
        self.assertIs(states[-1].error, ctx.exception)
        self.assertNotIn(ExportStatus.SUCCEEDED, [s.status for s in states])

    def test_assembly_failure_aborts(self) -> None:
        asm = _RecordingAssembler(fail_on_page=2)
        pipeline = ExportPipeline(assembler=asm)
        with self.assertRaises(AssemblyError):
            pipeline.export(_doc(_FakeEngine(), 4))
        self.assertEqual(asm.finalized, 0)
        self.assertEqual(asm.discarded, 1)
        self.assertEqual(pipeline.state.status, ExportStatus.FAILED)

    def test_cancel_after_second_page(self) -> None:
        token = CancellationToken()
        engine = _FakeEngine()

        def on_add(done: int) -> None:
            if done == 2:
                token.cancel()

        asm = _RecordingAssembler(on_add=on_add)
        states: list[ExportState] = []
        pipeline = ExportPipeline(assembler=asm, observers=[states.append])

        with self.assertRaises(ExportCancelled) as ctx:
            pipeline.export(_doc(engine, 5), cancel_token=token)

        self.assertEqual(ctx.exception.pages_done, 2)
        self.assertEqual([p for p, _ in engine.rendered], [1, 2])
        self.assertEqual(asm.finalized, 0)
        self.assertEqual(asm.discarded, 1)
        self.assertEqual(states[-1].status, ExportStatus.CANCELLED)
        self.assertNotIn(ExportStatus.SUCCEEDED, [s.status for s in states])

    def test_expired_deadline_counts_as_cancellation(self) -> None:
        token = CancellationToken(timeout_s=0.01)
        time.sleep(0.02)
        asm = _RecordingAssembler()
        with self.assertRaises(ExportCancelled):
            ExportPipeline(assembler=asm).export(_doc(_FakeEngine(), 3), cancel_token=token)
        self.assertEqual(asm.pages, [])

    def test_each_export_starts_a_fresh_state(self) -> None:
        pipeline = ExportPipeline(assembler=_RecordingAssembler())
        pipeline.export(_doc(_FakeEngine(), 1))
        first = pipeline.state
        pipeline.assembler = _RecordingAssembler()
        pipeline.export(_doc(_FakeEngine(), 2))
        self.assertEqual(first.status, ExportStatus.SUCCEEDED)
        self.assertEqual(pipeline.state.page_count, 2)

    def test_state_transitions_are_monotonic(self) -> None:
        pipeline = ExportPipeline(assembler=_RecordingAssembler())
        pipeline.export(_doc(_FakeEngine(), 1))
        with self.assertRaises(RuntimeError):
            pipeline._set_state(ExportState(status=ExportStatus.RUNNING, page_index=1))

    def test_parallel_rasterization_keeps_page_order(self) -> None:
        # Early pages finish last; add_page order must still follow page order.
        engine = _FakeEngine(concurrent=True, delays={1: 0.05, 2: 0.03, 3: 0.01})
        asm = _RecordingAssembler()
        pipeline = ExportPipeline(assembler=asm, max_workers=3)
        pipeline.export(_doc(engine, 7))
        self.assertEqual(_grey_levels(asm), [1, 2, 3, 4, 5, 6, 7])
        self.assertEqual(sorted(p for p, _ in engine.rendered), [1, 2, 3, 4, 5, 6, 7])

    def test_parallel_failure_aborts(self) -> None:
        engine = _FakeEngine(concurrent=True, fail_on=2)
        asm = _RecordingAssembler()
        with self.assertRaises(RenderError):
            ExportPipeline(assembler=asm, max_workers=2).export(_doc(engine, 6))
        self.assertEqual(asm.finalized, 0)
        self.assertEqual(asm.discarded, 1)
        self.assertEqual(_grey_levels(asm), [1])

    def test_engine_without_concurrency_stays_sequential(self) -> None:
        engine = _FakeEngine(concurrent=False, delays={1: 0.02})
        asm = _RecordingAssembler()
        ExportPipeline(assembler=asm, max_workers=4).export(_doc(engine, 3))
        self.assertEqual([p for p, _ in engine.rendered], [1, 2, 3])

    def test_custom_transform_is_used(self) -> None:
        class _Identity(ColorTransform):
            def transform(self, image: RasterImage) -> RasterImage:
                return image

        asm = _RecordingAssembler()
        ExportPipeline(assembler=asm, transform=_Identity()).export(_doc(_FakeEngine(), 1))
        self.assertEqual(asm.pages[0].pixels[0], 1)


if __name__ == "__main__":
    unittest.main()
