from __future__ import annotations

import unittest

import pypdfium2 as pdfium

from darkmode_export.assembler import DocumentAssembler, compute_placement
from darkmode_export.contracts import ImageFormat, RasterImage
from darkmode_export.errors import AssemblyError


def _solid(width: int, height: int, rgba: tuple[int, int, int, int] = (200, 10, 10, 255)) -> RasterImage:
    return RasterImage(width=width, height=height, pixels=bytes(rgba) * (width * height))


class TestComputePlacement(unittest.TestCase):
    def test_fit_to_width(self) -> None:
        p = compute_placement(200, 100, 600.0, 800.0)
        self.assertAlmostEqual(p.width, 600.0)
        self.assertAlmostEqual(p.height, 300.0)
        self.assertAlmostEqual(p.x, 0.0)
        self.assertAlmostEqual(p.y, 500.0)  # top-aligned

    def test_height_matches_aspect_times_target_width(self) -> None:
        w, h = 612, 792
        p = compute_placement(w, h, 700.0, 2000.0)
        self.assertAlmostEqual(p.height, h / w * 700.0)

    def test_too_tall_is_uniformly_downscaled(self) -> None:
        p = compute_placement(100, 400, 600.0, 800.0)
        self.assertAlmostEqual(p.height, 800.0)
        self.assertAlmostEqual(p.width, 200.0)
        self.assertAlmostEqual(p.width / p.height, 100 / 400)
        self.assertAlmostEqual(p.x, 200.0)
        self.assertAlmostEqual(p.y, 0.0)

    def test_exact_fit(self) -> None:
        p = compute_placement(300, 400, 600.0, 800.0)
        self.assertAlmostEqual(p.width, 600.0)
        self.assertAlmostEqual(p.height, 800.0)

    def test_rejects_empty(self) -> None:
        with self.assertRaises(ValueError):
            compute_placement(0, 10, 600.0, 800.0)


class TestDocumentAssembler(unittest.TestCase):
    def test_one_output_page_per_add_page(self) -> None:
        asm = DocumentAssembler(page_size=(300.0, 400.0))
        handle = asm.begin_document()
        for w, h in ((30, 40), (40, 30), (10, 90)):
            asm.add_page(handle, _solid(w, h))
        data = asm.finalize(handle)

        doc = pdfium.PdfDocument(data)
        try:
            self.assertEqual(len(doc), 3)
            for i in range(3):
                width, height = doc[i].get_size()
                self.assertAlmostEqual(width, 300.0, places=2)
                self.assertAlmostEqual(height, 400.0, places=2)
        finally:
            doc.close()

    def test_jpeg_output(self) -> None:
        asm = DocumentAssembler(image_format=ImageFormat.JPEG, jpeg_quality=70)
        handle = asm.begin_document()
        asm.add_page(handle, _solid(20, 20))
        data = asm.finalize(handle)
        self.assertTrue(data.startswith(b"%PDF"))

    def test_empty_document_cannot_be_finalized(self) -> None:
        asm = DocumentAssembler()
        with self.assertRaises(AssemblyError):
            asm.finalize(asm.begin_document())

    def test_empty_raster_rejected(self) -> None:
        asm = DocumentAssembler()
        with self.assertRaises(AssemblyError):
            asm.add_page(asm.begin_document(), RasterImage(width=0, height=5, pixels=b""))

    def test_discarded_handle_is_unusable(self) -> None:
        asm = DocumentAssembler()
        handle = asm.begin_document()
        asm.add_page(handle, _solid(4, 4))
        asm.discard(handle)
        self.assertTrue(handle.buffer.closed)
        with self.assertRaises(AssemblyError):
            asm.add_page(handle, _solid(4, 4))
        with self.assertRaises(AssemblyError):
            asm.finalize(handle)

    def test_finalize_twice_rejected(self) -> None:
        asm = DocumentAssembler()
        handle = asm.begin_document()
        asm.add_page(handle, _solid(4, 4))
        asm.finalize(handle)
        with self.assertRaises(AssemblyError):
            asm.finalize(handle)

    def test_writer_failure_becomes_assembly_error(self) -> None:
        asm = DocumentAssembler()
        handle = asm.begin_document()

        def broken_draw(*args, **kwargs):
            raise OSError("disk full")

        handle.canvas.drawImage = broken_draw
        with self.assertRaises(AssemblyError):
            asm.add_page(handle, _solid(4, 4))

    def test_background_fill_matches_tint(self) -> None:
        # A wide image leaves the bottom of a tall page uncovered.
        asm = DocumentAssembler(page_size=(100.0, 200.0), page_background=(36, 40, 52))
        handle = asm.begin_document()
        asm.add_page(handle, _solid(100, 10, (255, 255, 255, 255)))
        data = asm.finalize(handle)

        doc = pdfium.PdfDocument(data)
        try:
            pil = doc[0].render(scale=1.0).to_pil().convert("RGB")
        finally:
            doc.close()
        r, g, b = pil.getpixel((50, 190))
        self.assertLessEqual(abs(r - 36), 2)
        self.assertLessEqual(abs(g - 40), 2)
        self.assertLessEqual(abs(b - 52), 2)


if __name__ == "__main__":
    unittest.main()
