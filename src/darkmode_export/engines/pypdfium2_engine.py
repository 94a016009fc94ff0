from __future__ import annotations

from typing import Any

from ..contracts import PageGeometry, RasterImage
from ..errors import LoadError

from .base import RenderEngine


class Pypdfium2Engine(RenderEngine):
    # pdfium is not thread-safe.
    supports_concurrent_pages = False

    def backend_id(self) -> str:
        return "pypdfium2"

    def backend_version(self) -> str | None:
        try:
            import pypdfium2 as pdfium  # type: ignore

            return getattr(pdfium, "__version__", None) or getattr(pdfium, "V_PYPDFIUM2", None)
        except ImportError:
            return None

    def _require_pdfium(self):
        try:
            import pypdfium2 as pdfium  # type: ignore

            return pdfium
        except ImportError as e:
            raise RuntimeError("Missing dependency: pypdfium2 is required for page rendering.") from e

    def parse(self, data: bytes) -> Any:
        pdfium = self._require_pdfium()
        if not data:
            raise LoadError("empty document")
        try:
            return pdfium.PdfDocument(bytes(data))
        except pdfium.PdfiumError as e:
            raise LoadError(f"failed to parse document: {e}") from e

    def page_count(self, handle: Any) -> int:
        return len(handle)

    def page_geometry(self, handle: Any, page_index: int) -> PageGeometry:
        page = handle[page_index - 1]
        try:
            width_pt, height_pt = page.get_size()
        finally:
            page.close()
        return PageGeometry(width_pt=float(width_pt), height_pt=float(height_pt))

    def render_page(self, handle: Any, page_index: int, scale: float) -> RasterImage:
        from PIL import Image

        page = handle[page_index - 1]
        bitmap = None
        try:
            width_pt, height_pt = page.get_size()
            target = (round(width_pt * scale), round(height_pt * scale))

            bitmap = page.render(scale=scale, fill_color=(255, 255, 255, 255))
            pil_img = bitmap.to_pil().convert("RGBA")

            # pdfium sizes the bitmap with ceil(); snap to the rounded size.
            if pil_img.size != target:
                pil_img = pil_img.resize(target, Image.Resampling.LANCZOS)

            width_px, height_px = pil_img.size
            return RasterImage(width=int(width_px), height=int(height_px), pixels=pil_img.tobytes())
        finally:
            if bitmap is not None:
                bitmap.close()
            page.close()

    def close(self, handle: Any) -> None:
        handle.close()
