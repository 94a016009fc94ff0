"""
Output document assembly.

Each raster becomes exactly one output page, in call order. Images are fit to
the page width with their aspect ratio kept; if that is too tall they are
uniformly downscaled so the height fits. Nothing is cropped or stretched.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field

from PIL import Image
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen.canvas import Canvas

from .contracts import A4_PAGE_SIZE, ImageFormat, RasterImage
from .errors import AssemblyError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Placement:
    """Image rectangle on an output page, in points (origin bottom-left)."""

    x: float
    y: float
    width: float
    height: float


def compute_placement(image_width: int, image_height: int, page_width: float, page_height: float) -> Placement:
    """
    Fit to page width; clamp to page height with a uniform downscale.

    The image is top-aligned and horizontally centred.
    """

    if image_width <= 0 or image_height <= 0:
        raise ValueError("image dimensions must be > 0")
    if page_width <= 0 or page_height <= 0:
        raise ValueError("page dimensions must be > 0")

    width = float(page_width)
    height = image_height / image_width * width
    if height > page_height:
        factor = page_height / height
        width *= factor
        height = float(page_height)

    x = (page_width - width) / 2.0
    y = page_height - height
    return Placement(x=x, y=y, width=width, height=height)


@dataclass(slots=True)
class AssemblyHandle:
    buffer: io.BytesIO = field(repr=False)
    canvas: Canvas = field(repr=False)
    page_count: int = 0
    finalized: bool = False
    discarded: bool = False


class DocumentAssembler:
    def __init__(
        self,
        *,
        page_size: tuple[float, float] = A4_PAGE_SIZE,
        image_format: ImageFormat = ImageFormat.PNG,
        jpeg_quality: int = 90,
        page_background: tuple[int, int, int] | None = (36, 40, 52),
    ) -> None:
        self.page_size = (float(page_size[0]), float(page_size[1]))
        self.image_format = ImageFormat(image_format)
        self.jpeg_quality = jpeg_quality
        self.page_background = page_background

    def begin_document(self) -> AssemblyHandle:
        buf = io.BytesIO()
        c = Canvas(buf, pagesize=self.page_size, pageCompression=1)
        return AssemblyHandle(buffer=buf, canvas=c)

    def _check_open(self, handle: AssemblyHandle) -> None:
        if handle.discarded:
            raise AssemblyError("assembly handle was discarded")
        if handle.finalized:
            raise AssemblyError("assembly handle is already finalized")

    def _image_reader(self, image: RasterImage) -> ImageReader:
        pil_img = Image.frombuffer("RGBA", (image.width, image.height), image.pixels, "raw", "RGBA", 0, 1)
        encoded = io.BytesIO()
        if self.image_format == ImageFormat.JPEG:
            pil_img.convert("RGB").save(encoded, format="JPEG", quality=self.jpeg_quality)
        else:
            pil_img.save(encoded, format="PNG")
        encoded.seek(0)
        return ImageReader(encoded)

    def add_page(self, handle: AssemblyHandle, image: RasterImage) -> None:
        self._check_open(handle)
        if image.width == 0 or image.height == 0:
            raise AssemblyError(f"cannot place an empty raster ({image.width}x{image.height})")

        page_w, page_h = self.page_size
        placement = compute_placement(image.width, image.height, page_w, page_h)
        c = handle.canvas
        try:
            reader = self._image_reader(image)
            if handle.page_count > 0:
                c.showPage()
            if self.page_background is not None:
                r, g, b = self.page_background
                c.setFillColorRGB(r / 255.0, g / 255.0, b / 255.0)
                c.rect(0, 0, page_w, page_h, fill=1, stroke=0)
            mask = "auto" if self.image_format == ImageFormat.PNG else None
            c.drawImage(
                reader,
                placement.x,
                placement.y,
                width=placement.width,
                height=placement.height,
                mask=mask,
            )
        except Exception as e:
            raise AssemblyError(f"failed to place output page {handle.page_count + 1}: {e}") from e
        handle.page_count += 1

    def finalize(self, handle: AssemblyHandle) -> bytes:
        self._check_open(handle)
        if handle.page_count == 0:
            raise AssemblyError("cannot finalize a document with no pages")
        try:
            handle.canvas.save()
        except Exception as e:
            raise AssemblyError(f"failed to finalize output document: {e}") from e
        handle.finalized = True
        data = handle.buffer.getvalue()
        handle.buffer.close()
        logger.debug("assembled %d pages (%d bytes)", handle.page_count, len(data))
        return data

    def discard(self, handle: AssemblyHandle) -> None:
        """Drop accumulated pages without writing anything."""

        if handle.discarded or handle.finalized:
            return
        handle.discarded = True
        handle.buffer.close()
