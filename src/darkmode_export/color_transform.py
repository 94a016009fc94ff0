"""
Dark-mode recoloring of RGBA page rasters.

Pure per-pixel map, no I/O and no state:
- invert RGB (alpha untouched)
- inverted near-white (all channels > near_white_threshold): soften by glare_reduction
- inverted near-black (all channels < near_black_threshold): replace with tint
- otherwise keep the inverted value

The map is one-way: applying it twice does not restore the original.
"""

from __future__ import annotations

import numpy as np

from .contracts import DarkModeConfig, RasterImage


class ColorTransform:
    def __init__(self, config: DarkModeConfig | None = None) -> None:
        self.config = config or DarkModeConfig()

    def transform(self, image: RasterImage) -> RasterImage:
        """Return a new recolored raster; `image` is not modified."""

        cfg = self.config
        if image.width == 0 or image.height == 0:
            return RasterImage(width=image.width, height=image.height, pixels=b"")

        src = np.frombuffer(image.pixels, dtype=np.uint8).reshape(image.height, image.width, 4)
        out = src.copy()

        rgb = 255 - src[..., :3]
        bright = np.all(rgb > cfg.near_white_threshold, axis=-1)
        dark = np.all(rgb < cfg.near_black_threshold, axis=-1) & ~bright

        rgb[bright] -= np.uint8(cfg.glare_reduction)
        rgb[dark] = np.asarray(cfg.tint, dtype=np.uint8)

        out[..., :3] = rgb
        return RasterImage(width=image.width, height=image.height, pixels=out.tobytes())

    __call__ = transform


def apply_dark_mode(image: RasterImage, config: DarkModeConfig | None = None) -> RasterImage:
    return ColorTransform(config).transform(image)
