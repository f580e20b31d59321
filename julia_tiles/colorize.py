"""Decode smooth iteration counts and map them to RGBA bitmaps."""

from __future__ import annotations

from typing import Optional

import numpy as np
from matplotlib import colormaps

from .errors import TileDecodeError
from .tiles import Tile

PIXEL_STRIDE = 4
HUE_SCALE = 10.0
INTERIOR_RGBA = (0, 0, 0, 255)


def decode_smooth(body: bytes, tile: Tile) -> np.ndarray:
    """Interpret ``body`` as little-endian float32 values laid out like ``tile``."""

    if len(body) % PIXEL_STRIDE:
        raise TileDecodeError(
            tile,
            f"Tile ({tile.col}, {tile.row}): response length {len(body)} is not a multiple of {PIXEL_STRIDE}",
        )
    values = np.frombuffer(body, dtype="<f4")
    expected = tile.width * tile.height
    if values.size != expected:
        raise TileDecodeError(
            tile,
            f"Tile ({tile.col}, {tile.row}): expected {expected} values, got {values.size}",
        )
    return values.reshape(tile.height, tile.width)


def hsv_to_rgb(hue: np.ndarray, saturation: float = 1.0, value: float = 1.0) -> np.ndarray:
    """Convert hues in degrees ``[0, 360)`` to 8-bit RGB triples."""

    h = np.asarray(hue, dtype=np.float64)
    c = value * saturation
    x = c * (1.0 - np.abs(np.mod(h / 60.0, 2.0) - 1.0))
    m = value - c
    zero = np.zeros_like(h)
    full = np.full_like(h, c)

    sectors = [h < 60, h < 120, h < 180, h < 240, h < 300]
    r = np.select(sectors, [full, x, zero, zero, x], default=full)
    g = np.select(sectors, [x, full, full, x, zero], default=zero)
    b = np.select(sectors, [zero, zero, x, full, full], default=x)

    rgb = np.stack((r, g, b), axis=-1) + m
    # Round half up, matching the usual canvas conversion.
    return np.floor(rgb * 255.0 + 0.5).astype(np.uint8)


def colorize(smooth: np.ndarray, *, colormap: Optional[str] = None) -> np.ndarray:
    """Map smooth iteration values to an ``(H, W, 4)`` uint8 RGBA array.

    Negative (and non-finite) values are interior points and come out opaque
    black. Everything else gets hue ``(s * 10) mod 360``, either through the
    HSV transform or, if ``colormap`` names a matplotlib colormap, through that
    colormap at ``hue / 360``.
    """

    s = np.asarray(smooth, dtype=np.float64)
    interior = ~np.isfinite(s) | (s < 0)
    hue = np.mod(np.where(interior, 0.0, s) * HUE_SCALE, 360.0)

    if colormap is None:
        rgb = hsv_to_rgb(hue)
    else:
        cmap = colormaps[colormap]
        rgb = np.floor(cmap(hue / 360.0)[..., :3] * 255.0 + 0.5).astype(np.uint8)

    rgba = np.empty(s.shape + (4,), dtype=np.uint8)
    rgba[..., :3] = rgb
    rgba[..., 3] = 255
    rgba[interior] = INTERIOR_RGBA
    return rgba


def decode_tile(body: bytes, tile: Tile, *, colormap: Optional[str] = None) -> np.ndarray:
    """Decode a tile response body straight into its RGBA bitmap."""

    return colorize(decode_smooth(body, tile), colormap=colormap)
