"""The output surface that decoded tiles are composited into."""

from __future__ import annotations

import logging

import numpy as np
import PIL.Image

from .tiles import Tile

logger = logging.getLogger(__name__)

CLEAR_COLOR = (0, 0, 0, 255)


class Surface:
    """Mutable RGBA raster owned by a render session.

    Tiles write disjoint rectangles, so writes may land in any order.
    """

    def __init__(self, width: int, height: int) -> None:
        if width <= 0 or height <= 0:
            raise ValueError(f"surface dimensions must be positive, got {width}x{height}")
        self.image = PIL.Image.new("RGBA", (width, height), CLEAR_COLOR)

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    def clear(self) -> None:
        self.image.paste(CLEAR_COLOR, (0, 0, self.width, self.height))

    def composite(self, tile: Tile, bitmap: np.ndarray) -> None:
        """Write ``bitmap`` at the tile's pixel origin."""

        expected = (tile.height, tile.width, 4)
        if bitmap.shape != expected:
            raise ValueError(f"bitmap shape {bitmap.shape} does not match tile shape {expected}")
        if tile.left + tile.width > self.width or tile.top + tile.height > self.height:
            raise ValueError(f"tile ({tile.col}, {tile.row}) lies outside the {self.width}x{self.height} surface")

        patch = PIL.Image.fromarray(np.ascontiguousarray(bitmap, dtype=np.uint8))
        self.image.paste(patch, (tile.left, tile.top))
        logger.debug("Composited tile (%d, %d) at (%d, %d)", tile.col, tile.row, tile.left, tile.top)

    def to_array(self) -> np.ndarray:
        return np.array(self.image, copy=True)
