"""Render requests and the tile grid covering an output surface."""

from __future__ import annotations

import math
from dataclasses import dataclass

from .errors import ValidationError

TILE_SIZE = 256

VALIDATION_MESSAGE = "All parameters must be valid finite numbers."


@dataclass(frozen=True)
class RenderRequest:
    """Domain window, Julia constant and output size of a single render."""

    min_x: float
    max_x: float
    min_y: float
    max_y: float
    c_real: float
    c_imag: float
    width: int
    height: int


@dataclass(frozen=True)
class DomainRect:
    """Sub-rectangle of the complex plane sampled by a tile."""

    min_x: float
    max_x: float
    min_y: float
    max_y: float


@dataclass(frozen=True)
class Tile:
    """A pixel rectangle of the surface and the domain it maps to."""

    col: int
    row: int
    left: int
    top: int
    width: int
    height: int
    domain: DomainRect

    @property
    def key(self) -> tuple[int, int]:
        return (self.col, self.row)


def _finite(value: object) -> float:
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValidationError(VALIDATION_MESSAGE) from exc
    if not math.isfinite(number):
        raise ValidationError(VALIDATION_MESSAGE)
    return number


def validate_request(
    min_x: object,
    max_x: object,
    min_y: object,
    max_y: object,
    c_real: object,
    c_imag: object,
    *,
    width: int,
    height: int,
) -> RenderRequest:
    """Build a :class:`RenderRequest`, rejecting any non-finite field."""

    return RenderRequest(
        min_x=_finite(min_x),
        max_x=_finite(max_x),
        min_y=_finite(min_y),
        max_y=_finite(max_y),
        c_real=_finite(c_real),
        c_imag=_finite(c_imag),
        width=int(width),
        height=int(height),
    )


def interpolate(lo: float, hi: float, offset: int, extent: int) -> float:
    """Map pixel ``offset`` along ``extent`` pixels into ``[lo, hi]``."""

    return lo + (hi - lo) * offset / extent


def partition(request: RenderRequest, tile_size: int = TILE_SIZE) -> list[Tile]:
    """Split the request's surface into a row-major grid of tiles.

    Edge tiles are clamped to the surface, so the last column and row may be
    narrower or shorter than ``tile_size``.
    """

    if tile_size <= 0:
        raise ValueError(f"tile_size must be positive, got {tile_size}")

    surface_w = request.width
    surface_h = request.height
    if surface_w <= 0 or surface_h <= 0:
        return []

    cols = math.ceil(surface_w / tile_size)
    rows = math.ceil(surface_h / tile_size)

    tiles: list[Tile] = []
    for row in range(rows):
        for col in range(cols):
            left = col * tile_size
            top = row * tile_size
            tile_w = min(tile_size, surface_w - left)
            tile_h = min(tile_size, surface_h - top)
            domain = DomainRect(
                min_x=interpolate(request.min_x, request.max_x, left, surface_w),
                max_x=interpolate(request.min_x, request.max_x, left + tile_w, surface_w),
                min_y=interpolate(request.min_y, request.max_y, top, surface_h),
                max_y=interpolate(request.min_y, request.max_y, top + tile_h, surface_h),
            )
            tiles.append(Tile(col, row, left, top, tile_w, tile_h, domain))
    return tiles
