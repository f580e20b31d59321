"""Error taxonomy for tile rendering."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .tiles import Tile


class RenderError(Exception):
    """Base class for every error raised by a render invocation."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(RenderError):
    """A render request field is not a finite number."""


class RenderInProgressError(RenderError):
    """A render was requested while a previous one is still settling."""


class TileError(RenderError):
    """A single tile failed to settle with a bitmap."""

    def __init__(self, tile: Tile, message: str) -> None:
        super().__init__(message)
        self.tile = tile


class TileTransportError(TileError):
    """Network failure or a non-2xx response without a structured payload."""


class TileServiceError(TileError):
    """Non-2xx response carrying a JSON ``error`` payload."""


class TileDecodeError(TileError):
    """Response body does not match the tile's declared dimensions."""


class TileCancelledError(TileError):
    """The tile was cancelled before it settled."""
