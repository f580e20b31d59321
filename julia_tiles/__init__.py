"""Public API for tiled Julia set rendering."""

from .client import TileFetcher, build_query, check_response
from .colorize import colorize, decode_smooth, decode_tile, hsv_to_rgb
from .compositor import Surface
from .config import DEFAULT_ENDPOINT, DEFAULT_TIMEOUT, RenderConfig
from .errors import (
    RenderError,
    RenderInProgressError,
    TileCancelledError,
    TileDecodeError,
    TileError,
    TileServiceError,
    TileTransportError,
    ValidationError,
)
from .session import RenderOutcome, RenderSession, RenderState, TileResult
from .tiles import TILE_SIZE, DomainRect, RenderRequest, Tile, partition, validate_request

__all__ = [
    "DEFAULT_ENDPOINT",
    "DEFAULT_TIMEOUT",
    "DomainRect",
    "RenderConfig",
    "RenderError",
    "RenderInProgressError",
    "RenderOutcome",
    "RenderRequest",
    "RenderSession",
    "RenderState",
    "Surface",
    "TILE_SIZE",
    "Tile",
    "TileCancelledError",
    "TileDecodeError",
    "TileError",
    "TileFetcher",
    "TileResult",
    "TileServiceError",
    "TileTransportError",
    "ValidationError",
    "build_query",
    "check_response",
    "colorize",
    "decode_smooth",
    "decode_tile",
    "hsv_to_rgb",
    "partition",
    "validate_request",
]
