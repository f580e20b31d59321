"""Configuration for a render session."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx
from matplotlib import colormaps

from .tiles import TILE_SIZE

DEFAULT_ENDPOINT = "http://localhost:8080/satori/julia/api"
DEFAULT_TIMEOUT = 60.0
MIN_MAX_ITERATIONS = 1
MAX_MAX_ITERATIONS = 10000


@dataclass(frozen=True)
class RenderConfig:
    """How a session talks to the compute service and colours its tiles.

    ``max_concurrency`` of ``None`` launches every tile request at once;
    ``timeout`` of ``None`` waits on each request indefinitely.
    """

    endpoint: str = DEFAULT_ENDPOINT
    tile_size: int = TILE_SIZE
    max_concurrency: Optional[int] = None
    timeout: Optional[float] = DEFAULT_TIMEOUT
    max_iterations: Optional[int] = None
    colormap: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.endpoint:
            raise ValueError("endpoint must not be empty")
        try:
            httpx.URL(self.endpoint)
        except httpx.InvalidURL as exc:
            raise ValueError(f"invalid endpoint '{self.endpoint}': {exc}") from exc
        if self.tile_size <= 0:
            raise ValueError(f"tile_size must be positive, got {self.tile_size}")
        if self.max_concurrency is not None and self.max_concurrency <= 0:
            raise ValueError(f"max_concurrency must be positive, got {self.max_concurrency}")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        if self.max_iterations is not None and not (
            MIN_MAX_ITERATIONS <= self.max_iterations <= MAX_MAX_ITERATIONS
        ):
            raise ValueError(
                f"max_iterations must be between {MIN_MAX_ITERATIONS} and {MAX_MAX_ITERATIONS}, "
                f"got {self.max_iterations}"
            )
        if self.colormap is not None and self.colormap not in colormaps:
            raise ValueError(f"unknown colormap '{self.colormap}'")

    def http_timeout(self) -> httpx.Timeout:
        return httpx.Timeout(self.timeout)
