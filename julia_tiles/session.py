"""Render invocations: validate, partition, fan out, composite, settle."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Callable, Optional

import httpx
import numpy as np

from .client import TileFetcher
from .colorize import decode_tile
from .compositor import Surface
from .config import RenderConfig
from .errors import RenderInProgressError, TileCancelledError, TileError, ValidationError
from .tiles import RenderRequest, Tile, partition, validate_request

logger = logging.getLogger(__name__)


class RenderState(Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    PARTITIONING = "partitioning"
    AWAITING_TILES = "awaiting_tiles"
    SETTLED = "settled"


@dataclass(frozen=True)
class TileResult:
    """A settled tile: either its RGBA bitmap or the reason it failed."""

    tile: Tile
    bitmap: Optional[np.ndarray] = None
    error: Optional[TileError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RenderOutcome:
    """Summary of one render invocation.

    ``failures`` keeps every tile failure keyed by ``(col, row)`` in the order
    the tiles settled; ``error`` is the single message shown to the user.
    """

    request: Optional[RenderRequest] = None
    tiles: list[Tile] = field(default_factory=list)
    failures: dict[tuple[int, int], TileError] = field(default_factory=dict)
    validation_error: Optional[ValidationError] = None

    @property
    def error(self) -> Optional[str]:
        if self.validation_error is not None:
            return self.validation_error.message
        first = next(iter(self.failures.values()), None)
        return first.message if first is not None else None

    @property
    def succeeded(self) -> int:
        return len(self.tiles) - len(self.failures)


class RenderSession:
    """Owns a :class:`Surface` and renders into it one invocation at a time.

    ``on_tile`` is called after every tile settles (after compositing when it
    succeeded); ``on_error`` receives at most one message per invocation.
    """

    def __init__(
        self,
        surface: Surface,
        config: Optional[RenderConfig] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        on_tile: Optional[Callable[[TileResult], None]] = None,
        on_error: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.surface = surface
        self.config = config or RenderConfig()
        self.on_tile = on_tile
        self.on_error = on_error
        self._client = client
        self._state = RenderState.IDLE
        self._busy = False
        self._pending = 0
        self._tasks: list[asyncio.Task] = []

    @property
    def state(self) -> RenderState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def pending(self) -> int:
        return self._pending

    def cancel(self) -> None:
        """Cancel every tile that has not settled yet."""

        for task in self._tasks:
            if not task.done():
                task.cancel()

    async def render(
        self,
        min_x: float,
        max_x: float,
        min_y: float,
        max_y: float,
        c_real: float,
        c_imag: float,
    ) -> RenderOutcome:
        if self._busy:
            raise RenderInProgressError("A render is already in progress.")

        self._busy = True
        try:
            self._state = RenderState.VALIDATING
            try:
                request = validate_request(
                    min_x, max_x, min_y, max_y, c_real, c_imag,
                    width=self.surface.width,
                    height=self.surface.height,
                )
            except ValidationError as exc:
                logger.warning("Render rejected: %s", exc.message)
                self._report(exc.message)
                return RenderOutcome(validation_error=exc)

            self._state = RenderState.PARTITIONING
            tiles = partition(request, self.config.tile_size)
            self.surface.clear()

            self._state = RenderState.AWAITING_TILES
            outcome = RenderOutcome(request=request, tiles=tiles)
            await self._settle_all(request, tiles, outcome.failures)

            self._state = RenderState.SETTLED
            logger.info(
                "Render settled: %d tiles, %d failed",
                len(tiles),
                len(outcome.failures),
            )
            if outcome.error is not None:
                self._report(outcome.error)
            return outcome
        finally:
            self._tasks = []
            self._pending = 0
            self._state = RenderState.IDLE
            self._busy = False

    @contextlib.asynccontextmanager
    async def _open_client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.config.http_timeout(), follow_redirects=True) as client:
            yield client

    async def _settle_all(
        self,
        request: RenderRequest,
        tiles: list[Tile],
        failures: dict[tuple[int, int], TileError],
    ) -> None:
        limit = self.config.max_concurrency
        semaphore = asyncio.Semaphore(limit) if limit is not None else None

        async with self._open_client() as client:
            fetcher = TileFetcher(
                client,
                self.config.endpoint,
                max_iterations=self.config.max_iterations,
                timeout=self.config.http_timeout(),
            )
            self._pending = len(tiles)
            self._tasks = [
                asyncio.create_task(self._settle_tile(fetcher, semaphore, request, tile, failures))
                for tile in tiles
            ]
            results = await asyncio.gather(*self._tasks, return_exceptions=True)

        unexpected: Optional[BaseException] = None
        for tile, result in zip(tiles, results):
            if isinstance(result, asyncio.CancelledError):
                self._record(TileResult(tile, error=TileCancelledError(tile, "Render cancelled.")), failures)
            elif isinstance(result, BaseException) and unexpected is None:
                unexpected = result
        if unexpected is not None:
            raise unexpected

    async def _settle_tile(
        self,
        fetcher: TileFetcher,
        semaphore: Optional[asyncio.Semaphore],
        request: RenderRequest,
        tile: Tile,
        failures: dict[tuple[int, int], TileError],
    ) -> None:
        try:
            if semaphore is None:
                body = await fetcher.fetch(tile, request)
            else:
                async with semaphore:
                    body = await fetcher.fetch(tile, request)
            bitmap = decode_tile(body, tile, colormap=self.config.colormap)
        except TileError as exc:
            self._record(TileResult(tile, error=exc), failures)
            return
        finally:
            self._pending -= 1

        self.surface.composite(tile, bitmap)
        self._record(TileResult(tile, bitmap=bitmap), failures)

    def _record(self, result: TileResult, failures: dict[tuple[int, int], TileError]) -> None:
        if result.error is not None:
            tile = result.tile
            logger.warning("Tile (%d, %d) failed: %s", tile.col, tile.row, result.error.message)
            failures[tile.key] = result.error
        if self.on_tile is not None:
            self.on_tile(result)

    def _report(self, message: str) -> None:
        if self.on_error is not None:
            self.on_error(message)
