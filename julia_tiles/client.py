"""Fetch per-tile escape data from the compute service."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from .errors import TileServiceError, TileTransportError
from .tiles import RenderRequest, Tile

logger = logging.getLogger(__name__)


def build_query(tile: Tile, request: RenderRequest, *, max_iterations: Optional[int] = None) -> dict[str, str]:
    """Query parameters asking the service for ``tile``'s escape values."""

    domain = tile.domain
    params = {
        "min_x": repr(domain.min_x),
        "max_x": repr(domain.max_x),
        "min_y": repr(domain.min_y),
        "max_y": repr(domain.max_y),
        "comp_const": f"{request.c_real!r},{request.c_imag!r}",
        "width": str(tile.width),
        "height": str(tile.height),
    }
    if max_iterations is not None:
        params["max_iter"] = str(max_iterations)
    return params


def _is_json(response: httpx.Response) -> bool:
    return "application/json" in response.headers.get("Content-Type", "").lower()


def check_response(tile: Tile, response: httpx.Response) -> bytes:
    """Return the body of a successful response, or raise the matching tile error."""

    if response.is_success:
        return response.content

    if _is_json(response):
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if payload is not None:
            message = payload.get("error") if isinstance(payload, dict) else None
            raise TileServiceError(tile, str(message) if message else "Unknown server error")

    raise TileTransportError(tile, f"Server error: {response.status_code} {response.reason_phrase}".rstrip())


class TileFetcher:
    """Issues one GET per tile against ``endpoint`` using a shared client."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        endpoint: str,
        *,
        max_iterations: Optional[int] = None,
        timeout: Optional[httpx.Timeout] = None,
    ) -> None:
        self.client = client
        self.endpoint = endpoint
        self.max_iterations = max_iterations
        self.timeout = timeout

    async def fetch(self, tile: Tile, request: RenderRequest) -> bytes:
        params = build_query(tile, request, max_iterations=self.max_iterations)
        logger.debug("Requesting tile (%d, %d) %dx%d", tile.col, tile.row, tile.width, tile.height)
        try:
            response = await self.client.get(
                self.endpoint,
                params=params,
                timeout=self.timeout if self.timeout is not None else httpx.USE_CLIENT_DEFAULT,
            )
        except (httpx.RequestError, httpx.InvalidURL) as exc:
            detail = str(exc) or type(exc).__name__
            raise TileTransportError(tile, f"Request failed: {detail}") from exc
        return check_response(tile, response)
