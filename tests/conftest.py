import struct

import httpx
import pytest


def pack_smooth(values) -> bytes:
    return struct.pack("<%df" % len(values), *values)


def constant_service(value=5.0, *, fail=None, calls=None):
    """Fake compute service answering every tile with a constant smooth value.

    ``fail`` maps ``(min_x, min_y)`` query strings to the response sent
    instead of a successful body.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        params = request.url.params
        if calls is not None:
            calls.append(dict(params))
        key = (params["min_x"], params["min_y"])
        if fail and key in fail:
            return fail[key]
        count = int(params["width"]) * int(params["height"])
        return httpx.Response(
            200,
            content=pack_smooth([value] * count),
            headers={"Content-Type": "application/octet-stream"},
        )

    return handler


@pytest.fixture
def service():
    return constant_service


@pytest.fixture
def packed():
    return pack_smooth


@pytest.fixture
def mock_client():
    def factory(handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return factory
