import asyncio

import httpx
import numpy as np
import pytest

from julia_tiles import (
    RenderConfig,
    RenderInProgressError,
    RenderSession,
    RenderState,
    Surface,
    TileCancelledError,
    TileServiceError,
    TileTransportError,
)

GREEN = (0, 255, 0, 255)
BLACK = (0, 0, 0, 255)
DOMAIN = (-2.0, 1.0, -1.0, 1.0, 0.285, 0.01)


def test_render_composites_every_tile(service, mock_client):
    calls = []
    surface = Surface(512, 256)
    settled = []

    async def runner():
        async with mock_client(service(12.0, calls=calls)) as client:
            session = RenderSession(surface, client=client, on_tile=settled.append)
            outcome = await session.render(*DOMAIN)
            assert session.state is RenderState.IDLE
            assert not session.busy
            return outcome

    outcome = asyncio.run(runner())

    assert outcome.error is None
    assert outcome.succeeded == 2
    assert len(calls) == 2
    assert sorted((c["min_x"], c["max_x"]) for c in calls) == [("-0.5", "1.0"), ("-2.0", "-0.5")]
    assert {c["comp_const"] for c in calls} == {"0.285,0.01"}
    assert all(result.ok for result in settled)
    pixels = surface.to_array()
    assert pixels.shape == (256, 512, 4)
    assert np.all(pixels == GREEN)


def test_one_failed_tile_leaves_its_region_black(service, mock_client):
    fail = {("-0.5", "-1.0"): httpx.Response(400, json={"error": "width must be between 1 and 4096, got 0"})}
    surface = Surface(512, 256)
    surface.image.paste((255, 255, 255, 255), (0, 0, 512, 256))
    reported = []

    async def runner():
        async with mock_client(service(12.0, fail=fail)) as client:
            session = RenderSession(surface, client=client, on_error=reported.append)
            return await session.render(*DOMAIN)

    outcome = asyncio.run(runner())

    pixels = surface.to_array()
    assert np.all(pixels[:, :256] == GREEN)
    assert np.all(pixels[:, 256:] == BLACK)
    assert reported == ["width must be between 1 and 4096, got 0"]
    assert outcome.error == reported[0]
    assert list(outcome.failures) == [(1, 0)]
    assert isinstance(outcome.failures[(1, 0)], TileServiceError)


def test_all_failures_are_collected_but_one_is_reported(service, mock_client):
    fail = {
        ("-2.0", "-1.0"): httpx.Response(503, text="down"),
        ("-0.5", "-1.0"): httpx.Response(500, text="boom"),
    }
    reported = []

    async def runner():
        async with mock_client(service(fail=fail)) as client:
            session = RenderSession(Surface(512, 256), client=client, on_error=reported.append)
            return await session.render(*DOMAIN)

    outcome = asyncio.run(runner())

    assert set(outcome.failures) == {(0, 0), (1, 0)}
    assert all(isinstance(err, TileTransportError) for err in outcome.failures.values())
    assert len(reported) == 1
    assert reported[0] in {"Server error: 503 Service Unavailable", "Server error: 500 Internal Server Error"}
    assert outcome.error == reported[0]
    assert outcome.succeeded == 0


def test_malformed_body_is_a_tile_failure(mock_client):
    def handler(request):
        return httpx.Response(200, content=b"\x00" * 10)

    surface = Surface(100, 50)

    async def runner():
        async with mock_client(handler) as client:
            return await RenderSession(surface, client=client).render(*DOMAIN)

    outcome = asyncio.run(runner())

    assert list(outcome.failures) == [(0, 0)]
    assert "multiple of 4" in outcome.error
    assert np.all(surface.to_array() == BLACK)


@pytest.mark.parametrize("index", range(6))
def test_non_finite_input_issues_no_requests(index, service, mock_client):
    calls = []
    reported = []
    values = list(DOMAIN)
    values[index] = float("nan")
    surface = Surface(64, 64)
    surface.image.paste((9, 9, 9, 255), (0, 0, 64, 64))

    async def runner():
        async with mock_client(service(calls=calls)) as client:
            session = RenderSession(surface, client=client, on_error=reported.append)
            outcome = await session.render(*values)
            assert session.state is RenderState.IDLE
            assert not session.busy
            return outcome

    outcome = asyncio.run(runner())

    assert calls == []
    assert reported == ["All parameters must be valid finite numbers."]
    assert outcome.request is None
    assert outcome.tiles == []
    # Surface is only cleared once validation has passed.
    assert np.all(surface.to_array() == (9, 9, 9, 255))


def test_render_rejects_overlapping_invocations(service, mock_client):
    async def runner():
        gate = asyncio.Event()
        inner = service(12.0)

        async def handler(request):
            await gate.wait()
            return inner(request)

        async with mock_client(handler) as client:
            session = RenderSession(Surface(300, 100), client=client)
            first = asyncio.create_task(session.render(*DOMAIN))
            while session.state is not RenderState.AWAITING_TILES:
                await asyncio.sleep(0)
            assert session.busy
            with pytest.raises(RenderInProgressError):
                await session.render(*DOMAIN)
            gate.set()
            outcome = await first
            assert not session.busy
            second = await session.render(*DOMAIN)
            return outcome, second

    outcome, second = asyncio.run(runner())

    assert outcome.error is None and outcome.succeeded == 2
    assert second.error is None


def test_concurrency_limit_bounds_in_flight_requests(service, mock_client):
    inner = service(12.0)
    in_flight = 0
    peak = 0

    async def handler(request):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.05)
        in_flight -= 1
        return inner(request)

    async def runner():
        async with mock_client(handler) as client:
            config = RenderConfig(tile_size=16, max_concurrency=3)
            return await RenderSession(Surface(64, 64), config, client=client).render(*DOMAIN)

    outcome = asyncio.run(runner())

    assert outcome.succeeded == 16
    assert peak == 3


def test_unbounded_fan_out_launches_every_tile_at_once(service, mock_client):
    inner = service(12.0)
    in_flight = 0
    peak = 0

    async def handler(request):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.05)
        in_flight -= 1
        return inner(request)

    async def runner():
        async with mock_client(handler) as client:
            config = RenderConfig(tile_size=16)
            return await RenderSession(Surface(64, 32), config, client=client).render(*DOMAIN)

    asyncio.run(runner())

    assert peak == 8


def test_cancel_settles_pending_tiles_as_failures(service, mock_client):
    inner = service(12.0)
    reported = []

    async def runner():
        hang = asyncio.Event()

        async def handler(request):
            if request.url.params["min_x"] != "-2.0":
                await hang.wait()
            return inner(request)

        async with mock_client(handler) as client:
            surface = Surface(512, 256)
            session = RenderSession(surface, client=client, on_error=reported.append)
            task = asyncio.create_task(session.render(*DOMAIN))
            while session.pending != 1:
                await asyncio.sleep(0)
            session.cancel()
            outcome = await task
            assert session.state is RenderState.IDLE
            assert not session.busy
            return outcome, surface

    outcome, surface = asyncio.run(runner())

    assert list(outcome.failures) == [(1, 0)]
    assert isinstance(outcome.failures[(1, 0)], TileCancelledError)
    assert reported == ["Render cancelled."]
    pixels = surface.to_array()
    assert np.all(pixels[:, :256] == GREEN)
    assert np.all(pixels[:, 256:] == BLACK)


def test_surface_is_cleared_between_renders(service, mock_client):
    surface = Surface(256, 256)

    async def runner(handler):
        async with mock_client(handler) as client:
            return await RenderSession(surface, client=client).render(*DOMAIN)

    asyncio.run(runner(service(12.0)))
    assert np.all(surface.to_array() == GREEN)

    outcome = asyncio.run(runner(lambda request: httpx.Response(500)))
    assert outcome.error == "Server error: 500 Internal Server Error"
    assert np.all(surface.to_array() == BLACK)
