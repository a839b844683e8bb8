import httpx
import pytest

from mcpsse.config import UpstreamSettings
from mcpsse.exceptions import UpstreamError, UpstreamUnavailable
from mcpsse.upstream import UpstreamClient

URL = "https://api.example.com/lookup"


class FlakyHandler:
    """Fails with the given responses/exceptions, then succeeds."""

    def __init__(self, *failures) -> None:
        self.failures = list(failures)
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        if self.failures:
            failure = self.failures.pop(0)
            if isinstance(failure, Exception):
                raise failure
            return httpx.Response(failure)
        return httpx.Response(200, json={"ok": True})


def make_client(handler, attempts: int = 3) -> UpstreamClient:
    settings = UpstreamSettings(
        max_attempts=attempts,
        backoff_initial_secs=0,
        backoff_max_secs=0,
        backoff_jitter_secs=0,
    )
    return UpstreamClient(settings, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_retries_transient_failures() -> None:
    handler = FlakyHandler(503, httpx.ConnectError("refused"))
    client = make_client(handler)
    assert await client.get_json(URL, params={"q": "x"}) == {"ok": True}
    assert handler.calls == 3
    await client.aclose()


@pytest.mark.asyncio
async def test_exhausted_retries_raise_unavailable() -> None:
    handler = FlakyHandler(502, 502, 502)
    client = make_client(handler)
    with pytest.raises(UpstreamUnavailable) as excinfo:
        await client.get_json(URL, service="geocoding")
    assert handler.calls == 3
    assert excinfo.value.kind == "upstream_unavailable"
    assert excinfo.value.details["status"] == 502
    assert excinfo.value.details["service"] == "geocoding"
    await client.aclose()


@pytest.mark.asyncio
async def test_timeouts_raise_unavailable() -> None:
    handler = FlakyHandler(httpx.ReadTimeout("slow"), httpx.ReadTimeout("slow"))
    client = make_client(handler, attempts=2)
    with pytest.raises(UpstreamUnavailable):
        await client.get_json(URL)
    assert handler.calls == 2
    await client.aclose()


@pytest.mark.asyncio
async def test_client_errors_are_not_retried() -> None:
    handler = FlakyHandler(404)
    client = make_client(handler)
    with pytest.raises(UpstreamError) as excinfo:
        await client.get_json(URL)
    assert not isinstance(excinfo.value, UpstreamUnavailable)
    assert excinfo.value.message == "Not Found"
    assert excinfo.value.details["status"] == 404
    assert handler.calls == 1
    await client.aclose()


@pytest.mark.asyncio
async def test_invalid_json_is_an_upstream_error() -> None:
    client = make_client(lambda request: httpx.Response(200, text="<html>"))
    with pytest.raises(UpstreamError):
        await client.get_json(URL)
    await client.aclose()
