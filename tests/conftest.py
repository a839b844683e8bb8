from __future__ import annotations

from typing import Any, Callable

import httpx
import pytest

from mcpsse.app import ToolServer
from mcpsse.config import Config

GEOCODING_HOST = "geocoding-api.open-meteo.com"
FORECAST_HOST = "api.open-meteo.com"
SEARCH_HOST = "api.search.brave.com"


class FakeUpstream:
    """Answers outbound requests per host and records every request seen."""

    def __init__(self) -> None:
        self._routes: dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: list[httpx.Request] = []

    def route(
        self,
        host: str,
        *,
        status: int = 200,
        json: Any = None,
        handler: Callable[[httpx.Request], httpx.Response] | None = None,
    ) -> None:
        def respond(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, json=json if json is not None else {})

        self._routes[host] = handler or respond

    def calls(self, host: str) -> list[httpx.Request]:
        return [request for request in self.requests if request.url.host == host]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self._routes.get(request.url.host)
        if handler is None:
            raise AssertionError(f"unexpected outbound request: {request.url}")
        return handler(request)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


FAST_RETRY = {
    "max_attempts": 2,
    "backoff_initial_secs": 0,
    "backoff_max_secs": 0,
    "backoff_jitter_secs": 0,
}


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def make_server(upstream: FakeUpstream) -> Callable[..., ToolServer]:
    def factory(**sections: Any) -> ToolServer:
        data: dict[str, Any] = {"upstream": dict(FAST_RETRY)}
        data.update(sections)
        return ToolServer(Config.from_dict(data), upstream_transport=upstream.transport())

    return factory
