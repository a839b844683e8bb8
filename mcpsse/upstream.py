"""Outbound HTTP calls with a deadline and bounded retry."""

from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx
from tenacity import AsyncRetrying, RetryError, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from .config import UpstreamSettings
from .exceptions import UpstreamError, UpstreamUnavailable

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


class _RetryableStatus(Exception):
    def __init__(self, response: httpx.Response) -> None:
        super().__init__(f"HTTP {response.status_code}")
        self.response = response


class UpstreamClient:
    """Thin wrapper over a shared ``httpx.AsyncClient`` for JSON GET lookups."""

    def __init__(
        self,
        settings: UpstreamSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.timeout_secs),
            transport=transport,
            follow_redirects=True,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.settings.max_attempts),
            wait=wait_exponential_jitter(
                initial=self.settings.backoff_initial_secs,
                max=self.settings.backoff_max_secs,
                jitter=self.settings.backoff_jitter_secs,
            ),
            retry=retry_if_exception_type((httpx.TransportError, _RetryableStatus)),
        )

    async def _get(self, url: str, params: Mapping[str, Any] | None, headers: Mapping[str, str] | None) -> httpx.Response:
        response = await self._client.get(url, params=params, headers=headers)
        if response.status_code in RETRYABLE_STATUS:
            raise _RetryableStatus(response)
        return response

    async def get_json(
        self,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        service: str = "upstream",
    ) -> Any:
        """GET ``url`` and decode its JSON body.

        Transport errors, 429 and 5xx answers are retried. When attempts run
        out the call raises ``UpstreamUnavailable``; any other non-success
        status raises ``UpstreamError`` straight away.
        """

        try:
            async for attempt in self._retrying():
                with attempt:
                    response = await self._get(url, params, headers)
        except RetryError as exc:
            last = exc.last_attempt.exception()
            logger.warning("%s unavailable after %d attempts: %s", service, self.settings.max_attempts, last)
            details: dict[str, object] = {"service": service, "attempts": self.settings.max_attempts}
            if isinstance(last, _RetryableStatus):
                details["status"] = last.response.status_code
            raise UpstreamUnavailable(message=f"{service} unavailable: {last}", details=details) from exc

        if response.is_error:
            reason = response.reason_phrase or f"HTTP {response.status_code}"
            logger.info("%s answered %d for %s", service, response.status_code, url)
            raise UpstreamError(
                message=reason,
                details={"service": service, "status": response.status_code},
            )
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError(message=f"{service} returned invalid JSON", details={"service": service}) from exc
