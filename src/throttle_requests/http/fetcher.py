"""Async HTTP client for JSON endpoints with transport retries and timeout."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 10.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (compatible; ThrottleRequests/0.1; +https://github.com/throttle-requests)"
)


@dataclass(slots=True)
class FetchError(Exception):
    """A request that did not yield a decodable 2xx JSON body."""

    message: str
    url: str
    code: str = "http_status"
    status_code: int = 0

    def __str__(self) -> str:
        return self.message


class AsyncHttpFetcher:
    """``httpx.AsyncClient`` wrapper with retry, timeout, and header configuration.

    Retries cover connection failures only (``httpx.AsyncHTTPTransport``);
    a non-2xx response is returned to the caller as a :class:`FetchError`.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        user_agent: str = DEFAULT_USER_AGENT,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = httpx.Timeout(
            timeout_seconds,
            connect=min(timeout_seconds, DEFAULT_CONNECT_TIMEOUT_SECONDS),
        )
        base_headers = {"User-Agent": user_agent, "Accept": "application/json"}
        if headers:
            base_headers.update(headers)
        self._client = httpx.AsyncClient(
            timeout=self._timeout,
            headers=base_headers,
            transport=transport or httpx.AsyncHTTPTransport(retries=max_retries),
            follow_redirects=True,
        )

    async def fetch_json(self, url: str) -> Any:
        """GET ``url`` and return the decoded JSON body."""

        try:
            response = await self._client.get(url)
        except httpx.TimeoutException as exc:
            logger.warning("Timeout fetching %s", url)
            raise FetchError(message=f"Timeout fetching {url}", url=url, code="timeout") from exc
        except httpx.HTTPError as exc:
            logger.warning("HTTP error fetching %s: %s", url, exc)
            raise FetchError(
                message=str(exc) or type(exc).__name__,
                url=url,
                code="transport",
            ) from exc

        if not response.is_success:
            raise FetchError(
                message=f"HTTP {response.status_code} for {url}",
                url=url,
                code="http_status",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise FetchError(
                message=f"Invalid JSON from {url}: {exc}",
                url=url,
                code="decode",
                status_code=response.status_code,
            ) from exc

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> AsyncHttpFetcher:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()
