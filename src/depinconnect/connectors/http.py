"""
Async JSON client for network REST APIs.

One session per connector, created lazily. The client performs a single
attempt; retry and rate limiting are applied by the connector around it.
Failures are translated into the connector error taxonomy:

- 429 -> RateLimitError(kind=UPSTREAM_429), honoring Retry-After
- other >= 400 -> ApiError(status); 5xx retryable, 4xx fatal
- connection failures -> ApiError(status=None), retryable
- client timeouts -> ApiError(code=TIMEOUT_ERROR), retryable
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any

import aiohttp

from depinconnect.errors import ApiError, RateLimitError, RateLimitKind

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "depinconnect/0.1"


class ApiClient:
    """
    Thin aiohttp wrapper bound to one API root.

    Args:
        base_url: API root without trailing slash.
        api_key: Sent as ``Authorization: Bearer <key>`` and ``X-API-Key``.
        timeout_ms: Total timeout per request.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        timeout_ms: int = 30_000,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout_ms = timeout_ms
        self._user_agent = user_agent
        self._session: aiohttp.ClientSession | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json", "User-Agent": self._user_agent}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
            headers["X-API-Key"] = self._api_key
        return headers

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self._timeout_ms / 1000)
            self._session = aiohttp.ClientSession(timeout=timeout, headers=self._headers())
        return self._session

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: Any = None,
    ) -> Any:
        """
        Perform one request and return the decoded JSON body.

        Returns None for empty (204) responses.

        Raises:
            RateLimitError: Upstream answered 429.
            ApiError: Any other HTTP, transport or decoding failure.
        """
        url = f"{self._base_url}{endpoint}"
        query = {k: str(v) for k, v in (params or {}).items() if v is not None}
        operation = f"{method} {endpoint}"
        session = await self._get_session()
        try:
            async with session.request(method, url, params=query, json=json_body) as response:
                if response.status == 429:
                    retry_after_ms = None
                    if "Retry-After" in response.headers:
                        with contextlib.suppress(ValueError):
                            retry_after_ms = int(response.headers["Retry-After"]) * 1000
                    logger.warning(
                        "Upstream rate limit hit",
                        extra={"url": url, "status": 429, "retry_after_ms": retry_after_ms},
                    )
                    raise RateLimitError(
                        f"Upstream rate limit on {operation}",
                        kind=RateLimitKind.UPSTREAM_429,
                        retry_after_ms=retry_after_ms,
                        retryable=True,
                    )

                if response.status >= 400:
                    text = await response.text()
                    logger.error(
                        "HTTP error",
                        extra={"url": url, "status": response.status, "body": text[:500]},
                    )
                    raise ApiError(
                        f"HTTP {response.status} on {operation}: {text[:200]}",
                        status=response.status,
                        details={"endpoint": endpoint},
                    )

                if response.status == 204:
                    return None
                try:
                    return await response.json(content_type=None)
                except ValueError as exc:
                    raise ApiError(
                        f"Invalid JSON from {operation}",
                        status=response.status,
                        code="INVALID_RESPONSE",
                        retryable=False,
                        details={"endpoint": endpoint},
                    ) from exc
        except asyncio.TimeoutError as exc:
            raise ApiError.timeout(operation, self._timeout_ms) from exc
        except aiohttp.ClientConnectionError as exc:
            raise ApiError(
                f"Network error on {operation}: {exc}",
                status=None,
                details={"endpoint": endpoint},
            ) from exc

    async def get(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        return await self.request("GET", endpoint, params=params)

    async def post(self, endpoint: str, json_body: Any = None) -> Any:
        return await self.request("POST", endpoint, json_body=json_body)

    async def put(self, endpoint: str, json_body: Any = None) -> Any:
        return await self.request("PUT", endpoint, json_body=json_body)
