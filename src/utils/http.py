"""HTTP lookup client with timeout-bound cancellation tokens."""

import asyncio
import contextlib
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 12000


class FetchError(Exception):
    """Base exception for lookup request failures."""
    pass


class FetchTimeout(FetchError):
    """Exception raised when a request exceeds its timeout."""
    pass


class NetworkError(FetchError):
    """Exception raised for transport failures and non-2xx responses."""
    pass


class FetchCancelled(FetchError):
    """Exception raised when the caller cancels a request before it resolves."""
    pass


class CancellationToken:
    """
    Cooperative cancellation flag shared between a caller and one request.

    Cancelling does not stop the bytes already on the wire; it makes the
    pending fetch fail with FetchCancelled so its result is never applied.
    """

    def __init__(self, label: str = ""):
        self.label = label
        self.reason: Optional[str] = None
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "superseded") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


@dataclass
class FetchResponse:
    """Represents one completed lookup response."""
    url: str
    status: int
    data: Any
    latency_ms: float

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class BoundedFetcher:
    """
    Issues one GET per request, each bounded by a timeout.

    One aiohttp session (and its cookie jar) is reused for the fetcher's
    lifetime so that session cookies are always sent.
    """

    def __init__(
        self,
        default_timeout_ms: int = DEFAULT_TIMEOUT_MS,
        auth_token: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.default_timeout_ms = default_timeout_ms
        self.auth_token = auth_token
        self.headers = dict(headers or {})
        self._session = session
        self._owns_session = session is None
        self.request_count = 0

    async def __aenter__(self) -> "BoundedFetcher":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(cookie_jar=aiohttp.CookieJar(unsafe=True))
            self._owns_session = True
        return self._session

    def _request_headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json", **self.headers}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return headers

    async def fetch(
        self,
        url: str,
        timeout_ms: Optional[int] = None,
        token: Optional[CancellationToken] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> FetchResponse:
        """
        GET url and parse the body as JSON.

        Args:
            url: Absolute URL of the lookup endpoint
            timeout_ms: Total request budget (defaults to the fetcher's)
            token: Optional token the caller may cancel early
            params: Query parameters, URL-encoded by aiohttp

        Returns:
            FetchResponse whose data is None for an empty or non-JSON body

        Raises:
            FetchTimeout, NetworkError, FetchCancelled
        """
        if token is not None and token.cancelled:
            raise FetchCancelled(f"Request to {url} cancelled before dispatch")

        timeout_ms = timeout_ms or self.default_timeout_ms
        request = asyncio.ensure_future(self._get(url, timeout_ms, params))
        if token is None:
            return await request

        waiter = asyncio.ensure_future(token.wait())
        try:
            done, _ = await asyncio.wait({request, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            request.cancel()
            waiter.cancel()
            raise

        if request in done:
            waiter.cancel()
            return request.result()

        request.cancel()
        with contextlib.suppress(asyncio.CancelledError, FetchError):
            await request
        raise FetchCancelled(f"Request to {url} cancelled: {token.reason}")

    async def _get(self, url: str, timeout_ms: int, params: Optional[Dict[str, str]]) -> FetchResponse:
        session = self._get_session()
        self.request_count += 1
        start_time = time.time()

        try:
            async with session.get(
                url,
                params=params,
                headers=self._request_headers(),
                timeout=aiohttp.ClientTimeout(total=timeout_ms / 1000),
            ) as response:
                body = await response.read()
                latency_ms = (time.time() - start_time) * 1000
                return FetchResponse(
                    url=str(response.url),
                    status=response.status,
                    data=self._parse_body(body, str(response.url)),
                    latency_ms=latency_ms,
                )
        except asyncio.TimeoutError as e:
            raise FetchTimeout(f"Request to {url} timed out after {timeout_ms}ms") from e
        except aiohttp.ClientError as e:
            raise NetworkError(f"Request to {url} failed: {e}") from e

    @staticmethod
    def _parse_body(body: bytes, url: str) -> Any:
        if not body or not body.strip():
            return None
        try:
            return json.loads(body.decode("utf-8-sig"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.warning(f"Non-JSON response from {url}: {body[:200]!r}")
            return None
