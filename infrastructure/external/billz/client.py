"""
Billz REST client.

- bearer token cached in an injectable ``TokenCache`` (one per external system)
- single-flight token refresh under an ``asyncio.Lock`` with double-checked reads
- ``vN`` version segment spliced between base URL and request path
- a 401 on a cached token forces one refresh and exactly one retry

There is deliberately no retry policy beyond the 401 case: Billz order
endpoints are not idempotent.
"""
from __future__ import annotations

import asyncio
import json
import re
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

import httpx

from core.logging_config import get_logger
from core.settings import BillzSettings


logger = get_logger(__name__)

_VERSION_SEGMENT = re.compile(r"^v\d+$")


class BillzAPIError(Exception):
    """Non-2xx answer or transport failure talking to Billz"""

    def __init__(self, message: str, *, status_code: Optional[int] = None, body: Optional[str] = None):
        self.message = message
        self.status_code = status_code
        self.body = body
        super().__init__(message)

    def __str__(self):
        parts = [self.message]
        if self.status_code is not None:
            parts.append(f"status {self.status_code}")
        if self.body:
            parts.append(f"body {self.body}")
        return " | ".join(parts)


class BillzAuthError(BillzAPIError):
    """Login failed: secret missing, non-2xx answer or no access token"""


@dataclass
class BillzResponse:
    status_code: int
    headers: Dict[str, str]
    content: bytes

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def json(self) -> Any:
        if not self.content:
            return None
        return json.loads(self.content)


def _is_version_segment(segment: str) -> bool:
    return bool(_VERSION_SEGMENT.match(segment))


def _segments(path: str) -> List[str]:
    return [s for s in path.split("/") if s]


def build_billz_url(base_url: str, path: str, query: Optional[Mapping[str, Any]] = None) -> str:
    """
    Join ``base_url`` and ``path`` so exactly one ``vN`` segment survives.

    If ``path`` starts with a version segment it wins and a trailing version on
    the base path is dropped; otherwise the path is appended to the base as is.

    >>> build_billz_url("https://api-admin.billz.ai/v2", "v1/order")
    'https://api-admin.billz.ai/v1/order'
    >>> build_billz_url("https://api-admin.billz.ai/v2", "order")
    'https://api-admin.billz.ai/v2/order'
    """
    url = httpx.URL(base_url.rstrip("/"))
    base_segments = _segments(url.path)
    path_segments = _segments(path)

    if path_segments and _is_version_segment(path_segments[0]):
        if base_segments and _is_version_segment(base_segments[-1]):
            base_segments = base_segments[:-1]
    segments = base_segments + path_segments

    url = url.copy_with(path="/" + "/".join(segments))
    if query:
        url = url.copy_merge_params({k: str(v) for k, v in query.items()})
    return str(url)


TokenFetcher = Callable[[], Awaitable[Tuple[str, float]]]


class TokenCache:
    """
    Bearer token plus expiry for one external system.

    Readers take the fast path without waiting while the token is outside the
    leeway window; refreshes are serialized by the lock and re-check the cache
    after acquiring it, so a burst of callers triggers one login.
    """

    def __init__(self, *, leeway_seconds: float = 30.0, clock: Callable[[], float] = time.monotonic):
        self._leeway = leeway_seconds
        self._clock = clock
        self._lock = asyncio.Lock()
        self._token: Optional[str] = None
        self._expires_at: Optional[float] = None

    def peek(self) -> Optional[str]:
        """Cached token if still usable, else None."""
        if not self._token:
            return None
        if self._expires_at is not None and self._clock() + self._leeway >= self._expires_at:
            return None
        return self._token

    def store(self, token: str, ttl_seconds: float) -> None:
        self._token = token
        self._expires_at = self._clock() + ttl_seconds

    def invalidate(self) -> None:
        self._token = None
        self._expires_at = None

    async def get(self, fetch: TokenFetcher, *, force: bool = False, stale: Optional[str] = None) -> str:
        """
        Return a usable token, calling ``fetch`` when the cache cannot serve one.

        ``force`` skips the fast path; ``stale`` names the token the caller saw
        rejected so a refresh finished by someone else is reused instead of
        logging in again.
        """
        if not force:
            token = self.peek()
            if token:
                return token

        async with self._lock:
            token = self.peek()
            if token and (not force or (stale is not None and token != stale)):
                return token
            token, ttl = await fetch()
            self.store(token, ttl)
            return token


class BillzClient:
    """Authenticated Billz API client"""

    def __init__(
        self,
        settings: BillzSettings,
        token_cache: TokenCache,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings
        self.token_cache = token_cache
        self._external_client = http_client is not None
        self._client = http_client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.settings.timeout))
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._external_client:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def login(self) -> Tuple[str, float]:
        """Exchange the configured secret for ``(access_token, ttl_seconds)``."""
        secret = (self.settings.secret_key or "").strip()
        if not secret:
            raise BillzAuthError("Billz secret key is not configured")

        auth_url = self.settings.auth_url.rstrip("/")
        try:
            response = await self.client.post(auth_url, json={"secret_token": secret})
        except httpx.HTTPError as exc:
            raise BillzAuthError(f"Billz auth request failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            logger.warning("billz_auth_rejected", status_code=response.status_code)
            raise BillzAuthError(
                "Billz auth request failed",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            data = (response.json() or {}).get("data") or {}
        except ValueError as exc:
            raise BillzAuthError("Billz auth response is not JSON", body=response.text) from exc

        token = data.get("access_token")
        if not token:
            raise BillzAuthError("Billz auth response missing access_token", body=response.text)

        try:
            expires_in = float(data.get("expires_in") or 0)
        except (TypeError, ValueError):
            expires_in = 0.0
        ttl = expires_in if expires_in > 0 else float(self.settings.default_token_ttl_seconds)
        logger.info("billz_token_refreshed", expires_in=ttl)
        return token, ttl

    async def get_token(self, *, force: bool = False, stale: Optional[str] = None) -> str:
        return await self.token_cache.get(self.login, force=force, stale=stale)

    async def request(
        self,
        method: str,
        path: str,
        *,
        query: Optional[Mapping[str, Any]] = None,
        body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
        token: Optional[str] = None,
    ) -> BillzResponse:
        """
        Send one Billz request.

        ``token`` bypasses the cache; a 401 with such a caller token is returned
        as an error without refreshing.

        Raises:
            BillzAPIError: non-2xx answer, timeout or transport failure
            BillzAuthError: the token could not be obtained
        """
        if not method:
            raise ValueError("request method is required")
        if not path or not path.strip("/"):
            raise ValueError("request path is required")

        url = build_billz_url(self.settings.base_url, path, query)
        caller_token = token
        bearer = caller_token or await self.get_token()

        response = await self._send(method, url, body, headers, bearer)
        if response.status_code == 401 and caller_token is None:
            logger.info("billz_token_rejected", path=path)
            bearer = await self.get_token(force=True, stale=bearer)
            response = await self._send(method, url, body, headers, bearer)

        if not response.is_success:
            logger.warning(
                "billz_request_failed",
                method=method,
                path=path,
                status_code=response.status_code,
            )
            raise BillzAPIError(
                f"{method.upper()} {path} failed",
                status_code=response.status_code,
                body=response.text(),
            )
        return response

    async def _send(
        self,
        method: str,
        url: str,
        body: Any,
        headers: Optional[Mapping[str, str]],
        bearer: str,
    ) -> BillzResponse:
        request_headers = {"Accept": "application/json"}
        if headers:
            request_headers.update(headers)
        request_headers["Authorization"] = f"Bearer {bearer}"

        started = time.perf_counter()
        try:
            response = await self.client.request(
                method.upper(),
                url,
                json=body,
                headers=request_headers,
            )
        except httpx.TimeoutException as exc:
            raise BillzAPIError(f"{method.upper()} {url} timed out after {self.settings.timeout}s") from exc
        except httpx.HTTPError as exc:
            raise BillzAPIError(f"{method.upper()} {url} failed: {exc}") from exc

        logger.debug(
            "billz_response",
            method=method.upper(),
            url=url,
            status_code=response.status_code,
            elapsed_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return BillzResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            content=response.content,
        )
