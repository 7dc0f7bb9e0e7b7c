"""
Directory HTTP client.

Handles:
- Token authentication against the v1 and REST API bases
- Retry with exponential backoff (5xx, transport errors) and Retry-After (429)
- Rate limiting to a fixed burst per period

Failures surface as `DirectoryRequestError` once retries are exhausted.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional

import httpx
import structlog
from aiolimiter import AsyncLimiter

from .errors import DirectoryRequestError

log = structlog.get_logger()

# Retry configuration
MAX_RETRIES = 5
RETRY_BASE_SECONDS = 1.0


def _retry_after(resp: httpx.Response, default: float) -> float:
    """Seconds to wait before retrying a 429, from delta-seconds or an HTTP date."""
    value = resp.headers.get("Retry-After")
    if value is None:
        return default
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return default
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


def _error_message(resp: httpx.Response) -> str:
    try:
        payload = resp.json()
    except ValueError:
        return resp.text or resp.reason_phrase
    if isinstance(payload, dict):
        if payload.get("message"):
            return str(payload["message"])
        errors = payload.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            return str(errors[0].get("detail") or errors[0].get("title") or errors)
    return resp.text or resp.reason_phrase


class DirectoryClient:
    """
    Async client for the directory's v1 and REST APIs.

    `request()` is the only call the sync engine makes.
    """

    def __init__(
        self,
        api_url: str,
        rest_url: str,
        token: str,
        *,
        max_retries: int = MAX_RETRIES,
        retry_base_seconds: float = RETRY_BASE_SECONDS,
        burst_size: int = 1,
        period_seconds: float = 1.0,
        request_timeout: int = 30,
        verify_tls: bool = True,
        user_agent_prefix: str = "gm-sync",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_url = api_url.rstrip("/")
        self._rest_url = rest_url.rstrip("/")
        self._token = token
        self._max_retries = max(1, max_retries)
        self._retry_base = retry_base_seconds
        if burst_size < 1:
            raise ValueError("burst_size must be at least 1")
        self._limiter = AsyncLimiter(burst_size, period_seconds)
        self._request_timeout = request_timeout
        self._verify_tls = verify_tls
        self._user_agent = f"{user_agent_prefix}/gm-sync"
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def open(self) -> None:
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self._request_timeout),
            verify=self._verify_tls,
            transport=self._transport,
            headers={
                "Authorization": f"token {self._token}",
                "User-Agent": self._user_agent,
            },
        )

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> DirectoryClient:
        await self.open()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def request(
        self,
        verb: str,
        url: str,
        body: Optional[dict[str, Any]] = None,
        use_rest_api: bool = False,
    ) -> Any:
        """Send one request, retrying transient failures. Returns decoded JSON."""
        assert self._client, "client is not open"
        base = self._rest_url if use_rest_api else self._api_url
        content_type = "application/vnd.api+json" if use_rest_api else "application/json"

        last_error = "request failed"
        last_status: Optional[int] = None
        for attempt in range(self._max_retries):
            final = attempt + 1 == self._max_retries
            try:
                async with self._limiter:
                    resp = await self._client.request(
                        verb,
                        f"{base}{url}",
                        json=body,
                        headers={"Content-Type": content_type},
                    )
            except httpx.TransportError as exc:
                last_error, last_status = str(exc) or type(exc).__name__, None
            else:
                if resp.status_code == 429:
                    last_error, last_status = _error_message(resp), 429
                    if final:
                        break
                    retry_after = _retry_after(resp, self._retry_base * (attempt + 1))
                    log.warning("client.rate_limited", url=url, retry_after=retry_after)
                    await asyncio.sleep(retry_after)
                    continue

                if resp.is_success:
                    return self._decode(resp, verb, url)

                last_error, last_status = _error_message(resp), resp.status_code
                if 400 <= resp.status_code < 500:
                    # Don't retry 4xx
                    log.error(
                        "client.request_rejected",
                        verb=verb, url=url, status=resp.status_code, error=last_error,
                    )
                    raise DirectoryRequestError(last_error, resp.status_code, verb, url)

            if final:
                break
            backoff = self._retry_base * (2 ** attempt)
            log.warning(
                "client.retry",
                verb=verb,
                url=url,
                attempt=attempt + 1,
                backoff=backoff,
                error=last_error,
            )
            await asyncio.sleep(backoff)

        raise DirectoryRequestError(last_error, last_status, verb, url)

    @staticmethod
    def _decode(resp: httpx.Response, verb: str, url: str) -> Any:
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError:
            log.error(
                "client.invalid_response",
                verb=verb, url=url, status=resp.status_code,
                content_type=resp.headers.get("Content-Type"),
            )
            raise DirectoryRequestError(
                "response body is not valid JSON", resp.status_code, verb, url
            ) from None
