import asyncio
import logging
import time
from typing import Callable, Optional

import httpx
from prometheus_client import Counter, Histogram

from config import settings
from services.errors import InvalidResponseError, RateLimitError, UpstreamError

logger = logging.getLogger(__name__)

# Only this status is retried, and only once.
RETRY_STATUS = 429
_BODY_PREVIEW = 2000

_client: Optional[httpx.AsyncClient] = None
_sleep = asyncio.sleep

rate_limited = Counter(
    "upstream_rate_limited_total", "Upstream responses with HTTP 429", ["host"]
)
upstream_failures = Counter(
    "upstream_failures_total", "Upstream calls that ended in an error", ["host"]
)
request_duration = Histogram(
    "upstream_request_duration_seconds", "Duration of upstream HTTP requests"
)


class MinIntervalLimiter:
    """Reject calls that arrive sooner than ``interval`` seconds apart.

    Unlike a token bucket nothing waits here: a refused caller gets a
    :class:`RateLimitError` immediately and the timestamp is left untouched.
    """

    def __init__(self, interval: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.interval = float(interval)
        self._clock = clock
        self._last: Optional[float] = None

    def remaining(self) -> float:
        if self._last is None:
            return 0.0
        return max(0.0, self.interval - (self._clock() - self._last))

    def acquire(self) -> None:
        wait = self.remaining()
        if wait > 0:
            raise RateLimitError(
                "Too many requests. Please wait before trying again.",
                retry_after=wait,
            )
        self._last = self._clock()

    def reset(self) -> None:
        self._last = None


def get_client() -> httpx.AsyncClient:
    global _client
    if _client is None:
        _client = httpx.AsyncClient(
            timeout=settings.http_timeout,
            follow_redirects=True,
        )
    return _client


def _describe(url: str, params) -> str:
    try:
        return str(httpx.URL(url, params=params)) if params else url
    except Exception:  # pragma: no cover - malformed params
        return url


async def _send(client, method: str, url: str, **kwargs):
    try:
        return await client.request(method, url, **kwargs)
    except httpx.RequestError as exc:
        host = httpx.URL(url).host
        upstream_failures.labels(host=host).inc()
        logger.warning("upstream_unreachable url=%s error=%s", url, exc)
        raise UpstreamError(
            f"Upstream request failed: {exc.__class__.__name__}",
            url=_describe(url, kwargs.get("params")),
        ) from exc


async def request(
    method: str,
    url: str,
    *,
    retry_delay: Optional[float] = None,
    **kwargs,
) -> httpx.Response:
    """Send one request, retrying exactly once after a fixed delay on HTTP 429.

    Any other non-2xx status, or a second 429, raises :class:`UpstreamError`
    carrying the status, the start of the response body and the request URL.
    """

    delay = settings.upstream_retry_delay if retry_delay is None else retry_delay
    client = get_client()
    host = httpx.URL(url).host
    target = _describe(url, kwargs.get("params"))
    start = time.monotonic()

    resp = await _send(client, method, url, **kwargs)
    retried = False
    if resp.status_code == RETRY_STATUS:
        rate_limited.labels(host=host).inc()
        logger.warning("upstream_rate_limited url=%s wait=%.2fs", target, delay)
        await _sleep(delay)
        resp = await _send(client, method, url, **kwargs)
        retried = True

    duration = time.monotonic() - start
    request_duration.observe(duration)
    status = resp.status_code
    if not 200 <= status < 300:
        upstream_failures.labels(host=host).inc()
        body = (resp.text or "")[:_BODY_PREVIEW]
        logger.warning(
            "upstream_error method=%s url=%s status=%s retried=%s",
            method,
            target,
            status,
            retried,
        )
        message = "Upstream request failed"
        if retried:
            message = "Upstream request failed after retry"
        raise UpstreamError(
            message, status=status, body=body, url=target, retried=retried
        )

    logger.info(
        "http_request method=%s url=%s status=%s retried=%s duration=%.2f",
        method,
        target,
        status,
        retried,
        duration,
    )
    return resp


async def get(url: str, **kwargs) -> httpx.Response:
    return await request("GET", url, **kwargs)


async def get_json(url: str, **kwargs):
    resp = await get(url, **kwargs)
    try:
        return resp.json()
    except ValueError as exc:
        raise InvalidResponseError(
            "Upstream returned invalid JSON",
            status=resp.status_code,
            body=(resp.text or "")[:_BODY_PREVIEW],
            url=_describe(url, kwargs.get("params")),
        ) from exc


async def aclose() -> None:
    """Close the underlying AsyncClient and reset global state."""
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
