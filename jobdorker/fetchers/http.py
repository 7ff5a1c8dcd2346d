"""
HTTP request executor with rate limiting, throttling, retries and backoff.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, Optional, Tuple

import aiohttp

from jobdorker.config import Settings, get_settings
from jobdorker.errors import (
    ErrorKind,
    ScrapingError,
    classify_exception,
    detect_block,
    error_for_status,
)
from jobdorker.interfaces import ProxyProvider
from jobdorker.models import SessionStats, get_host

logger = logging.getLogger(__name__)

Listener = Callable[[str, str, Dict[str, Any]], None]


@dataclass
class FetchResult:
    """Result of a fetch operation."""
    url: str
    status: int = 0
    text: str = ""
    content_type: str = ""
    error: Optional[ScrapingError] = None
    elapsed_ms: float = 0
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 400 and self.error is None

    @property
    def is_html(self) -> bool:
        return "text/html" in self.content_type.lower()


class TokenBucket:
    """
    Token bucket: ``capacity`` tokens, refilled at ``rate`` tokens/second.

    ``acquire`` waits for a token but gives up with a rate-limit error once
    the wait would exceed ``max_wait_s``.
    """

    def __init__(
        self,
        rate: float,
        capacity: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.rate = rate
        self.capacity = capacity
        self.tokens = float(capacity)
        self._clock = clock
        self._updated = clock()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = self._clock()
        self.tokens = min(self.capacity, self.tokens + (now - self._updated) * self.rate)
        self._updated = now

    def try_acquire(self) -> bool:
        self._refill()
        if self.tokens >= 1:
            self.tokens -= 1
            return True
        return False

    async def acquire(self, max_wait_s: float, url: str = "") -> None:
        deadline = self._clock() + max_wait_s
        async with self._lock:
            while not self.try_acquire():
                wait = (1 - self.tokens) / self.rate
                if self._clock() + wait > deadline:
                    raise ScrapingError(
                        ErrorKind.RATE_LIMIT,
                        f"Rate limit wait exceeded {max_wait_s:.1f}s",
                        url=url,
                    )
                await asyncio.sleep(wait)


class DomainThrottler:
    """
    Per-host request serialization with a minimum delay between requests.

    The delay only applies once a host has been contacted in this session.
    """

    def __init__(self, min_delay_s: float = 2.0):
        self.min_delay_s = min_delay_s
        self._last_request: Dict[str, float] = {}
        self._host_sems: Dict[str, asyncio.Semaphore] = {}

    def _sem(self, host: str) -> asyncio.Semaphore:
        sem = self._host_sems.get(host)
        if sem is None:
            sem = self._host_sems[host] = asyncio.Semaphore(1)
        return sem

    def in_flight(self, host: str) -> bool:
        sem = self._host_sems.get(host)
        return sem is not None and sem.locked()

    async def acquire(self, url: str) -> None:
        """Acquire permission to make a request to this URL's host."""
        host = get_host(url)
        await self._sem(host).acquire()
        try:
            last = self._last_request.get(host)
            if last is not None:
                wait = self.min_delay_s - (time.monotonic() - last)
                if wait > 0:
                    await asyncio.sleep(wait)
        except BaseException:
            self._sem(host).release()
            raise

    def release(self, url: str) -> None:
        """Mark the request finished and release the host slot."""
        host = get_host(url)
        self._last_request[host] = time.monotonic()
        if host in self._host_sems:
            self._host_sems[host].release()

    def reset(self) -> None:
        self._last_request.clear()


class RequestExecutor:
    """
    Async HTTP fetcher with token-bucket rate limiting, per-host throttling,
    hard timeouts, error classification and retry with exponential backoff.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        stats: Optional[SessionStats] = None,
        proxy: Optional[ProxyProvider] = None,
        listener: Optional[Listener] = None,
    ):
        self.settings = settings or get_settings()
        self.stats = stats if stats is not None else SessionStats(
            error_history_limit=self.settings.error_history_limit,
        )
        self.proxy = proxy
        self.listener = listener
        self.throttler = DomainThrottler(min_delay_s=self.settings.request_delay_s)
        self._buckets: Dict[str, TokenBucket] = {}
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "RequestExecutor":
        await self.start()
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    async def start(self) -> None:
        """Initialize the HTTP session."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=20,
                ttl_dns_cache=300,
                enable_cleanup_closed=True,
            )
            headers = {
                "User-Agent": self.settings.user_agent,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                "Accept-Language": "en-US,en;q=0.9",
            }
            self._session = aiohttp.ClientSession(
                connector=connector,
                headers=headers,
                cookie_jar=aiohttp.CookieJar(),
            )

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    def reset(self) -> None:
        """Forget per-host timing and token state between sessions."""
        self._buckets.clear()
        self.throttler.reset()

    # ---- Politeness ----

    def bucket_for(self, url: str) -> TokenBucket:
        host = get_host(url)
        bucket = self._buckets.get(host)
        if bucket is None:
            bucket = self._buckets[host] = TokenBucket(
                rate=self.settings.requests_per_second,
                capacity=self.settings.burst,
            )
        return bucket

    @asynccontextmanager
    async def request_slot(self, url: str) -> AsyncIterator[None]:
        """
        Hold the host slot and one rate-limit token for the duration of a request.

        Shared with the browser pool so rendered navigations obey the same limits.
        """
        await self.throttler.acquire(url)
        try:
            await self.bucket_for(url).acquire(self.settings.rate_limit_max_wait_s, url=url)
            yield
        finally:
            self.throttler.release(url)

    def emit(self, event: str, url: str, payload: Optional[Dict[str, Any]] = None) -> None:
        if self.listener is None:
            return
        try:
            self.listener(event, url, payload or {})
        except Exception:
            logger.warning("Listener failed on %s for %s", event, url, exc_info=True)

    def record_attempt(self, url: str) -> None:
        self.stats.total_requests += 1
        self.emit("request:start", url)

    def record_success(self, url: str, status: int, elapsed_ms: float) -> None:
        self.stats.successful_requests += 1
        self.emit("request:success", url, {"status": status, "elapsed_ms": elapsed_ms})

    def record_failure(self, url: str, error: ScrapingError) -> None:
        self.emit("request:error", url, {"error": error})

    # ---- Fetching ----

    async def _send(self, url: str, headers: Optional[Dict[str, str]]) -> Tuple[int, str, Dict[str, str]]:
        """Perform one GET. Returns (status, body, headers)."""
        if self._session is None:
            await self.start()

        proxy = self.proxy.get_agent() if self.proxy else self.settings.proxy_url
        timeout = aiohttp.ClientTimeout(total=self.settings.timeout_s)
        async with self._session.get(
            url,
            timeout=timeout,
            headers=headers,
            proxy=proxy,
            allow_redirects=True,
        ) as resp:
            text = await resp.text(errors="replace")
            return resp.status, text, dict(resp.headers)

    async def fetch_once(self, url: str, headers: Optional[Dict[str, str]] = None) -> FetchResult:
        """
        Single attempt. Raises ScrapingError on any failure, including
        non-2xx statuses and pages carrying blocking markers.
        """
        async with self.request_slot(url):
            self.record_attempt(url)
            start_time = time.monotonic()
            try:
                status, text, resp_headers = await asyncio.wait_for(
                    self._send(url, headers),
                    timeout=self.settings.timeout_s,
                )
            except Exception as e:
                error = classify_exception(e, url)
                self.record_failure(url, error)
                raise error from e

            elapsed_ms = (time.monotonic() - start_time) * 1000
            error = error_for_status(status, url)
            if error is not None and status == 429:
                error.retry_after_s = self._parse_retry_after(resp_headers.get("Retry-After", ""))
            if error is None:
                marker = detect_block(text)
                if marker:
                    error = ScrapingError(
                        ErrorKind.BLOCKED,
                        f"Blocked: '{marker}' detected in response",
                        url=url,
                        status=status,
                    )
            if error is not None:
                self.record_failure(url, error)
                raise error

            self.record_success(url, status, elapsed_ms)
            return FetchResult(
                url=url,
                status=status,
                text=text,
                content_type=resp_headers.get("Content-Type", ""),
                elapsed_ms=elapsed_ms,
                attempts=1,
            )

    async def fetch(self, url: str, headers: Optional[Dict[str, str]] = None) -> FetchResult:
        """
        Fetch a URL, retrying retryable failures with exponential backoff.

        Never raises ScrapingError: the final failure is returned in
        ``FetchResult.error``.
        """
        retries = self.settings.retries
        start_time = time.monotonic()
        last_error: Optional[ScrapingError] = None
        unknown_retried = False

        for attempt in range(1, retries + 2):
            try:
                result = await self.fetch_once(url, headers)
                result.attempts = attempt
                return result
            except ScrapingError as e:
                last_error = e

            if attempt > retries or not last_error.retryable:
                break
            if last_error.kind == ErrorKind.UNKNOWN:
                if unknown_retried:
                    break
                unknown_retried = True

            delay = self.backoff_delay(attempt)
            if last_error.retry_after_s:
                delay = max(delay, min(last_error.retry_after_s, self.settings.backoff_cap_s))
            logger.debug(
                "Attempt %d for %s failed (%s), retrying in %.2fs",
                attempt, url, last_error.kind.value, delay,
            )
            await self._sleep(delay)

        logger.info("Giving up on %s after %d attempt(s): %s", url, attempt, last_error)
        return FetchResult(
            url=url,
            status=last_error.status if last_error else 0,
            error=last_error,
            elapsed_ms=(time.monotonic() - start_time) * 1000,
            attempts=attempt,
        )

    async def _sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    def backoff_delay(self, attempt: int) -> float:
        """
        Delay in seconds before attempt ``attempt + 1``:
        ``min(base * 2^(attempt-1), cap)`` plus up to 10% jitter.
        """
        base = min(self.settings.backoff_base_s * (2 ** (attempt - 1)), self.settings.backoff_cap_s)
        return base + random.uniform(0, 0.1 * base)

    def _parse_retry_after(self, header: str) -> Optional[float]:
        """Parse a Retry-After header given in seconds."""
        if not header:
            return None
        try:
            return float(int(header))
        except ValueError:
            return None
