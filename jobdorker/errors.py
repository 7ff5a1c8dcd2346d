"""
Error taxonomy for scrape sessions.

Every fetch or extraction failure is expressed as a ScrapingError carrying a
kind, the originating URL and a retry-eligibility flag. Errors are collected
into the session's error list and surfaced in the ScrapeResult; they are
never persisted.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

import aiohttp

from jobdorker.models import now_utc


class ErrorKind(str, Enum):
    NETWORK = "network"
    RATE_LIMIT = "rate-limit"
    BLOCKED = "blocked"
    PARSING = "parsing"
    UNKNOWN = "unknown"


# Phrases that mean the target is refusing automated traffic
BLOCK_MARKERS = (
    "captcha",
    "unusual traffic",
    "our systems have detected",
    "are you a robot",
    "access denied",
    "blocked",
)

# Lower-cased page-body markers; "blocked" alone is too common in real job text
CONTENT_BLOCK_MARKERS = (
    "captcha",
    "unusual traffic",
    "our systems have detected",
    "are you a robot",
)


class ScrapingError(Exception):
    """A classified fetch/extraction failure."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        url: str = "",
        retryable: Optional[bool] = None,
        status: int = 0,
        timestamp: Optional[datetime] = None,
        retry_after_s: Optional[float] = None,
    ):
        super().__init__(message)
        self.kind = ErrorKind(kind)
        self.message = message
        self.url = url
        self.status = status
        self.timestamp = timestamp or now_utc()
        self.retry_after_s = retry_after_s
        self.retryable = is_retryable(self.kind, message, status) if retryable is None else retryable

    @property
    def is_blocking(self) -> bool:
        """Whether the target is refusing us (stop paginating this query).

        A RATE_LIMIT without a status comes from the local token bucket and
        is not a refusal by the target.
        """
        if self.kind is ErrorKind.BLOCKED or self.status in (403, 429):
            return True
        return self.kind is ErrorKind.RATE_LIMIT and self.status > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "url": self.url,
            "status": self.status,
            "timestamp": self.timestamp.isoformat(),
            "retryable": self.retryable,
        }

    def __repr__(self) -> str:
        return f"ScrapingError({self.kind.value!r}, {self.message!r}, url={self.url!r})"


class BrowserPoolError(Exception):
    """The rendering engine could not be started. Fatal for the session."""


# ---- Classification ----

def classify_message(message: str, status: int = 0) -> ErrorKind:
    """Map an HTTP status and/or error message to an ErrorKind."""
    if status == 429:
        return ErrorKind.RATE_LIMIT
    if status == 403:
        return ErrorKind.BLOCKED
    if status >= 500:
        return ErrorKind.NETWORK

    m = (message or "").lower()
    if any(x in m for x in BLOCK_MARKERS) or "403" in m:
        return ErrorKind.BLOCKED
    if "timeout" in m or "timed out" in m or "aborted" in m:
        return ErrorKind.NETWORK
    if "rate limit" in m or "rate-limit" in m or "too many requests" in m or "429" in m:
        return ErrorKind.RATE_LIMIT
    if any(x in m for x in ["connection", "reset", "refused", "network", "dns", "unreachable"]):
        return ErrorKind.NETWORK
    if "parse" in m or "selector" in m:
        return ErrorKind.PARSING
    return ErrorKind.UNKNOWN


def is_retryable(kind: ErrorKind, message: str = "", status: int = 0) -> bool:
    """
    Retry-eligibility rules.

    4xx other than 429 and any blocking signal are permanent. Timeouts,
    connection failures, 5xx and limiter exhaustion are transient. Unknown
    errors are retryable; the executor caps them at a single retry.
    """
    if kind in (ErrorKind.BLOCKED, ErrorKind.PARSING):
        return False
    if 400 <= status < 500 and status != 429:
        return False
    m = (message or "").lower()
    if "404" in m or "403" in m:
        return False
    return True


def classify_exception(exc: BaseException, url: str = "") -> ScrapingError:
    """Wrap an arbitrary exception raised during a fetch."""
    if isinstance(exc, ScrapingError):
        return exc
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return ScrapingError(ErrorKind.NETWORK, "Request timeout", url=url)
    if isinstance(exc, aiohttp.ClientResponseError):
        msg = f"HTTP {exc.status}: {exc.message}"
        return ScrapingError(classify_message(msg, exc.status), msg, url=url, status=exc.status)
    if isinstance(exc, aiohttp.ClientError):
        msg = str(exc) or type(exc).__name__
        return ScrapingError(ErrorKind.NETWORK, f"Connection error: {msg}", url=url)
    msg = str(exc) or type(exc).__name__
    return ScrapingError(classify_message(msg), msg, url=url)


def error_for_status(status: int, url: str = "") -> Optional[ScrapingError]:
    """ScrapingError for a non-success HTTP status, or None for 2xx/3xx."""
    if status < 400:
        return None
    if status == 429:
        return ScrapingError(ErrorKind.RATE_LIMIT, "HTTP 429: Too Many Requests", url=url, status=status)
    msg = f"HTTP {status}"
    return ScrapingError(classify_message(msg, status), msg, url=url, status=status)


def detect_block(text: str) -> Optional[str]:
    """Return the blocking marker found in a page body, if any."""
    lowered = (text or "").lower()
    for marker in CONTENT_BLOCK_MARKERS:
        if marker in lowered:
            return marker
    return None
