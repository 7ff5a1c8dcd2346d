"""
Fetcher layer for JobDorker.

Provides HTTP and browser-based fetching with:
- Token-bucket rate limiting and per-host request spacing
- Retries with exponential backoff and Retry-After handling
- A pre-warmed pool of Playwright pages for JS-rendered results
- Static-first strategy selection with a single rendered fallback
"""

from jobdorker.fetchers.http import RequestExecutor, FetchResult, TokenBucket
from jobdorker.fetchers.browser import BrowserPool, BrowserConfig
from jobdorker.fetchers.hybrid import HybridFetcher, StrategyOutcome

__all__ = [
    "RequestExecutor",
    "FetchResult",
    "TokenBucket",
    "BrowserPool",
    "BrowserConfig",
    "HybridFetcher",
    "StrategyOutcome",
]
