"""
Playwright-based browser session pool for JS-rendered pages.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from contextlib import asynccontextmanager, nullcontext
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional, Set, Tuple

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright
from pydantic import ValidationError

from jobdorker.config import Settings, get_settings
from jobdorker.errors import BrowserPoolError, ErrorKind, ScrapingError, detect_block, error_for_status
from jobdorker.models import ExtractedFields, FetchStrategy, FetchTarget, RawPageContent

logger = logging.getLogger(__name__)


# Runs inside the page: one plain object per result block, fields are strings.
EXTRACT_RECORDS_JS = r"""
(sel) => Array.from(document.querySelectorAll(sel.block)).map((el) => {
  const text = (s) => {
    if (!s) return "";
    const n = el.querySelector(s);
    return n ? (n.textContent || "").trim() : "";
  };
  const lines = (s) => {
    if (!s) return "";
    const n = el.querySelector(s);
    if (!n) return "";
    const c = n.cloneNode(true);
    c.querySelectorAll("li").forEach((li) => li.prepend("\n- "));
    c.querySelectorAll("br").forEach((br) => br.replaceWith("\n"));
    c.querySelectorAll("p, div, ul, ol, h1, h2, h3, h4, h5, h6").forEach((b) => b.prepend("\n"));
    return (c.textContent || "").split("\n").map((l) => l.replace(/\s+/g, " ").trim()).filter(Boolean).join("\n");
  };
  let anchor = sel.link ? el.querySelector(sel.link) : null;
  if (!anchor && sel.title) {
    const t = el.querySelector(sel.title);
    anchor = t ? t.closest("a") : null;
  }
  if (!anchor) anchor = el.querySelector("a[href]");
  return {
    title: text(sel.title),
    company: text(sel.company),
    location: text(sel.location),
    url: anchor ? anchor.href : "",
    description: lines(sel.description),
    salary_text: text(sel.salary),
    posted_date_text: text(sel.posted_date),
  };
})
"""


@dataclass
class BrowserConfig:
    """Browser pool configuration."""
    headless: bool = True
    pool_size: int = 3
    timeout_ms: int = 30000
    selector_timeout_ms: int = 5000
    post_load_delay_min_s: float = 0.5
    post_load_delay_max_s: float = 1.5
    blocked_resource_types: Tuple[str, ...] = ("image", "font", "media")
    user_agent: str = ""

    @classmethod
    def from_settings(cls, settings: Settings) -> "BrowserConfig":
        return cls(
            headless=settings.headless,
            pool_size=settings.browser_pool_size,
            timeout_ms=int(settings.timeout_s * 1000),
            post_load_delay_min_s=settings.post_load_delay_min_s,
            post_load_delay_max_s=settings.post_load_delay_max_s,
            user_agent=settings.user_agent,
        )


class BrowserPool:
    """
    Fixed-size pool of pre-warmed Playwright pages.

    ``acquire`` hands out an idle page, or a transient one when every pooled
    page is busy; it never waits. Transient pages are closed on release.
    """

    def __init__(self, config: Optional[BrowserConfig] = None, executor: Any = None):
        self.config = config or BrowserConfig.from_settings(get_settings())
        # RequestExecutor whose rate limits and counters navigations share
        self.executor = executor
        self._playwright = None
        self._browser = None
        self._context = None
        self._idle: List[Any] = []
        self._pooled: Set[Any] = set()
        self._in_use: Set[Any] = set()
        self._lock = asyncio.Lock()

    async def __aenter__(self) -> "BrowserPool":
        await self.start()
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    @property
    def started(self) -> bool:
        return self._context is not None

    @property
    def idle_count(self) -> int:
        return len(self._idle)

    @property
    def in_use_count(self) -> int:
        return len(self._in_use)

    async def start(self) -> None:
        """Launch the browser and pre-warm the pool. Failure is fatal."""
        if self.started:
            return
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(headless=self.config.headless)
            context_args: Dict[str, Any] = {"viewport": {"width": 1920, "height": 1080}}
            if self.config.user_agent:
                context_args["user_agent"] = self.config.user_agent
            self._context = await self._browser.new_context(**context_args)
            for _ in range(self.config.pool_size):
                page = await self._new_page()
                self._pooled.add(page)
                self._idle.append(page)
        except PlaywrightError as e:
            await self.close()
            raise BrowserPoolError(f"Failed to start browser: {e}") from e
        logger.info("Browser pool started with %d pages", len(self._idle))

    async def _block_resources(self, route) -> None:
        if route.request.resource_type in self.config.blocked_resource_types:
            await route.abort()
        else:
            await route.continue_()

    async def _new_page(self):
        page = await self._context.new_page()
        page.set_default_timeout(self.config.timeout_ms)
        await page.route("**/*", self._block_resources)
        return page

    async def acquire(self):
        """Return an idle pooled page, or a new transient page if none is idle."""
        if not self.started:
            await self.start()
        async with self._lock:
            while self._idle:
                page = self._idle.pop()
                if page.is_closed():
                    self._pooled.discard(page)
                    continue
                self._in_use.add(page)
                return page
        page = await self._new_page()
        self._in_use.add(page)
        logger.debug("Pool exhausted, using transient page")
        return page

    async def release(self, page) -> None:
        """Return a page to the pool; transient or crashed pages are closed."""
        self._in_use.discard(page)
        if page in self._pooled and not page.is_closed():
            self._idle.append(page)
            return
        self._pooled.discard(page)
        if not page.is_closed():
            try:
                await page.close()
            except PlaywrightError as e:
                logger.debug("Closing page failed: %s", e)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[Any]:
        """Scoped page acquisition; the page is released on every exit path."""
        page = await self.acquire()
        try:
            yield page
        finally:
            await self.release(page)

    async def close(self) -> None:
        """Close every page, the context, the browser and Playwright."""
        for page in list(self._pooled | self._in_use):
            try:
                await page.close()
            except PlaywrightError as e:
                logger.debug("Closing page failed: %s", e)
        self._idle.clear()
        self._pooled.clear()
        self._in_use.clear()
        if self._context is not None:
            await self._context.close()
            self._context = None
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    # ---- Rendering ----

    async def _extract_records(self, page, target: FetchTarget) -> Tuple[Optional[List[ExtractedFields]], int]:
        selectors = getattr(target.site, "selectors", None)
        if selectors is None or not selectors.result_block:
            return None, 0
        raw = await page.evaluate(
            EXTRACT_RECORDS_JS,
            {
                "block": selectors.result_block,
                "title": selectors.title,
                "link": selectors.link,
                "company": selectors.company,
                "location": selectors.location,
                "description": selectors.description,
                "salary": selectors.salary,
                "posted_date": selectors.posted_date,
            },
        )
        records: List[ExtractedFields] = []
        invalid = 0
        for item in raw or []:
            try:
                records.append(ExtractedFields.model_validate(item))
            except ValidationError as e:
                invalid += 1
                logger.debug("Dropping malformed record from %s: %s", target.url, e)
        return records, invalid

    async def render(self, target: FetchTarget) -> RawPageContent:
        """
        Navigate to ``target`` in a pooled page and return the rendered DOM
        plus typed records extracted in-page.

        Raises ScrapingError (network for navigation failures, blocked or
        rate-limit for refusals).
        """
        url = target.url
        slot = self.executor.request_slot(url) if self.executor is not None else nullcontext()

        async with self.session() as page:
            async with slot:
                if self.executor is not None:
                    self.executor.record_attempt(url)
                start_time = time.monotonic()
                try:
                    response = await page.goto(
                        url,
                        timeout=self.config.timeout_ms,
                        wait_until="domcontentloaded",
                    )
                    status = response.status if response else 0
                    error = error_for_status(status, url)
                    if error is None:
                        selectors = getattr(target.site, "selectors", None)
                        if selectors is not None and selectors.result_block:
                            try:
                                await page.wait_for_selector(
                                    selectors.result_block,
                                    timeout=self.config.selector_timeout_ms,
                                )
                            except PlaywrightTimeoutError:
                                logger.debug("No result blocks rendered on %s", url)
                        await asyncio.sleep(random.uniform(
                            self.config.post_load_delay_min_s,
                            self.config.post_load_delay_max_s,
                        ))
                        html = await page.content()
                        marker = detect_block(html)
                        if marker:
                            error = ScrapingError(
                                ErrorKind.BLOCKED,
                                f"Blocked: '{marker}' detected in rendered page",
                                url=url,
                                status=status,
                            )
                except PlaywrightError as e:
                    error = ScrapingError(ErrorKind.NETWORK, f"Navigation failed: {e}", url=url)
                    if self.executor is not None:
                        self.executor.record_failure(url, error)
                    raise error from e

                if error is not None:
                    if self.executor is not None:
                        self.executor.record_failure(url, error)
                    raise error

                try:
                    records, invalid = await self._extract_records(page, target)
                except PlaywrightError as e:
                    logger.warning("In-page extraction failed on %s: %s", url, e)
                    records, invalid = None, 0

                elapsed_ms = (time.monotonic() - start_time) * 1000
                if self.executor is not None:
                    self.executor.record_success(url, status, elapsed_ms)

        return RawPageContent(
            url=url,
            text=html,
            status=status,
            elapsed_ms=elapsed_ms,
            strategy=FetchStrategy.DYNAMIC,
            records=records,
            invalid_records=invalid,
        )
