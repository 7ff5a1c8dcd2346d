"""Shared fixtures: fast settings, a scripted HTTP transport and a fake Playwright."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import pytest

from jobdorker.config import Settings
from jobdorker.fetchers.http import RequestExecutor
from jobdorker.models import get_host

EMPTY_HTML = "<html><body><div id='search'></div></body></html>"

GOOGLE_RESULTS_HTML = """
<html><body><div id="search">
  <div class="g">
    <a href="/url?q=https://boards.greenhouse.io/acme/jobs/123&amp;sa=U&amp;ved=abc">
      <h3>Senior Python Engineer at Acme Corp - Remote</h3>
    </a>
    <div class="VwiC3b">Acme Corp is hiring a Senior Python Engineer to build data
      pipelines. Apply now and join our team of engineers working across time zones.</div>
  </div>
  <div class="g">
    <a href="https://www.linkedin.com/jobs/view/456?trk=public_jobs"><h3>Backend Developer | Austin, TX</h3></a>
    <div class="VwiC3b">Join Globex Industries as a backend developer working on APIs.</div>
  </div>
  <div class="g">
    <h3>Orphan result without a link</h3>
  </div>
</div></body></html>
"""

Reply = Union[Tuple[int, str], Tuple[int, str, Dict[str, str]], BaseException]


def make_settings(**overrides: Any) -> Settings:
    """Settings with politeness delays removed so tests run instantly."""
    values: Dict[str, Any] = dict(
        request_delay_s=0,
        requests_per_second=1000,
        burst=100,
        rate_limit_max_wait_s=1,
        retries=2,
        backoff_base_s=0.01,
        backoff_cap_s=0.05,
        timeout_s=5,
        use_browser=False,
        post_load_delay_min_s=0,
        post_load_delay_max_s=0,
        direct_sites=[],
    )
    values.update(overrides)
    return Settings(**values)


def google_results_html(count: int, start: int = 0, remote: bool = True) -> str:
    """Google-style results page with ``count`` distinct job results."""
    where = "a remote" if remote else "an onsite"
    blocks = []
    for i in range(start, start + count):
        blocks.append(
            f'<div class="g"><a href="https://jobs.example{i}.com/careers/{i}">'
            f"<h3>Platform Engineer {i}</h3></a>"
            f'<div class="VwiC3b">Example{i} is hiring {where} platform engineer. Apply today.</div></div>'
        )
    return f"<html><body><div id='search'>{''.join(blocks)}</div></body></html>"


# ---------------------------------------------------------------------------
# Scripted HTTP transport
# ---------------------------------------------------------------------------


class ScriptedExecutor(RequestExecutor):
    """RequestExecutor whose network is replaced by scripted replies.

    Replies are consumed in order; once exhausted every request gets an
    empty 200 page. A ``responder`` callable takes precedence when given.
    """

    def __init__(
        self,
        settings: Settings,
        replies: Optional[List[Reply]] = None,
        responder: Optional[Callable[[str], Reply]] = None,
        delay: float = 0.0,
        **kwargs: Any,
    ) -> None:
        super().__init__(settings, **kwargs)
        self.replies: List[Reply] = list(replies or [])
        self.responder = responder
        self.delay = delay
        self.calls: List[str] = []
        self.sleeps: List[float] = []
        self.active: Dict[str, int] = {}
        self.peak_per_host: Dict[str, int] = {}
        self.peak = 0

    async def start(self) -> None:
        return None

    async def close(self) -> None:
        return None

    def next_reply(self, url: str) -> Reply:
        if self.responder is not None:
            return self.responder(url)
        if self.replies:
            return self.replies.pop(0)
        return (200, EMPTY_HTML)

    async def _send(self, url: str, headers: Optional[Dict[str, str]]) -> Tuple[int, str, Dict[str, str]]:
        self.calls.append(url)
        host = get_host(url)
        self.active[host] = self.active.get(host, 0) + 1
        self.peak_per_host[host] = max(self.peak_per_host.get(host, 0), self.active[host])
        self.peak = max(self.peak, sum(self.active.values()))
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            reply = self.next_reply(url)
            if isinstance(reply, BaseException):
                raise reply
            if len(reply) == 3:
                return reply  # type: ignore[return-value]
            status, text = reply  # type: ignore[misc]
            return status, text, {"Content-Type": "text/html; charset=utf-8"}
        finally:
            self.active[host] -= 1

    async def _sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)


# ---------------------------------------------------------------------------
# Fake Playwright
# ---------------------------------------------------------------------------


@dataclass
class PageScript:
    """What every fake page returns."""
    html: str = EMPTY_HTML
    status: int = 200
    records: List[Dict[str, Any]] = field(default_factory=list)
    goto_error: Optional[BaseException] = None
    goto_delay: float = 0.0
    evaluate_error: Optional[BaseException] = None


class FakeResponse:
    def __init__(self, status: int) -> None:
        self.status = status


class FakePage:
    def __init__(self, script: PageScript) -> None:
        self.script = script
        self.closed = False
        self.visited: List[str] = []
        self.routes: List[Tuple[str, Any]] = []
        self.default_timeout: Optional[int] = None

    def set_default_timeout(self, timeout: int) -> None:
        self.default_timeout = timeout

    async def route(self, pattern: str, handler: Any) -> None:
        self.routes.append((pattern, handler))

    async def goto(self, url: str, timeout: Optional[int] = None, wait_until: Optional[str] = None) -> FakeResponse:
        self.visited.append(url)
        if self.script.goto_delay:
            await asyncio.sleep(self.script.goto_delay)
        if self.script.goto_error is not None:
            raise self.script.goto_error
        return FakeResponse(self.script.status)

    async def wait_for_selector(self, selector: str, timeout: Optional[int] = None) -> None:
        return None

    async def content(self) -> str:
        return self.script.html

    async def evaluate(self, expression: str, arg: Any = None) -> List[Dict[str, Any]]:
        if self.script.evaluate_error is not None:
            raise self.script.evaluate_error
        return [dict(r) for r in self.script.records]

    def is_closed(self) -> bool:
        return self.closed

    async def close(self) -> None:
        self.closed = True


class FakeContext:
    def __init__(self, script: PageScript) -> None:
        self.script = script
        self.pages: List[FakePage] = []
        self.closed = False

    async def new_page(self) -> FakePage:
        page = FakePage(self.script)
        self.pages.append(page)
        return page

    async def close(self) -> None:
        self.closed = True


class FakeBrowser:
    def __init__(self, script: PageScript) -> None:
        self.script = script
        self.context: Optional[FakeContext] = None
        self.context_args: Dict[str, Any] = {}
        self.closed = False

    async def new_context(self, **kwargs: Any) -> FakeContext:
        self.context_args = kwargs
        self.context = FakeContext(self.script)
        return self.context

    async def close(self) -> None:
        self.closed = True


class FakeChromium:
    def __init__(self, playwright: "FakePlaywright") -> None:
        self.playwright = playwright

    async def launch(self, headless: bool = True) -> FakeBrowser:
        if self.playwright.launch_error is not None:
            raise self.playwright.launch_error
        self.playwright.browser = FakeBrowser(self.playwright.script)
        return self.playwright.browser


class FakePlaywright:
    def __init__(self) -> None:
        self.script = PageScript()
        self.launch_error: Optional[BaseException] = None
        self.browser: Optional[FakeBrowser] = None
        self.chromium = FakeChromium(self)
        self.stopped = False

    @property
    def pages(self) -> List[FakePage]:
        if self.browser is None or self.browser.context is None:
            return []
        return self.browser.context.pages

    async def stop(self) -> None:
        self.stopped = True


class _PlaywrightStarter:
    def __init__(self, playwright: FakePlaywright) -> None:
        self.playwright = playwright

    async def start(self) -> FakePlaywright:
        return self.playwright


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def settings_factory() -> Callable[..., Settings]:
    return make_settings


@pytest.fixture
def executor_factory() -> Callable[..., ScriptedExecutor]:
    def factory(settings: Optional[Settings] = None, **kwargs: Any) -> ScriptedExecutor:
        return ScriptedExecutor(settings or make_settings(), **kwargs)
    return factory


@pytest.fixture
def results_html() -> Callable[..., str]:
    return google_results_html


@pytest.fixture
def google_html() -> str:
    return GOOGLE_RESULTS_HTML


@pytest.fixture
def empty_html() -> str:
    return EMPTY_HTML


@pytest.fixture
def fake_playwright(monkeypatch: pytest.MonkeyPatch) -> FakePlaywright:
    playwright = FakePlaywright()
    monkeypatch.setattr(
        "jobdorker.fetchers.browser.async_playwright",
        lambda: _PlaywrightStarter(playwright),
    )
    return playwright
