"""Tests for the static-first / dynamic-fallback strategy selector."""

from typing import List, Optional

import aiohttp

from jobdorker.errors import ErrorKind, ScrapingError
from jobdorker.extract.extractor import ResultExtractor
from jobdorker.fetchers.hybrid import HybridFetcher
from jobdorker.models import (
    ExtractedFields,
    FetchStrategy,
    FetchTarget,
    RawPageContent,
    SearchCriteria,
    StrategyPreference,
)
from jobdorker.sites import DUCKDUCKGO, GOOGLE, LINKEDIN

CRITERIA = SearchCriteria(keywords=("python",))

SPA_SHELL = (
    "<html><head><script src=\"/static/app.js\"></script></head><body>"
    "<noscript>You need to enable JavaScript to run this app.</noscript>"
    "<div id=\"root\"></div></body></html>"
)


class FakeRenderer:
    """Stands in for BrowserPool.render."""

    def __init__(self, records: Optional[List[ExtractedFields]] = None, error: Optional[ScrapingError] = None) -> None:
        self.records = records if records is not None else [
            ExtractedFields(
                title="Python Developer",
                company="Initech",
                url="https://www.linkedin.com/jobs/view/77",
            )
        ]
        self.error = error
        self.rendered: List[str] = []

    async def render(self, target: FetchTarget) -> RawPageContent:
        self.rendered.append(target.url)
        if self.error is not None:
            raise self.error
        return RawPageContent(
            url=target.url,
            text="<html></html>",
            status=200,
            strategy=FetchStrategy.DYNAMIC,
            records=list(self.records),
        )


def _google_target() -> FetchTarget:
    return FetchTarget(url=GOOGLE.build_url("python jobs"), site=GOOGLE, query="python jobs")


# ---------------------------------------------------------------------------
# TestStaticFirst
# ---------------------------------------------------------------------------


class TestStaticFirst:
    async def test_sufficient_static_result_skips_render(self, executor_factory, google_html) -> None:
        renderer = FakeRenderer()
        fetcher = HybridFetcher(executor_factory(replies=[(200, google_html)]), ResultExtractor(), renderer)
        outcome = await fetcher.fetch(_google_target(), CRITERIA)
        assert outcome.strategy is FetchStrategy.STATIC
        assert len(outcome.candidates) == 2
        assert not outcome.fallback_used
        assert renderer.rendered == []
        assert outcome.candidates[0].raw["query"] == "python jobs"

    async def test_empty_static_result_falls_back_to_render(self, executor_factory, empty_html) -> None:
        renderer = FakeRenderer()
        fetcher = HybridFetcher(executor_factory(replies=[(200, empty_html)]), ResultExtractor(), renderer)
        outcome = await fetcher.fetch(_google_target(), CRITERIA)
        assert outcome.fallback_used
        assert outcome.strategy is FetchStrategy.DYNAMIC
        assert len(renderer.rendered) == 1
        # Search-engine results take the company from the domain table
        assert outcome.candidates[0].company == "LinkedIn"
        assert not outcome.failed

    async def test_static_network_error_recovered_by_render(self, executor_factory, settings_factory) -> None:
        executor = executor_factory(
            settings_factory(retries=0),
            responder=lambda url: aiohttp.ClientConnectionError("connection reset"),
        )
        fetcher = HybridFetcher(executor, ResultExtractor(), FakeRenderer())
        outcome = await fetcher.fetch(_google_target(), CRITERIA)
        assert not outcome.failed
        assert outcome.strategy is FetchStrategy.DYNAMIC
        assert [w.kind for w in outcome.warnings] == [ErrorKind.NETWORK]

    async def test_blocking_static_error_skips_render(self, executor_factory, settings_factory) -> None:
        renderer = FakeRenderer()
        executor = executor_factory(settings_factory(retries=0), replies=[(429, "slow down")])
        fetcher = HybridFetcher(executor, ResultExtractor(), renderer)
        outcome = await fetcher.fetch(_google_target(), CRITERIA)
        assert outcome.failed
        assert outcome.error.kind is ErrorKind.RATE_LIMIT
        assert renderer.rendered == []

    async def test_render_failure_is_final(self, executor_factory, empty_html) -> None:
        renderer = FakeRenderer(error=ScrapingError(ErrorKind.NETWORK, "Navigation failed"))
        fetcher = HybridFetcher(executor_factory(replies=[(200, empty_html)]), ResultExtractor(), renderer)
        outcome = await fetcher.fetch(_google_target(), CRITERIA)
        assert outcome.failed
        assert outcome.error.message == "Navigation failed"
        assert len(renderer.rendered) == 1

    async def test_without_pool_static_result_is_final(self, executor_factory, empty_html) -> None:
        fetcher = HybridFetcher(executor_factory(replies=[(200, empty_html)]), ResultExtractor())
        outcome = await fetcher.fetch(_google_target(), CRITERIA)
        assert not outcome.failed
        assert outcome.candidates == []
        assert not outcome.fallback_used

    async def test_javascript_shell_falls_back_to_render(self, executor_factory) -> None:
        renderer = FakeRenderer()
        fetcher = HybridFetcher(executor_factory(replies=[(200, SPA_SHELL)]), ResultExtractor(), renderer)
        outcome = await fetcher.fetch(_google_target(), CRITERIA)
        assert outcome.javascript_required
        assert outcome.fallback_used
        assert outcome.strategy is FetchStrategy.DYNAMIC
        assert len(renderer.rendered) == 1

    async def test_javascript_shell_without_pool_keeps_static_page(self, executor_factory) -> None:
        fetcher = HybridFetcher(executor_factory(replies=[(200, SPA_SHELL)]), ResultExtractor())
        outcome = await fetcher.fetch(_google_target(), CRITERIA)
        assert outcome.javascript_required
        assert not outcome.fallback_used
        assert outcome.strategy is FetchStrategy.STATIC
        assert not outcome.failed

    async def test_threshold_is_configurable(self, executor_factory, google_html) -> None:
        renderer = FakeRenderer()
        fetcher = HybridFetcher(
            executor_factory(replies=[(200, google_html)]),
            ResultExtractor(),
            renderer,
            min_static_candidates=5,
        )
        outcome = await fetcher.fetch(_google_target(), CRITERIA)
        assert outcome.fallback_used
        assert len(renderer.rendered) == 1


# ---------------------------------------------------------------------------
# TestPreferences
# ---------------------------------------------------------------------------


class TestPreferences:
    async def test_static_site_never_renders(self, executor_factory, empty_html) -> None:
        renderer = FakeRenderer()
        fetcher = HybridFetcher(executor_factory(replies=[(200, empty_html)]), ResultExtractor(), renderer)
        target = FetchTarget(url=DUCKDUCKGO.build_url("python"), site=DUCKDUCKGO)
        outcome = await fetcher.fetch(target, CRITERIA)
        assert renderer.rendered == []
        assert outcome.strategy is FetchStrategy.STATIC

    async def test_dynamic_site_renders_directly(self, executor_factory) -> None:
        executor = executor_factory()
        renderer = FakeRenderer()
        fetcher = HybridFetcher(executor, ResultExtractor(), renderer)
        target = FetchTarget(url=LINKEDIN.build_url("python"), site=LINKEDIN)
        outcome = await fetcher.fetch(target, CRITERIA)
        assert executor.calls == []
        assert outcome.strategy is FetchStrategy.DYNAMIC
        assert outcome.candidates[0].source_site == "linkedin"

    async def test_target_preference_overrides_site(self, executor_factory, google_html) -> None:
        renderer = FakeRenderer()
        fetcher = HybridFetcher(executor_factory(replies=[(200, google_html)]), ResultExtractor(), renderer)
        target = FetchTarget(url=GOOGLE.build_url("python"), site=GOOGLE, strategy=StrategyPreference.DYNAMIC)
        outcome = await fetcher.fetch(target, CRITERIA)
        assert outcome.strategy is FetchStrategy.DYNAMIC
        assert len(renderer.rendered) == 1
