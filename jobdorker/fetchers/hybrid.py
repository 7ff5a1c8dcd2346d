"""
Hybrid static/dynamic fetch.

Per target: try a plain HTTP fetch and parse; if that errors, yields
fewer candidates than the threshold or returns a JavaScript shell, render
the page in the browser pool once. There is never a third attempt;
retries already happened inside the request executor.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from jobdorker.errors import ScrapingError
from jobdorker.extract.extractor import ResultExtractor
from jobdorker.extract.html import requires_javascript
from jobdorker.fetchers.browser import BrowserPool
from jobdorker.fetchers.http import RequestExecutor
from jobdorker.models import (
    CandidateJob,
    FetchStrategy,
    FetchTarget,
    RawPageContent,
    SearchCriteria,
    StrategyPreference,
)

logger = logging.getLogger(__name__)


@dataclass
class StrategyOutcome:
    """What happened to one FetchTarget."""
    target: FetchTarget
    candidates: List[CandidateJob] = field(default_factory=list)
    page: Optional[RawPageContent] = None
    strategy: Optional[FetchStrategy] = None
    error: Optional[ScrapingError] = None
    # Extraction problems and a recovered static failure; never fatal
    warnings: List[ScrapingError] = field(default_factory=list)
    fallback_used: bool = False
    javascript_required: bool = False

    @property
    def failed(self) -> bool:
        return self.error is not None


class HybridFetcher:
    """
    Chooses between the request executor and the browser pool for each target.
    """

    def __init__(
        self,
        executor: RequestExecutor,
        extractor: ResultExtractor,
        browser_pool: Optional[BrowserPool] = None,
        min_static_candidates: int = 1,
    ):
        self.executor = executor
        self.extractor = extractor
        self.browser_pool = browser_pool
        self.min_static_candidates = min_static_candidates

    def _preference(self, target: FetchTarget) -> StrategyPreference:
        if target.strategy != StrategyPreference.AUTO:
            return target.strategy
        return getattr(target.site, "strategy", StrategyPreference.AUTO)

    def _extract(self, page: RawPageContent, target: FetchTarget, criteria: SearchCriteria, outcome: StrategyOutcome) -> List[CandidateJob]:
        extraction = self.extractor.extract(page, criteria, target.site, query=target.query)
        outcome.warnings.extend(extraction.errors)
        return extraction.jobs

    async def _static(self, target: FetchTarget, criteria: SearchCriteria, outcome: StrategyOutcome) -> bool:
        """Static attempt. Returns True when the result is sufficient."""
        result = await self.executor.fetch(target.url)
        if result.error is not None:
            outcome.error = result.error
            return False

        page = RawPageContent(
            url=result.url,
            text=result.text,
            status=result.status,
            elapsed_ms=result.elapsed_ms,
            strategy=FetchStrategy.STATIC,
        )
        outcome.page = page
        outcome.strategy = FetchStrategy.STATIC
        outcome.candidates = self._extract(page, target, criteria, outcome)
        if requires_javascript(result.text):
            outcome.javascript_required = True
            return False
        return len(outcome.candidates) >= max(self.min_static_candidates, 0)

    async def _dynamic(self, target: FetchTarget, criteria: SearchCriteria, outcome: StrategyOutcome) -> None:
        try:
            page = await self.browser_pool.render(target)
        except ScrapingError as e:
            outcome.error = e
            return
        outcome.page = page
        outcome.strategy = FetchStrategy.DYNAMIC
        outcome.candidates = self._extract(page, target, criteria, outcome)
        outcome.error = None

    async def fetch(self, target: FetchTarget, criteria: SearchCriteria) -> StrategyOutcome:
        """
        StaticAttempt -> (sufficient -> Done | otherwise -> DynamicAttempt)
        DynamicAttempt -> (success -> Done | error -> Failed)
        """
        outcome = StrategyOutcome(target=target)
        preference = self._preference(target)
        can_render = self.browser_pool is not None

        if preference == StrategyPreference.DYNAMIC and can_render:
            await self._dynamic(target, criteria, outcome)
            return outcome

        if await self._static(target, criteria, outcome):
            return outcome

        if preference == StrategyPreference.STATIC or not can_render:
            return outcome

        static_error = outcome.error
        if static_error is not None and static_error.is_blocking:
            # Blocked hosts are never rendered
            logger.info("Static fetch of %s blocked (%s); skipping render", target.url, static_error.kind.value)
            return outcome

        logger.debug(
            "Static fetch of %s insufficient (%d candidates, js=%s, error=%s); rendering",
            target.url, len(outcome.candidates), outcome.javascript_required, static_error,
        )
        outcome.fallback_used = True
        await self._dynamic(target, criteria, outcome)
        if outcome.error is None and static_error is not None:
            outcome.warnings.append(static_error)
        return outcome
