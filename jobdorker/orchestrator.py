"""
Scrape orchestration.

Ties together query synthesis, hybrid fetching, extraction and
deduplication into one scrape() session:

1. Synthesize dork queries for the criteria
2. For each query plan, paginate through the search engine (or job board)
3. Stop a plan on an empty page, a failed page or a blocking signal
4. Stop the session once enough unique candidates are collected
5. Deduplicate once, trim to max_results, and hand the result to storage
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

from jobdorker.config import Settings, get_settings
from jobdorker.dedupe import Deduplicator
from jobdorker.dorks import QuerySynthesizer
from jobdorker.errors import ErrorKind, ScrapingError
from jobdorker.extract.extractor import ResultExtractor
from jobdorker.fetchers.browser import BrowserConfig, BrowserPool
from jobdorker.fetchers.http import Listener, RequestExecutor
from jobdorker.fetchers.hybrid import HybridFetcher
from jobdorker.interfaces import JobStore, ProxyProvider
from jobdorker.models import (
    CandidateJob,
    DorkQuery,
    FetchTarget,
    ScrapeMetadata,
    ScrapeResult,
    SearchCriteria,
    SessionStats,
)
from jobdorker.sites import SiteConfig, get_search_engine, get_site

logger = logging.getLogger(__name__)

RECENT_ERRORS = 5


@dataclass(frozen=True)
class QueryPlan:
    """One query against one site, paginated by the orchestrator."""
    label: str
    site: SiteConfig
    query: str
    location: str = ""
    remote: bool = False

    def target(self, page: int) -> FetchTarget:
        return FetchTarget(
            url=self.site.build_url(self.query, page=page, location=self.location, remote=self.remote),
            site=self.site,
            page=page,
            query=self.label,
        )


class ScrapeOrchestrator:
    """
    Drives scrape sessions. One session runs at a time per orchestrator.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        executor: Optional[RequestExecutor] = None,
        browser_pool: Optional[BrowserPool] = None,
        extractor: Optional[ResultExtractor] = None,
        synthesizer: Optional[QuerySynthesizer] = None,
        store: Optional[JobStore] = None,
        proxy: Optional[ProxyProvider] = None,
        listener: Optional[Listener] = None,
    ):
        self.settings = settings or get_settings()
        self.stats = SessionStats(error_history_limit=self.settings.error_history_limit)

        if executor is None:
            executor = RequestExecutor(self.settings, stats=self.stats, proxy=proxy, listener=listener)
        else:
            executor.stats = self.stats
        self.executor = executor

        self._owns_pool = browser_pool is None and self.settings.use_browser
        if self._owns_pool:
            browser_pool = BrowserPool(BrowserConfig.from_settings(self.settings), executor=self.executor)
        self.browser_pool = browser_pool

        self.extractor = extractor or ResultExtractor()
        self.synthesizer = synthesizer or QuerySynthesizer(max_queries=self.settings.max_queries)
        self.hybrid = HybridFetcher(
            self.executor,
            self.extractor,
            browser_pool=self.browser_pool,
            min_static_candidates=self.settings.min_static_candidates,
        )
        self.deduplicator = Deduplicator()
        self.store = store
        self.proxy = proxy
        self._stop_requested = False

    async def __aenter__(self) -> "ScrapeOrchestrator":
        await self.start()
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    async def start(self) -> None:
        """Start the HTTP session and, if owned, the browser pool (fatal on failure)."""
        await self.executor.start()
        if self.browser_pool is not None and not self.browser_pool.started:
            await self.browser_pool.start()

    async def close(self) -> None:
        if self.browser_pool is not None and self._owns_pool:
            await self.browser_pool.close()
        await self.executor.close()

    # ---- Public API ----

    def stop(self) -> None:
        """Request cooperative cancellation of the running session."""
        if self.stats.is_running:
            logger.info("Stop requested")
        self._stop_requested = True

    def get_stats(self) -> Dict[str, Any]:
        errors = self.stats.errors
        return {
            "is_running": self.stats.is_running,
            "total_requests": self.stats.total_requests,
            "successful_requests": self.stats.successful_requests,
            "success_rate": self.stats.success_rate,
            "error_count": self.stats.error_count,
            "recent_errors": [e.to_dict() for e in errors[-RECENT_ERRORS:]],
        }

    def build_plans(self, criteria: SearchCriteria, queries: List[DorkQuery]) -> List[QueryPlan]:
        engine = get_search_engine(self.settings.search_engine)
        plans = [QueryPlan(label=q.render(), site=engine, query=q.render()) for q in queries]

        for site_id in self.settings.direct_sites:
            site = get_site(site_id)
            if site is None or site.is_search_engine or not site.enabled:
                logger.warning("Unknown job board %r in direct_sites; skipping", site_id)
                continue
            plans.append(QueryPlan(
                label=site.id,
                site=site,
                query=" ".join(criteria.keywords),
                location="" if criteria.remote else criteria.location,
                remote=criteria.remote,
            ))
        return plans

    async def scrape(self, criteria: SearchCriteria, deadline_s: Optional[float] = None) -> ScrapeResult:
        """
        Run one scrape session and return the deduplicated, bounded result.

        Fetch and extraction failures are collected into the result's error
        list; only an unknown search engine or a browser pool launch
        failure is raised.
        """
        if self.stats.is_running:
            raise RuntimeError("A scrape session is already running")

        queries = self.synthesizer.generate(criteria)
        plans = self.build_plans(criteria, queries)

        self.stats.reset()
        self.executor.reset()
        self._stop_requested = False
        self.stats.is_running = True
        start_time = time.monotonic()
        logger.info(
            "Starting scrape: %d plans for %s (max %d results)",
            len(plans), ", ".join(criteria.keywords), criteria.max_results,
        )

        collected: List[List[CandidateJob]] = [[] for _ in plans]
        seen: Set[str] = set()
        deadline = deadline_s if deadline_s is not None else self.settings.session_deadline_s

        try:
            await self.start()
            if deadline:
                await asyncio.wait_for(self._run_plans(plans, criteria, collected, seen), timeout=deadline)
            else:
                await self._run_plans(plans, criteria, collected, seen)
        except asyncio.TimeoutError:
            logger.warning("Session deadline of %.1fs exceeded; returning partial results", deadline)
            self.stats.record_error(ScrapingError(
                ErrorKind.NETWORK,
                f"Session deadline of {deadline}s exceeded",
                retryable=False,
            ))
        finally:
            self.stats.is_running = False

        all_jobs = [job for bucket in collected for job in bucket]
        deduped = self.deduplicator.dedupe(all_jobs)
        jobs = deduped.unique[: criteria.max_results]

        if self.store is not None and jobs:
            self._save(jobs)

        sources: Dict[str, int] = {}
        for job in jobs:
            sources[job.source_site] = sources.get(job.source_site, 0) + 1

        duration = time.monotonic() - start_time
        logger.info(
            "Scrape finished in %.1fs: %d jobs (%d candidates, %d duplicates), %d errors",
            duration, len(jobs), len(all_jobs), deduped.duplicates_removed, self.stats.error_count,
        )
        return ScrapeResult(
            jobs=jobs,
            metadata=ScrapeMetadata(
                total_found=len(all_jobs),
                total_scraped=len(jobs),
                success_rate=self.stats.success_rate,
                duration=duration,
                errors=list(self.stats.errors),
                sources=sources,
                queries=[p.label for p in plans],
            ),
        )

    # ---- Internals ----

    def _quota_reached(self, criteria: SearchCriteria, seen: Set[str]) -> bool:
        return len(seen) >= criteria.max_results

    def _save(self, jobs: List[CandidateJob]) -> None:
        try:
            saved = self.store.save_jobs(jobs)
        except Exception as e:
            logger.exception("Saving %d jobs failed", len(jobs))
            self.stats.record_error(ScrapingError(ErrorKind.UNKNOWN, f"Saving jobs failed: {e}", retryable=False))
            return
        logger.info("Saved %s jobs", saved)

    async def _rotate_proxy(self) -> None:
        if self.proxy is None:
            return
        try:
            await self.proxy.change_circuit()
            logger.info("Proxy circuit changed")
        except Exception as e:
            logger.warning("Proxy circuit change failed: %s", e)

    async def _run_plans(
        self,
        plans: List[QueryPlan],
        criteria: SearchCriteria,
        collected: List[List[CandidateJob]],
        seen: Set[str],
    ) -> None:
        semaphore = asyncio.Semaphore(self.settings.query_concurrency)

        async def run_bounded(index: int, plan: QueryPlan) -> None:
            async with semaphore:
                if self._stop_requested or self._quota_reached(criteria, seen):
                    return
                await self._run_plan(plan, criteria, collected[index], seen)

        await asyncio.gather(*(run_bounded(i, p) for i, p in enumerate(plans)))

    async def _run_plan(
        self,
        plan: QueryPlan,
        criteria: SearchCriteria,
        bucket: List[CandidateJob],
        seen: Set[str],
    ) -> None:
        max_pages = max(1, math.ceil(criteria.max_results / plan.site.results_per_page))

        for page in range(max_pages):
            if self._stop_requested or self._quota_reached(criteria, seen):
                break

            outcome = await self.hybrid.fetch(plan.target(page), criteria)
            for warning in outcome.warnings:
                self.stats.record_error(warning)

            new = [c for c in outcome.candidates if c.fingerprint not in seen]
            bucket.extend(outcome.candidates)
            seen.update(c.fingerprint for c in outcome.candidates)

            if outcome.error is not None:
                self.stats.record_error(outcome.error)
                if outcome.error.is_blocking:
                    logger.warning(
                        "Blocking detected (%s) on page %d of %r; moving to next query",
                        outcome.error.message, page + 1, plan.label,
                    )
                    await self._rotate_proxy()
                else:
                    logger.warning("Page %d of %r failed: %s", page + 1, plan.label, outcome.error.message)
                break

            if not new:
                logger.debug("No new candidates on page %d of %r; end of results", page + 1, plan.label)
                break

        self.executor.emit("query:complete", plan.label, {"jobs": len(bucket), "total_unique": len(seen)})


async def run_scrape(
    criteria: SearchCriteria,
    settings: Optional[Settings] = None,
    **kwargs: Any,
) -> ScrapeResult:
    """
    Convenience coroutine: run one session with a fresh orchestrator.
    """
    async with ScrapeOrchestrator(settings=settings, **kwargs) as orchestrator:
        return await orchestrator.scrape(criteria)
