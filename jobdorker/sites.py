"""
Per-site scraping configuration.

Site-specific behavior is data: CSS selectors for result blocks and fields,
how to build a search URL for a query and page, the preferred fetch strategy,
and whether the site is a search engine (unstructured results) or a job
board (structured cards).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple
from urllib.parse import urlencode

from jobdorker.models import StrategyPreference


@dataclass(frozen=True)
class SiteSelectors:
    result_block: str
    title: str
    link: str = ""
    company: str = ""
    location: str = ""
    description: str = ""
    salary: str = ""
    posted_date: str = ""


@dataclass(frozen=True)
class SiteConfig:
    """Scraping rules for one search engine or job board."""

    id: str
    name: str
    base_url: str
    search_url: str
    selectors: SiteSelectors
    query_param: str
    page_param: str = ""
    # Page cursor is "results offset" (start=10, 20, ...) instead of a page number
    page_is_offset: bool = True
    page_start: int = 0
    results_per_page: int = 10
    location_param: str = ""
    remote_params: Tuple[Tuple[str, str], ...] = ()
    extra_params: Tuple[Tuple[str, str], ...] = ()
    strategy: StrategyPreference = StrategyPreference.AUTO
    is_search_engine: bool = False
    enabled: bool = True

    def build_url(
        self,
        query: str,
        page: int = 0,
        location: str = "",
        remote: bool = False,
    ) -> str:
        """Search URL for ``query`` at 0-based ``page``."""
        params: Dict[str, str] = {self.query_param: query}
        params.update(self.extra_params)
        if location and self.location_param:
            params[self.location_param] = location
        if remote:
            params.update(self.remote_params)
        if self.page_param and page > 0:
            cursor = page * self.results_per_page if self.page_is_offset else page + self.page_start
            params[self.page_param] = str(cursor)
        return f"{self.search_url}?{urlencode(params)}"


# ---- Search engines ----

GOOGLE = SiteConfig(
    id="google",
    name="Google Search",
    base_url="https://www.google.com",
    search_url="https://www.google.com/search",
    selectors=SiteSelectors(
        result_block=".g",
        title="h3",
        link="a[href]",
        description=".VwiC3b, .s",
    ),
    query_param="q",
    page_param="start",
    results_per_page=10,
    extra_params=(("hl", "en"), ("gl", "us"), ("num", "10")),
    strategy=StrategyPreference.AUTO,
    is_search_engine=True,
)

DUCKDUCKGO = SiteConfig(
    id="duckduckgo",
    name="DuckDuckGo",
    base_url="https://html.duckduckgo.com",
    search_url="https://html.duckduckgo.com/html/",
    selectors=SiteSelectors(
        result_block=".result",
        title=".result__title",
        link="a.result__a",
        description=".result__snippet",
    ),
    query_param="q",
    page_param="s",
    results_per_page=30,
    strategy=StrategyPreference.STATIC,
    is_search_engine=True,
)

SEARCH_ENGINES: Dict[str, SiteConfig] = {
    GOOGLE.id: GOOGLE,
    DUCKDUCKGO.id: DUCKDUCKGO,
}


# ---- Job boards ----

LINKEDIN = SiteConfig(
    id="linkedin",
    name="LinkedIn Jobs",
    base_url="https://www.linkedin.com",
    search_url="https://www.linkedin.com/jobs/search/",
    selectors=SiteSelectors(
        result_block=".job-search-card",
        title=".job-search-card__title",
        link="a.job-search-card__link-wrapper, a[href]",
        company=".job-search-card__subtitle-primary-grouping",
        location=".job-search-card__subtitle-secondary-grouping",
        salary=".job-search-card__salary-info",
        posted_date=".job-search-card__listdate",
    ),
    query_param="keywords",
    page_param="start",
    results_per_page=25,
    location_param="location",
    remote_params=(("f_WT", "2"),),
    strategy=StrategyPreference.DYNAMIC,
)

INDEED = SiteConfig(
    id="indeed",
    name="Indeed",
    base_url="https://www.indeed.com",
    search_url="https://www.indeed.com/jobs",
    selectors=SiteSelectors(
        result_block="[data-jk]",
        title='[data-testid="job-title"], h2',
        link="h2 a, a[href]",
        company='[data-testid="company-name"]',
        location='[data-testid="job-location"]',
        description='[data-testid="job-snippet"]',
        salary='[data-testid="job-salary"]',
        posted_date='[data-testid="myJobsStateDate"]',
    ),
    query_param="q",
    page_param="start",
    results_per_page=10,
    location_param="l",
    remote_params=(("remotejob", "1"),),
    strategy=StrategyPreference.STATIC,
)

GLASSDOOR = SiteConfig(
    id="glassdoor",
    name="Glassdoor",
    base_url="https://www.glassdoor.com",
    search_url="https://www.glassdoor.com/Job/jobs.htm",
    selectors=SiteSelectors(
        result_block='[data-test="job-listing"]',
        title='[data-test="job-title"]',
        link='[data-test="job-title-link"], a[href]',
        company='[data-test="employer-name"]',
        location='[data-test="job-location"]',
        description='[data-test="job-description"]',
        salary='[data-test="detailSalary"]',
    ),
    query_param="sc.keyword",
    page_param="p",
    page_is_offset=False,
    page_start=1,
    results_per_page=30,
    location_param="locT",
    strategy=StrategyPreference.DYNAMIC,
)

REMOTEOK = SiteConfig(
    id="remoteok",
    name="Remote OK",
    base_url="https://remoteok.com",
    search_url="https://remoteok.com/remote-jobs",
    selectors=SiteSelectors(
        result_block=".job",
        title=".company_and_position h2",
        link="h2 a, a[href]",
        company=".company_and_position h3",
        location=".location",
        description=".description",
        salary=".salary",
        posted_date=".time",
    ),
    query_param="search",
    results_per_page=100,
    strategy=StrategyPreference.STATIC,
)

WEWORKREMOTELY = SiteConfig(
    id="weworkremotely",
    name="We Work Remotely",
    base_url="https://weworkremotely.com",
    search_url="https://weworkremotely.com/remote-jobs/search",
    selectors=SiteSelectors(
        result_block=".jobs li",
        title=".title",
        link="a[href]",
        company=".company",
        location=".region",
        description=".listing-job-post",
        posted_date=".listing-date",
    ),
    query_param="term",
    results_per_page=100,
    strategy=StrategyPreference.STATIC,
)

JOB_BOARDS: Dict[str, SiteConfig] = {
    site.id: site
    for site in (LINKEDIN, INDEED, GLASSDOOR, REMOTEOK, WEWORKREMOTELY)
}

ALL_SITES: Dict[str, SiteConfig] = {**SEARCH_ENGINES, **JOB_BOARDS}


def get_site(site_id: str) -> Optional[SiteConfig]:
    return ALL_SITES.get((site_id or "").lower())


def get_search_engine(engine_id: str) -> SiteConfig:
    """Search engine config by id; unknown ids raise ValueError."""
    engine = SEARCH_ENGINES.get((engine_id or "").lower())
    if engine is None:
        raise ValueError(
            f"Unknown search engine {engine_id!r}; choose from {', '.join(sorted(SEARCH_ENGINES))}"
        )
    return engine
