"""
JobDorker: search-engine dork scraping for job postings.

Synthesizes site-scoped search queries, fetches result pages over HTTP or a
pooled headless browser, extracts candidate jobs with confidence scores and
deduplicates them across sources.
"""

__version__ = "1.0.0"

from jobdorker.errors import BrowserPoolError, ErrorKind, ScrapingError
from jobdorker.models import CandidateJob, EmploymentType, ExperienceLevel, ScrapeResult, SearchCriteria
from jobdorker.orchestrator import ScrapeOrchestrator, run_scrape

__all__ = [
    "SearchCriteria",
    "CandidateJob",
    "ScrapeResult",
    "EmploymentType",
    "ExperienceLevel",
    "ErrorKind",
    "ScrapingError",
    "BrowserPoolError",
    "ScrapeOrchestrator",
    "run_scrape",
]
