"""
Result extraction and confidence scoring.

Converts a fetched page into CandidateJob records. Each result block is
handled independently: a malformed block is logged, recorded as a parsing
error and skipped without affecting the rest of the page.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, List, Optional, Tuple

from jobdorker.errors import ErrorKind, ScrapingError
from jobdorker.extract.html import (
    make_soup,
    resolve_href,
    select_blocks,
    select_href,
    select_lines,
    select_text,
    strip_html,
)
from jobdorker.extract.parsers import (
    extract_benefits,
    extract_requirements,
    extract_tags,
    is_remote,
    parse_posted_date,
    parse_salary,
)
from jobdorker.models import (
    CandidateJob,
    EmploymentType,
    ExtractedFields,
    RawPageContent,
    SearchCriteria,
    get_host,
    normalize_text,
)
from jobdorker.sites import SiteConfig

logger = logging.getLogger(__name__)


# ---- Lookup tables ----

# Result hosted on one of these yields the board as company when nothing better is found
KNOWN_DOMAINS = {
    "linkedin.com": "LinkedIn",
    "indeed.com": "Indeed",
    "glassdoor.com": "Glassdoor",
    "ziprecruiter.com": "ZipRecruiter",
    "monster.com": "Monster",
    "weworkremotely.com": "We Work Remotely",
    "remoteok.com": "Remote OK",
    "remote.co": "Remote.co",
    "flexjobs.com": "FlexJobs",
    "wellfound.com": "Wellfound",
    "angel.co": "AngelList",
}

REPUTABLE_BOARDS = ("linkedin.com", "indeed.com", "glassdoor.com")

CITY_GAZETTEER = (
    "Remote", "San Francisco", "New York", "Seattle", "Austin", "Boston",
    "Los Angeles", "Chicago", "Denver", "Portland", "Atlanta", "Washington",
    "Miami", "Dallas", "Phoenix", "Philadelphia", "San Diego", "Tampa",
    "Orlando", "Nashville", "Charlotte", "Pittsburgh", "Minneapolis",
    "Detroit", "St. Louis", "Baltimore", "Sacramento", "Cincinnati",
    "Cleveland", "Columbus", "Indianapolis", "Kansas City", "Louisville",
    "Memphis", "Milwaukee", "New Orleans", "Oklahoma City", "Richmond",
    "Salt Lake City", "Tulsa", "Virginia Beach",
)

_GAZETTEER_RE = re.compile(
    r"\b(" + "|".join(re.escape(c) for c in CITY_GAZETTEER) + r")\b(?:,\s*([A-Z]{2})\b)?",
    re.I,
)
_TITLE_LOCATION_RE = re.compile(r"\|\s*([^|]+)$")

# Company names must be capitalized words
_NAME = r"([A-Z][\w&.']*(?:\s+[A-Z][\w&.']*){0,3})"

_COMPANY_PATTERNS = (
    # "<Company> is hiring"
    ("description", re.compile(rf"\b{_NAME}\s+(?i:is\s+hiring)")),
    ("title", re.compile(rf"\b{_NAME}\s+(?i:is\s+hiring)")),
    # "Join <Company>"
    ("description", re.compile(rf"\b(?i:join)\s+{_NAME}")),
    # "... at <Company>"
    ("title", re.compile(r"\bat\s+([^-•|–]+)", re.I)),
)

JOB_TITLE_WORDS = ("job", "career", "position", "hiring", "opening", "vacancy")
JOB_URL_WORDS = ("job", "career")
HIRING_WORDS = ("apply", "hire", "hiring", "position", "join our team", "application")

_TWO_PART_TLDS = {"co", "com", "org", "net", "ac", "gov", "edu"}


def registrable_domain(host: str) -> str:
    """``jobs.acme.co.uk`` -> ``acme.co.uk``; ``www.linkedin.com`` -> ``linkedin.com``."""
    parts = [p for p in (host or "").lower().split(".") if p]
    if len(parts) >= 3 and len(parts[-1]) == 2 and parts[-2] in _TWO_PART_TLDS:
        return ".".join(parts[-3:])
    return ".".join(parts[-2:])


def company_from_domain(url: str) -> str:
    domain = registrable_domain(get_host(url))
    if not domain:
        return ""
    for known, name in KNOWN_DOMAINS.items():
        if domain == known:
            return name
    label = domain.split(".")[0]
    return label[:1].upper() + label[1:]


def infer_company(title: str, description: str, url: str) -> str:
    """Regex heuristics on title/description, then the domain tables."""
    texts = {"title": title or "", "description": description or ""}
    for source, pattern in _COMPANY_PATTERNS:
        m = pattern.search(texts[source])
        if m:
            candidate = normalize_text(m.group(1)).strip(" .,:;")
            if 2 < len(candidate) < 50:
                return candidate
    return company_from_domain(url)


def infer_location(title: str, description: str) -> str:
    m = _GAZETTEER_RE.search(description or "")
    if m:
        city = m.group(1)
        # Normalize case from the gazetteer entry
        for entry in CITY_GAZETTEER:
            if entry.lower() == city.lower():
                city = entry
                break
        return f"{city}, {m.group(2).upper()}" if m.group(2) else city
    m = _TITLE_LOCATION_RE.search(title or "")
    if m:
        return normalize_text(m.group(1))
    return ""


# ---- Confidence ----

@dataclass
class ConfidenceWeights:
    """
    Scoring weights. These are tuned by inspection; only the relative
    ordering they produce is meaningful.
    """
    search_engine_base: float = 0.3
    structured_base: float = 0.5
    job_title: float = 0.2
    reputable_board: float = 0.3
    job_url: float = 0.2
    hiring_language: float = 0.1
    rich_description: float = 0.1
    rich_description_chars: int = 100


def score_confidence(
    title: str,
    description: str,
    url: str,
    structured: bool,
    weights: Optional[ConfidenceWeights] = None,
) -> float:
    w = weights or ConfidenceWeights()
    score = w.structured_base if structured else w.search_engine_base

    t = (title or "").lower()
    if any(word in t for word in JOB_TITLE_WORDS):
        score += w.job_title

    domain = registrable_domain(get_host(url))
    u = (url or "").lower()
    if domain in REPUTABLE_BOARDS:
        score += w.reputable_board
    elif any(word in u for word in JOB_URL_WORDS):
        score += w.job_url

    d = (description or "").lower()
    if any(word in d for word in HIRING_WORDS):
        score += w.hiring_language
    if len(description or "") > w.rich_description_chars:
        score += w.rich_description

    return max(0.0, min(1.0, score))


# ---- Extractor ----

@dataclass
class ExtractionResult:
    jobs: List[CandidateJob] = field(default_factory=list)
    errors: List[ScrapingError] = field(default_factory=list)
    blocks_seen: int = 0


class ResultExtractor:
    """
    Turns a RawPageContent into CandidateJobs for a given site.

    Renderer-supplied records are used as-is; otherwise result blocks are
    parsed out of the HTML with the site's selectors.
    """

    def __init__(self, weights: Optional[ConfidenceWeights] = None, now: Optional[datetime] = None):
        self.weights = weights or ConfidenceWeights()
        self._now = now

    def _fields_from_html(self, page: RawPageContent, site: SiteConfig) -> Iterator[Tuple[int, object]]:
        soup = make_soup(page.text)
        for index, block in enumerate(select_blocks(soup, site.selectors.result_block)):
            yield index, block

    def _block_fields(self, block, site: SiteConfig) -> ExtractedFields:
        s = site.selectors
        return ExtractedFields(
            title=select_text(block, s.title),
            company=select_text(block, s.company),
            location=select_text(block, s.location),
            url=select_href(block, s.link, s.title),
            description=select_lines(block, s.description),
            salary_text=select_text(block, s.salary),
            posted_date_text=select_text(block, s.posted_date),
        )

    def build_candidate(
        self,
        fields: ExtractedFields,
        site: SiteConfig,
        criteria: Optional[SearchCriteria] = None,
        query: str = "",
        page: Optional[RawPageContent] = None,
    ) -> Optional[CandidateJob]:
        """CandidateJob for one result block, or None when a required field is missing."""
        title = fields.title
        url = resolve_href(fields.url, site.base_url)
        if not title or not url:
            return None

        description = strip_html(fields.description)
        structured = not site.is_search_engine

        company = fields.company if structured else ""
        if not company:
            company = infer_company(title, description, url)
        if not company:
            return None

        location = fields.location or infer_location(title, description)
        salary = parse_salary(fields.salary_text) or (
            parse_salary(description) if fields.salary_text == "" and structured else None
        )
        posted_at = parse_posted_date(fields.posted_date_text, now=self._now)

        source = site.id if structured else (registrable_domain(get_host(url)) or site.id)

        return CandidateJob(
            title=title,
            company=company,
            url=url,
            location=location,
            description=description,
            salary=salary,
            salary_text=fields.salary_text,
            posted_at=posted_at,
            posted_date_text=fields.posted_date_text,
            employment_type=EmploymentType.from_text(f"{title} {description}"),
            remote=is_remote(location, f"{title} {description}"),
            tags=extract_tags(title, description),
            requirements=extract_requirements(fields.description),
            benefits=extract_benefits(fields.description),
            source_site=source,
            confidence=score_confidence(title, description, url, structured, self.weights),
            raw={
                "fields": fields.model_dump(),
                "site": site.id,
                "query": query,
                "page_url": page.url if page else "",
                "strategy": page.strategy.value if page else "",
                "keywords": list(criteria.keywords) if criteria else [],
            },
        )

    def extract(
        self,
        page: RawPageContent,
        criteria: Optional[SearchCriteria],
        site: SiteConfig,
        query: str = "",
    ) -> ExtractionResult:
        result = ExtractionResult()

        if page.invalid_records:
            result.errors.append(ScrapingError(
                ErrorKind.PARSING,
                f"{page.invalid_records} malformed record(s) dropped by renderer",
                url=page.url,
            ))

        if page.records is not None:
            blocks = list(enumerate(page.records))
        else:
            blocks = list(self._fields_from_html(page, site))
        result.blocks_seen = len(blocks)

        for index, block in blocks:
            try:
                fields = block if isinstance(block, ExtractedFields) else self._block_fields(block, site)
                job = self.build_candidate(fields, site, criteria, query=query, page=page)
            except Exception as e:
                logger.warning("Skipping malformed result block %d on %s: %s", index, page.url, e)
                result.errors.append(ScrapingError(
                    ErrorKind.PARSING,
                    f"Failed to parse result block {index}: {e}",
                    url=page.url,
                ))
                continue
            if job is not None:
                result.jobs.append(job)

        logger.debug(
            "Extracted %d jobs from %d blocks on %s (%s)",
            len(result.jobs), result.blocks_seen, page.url, page.strategy.value,
        )
        return result
