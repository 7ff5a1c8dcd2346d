"""
Core data models for JobDorker.

Provides:
- SearchCriteria: immutable input to a scrape session
- DorkQuery / FetchTarget / RawPageContent: the per-query and per-page work items
- CandidateJob: an extracted job record with confidence and provenance
- SessionStats / ScrapeResult: session counters and the result envelope
"""

from __future__ import annotations

import hashlib
import re
import urllib.parse
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, ValidationInfo, field_validator


# ----------------------------- Enums -----------------------------

class EmploymentType(str, Enum):
    """Normalized employment type classification."""
    FULL_TIME = "full-time"
    PART_TIME = "part-time"
    CONTRACT = "contract"
    TEMPORARY = "temporary"
    INTERNSHIP = "internship"
    FREELANCE = "freelance"

    @classmethod
    def from_text(cls, text: str) -> "EmploymentType":
        """Infer employment type from free-form text, defaulting to full-time."""
        t = (text or "").lower()
        for pattern, employment_type in _EMPLOYMENT_KEYWORDS:
            if pattern.search(t):
                return cls(employment_type)
        return cls.FULL_TIME


# Order matters: first match wins
_EMPLOYMENT_KEYWORDS = [
    (re.compile(r"\bpart[\s-]?time\b"), "part-time"),
    (re.compile(r"\bcontract(?:or|s)?\b"), "contract"),
    (re.compile(r"\btemporary\b|\btemp\b"), "temporary"),
    (re.compile(r"\bintern(?:s|ship|ships)?\b"), "internship"),
    (re.compile(r"\bfreelance(?:r|rs)?\b"), "freelance"),
]


class ExperienceLevel(str, Enum):
    """Experience level requested in the search criteria."""
    ENTRY = "entry"
    MID = "mid"
    SENIOR = "senior"
    EXECUTIVE = "executive"


class FetchStrategy(str, Enum):
    """Strategy that actually produced a page."""
    STATIC = "static"
    DYNAMIC = "dynamic"


class StrategyPreference(str, Enum):
    """Per-site strategy preference for the hybrid fetcher."""
    AUTO = "auto"
    STATIC = "static"
    DYNAMIC = "dynamic"


class SalaryPeriod(str, Enum):
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


# ----------------------------- Utilities -----------------------------

def normalize_text(s: str) -> str:
    """Collapse whitespace and strip."""
    return re.sub(r"\s+", " ", (s or "")).strip()


def normalize_lines(s: str) -> str:
    """Collapse whitespace within each line and drop blank lines."""
    lines = (normalize_text(line) for line in (s or "").splitlines())
    return "\n".join(line for line in lines if line)


def get_host(url: str) -> str:
    """Lowercased host of a URL, or "" when it has none."""
    try:
        return urllib.parse.urlsplit(url).hostname or ""
    except ValueError:
        return ""


def canonicalize_url(url: str) -> str:
    """
    Canonicalize URL by removing tracking parameters and fragments.
    """
    if not url:
        return ""
    try:
        u = urllib.parse.urlsplit(url.strip())
        scheme = u.scheme.lower() or "https"
        netloc = u.netloc.lower()
        tracking_prefixes = ("utm_", "fbclid", "gclid", "mc_", "trk")
        # Search-engine redirect noise
        tracking_keys = {"sa", "ved", "usg", "ei"}
        q = urllib.parse.parse_qsl(u.query, keep_blank_values=False)
        q = [
            (k, v) for k, v in q
            if k.lower() not in tracking_keys and not any(k.lower().startswith(p) for p in tracking_prefixes)
        ]
        path = u.path.rstrip("/") if u.path != "/" else u.path
        u = u._replace(scheme=scheme, netloc=netloc, path=path, query=urllib.parse.urlencode(q), fragment="")
        return urllib.parse.urlunsplit(u)
    except ValueError:
        return url.strip()


def now_utc() -> datetime:
    """Current UTC datetime."""
    return datetime.now(timezone.utc)


# ----------------------------- Criteria -----------------------------

MAX_RESULTS_LIMIT = 1000


def _as_terms(values: Any) -> Tuple[str, ...]:
    if isinstance(values, str):
        values = (values,)
    return tuple(normalize_text(v) for v in values if normalize_text(v))


@dataclass(frozen=True)
class SearchCriteria:
    """Search parameters for one scrape session."""

    keywords: Tuple[str, ...]
    location: str = ""
    remote: bool = False
    salary_min: Optional[int] = None
    salary_max: Optional[int] = None
    employment_types: FrozenSet[EmploymentType] = frozenset()
    exclude_keywords: Tuple[str, ...] = ()
    experience_level: Optional[ExperienceLevel] = None
    max_results: int = 100

    def __post_init__(self):
        # Accept lists or a single string but store tuples so the criteria stay hashable
        keywords = _as_terms(self.keywords)
        if not keywords:
            raise ValueError("at least one keyword is required")
        object.__setattr__(self, "keywords", keywords)
        object.__setattr__(self, "exclude_keywords", _as_terms(self.exclude_keywords))
        object.__setattr__(self, "employment_types", frozenset(self.employment_types))
        object.__setattr__(self, "location", normalize_text(self.location))
        if isinstance(self.experience_level, str) and not isinstance(self.experience_level, ExperienceLevel):
            object.__setattr__(self, "experience_level", ExperienceLevel(self.experience_level))

        if not 1 <= self.max_results <= MAX_RESULTS_LIMIT:
            raise ValueError(f"max_results must be between 1 and {MAX_RESULTS_LIMIT}")
        for name in ("salary_min", "salary_max"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValueError(f"{name} must be non-negative")
        if (
            self.salary_min is not None
            and self.salary_max is not None
            and self.salary_min > self.salary_max
        ):
            raise ValueError("salary_min must not exceed salary_max")


# ----------------------------- Queries & pages -----------------------------

@dataclass(frozen=True)
class DorkQuery:
    """A synthesized search query. Rendered with ``render()``."""
    site: str = ""
    keywords: Tuple[str, ...] = ()
    # Narrowing terms ANDed after the keywords; each group is ORed internally
    modifiers: Tuple[Tuple[str, ...], ...] = ()
    exclude_keywords: Tuple[str, ...] = ()
    file_types: Tuple[str, ...] = ()
    custom_params: Tuple[Tuple[str, str], ...] = ()

    def render(self) -> str:
        from jobdorker.dorks import render_query
        return render_query(self)

    def __str__(self) -> str:
        return self.render()


@dataclass(frozen=True)
class FetchTarget:
    """One page to fetch: URL, the site it belongs to, and its pagination cursor."""
    url: str
    site: Any  # SiteConfig; typed loosely to avoid an import cycle with sites.py
    strategy: StrategyPreference = StrategyPreference.AUTO
    page: int = 0
    query: str = ""

    @property
    def host(self) -> str:
        return get_host(self.url)


@dataclass
class RawPageContent:
    """Fetched page plus fetch metadata."""
    url: str
    text: str = ""
    status: int = 0
    elapsed_ms: float = 0
    strategy: FetchStrategy = FetchStrategy.STATIC
    records: Optional[List["ExtractedFields"]] = None
    invalid_records: int = 0  # renderer records rejected at the schema boundary


class ExtractedFields(BaseModel):
    """
    Typed extraction contract for a single result block.

    The browser's in-page extraction script returns a list of these; static
    parsing builds the same shape, so the extractor has one input type.
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    title: str = ""
    company: str = ""
    location: str = ""
    url: str = ""
    description: str = ""
    salary_text: str = ""
    posted_date_text: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def coerce_text(cls, v: Any, info: ValidationInfo) -> str:
        if v is None:
            return ""
        if not isinstance(v, str):
            raise ValueError("expected a string")
        # Descriptions keep their line structure for section parsing
        if info.field_name == "description":
            return normalize_lines(v)
        return normalize_text(v)


# ----------------------------- Jobs -----------------------------

@dataclass(frozen=True)
class SalaryInfo:
    min: float
    max: float
    currency: str = "USD"
    period: SalaryPeriod = SalaryPeriod.YEARLY

    def to_dict(self) -> Dict[str, Any]:
        return {
            "min": self.min,
            "max": self.max,
            "currency": self.currency,
            "period": self.period.value,
        }


def fingerprint(title: str, company: str) -> str:
    """Duplicate-detection key: lowercased ``title-company`` with whitespace collapsed."""
    return normalize_text(f"{title}-{company}").lower()


@dataclass
class CandidateJob:
    """
    A job record produced by the extractor.

    Only ``sources`` changes after creation, when the deduplicator merges
    provenance from a dropped duplicate.
    """

    title: str
    company: str
    url: str
    location: str = ""
    description: str = ""
    salary: Optional[SalaryInfo] = None
    salary_text: str = ""
    posted_at: Optional[datetime] = None
    posted_date_text: str = ""
    employment_type: EmploymentType = EmploymentType.FULL_TIME
    remote: bool = False
    tags: List[str] = field(default_factory=list)
    requirements: List[str] = field(default_factory=list)
    benefits: List[str] = field(default_factory=list)
    source_site: str = ""
    confidence: float = 0.0
    raw: Dict[str, Any] = field(default_factory=dict)
    discovered_at: datetime = field(default_factory=now_utc)
    sources: List[str] = field(default_factory=list)
    job_id: str = ""

    def __post_init__(self):
        self.title = normalize_text(self.title)
        self.company = normalize_text(self.company)
        self.location = normalize_text(self.location)
        self.url = canonicalize_url(self.url)
        self.confidence = max(0.0, min(1.0, float(self.confidence)))
        if not self.sources:
            self.sources = [self.url]
        if not self.job_id:
            self.job_id = self.compute_job_id()

    @property
    def fingerprint(self) -> str:
        return fingerprint(self.title, self.company)

    def compute_job_id(self) -> str:
        """Stable content hash used as the storage upsert key."""
        key = "|".join([
            self.company.lower(),
            self.title.lower(),
            self.location.lower(),
            self.url.lower(),
        ])
        return hashlib.sha256(key.encode("utf-8")).hexdigest()[:24]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "title": self.title,
            "company": self.company,
            "location": self.location,
            "description": self.description,
            "url": self.url,
            "salary": self.salary.to_dict() if self.salary else None,
            "salary_text": self.salary_text,
            "posted_at": self.posted_at.isoformat() if self.posted_at else None,
            "posted_date_text": self.posted_date_text,
            "employment_type": self.employment_type.value,
            "remote": self.remote,
            "tags": list(self.tags),
            "requirements": list(self.requirements),
            "benefits": list(self.benefits),
            "source_site": self.source_site,
            "confidence": round(self.confidence, 3),
            "sources": list(self.sources),
            "discovered_at": self.discovered_at.isoformat(),
        }


# ----------------------------- Session & result -----------------------------

@dataclass
class SessionStats:
    """Counters owned by one scrape session."""
    is_running: bool = False
    total_requests: int = 0
    successful_requests: int = 0
    error_count: int = 0
    errors: List[Any] = field(default_factory=list)  # List[ScrapingError]
    error_history_limit: int = 100

    @property
    def success_rate(self) -> float:
        """Percentage of successful requests, 0-100."""
        if self.total_requests == 0:
            return 0.0
        return min(100.0, self.successful_requests / self.total_requests * 100)

    def record_error(self, error: Any) -> None:
        self.error_count += 1
        self.errors.append(error)
        if len(self.errors) > self.error_history_limit:
            del self.errors[: len(self.errors) - self.error_history_limit]

    def reset(self) -> None:
        self.is_running = False
        self.total_requests = 0
        self.successful_requests = 0
        self.error_count = 0
        self.errors = []


@dataclass
class ScrapeMetadata:
    total_found: int = 0
    total_scraped: int = 0
    success_rate: float = 0.0
    duration: float = 0.0
    errors: List[Any] = field(default_factory=list)  # List[ScrapingError]
    sources: Dict[str, int] = field(default_factory=dict)
    queries: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_found": self.total_found,
            "total_scraped": self.total_scraped,
            "success_rate": round(self.success_rate, 2),
            "duration": round(self.duration, 3),
            "errors": [e.to_dict() for e in self.errors],
            "sources": dict(self.sources),
            "queries": list(self.queries),
        }


@dataclass
class ScrapeResult:
    jobs: List[CandidateJob] = field(default_factory=list)
    metadata: ScrapeMetadata = field(default_factory=ScrapeMetadata)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "jobs": [j.to_dict() for j in self.jobs],
            "metadata": self.metadata.to_dict(),
        }
