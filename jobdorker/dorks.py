"""
Dork query synthesis.

Turns SearchCriteria into an ordered, deduplicated list of site-scoped
search-engine queries:

1. One query per job-site scope (keywords narrowed by remote/salary/experience terms)
2. A file-type query for posted job descriptions (PDF)
3. A career-page query using URL pattern hints
4. Keyword-subset variations (singletons, then pairs) when several keywords are given

Ordering is fully deterministic for a given criteria value.
"""

from __future__ import annotations

import logging
from itertools import combinations
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from jobdorker.models import DorkQuery, ExperienceLevel, SearchCriteria

logger = logging.getLogger(__name__)


JOB_SITE_SCOPES: Tuple[str, ...] = (
    "linkedin.com/jobs",
    "indeed.com",
    "glassdoor.com",
    "stackoverflow.com/jobs",
    "angel.co",
    "remote.co",
    "weworkremotely.com",
    "flexjobs.com",
    "upwork.com",
    "freelancer.com",
)

EXPERIENCE_SYNONYMS: Dict[ExperienceLevel, Tuple[str, ...]] = {
    ExperienceLevel.ENTRY: ("entry level", "junior", "graduate", "intern", "0-2 years"),
    ExperienceLevel.MID: ("mid level", "intermediate", "2-5 years", "experienced"),
    ExperienceLevel.SENIOR: ("senior", "lead", "5+ years", "expert"),
    ExperienceLevel.EXECUTIVE: ("executive", "director", "VP", "C-level", "manager"),
}

REMOTE_TERMS = ("remote", "work from home")

MAX_QUERIES = 20
MAX_KEYWORD_VARIATIONS = 10
QUERIES_PER_VARIATION = 3


# ---- Rendering ----

def _quote(term: str) -> str:
    """Quote multi-word terms as phrases."""
    term = term.strip()
    if " " in term and not (term.startswith('"') and term.endswith('"')):
        return f'"{term}"'
    return term


def render_query(query: DorkQuery) -> str:
    """
    Render a DorkQuery as a search string.

    ``site:<scope> k1 OR "k 2" (m1 OR "m 2") m3 -ex1 -"ex 2" filetype:pdf OR filetype:doc key:value``
    """
    parts: List[str] = []

    if query.site:
        parts.append(f"site:{query.site}")

    if query.keywords:
        parts.append(" OR ".join(_quote(k) for k in query.keywords))

    for group in query.modifiers:
        terms = [_quote(t) for t in group if t.strip()]
        if len(terms) == 1:
            parts.append(terms[0])
        elif terms:
            parts.append("(" + " OR ".join(terms) + ")")

    if query.exclude_keywords:
        parts.append(" ".join(f"-{_quote(k)}" for k in query.exclude_keywords))

    if query.file_types:
        parts.append(" OR ".join(f"filetype:{ft}" for ft in query.file_types))

    for key, value in query.custom_params:
        parts.append(f"{key}:{_quote(value)}")

    return " ".join(parts)


# ---- Synthesis ----

def keyword_variations(keywords: Sequence[str], limit: int = MAX_KEYWORD_VARIATIONS) -> List[Tuple[str, ...]]:
    """Singleton subsets, then ordered pairs, truncated to ``limit``."""
    variations: List[Tuple[str, ...]] = [(k,) for k in keywords]
    variations.extend(combinations(keywords, 2))
    return variations[:limit]


class QuerySynthesizer:
    """
    Builds dork queries from search criteria.
    """

    def __init__(
        self,
        scopes: Optional[Iterable[str]] = None,
        max_queries: int = MAX_QUERIES,
    ):
        self.scopes: Tuple[str, ...] = tuple(scopes) if scopes is not None else JOB_SITE_SCOPES
        self.max_queries = max_queries

    def _site_query(self, site: str, keywords: Sequence[str], criteria: SearchCriteria) -> DorkQuery:
        modifiers: List[Tuple[str, ...]] = []
        if criteria.remote:
            modifiers.append(REMOTE_TERMS)
        if criteria.salary_min:
            modifiers.append((f"salary:>{criteria.salary_min}",))
        if criteria.experience_level:
            modifiers.append(EXPERIENCE_SYNONYMS.get(criteria.experience_level, ()))

        custom: Tuple[Tuple[str, str], ...] = ()
        if criteria.location and not criteria.remote:
            custom = (("location", criteria.location),)

        return DorkQuery(
            site=site,
            keywords=tuple(keywords),
            modifiers=tuple(m for m in modifiers if m),
            exclude_keywords=criteria.exclude_keywords,
            custom_params=custom,
        )

    def _file_type_query(self, criteria: SearchCriteria) -> DorkQuery:
        return DorkQuery(
            keywords=criteria.keywords + ("job description", "job posting"),
            exclude_keywords=criteria.exclude_keywords,
            file_types=("pdf",),
        )

    def _career_page_query(self, criteria: SearchCriteria) -> DorkQuery:
        return DorkQuery(
            keywords=criteria.keywords + ("careers", "jobs", "opportunities"),
            exclude_keywords=criteria.exclude_keywords,
            custom_params=(("inurl", "careers"),),
        )

    def site_queries(self, criteria: SearchCriteria, keywords: Optional[Sequence[str]] = None) -> List[DorkQuery]:
        kw = tuple(keywords) if keywords is not None else criteria.keywords
        return [self._site_query(site, kw, criteria) for site in self.scopes]

    def generate(self, criteria: SearchCriteria) -> List[DorkQuery]:
        """
        Ordered, deduplicated dork queries, capped at ``min(max_queries, criteria.max_results)``.
        """
        candidates: List[DorkQuery] = self.site_queries(criteria)
        candidates.append(self._file_type_query(criteria))
        candidates.append(self._career_page_query(criteria))

        if len(criteria.keywords) > 1:
            for subset in keyword_variations(criteria.keywords):
                candidates.extend(self.site_queries(criteria, subset)[:QUERIES_PER_VARIATION])

        limit = min(self.max_queries, criteria.max_results)
        seen: set = set()
        queries: List[DorkQuery] = []
        for q in candidates:
            rendered = q.render()
            if rendered in seen:
                continue
            seen.add(rendered)
            queries.append(q)
            if len(queries) >= limit:
                break

        logger.debug("Synthesized %d queries from %d candidates", len(queries), len(candidates))
        return queries

    def render(self, criteria: SearchCriteria) -> List[str]:
        """Rendered query strings for ``criteria``."""
        return [q.render() for q in self.generate(criteria)]
