"""
Cross-source deduplication for candidate jobs.

Candidates are keyed by fingerprint (lowercased ``title-company`` with
whitespace collapsed). Within a fingerprint the first-seen record is kept
unless a later one has strictly higher confidence, in which case the later
record takes the kept record's place and the old one moves to duplicates.
Survivors absorb the provenance of everything they displaced.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List

from jobdorker.models import CandidateJob

logger = logging.getLogger(__name__)


@dataclass
class DedupeResult:
    """Result of deduplication."""
    unique: List[CandidateJob] = field(default_factory=list)
    duplicates: List[CandidateJob] = field(default_factory=list)

    @property
    def duplicates_removed(self) -> int:
        return len(self.duplicates)


def _merge_sources(into: CandidateJob, other: CandidateJob) -> None:
    for source in other.sources:
        if source not in into.sources:
            into.sources.append(source)


class Deduplicator:
    """
    Fingerprint-based deduplicator. Order of ``unique`` follows discovery order.
    """

    def dedupe(self, candidates: List[CandidateJob]) -> DedupeResult:
        result = DedupeResult()
        slots: Dict[str, int] = {}  # fingerprint -> index into result.unique

        for job in candidates:
            key = job.fingerprint
            index = slots.get(key)
            if index is None:
                slots[key] = len(result.unique)
                result.unique.append(job)
                continue

            kept = result.unique[index]
            if job.confidence > kept.confidence:
                _merge_sources(job, kept)
                result.unique[index] = job
                result.duplicates.append(kept)
            else:
                _merge_sources(kept, job)
                result.duplicates.append(job)

        if result.duplicates:
            logger.debug(
                "Dedupe: %d unique, %d duplicates removed",
                len(result.unique), len(result.duplicates),
            )
        return result


def dedupe_jobs(candidates: List[CandidateJob]) -> DedupeResult:
    """
    Convenience function to dedupe jobs with default settings.
    """
    return Deduplicator().dedupe(candidates)
