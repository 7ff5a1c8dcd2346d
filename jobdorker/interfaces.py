"""
Interfaces of the collaborators the scrape engine talks to.

Storage, reporting and the anonymizing proxy live outside this package;
anything with these methods can be plugged in.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from jobdorker.models import CandidateJob


@runtime_checkable
class JobStore(Protocol):
    """Persistent job storage (idempotent upsert keyed by ``job_id``)."""

    def save_jobs(self, jobs: List[CandidateJob]) -> int:
        ...

    def search_jobs(self, filters: Dict[str, Any]) -> List[CandidateJob]:
        ...


@runtime_checkable
class ReportGenerator(Protocol):
    """Consumes scrape output; options carry format, output_path and analytics."""

    def generate_report(self, jobs: List[CandidateJob], options: Dict[str, Any]) -> Any:
        ...


@runtime_checkable
class ProxyProvider(Protocol):
    """Optional anonymizing proxy."""

    def get_agent(self) -> Optional[str]:
        """Proxy URL for the next request, e.g. ``socks5://127.0.0.1:9050``."""
        ...

    async def change_circuit(self) -> None:
        """Request a fresh exit identity."""
        ...
