"""
Extraction utilities for JobDorker.

Provides:
- HTML result-block selection and link resolution
- Salary, posted-date and remote parsing
- Candidate building with confidence scoring
"""

from jobdorker.extract.html import strip_html, resolve_href
from jobdorker.extract.parsers import parse_salary, parse_posted_date, is_remote
from jobdorker.extract.extractor import ResultExtractor, ConfidenceWeights, score_confidence

__all__ = [
    "strip_html",
    "resolve_href",
    "parse_salary",
    "parse_posted_date",
    "is_remote",
    "ResultExtractor",
    "ConfidenceWeights",
    "score_confidence",
]
