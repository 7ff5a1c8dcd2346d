"""
Field parsers: salary text, posted dates, remote status, tags and description sections.
"""

from __future__ import annotations

import calendar
import re
from datetime import datetime, timedelta, timezone
from typing import Iterator, List, Optional, Pattern, Sequence, Tuple

from jobdorker.models import SalaryInfo, SalaryPeriod, normalize_text, now_utc


# ----------------------------- Salary -----------------------------

CURRENCY_SYMBOLS = {
    "$": "USD",
    "£": "GBP",
    "€": "EUR",
    "¥": "JPY",
    "₹": "INR",
}

_CURRENCY_CODES = re.compile(r"\b(USD|GBP|EUR|JPY|INR|CAD|AUD)\b")

_SYM = r"[$£€¥₹]"
_AMOUNT = r"\d[\d,]*(?:\.\d+)?k?"
_RANGE_SEP = r"\s*(?:-|–|—|to)\s*"
_PERIOD = (
    r"(?P<period>hourly|hour|hr|daily|day|weekly|week|wk|"
    r"monthly|month|mo|yearly|year|yr|annually|annual|annum)\b"
)
_PER = r"(?:\s*/\s*|\s+per\s+|\s+an?\s+)"

# Ranges before single amounts; first match wins
SALARY_PATTERNS: List[Pattern[str]] = [
    # $50,000 - $75,000 per year, 25-30/hour
    re.compile(
        rf"(?P<cur>{_SYM})?\s*(?P<min>{_AMOUNT}){_RANGE_SEP}{_SYM}?\s*(?P<max>{_AMOUNT})(?:{_PER}|\s*){_PERIOD}",
        re.I,
    ),
    # £40,000 - £60,000
    re.compile(rf"(?P<cur>{_SYM})\s*(?P<min>{_AMOUNT}){_RANGE_SEP}{_SYM}?\s*(?P<max>{_AMOUNT})", re.I),
    # 80k-100k
    re.compile(rf"\b(?P<min>\d[\d,]*(?:\.\d+)?k){_RANGE_SEP}(?P<max>\d[\d,]*(?:\.\d+)?k)\b", re.I),
    # $25/hour, $60k a year
    re.compile(rf"(?P<cur>{_SYM})\s*(?P<amount>{_AMOUNT})(?:{_PER}|\s*){_PERIOD}", re.I),
    # 60000 per year
    re.compile(rf"\b(?P<amount>{_AMOUNT}){_PER}{_PERIOD}", re.I),
    # €45,000
    re.compile(rf"(?P<cur>{_SYM})\s*(?P<amount>{_AMOUNT})", re.I),
]

_PERIOD_MAP = {
    "hourly": SalaryPeriod.HOURLY,
    "hour": SalaryPeriod.HOURLY,
    "hr": SalaryPeriod.HOURLY,
    "daily": SalaryPeriod.DAILY,
    "day": SalaryPeriod.DAILY,
    "weekly": SalaryPeriod.WEEKLY,
    "week": SalaryPeriod.WEEKLY,
    "wk": SalaryPeriod.WEEKLY,
    "monthly": SalaryPeriod.MONTHLY,
    "month": SalaryPeriod.MONTHLY,
    "mo": SalaryPeriod.MONTHLY,
}


def normalize_period(value: Optional[str]) -> SalaryPeriod:
    """Map a period word to a SalaryPeriod; anything else is yearly."""
    return _PERIOD_MAP.get((value or "").lower(), SalaryPeriod.YEARLY)


def parse_amount(value: str) -> Optional[float]:
    """``"75,000"`` -> 75000.0, ``"120k"`` -> 120000.0."""
    if not value:
        return None
    cleaned = value.replace(",", "").lower()
    multiplier = 1
    if cleaned.endswith("k"):
        cleaned = cleaned[:-1]
        multiplier = 1000
    try:
        return float(cleaned) * multiplier
    except ValueError:
        return None


def detect_currency(symbol: Optional[str], text: str) -> str:
    if symbol and symbol in CURRENCY_SYMBOLS:
        return CURRENCY_SYMBOLS[symbol]
    for sym, code in CURRENCY_SYMBOLS.items():
        if sym in text:
            return code
    m = _CURRENCY_CODES.search(text)
    if m:
        return m.group(1)
    return "USD"


def parse_salary(text: str) -> Optional[SalaryInfo]:
    """
    Parse free-form salary text.

    Returns None when nothing salary-like is found.
    """
    if not text:
        return None
    clean = normalize_text(text)

    for pattern in SALARY_PATTERNS:
        match = pattern.search(clean)
        if not match:
            continue
        groups = match.groupdict()
        currency = detect_currency(groups.get("cur"), clean)
        period = normalize_period(groups.get("period"))

        if groups.get("min") is not None:
            low = parse_amount(groups["min"])
            high = parse_amount(groups["max"])
            if low is None or high is None:
                continue
            return SalaryInfo(min=min(low, high), max=max(low, high), currency=currency, period=period)

        amount = parse_amount(groups.get("amount") or "")
        if amount is None:
            continue
        return SalaryInfo(min=amount, max=amount, currency=currency, period=period)

    return None


# ----------------------------- Dates -----------------------------

_RELATIVE_RE = re.compile(
    r"\b(?P<n>\d+|an?|one)\+?\s*(?P<unit>minute|min|hour|hr|day|week|month|year)s?\s+ago",
    re.I,
)

ABSOLUTE_FORMATS = [
    "%Y-%m-%dT%H:%M:%S.%fZ",
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%d/%m/%Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d %B %Y",
    "%d %b %Y",
]


def subtract_months(dt: datetime, months: int) -> datetime:
    """Calendar-correct month subtraction, clamping the day to the month's length."""
    total = dt.year * 12 + (dt.month - 1) - months
    year, month = divmod(total, 12)
    month += 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def parse_relative_date(text: str, now: Optional[datetime] = None) -> Optional[datetime]:
    now = now or now_utc()
    t = normalize_text(text).lower()
    if not t:
        return None
    if t in ("just now", "today", "just posted", "new") or "posted today" in t:
        return now
    if "yesterday" in t:
        return now - timedelta(days=1)

    m = _RELATIVE_RE.search(t)
    if not m:
        return None
    raw_n = m.group("n")
    n = int(raw_n) if raw_n.isdigit() else 1
    unit = m.group("unit")
    if unit in ("minute", "min"):
        return now - timedelta(minutes=n)
    if unit in ("hour", "hr"):
        return now - timedelta(hours=n)
    if unit == "day":
        return now - timedelta(days=n)
    if unit == "week":
        return now - timedelta(weeks=n)
    if unit == "month":
        return subtract_months(now, n)
    return subtract_months(now, 12 * n)


def parse_absolute_date(text: str) -> Optional[datetime]:
    t = normalize_text(text)
    # "Posted on March 3, 2024" -> "March 3, 2024"
    t = re.sub(r"^(posted|published|date posted)\s*(on)?\s*:?\s*", "", t, flags=re.I)
    for fmt in ABSOLUTE_FORMATS:
        try:
            dt = datetime.strptime(t, fmt)
        except ValueError:
            continue
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt
    return None


def parse_posted_date(text: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Relative expressions first ("3 days ago"), then absolute formats.
    Unparsable text returns None.
    """
    if not text:
        return None
    return parse_relative_date(text, now=now) or parse_absolute_date(text)


# ----------------------------- Remote -----------------------------

REMOTE_KEYWORDS = ("remote", "work from home", "wfh", "distributed", "anywhere")


def is_remote(location: str, description: str = "") -> bool:
    blob = f"{location} {description}".lower()
    return any(k in blob for k in REMOTE_KEYWORDS)


# ----------------------------- Tags & sections -----------------------------

TECH_TAGS = (
    "javascript", "typescript", "python", "java", "react", "angular", "vue",
    "node.js", "express", "mongodb", "postgresql", "aws", "docker", "kubernetes",
    "git", "agile", "scrum", "rest", "api", "microservices", "devops",
)
MAX_TAGS = 8
MAX_SECTION_ITEMS = 10

# Tags that are also everyday words need their technical spelling
_TAG_OVERRIDES = {
    "rest": re.compile(r"\bREST(?:ful)?\b"),
    "express": re.compile(r"\bexpress(?:\.js|js)\b", re.I),
}

_TAG_PATTERNS = [
    (tag, _TAG_OVERRIDES.get(tag) or re.compile(rf"(?<![\w.]){re.escape(tag)}(?!\w)", re.I))
    for tag in TECH_TAGS
]

REQUIREMENT_HEADERS = ("requirement", "qualification", "must have", "skills")
BENEFIT_HEADERS = ("benefit", "offer", "perks", "compensation")
OTHER_HEADERS = ("about us", "how to apply", "responsibilit")

_BULLET_RE = re.compile(r"^\s*(?:[•●▪*-]|\d+[.)])\s*")
_INLINE_BULLET_RE = re.compile(r"\s*[•●▪]\s*")


def extract_tags(title: str, description: str = "") -> List[str]:
    """Known technology keywords mentioned in the posting, in table order."""
    text = f"{title} {description}"
    tags = [tag for tag, pattern in _TAG_PATTERNS if pattern.search(text)]
    return tags[:MAX_TAGS]


def _segments(text: str) -> Iterator[Tuple[bool, str]]:
    """(is_list_item, text) pairs from newline- or bullet-separated text."""
    for line in text.splitlines():
        head, *items = _INLINE_BULLET_RE.split(line)
        head = head.strip()
        if head:
            bullet = _BULLET_RE.match(head)
            if bullet is not None:
                yield True, head[bullet.end():].strip()
            else:
                yield False, head
        for item in items:
            if item.strip():
                yield True, item.strip()


def extract_section_items(
    text: str,
    headers: Sequence[str],
    limit: int = MAX_SECTION_ITEMS,
) -> List[str]:
    """
    List items under a section whose heading contains one of ``headers``.

    A heading is any non-item line, or an item ending in ":". The section
    ends at the next heading naming another known section.
    """
    others = [h for h in REQUIREMENT_HEADERS + BENEFIT_HEADERS + OTHER_HEADERS if h not in headers]
    items: List[str] = []
    in_section = False
    for is_item, segment in _segments(text or ""):
        if not is_item or segment.endswith(":"):
            lower = segment.lower()
            if any(h in lower for h in headers):
                in_section = True
            elif any(h in lower for h in others):
                in_section = False
            continue
        if in_section and segment:
            items.append(normalize_text(segment))
            if len(items) >= limit:
                break
    return items


def extract_requirements(description: str) -> List[str]:
    return extract_section_items(description, REQUIREMENT_HEADERS)


def extract_benefits(description: str) -> List[str]:
    return extract_section_items(description, BENEFIT_HEADERS)
