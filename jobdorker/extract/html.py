"""
HTML helpers for result-block extraction.
"""

from __future__ import annotations

import copy
import re
from typing import List, Optional
from urllib.parse import parse_qs, urljoin, urlsplit

from bs4 import BeautifulSoup, Tag


def make_soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "lxml")


def strip_html(html: str, max_len: int = 8000) -> str:
    """
    Convert an HTML fragment to plain text.
    """
    if not html:
        return ""
    if "<" not in html:
        return re.sub(r"\s+", " ", html).strip()[:max_len]

    soup = make_soup(html)
    for tag in soup(["script", "style", "noscript", "iframe", "svg", "canvas"]):
        tag.decompose()

    text = soup.get_text(" ", strip=True)
    text = re.sub(r"\s+", " ", text).strip()
    return text[:max_len]


def select_blocks(soup: BeautifulSoup, selector: str) -> List[Tag]:
    if not selector:
        return []
    return soup.select(selector)


def select_text(el: Tag, selector: str) -> str:
    """Text of the first element matching ``selector`` inside ``el``."""
    if not selector:
        return ""
    node = el.select_one(selector)
    if node is None:
        return ""
    return re.sub(r"\s+", " ", node.get_text(" ", strip=True)).strip()


_LINE_MARK = "\ue000"

LINE_BREAK_TAGS = ["p", "div", "ul", "ol", "tr", "h1", "h2", "h3", "h4", "h5", "h6"]


def select_lines(el: Tag, selector: str) -> str:
    """
    Like ``select_text`` but keeps one line per block element, with list
    items prefixed by "- " so bulleted sections survive.
    """
    if not selector:
        return ""
    node = el.select_one(selector)
    if node is None:
        return ""
    node = copy.copy(node)
    for br in node.find_all("br"):
        br.replace_with(_LINE_MARK)
    for li in node.find_all("li"):
        li.insert(0, _LINE_MARK + "- ")
    for tag in node.find_all(LINE_BREAK_TAGS):
        tag.insert(0, _LINE_MARK)
    text = re.sub(r"\s+", " ", node.get_text(" "))
    lines = (line.strip() for line in text.split(_LINE_MARK))
    return "\n".join(line for line in lines if line)


def select_href(el: Tag, link_selector: str = "", title_selector: str = "") -> str:
    """
    Result link: the ``link_selector`` match, else the anchor wrapping the
    title, else the first anchor in the block.
    """
    anchor: Optional[Tag] = None
    if link_selector:
        anchor = el.select_one(link_selector)
    if anchor is None and title_selector:
        title = el.select_one(title_selector)
        if title is not None:
            anchor = title if title.name == "a" else title.find_parent("a")
            if anchor is None:
                anchor = title.find("a", href=True)
    if anchor is None:
        anchor = el.find("a", href=True)
    if anchor is None:
        return ""
    return (anchor.get("href") or "").strip()


def resolve_href(href: str, base_url: str) -> str:
    """
    Absolute URL for a result link.

    Search-engine redirect links (``/url?q=...``, ``//duckduckgo.com/l/?uddg=...``)
    are unwrapped to their destination.
    """
    if not href or href.startswith(("#", "javascript:", "mailto:")):
        return ""
    absolute = urljoin(base_url, href)
    parts = urlsplit(absolute)
    params = parse_qs(parts.query)
    if parts.path in ("/url", "/l/", "/l"):
        for key in ("q", "url", "uddg"):
            if params.get(key):
                target = params[key][0]
                return target if target.startswith(("http://", "https://")) else ""
    if parts.scheme not in ("http", "https"):
        return ""
    return absolute


# ---- JavaScript-rendered pages ----

JS_REQUIRED_MARKERS = [
    re.compile(r"please\s+(?:turn\s+on|enable)\s+javascript", re.I),
    re.compile(r"javascript\s+is\s+(?:required|disabled|not\s+enabled)", re.I),
    re.compile(r"(?:you\s+)?need\s+to\s+enable\s+javascript", re.I),
]

SPA_ROOT_MARKERS = [
    re.compile(r"<div[^>]+id=[\"'](?:root|app|__next|__nuxt)[\"'][^>]*>\s*</div>", re.I),
    re.compile(r"\bng-(?:app|version)\b", re.I),
    re.compile(r"\bdata-reactroot\b", re.I),
    re.compile(r"\bdata-server-rendered\b", re.I),
]

# Below this much visible text a page is treated as an unrendered shell
MIN_VISIBLE_TEXT = 200


def requires_javascript(html: str) -> bool:
    """
    Whether a statically fetched page is a client-side shell: little visible
    text plus a "please enable JavaScript" notice or an empty SPA mount point.
    """
    if not html:
        return False
    if len(strip_html(html)) >= MIN_VISIBLE_TEXT:
        return False
    return any(p.search(html) for p in JS_REQUIRED_MARKERS + SPA_ROOT_MARKERS)
