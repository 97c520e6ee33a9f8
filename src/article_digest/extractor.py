"""
Heuristic article extraction from raw HTML.

Each field is resolved by walking an ordered selector list and taking the
first acceptable match; when nothing structural qualifies we fall back to meta
tags (title, date) or to the whole document text (body). The heuristic is
best-effort: it favours common blog/news markup and never raises on missing
fields.
"""

from __future__ import annotations

import re
from typing import Iterator, Optional

from bs4 import BeautifulSoup, CData, NavigableString, Tag

from .models import ArticleDocument

TITLE_SELECTORS = (
    "h1",
    "article h1",
    ".post-title",
    ".article-title",
    ".entry-title",
    '[class*="title"]',
    "title",
)
TITLE_META_SELECTORS = ('meta[property="og:title"]', 'meta[name="title"]')
MIN_TITLE_LENGTH = 10

DATE_SELECTORS = (
    "time[datetime]",
    "time",
    '[class*="date"]',
    '[class*="published"]',
    '[class*="time"]',
    "article time",
    ".post-date",
    ".article-date",
    ".published-date",
)
DATE_ATTRIBUTES = ("datetime", "title")
DATE_META_SELECTORS = (
    'meta[property="article:published_time"]',
    'meta[name="date"]',
    'meta[name="publish-date"]',
)

BODY_SELECTORS = (
    "article",
    ".post",
    ".content",
    ".article-content",
    ".entry-content",
    ".post-content",
    '[class*="article"]',
    '[class*="content"]',
    "main",
)
BLOCK_NOISE = "script, style, nav, header, footer, aside, .ad, .advertisement, .sidebar"
# Skipped inside a body block but left in the tree for the whole-page fallback.
BLOCK_SKIP = frozenset({"h1"})
PAGE_NOISE = "header, footer, nav, aside, script, style"
MIN_BODY_LENGTH = 100

# Text on either side of these elements is kept apart; inline markup is not.
BLOCK_TAGS = frozenset({
    "address", "article", "blockquote", "br", "dd", "div", "dl", "dt",
    "figcaption", "figure", "h1", "h2", "h3", "h4", "h5", "h6", "hr", "li",
    "main", "ol", "p", "pre", "section", "table", "td", "th", "tr", "ul",
})

_WHITESPACE = re.compile(r"\s+")


def normalize_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def _text(node: Tag) -> str:
    return normalize_whitespace(node.get_text())


def _block_strings(node: Tag, skip: frozenset) -> Iterator[str]:
    for child in node.children:
        if isinstance(child, Tag):
            if child.name in skip:
                continue
            is_block = child.name in BLOCK_TAGS
            if is_block:
                yield " "
            yield from _block_strings(child, skip)
            if is_block:
                yield " "
        elif type(child) is NavigableString or isinstance(child, CData):
            yield str(child)


def _block_text(node: Tag, skip: frozenset = frozenset()) -> str:
    """Text of ``node`` with a break between block elements only."""
    return normalize_whitespace("".join(_block_strings(node, skip)))


def _meta_content(soup: BeautifulSoup, selectors: tuple[str, ...]) -> Optional[str]:
    for selector in selectors:
        node = soup.select_one(selector)
        if node is None:
            continue
        content = (node.get("content") or "").strip()
        if content:
            return content
    return None


def _strip(node: Tag, selector: str) -> None:
    # extract() rather than decompose(): nested matches may already be detached.
    for junk in node.select(selector):
        junk.extract()


def find_title(soup: BeautifulSoup) -> Optional[str]:
    for selector in TITLE_SELECTORS:
        node = soup.select_one(selector)
        if node is None:
            continue
        text = _text(node)
        if len(text) > MIN_TITLE_LENGTH:
            return text

    fallback = _meta_content(soup, TITLE_META_SELECTORS)
    if fallback:
        return fallback
    document_title = soup.select_one("title")
    if document_title is not None:
        return _text(document_title) or None
    return None


def find_published_at(soup: BeautifulSoup) -> Optional[str]:
    """Return the raw date text; parsing is left to the caller."""
    for selector in DATE_SELECTORS:
        node = soup.select_one(selector)
        if node is None:
            continue
        for attribute in DATE_ATTRIBUTES:
            value = node.get(attribute)
            if isinstance(value, str) and value.strip():
                return value.strip()
        text = _text(node)
        if text:
            return text
    return _meta_content(soup, DATE_META_SELECTORS)


def find_body(soup: BeautifulSoup) -> str:
    """
    Return the main text of the page.

    Mutates ``soup``: noise elements are detached as blocks are inspected, so
    title and date must be read first.
    """
    for selector in BODY_SELECTORS:
        node = soup.select_one(selector)
        if node is None:
            continue
        _strip(node, BLOCK_NOISE)
        text = _block_text(node, BLOCK_SKIP)
        if len(text) > MIN_BODY_LENGTH:
            return text

    root = soup.body
    if root is None:
        root = soup
        _strip(root, "head")
    _strip(root, PAGE_NOISE)
    return _block_text(root)


def extract(html: str) -> ArticleDocument:
    """Parse ``html`` into an ArticleDocument; missing fields come back empty."""
    soup = BeautifulSoup(html or "", "html.parser")
    title = find_title(soup)
    published_at = find_published_at(soup)
    body = find_body(soup)
    return ArticleDocument(title=title, published_at=published_at, body=body)
