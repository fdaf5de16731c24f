from __future__ import annotations

import logging
from typing import Callable
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup, Tag

from .errors import NoArticlesFoundError
from .models import CandidateArticle
from .normalize import clip, collapse_whitespace, content_hash
from .utils import isoformat_utc, log_event, parse_datetime

MAX_CANDIDATES = 50
MIN_TITLE_LENGTH = 10
SUMMARY_MAX_CHARS = 500
TITLE_MAX_CHARS = 500
AUTHOR_MAX_CHARS = 200
URL_MAX_CHARS = 2000

HACKER_NEWS_BASE = "https://news.ycombinator.com/"
LOBSTERS_BASE = "https://lobste.rs"

CONTAINER_SELECTOR = "div.post, div.entry, div.article-item, div.story, li.story"
HEADING_LINK_SELECTOR = "h1 > a, h2 > a, h3 > a"
AUTHOR_SELECTOR = "[rel~=author], .author, .byline"

Strategy = Callable[[BeautifulSoup, str], list[CandidateArticle]]

logger = logging.getLogger("feedcrawl.extract")


def extract_articles(
    document: bytes | str,
    source_url: str,
    max_candidates: int = MAX_CANDIDATES,
) -> list[CandidateArticle]:
    _, candidates = run_strategy_chain(document, source_url, max_candidates=max_candidates)
    return candidates


def run_strategy_chain(
    document: bytes | str,
    source_url: str,
    max_candidates: int = MAX_CANDIDATES,
) -> tuple[str, list[CandidateArticle]]:
    soup = BeautifulSoup(document, "html.parser")
    for name, strategy in strategies_for(source_url):
        candidates = strategy(soup, source_url)
        if candidates:
            log_event(
                logger,
                logging.DEBUG,
                "strategy_matched",
                source_url=source_url,
                strategy=name,
                found=len(candidates),
            )
            return name, candidates[:max_candidates]
    raise NoArticlesFoundError()


def strategies_for(source_url: str) -> list[tuple[str, Strategy]]:
    host = (urlsplit(source_url).hostname or "").lower()
    chain = [
        (name, strategy)
        for domain, name, strategy in SITE_RULES
        if host == domain or host.endswith("." + domain)
    ]
    chain.extend(GENERIC_STRATEGIES)
    return chain


def extract_hacker_news(soup: BeautifulSoup, source_url: str) -> list[CandidateArticle]:
    return _extract_site_rows(soup, "tr.athing", "span.titleline > a", HACKER_NEWS_BASE)


def extract_lobsters(soup: BeautifulSoup, source_url: str) -> list[CandidateArticle]:
    return _extract_site_rows(soup, "li.story", "a.u-url", LOBSTERS_BASE)


def extract_article_tags(soup: BeautifulSoup, source_url: str) -> list[CandidateArticle]:
    return _extract_containers(soup.find_all("article"), source_url)


def extract_common_classes(soup: BeautifulSoup, source_url: str) -> list[CandidateArticle]:
    return _extract_containers(soup.select(CONTAINER_SELECTOR), source_url)


def extract_heading_links(soup: BeautifulSoup, source_url: str) -> list[CandidateArticle]:
    candidates = []
    for link in soup.select(HEADING_LINK_SELECTOR):
        title = _text(link)
        url = _absolute_url(link.get("href"), source_url)
        if not url or len(title) < MIN_TITLE_LENGTH:
            continue
        candidates.append(_candidate(title, url))
    return candidates


SITE_RULES: tuple[tuple[str, str, Strategy], ...] = (
    ("news.ycombinator.com", "hacker_news", extract_hacker_news),
    ("lobste.rs", "lobsters", extract_lobsters),
)

GENERIC_STRATEGIES: tuple[tuple[str, Strategy], ...] = (
    ("article_tags", extract_article_tags),
    ("common_classes", extract_common_classes),
    ("heading_links", extract_heading_links),
)


def _extract_site_rows(
    soup: BeautifulSoup, row_selector: str, link_selector: str, base_url: str
) -> list[CandidateArticle]:
    candidates = []
    for row in soup.select(row_selector):
        link = row.select_one(link_selector)
        if link is None:
            continue
        title = _text(link)
        url = _absolute_url(link.get("href"), base_url)
        if not title or not url:
            continue
        candidates.append(_candidate(title, url))
    return candidates


def _extract_containers(containers: list[Tag], source_url: str) -> list[CandidateArticle]:
    candidates = []
    for container in containers:
        candidate = _from_container(container, source_url)
        if candidate is not None:
            candidates.append(candidate)
    return candidates


def _from_container(container: Tag, source_url: str) -> CandidateArticle | None:
    title_node = container.select_one("h1, h2, h3, a")
    title = _text(title_node) if title_node is not None else ""
    link = container.find("a")
    url = _absolute_url(link.get("href") if link is not None else None, source_url)
    if not url or len(title) < MIN_TITLE_LENGTH:
        return None

    paragraph = container.find("p")
    summary = paragraph.get_text().strip() if paragraph is not None else ""
    summary = clip(summary, SUMMARY_MAX_CHARS, "...")

    return _candidate(
        title,
        url,
        summary=summary,
        published_at=_published_at(container),
        author=_author(container),
    )


def _candidate(
    title: str,
    url: str,
    summary: str = "",
    published_at: str | None = None,
    author: str | None = None,
) -> CandidateArticle:
    title = clip(title, TITLE_MAX_CHARS)
    return CandidateArticle(
        title=title,
        url=url,
        content_hash=content_hash(title, summary or ""),
        summary=summary or None,
        published_at=published_at,
        author=author,
    )


def _published_at(container: Tag) -> str | None:
    node = container.find("time")
    if node is None:
        return None
    parsed = parse_datetime(node.get("datetime") or node.get_text())
    return isoformat_utc(parsed) if parsed else None


def _author(container: Tag) -> str | None:
    node = container.select_one(AUTHOR_SELECTOR)
    if node is None:
        return None
    return clip(_text(node), AUTHOR_MAX_CHARS) or None


def _text(node: Tag) -> str:
    return collapse_whitespace(node.get_text())


def _absolute_url(href: object, base_url: str) -> str | None:
    if not isinstance(href, str):
        return None
    href = href.strip()
    if not href:
        return None
    url = urljoin(base_url, href)
    if urlsplit(url).scheme not in ("http", "https") or len(url) > URL_MAX_CHARS:
        return None
    return url
