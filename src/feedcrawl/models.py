from __future__ import annotations

from dataclasses import dataclass, replace

SOURCE_STATUS_ACTIVE = "active"
SOURCE_STATUS_ERROR = "error"
SOURCE_STATUS_UNREACHABLE = "unreachable"


@dataclass(frozen=True)
class Source:
    id: str
    url: str
    name: str
    status: str
    last_crawled_at: str | None
    last_attempt_at: str | None
    last_error: str
    total_articles: int
    successful_crawls: int
    failed_crawls: int
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class Article:
    id: str
    source_id: str
    title: str
    url: str
    content_hash: str
    summary: str | None
    published_at: str | None
    discovered_at: str
    author: str | None


@dataclass(frozen=True)
class Subscription:
    id: str
    user_id: str
    source_id: str
    subscribed_at: str


@dataclass(frozen=True)
class CandidateArticle:
    title: str
    url: str
    content_hash: str
    summary: str | None = None
    published_at: str | None = None
    author: str | None = None


@dataclass(frozen=True)
class CrawlOutcome:
    ok: bool
    finished_at: str
    saved_count: int = 0
    error: str | None = None


@dataclass(frozen=True)
class SubscriptionWithSource:
    subscription: Subscription
    source: Source


@dataclass(frozen=True)
class FeedItem:
    article: Article
    source: Source


@dataclass(frozen=True)
class FeedPage:
    items: list[FeedItem]
    total_count: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return (self.total_count + self.page_size - 1) // self.page_size


def apply_outcome(source: Source, outcome: CrawlOutcome) -> Source:
    """Return the source snapshot that follows a completed crawl attempt.

    Success resets the error text, stamps ``last_crawled_at`` and adds the saved
    articles to the running total. Failure only records the error and bumps the
    failure counter, leaving ``last_crawled_at`` at the last good crawl.
    """
    if outcome.ok:
        return replace(
            source,
            status=SOURCE_STATUS_ACTIVE,
            last_crawled_at=outcome.finished_at,
            last_error="",
            successful_crawls=source.successful_crawls + 1,
            total_articles=source.total_articles + outcome.saved_count,
            updated_at=outcome.finished_at,
        )
    return replace(
        source,
        status=SOURCE_STATUS_ERROR,
        last_error=outcome.error or "unknown error",
        failed_crawls=source.failed_crawls + 1,
        updated_at=outcome.finished_at,
    )
