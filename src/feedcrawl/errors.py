from __future__ import annotations


class FeedCrawlError(Exception):
    pass


class ConfigError(FeedCrawlError, ValueError):
    pass


class ValidationError(FeedCrawlError, ValueError):
    pass


class NotFoundError(FeedCrawlError):
    pass


class SourceNotFoundError(NotFoundError):
    def __init__(self, source_id: str) -> None:
        super().__init__(f"source not found: {source_id}")
        self.source_id = source_id


class ConflictError(FeedCrawlError):
    pass


class CrawlError(FeedCrawlError):
    """A crawl attempt failed; the text is recorded on the source."""


class FetchError(CrawlError):
    def __init__(self, message: str, http_status: int | None = None) -> None:
        super().__init__(message)
        self.http_status = http_status


class CrawlDeadlineExceeded(FetchError):
    pass


class NoArticlesFoundError(CrawlError):
    def __init__(self, message: str = "no articles found on page") -> None:
        super().__init__(message)


class PersistenceError(FeedCrawlError):
    pass


class ConstraintViolationError(PersistenceError):
    pass


class RetentionError(FeedCrawlError):
    pass
