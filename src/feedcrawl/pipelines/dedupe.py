from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from ..errors import CrawlDeadlineExceeded, ConstraintViolationError, PersistenceError
from ..models import Article, CandidateArticle
from ..storage import article_url_exists, content_hash_exists, insert_article
from ..utils import deadline_expired, log_event, new_id, utc_now_iso

DUPLICATE_URL = "duplicate_url"
DUPLICATE_CONTENT = "duplicate_content"


@dataclass(frozen=True)
class PersistResult:
    saved_count: int
    skipped_duplicates: int
    failed_count: int


def duplicate_reason(conn: Any, source_id: str, candidate: CandidateArticle) -> str | None:
    if article_url_exists(conn, source_id, candidate.url):
        return DUPLICATE_URL
    if content_hash_exists(conn, candidate.content_hash):
        return DUPLICATE_CONTENT
    return None


def persist_candidates(
    conn: Any,
    source_id: str,
    candidates: Iterable[CandidateArticle],
    *,
    logger: logging.Logger,
    deadline: float | None = None,
) -> PersistResult:
    saved = 0
    duplicates = 0
    failed = 0
    for candidate in candidates:
        if deadline_expired(deadline):
            log_event(logger, logging.WARNING, "persist_deadline_exceeded", source_id=source_id, saved=saved)
            raise CrawlDeadlineExceeded(f"crawl deadline exceeded after saving {saved} articles")
        try:
            reason = duplicate_reason(conn, source_id, candidate)
            if reason:
                duplicates += 1
                log_event(logger, logging.DEBUG, "article_skipped", reason=reason, url=candidate.url)
                continue
            insert_article(conn, _to_article(source_id, candidate))
        except ConstraintViolationError:
            duplicates += 1
            log_event(logger, logging.DEBUG, "article_skipped", reason="constraint", url=candidate.url)
            continue
        except PersistenceError as exc:
            failed += 1
            log_event(
                logger,
                logging.WARNING,
                "article_save_failed",
                source_id=source_id,
                url=candidate.url,
                error=str(exc),
            )
            continue
        saved += 1
    return PersistResult(saved_count=saved, skipped_duplicates=duplicates, failed_count=failed)


def _to_article(source_id: str, candidate: CandidateArticle) -> Article:
    return Article(
        id=new_id(),
        source_id=source_id,
        title=candidate.title,
        url=candidate.url,
        content_hash=candidate.content_hash,
        summary=candidate.summary,
        published_at=candidate.published_at,
        discovered_at=utc_now_iso(),
        author=candidate.author,
    )
