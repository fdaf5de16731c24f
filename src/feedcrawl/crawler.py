from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field, replace
from typing import Any, Callable

from .config import Config
from .errors import CrawlError, FeedCrawlError, PersistenceError, RetentionError, SourceNotFoundError
from .extract import run_strategy_chain
from .fetch import fetch_document
from .models import CrawlOutcome, Source, apply_outcome
from .pipelines.dedupe import persist_candidates
from .pipelines.retention import enforce_retention
from .services.subscriptions_service import list_subscriptions
from .storage import get_source, mark_source_attempt, save_crawl_outcome
from .utils import deadline_after, log_event, utc_now_iso


@dataclass(frozen=True)
class CrawlResult:
    source_id: str
    strategy: str
    found_count: int
    saved_count: int
    skipped_duplicates: int
    failed_count: int
    evicted_count: int
    source: Source


@dataclass(frozen=True)
class CrawlTally:
    success_count: int
    fail_count: int
    errors: dict[str, str] = field(default_factory=dict)


def _logger(logger: logging.Logger | None) -> logging.Logger:
    return logger or logging.getLogger("feedcrawl.crawler")


def crawl_source(
    conn: Any,
    source_id: str,
    config: Config,
    *,
    logger: logging.Logger | None = None,
    deadline: float | None = None,
) -> CrawlResult:
    logger = _logger(logger)
    source = get_source(conn, source_id)
    if source is None:
        raise SourceNotFoundError(source_id)

    attempted_at = utc_now_iso()
    try:
        mark_source_attempt(conn, source.id, attempted_at)
    except PersistenceError as exc:
        log_event(logger, logging.WARNING, "attempt_stamp_failed", source_id=source.id, error=str(exc))
    else:
        source = replace(source, last_attempt_at=attempted_at)

    log_event(logger, logging.INFO, "crawl_started", source_id=source.id, url=source.url)
    try:
        document = fetch_document(
            source.url,
            timeout_seconds=config.http.timeout_seconds,
            user_agent=config.http.user_agent,
            deadline=deadline,
        )
        strategy, candidates = run_strategy_chain(
            document, source.url, max_candidates=config.crawl.max_candidates
        )
        log_event(
            logger,
            logging.INFO,
            "articles_extracted",
            source_id=source.id,
            strategy=strategy,
            found=len(candidates),
        )
        persisted = persist_candidates(
            conn, source.id, candidates, logger=logger, deadline=deadline
        )
    except CrawlError as exc:
        _record_failure(conn, source, exc, logger)
        raise

    evicted = 0
    try:
        evicted = enforce_retention(
            conn, source.id, cap=config.crawl.retention_cap, logger=logger
        )
    except RetentionError as exc:
        log_event(logger, logging.WARNING, "retention_failed", source_id=source.id, error=str(exc))

    outcome = CrawlOutcome(ok=True, finished_at=utc_now_iso(), saved_count=persisted.saved_count)
    updated = apply_outcome(source, outcome)
    save_crawl_outcome(conn, updated, outcome)
    updated = get_source(conn, source.id) or updated
    log_event(
        logger,
        logging.INFO,
        "crawl_complete",
        source_id=source.id,
        saved=persisted.saved_count,
        duplicates=persisted.skipped_duplicates,
        evicted=evicted,
    )
    return CrawlResult(
        source_id=source.id,
        strategy=strategy,
        found_count=len(candidates),
        saved_count=persisted.saved_count,
        skipped_duplicates=persisted.skipped_duplicates,
        failed_count=persisted.failed_count,
        evicted_count=evicted,
        source=updated,
    )


def _record_failure(conn: Any, source: Source, exc: CrawlError, logger: logging.Logger) -> None:
    log_event(logger, logging.ERROR, "crawl_failed", source_id=source.id, error=str(exc))
    outcome = CrawlOutcome(ok=False, finished_at=utc_now_iso(), error=str(exc))
    try:
        save_crawl_outcome(conn, apply_outcome(source, outcome), outcome)
    except PersistenceError as save_exc:
        log_event(
            logger,
            logging.ERROR,
            "source_status_save_failed",
            source_id=source.id,
            error=str(save_exc),
        )


def crawl_user_sources(
    conn: Any,
    user_id: str,
    config: Config,
    *,
    logger: logging.Logger | None = None,
    connect: Callable[[], Any] | None = None,
    deadline: float | None = None,
) -> CrawlTally:
    """Crawl every distinct source the user subscribes to and tally the outcomes.

    Without ``connect`` the crawls run one after another on ``conn``. With it,
    up to ``config.crawl.concurrency`` crawls run in threads, each on a fresh
    connection from ``connect``.
    """
    logger = _logger(logger)
    source_ids = list(
        dict.fromkeys(item.source.id for item in list_subscriptions(conn, user_id))
    )
    if not source_ids:
        return CrawlTally(success_count=0, fail_count=0)

    errors: dict[str, str] = {}
    workers = min(config.crawl.concurrency, len(source_ids))
    if connect is None or workers <= 1:
        for source_id in source_ids:
            error = _crawl_one(conn, source_id, config, logger, deadline)
            if error is not None:
                errors[source_id] = error
    else:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                executor.submit(_crawl_isolated, connect, source_id, config, logger, deadline): source_id
                for source_id in source_ids
            }
            for future in as_completed(futures):
                error = future.result()
                if error is not None:
                    errors[futures[future]] = error

    tally = CrawlTally(
        success_count=len(source_ids) - len(errors),
        fail_count=len(errors),
        errors=errors,
    )
    log_event(
        logger,
        logging.INFO,
        "user_crawl_complete",
        user_id=user_id,
        succeeded=tally.success_count,
        failed=tally.fail_count,
    )
    return tally


def _crawl_isolated(
    connect: Callable[[], Any],
    source_id: str,
    config: Config,
    logger: logging.Logger,
    deadline: float | None,
) -> str | None:
    try:
        conn = connect()
    except Exception as exc:  # noqa: BLE001
        log_event(logger, logging.ERROR, "crawl_connect_failed", source_id=source_id, error=repr(exc))
        return str(exc) or exc.__class__.__name__
    try:
        return _crawl_one(conn, source_id, config, logger, deadline)
    finally:
        conn.close()


def _crawl_one(
    conn: Any,
    source_id: str,
    config: Config,
    logger: logging.Logger,
    batch_deadline: float | None,
) -> str | None:
    deadline = deadline_after(config.crawl.source_timeout_seconds)
    if batch_deadline is not None:
        deadline = batch_deadline if deadline is None else min(deadline, batch_deadline)
    try:
        crawl_source(conn, source_id, config, logger=logger, deadline=deadline)
    except FeedCrawlError as exc:
        return str(exc) or exc.__class__.__name__
    except Exception as exc:  # noqa: BLE001
        log_event(logger, logging.ERROR, "crawl_crashed", source_id=source_id, error=repr(exc))
        return repr(exc)
    return None
