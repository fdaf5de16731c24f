from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor

from .config import ConfigError, load_runtime_config
from .crawler import CrawlTally, crawl_source, crawl_user_sources
from .db import init_db
from .errors import FeedCrawlError, PersistenceError
from .utils import configure_logging, deadline_after, log_event

_EXECUTOR: ThreadPoolExecutor | None = None
_EXECUTOR_LOCK = threading.Lock()


def _setup_logging() -> logging.Logger:
    return configure_logging("feedcrawl.worker")


def get_executor() -> ThreadPoolExecutor:
    global _EXECUTOR
    with _EXECUTOR_LOCK:
        if _EXECUTOR is None:
            max_workers = max(1, int(os.environ.get("FC_WORKER_CONCURRENCY", "4")))
            _EXECUTOR = ThreadPoolExecutor(
                max_workers=max_workers, thread_name_prefix="feedcrawl-worker"
            )
        return _EXECUTOR


def shutdown(wait: bool = True) -> None:
    global _EXECUTOR
    with _EXECUTOR_LOCK:
        executor, _EXECUTOR = _EXECUTOR, None
    if executor is not None:
        executor.shutdown(wait=wait)


def submit_crawl_source(source_id: str, db_path: str | None = None) -> Future:
    """Queue a single-source crawl; the returned future resolves to success."""
    log_event(_setup_logging(), logging.INFO, "crawl_submitted", source_id=source_id)
    return get_executor().submit(run_crawl_source, source_id, db_path)


def submit_crawl_user(user_id: str, db_path: str | None = None) -> Future:
    log_event(_setup_logging(), logging.INFO, "user_crawl_submitted", user_id=user_id)
    return get_executor().submit(run_crawl_user, user_id, db_path)


def run_crawl_source(source_id: str, db_path: str | None = None) -> bool:
    logger = _setup_logging()
    try:
        conn = init_db(db_path)
    except PersistenceError as exc:
        log_event(logger, logging.ERROR, "db_error", source_id=source_id, error=str(exc))
        return False
    try:
        config = load_runtime_config(conn)
        deadline = deadline_after(config.crawl.source_timeout_seconds)
        crawl_source(conn, source_id, config, logger=logger, deadline=deadline)
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        return False
    except FeedCrawlError as exc:
        log_event(logger, logging.WARNING, "background_crawl_failed", source_id=source_id, error=str(exc))
        return False
    except Exception as exc:  # noqa: BLE001
        log_event(logger, logging.ERROR, "background_crawl_crashed", source_id=source_id, error=repr(exc))
        return False
    finally:
        conn.close()
    return True


def run_crawl_user(user_id: str, db_path: str | None = None) -> CrawlTally | None:
    logger = _setup_logging()
    try:
        conn = init_db(db_path)
    except PersistenceError as exc:
        log_event(logger, logging.ERROR, "db_error", user_id=user_id, error=str(exc))
        return None
    try:
        config = load_runtime_config(conn)
        return crawl_user_sources(
            conn,
            user_id,
            config,
            logger=logger,
            connect=lambda: init_db(db_path),
            deadline=deadline_after(config.crawl.batch_timeout_seconds),
        )
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        return None
    except Exception as exc:  # noqa: BLE001
        log_event(logger, logging.ERROR, "background_user_crawl_crashed", user_id=user_id, error=repr(exc))
        return None
    finally:
        conn.close()
