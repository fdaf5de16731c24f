from __future__ import annotations

import logging
from typing import Any

from ..errors import PersistenceError, RetentionError
from ..storage import count_articles, delete_articles, list_article_ids_by_discovery
from ..utils import log_event

RETENTION_CAP = 50


def enforce_retention(
    conn: Any,
    source_id: str,
    *,
    cap: int = RETENTION_CAP,
    logger: logging.Logger,
) -> int:
    """Keep only the ``cap`` most recently discovered articles of a source.

    Eviction follows ``discovered_at``, not ``published_at``: an old post found
    today outlives a fresh post found last week. Returns the number deleted.
    """
    try:
        total = count_articles(conn, [source_id])
        if total <= cap:
            return 0
        stale_ids = list_article_ids_by_discovery(
            conn, source_id, limit=total - cap, offset=cap
        )
        deleted = delete_articles(conn, stale_ids)
    except PersistenceError as exc:
        raise RetentionError(f"retention failed for source {source_id}: {exc}") from exc
    log_event(logger, logging.INFO, "articles_evicted", source_id=source_id, deleted=deleted)
    return deleted
