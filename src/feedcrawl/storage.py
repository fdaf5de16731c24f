from __future__ import annotations

import json
from typing import Any, Iterable

from .models import Article, CrawlOutcome, Source, Subscription
from .utils import json_dumps, utc_now_iso

_SOURCE_COLUMNS = """
    id, url, name, status, last_crawled_at, last_attempt_at, last_error,
    total_articles, successful_crawls, failed_crawls, created_at, updated_at
"""

_ARTICLE_COLUMNS = """
    id, source_id, title, url, content_hash, summary, published_at, discovered_at, author
"""

_SUBSCRIPTION_COLUMNS = "id, user_id, source_id, subscribed_at"


# Sources


def insert_source(conn: Any, source: Source) -> None:
    conn.execute(
        f"""
        INSERT INTO sources ({_SOURCE_COLUMNS})
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            source.id,
            source.url,
            source.name,
            source.status,
            source.last_crawled_at,
            source.last_attempt_at,
            source.last_error,
            source.total_articles,
            source.successful_crawls,
            source.failed_crawls,
            source.created_at,
            source.updated_at,
        ),
    )
    conn.commit()


def get_source(conn: Any, source_id: str) -> Source | None:
    cursor = conn.execute(f"SELECT {_SOURCE_COLUMNS} FROM sources WHERE id = ?", (source_id,))
    row = cursor.fetchone()
    if not row:
        return None
    return _row_to_source(row)


def get_source_by_url(conn: Any, url: str) -> Source | None:
    cursor = conn.execute(f"SELECT {_SOURCE_COLUMNS} FROM sources WHERE url = ?", (url,))
    row = cursor.fetchone()
    if not row:
        return None
    return _row_to_source(row)


def get_sources_by_ids(conn: Any, source_ids: Iterable[str]) -> dict[str, Source]:
    ids = list(dict.fromkeys(source_ids))
    if not ids:
        return {}
    placeholders = ", ".join("?" for _ in ids)
    cursor = conn.execute(
        f"SELECT {_SOURCE_COLUMNS} FROM sources WHERE id IN ({placeholders})",
        ids,
    )
    sources = [_row_to_source(row) for row in cursor.fetchall()]
    return {source.id: source for source in sources}


def mark_source_attempt(conn: Any, source_id: str, attempted_at: str) -> None:
    conn.execute(
        "UPDATE sources SET last_attempt_at = ? WHERE id = ?",
        (attempted_at, source_id),
    )
    conn.commit()


def save_crawl_outcome(conn: Any, source: Source, outcome: CrawlOutcome) -> None:
    """Persist ``source`` as returned by ``apply_outcome`` for ``outcome``.

    Counters are written as increments so crawls of the same source that
    overlap all count.
    """
    if outcome.ok:
        conn.execute(
            """
            UPDATE sources
            SET status = ?, last_crawled_at = ?, last_error = ?, updated_at = ?,
                successful_crawls = successful_crawls + 1,
                total_articles = total_articles + ?
            WHERE id = ?
            """,
            (
                source.status,
                source.last_crawled_at,
                source.last_error,
                source.updated_at,
                outcome.saved_count,
                source.id,
            ),
        )
    else:
        conn.execute(
            """
            UPDATE sources
            SET status = ?, last_error = ?, updated_at = ?,
                failed_crawls = failed_crawls + 1
            WHERE id = ?
            """,
            (source.status, source.last_error, source.updated_at, source.id),
        )
    conn.commit()


# Articles


def article_url_exists(conn: Any, source_id: str, url: str) -> bool:
    cursor = conn.execute(
        "SELECT 1 FROM articles WHERE source_id = ? AND url = ? LIMIT 1",
        (source_id, url),
    )
    return cursor.fetchone() is not None


def content_hash_exists(conn: Any, content_hash: str) -> bool:
    cursor = conn.execute(
        "SELECT 1 FROM articles WHERE content_hash = ? LIMIT 1",
        (content_hash,),
    )
    return cursor.fetchone() is not None


def insert_article(conn: Any, article: Article) -> None:
    conn.execute(
        f"""
        INSERT INTO articles ({_ARTICLE_COLUMNS})
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            article.id,
            article.source_id,
            article.title,
            article.url,
            article.content_hash,
            article.summary,
            article.published_at,
            article.discovered_at,
            article.author,
        ),
    )
    conn.commit()


def count_articles(conn: Any, source_ids: Iterable[str]) -> int:
    ids = list(dict.fromkeys(source_ids))
    if not ids:
        return 0
    placeholders = ", ".join("?" for _ in ids)
    cursor = conn.execute(
        f"SELECT COUNT(*) FROM articles WHERE source_id IN ({placeholders})",
        ids,
    )
    row = cursor.fetchone()
    return int(row[0]) if row else 0


def list_articles(
    conn: Any,
    source_ids: Iterable[str],
    *,
    limit: int,
    offset: int = 0,
) -> list[Article]:
    ids = list(dict.fromkeys(source_ids))
    if not ids or limit <= 0:
        return []
    placeholders = ", ".join("?" for _ in ids)
    cursor = conn.execute(
        f"""
        SELECT {_ARTICLE_COLUMNS}
        FROM articles
        WHERE source_id IN ({placeholders})
        ORDER BY discovered_at DESC, id DESC
        LIMIT ? OFFSET ?
        """,
        [*ids, limit, offset],
    )
    return [_row_to_article(row) for row in cursor.fetchall()]


def list_article_ids_by_discovery(
    conn: Any, source_id: str, *, limit: int, offset: int
) -> list[str]:
    cursor = conn.execute(
        """
        SELECT id
        FROM articles
        WHERE source_id = ?
        ORDER BY discovered_at DESC, id DESC
        LIMIT ? OFFSET ?
        """,
        (source_id, limit, offset),
    )
    return [row[0] for row in cursor.fetchall()]


def delete_articles(conn: Any, article_ids: Iterable[str]) -> int:
    ids = list(article_ids)
    if not ids:
        return 0
    placeholders = ", ".join("?" for _ in ids)
    cursor = conn.execute(f"DELETE FROM articles WHERE id IN ({placeholders})", ids)
    conn.commit()
    return int(cursor.rowcount or 0)


# Subscriptions


def insert_subscription(conn: Any, subscription: Subscription) -> None:
    conn.execute(
        f"INSERT INTO subscriptions ({_SUBSCRIPTION_COLUMNS}) VALUES (?, ?, ?, ?)",
        (
            subscription.id,
            subscription.user_id,
            subscription.source_id,
            subscription.subscribed_at,
        ),
    )
    conn.commit()


def get_subscription(conn: Any, user_id: str, subscription_id: str) -> Subscription | None:
    cursor = conn.execute(
        f"SELECT {_SUBSCRIPTION_COLUMNS} FROM subscriptions WHERE id = ? AND user_id = ?",
        (subscription_id, user_id),
    )
    row = cursor.fetchone()
    if not row:
        return None
    return _row_to_subscription(row)


def find_subscription(conn: Any, user_id: str, source_id: str) -> Subscription | None:
    cursor = conn.execute(
        f"SELECT {_SUBSCRIPTION_COLUMNS} FROM subscriptions WHERE user_id = ? AND source_id = ?",
        (user_id, source_id),
    )
    row = cursor.fetchone()
    if not row:
        return None
    return _row_to_subscription(row)


def list_user_subscriptions(conn: Any, user_id: str) -> list[Subscription]:
    cursor = conn.execute(
        f"""
        SELECT {_SUBSCRIPTION_COLUMNS}
        FROM subscriptions
        WHERE user_id = ?
        ORDER BY subscribed_at, id
        """,
        (user_id,),
    )
    return [_row_to_subscription(row) for row in cursor.fetchall()]


def delete_subscription(conn: Any, user_id: str, subscription_id: str) -> int:
    cursor = conn.execute(
        "DELETE FROM subscriptions WHERE id = ? AND user_id = ?",
        (subscription_id, user_id),
    )
    conn.commit()
    return int(cursor.rowcount or 0)


# Settings


def get_setting(conn: Any, key: str, default: object) -> object:
    cursor = conn.execute("SELECT value FROM settings WHERE key = ?", (key,))
    row = cursor.fetchone()
    if not row:
        return default
    try:
        return json.loads(row[0])
    except json.JSONDecodeError:
        return default


def set_setting(conn: Any, key: str, value: object) -> None:
    now = utc_now_iso()
    conn.execute(
        """
        INSERT INTO settings (key, value, updated_at)
        VALUES (?, ?, ?)
        ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
        """,
        (key, json_dumps(value), now),
    )
    conn.commit()


def _row_to_source(row: tuple) -> Source:
    (
        source_id,
        url,
        name,
        status,
        last_crawled_at,
        last_attempt_at,
        last_error,
        total_articles,
        successful_crawls,
        failed_crawls,
        created_at,
        updated_at,
    ) = row
    return Source(
        id=source_id,
        url=url,
        name=name,
        status=status,
        last_crawled_at=last_crawled_at,
        last_attempt_at=last_attempt_at,
        last_error=last_error or "",
        total_articles=int(total_articles or 0),
        successful_crawls=int(successful_crawls or 0),
        failed_crawls=int(failed_crawls or 0),
        created_at=created_at,
        updated_at=updated_at,
    )


def _row_to_article(row: tuple) -> Article:
    (
        article_id,
        source_id,
        title,
        url,
        content_hash,
        summary,
        published_at,
        discovered_at,
        author,
    ) = row
    return Article(
        id=article_id,
        source_id=source_id,
        title=title,
        url=url,
        content_hash=content_hash,
        summary=summary,
        published_at=published_at,
        discovered_at=discovered_at,
        author=author,
    )


def _row_to_subscription(row: tuple) -> Subscription:
    subscription_id, user_id, source_id, subscribed_at = row
    return Subscription(
        id=subscription_id,
        user_id=user_id,
        source_id=source_id,
        subscribed_at=subscribed_at,
    )
