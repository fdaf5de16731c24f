from __future__ import annotations

import logging
from typing import Any, Callable

from .utils import utc_now_iso

Migration = Callable[[Any], None]


def apply_migrations(conn: Any) -> None:
    # Statements here must stay portable between SQLite and PostgreSQL.
    logger = logging.getLogger("feedcrawl.migrations")
    conn.execute("BEGIN IMMEDIATE")
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version TEXT PRIMARY KEY,
            applied_at TEXT NOT NULL
        )
        """
    )
    applied = {
        row[0]
        for row in conn.execute("SELECT version FROM schema_migrations").fetchall()
    }
    try:
        for version, migration in _get_migrations():
            if version in applied:
                logger.debug("migration_skipped version=%s", version)
                continue
            migration(conn)
            conn.execute(
                "INSERT INTO schema_migrations (version, applied_at) VALUES (?, ?)",
                (version, utc_now_iso()),
            )
            logger.info("migration_applied version=%s", version)
        conn.commit()
    except Exception:
        conn.rollback()
        raise


def _migration_initial_schema(conn: Any) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS sources (
            id TEXT PRIMARY KEY,
            url TEXT NOT NULL,
            name TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'active',
            last_crawled_at TEXT NULL,
            last_attempt_at TEXT NULL,
            last_error TEXT NOT NULL DEFAULT '',
            total_articles INTEGER NOT NULL DEFAULT 0,
            successful_crawls INTEGER NOT NULL DEFAULT 0,
            failed_crawls INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS articles (
            id TEXT PRIMARY KEY,
            source_id TEXT NOT NULL REFERENCES sources(id),
            title TEXT NOT NULL,
            url TEXT NOT NULL,
            content_hash TEXT NOT NULL,
            summary TEXT NULL,
            published_at TEXT NULL,
            discovered_at TEXT NOT NULL,
            author TEXT NULL
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS subscriptions (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            source_id TEXT NOT NULL REFERENCES sources(id),
            subscribed_at TEXT NOT NULL
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )


def _migration_indexes(conn: Any) -> None:
    statements = [
        "CREATE UNIQUE INDEX IF NOT EXISTS url_unique ON sources(url)",
        "CREATE UNIQUE INDEX IF NOT EXISTS source_url_unique ON articles(source_id, url)",
        "CREATE INDEX IF NOT EXISTS source_id_idx ON articles(source_id)",
        "CREATE INDEX IF NOT EXISTS published_at_desc ON articles(published_at DESC)",
        "CREATE INDEX IF NOT EXISTS discovered_at_desc ON articles(discovered_at DESC)",
        "CREATE UNIQUE INDEX IF NOT EXISTS user_source_unique ON subscriptions(user_id, source_id)",
        "CREATE INDEX IF NOT EXISTS user_id_idx ON subscriptions(user_id)",
    ]
    for statement in statements:
        conn.execute(statement)


def _migration_content_hash_unique(conn: Any) -> None:
    # Same text seen on two sources at once: the second insert fails here.
    conn.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS content_hash_unique ON articles(content_hash)"
    )


def _get_migrations() -> list[tuple[str, Migration]]:
    return [
        ("001_initial_schema", _migration_initial_schema),
        ("002_indexes", _migration_indexes),
        ("003_content_hash_unique", _migration_content_hash_unique),
    ]
