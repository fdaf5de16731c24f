from __future__ import annotations

import os
import sqlite3
from typing import Any

from .errors import ConstraintViolationError, PersistenceError
from .migrations import apply_migrations

_PG_MIGRATED: set[str] = set()


def get_db_url() -> str | None:
    url = os.environ.get("FC_DB_URL", "").strip()
    return url or None


def is_postgres_url(url: str | None) -> bool:
    if not url:
        return False
    return url.startswith("postgres://") or url.startswith("postgresql://")


def get_state_db_path() -> str:
    data_dir = os.environ.get("FC_DATA_DIR", "/data")
    return os.path.join(data_dir, "state.sqlite3")


class DBConn:
    """Thin wrapper that speaks ``?`` placeholders on both backends.

    Driver exceptions are translated on the way out: unique-key violations become
    ``ConstraintViolationError`` and every other driver failure becomes
    ``PersistenceError``. A failed statement rolls back the open transaction.
    """

    def __init__(self, conn: Any, backend: str) -> None:
        self._conn = conn
        self.backend = backend

    def execute(self, sql: str, params: tuple | list | None = None):
        sql = _normalize_sql(sql, self.backend)
        cursor = self._conn.cursor()
        try:
            cursor.execute(sql, params or ())
        except Exception as exc:  # noqa: BLE001
            translated = self._translate(exc)
            if translated is None:
                raise
            raise translated from exc
        return cursor

    def commit(self) -> None:
        try:
            self._conn.commit()
        except Exception as exc:  # noqa: BLE001
            translated = self._translate(exc)
            if translated is None:
                raise
            raise translated from exc

    def rollback(self) -> None:
        self._conn.rollback()

    def close(self) -> None:
        self._conn.close()

    def __getattr__(self, name: str):
        return getattr(self._conn, name)

    def _translate(self, exc: Exception) -> PersistenceError | None:
        integrity_types, error_types = _driver_errors(self.backend)
        if not isinstance(exc, error_types):
            return None
        try:
            self._conn.rollback()
        except error_types:
            pass
        if isinstance(exc, integrity_types):
            return ConstraintViolationError(str(exc))
        return PersistenceError(str(exc))


def _driver_errors(backend: str) -> tuple[tuple[type[BaseException], ...], tuple[type[BaseException], ...]]:
    if backend == "postgres":
        import psycopg

        return (psycopg.IntegrityError,), (psycopg.Error,)
    return (sqlite3.IntegrityError,), (sqlite3.Error,)


def connect_db(path: str | None = None) -> DBConn:
    url = get_db_url()
    if url and is_postgres_url(url):
        try:
            import psycopg
        except ImportError as exc:  # pragma: no cover - depends on env
            raise RuntimeError("psycopg is required for PostgreSQL support") from exc
        conn = DBConn(psycopg.connect(url), "postgres")
        if url not in _PG_MIGRATED:
            apply_migrations(conn)
            _PG_MIGRATED.add(url)
        return conn

    path = path or get_state_db_path()
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    try:
        raw = sqlite3.connect(path, timeout=5.0)
        raw.execute("PRAGMA journal_mode=WAL")
        raw.execute("PRAGMA synchronous=NORMAL")
        raw.execute("PRAGMA busy_timeout=5000")
    except sqlite3.Error as exc:
        raise PersistenceError(f"cannot open state database {path}: {exc}") from exc
    conn = DBConn(raw, "sqlite")
    apply_migrations(conn)
    return conn


def init_db(path: str | None = None) -> DBConn:
    return connect_db(path)


def _normalize_sql(sql: str, backend: str) -> str:
    if backend != "postgres":
        return sql
    normalized = sql.replace("BEGIN IMMEDIATE", "BEGIN")
    return _convert_qmark_to_percent(normalized)


def _convert_qmark_to_percent(sql: str) -> str:
    out = []
    in_single = False
    in_double = False
    for ch in sql:
        if ch == "'" and not in_double:
            in_single = not in_single
        elif ch == '"' and not in_single:
            in_double = not in_double
        if ch == "?" and not in_single and not in_double:
            out.append("%s")
        else:
            out.append(ch)
    return "".join(out)
