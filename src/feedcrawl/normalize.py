from __future__ import annotations

import hashlib
import re

_WHITESPACE = re.compile(r"\s+")


def collapse_whitespace(value: str) -> str:
    return _WHITESPACE.sub(" ", value).strip()


def normalize_content(title: str, body: str) -> str:
    return collapse_whitespace(f"{title} {body}".lower())


def content_hash(title: str, body: str) -> str:
    """SHA-256 hex digest of the case- and whitespace-insensitive article text."""
    normalized = normalize_content(title, body or "")
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


def clip(value: str | None, limit: int, marker: str = "") -> str | None:
    if value is None:
        return None
    if len(value) <= limit:
        return value
    return value[:limit] + marker
