from __future__ import annotations

from typing import Any

from ..models import FeedItem, FeedPage
from ..storage import count_articles, get_sources_by_ids, list_articles
from .subscriptions_service import list_subscriptions

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def clamp_pagination(
    page: int | None,
    page_size: int | None,
    default_page_size: int = DEFAULT_PAGE_SIZE,
    max_page_size: int = MAX_PAGE_SIZE,
) -> tuple[int, int]:
    page = page if page and page >= 1 else 1
    if page_size is None or page_size < 1 or page_size > max_page_size:
        page_size = default_page_size
    return page, page_size


def compose_feed(conn: Any, user_id: str, page: int, page_size: int) -> FeedPage:
    """Newest-discovered-first articles across the user's subscribed sources.

    ``page`` and ``page_size`` are expected to be clamped already.
    """
    source_ids = list(
        dict.fromkeys(item.source.id for item in list_subscriptions(conn, user_id))
    )
    if not source_ids:
        return FeedPage(items=[], total_count=0, page=page, page_size=page_size)

    total = count_articles(conn, source_ids)
    articles = list_articles(
        conn, source_ids, limit=page_size, offset=(page - 1) * page_size
    )
    sources = get_sources_by_ids(conn, {article.source_id for article in articles})
    items = [
        FeedItem(article=article, source=sources[article.source_id])
        for article in articles
        if article.source_id in sources
    ]
    return FeedPage(items=items, total_count=total, page=page, page_size=page_size)
