from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlsplit

from ..errors import ConflictError, ConstraintViolationError, NotFoundError, PersistenceError, ValidationError
from ..models import SOURCE_STATUS_ACTIVE, Source, Subscription, SubscriptionWithSource
from ..storage import (
    delete_subscription,
    find_subscription,
    get_source_by_url,
    get_sources_by_ids,
    get_subscription,
    insert_source,
    insert_subscription,
    list_user_subscriptions,
)
from ..utils import is_valid_id, log_event, new_id, utc_now_iso

logger = logging.getLogger("feedcrawl.subscriptions")


def normalize_source_url(url: str) -> tuple[str, str]:
    """Validate a subscription URL and return ``(normalized_url, host)``."""
    raw = (url or "").strip()
    try:
        parts = urlsplit(raw)
    except ValueError as exc:
        raise ValidationError("invalid URL format") from exc
    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise ValidationError("invalid URL format")
    normalized = raw[:-1] if raw.endswith("/") else raw
    return normalized, parts.hostname


def add_subscription(conn: Any, user_id: str, url: str) -> Subscription:
    if not user_id:
        raise ValidationError("user id is required")
    normalized, host = normalize_source_url(url)
    source = _get_or_create_source(conn, normalized, host)

    if find_subscription(conn, user_id, source.id) is not None:
        raise ConflictError("already subscribed to this source")

    subscription = Subscription(
        id=new_id(),
        user_id=user_id,
        source_id=source.id,
        subscribed_at=utc_now_iso(),
    )
    try:
        insert_subscription(conn, subscription)
    except ConstraintViolationError as exc:
        raise ConflictError("already subscribed to this source") from exc
    log_event(
        logger,
        logging.INFO,
        "subscription_added",
        user_id=user_id,
        subscription_id=subscription.id,
        source_id=source.id,
    )
    return subscription


def _get_or_create_source(conn: Any, url: str, host: str) -> Source:
    existing = get_source_by_url(conn, url)
    if existing is not None:
        return existing
    now = utc_now_iso()
    source = Source(
        id=new_id(),
        url=url,
        name=host,
        status=SOURCE_STATUS_ACTIVE,
        last_crawled_at=None,
        last_attempt_at=None,
        last_error="",
        total_articles=0,
        successful_crawls=0,
        failed_crawls=0,
        created_at=now,
        updated_at=now,
    )
    try:
        insert_source(conn, source)
    except ConstraintViolationError:
        # Another subscriber created the same URL first.
        winner = get_source_by_url(conn, url)
        if winner is None:
            raise PersistenceError(f"source for {url} vanished after conflict") from None
        return winner
    log_event(logger, logging.INFO, "source_created", source_id=source.id, url=url)
    return source


def remove_subscription(conn: Any, user_id: str, subscription_id: str) -> None:
    if not is_valid_id(subscription_id):
        raise ValidationError("invalid subscription ID format")
    if get_subscription(conn, user_id, subscription_id) is None:
        raise NotFoundError("subscription not found or unauthorized")
    if delete_subscription(conn, user_id, subscription_id) == 0:
        raise NotFoundError("subscription not found")
    log_event(
        logger,
        logging.INFO,
        "subscription_removed",
        user_id=user_id,
        subscription_id=subscription_id,
    )


def get_user_subscription(conn: Any, user_id: str, subscription_id: str) -> SubscriptionWithSource:
    if not is_valid_id(subscription_id):
        raise ValidationError("invalid subscription ID format")
    subscription = get_subscription(conn, user_id, subscription_id)
    if subscription is None:
        raise NotFoundError("subscription not found")
    sources = get_sources_by_ids(conn, [subscription.source_id])
    source = sources.get(subscription.source_id)
    if source is None:
        raise NotFoundError("subscription not found")
    return SubscriptionWithSource(subscription=subscription, source=source)


def list_subscriptions(conn: Any, user_id: str) -> list[SubscriptionWithSource]:
    subscriptions = list_user_subscriptions(conn, user_id)
    sources = get_sources_by_ids(conn, [item.source_id for item in subscriptions])
    result = []
    for subscription in subscriptions:
        source = sources.get(subscription.source_id)
        if source is None:
            continue
        result.append(SubscriptionWithSource(subscription=subscription, source=source))
    return result
