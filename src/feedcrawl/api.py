from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Header, HTTPException
from pydantic import BaseModel

from .config import ConfigError, bootstrap_runtime_config, load_runtime_config
from .db import DBConn, get_state_db_path, init_db
from .errors import ConflictError, NotFoundError, PersistenceError, ValidationError
from .models import FeedPage, SubscriptionWithSource
from .services.feed_service import clamp_pagination, compose_feed
from .services.subscriptions_service import (
    add_subscription,
    get_user_subscription,
    list_subscriptions,
    remove_subscription,
)
from .utils import configure_logging, log_event
from .worker import submit_crawl_source, submit_crawl_user

app = FastAPI(title="feedcrawl API")


class SubscriptionRequest(BaseModel):
    url: str


def _setup_logging() -> logging.Logger:
    return configure_logging("feedcrawl.api")


def _get_version() -> str:
    try:
        from importlib.metadata import version

        return version("feedcrawl")
    except Exception:  # noqa: BLE001
        return "unknown"


def _get_conn() -> DBConn:
    conn = init_db(get_state_db_path())
    bootstrap_runtime_config(conn)
    return conn


def _require_user(x_user_id: str | None = Header(default=None)) -> str:
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="user not authenticated")
    return user_id


def _subscription_entry(item: SubscriptionWithSource) -> dict[str, object]:
    return {"subscription": asdict(item.subscription), "source": asdict(item.source)}


def _feed_payload(feed: FeedPage) -> dict[str, object]:
    return {
        "page": feed.page,
        "limit": feed.page_size,
        "total": feed.total_count,
        "total_pages": feed.total_pages,
        "articles": [
            {"article": asdict(item.article), "source": asdict(item.source)}
            for item in feed.items
        ],
    }


@app.get("/health")
def health() -> dict[str, object]:
    return {
        "ok": True,
        "version": _get_version(),
        "time": datetime.now(tz=timezone.utc).isoformat(),
    }


@app.post("/api/subscriptions", status_code=201)
def subscriptions_create(
    payload: SubscriptionRequest, user_id: str = Depends(_require_user)
) -> dict[str, object]:
    conn = _get_conn()
    try:
        subscription = add_subscription(conn, user_id, payload.url)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    finally:
        conn.close()
    return {
        "message": "Subscription created successfully",
        "subscription": asdict(subscription),
    }


@app.get("/api/subscriptions")
def subscriptions_list(user_id: str = Depends(_require_user)) -> dict[str, object]:
    conn = _get_conn()
    try:
        items = list_subscriptions(conn, user_id)
    except PersistenceError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    finally:
        conn.close()
    return {
        "count": len(items),
        "subscriptions": [_subscription_entry(item) for item in items],
    }


@app.delete("/api/subscriptions/{subscription_id}")
def subscriptions_delete(
    subscription_id: str, user_id: str = Depends(_require_user)
) -> dict[str, str]:
    conn = _get_conn()
    try:
        remove_subscription(conn, user_id, subscription_id)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    finally:
        conn.close()
    return {"message": "Subscription removed successfully"}


# Registered before /api/crawl/{subscription_id} so "all" is not taken as an id.
@app.post("/api/crawl/all")
def crawl_all(user_id: str = Depends(_require_user)) -> dict[str, object]:
    logger = _setup_logging()
    conn = _get_conn()
    try:
        items = list_subscriptions(conn, user_id)
    except PersistenceError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    finally:
        conn.close()
    if not items:
        return {"message": "No subscriptions to crawl", "count": 0}
    submit_crawl_user(user_id, get_state_db_path())
    log_event(logger, logging.INFO, "crawl_all_requested", user_id=user_id, count=len(items))
    return {
        "message": "Crawl started for all subscriptions in background",
        "count": len(items),
    }


@app.post("/api/crawl/{subscription_id}")
def crawl_subscription(
    subscription_id: str, user_id: str = Depends(_require_user)
) -> dict[str, str]:
    logger = _setup_logging()
    conn = _get_conn()
    try:
        item = get_user_subscription(conn, user_id, subscription_id)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail="subscription not found") from exc
    except PersistenceError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    finally:
        conn.close()
    submit_crawl_source(item.source.id, get_state_db_path())
    log_event(
        logger,
        logging.INFO,
        "crawl_requested",
        user_id=user_id,
        subscription_id=subscription_id,
        source_id=item.source.id,
    )
    return {"message": "Crawl started in background"}


@app.get("/api/feed")
def feed(
    page: int = 1, limit: int | None = None, user_id: str = Depends(_require_user)
) -> dict[str, object]:
    conn = _get_conn()
    try:
        config = load_runtime_config(conn)
        page, limit = clamp_pagination(
            page,
            limit,
            default_page_size=config.feed.default_page_size,
            max_page_size=config.feed.max_page_size,
        )
        result = compose_feed(conn, user_id, page, limit)
    except ConfigError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    finally:
        conn.close()
    return _feed_payload(result)


_setup_logging()
