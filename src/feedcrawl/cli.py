from __future__ import annotations

import argparse
import json
import logging
from dataclasses import asdict

from .config import ConfigError, get_runtime_config, load_runtime_config
from .crawler import crawl_source, crawl_user_sources
from .db import init_db
from .errors import FeedCrawlError
from .services.feed_service import clamp_pagination, compose_feed
from .services.subscriptions_service import (
    add_subscription,
    list_subscriptions,
    remove_subscription,
)
from .utils import configure_logging, deadline_after, log_event


def _setup_logging() -> logging.Logger:
    return configure_logging("feedcrawl.cli")


def _cmd_crawl(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn = init_db(args.db)
    try:
        config = load_runtime_config(conn)
        result = crawl_source(
            conn,
            args.source_id,
            config,
            logger=logger,
            deadline=deadline_after(config.crawl.source_timeout_seconds),
        )
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        return 1
    except FeedCrawlError as exc:
        log_event(logger, logging.ERROR, "crawl_error", source_id=args.source_id, error=str(exc))
        return 1
    finally:
        conn.close()
    log_event(
        logger,
        logging.INFO,
        "crawl_summary",
        source_id=result.source_id,
        strategy=result.strategy,
        found=result.found_count,
        saved=result.saved_count,
        duplicates=result.skipped_duplicates,
        evicted=result.evicted_count,
        total_articles=result.source.total_articles,
    )
    return 0


def _cmd_crawl_user(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn = init_db(args.db)
    try:
        config = load_runtime_config(conn)
        tally = crawl_user_sources(
            conn,
            args.user_id,
            config,
            logger=logger,
            connect=lambda: init_db(args.db),
            deadline=deadline_after(config.crawl.batch_timeout_seconds),
        )
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        return 1
    except FeedCrawlError as exc:
        log_event(logger, logging.ERROR, "crawl_user_error", user_id=args.user_id, error=str(exc))
        return 1
    finally:
        conn.close()
    for source_id, error in sorted(tally.errors.items()):
        log_event(logger, logging.WARNING, "source_failed", source_id=source_id, error=error)
    log_event(
        logger,
        logging.INFO,
        "crawl_user_summary",
        user_id=args.user_id,
        succeeded=tally.success_count,
        failed=tally.fail_count,
    )
    return 0 if tally.fail_count == 0 else 1


def _cmd_feed(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn = init_db(args.db)
    try:
        config = load_runtime_config(conn)
        page, limit = clamp_pagination(
            args.page,
            args.limit,
            default_page_size=config.feed.default_page_size,
            max_page_size=config.feed.max_page_size,
        )
        feed = compose_feed(conn, args.user_id, page, limit)
    except FeedCrawlError as exc:
        log_event(logger, logging.ERROR, "feed_error", user_id=args.user_id, error=str(exc))
        return 1
    finally:
        conn.close()
    for item in feed.items:
        log_event(
            logger,
            logging.INFO,
            "feed_item",
            source=item.source.name,
            discovered_at=item.article.discovered_at,
            title=json.dumps(item.article.title),
            url=item.article.url,
        )
    log_event(
        logger,
        logging.INFO,
        "feed_page",
        page=feed.page,
        limit=feed.page_size,
        total=feed.total_count,
        total_pages=feed.total_pages,
    )
    return 0


def _cmd_subscriptions_add(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn = init_db(args.db)
    try:
        subscription = add_subscription(conn, args.user_id, args.url)
    except FeedCrawlError as exc:
        log_event(logger, logging.ERROR, "subscription_add_error", error=str(exc))
        return 1
    finally:
        conn.close()
    logger.info(json.dumps(asdict(subscription), indent=2, sort_keys=True))
    return 0


def _cmd_subscriptions_list(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn = init_db(args.db)
    try:
        items = list_subscriptions(conn, args.user_id)
    finally:
        conn.close()
    for item in items:
        log_event(
            logger,
            logging.INFO,
            "subscription",
            subscription_id=item.subscription.id,
            source_id=item.source.id,
            url=item.source.url,
            status=item.source.status,
            total_articles=item.source.total_articles,
        )
    log_event(logger, logging.INFO, "subscriptions_listed", count=len(items))
    return 0


def _cmd_subscriptions_remove(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn = init_db(args.db)
    try:
        remove_subscription(conn, args.user_id, args.subscription_id)
    except FeedCrawlError as exc:
        log_event(logger, logging.ERROR, "subscription_remove_error", error=str(exc))
        return 1
    finally:
        conn.close()
    return 0


def _cmd_db_migrate(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn = init_db(args.db)
    conn.close()
    log_event(logger, logging.INFO, "db_migrated", path=args.db or "default")
    return 0


def _cmd_config_show(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn = init_db(args.db)
    try:
        cfg = get_runtime_config(conn)
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        return 1
    finally:
        conn.close()
    logger.info(json.dumps(cfg, indent=2, sort_keys=True))
    return 0


def _cmd_serve(args: argparse.Namespace, logger: logging.Logger) -> int:
    import uvicorn

    log_event(logger, logging.INFO, "api_starting", host=args.host, port=args.port)
    uvicorn.run("feedcrawl.api:app", host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="feedcrawl", description="feedcrawl CLI")
    parser.add_argument(
        "--db",
        dest="db",
        default=None,
        help="Path to the SQLite state database (defaults to FC_DATA_DIR/state.sqlite3)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    crawl_parser = subparsers.add_parser("crawl", help="Crawl a single source now")
    crawl_parser.add_argument("source_id", help="Source id to crawl")
    crawl_parser.set_defaults(func=_cmd_crawl)

    crawl_user = subparsers.add_parser(
        "crawl-user", help="Crawl every source a user subscribes to"
    )
    crawl_user.add_argument("user_id", help="User id")
    crawl_user.set_defaults(func=_cmd_crawl_user)

    feed_parser = subparsers.add_parser("feed", help="Print a page of a user's feed")
    feed_parser.add_argument("user_id", help="User id")
    feed_parser.add_argument("--page", type=int, default=1, help="Page number (1-based)")
    feed_parser.add_argument("--limit", type=int, default=None, help="Articles per page")
    feed_parser.set_defaults(func=_cmd_feed)

    subs_parser = subparsers.add_parser("subscriptions", help="Manage subscriptions")
    subs_subparsers = subs_parser.add_subparsers(dest="subscriptions_command", required=True)

    subs_add = subs_subparsers.add_parser("add", help="Subscribe a user to a URL")
    subs_add.add_argument("user_id", help="User id")
    subs_add.add_argument("url", help="Page URL to follow")
    subs_add.set_defaults(func=_cmd_subscriptions_add)

    subs_list = subs_subparsers.add_parser("list", help="List a user's subscriptions")
    subs_list.add_argument("user_id", help="User id")
    subs_list.set_defaults(func=_cmd_subscriptions_list)

    subs_remove = subs_subparsers.add_parser("remove", help="Remove a subscription")
    subs_remove.add_argument("user_id", help="User id")
    subs_remove.add_argument("subscription_id", help="Subscription id")
    subs_remove.set_defaults(func=_cmd_subscriptions_remove)

    db_parser = subparsers.add_parser("db", help="Database maintenance")
    db_subparsers = db_parser.add_subparsers(dest="db_command", required=True)

    db_migrate = db_subparsers.add_parser("migrate", help="Apply database migrations")
    db_migrate.set_defaults(func=_cmd_db_migrate)

    config_parser = subparsers.add_parser("config", help="Runtime configuration")
    config_subparsers = config_parser.add_subparsers(dest="config_command", required=True)

    config_show = config_subparsers.add_parser("show", help="Print the runtime config")
    config_show.set_defaults(func=_cmd_config_show)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8080, help="Bind port")
    serve_parser.set_defaults(func=_cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logger = _setup_logging()
    return args.func(args, logger)
