from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any

import yaml

from .errors import ConfigError
from .storage import get_setting, set_setting


@dataclass(frozen=True)
class HttpConfig:
    timeout_seconds: int
    user_agent: str


@dataclass(frozen=True)
class CrawlConfig:
    max_candidates: int
    retention_cap: int
    source_timeout_seconds: int
    batch_timeout_seconds: int
    concurrency: int


@dataclass(frozen=True)
class FeedConfig:
    default_page_size: int
    max_page_size: int


@dataclass(frozen=True)
class Config:
    http: HttpConfig
    crawl: CrawlConfig
    feed: FeedConfig


DEFAULT_CONFIG: dict[str, Any] = {
    "http": {
        "timeout_seconds": 30,
        "user_agent": "Mozilla/5.0 (compatible; FeedAggregator/1.0)",
    },
    "crawl": {
        "max_candidates": 50,
        "retention_cap": 50,
        "source_timeout_seconds": 300,
        "batch_timeout_seconds": 1800,
        "concurrency": 4,
    },
    "feed": {
        "default_page_size": 20,
        "max_page_size": 100,
    },
}

CONFIG_KEY = "config.runtime"

_AT_LEAST_ONE = {
    "config.runtime.http.timeout_seconds",
    "config.runtime.crawl.max_candidates",
    "config.runtime.crawl.retention_cap",
    "config.runtime.feed.default_page_size",
    "config.runtime.feed.max_page_size",
}


def default_config() -> Config:
    return _build_config(_deep_copy(DEFAULT_CONFIG))


def load_config_file(path: str | None = None) -> dict[str, Any]:
    """Defaults overlaid with the YAML file at ``path`` or ``FC_CONFIG_PATH``."""
    path = path or os.environ.get("FC_CONFIG_PATH")
    cfg = _deep_copy(DEFAULT_CONFIG)
    if not path or not os.path.exists(path):
        return cfg
    with open(path, "r", encoding="utf-8") as handle:
        try:
            overrides = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid config file {path}: {exc}") from exc
    if not isinstance(overrides, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    _deep_merge(cfg, overrides)
    return cfg


def bootstrap_runtime_config(conn) -> dict[str, Any]:
    cfg = get_setting(conn, CONFIG_KEY, None)
    if cfg is None:
        set_setting(conn, CONFIG_KEY, load_config_file())
        cfg = get_setting(conn, CONFIG_KEY, None)
    if not isinstance(cfg, dict):
        raise ConfigError("config.runtime must be a JSON object")
    return cfg


def get_runtime_config(conn) -> dict[str, Any]:
    cfg = bootstrap_runtime_config(conn)
    errors = validate_runtime_config(cfg)
    if errors:
        raise ConfigError("Invalid config.runtime: " + "; ".join(errors))
    return cfg


def set_runtime_config(conn, cfg: dict[str, Any]) -> None:
    errors = validate_runtime_config(cfg)
    if errors:
        raise ConfigError("Invalid config.runtime: " + "; ".join(errors))
    set_setting(conn, CONFIG_KEY, _deep_copy(cfg))


def load_runtime_config(conn) -> Config:
    return _build_config(get_runtime_config(conn))


def validate_runtime_config(cfg: dict[str, Any]) -> list[str]:
    errors: list[str] = []
    _validate_dict(cfg, DEFAULT_CONFIG, "config.runtime", errors)
    return errors


def _validate_dict(value: Any, schema: dict[str, Any], path: str, errors: list[str]) -> None:
    if not isinstance(value, dict):
        errors.append(f"{path} must be an object")
        return
    for key in schema:
        if key not in value:
            errors.append(f"missing {path}.{key}")
    for key in value:
        if key not in schema:
            errors.append(f"unknown {path}.{key}")
    for key, default in schema.items():
        if key in value:
            _validate_value(value[key], default, f"{path}.{key}", errors)


def _validate_value(value: Any, default: Any, path: str, errors: list[str]) -> None:
    if isinstance(default, dict):
        _validate_dict(value, default, path, errors)
        return
    if isinstance(default, bool):
        if not isinstance(value, bool):
            errors.append(f"{path} must be a boolean")
        return
    if isinstance(default, int):
        if isinstance(value, bool) or not isinstance(value, int):
            errors.append(f"{path} must be an integer")
        elif path in _AT_LEAST_ONE and value < 1:
            errors.append(f"{path} must be at least 1")
        elif value < 0:
            errors.append(f"{path} must not be negative")
        return
    if isinstance(default, str) and not isinstance(value, str):
        errors.append(f"{path} must be a string")


def _build_config(cfg: dict[str, Any]) -> Config:
    http_cfg = cfg["http"]
    crawl_cfg = cfg["crawl"]
    feed_cfg = cfg["feed"]
    return Config(
        http=HttpConfig(
            timeout_seconds=int(http_cfg["timeout_seconds"]),
            user_agent=str(http_cfg["user_agent"]),
        ),
        crawl=CrawlConfig(
            max_candidates=int(crawl_cfg["max_candidates"]),
            retention_cap=int(crawl_cfg["retention_cap"]),
            source_timeout_seconds=int(crawl_cfg["source_timeout_seconds"]),
            batch_timeout_seconds=int(crawl_cfg["batch_timeout_seconds"]),
            concurrency=max(1, int(crawl_cfg["concurrency"])),
        ),
        feed=FeedConfig(
            default_page_size=int(feed_cfg["default_page_size"]),
            max_page_size=int(feed_cfg["max_page_size"]),
        ),
    )


def _deep_merge(base: dict[str, Any], overrides: dict[str, Any]) -> None:
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value


def _deep_copy(value: dict[str, Any]) -> dict[str, Any]:
    return json.loads(json.dumps(value))
