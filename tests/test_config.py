import copy

import pytest
import yaml

from feedcrawl.config import (
    DEFAULT_CONFIG,
    bootstrap_runtime_config,
    get_runtime_config,
    load_runtime_config,
    set_runtime_config,
)
from feedcrawl.db import init_db
from feedcrawl.errors import ConfigError


def test_bootstrap_creates_runtime_config(tmp_path):
    conn = init_db()
    cfg = bootstrap_runtime_config(conn)
    assert cfg == DEFAULT_CONFIG


def test_load_runtime_config_defaults(conn):
    config = load_runtime_config(conn)
    assert config.http.timeout_seconds == 30
    assert config.http.user_agent == "Mozilla/5.0 (compatible; FeedAggregator/1.0)"
    assert config.crawl.max_candidates == 50
    assert config.crawl.retention_cap == 50
    assert config.crawl.source_timeout_seconds == 300
    assert config.crawl.batch_timeout_seconds == 1800
    assert config.feed.default_page_size == 20
    assert config.feed.max_page_size == 100


def test_bootstrap_overlays_yaml_file(tmp_path, monkeypatch):
    cfg_path = tmp_path / "config.yml"
    cfg_path.write_text(
        yaml.safe_dump({"crawl": {"retention_cap": 10}, "http": {"timeout_seconds": 5}}),
        encoding="utf-8",
    )
    monkeypatch.setenv("FC_CONFIG_PATH", str(cfg_path))
    conn = init_db(str(tmp_path / "state.sqlite3"))
    config = load_runtime_config(conn)
    assert config.crawl.retention_cap == 10
    assert config.http.timeout_seconds == 5
    assert config.crawl.max_candidates == 50


def test_get_runtime_config_after_set(conn):
    custom = copy.deepcopy(DEFAULT_CONFIG)
    custom["http"]["user_agent"] = "TestAgent/1.0"
    set_runtime_config(conn, custom)
    cfg = get_runtime_config(conn)
    assert cfg["http"]["user_agent"] == "TestAgent/1.0"
    assert load_runtime_config(conn).http.user_agent == "TestAgent/1.0"


def test_set_runtime_config_rejects_invalid(conn):
    invalid = {"http": {"timeout_seconds": 5, "user_agent": "Bad"}}
    with pytest.raises(ConfigError) as excinfo:
        set_runtime_config(conn, invalid)
    assert "Invalid config.runtime" in str(excinfo.value)
    assert "missing config.runtime.crawl" in str(excinfo.value)


def test_set_runtime_config_rejects_bad_types(conn):
    custom = copy.deepcopy(DEFAULT_CONFIG)
    custom["crawl"]["source_timeout_seconds"] = -1
    custom["http"]["timeout_seconds"] = "thirty"
    custom["feed"]["extra"] = 1
    with pytest.raises(ConfigError) as excinfo:
        set_runtime_config(conn, custom)
    message = str(excinfo.value)
    assert "config.runtime.crawl.source_timeout_seconds must not be negative" in message
    assert "config.runtime.http.timeout_seconds must be an integer" in message
    assert "unknown config.runtime.feed.extra" in message


@pytest.mark.parametrize(
    "section, key",
    [
        ("http", "timeout_seconds"),
        ("crawl", "max_candidates"),
        ("crawl", "retention_cap"),
        ("feed", "default_page_size"),
        ("feed", "max_page_size"),
    ],
)
def test_set_runtime_config_rejects_zero_sizes(conn, section, key):
    custom = copy.deepcopy(DEFAULT_CONFIG)
    custom[section][key] = 0
    with pytest.raises(ConfigError) as excinfo:
        set_runtime_config(conn, custom)
    assert f"config.runtime.{section}.{key} must be at least 1" in str(excinfo.value)


def test_zero_source_timeout_is_allowed(conn):
    custom = copy.deepcopy(DEFAULT_CONFIG)
    custom["crawl"]["source_timeout_seconds"] = 0
    set_runtime_config(conn, custom)
    assert load_runtime_config(conn).crawl.source_timeout_seconds == 0
