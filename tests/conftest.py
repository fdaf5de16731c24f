from __future__ import annotations

import pytest


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path, monkeypatch):
    # Every test gets its own SQLite state directory and no config overlay.
    monkeypatch.delenv("FC_DB_URL", raising=False)
    monkeypatch.delenv("FC_CONFIG_PATH", raising=False)
    monkeypatch.setenv("FC_DATA_DIR", str(tmp_path / "data"))


@pytest.fixture
def conn(tmp_path):
    from feedcrawl.db import init_db

    connection = init_db(str(tmp_path / "state.sqlite3"))
    yield connection
    connection.close()
