import io
import time
from urllib.error import HTTPError, URLError

import pytest

from feedcrawl.errors import CrawlDeadlineExceeded, FetchError
from feedcrawl.fetch import fetch_document

USER_AGENT = "Mozilla/5.0 (compatible; FeedAggregator/1.0)"


class _FakeResponse:
    def __init__(self, body: bytes, status: int = 200) -> None:
        self._body = io.BytesIO(body)
        self._status = status

    def getcode(self) -> int:
        return self._status

    def read(self, size: int = -1) -> bytes:
        return self._body.read(size)

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        return None


def test_fetch_returns_body_and_sends_headers(monkeypatch):
    seen = {}

    def fake_urlopen(request, timeout):
        seen["ua"] = request.get_header("User-agent")
        seen["accept"] = request.get_header("Accept")
        seen["timeout"] = timeout
        return _FakeResponse(b"<html>ok</html>")

    monkeypatch.setattr("feedcrawl.fetch.urlopen", fake_urlopen)
    body = fetch_document("https://example.com/", timeout_seconds=30, user_agent=USER_AGENT)
    assert body == b"<html>ok</html>"
    assert seen["ua"] == USER_AGENT
    assert "text/html" in seen["accept"]
    assert 0 < seen["timeout"] <= 30


def test_fetch_reads_large_bodies_in_chunks(monkeypatch):
    payload = b"a" * (200 * 1024)
    monkeypatch.setattr(
        "feedcrawl.fetch.urlopen", lambda request, timeout: _FakeResponse(payload)
    )
    assert fetch_document("https://example.com/", timeout_seconds=30, user_agent=USER_AGENT) == payload


def test_fetch_accepts_any_2xx(monkeypatch):
    monkeypatch.setattr(
        "feedcrawl.fetch.urlopen", lambda request, timeout: _FakeResponse(b"x", status=203)
    )
    assert fetch_document("https://example.com/", timeout_seconds=30, user_agent=USER_AGENT) == b"x"


def test_fetch_http_error_maps_status(monkeypatch):
    def fake_urlopen(request, timeout):
        raise HTTPError(request.full_url, 404, "Not Found", {}, None)

    monkeypatch.setattr("feedcrawl.fetch.urlopen", fake_urlopen)
    with pytest.raises(FetchError) as excinfo:
        fetch_document("https://example.com/missing", timeout_seconds=30, user_agent=USER_AGENT)
    assert str(excinfo.value) == "bad status code: 404"
    assert excinfo.value.http_status == 404


def test_fetch_non_2xx_response_is_error(monkeypatch):
    monkeypatch.setattr(
        "feedcrawl.fetch.urlopen", lambda request, timeout: _FakeResponse(b"", status=304)
    )
    with pytest.raises(FetchError) as excinfo:
        fetch_document("https://example.com/", timeout_seconds=30, user_agent=USER_AGENT)
    assert excinfo.value.http_status == 304


def test_fetch_transport_error(monkeypatch):
    def fake_urlopen(request, timeout):
        raise URLError("connection refused")

    monkeypatch.setattr("feedcrawl.fetch.urlopen", fake_urlopen)
    with pytest.raises(FetchError) as excinfo:
        fetch_document("https://example.com/", timeout_seconds=30, user_agent=USER_AGENT)
    assert str(excinfo.value) == "failed to fetch URL: connection refused"
    assert excinfo.value.http_status is None


def test_fetch_refuses_expired_deadline(monkeypatch):
    def fake_urlopen(request, timeout):
        raise AssertionError("network must not be touched")

    monkeypatch.setattr("feedcrawl.fetch.urlopen", fake_urlopen)
    with pytest.raises(CrawlDeadlineExceeded):
        fetch_document(
            "https://example.com/",
            timeout_seconds=30,
            user_agent=USER_AGENT,
            deadline=time.monotonic() - 1,
        )


def test_fetch_deadline_shortens_timeout(monkeypatch):
    seen = {}

    def fake_urlopen(request, timeout):
        seen["timeout"] = timeout
        return _FakeResponse(b"ok")

    monkeypatch.setattr("feedcrawl.fetch.urlopen", fake_urlopen)
    fetch_document(
        "https://example.com/",
        timeout_seconds=30,
        user_agent=USER_AGENT,
        deadline=time.monotonic() + 2,
    )
    assert seen["timeout"] <= 2
