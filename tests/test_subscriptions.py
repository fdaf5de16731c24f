import pytest

from feedcrawl.errors import ConflictError, NotFoundError, ValidationError
from feedcrawl.services.subscriptions_service import (
    add_subscription,
    get_user_subscription,
    list_subscriptions,
    normalize_source_url,
    remove_subscription,
)
from feedcrawl.storage import get_source
from feedcrawl.utils import new_id


def _source_count(conn) -> int:
    return conn.execute("SELECT COUNT(*) FROM sources").fetchone()[0]


def test_add_subscription_creates_source(conn):
    subscription = add_subscription(conn, "user-1", "https://example.com/blog/")
    source = get_source(conn, subscription.source_id)
    assert source.url == "https://example.com/blog"
    assert source.name == "example.com"
    assert source.status == "active"
    assert source.total_articles == 0
    assert subscription.user_id == "user-1"


@pytest.mark.parametrize(
    "url",
    ["ftp://example.com/file", "not a url", "https://", "", "mailto:someone@example.com"],
)
def test_add_subscription_rejects_invalid_urls(conn, url):
    with pytest.raises(ValidationError) as excinfo:
        add_subscription(conn, "user-1", url)
    assert str(excinfo.value) == "invalid URL format"
    assert _source_count(conn) == 0


def test_normalize_strips_one_trailing_slash():
    assert normalize_source_url("https://example.com/blog/") == (
        "https://example.com/blog",
        "example.com",
    )
    assert normalize_source_url("http://example.com") == ("http://example.com", "example.com")


def test_duplicate_subscription_conflicts(conn):
    add_subscription(conn, "user-1", "https://example.com/blog")
    with pytest.raises(ConflictError) as excinfo:
        add_subscription(conn, "user-1", "https://example.com/blog/")
    assert str(excinfo.value) == "already subscribed to this source"
    assert len(list_subscriptions(conn, "user-1")) == 1


def test_users_share_one_source(conn):
    first = add_subscription(conn, "user-1", "https://example.com/blog")
    second = add_subscription(conn, "user-2", "https://example.com/blog")
    assert first.source_id == second.source_id
    assert first.id != second.id
    assert _source_count(conn) == 1


def test_list_is_scoped_to_user(conn):
    add_subscription(conn, "user-1", "https://example.com/a")
    add_subscription(conn, "user-1", "https://example.com/b")
    add_subscription(conn, "user-2", "https://example.com/c")
    urls = [item.source.url for item in list_subscriptions(conn, "user-1")]
    assert sorted(urls) == ["https://example.com/a", "https://example.com/b"]
    assert list_subscriptions(conn, "nobody") == []


def test_list_skips_vanished_sources(conn):
    kept = add_subscription(conn, "user-1", "https://example.com/a")
    gone = add_subscription(conn, "user-1", "https://example.com/b")
    conn.execute("DELETE FROM sources WHERE id = ?", (gone.source_id,))
    conn.commit()
    items = list_subscriptions(conn, "user-1")
    assert [item.subscription.id for item in items] == [kept.id]


def test_remove_subscription(conn):
    subscription = add_subscription(conn, "user-1", "https://example.com/a")
    remove_subscription(conn, "user-1", subscription.id)
    assert list_subscriptions(conn, "user-1") == []
    # The source outlives its last subscriber.
    assert get_source(conn, subscription.source_id) is not None


def test_remove_other_users_subscription_is_not_found(conn):
    subscription = add_subscription(conn, "user-1", "https://example.com/a")
    with pytest.raises(NotFoundError):
        remove_subscription(conn, "user-2", subscription.id)
    assert len(list_subscriptions(conn, "user-1")) == 1


def test_remove_unknown_and_malformed_ids(conn):
    with pytest.raises(NotFoundError):
        remove_subscription(conn, "user-1", new_id())
    with pytest.raises(ValidationError) as excinfo:
        remove_subscription(conn, "user-1", "abc")
    assert str(excinfo.value) == "invalid subscription ID format"


def test_get_user_subscription_is_ownership_scoped(conn):
    subscription = add_subscription(conn, "user-1", "https://example.com/a")
    item = get_user_subscription(conn, "user-1", subscription.id)
    assert item.source.url == "https://example.com/a"
    with pytest.raises(NotFoundError):
        get_user_subscription(conn, "user-2", subscription.id)


def test_add_subscription_requires_user(conn):
    with pytest.raises(ValidationError):
        add_subscription(conn, "", "https://example.com/a")
