import pytest

from feedcrawl.errors import NoArticlesFoundError
from feedcrawl.extract import extract_articles, run_strategy_chain, strategies_for
from feedcrawl.normalize import content_hash

BLOG_URL = "https://example.com/blog"


def _article(index: int) -> str:
    return (
        "<article>"
        f"<h2><a href='/posts/{index}'>Article number {index} headline</a></h2>"
        f"<p>Summary for article {index}</p>"
        "</article>"
    )


def test_article_tags_extract_full_metadata():
    html = """
    <html><body>
      <article>
        <h2><a href="/posts/first">  First   long article title </a></h2>
        <time datetime="2024-01-02T03:04:05Z">Jan 2</time>
        <span class="author">Ann Writer</span>
        <p>  The opening paragraph.  </p>
      </article>
    </body></html>
    """
    strategy, candidates = run_strategy_chain(html, BLOG_URL)
    assert strategy == "article_tags"
    assert len(candidates) == 1
    candidate = candidates[0]
    assert candidate.title == "First long article title"
    assert candidate.url == "https://example.com/posts/first"
    assert candidate.summary == "The opening paragraph."
    assert candidate.published_at == "2024-01-02T03:04:05.000000+00:00"
    assert candidate.author == "Ann Writer"
    assert candidate.content_hash == content_hash(
        "First long article title", "The opening paragraph."
    )


def test_article_tags_take_precedence_over_common_classes():
    html = (
        "<div class='post'><h2><a href='/a'>Common class post title</a></h2></div>"
        "<article><h2><a href='/b'>Semantic article post title</a></h2></article>"
    )
    strategy, candidates = run_strategy_chain(html, BLOG_URL)
    assert strategy == "article_tags"
    assert [item.url for item in candidates] == ["https://example.com/b"]


def test_common_classes_when_no_article_tags():
    html = (
        "<div class='entry'><h3><a href='https://other.example/x'>Entry on another host</a></h3>"
        "<p>Entry text</p></div>"
        "<li class='story'><a href='/y'>Story list item title</a></li>"
    )
    strategy, candidates = run_strategy_chain(html, BLOG_URL)
    assert strategy == "common_classes"
    assert [item.url for item in candidates] == [
        "https://other.example/x",
        "https://example.com/y",
    ]
    assert candidates[0].summary == "Entry text"
    assert candidates[1].summary is None


def test_heading_links_fallback_skips_short_titles():
    html = (
        "<h1><a href='/one'>A heading long enough</a></h1>"
        "<h2><a href='/two'>Short</a></h2>"
        "<h3><a href='javascript:void(0)'>Script link heading text</a></h3>"
        "<h3><a href='/three'>Another heading link</a></h3>"
        "<h2><span><a href='/nested'>Nested link inside a span</a></span></h2>"
    )
    strategy, candidates = run_strategy_chain(html, BLOG_URL)
    assert strategy == "heading_links"
    assert [item.url for item in candidates] == [
        "https://example.com/one",
        "https://example.com/three",
    ]
    assert all(item.summary is None for item in candidates)


def test_containers_without_usable_link_are_skipped():
    html = (
        "<article><h2>Title without any link at all</h2></article>"
        "<article><h2><a href='/ok'>Tiny</a></h2></article>"
        "<article><h2><a href='/good'>A perfectly fine title</a></h2></article>"
    )
    candidates = extract_articles(html, BLOG_URL)
    assert [item.url for item in candidates] == ["https://example.com/good"]


def test_no_articles_raises():
    with pytest.raises(NoArticlesFoundError) as excinfo:
        run_strategy_chain("<html><body><p>nothing here</p></body></html>", BLOG_URL)
    assert str(excinfo.value) == "no articles found on page"


def test_candidates_are_capped():
    html = "".join(_article(index) for index in range(60))
    candidates = extract_articles(html, BLOG_URL)
    assert len(candidates) == 50
    assert candidates[0].url == "https://example.com/posts/0"
    assert candidates[-1].url == "https://example.com/posts/49"


def test_long_summary_is_clipped():
    body = "x" * 600
    html = f"<article><h2><a href='/p'>Long summary article</a></h2><p>{body}</p></article>"
    candidate = extract_articles(html, BLOG_URL)[0]
    assert candidate.summary == "x" * 500 + "..."


def test_hacker_news_site_rule():
    html = """
    <table>
      <tr class="athing"><td><span class="titleline"><a href="item?id=1">Show HN: X</a></span></td></tr>
      <tr class="athing"><td><span class="titleline"><a href="https://blog.example/post">Off-site post</a></span></td></tr>
    </table>
    """
    strategy, candidates = run_strategy_chain(html, "https://news.ycombinator.com/news")
    assert strategy == "hacker_news"
    assert [item.url for item in candidates] == [
        "https://news.ycombinator.com/item?id=1",
        "https://blog.example/post",
    ]
    assert candidates[0].title == "Show HN: X"


def test_lobsters_site_rule():
    html = """
    <ol>
      <li class="story"><a class="u-url" href="/s/abc/rust">Rust things</a></li>
      <li class="story"><span>no link</span></li>
    </ol>
    """
    strategy, candidates = run_strategy_chain(html, "https://lobste.rs/")
    assert strategy == "lobsters"
    assert [item.url for item in candidates] == ["https://lobste.rs/s/abc/rust"]


def test_site_rule_falls_through_to_generic_strategies():
    html = "<article><h2><a href='/x'>Article on a lobsters page</a></h2></article>"
    strategy, candidates = run_strategy_chain(html, "https://lobste.rs/")
    assert strategy == "article_tags"
    assert candidates[0].url == "https://lobste.rs/x"


def test_strategies_for_matches_subdomains_only():
    names = [name for name, _ in strategies_for("https://www.lobste.rs/t/python")]
    assert names == ["lobsters", "article_tags", "common_classes", "heading_links"]
    names = [name for name, _ in strategies_for("https://notlobste.rs/")]
    assert names == ["article_tags", "common_classes", "heading_links"]
