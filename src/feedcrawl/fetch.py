from __future__ import annotations

import logging
import time
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from .errors import CrawlDeadlineExceeded, FetchError
from .utils import log_event

_CHUNK_SIZE = 64 * 1024

logger = logging.getLogger("feedcrawl.fetch")


def fetch_document(
    url: str,
    *,
    timeout_seconds: float,
    user_agent: str,
    deadline: float | None = None,
) -> bytes:
    """GET ``url`` once and return the body.

    ``timeout_seconds`` bounds the whole request, including the body read;
    ``deadline`` (a ``time.monotonic`` value) can only shorten that budget.
    """
    budget = float(timeout_seconds)
    if deadline is not None:
        budget = min(budget, deadline - time.monotonic())
    if budget <= 0:
        raise CrawlDeadlineExceeded("deadline exceeded before fetch")
    expires_at = time.monotonic() + budget

    request = Request(
        url,
        headers={
            "User-Agent": user_agent,
            "Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.8",
        },
    )
    try:
        with urlopen(request, timeout=budget) as response:
            status = response.getcode()
            if status is not None and not 200 <= status < 300:
                raise FetchError(f"bad status code: {status}", http_status=status)
            chunks: list[bytes] = []
            while True:
                if time.monotonic() >= expires_at:
                    raise CrawlDeadlineExceeded(f"fetch deadline exceeded after {budget:.1f}s")
                chunk = response.read(_CHUNK_SIZE)
                if not chunk:
                    break
                chunks.append(chunk)
    except HTTPError as exc:
        raise FetchError(f"bad status code: {exc.code}", http_status=exc.code) from exc
    except (URLError, TimeoutError, OSError, ValueError) as exc:
        reason = getattr(exc, "reason", exc)
        raise FetchError(f"failed to fetch URL: {reason}") from exc

    body = b"".join(chunks)
    log_event(logger, logging.DEBUG, "document_fetched", url=url, status=status, bytes=len(body))
    return body
