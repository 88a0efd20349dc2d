"""HTTP session with browser-like headers and shared scraping helpers."""

from __future__ import annotations

import time
from typing import Any

import requests

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

DEFAULT_HEADERS = {
    "User-Agent": DEFAULT_USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
}

REQUEST_DELAY = 1.5


class TimeoutSession(requests.Session):
    """A requests session that applies a default timeout to every request."""

    def __init__(self, timeout: float = 30.0) -> None:
        super().__init__()
        self.timeout = timeout

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        kwargs.setdefault("timeout", self.timeout)
        return super().request(method, url, **kwargs)


def new_session(timeout: float = 30.0) -> TimeoutSession:
    """Create a session that sends browser headers unless a request overrides them."""
    session = TimeoutSession(timeout)
    session.headers.update(DEFAULT_HEADERS)
    return session


def is_cloudflare_challenge(body: str) -> bool:
    """Tell whether an HTML body is a Cloudflare challenge page."""
    lower = body.lower()
    return "checking your browser" in lower or ("cloudflare" in lower and "challenge" in lower)


def sleep_with_delay() -> None:
    """Pause between requests to avoid rate limiting."""
    time.sleep(REQUEST_DELAY)