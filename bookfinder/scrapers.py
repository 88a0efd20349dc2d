"""Scrapers that search individual book sites."""

from __future__ import annotations

import json
from urllib.parse import quote, quote_plus, urlencode

import requests
from bs4 import BeautifulSoup

from .httpclient import is_cloudflare_challenge, new_session
from .results import BookResult
from .sources import Scraper

SEARCH_USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36"
MAX_RESULTS = 10

OPEN_LIBRARY_FIELDS = "title,author_name,isbn,key,publisher,publish_date,number_of_pages,format"


class ScraperError(Exception):
    """Raised when a source cannot be searched or returns an unusable page."""


def resolve_url(base: str, relative: str) -> str:
    """Join a site-relative link onto a base URL; absolute links pass through."""
    if relative.startswith("http"):
        return relative
    return base.rstrip("/") + relative


def _fetch(
    session: requests.Session, url: str, source_name: str, headers: dict[str, str]
) -> bytes:
    try:
        response = session.get(url, headers=headers)
    except requests.RequestException as exc:
        raise ScraperError(f"{source_name} request failed: {exc}") from exc
    if response.status_code != 200:
        raise ScraperError(f"{source_name} returned status {response.status_code}")
    body = response.content
    if is_cloudflare_challenge(body.decode("utf-8", errors="replace")):
        raise ScraperError(f"{source_name} blocked by Cloudflare")
    return body


def _joined_query(title: str, author: str) -> str:
    return f"{title} {author}" if author else title


class _HTTPScraper(Scraper):
    default_base = ""

    def __init__(self, session: requests.Session | None = None, base: str | None = None) -> None:
        self.session = session if session is not None else new_session()
        self.base = base if base is not None else self.default_base


class LibGenScraper(_HTTPScraper):
    """Searches the Library Genesis catalogue table."""

    name = "LibGen"
    default_base = "https://libgen.is"

    def search(self, title: str, author: str = "") -> list[BookResult]:
        column = "author" if author else "title"
        query = urlencode([("column", column), ("req", title)])
        url = f"{self.base}/search.php?{query}"
        body = _fetch(self.session, url, self.name, {"User-Agent": SEARCH_USER_AGENT})
        soup = BeautifulSoup(body, "html.parser")

        results: list[BookResult] = []
        rows = soup.select("table#results tr, table[width='100%'] tr")
        for row in rows[1:]:
            link = row.select_one("td > a")
            if link is None:
                continue
            book_title = link.get_text().strip()
            href = link.get("href") or ""
            if not book_title:
                continue
            cells = row.select("td")
            book_author = cells[1].get_text().strip() if len(cells) > 1 else ""
            if href:
                href = resolve_url(self.base, href)
            results.append(
                BookResult(
                    title=book_title,
                    author=book_author,
                    detail_url=href,
                    download_url=href,
                    source=self.name,
                )
            )
        return results[:MAX_RESULTS]


class OceanPDFScraper(_HTTPScraper):
    """Searches the Ocean of PDF blog listing."""

    name = "Ocean of PDF"
    default_base = "https://oceanofpdf.com"

    def search(self, title: str, author: str = "") -> list[BookResult]:
        url = f"{self.base}/?s={quote_plus(_joined_query(title, author))}"
        body = _fetch(self.session, url, self.name, {"User-Agent": SEARCH_USER_AGENT})
        soup = BeautifulSoup(body, "html.parser")

        results: list[BookResult] = []
        for post in soup.select("article, .post, [class*='post']"):
            link = post.select_one("h2 a, h1 a, .entry-title a")
            if link is None:
                continue
            book_title = link.get_text().strip()
            href = link.get("href") or ""
            if book_title and href:
                results.append(
                    BookResult(
                        title=book_title,
                        detail_url=href,
                        download_url=href,
                        source=self.name,
                    )
                )
        return results


class OpenLibraryScraper(_HTTPScraper):
    """Searches the Open Library JSON search API."""

    name = "Open Library"
    default_base = "https://openlibrary.org"

    def search(self, title: str, author: str = "") -> list[BookResult]:
        query = urlencode(
            [
                ("fields", OPEN_LIBRARY_FIELDS),
                ("limit", str(MAX_RESULTS)),
                ("q", _joined_query(title, author)),
            ]
        )
        url = f"{self.base}/search.json?{query}"
        body = _fetch(self.session, url, self.name, {"Accept": "application/json"})
        try:
            payload = json.loads(body)
        except ValueError as exc:
            raise ScraperError(f"failed to parse Open Library response: {exc}") from exc
        if not isinstance(payload, dict):
            raise ScraperError("failed to parse Open Library response: not an object")

        docs = payload.get("docs") or []
        if not payload.get("numFound") or not docs:
            return []

        results: list[BookResult] = []
        for doc in docs[:MAX_RESULTS]:
            detail_url = self.base + (doc.get("key") or "")
            results.append(
                BookResult(
                    title=doc.get("title") or "",
                    author=", ".join(doc.get("author_name") or []),
                    detail_url=detail_url,
                    download_url=detail_url,
                    source=self.name,
                )
            )
        return results


class ZLibraryScraper(_HTTPScraper):
    """Searches the Z-Library result listing."""

    name = "Z-Library"
    default_base = "https://z-library.bz"

    def search(self, title: str, author: str = "") -> list[BookResult]:
        url = f"{self.base}/s/{quote(_joined_query(title, author), safe='$&+:=@')}"
        body = _fetch(self.session, url, self.name, {"User-Agent": SEARCH_USER_AGENT})
        soup = BeautifulSoup(body, "html.parser")

        results: list[BookResult] = []
        items = soup.select("div.resItemBox, .book-item, [class*='resItem'], [class*='book']")
        for item in items:
            link = item.select_one("a[href*='/book/'], h3 a, .title a")
            if link is None:
                continue
            book_title = link.get("title") or link.get_text().strip()
            href = link.get("href") or ""
            if href:
                href = resolve_url(self.base, href)
            author_node = item.select_one(".author, a[href*='/author/']")
            book_author = author_node.get_text().strip() if author_node is not None else ""
            if book_title:
                results.append(
                    BookResult(
                        title=book_title,
                        author=book_author,
                        detail_url=href,
                        download_url=href,
                        source=self.name,
                    )
                )

        if not results:
            for anchor in soup.select("a[href*='/book/']")[:MAX_RESULTS]:
                book_title = anchor.get_text().strip()
                href = anchor.get("href") or ""
                if book_title and href:
                    resolved = resolve_url(self.base, href)
                    results.append(
                        BookResult(
                            title=book_title,
                            detail_url=resolved,
                            download_url=resolved,
                            source=self.name,
                        )
                    )
        return results