"""Resolve book detail pages to EPUB or PDF files and download them."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass

import requests
from bs4 import BeautifulSoup

from .httpclient import is_cloudflare_challenge, new_session, sleep_with_delay
from .scrapers import resolve_url

MAX_FILE_SIZE = 50 * 1024 * 1024  # Telegram's upload limit
MAX_ATTEMPTS = 3
RATE_LIMIT_DELAY = 5.0
_CHUNK_SIZE = 64 * 1024
_RATE_LIMITED = (429, 503)


class DownloadError(Exception):
    """Raised when a book file cannot be downloaded."""

    default_message = "download failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class NoFileFound(DownloadError):
    """No EPUB or PDF link was found on a detail page."""

    default_message = "no downloadable file found on page"


class FileTooLarge(DownloadError):
    """The file is larger than Telegram accepts."""

    default_message = "file too large to send via Telegram (>50MB)"


class CloudflareBlocked(DownloadError):
    """The source answered with a Cloudflare challenge page."""

    default_message = "source blocked by Cloudflare challenge"


class UnknownSource(DownloadError):
    """No downloader is registered for the requested source."""

    default_message = "no downloader for source"


@dataclass(frozen=True)
class DownloadedFile:
    """A book file ready to be sent."""

    data: bytes
    filename: str
    file_type: str

    @property
    def size(self) -> int:
        return len(self.data)


def fetch_file(session: requests.Session, url: str) -> bytes:
    """GET a URL, retrying when rate limited, and return the body."""
    last_error: Exception | None = None
    for attempt in range(MAX_ATTEMPTS):
        if attempt:
            sleep_with_delay()
        try:
            response = session.get(url, stream=True)
        except requests.RequestException as exc:
            last_error = exc
            continue
        with response:
            if response.status_code in _RATE_LIMITED:
                last_error = DownloadError(f"rate limited (status {response.status_code})")
                time.sleep(RATE_LIMIT_DELAY)
                continue
            if response.status_code != 200:
                raise DownloadError(f"HTTP error {response.status_code} from {url}")
            data = _read_limited(response)
        if is_cloudflare_challenge(data.decode("utf-8", errors="replace")):
            raise CloudflareBlocked()
        return data
    raise DownloadError(f"download failed after retries: {last_error}") from last_error


def _read_limited(response: requests.Response) -> bytes:
    chunks: list[bytes] = []
    total = 0
    try:
        for chunk in response.iter_content(_CHUNK_SIZE):
            total += len(chunk)
            if total > MAX_FILE_SIZE:
                raise FileTooLarge()
            chunks.append(chunk)
    except requests.RequestException as exc:
        raise DownloadError(f"failed to read response body: {exc}") from exc
    return b"".join(chunks)


def extract_filename(href: str, default_ext: str) -> str:
    """Take the file name from the last path segment of a link."""
    last = href.split("/")[-1].split("?", 1)[0]
    if last and "." in last:
        return last
    return f"book.{default_ext}"


def detect_file_type(href: str) -> str:
    """Guess the file type from a link, defaulting to PDF."""
    return "epub" if href.lower().endswith(".epub") else "pdf"


class FileDownloader(ABC):
    """Turns a detail page of one source into a downloaded file."""

    source_name: str = ""

    @abstractmethod
    def download_file(self, detail_url: str) -> DownloadedFile:
        """Fetch the book behind a detail page, preferring EPUB over PDF."""


class DownloadManager:
    """Routes downloads to the downloader registered for each source."""

    def __init__(
        self,
        downloaders: Iterable[FileDownloader] | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.downloaders = {d.source_name: d for d in downloaders or ()}
        self.session = session

    def download_file(self, source_name: str, detail_url: str) -> DownloadedFile:
        downloader = self.downloaders.get(source_name)
        if downloader is None:
            raise UnknownSource(f"no downloader for source {source_name!r}")
        sleep_with_delay()
        return downloader.download_file(detail_url)


class _PageDownloader(FileDownloader):
    default_base = ""
    link_selector = "a"
    fetch_page_context = ""
    fetch_file_context = ""

    def __init__(self, session: requests.Session | None = None, base: str | None = None) -> None:
        self.session = session if session is not None else new_session()
        self.base = base if base is not None else self.default_base

    def _is_candidate(self, text: str, href: str, css_class: str) -> bool:
        return True

    def _is_epub(self, text: str, href: str) -> bool:
        raise NotImplementedError

    def _is_pdf(self, text: str, href: str) -> bool:
        raise NotImplementedError

    def _fetch(self, url: str, context: str) -> bytes:
        try:
            return fetch_file(self.session, url)
        except DownloadError as exc:
            if not context:
                raise
            raise type(exc)(f"{context}: {exc}") from exc

    def download_file(self, detail_url: str) -> DownloadedFile:
        page = self._fetch(detail_url, self.fetch_page_context)
        soup = BeautifulSoup(page, "html.parser")

        epub_link = pdf_link = filename = file_type = ""
        for node in soup.select(self.link_selector):
            href = node.get("href") or ""
            if isinstance(href, list):
                href = " ".join(href)
            if not href:
                continue
            text = node.get_text().strip().lower()
            css_class = " ".join(node.get("class") or [])
            href = resolve_url(self.base, href)
            if not self._is_candidate(text, href, css_class):
                continue
            if not epub_link and self._is_epub(text, href):
                epub_link = href
                filename = extract_filename(href, "epub")
                file_type = "epub"
            elif not pdf_link and self._is_pdf(text, href):
                pdf_link = href
                if not filename:
                    filename = extract_filename(href, "pdf")
                    file_type = "pdf"

        link = epub_link or pdf_link
        if not link:
            raise NoFileFound()
        file_type = file_type or detect_file_type(link)
        filename = filename or f"book.{file_type}"

        data = self._fetch(link, self.fetch_file_context)
        return DownloadedFile(data=data, filename=filename, file_type=file_type)


class LibGenDownloader(_PageDownloader):
    """Downloads books from Library Genesis detail pages."""

    source_name = "LibGen"
    default_base = "https://libgen.is"

    def _is_epub(self, text: str, href: str) -> bool:
        return "epub" in text or href.lower().endswith(".epub")

    def _is_pdf(self, text: str, href: str) -> bool:
        return "pdf" in text or href.lower().endswith(".pdf")

    def download_file(self, detail_url: str) -> DownloadedFile:
        return super().download_file(detail_url)


class OceanPDFDownloader(_PageDownloader):
    """Downloads books from Ocean of PDF detail pages."""

    source_name = "Ocean of PDF"
    default_base = "https://oceanofpdf.com"
    fetch_page_context = "failed to fetch detail page"
    fetch_file_context = "failed to download file"

    def _is_candidate(self, text: str, href: str, css_class: str) -> bool:
        lower_href = href.lower()
        return (
            "download" in text
            or "epub" in text
            or "pdf" in text
            or "download" in css_class.lower()
            or ".epub" in lower_href
            or ".pdf" in lower_href
        )

    def _is_epub(self, text: str, href: str) -> bool:
        return "epub" in text or ".epub" in href.lower()

    def _is_pdf(self, text: str, href: str) -> bool:
        return "pdf" in text or ".pdf" in href.lower()

    def download_file(self, detail_url: str) -> DownloadedFile:
        return super().download_file(detail_url)


class ZLibraryDownloader(_PageDownloader):
    """Downloads books from Z-Library detail pages."""

    source_name = "Z-Library"
    default_base = "https://z-library.bz"
    link_selector = "a, button, [href]"

    def _is_epub(self, text: str, href: str) -> bool:
        return "epub" in text or "epub" in href.lower()

    def _is_pdf(self, text: str, href: str) -> bool:
        return "pdf" in text or "pdf" in href.lower()

    def download_file(self, detail_url: str) -> DownloadedFile:
        return super().download_file(detail_url)