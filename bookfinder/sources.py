"""Search orchestration across several book sources."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable

from .results import BookResult

logger = logging.getLogger(__name__)


class AllSourcesFailed(Exception):
    """Raised when no source produced any result."""


class Scraper(ABC):
    """A source that can be searched for books."""

    name: str = ""

    @abstractmethod
    def search(self, title: str, author: str = "") -> list[BookResult]:
        """Return books matching the title and, if given, the author."""


class SourceManager:
    """Queries every scraper in order and gathers their results."""

    def __init__(self, scrapers: Iterable[Scraper]) -> None:
        self.scrapers = list(scrapers)

    def search(self, title: str, author: str = "") -> list[BookResult]:
        found: list[BookResult] = []
        for scraper in self.scrapers:
            try:
                results = scraper.search(title, author)
            except Exception as exc:  # one failing source must not stop the others
                logger.warning("source %s failed: %s", scraper.name, exc)
                continue
            if results:
                found.extend(results)
        if not found:
            raise AllSourcesFailed("all sources failed")
        return found