"""Book search results and their text rendering."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass


@dataclass(frozen=True)
class BookResult:
    """One book found by a source."""

    title: str
    author: str = ""
    detail_url: str = ""
    download_url: str = ""
    source: str = ""


def format_books(results: Iterable[BookResult]) -> str:
    """Render results as a numbered Markdown list."""
    lines = []
    for number, result in enumerate(results, start=1):
        entry = f"{number}. **{result.title}**"
        if result.author:
            entry += f" by {result.author}"
        entry += f"\n   Source: {result.source}\n\n"
        lines.append(entry)
    if not lines:
        return "No results found."
    return "".join(lines)