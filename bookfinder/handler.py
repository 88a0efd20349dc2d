"""Telegram command and callback handling for book searches."""

from __future__ import annotations

import logging
import re
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from .config import Config
from .results import BookResult, format_books
from .telegram import TelegramError, inline_keyboard, parse_command

logger = logging.getLogger(__name__)

RESULTS_TTL = 10 * 60.0
AUTHOR_FLAG = "--author "
CALLBACK_PREFIX = "link_"

WELCOME_TEXT = (
    "Welcome to Book Finder Bot!\n\n"
    "Usage:\n"
    "/search <book name> — search for a book\n"
    "/search <book name> --author <author> — search by author\n"
)
MISSING_QUERY_TEXT = "Please provide a book name. Usage: /search <book name>"
SEARCHING_TEXT = "Searching..."
NOT_FOUND_TEXT = "Book not found"
LINK_NOT_FOUND_TEXT = "Download link not found"
UNAUTHORIZED_TEXT = "You're not authorized"

_INDEX = re.compile(r"[+-]?[0-9]+")

Update = dict[str, Any]


class SearchService(Protocol):
    """Anything that can search for books by title and author."""

    def search(self, title: str, author: str = "") -> list[BookResult]: ...


@dataclass
class _Stored:
    results: list[BookResult]
    expires_at: float


class BotHandler:
    """Answers /start, /search and inline-button callbacks."""

    def __init__(
        self,
        config: Config,
        manager: SearchService,
        *,
        results_ttl: float = RESULTS_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.manager = manager
        self.results_ttl = results_ttl
        self._clock = clock
        self._results: dict[int, _Stored] = {}
        self._lock = threading.Lock()

    def handle_start(self, bot: Any, update: Update) -> None:
        if not self._check_authorized(bot, update):
            return
        _send(bot, update["message"]["chat"]["id"], WELCOME_TEXT)

    def handle_search(self, bot: Any, update: Update) -> None:
        if not self._check_authorized(bot, update):
            return
        message = update["message"]
        chat_id = message["chat"]["id"]

        args = self.extract_command_args(message.get("text") or "")
        if not args.strip():
            _send(bot, chat_id, MISSING_QUERY_TEXT)
            return

        title, author = self.parse_search_args(args)

        sent = _send(bot, chat_id, SEARCHING_TEXT)
        if sent is None:
            return

        try:
            results = self.manager.search(title, author)
        except Exception as exc:
            logger.info("search for %r failed: %s", title, exc)
            results = []
        if not results:
            try:
                bot.edit_message_text(chat_id, sent["message_id"], NOT_FOUND_TEXT)
            except TelegramError as exc:
                logger.warning("editing message failed: %s", exc)
            return

        text = f"Found {len(results)} result(s):\n\n" + format_books(results)
        buttons = [
            [{"text": f"Download {result.source}", "callback_data": f"{CALLBACK_PREFIX}{index}"}]
            for index, result in enumerate(results)
        ]

        self.store_results(chat_id, results)
        _send(bot, chat_id, text, parse_mode="Markdown", reply_markup=inline_keyboard(buttons))

    def handle_callback(self, bot: Any, update: Update) -> None:
        query = update.get("callback_query")
        if query is None:
            return
        message = query.get("message")
        if message is None:
            return
        data = query.get("data") or ""
        chat_id = message["chat"]["id"]

        try:
            bot.answer_callback_query(query["id"])
        except TelegramError as exc:
            logger.warning("answering callback failed: %s", exc)

        if not data.startswith(CALLBACK_PREFIX):
            return
        index_text = data[len(CALLBACK_PREFIX):]
        if not _INDEX.fullmatch(index_text):
            return
        index = int(index_text)

        results = self.get_results(chat_id)
        if results is None or not 0 <= index < len(results):
            _send(bot, chat_id, LINK_NOT_FOUND_TEXT)
            return

        result = results[index]
        _send(
            bot,
            chat_id,
            f"Download link for **{result.title}**:\n{result.download_url}",
            parse_mode="Markdown",
        )

    def parse_search_args(self, args: str) -> tuple[str, str]:
        """Split "title --author name" into title and author."""
        position = args.find(AUTHOR_FLAG)
        if position == -1:
            return args.strip(), ""
        return args[:position].strip(), args[position + len(AUTHOR_FLAG):].strip()

    def extract_command_args(self, text: str) -> str:
        """Return the arguments after a command, joined by single spaces."""
        _, _, args = parse_command(text)
        return " ".join(args)

    def store_results(self, chat_id: int, results: Sequence[BookResult]) -> None:
        """Keep a chat's results for callback lookups until they expire."""
        now = self._clock()
        with self._lock:
            expired = [key for key, stored in self._results.items() if stored.expires_at <= now]
            for key in expired:
                del self._results[key]
            self._results[chat_id] = _Stored(list(results), now + self.results_ttl)

    def get_results(self, chat_id: int) -> list[BookResult] | None:
        """Return a chat's stored results, or None if absent or expired."""
        with self._lock:
            stored = self._results.get(chat_id)
            if stored is None:
                return None
            if stored.expires_at <= self._clock():
                del self._results[chat_id]
                return None
            return list(stored.results)

    def _check_authorized(self, bot: Any, update: Update) -> bool:
        message = update.get("message")
        query = update.get("callback_query")
        user_id = 0
        if message is not None:
            user_id = (message.get("from") or {}).get("id", 0)
        elif query is not None:
            user_id = (query.get("from") or {}).get("id", 0)

        if self.config.is_allowed(user_id):
            return True
        if message is not None:
            _send(bot, message["chat"]["id"], UNAUTHORIZED_TEXT)
        return False


def _send(bot: Any, chat_id: int, text: str, **kwargs: Any) -> dict[str, Any] | None:
    try:
        return bot.send_message(chat_id, text, **kwargs)
    except TelegramError as exc:
        logger.warning("sending message failed: %s", exc)
        return None