"""Minimal Telegram Bot API client."""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Iterable, Iterator
from typing import Any

import requests

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.telegram.org"

_COMMAND = re.compile(r"^/([A-Za-z0-9_]+)(?:@([A-Za-z0-9_]+))?(?:\s+(.+?)\s*)?$", re.DOTALL)


class TelegramError(Exception):
    """Raised when the Bot API rejects a call or cannot be reached."""

    def __init__(self, message: str, error_code: int | None = None) -> None:
        super().__init__(message)
        self.error_code = error_code


class TelegramBot:
    """A bot account talking to the Telegram Bot API over HTTPS."""

    poll_timeout = 30
    retry_delay = 3.0
    request_timeout = 30.0

    def __init__(
        self,
        token: str,
        session: requests.Session | None = None,
        api_url: str = DEFAULT_API_URL,
    ) -> None:
        if not token:
            raise TelegramError("bot token is empty")
        self._token = token
        self._session = session if session is not None else requests.Session()
        self._api_url = api_url.rstrip("/")

    def _call(self, method: str, payload: dict[str, Any] | None = None, timeout: float | None = None) -> Any:
        url = f"{self._api_url}/bot{self._token}/{method}"
        try:
            response = self._session.post(
                url, json=payload or {}, timeout=timeout or self.request_timeout
            )
        except requests.RequestException as exc:
            raise TelegramError(f"{method}: {exc}") from exc
        try:
            data = response.json()
        except ValueError as exc:
            raise TelegramError(f"{method}: HTTP {response.status_code}", response.status_code) from exc
        if not data.get("ok"):
            description = data.get("description", f"HTTP {response.status_code}")
            raise TelegramError(f"{method}: {description}", data.get("error_code"))
        return data.get("result")

    def get_me(self) -> dict[str, Any]:
        return self._call("getMe")

    def send_message(
        self,
        chat_id: int,
        text: str,
        parse_mode: str | None = None,
        reply_markup: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if parse_mode:
            payload["parse_mode"] = parse_mode
        if reply_markup is not None:
            payload["reply_markup"] = reply_markup
        return self._call("sendMessage", payload)

    def edit_message_text(self, chat_id: int, message_id: int, text: str) -> Any:
        return self._call(
            "editMessageText", {"chat_id": chat_id, "message_id": message_id, "text": text}
        )

    def answer_callback_query(self, callback_query_id: str) -> bool:
        return self._call("answerCallbackQuery", {"callback_query_id": callback_query_id})

    def set_webhook(self, url: str) -> bool:
        return self._call("setWebhook", {"url": url})

    def delete_webhook(self) -> bool:
        return self._call("deleteWebhook")

    def get_updates(self, offset: int | None = None, timeout: int = 0) -> list[dict[str, Any]]:
        payload: dict[str, Any] = {"timeout": timeout}
        if offset is not None:
            payload["offset"] = offset
        return self._call("getUpdates", payload, timeout=timeout + self.request_timeout)

    def poll_updates(self) -> Iterator[dict[str, Any]]:
        """Yield updates forever using long polling, retrying after failures."""
        offset: int | None = None
        while True:
            try:
                updates = self.get_updates(offset, self.poll_timeout)
            except TelegramError as exc:
                logger.warning("getting updates failed: %s", exc)
                time.sleep(self.retry_delay)
                continue
            for update in updates:
                offset = update["update_id"] + 1
                yield update


def parse_command(text: str) -> tuple[str, str, list[str]]:
    """Split "/cmd@bot args" into command, bot username and arguments."""
    match = _COMMAND.match(text)
    if match is None:
        return "", "", []
    command, username, args = match.groups()
    return command, username or "", args.split() if args else []


def inline_keyboard(rows: Iterable[Iterable[dict[str, Any]]]) -> dict[str, Any]:
    """Build an inline keyboard markup from rows of buttons."""
    return {"inline_keyboard": [list(row) for row in rows]}