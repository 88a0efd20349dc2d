"""Bot entry point: wiring, long polling and webhook serving."""

from __future__ import annotations

import argparse
import json
import logging
import os
import queue
import threading
from collections.abc import Sequence
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib.parse import urlsplit

import requests

from .config import Config, ConfigError, load
from .handler import BotHandler
from .httpclient import new_session
from .scrapers import LibGenScraper, OceanPDFScraper, OpenLibraryScraper, ZLibraryScraper
from .sources import SourceManager
from .telegram import TelegramBot, TelegramError, parse_command

logger = logging.getLogger(__name__)

DEFAULT_PORT = 10000
UNKNOWN_COMMAND_TEXT = "Unknown command. Use /start to see available commands."


def process_update(bot: Any, handler: BotHandler, update: dict[str, Any]) -> None:
    """Dispatch one Telegram update to the matching handler."""
    message = update.get("message")
    if message is not None:
        text = message.get("text") or ""
        if text.startswith("/"):
            command, _, _ = parse_command(text)
            if command == "start":
                handler.handle_start(bot, update)
            elif command == "search":
                handler.handle_search(bot, update)
            else:
                try:
                    bot.send_message(message["chat"]["id"], UNKNOWN_COMMAND_TEXT)
                except TelegramError as exc:
                    logger.warning("sending message failed: %s", exc)

    if update.get("callback_query") is not None:
        handler.handle_callback(bot, update)


def _process_safely(bot: Any, handler: BotHandler, update: dict[str, Any]) -> None:
    try:
        process_update(bot, handler, update)
    except Exception:
        logger.exception("failed to process update %s", update.get("update_id"))


def run_polling(bot: Any, handler: BotHandler) -> None:
    """Receive updates by long polling and process them one by one."""
    try:
        bot.delete_webhook()
    except TelegramError as exc:
        logger.warning("Failed to delete webhook: %s", exc)
    logger.info("Running in polling mode")
    for update in bot.poll_updates():
        _process_safely(bot, handler, update)


def _make_request_handler(
    webhook_path: str, updates: queue.Queue[dict[str, Any]]
) -> type[BaseHTTPRequestHandler]:
    class _WebhookRequestHandler(BaseHTTPRequestHandler):
        def _reply(self, status: int, body: bytes = b"") -> None:
            self.send_response(status)
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def do_GET(self) -> None:
            if urlsplit(self.path).path == "/health":
                self._reply(200, b"ok")
            else:
                self._reply(404)

        def do_POST(self) -> None:
            if urlsplit(self.path).path != webhook_path:
                self._reply(404)
                return
            length = int(self.headers.get("Content-Length") or 0)
            body = self.rfile.read(length)
            try:
                update = json.loads(body)
            except ValueError:
                self._reply(400)
                return
            if not isinstance(update, dict):
                self._reply(400)
                return
            updates.put(update)
            self._reply(200)

        def log_message(self, format: str, *args: Any) -> None:
            logger.debug(format, *args)

    return _WebhookRequestHandler


def run_webhook(
    bot: Any,
    handler: BotHandler,
    webhook_url: str,
    bot_name: str,
    port: str | int | None = None,
) -> None:
    """Register a webhook and serve it, along with a /health endpoint."""
    webhook_path = "/" + bot_name
    try:
        bot.set_webhook(webhook_url + webhook_path)
    except TelegramError as exc:
        raise SystemExit(f"Failed to set webhook: {exc}") from exc
    logger.info("Webhook set to %s%s", webhook_url, webhook_path)

    try:
        port_number = int(port) if port not in (None, "") else DEFAULT_PORT
    except ValueError as exc:
        raise SystemExit(f"Server failed: invalid port {port!r}") from exc

    updates: queue.Queue[dict[str, Any]] = queue.Queue()

    def worker() -> None:
        while True:
            _process_safely(bot, handler, updates.get())

    threading.Thread(target=worker, name="update-worker", daemon=True).start()

    try:
        server = ThreadingHTTPServer(("", port_number), _make_request_handler(webhook_path, updates))
    except OSError as exc:
        raise SystemExit(f"Server failed: {exc}") from exc
    logger.info("Starting webhook server on :%d", port_number)
    with server:
        server.serve_forever()


def build_handler(config: Config, session: requests.Session) -> BotHandler:
    """Wire the scrapers, in fallback order, into a bot handler."""
    scrapers = [
        OpenLibraryScraper(session),
        ZLibraryScraper(session),
        OceanPDFScraper(session),
        LibGenScraper(session),
    ]
    return BotHandler(config, SourceManager(scrapers))


def main(argv: Sequence[str] | None = None) -> None:
    """Start the bot in webhook mode if WEBHOOK_URL is set, else by polling."""
    parser = argparse.ArgumentParser(
        prog="bookfinder",
        description="Telegram bot that searches several sites for books. "
        "Configured by TELEGRAM_BOT_TOKEN, ALLOWED_USER_IDS, WEBHOOK_URL and PORT.",
    )
    parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")

    try:
        config = load()
    except ConfigError as exc:
        raise SystemExit(f"Failed to load config: {exc}") from exc

    try:
        bot = TelegramBot(config.bot_token)
    except TelegramError as exc:
        raise SystemExit(f"Failed to create bot: {exc}") from exc

    try:
        me = bot.get_me()
    except TelegramError as exc:
        raise SystemExit(f"Failed to get bot info: {exc}") from exc
    username = me.get("username", "")
    logger.info("Authorized on account %s", username)

    handler = build_handler(config, new_session(30.0))

    webhook_url = os.environ.get("WEBHOOK_URL", "")
    if webhook_url:
        run_webhook(bot, handler, webhook_url, username, os.environ.get("PORT"))
    else:
        run_polling(bot, handler)