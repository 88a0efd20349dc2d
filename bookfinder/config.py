"""Bot configuration loaded from environment variables."""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_DECIMAL = re.compile(r"[+-]?[0-9]+")


class ConfigError(ValueError):
    """Raised when the configuration is missing or malformed."""


@dataclass(frozen=True)
class Config:
    """Bot token and the set of Telegram users allowed to use the bot."""

    bot_token: str
    allowed_user_ids: frozenset[int]

    def is_allowed(self, user_id: int) -> bool:
        return user_id in self.allowed_user_ids


def _parse_user_id(text: str) -> int:
    if not _DECIMAL.fullmatch(text):
        raise ConfigError(f"invalid user ID {text!r}")
    value = int(text)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ConfigError(f"invalid user ID {text!r}: value out of range")
    return value


def load(environ: Mapping[str, str] | None = None) -> Config:
    """Build a Config from TELEGRAM_BOT_TOKEN and ALLOWED_USER_IDS."""
    env = os.environ if environ is None else environ

    token = env.get("TELEGRAM_BOT_TOKEN", "")
    if not token:
        raise ConfigError("TELEGRAM_BOT_TOKEN is required")

    user_ids = env.get("ALLOWED_USER_IDS", "")
    if not user_ids:
        raise ConfigError("ALLOWED_USER_IDS is required (comma-separated)")

    allowed = frozenset(_parse_user_id(part.strip()) for part in user_ids.split(","))
    return Config(bot_token=token, allowed_user_ids=allowed)