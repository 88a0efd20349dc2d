"""Telegram bot that searches online book catalogues and replies with links."""

__version__ = "0.1.0"