"""Telegram-specific clients and adapters."""

from .client import BotClient, HttpBotClient
from .parsing import parse_incoming_update
from .types import (
    MediaAttachment,
    TelegramCallbackQuery,
    TelegramIncomingMessage,
    TelegramIncomingUpdate,
    TelegramSender,
)

__all__ = [
    "BotClient",
    "HttpBotClient",
    "MediaAttachment",
    "TelegramCallbackQuery",
    "TelegramIncomingMessage",
    "TelegramIncomingUpdate",
    "TelegramSender",
    "parse_incoming_update",
]
