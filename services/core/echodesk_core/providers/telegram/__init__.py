"""Telegram provider integration.

This package contains:
- Bot API adapter for auto-replies
- getMe validation used by account quick setup
"""

from echodesk_core.providers.telegram.adapter import (
    TelegramAdapter,
    TelegramBotInfo,
    call_bot_api,
    get_bot_info,
)

__all__ = [
    "TelegramAdapter",
    "TelegramBotInfo",
    "call_bot_api",
    "get_bot_info",
]
