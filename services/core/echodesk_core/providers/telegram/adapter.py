"""Telegram Bot API adapter.

Replies go to the chat the inbound message came from (the sender id is the
chat id for private bot chats) as a reply to the original message. When the
step carries an image, sendPhoto is used with the reply text as caption.

The bot token comes from the connected account; an application-wide
TELEGRAM_BOT_TOKEN is used when the account has none.
"""

from dataclasses import dataclass
from typing import Any, Optional

import httpx

from echodesk_core.providers.base import (
    AccountCredentials,
    AdapterConfigurationError,
    PlatformAdapter,
    PlatformAPIError,
    ReplyContext,
    SendReplyResult,
)

TELEGRAM_API_URL = "https://api.telegram.org"

# Telegram caps photo captions at 1024 characters
MAX_CAPTION_LENGTH = 1024


@dataclass
class TelegramBotInfo:
    """Bot identity returned by getMe."""

    id: int
    username: str
    first_name: str


class TelegramAdapter(PlatformAdapter):
    """Send auto-replies through a Telegram bot."""

    platform = "Telegram"

    def __init__(
        self,
        credentials: AccountCredentials,
        fallback_token: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(credentials, timeout=timeout, transport=transport)
        self.fallback_token = fallback_token

    @property
    def bot_token(self) -> str:
        token = self.credentials.access_token or self.fallback_token
        if not token:
            raise AdapterConfigurationError("Telegram bot token not configured")
        return token

    def _build_request(self, context: ReplyContext) -> tuple[str, dict[str, Any]]:
        if not context.sender_id:
            raise AdapterConfigurationError("No Telegram chat to reply to")

        payload: dict[str, Any] = {"chat_id": context.sender_id}
        if context.platform_message_id and context.platform_message_id.isdigit():
            payload["reply_to_message_id"] = int(context.platform_message_id)

        if context.reply_image:
            payload["photo"] = context.reply_image
            payload["caption"] = context.reply_content[:MAX_CAPTION_LENGTH]
            return "sendPhoto", payload

        payload["text"] = context.reply_content
        return "sendMessage", payload

    async def _deliver(self, context: ReplyContext) -> SendReplyResult:
        method, payload = self._build_request(context)
        result = await call_bot_api(
            self.bot_token,
            method,
            payload,
            timeout=self.timeout,
            transport=self.transport,
        )
        return SendReplyResult.ok(str(result["message_id"]))


async def call_bot_api(
    token: str,
    method: str,
    payload: Optional[dict[str, Any]] = None,
    timeout: float = 15.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict[str, Any]:
    """Call a Bot API method and return its `result`.

    Raises:
        PlatformAPIError: If Telegram answers with ok=false.
        httpx.HTTPError: On network failures.
    """
    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        response = await client.post(
            f"{TELEGRAM_API_URL}/bot{token}/{method}",
            json=payload or {},
        )

    try:
        data = response.json()
    except ValueError:
        data = {}

    if not data.get("ok"):
        description = data.get("description") or f"HTTP {response.status_code}"
        raise PlatformAPIError(
            f"Telegram API error: {description}",
            status_code=response.status_code,
        )
    return data.get("result") or {}


async def get_bot_info(
    token: str,
    timeout: float = 15.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> TelegramBotInfo:
    """Validate a bot token with getMe."""
    result = await call_bot_api(token, "getMe", timeout=timeout, transport=transport)
    return TelegramBotInfo(
        id=int(result["id"]),
        username=result.get("username", ""),
        first_name=result.get("first_name", ""),
    )
