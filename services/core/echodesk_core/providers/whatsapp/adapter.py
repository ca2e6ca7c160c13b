"""WhatsApp Cloud API adapter.

The account's page_id holds the WhatsApp phone number id; replies are sent
to the sender's phone number. Images become an image message with the
reply text as caption.

get_phone_number_info backs the account quick setup: it checks that an
access token can read the given phone number id.
"""

from dataclasses import dataclass
from datetime import datetime
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

GRAPH_API_URL = "https://graph.facebook.com"


@dataclass
class WhatsAppPhoneInfo:
    """Business phone number returned by the Graph API."""

    id: str
    display_phone_number: Optional[str] = None
    verified_name: Optional[str] = None


class WhatsAppAdapter(PlatformAdapter):
    """Send auto-replies through the WhatsApp Cloud API."""

    platform = "WhatsApp"
    BASE_URL = GRAPH_API_URL

    def __init__(
        self,
        credentials: AccountCredentials,
        graph_version: str = "v18.0",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(credentials, timeout=timeout, transport=transport)
        self.graph_version = graph_version

    def _payload(self, context: ReplyContext) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": context.sender_id,
        }
        if context.reply_image:
            payload["type"] = "image"
            payload["image"] = {
                "link": context.reply_image,
                "caption": context.reply_content,
            }
        else:
            payload["type"] = "text"
            payload["text"] = {"body": context.reply_content}
        return payload

    async def _deliver(self, context: ReplyContext) -> SendReplyResult:
        phone_number_id = self.credentials.page_id
        if not self.credentials.access_token or not phone_number_id:
            raise AdapterConfigurationError("WhatsApp account not properly configured")
        if not context.sender_id:
            raise AdapterConfigurationError("No WhatsApp recipient to reply to")

        async with self._client() as client:
            response = await client.post(
                f"{self.BASE_URL}/{self.graph_version}/{phone_number_id}/messages",
                headers={"Authorization": f"Bearer {self.credentials.access_token}"},
                json=self._payload(context),
            )

        data = self._json(response)
        if response.status_code >= 400 or "error" in data:
            error = data.get("error", {})
            raise PlatformAPIError(
                f"WhatsApp API error: {error.get('message') or response.status_code}",
                status_code=response.status_code,
            )

        messages = data.get("messages") or []
        message_id = messages[0].get("id") if messages else None
        return SendReplyResult.ok(
            message_id or f"whatsapp_{int(datetime.now().timestamp())}"
        )


async def get_phone_number_info(
    phone_number_id: str,
    access_token: str,
    graph_version: str = "v18.0",
    timeout: float = 15.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> WhatsAppPhoneInfo:
    """Read a business phone number with the given access token.

    Raises:
        PlatformAPIError: If the Graph API rejects the token or the id.
        httpx.HTTPError: On network failures.
    """
    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        response = await client.get(
            f"{GRAPH_API_URL}/{graph_version}/{phone_number_id}",
            headers={"Authorization": f"Bearer {access_token}"},
        )

    try:
        data = response.json()
    except ValueError:
        data = {}

    if response.status_code >= 400 or "error" in data:
        error = data.get("error") or {}
        raise PlatformAPIError(
            error.get("message") or f"HTTP {response.status_code}",
            status_code=response.status_code,
        )

    return WhatsAppPhoneInfo(
        id=str(data.get("id") or phone_number_id),
        display_phone_number=data.get("display_phone_number"),
        verified_name=data.get("verified_name"),
    )
