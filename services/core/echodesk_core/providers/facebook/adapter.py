"""Facebook reply adapter (Graph API).

Comments are answered in place with a comment reply on the original
comment id. Everything else is answered through the Messenger Send API
from the connected page to the sender.
"""

from typing import Any, Optional

import httpx

from echodesk_core.providers.base import (
    AccountCredentials,
    PlatformAdapter,
    PlatformAPIError,
    ReplyContext,
    SendReplyResult,
)


class FacebookAdapter(PlatformAdapter):
    """Send auto-replies through the Facebook Graph API."""

    platform = "Facebook"
    BASE_URL = "https://graph.facebook.com"

    def __init__(
        self,
        credentials: AccountCredentials,
        graph_version: str = "v18.0",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(credentials, timeout=timeout, transport=transport)
        self.graph_version = graph_version

    def _url(self, node: str, edge: str) -> str:
        return f"{self.BASE_URL}/{self.graph_version}/{node}/{edge}"

    def _build_request(self, context: ReplyContext) -> tuple[str, dict[str, Any]]:
        if context.message_type == "comment" and context.platform_message_id:
            payload: dict[str, Any] = {"message": context.reply_content}
            if context.reply_image:
                payload["attachment_url"] = context.reply_image
            return self._url(context.platform_message_id, "comments"), payload

        if context.reply_image:
            message: dict[str, Any] = {
                "attachment": {
                    "type": "image",
                    "payload": {"url": context.reply_image, "is_reusable": True},
                }
            }
        else:
            message = {"text": context.reply_content}

        page = self.credentials.page_id or "me"
        payload = {
            "recipient": {"id": context.sender_id},
            "message": message,
            "messaging_type": "RESPONSE",
        }
        return self._url(page, "messages"), payload

    async def _deliver(self, context: ReplyContext) -> SendReplyResult:
        url, payload = self._build_request(context)

        async with self._client() as client:
            response = await client.post(
                url,
                params={"access_token": self.credentials.access_token},
                json=payload,
            )

        data = self._json(response)
        if response.status_code >= 400 or "error" in data:
            error = data.get("error", {})
            raise PlatformAPIError(
                f"Facebook API error: {error.get('message') or response.status_code}",
                status_code=response.status_code,
            )

        message_id = data.get("message_id") or data.get("id")
        if not message_id:
            raise PlatformAPIError("Facebook API returned no message id")
        return SendReplyResult.ok(str(message_id))
