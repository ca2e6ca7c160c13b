"""Twitter (X) direct-message reply adapter.

Replies are sent as DMs through API v2 using the account's OAuth 2.0 user
access token. The reply goes into the inbound message's DM conversation
when its thread id is known, otherwise into the one-to-one conversation
with the sender.
"""

from echodesk_core.providers.base import (
    AdapterConfigurationError,
    PlatformAdapter,
    PlatformAPIError,
    ReplyContext,
    SendReplyResult,
)


class TwitterAdapter(PlatformAdapter):
    """Send auto-replies as Twitter direct messages."""

    platform = "Twitter"
    BASE_URL = "https://api.twitter.com/2"

    def _conversation_url(self, context: ReplyContext) -> str:
        if context.thread_id:
            return f"{self.BASE_URL}/dm_conversations/{context.thread_id}/messages"
        if context.sender_id:
            return f"{self.BASE_URL}/dm_conversations/with/{context.sender_id}/messages"
        raise AdapterConfigurationError("No conversation or sender to reply to")

    async def _deliver(self, context: ReplyContext) -> SendReplyResult:
        url = self._conversation_url(context)

        text = context.reply_content
        if context.reply_image:
            # DM media needs a separate upload; link the image instead
            text = f"{text}\n{context.reply_image}"

        async with self._client() as client:
            response = await client.post(
                url,
                headers={"Authorization": f"Bearer {self.credentials.access_token}"},
                json={"text": text},
            )

        data = self._json(response)
        if response.status_code >= 400 or "errors" in data:
            detail = data.get("detail") or data.get("title")
            if not detail and data.get("errors"):
                detail = "; ".join(
                    str(e.get("message", e)) for e in data["errors"]
                )
            raise PlatformAPIError(
                f"Twitter API error: {detail or response.status_code}",
                status_code=response.status_code,
            )

        event_id = data.get("data", {}).get("dm_event_id")
        if not event_id:
            raise PlatformAPIError("Twitter API returned no dm_event_id")
        return SendReplyResult.ok(str(event_id))
