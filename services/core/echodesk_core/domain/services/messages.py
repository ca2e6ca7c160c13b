"""Inbound message storage.

Reply-creation and manual ingestion paths store inbound messages through
this service before handing them to the trigger evaluator. Platform message
ids are only unique within one conversation (a Telegram chat, a WhatsApp
number), so a message is a duplicate when the same user already stored
the same id from the same sender on the same platform. Duplicates are
returned as-is.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session as DBSession

from echodesk_core.domain.clock import to_naive_utc, utcnow
from echodesk_core.domain.models import PLATFORMS, Message, MessageType

VALID_MESSAGE_TYPES = {
    MessageType.DIRECT_MESSAGE,
    MessageType.MENTION,
    MessageType.COMMENT,
    MessageType.REPLY,
}


class MessageValidationError(Exception):
    """Raised when an inbound message is malformed."""

    pass


class InboundMessageService:
    """Service for storing inbound messages."""

    def __init__(self, db: DBSession):
        self.db = db

    def record(
        self,
        user_id: int,
        platform: str,
        platform_message_id: str,
        sender_id: str,
        sender_name: str,
        content: str,
        message_type: str = MessageType.DIRECT_MESSAGE,
        sender_username: Optional[str] = None,
        received_at: Optional[datetime] = None,
        reply_to_message_id: Optional[str] = None,
        thread_id: Optional[str] = None,
    ) -> tuple[Message, bool]:
        """Store an inbound message.

        Returns:
            Tuple of (message, created). created is False when the message
            was already stored.

        Raises:
            MessageValidationError: On unknown platform or message type.
        """
        if platform not in PLATFORMS:
            raise MessageValidationError(f"Unknown platform '{platform}'")
        if message_type not in VALID_MESSAGE_TYPES:
            raise MessageValidationError(f"Unknown message type '{message_type}'")
        if not platform_message_id or not sender_id:
            raise MessageValidationError("platform_message_id and sender_id are required")

        existing = (
            self.db.query(Message)
            .filter(
                Message.user_id == user_id,
                Message.platform == platform,
                Message.sender_id == sender_id,
                Message.platform_message_id == platform_message_id,
            )
            .first()
        )
        if existing is not None:
            return existing, False

        message = Message(
            user_id=user_id,
            platform=platform,
            platform_message_id=platform_message_id,
            sender_id=sender_id,
            sender_name=sender_name,
            sender_username=sender_username,
            content=content,
            message_type=message_type,
            received_at=to_naive_utc(received_at) if received_at else utcnow(),
            reply_to_message_id=reply_to_message_id,
            thread_id=thread_id,
        )
        self.db.add(message)
        self.db.flush()
        return message, True
