"""Inbound message schemas for request/response validation."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from echodesk_core.api.schemas.auto_reply import (
    MessageTypeName,
    PlatformName,
    ProcessMessageResponse,
)


class InboundMessageCreate(BaseModel):
    """Request body for storing an inbound message."""

    platform: PlatformName
    platform_message_id: str = Field(..., min_length=1, max_length=128)
    sender_id: str = Field(..., min_length=1, max_length=128)
    sender_name: str = Field(..., min_length=1, max_length=255)
    sender_username: Optional[str] = Field(None, max_length=128)
    content: str
    message_type: MessageTypeName = "direct_message"
    received_at: Optional[datetime] = None
    reply_to_message_id: Optional[str] = Field(None, max_length=128)
    thread_id: Optional[str] = Field(None, max_length=128)


class InboundMessageResponse(BaseModel):
    """Response body for a stored inbound message and its trigger result."""

    id: int
    created: bool
    processing: ProcessMessageResponse
