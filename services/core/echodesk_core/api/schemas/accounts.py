"""Connected account schemas for request/response validation."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from echodesk_core.api.schemas.auto_reply import PlatformName


class AccountCreate(BaseModel):
    """Request body for connecting an account with existing credentials."""

    platform: PlatformName
    access_token: str = Field(..., min_length=1)
    access_secret: Optional[str] = None
    refresh_token: Optional[str] = None
    page_id: Optional[str] = Field(None, max_length=128)
    platform_id: Optional[str] = Field(None, max_length=128)
    channel_id: Optional[str] = Field(None, max_length=128)
    display_name: Optional[str] = Field(None, max_length=128)
    expires_at: Optional[datetime] = None


class TelegramQuickSetupRequest(BaseModel):
    """Request body for connecting a Telegram bot by token."""

    bot_token: str = Field(..., min_length=1)



class TelegramConnectionResponse(BaseModel):
    """Link customers open to start a chat with the bot."""

    connection_url: str
    bot_username: str


class WhatsAppQuickSetupRequest(BaseModel):
    """Request body for connecting a WhatsApp Cloud API phone number."""

    phone_number_id: str = Field(..., min_length=1, max_length=128)
    access_token: str = Field(..., min_length=1)
    verify_token: str = Field(..., min_length=1)


class WhatsAppTestMessageRequest(BaseModel):
    """Request body for sending a test message from the connected number."""

    phone_number: str = Field(..., min_length=1, max_length=32)
    message: str = Field(..., min_length=1, max_length=4096)


class SentMessageResponse(BaseModel):
    """Response body for a delivered test message."""

    success: bool
    message_id: Optional[str] = None


class AccountResponse(BaseModel):
    """Response body for an account. Secrets are never returned."""

    id: int
    platform: str
    page_id: Optional[str] = None
    platform_id: Optional[str] = None
    channel_id: Optional[str] = None
    display_name: Optional[str] = None
    bot_username: Optional[str] = None
    expires_at: Optional[datetime] = None
    is_quick_setup: bool
    created_at: datetime

    class Config:
        from_attributes = True


class AccountListResponse(BaseModel):
    """Response body for listing accounts."""

    accounts: list[AccountResponse]
