"""Base platform adapter interface and DTOs.

This module defines the interface every platform adapter implements, along
with the normalized data the auto-reply executor hands to it:
- AccountCredentials: Decrypted secrets and ids of the connected account
- ReplyContext: What to send and the inbound message being answered
- SendReplyResult: Normalized outcome of a send

Adapters implement `_deliver` and may raise freely inside it;
`send_reply` converts every error into a failed SendReplyResult so that
nothing escapes the adapter boundary.

Usage:
    class TelegramAdapter(PlatformAdapter):
        platform = "Telegram"

        async def _deliver(self, context: ReplyContext) -> SendReplyResult:
            ...
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from echodesk_core.observability import get_logger

logger = get_logger(__name__)


# =============================================================================
# EXCEPTIONS
# =============================================================================


class PlatformAPIError(Exception):
    """Raised inside an adapter when a platform call fails."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


class AdapterConfigurationError(PlatformAPIError):
    """Raised when the connected account lacks data the platform needs."""

    pass


# =============================================================================
# DATA TRANSFER OBJECTS
# =============================================================================


@dataclass
class AccountCredentials:
    """Decrypted credentials and identifiers of a connected account."""

    access_token: str
    access_secret: Optional[str] = None
    refresh_token: Optional[str] = None
    page_id: Optional[str] = None
    platform_id: Optional[str] = None
    channel_id: Optional[str] = None
    bot_username: Optional[str] = None


@dataclass
class ReplyContext:
    """Everything an adapter needs to deliver one step's reply.

    The inbound message fields let each adapter pick its own reply target
    (original message id, chat id, phone number...).
    """

    execution_id: int
    step_number: int
    reply_content: str
    sender_id: Optional[str]
    sender_name: Optional[str] = None
    reply_image: Optional[str] = None

    # Inbound message being answered
    original_message_id: Optional[int] = None
    platform_message_id: Optional[str] = None
    message_type: Optional[str] = None
    thread_id: Optional[str] = None


@dataclass
class SendReplyResult:
    """Result of sending a reply through a platform."""

    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    sent_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def ok(cls, message_id: str) -> "SendReplyResult":
        return cls(success=True, message_id=message_id)

    @classmethod
    def failed(cls, error: str) -> "SendReplyResult":
        return cls(success=False, error=error)


# =============================================================================
# PLATFORM ADAPTER INTERFACE
# =============================================================================


class PlatformAdapter(ABC):
    """Abstract base class for platform reply adapters."""

    #: Platform name as stored on accounts and executions (e.g. "Telegram")
    platform: str = ""

    def __init__(
        self,
        credentials: AccountCredentials,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the adapter.

        Args:
            credentials: Decrypted account credentials.
            timeout: HTTP timeout in seconds.
            transport: Optional httpx transport (tests use httpx.MockTransport).
        """
        self.credentials = credentials
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        """Create an HTTP client for one platform call."""
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        """Decode a JSON body, tolerating empty or non-JSON responses."""
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    @abstractmethod
    async def _deliver(self, context: ReplyContext) -> SendReplyResult:
        """Perform the platform call. May raise."""
        ...

    async def send_reply(self, context: ReplyContext) -> SendReplyResult:
        """Send a step's reply.

        Never raises: platform, network and configuration errors are
        returned as a failed result.
        """
        try:
            return await self._deliver(context)
        except httpx.TimeoutException:
            error = "Request timed out"
        except httpx.HTTPError as e:
            error = f"HTTP error: {e}"
        except Exception as e:
            error = str(e) or type(e).__name__

        logger.warning(
            "Reply delivery failed",
            platform=self.platform,
            execution_id=context.execution_id,
            step_number=context.step_number,
            error=error,
        )
        return SendReplyResult.failed(error)
