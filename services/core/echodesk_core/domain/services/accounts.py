"""Connected platform accounts.

Stores one account per (user, platform) with its secrets Fernet-encrypted,
hands decrypted credentials to the auto-reply executor, and implements the
quick setups:
- Telegram: connect a bot by token, validated with getMe
- WhatsApp: connect a Cloud API phone number id and access token,
  validated by reading the phone number from the Graph API
"""

from datetime import datetime
from typing import Optional

import httpx
from sqlalchemy.orm import Session as DBSession

from echodesk_core.domain.clock import utcnow
from echodesk_core.domain.models import PLATFORMS, Account, Platform
from echodesk_core.infrastructure.crypto import CryptoService
from echodesk_core.observability import get_logger
from echodesk_core.providers.base import AccountCredentials, PlatformAPIError
from echodesk_core.providers.telegram import get_bot_info
from echodesk_core.providers.whatsapp import get_phone_number_info

TELEGRAM_LINK_URL = "https://t.me"

logger = get_logger(__name__)


# =============================================================================
# EXCEPTIONS
# =============================================================================


class AccountError(Exception):
    """Base exception for account errors."""

    pass


class AccountNotFoundError(AccountError):
    """Raised when an account does not exist or belongs to another user."""

    pass


class AccountValidationError(AccountError):
    """Raised when account data is invalid."""

    pass


class QuickSetupError(AccountError):
    """Raised when quick-setup credentials are missing or rejected."""

    pass


# =============================================================================
# SERVICE
# =============================================================================


class AccountService:
    """Service for connected platform accounts."""

    def __init__(self, db: DBSession, crypto: CryptoService):
        """Initialize the account service.

        Args:
            db: SQLAlchemy database session.
            crypto: Encrypts and decrypts account secrets.
        """
        self.db = db
        self.crypto = crypto

    def list_accounts(self, user_id: int) -> list[Account]:
        return (
            self.db.query(Account)
            .filter(Account.user_id == user_id)
            .order_by(Account.platform)
            .all()
        )

    def get_account(self, user_id: int, platform: str) -> Optional[Account]:
        """The user's account on a platform, if connected."""
        return (
            self.db.query(Account)
            .filter(Account.user_id == user_id, Account.platform == platform)
            .first()
        )

    def connect_account(
        self,
        user_id: int,
        platform: str,
        access_token: str,
        access_secret: Optional[str] = None,
        refresh_token: Optional[str] = None,
        page_id: Optional[str] = None,
        platform_id: Optional[str] = None,
        channel_id: Optional[str] = None,
        display_name: Optional[str] = None,
        bot_username: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        is_quick_setup: bool = False,
    ) -> Account:
        """Connect or reconnect a platform account.

        An existing account for the same platform is updated in place.

        Raises:
            AccountValidationError: If the platform is unknown or the token empty.
        """
        if platform not in PLATFORMS:
            raise AccountValidationError(f"Unknown platform '{platform}'")
        if not access_token:
            raise AccountValidationError("access_token must not be empty")

        account = self.get_account(user_id, platform)
        if account is None:
            account = Account(user_id=user_id, platform=platform, created_at=utcnow())
            self.db.add(account)

        account.access_token_encrypted = self.crypto.encrypt(access_token)
        account.access_secret_encrypted = self.crypto.encrypt_optional(access_secret)
        account.refresh_token_encrypted = self.crypto.encrypt_optional(refresh_token)
        account.page_id = page_id
        account.platform_id = platform_id
        account.channel_id = channel_id
        account.display_name = display_name
        account.bot_username = bot_username
        account.expires_at = expires_at
        account.is_quick_setup = is_quick_setup
        account.updated_at = utcnow()

        self.db.flush()
        return account

    def delete_account(self, user_id: int, account_id: int) -> None:
        """Disconnect an account.

        Raises:
            AccountNotFoundError: If missing or owned by another user.
        """
        account = (
            self.db.query(Account)
            .filter(Account.id == account_id, Account.user_id == user_id)
            .first()
        )
        if account is None:
            raise AccountNotFoundError(f"Account {account_id} not found")

        self.db.delete(account)
        self.db.flush()

    def get_credentials(self, user_id: int, platform: str) -> Optional[AccountCredentials]:
        """Decrypted credentials of the user's account on a platform.

        Returns:
            AccountCredentials, or None when no account is connected.

        Raises:
            DecryptionError: If stored secrets cannot be decrypted.
        """
        account = self.get_account(user_id, platform)
        if account is None:
            return None

        return AccountCredentials(
            access_token=self.crypto.decrypt(account.access_token_encrypted),
            access_secret=self.crypto.decrypt_optional(account.access_secret_encrypted),
            refresh_token=self.crypto.decrypt_optional(account.refresh_token_encrypted),
            page_id=account.page_id,
            platform_id=account.platform_id,
            channel_id=account.channel_id,
            bot_username=account.bot_username,
        )

    async def telegram_quick_setup(
        self,
        user_id: int,
        bot_token: str,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> Account:
        """Connect a Telegram bot by its token.

        The token is validated with getMe; the bot's id and username are
        stored with the account.

        Raises:
            QuickSetupError: If the token is empty or Telegram rejects it.
        """
        bot_token = (bot_token or "").strip()
        if not bot_token:
            raise QuickSetupError("Bot token is required")

        try:
            bot = await get_bot_info(bot_token, timeout=timeout, transport=transport)
        except PlatformAPIError as e:
            raise QuickSetupError(f"Invalid bot token: {e}")
        except httpx.HTTPError as e:
            raise QuickSetupError(f"Could not reach Telegram: {e}")

        logger.info("Telegram bot connected", user_id=user_id, bot_username=bot.username)

        return self.connect_account(
            user_id=user_id,
            platform=Platform.TELEGRAM,
            access_token=bot_token,
            platform_id=str(bot.id),
            display_name=bot.first_name or bot.username,
            bot_username=bot.username,
            is_quick_setup=True,
        )

    def telegram_connection_url(self, user_id: int) -> tuple[str, str]:
        """Link customers open to start a chat with the user's bot.

        Returns:
            Tuple of (url, bot_username).

        Raises:
            AccountNotFoundError: If no Telegram bot with a username is connected.
        """
        account = self.get_account(user_id, Platform.TELEGRAM)
        if account is None or not account.bot_username:
            raise AccountNotFoundError("Telegram bot not configured")
        return f"{TELEGRAM_LINK_URL}/{account.bot_username}", account.bot_username

    async def whatsapp_quick_setup(
        self,
        user_id: int,
        phone_number_id: str,
        access_token: str,
        verify_token: str,
        graph_version: str = "v18.0",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> Account:
        """Connect a WhatsApp Cloud API phone number.

        The phone number id becomes the account's page_id, which the
        WhatsApp adapter sends from. The webhook verify token is kept as
        the account's access secret.

        Raises:
            QuickSetupError: If a field is empty or the Graph API rejects them.
        """
        phone_number_id = (phone_number_id or "").strip()
        access_token = (access_token or "").strip()
        verify_token = (verify_token or "").strip()
        if not phone_number_id or not access_token or not verify_token:
            raise QuickSetupError(
                "Phone number id, access token and verify token are required"
            )

        try:
            phone = await get_phone_number_info(
                phone_number_id,
                access_token,
                graph_version=graph_version,
                timeout=timeout,
                transport=transport,
            )
        except PlatformAPIError as e:
            raise QuickSetupError(f"Invalid credentials: {e}")
        except httpx.HTTPError as e:
            raise QuickSetupError(f"Could not reach WhatsApp: {e}")

        logger.info(
            "WhatsApp number connected",
            user_id=user_id,
            phone_number_id=phone_number_id,
        )

        return self.connect_account(
            user_id=user_id,
            platform=Platform.WHATSAPP,
            access_token=access_token,
            access_secret=verify_token,
            page_id=phone_number_id,
            display_name=phone.display_phone_number or phone.verified_name or phone_number_id,
            is_quick_setup=True,
        )


__all__ = [
    "AccountError",
    "AccountNotFoundError",
    "AccountService",
    "AccountValidationError",
    "QuickSetupError",
]
