"""Platform adapter registry.

Maps a platform name to a factory building its adapter from decrypted
account credentials and application settings. The executor only talks to
the registry, so supporting a new platform means registering one factory.

Usage:
    registry = get_default_registry()
    adapter = registry.create("Telegram", credentials, settings)
    result = await adapter.send_reply(context)
"""

from typing import Callable, Optional

from echodesk_core.config import Settings
from echodesk_core.providers.base import AccountCredentials, PlatformAdapter
from echodesk_core.providers.facebook import FacebookAdapter
from echodesk_core.providers.linkedin import LinkedInAdapter
from echodesk_core.providers.telegram import TelegramAdapter
from echodesk_core.providers.twitter import TwitterAdapter
from echodesk_core.providers.whatsapp import WhatsAppAdapter

AdapterFactory = Callable[[AccountCredentials, Settings], PlatformAdapter]


class UnsupportedPlatformError(Exception):
    """Raised when no adapter is registered for a platform."""

    def __init__(self, platform: str):
        super().__init__(f"Unsupported platform: {platform}")
        self.platform = platform


class AdapterRegistry:
    """Lookup table of platform adapter factories."""

    def __init__(self, factories: Optional[dict[str, AdapterFactory]] = None):
        self._factories: dict[str, AdapterFactory] = dict(factories or {})

    def register(self, platform: str, factory: AdapterFactory) -> None:
        self._factories[platform] = factory

    def supports(self, platform: str) -> bool:
        return platform in self._factories

    @property
    def platforms(self) -> list[str]:
        return sorted(self._factories)

    def create(
        self,
        platform: str,
        credentials: AccountCredentials,
        settings: Settings,
    ) -> PlatformAdapter:
        """Build the adapter for a platform.

        Raises:
            UnsupportedPlatformError: If nothing is registered for the platform.
        """
        factory = self._factories.get(platform)
        if factory is None:
            raise UnsupportedPlatformError(platform)
        return factory(credentials, settings)


def _twitter(credentials: AccountCredentials, settings: Settings) -> PlatformAdapter:
    return TwitterAdapter(credentials, timeout=settings.provider_http_timeout_seconds)


def _facebook(credentials: AccountCredentials, settings: Settings) -> PlatformAdapter:
    return FacebookAdapter(
        credentials,
        graph_version=settings.facebook_graph_version,
        timeout=settings.provider_http_timeout_seconds,
    )


def _telegram(credentials: AccountCredentials, settings: Settings) -> PlatformAdapter:
    return TelegramAdapter(
        credentials,
        fallback_token=settings.telegram_bot_token,
        timeout=settings.provider_http_timeout_seconds,
    )


def _whatsapp(credentials: AccountCredentials, settings: Settings) -> PlatformAdapter:
    return WhatsAppAdapter(
        credentials,
        graph_version=settings.whatsapp_graph_version,
        timeout=settings.provider_http_timeout_seconds,
    )


def _linkedin(credentials: AccountCredentials, settings: Settings) -> PlatformAdapter:
    return LinkedInAdapter(credentials)


def get_default_registry() -> AdapterRegistry:
    """Registry with every platform that can deliver replies."""
    return AdapterRegistry(
        {
            "Twitter": _twitter,
            "Facebook": _facebook,
            "Telegram": _telegram,
            "WhatsApp": _whatsapp,
            "LinkedIn": _linkedin,
        }
    )
