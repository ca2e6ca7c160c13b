"""Platform integrations for EchoDesk.

This package contains:
- Base: Adapter interface and reply DTOs
- Registry: platform name to adapter lookup
- One subpackage per platform that can deliver auto-replies
"""

from echodesk_core.providers.base import (
    AccountCredentials,
    AdapterConfigurationError,
    PlatformAdapter,
    PlatformAPIError,
    ReplyContext,
    SendReplyResult,
)
from echodesk_core.providers.registry import (
    AdapterFactory,
    AdapterRegistry,
    UnsupportedPlatformError,
    get_default_registry,
)

__all__ = [
    "AccountCredentials",
    "AdapterConfigurationError",
    "AdapterFactory",
    "AdapterRegistry",
    "PlatformAdapter",
    "PlatformAPIError",
    "ReplyContext",
    "SendReplyResult",
    "UnsupportedPlatformError",
    "get_default_registry",
]
