"""WhatsApp provider integration.

This package contains:
- Cloud API adapter for auto-replies
- Phone number lookup used by account quick setup
"""

from echodesk_core.providers.whatsapp.adapter import (
    WhatsAppAdapter,
    WhatsAppPhoneInfo,
    get_phone_number_info,
)

__all__ = [
    "WhatsAppAdapter",
    "WhatsAppPhoneInfo",
    "get_phone_number_info",
]
