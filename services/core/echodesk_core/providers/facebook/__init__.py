"""Facebook provider integration."""

from echodesk_core.providers.facebook.adapter import FacebookAdapter

__all__ = ["FacebookAdapter"]
