"""Twitter provider integration."""

from echodesk_core.providers.twitter.adapter import TwitterAdapter

__all__ = ["TwitterAdapter"]
