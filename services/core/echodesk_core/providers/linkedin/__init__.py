"""LinkedIn provider integration."""

from echodesk_core.providers.linkedin.adapter import LinkedInAdapter

__all__ = ["LinkedInAdapter"]
