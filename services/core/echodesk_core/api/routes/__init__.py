"""API routes."""

from echodesk_core.api.routes import accounts, auth, auto_reply, messages

__all__ = ["accounts", "auth", "auto_reply", "messages"]
