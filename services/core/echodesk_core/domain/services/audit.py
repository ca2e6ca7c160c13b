"""Audit log service for EchoDesk.

Records user actions on flows and accounts, and scheduler runs.
Audit entries are append-only - they are never updated or deleted.
"""

from typing import Optional

from sqlalchemy.orm import Session as DBSession

from echodesk_core.domain.clock import utcnow
from echodesk_core.domain.models import AuditLog

# Valid values for audit fields
VALID_ACTORS = {"user", "system"}
VALID_RESULTS = {"ok", "error"}

MAX_LIST_LIMIT = 200


class AuditService:
    """Service for audit log operations."""

    def __init__(self, db: DBSession):
        self.db = db

    def create_entry(
        self,
        actor: str,
        action_type: str,
        result: str,
        user_id: Optional[int] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[int] = None,
        request_json: Optional[dict] = None,
        response_json: Optional[dict] = None,
        error_detail: Optional[str] = None,
    ) -> AuditLog:
        """Create a new audit log entry.

        Args:
            actor: Who performed the action (user, system).
            action_type: The type of action (e.g., "flow.create").
            result: The result of the action (ok, error).
            user_id: Owner the action concerns.
            entity_type: Optional entity type ("flow", "account", ...).
            entity_id: Optional entity ID.
            request_json: Optional request data.
            response_json: Optional response data.
            error_detail: Optional error details (for errors).

        Returns:
            The created AuditLog entry.

        Raises:
            ValueError: If actor or result is invalid.
        """
        if actor not in VALID_ACTORS:
            raise ValueError(f"actor must be one of {VALID_ACTORS}, got '{actor}'")

        if result not in VALID_RESULTS:
            raise ValueError(f"result must be one of {VALID_RESULTS}, got '{result}'")

        entry = AuditLog(
            ts=utcnow(),
            actor=actor,
            action_type=action_type,
            result=result,
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            request_json=request_json,
            response_json=response_json,
            error_detail=error_detail,
        )

        self.db.add(entry)
        self.db.flush()

        return entry

    def list_entries(
        self,
        user_id: Optional[int] = None,
        action_type: Optional[str] = None,
        limit: int = 50,
    ) -> list[AuditLog]:
        """List the newest audit entries, optionally filtered."""
        query = self.db.query(AuditLog)

        if user_id is not None:
            query = query.filter(AuditLog.user_id == user_id)
        if action_type:
            query = query.filter(AuditLog.action_type == action_type)

        limit = max(1, min(limit, MAX_LIST_LIMIT))
        return query.order_by(AuditLog.ts.desc(), AuditLog.id.desc()).limit(limit).all()
