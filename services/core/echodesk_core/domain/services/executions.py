"""Execution ledger for auto-reply flows.

Owns every write to auto_reply_executions and execution_steps:
- Creation gated by the per-sender rate limit
- Due selection and the claim/release protocol used by the executor
- The append-only step audit log
- Pause/resume and stale-claim recovery
- Per-flow listing and statistics

Claim protocol:
    A worker selects due rows as (id, version) pairs, then claims each one
    with a conditional UPDATE keyed on id, status='active' and the observed
    version. The claim flips status to 'processing' and bumps the version,
    so a second worker holding the same (id, version) matches zero rows.
    Release writes the final status and bumps the version again.

Usage:
    ledger = ExecutionLedger(db)
    execution = ledger.create_execution(flow, message)
    for due in ledger.list_due(now):
        if ledger.claim(due.id, due.version, now):
            ...
            ledger.release(execution, ExecutionStatus.ACTIVE, now)
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session as DBSession

from echodesk_core.domain.clock import utcnow
from echodesk_core.domain.models import (
    AutoReplyExecution,
    AutoReplyFlow,
    ExecutionStatus,
    ExecutionStep,
    Message,
)

# Statuses a release may leave an execution in
RESTING_STATUSES = {
    ExecutionStatus.ACTIVE,
    ExecutionStatus.COMPLETED,
    ExecutionStatus.PAUSED,
    ExecutionStatus.FAILED,
}

DEFAULT_EXECUTION_LIST_LIMIT = 50

# Maximum stored length of a step error
MAX_ERROR_LENGTH = 2000


# =============================================================================
# EXCEPTIONS
# =============================================================================


class ExecutionError(Exception):
    """Base exception for execution ledger errors."""

    pass


class RateLimitExceeded(ExecutionError):
    """Raised when a sender already hit a flow's reply limit in the cooldown window."""

    def __init__(self, flow_id: int, sender_id: Optional[str], limit: int, window_hours: int):
        super().__init__(
            f"Rate limit exceeded for sender {sender_id} on flow {flow_id}: "
            f"{limit} executions per {window_hours}h"
        )
        self.flow_id = flow_id
        self.sender_id = sender_id
        self.limit = limit
        self.window_hours = window_hours


class ExecutionNotFoundError(ExecutionError):
    """Raised when an execution does not exist or belongs to another user."""

    pass


class InvalidExecutionStateError(ExecutionError):
    """Raised when a status transition is not allowed."""

    pass


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass(frozen=True)
class DueExecution:
    """An execution selected for processing, with the version it was seen at."""

    id: int
    version: int


@dataclass
class FlowExecutionStats:
    """Aggregate execution statistics for one flow."""

    total_executions: int
    active_executions: int
    completed_executions: int
    paused_executions: int
    failed_executions: int
    total_replies: int
    last_execution: Optional[datetime]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_executions": self.total_executions,
            "active_executions": self.active_executions,
            "completed_executions": self.completed_executions,
            "paused_executions": self.paused_executions,
            "failed_executions": self.failed_executions,
            "total_replies": self.total_replies,
            "last_execution": self.last_execution,
        }


# =============================================================================
# SERVICE
# =============================================================================


class ExecutionLedger:
    """Service for execution records."""

    def __init__(self, db: DBSession):
        """Initialize the ledger.

        Args:
            db: SQLAlchemy database session.
        """
        self.db = db

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    def count_recent(
        self,
        flow: AutoReplyFlow,
        sender_id: Optional[str],
        now: datetime,
    ) -> int:
        """Count executions for (flow, sender) created inside the cooldown window."""
        window_start = now - timedelta(hours=flow.cooldown_period)
        return (
            self.db.query(func.count(AutoReplyExecution.id))
            .filter(
                AutoReplyExecution.flow_id == flow.id,
                AutoReplyExecution.sender_id == sender_id,
                AutoReplyExecution.created_at >= window_start,
            )
            .scalar()
            or 0
        )

    def create_execution(
        self,
        flow: AutoReplyFlow,
        message: Message,
        now: Optional[datetime] = None,
    ) -> AutoReplyExecution:
        """Create an execution of a flow for an inbound message.

        The first step is due immediately whatever its step type; delays only
        apply between steps. The count-then-insert is not atomic, so two
        concurrent messages from one sender may both pass the check.

        Args:
            flow: The triggered flow.
            message: The inbound message that triggered it.
            now: Creation time (naive UTC), defaults to the current time.

        Returns:
            The new execution, flushed.

        Raises:
            RateLimitExceeded: If the sender reached max_replies_per_user
                within cooldown_period hours.
        """
        now = now or utcnow()

        recent = self.count_recent(flow, message.sender_id, now)
        if recent >= flow.max_replies_per_user:
            raise RateLimitExceeded(
                flow_id=flow.id,
                sender_id=message.sender_id,
                limit=flow.max_replies_per_user,
                window_hours=flow.cooldown_period,
            )

        execution = AutoReplyExecution(
            flow_id=flow.id,
            user_id=flow.user_id,
            original_message_id=message.id,
            platform=message.platform,
            sender_id=message.sender_id,
            sender_name=message.sender_name,
            current_step=flow.first_step_number,
            status=ExecutionStatus.ACTIVE,
            version=0,
            next_execution_time=now,
            total_replies=0,
            last_activity=now,
            created_at=now,
            updated_at=now,
        )
        self.db.add(execution)
        self.db.flush()
        return execution

    # -------------------------------------------------------------------------
    # Scheduling
    # -------------------------------------------------------------------------

    def list_due(
        self,
        now: datetime,
        user_id: Optional[int] = None,
        limit: int = 200,
    ) -> list[DueExecution]:
        """Select active executions whose next step is due.

        Returns plain (id, version) pairs; rows are loaded only after a
        successful claim.
        """
        query = self.db.query(AutoReplyExecution.id, AutoReplyExecution.version).filter(
            AutoReplyExecution.status == ExecutionStatus.ACTIVE,
            AutoReplyExecution.next_execution_time <= now,
        )
        if user_id is not None:
            query = query.filter(AutoReplyExecution.user_id == user_id)

        rows = (
            query.order_by(AutoReplyExecution.next_execution_time, AutoReplyExecution.id)
            .limit(limit)
            .all()
        )
        return [DueExecution(id=row.id, version=row.version) for row in rows]

    def claim(self, execution_id: int, version: int, now: datetime) -> bool:
        """Attempt to claim an execution for processing.

        Atomically transitions the execution from active to processing, but
        only if nobody changed it since it was selected.

        Returns:
            True if successfully claimed, False otherwise.
        """
        result = (
            self.db.query(AutoReplyExecution)
            .filter(
                AutoReplyExecution.id == execution_id,
                AutoReplyExecution.status == ExecutionStatus.ACTIVE,
                AutoReplyExecution.version == version,
            )
            .update(
                {
                    AutoReplyExecution.status: ExecutionStatus.PROCESSING,
                    AutoReplyExecution.version: AutoReplyExecution.version + 1,
                    AutoReplyExecution.claimed_at: now,
                },
                synchronize_session=False,
            )
        )

        self.db.flush()
        return result > 0

    def release(
        self,
        execution: AutoReplyExecution,
        status: str,
        now: datetime,
    ) -> None:
        """Release a claimed execution into a resting status.

        Raises:
            InvalidExecutionStateError: If status is not a resting status.
        """
        if status not in RESTING_STATUSES:
            raise InvalidExecutionStateError(f"cannot release into '{status}'")

        execution.status = status
        execution.version = execution.version + 1
        execution.claimed_at = None
        execution.updated_at = now
        self.db.flush()

    def release_by_id(self, execution_id: int, now: datetime) -> bool:
        """Return a processing execution to active without loading it.

        Used when processing blew up and the loaded row can't be trusted.
        """
        result = (
            self.db.query(AutoReplyExecution)
            .filter(
                AutoReplyExecution.id == execution_id,
                AutoReplyExecution.status == ExecutionStatus.PROCESSING,
            )
            .update(
                {
                    AutoReplyExecution.status: ExecutionStatus.ACTIVE,
                    AutoReplyExecution.version: AutoReplyExecution.version + 1,
                    AutoReplyExecution.claimed_at: None,
                    AutoReplyExecution.updated_at: now,
                },
                synchronize_session=False,
            )
        )
        self.db.flush()
        return result > 0

    def recover_stale_claims(self, timeout_minutes: int, now: Optional[datetime] = None) -> int:
        """Return executions stuck in processing back to active.

        A worker that died between claim and release leaves its execution in
        processing; after timeout_minutes it becomes schedulable again.

        Returns:
            Number of executions recovered.
        """
        now = now or utcnow()
        cutoff = now - timedelta(minutes=timeout_minutes)

        result = (
            self.db.query(AutoReplyExecution)
            .filter(
                AutoReplyExecution.status == ExecutionStatus.PROCESSING,
                AutoReplyExecution.claimed_at < cutoff,
            )
            .update(
                {
                    AutoReplyExecution.status: ExecutionStatus.ACTIVE,
                    AutoReplyExecution.version: AutoReplyExecution.version + 1,
                    AutoReplyExecution.claimed_at: None,
                    AutoReplyExecution.updated_at: now,
                },
                synchronize_session=False,
            )
        )
        self.db.flush()
        return result

    # -------------------------------------------------------------------------
    # Audit log
    # -------------------------------------------------------------------------

    def record_step(
        self,
        execution: AutoReplyExecution,
        step_number: int,
        executed_at: datetime,
        reply_content: Optional[str],
        success: bool,
        reply_message_id: Optional[str] = None,
        error: Optional[str] = None,
    ) -> ExecutionStep:
        """Append an entry to the execution's step log."""
        if error and len(error) > MAX_ERROR_LENGTH:
            error = error[:MAX_ERROR_LENGTH]

        entry = ExecutionStep(
            execution_id=execution.id,
            step_number=step_number,
            executed_at=executed_at,
            reply_content=reply_content,
            reply_message_id=reply_message_id if success else None,
            success=success,
            error=None if success else error,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    # -------------------------------------------------------------------------
    # Owner operations
    # -------------------------------------------------------------------------

    def get_for_user(self, execution_id: int, user_id: int) -> AutoReplyExecution:
        """Load an execution owned by a user.

        Raises:
            ExecutionNotFoundError: If missing or owned by someone else.
        """
        execution = (
            self.db.query(AutoReplyExecution)
            .filter(
                AutoReplyExecution.id == execution_id,
                AutoReplyExecution.user_id == user_id,
            )
            .first()
        )
        if execution is None:
            raise ExecutionNotFoundError(f"Execution {execution_id} not found")
        return execution

    def _transition(
        self,
        execution_id: int,
        user_id: int,
        from_status: str,
        to_status: str,
        now: datetime,
        extra: Optional[dict] = None,
    ) -> AutoReplyExecution:
        execution = self.get_for_user(execution_id, user_id)

        values = {
            AutoReplyExecution.status: to_status,
            AutoReplyExecution.version: AutoReplyExecution.version + 1,
            AutoReplyExecution.updated_at: now,
        }
        values.update(extra or {})

        result = (
            self.db.query(AutoReplyExecution)
            .filter(
                AutoReplyExecution.id == execution.id,
                AutoReplyExecution.status == from_status,
            )
            .update(values, synchronize_session=False)
        )
        self.db.flush()
        self.db.refresh(execution)

        if result == 0:
            raise InvalidExecutionStateError(
                f"Execution {execution_id} is {execution.status}, expected {from_status}"
            )
        return execution

    def pause(self, execution_id: int, user_id: int, now: Optional[datetime] = None) -> AutoReplyExecution:
        """Pause an active execution.

        Raises:
            ExecutionNotFoundError: If not found.
            InvalidExecutionStateError: If it is not active (including while
                a worker holds its claim).
        """
        now = now or utcnow()
        return self._transition(
            execution_id, user_id, ExecutionStatus.ACTIVE, ExecutionStatus.PAUSED, now
        )

    def resume(self, execution_id: int, user_id: int, now: Optional[datetime] = None) -> AutoReplyExecution:
        """Resume a paused execution; its pending step becomes due now.

        Raises:
            ExecutionNotFoundError: If not found.
            InvalidExecutionStateError: If it is not paused.
        """
        now = now or utcnow()
        return self._transition(
            execution_id,
            user_id,
            ExecutionStatus.PAUSED,
            ExecutionStatus.ACTIVE,
            now,
            extra={AutoReplyExecution.next_execution_time: now},
        )

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def list_for_flow(
        self,
        flow_id: int,
        limit: int = DEFAULT_EXECUTION_LIST_LIMIT,
    ) -> list[AutoReplyExecution]:
        """Newest executions of a flow."""
        return (
            self.db.query(AutoReplyExecution)
            .filter(AutoReplyExecution.flow_id == flow_id)
            .order_by(AutoReplyExecution.created_at.desc(), AutoReplyExecution.id.desc())
            .limit(limit)
            .all()
        )

    def stats_for_flow(self, flow_id: int) -> FlowExecutionStats:
        """Aggregate statistics over all executions of a flow."""
        by_status = dict(
            self.db.query(AutoReplyExecution.status, func.count(AutoReplyExecution.id))
            .filter(AutoReplyExecution.flow_id == flow_id)
            .group_by(AutoReplyExecution.status)
            .all()
        )
        total_replies, last_execution = (
            self.db.query(
                func.coalesce(func.sum(AutoReplyExecution.total_replies), 0),
                func.max(AutoReplyExecution.created_at),
            )
            .filter(AutoReplyExecution.flow_id == flow_id)
            .one()
        )

        return FlowExecutionStats(
            total_executions=sum(by_status.values()),
            # An execution mid-step is still running
            active_executions=by_status.get(ExecutionStatus.ACTIVE, 0)
            + by_status.get(ExecutionStatus.PROCESSING, 0),
            completed_executions=by_status.get(ExecutionStatus.COMPLETED, 0),
            paused_executions=by_status.get(ExecutionStatus.PAUSED, 0),
            failed_executions=by_status.get(ExecutionStatus.FAILED, 0),
            total_replies=int(total_replies or 0),
            last_execution=last_execution,
        )

    def delete_for_flow(self, flow_id: int) -> int:
        """Delete every execution of a flow together with its step log.

        Returns:
            Number of executions deleted.
        """
        execution_ids = select(AutoReplyExecution.id).where(
            AutoReplyExecution.flow_id == flow_id
        )
        self.db.query(ExecutionStep).filter(
            ExecutionStep.execution_id.in_(execution_ids)
        ).delete(synchronize_session=False)

        deleted = (
            self.db.query(AutoReplyExecution)
            .filter(AutoReplyExecution.flow_id == flow_id)
            .delete(synchronize_session=False)
        )
        self.db.flush()
        return deleted


__all__ = [
    "DueExecution",
    "ExecutionError",
    "ExecutionLedger",
    "ExecutionNotFoundError",
    "FlowExecutionStats",
    "InvalidExecutionStateError",
    "RateLimitExceeded",
]
