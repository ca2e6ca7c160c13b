"""Trigger evaluation for inbound messages.

Given a stored inbound message, finds the owner's active flows for the
message's platform (or "All"), decides which of them fire and creates one
execution per firing flow. A flow whose sender already hit its rate limit
is skipped without affecting the others.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session as DBSession

from echodesk_core.domain.clock import utcnow
from echodesk_core.domain.models import AutoReplyFlow, Message, Platform
from echodesk_core.domain.services.conditions import should_trigger
from echodesk_core.domain.services.executions import ExecutionLedger, RateLimitExceeded
from echodesk_core.observability import LogContext, MetricsCollector, get_collector, get_logger
from echodesk_core.observability.metrics import FLOWS_TRIGGERED, RATE_LIMITED

logger = get_logger(__name__)


class MessageNotFoundError(Exception):
    """Raised when the inbound message to process does not exist."""

    pass


@dataclass
class MatchedFlow:
    """A flow that fired and the execution created for it."""

    flow_id: int
    flow_name: str
    execution_id: int


@dataclass
class RateLimitedFlow:
    """A flow that matched but was skipped by its rate limit."""

    flow_id: int
    flow_name: str
    error: str


@dataclass
class TriggerResult:
    """Outcome of processing one inbound message."""

    message_id: int
    triggered: list[MatchedFlow] = field(default_factory=list)
    rate_limited: list[RateLimitedFlow] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message_id": self.message_id,
            "triggered_flows": [vars(m) for m in self.triggered],
            "rate_limited_flows": [vars(r) for r in self.rate_limited],
            "message": f"Processed {len(self.triggered)} auto reply flows",
        }


class TriggerEvaluator:
    """Decides which flows fire for inbound messages."""

    def __init__(
        self,
        db: DBSession,
        ledger: Optional[ExecutionLedger] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.db = db
        self.ledger = ledger or ExecutionLedger(db)
        self.metrics = metrics or get_collector()

    def candidate_flows(self, message: Message) -> list[AutoReplyFlow]:
        """Active flows of the message owner for its platform or for all platforms."""
        return (
            self.db.query(AutoReplyFlow)
            .filter(
                AutoReplyFlow.user_id == message.user_id,
                AutoReplyFlow.platform.in_([message.platform, Platform.ALL]),
                AutoReplyFlow.is_active.is_(True),
            )
            .order_by(AutoReplyFlow.id)
            .all()
        )

    def evaluate_triggers(
        self,
        message: Message,
        now: Optional[datetime] = None,
    ) -> TriggerResult:
        """Create executions for every flow that fires on a message.

        Args:
            message: A persisted inbound message.
            now: Evaluation time (naive UTC), defaults to the current time.

        Returns:
            TriggerResult listing triggered and rate-limited flows.
        """
        now = now or utcnow()
        result = TriggerResult(message_id=message.id)
        context = LogContext(user_id=message.user_id, platform=message.platform)
        labels = {"platform": message.platform, "user_id": str(message.user_id)}

        for flow in self.candidate_flows(message):
            if not should_trigger(flow, message):
                continue

            try:
                execution = self.ledger.create_execution(flow, message, now=now)
            except RateLimitExceeded as e:
                result.rate_limited.append(
                    RateLimitedFlow(flow_id=flow.id, flow_name=flow.name, error=str(e))
                )
                self.metrics.increment(RATE_LIMITED, labels=labels)
                logger.info(
                    "Flow skipped by rate limit",
                    context=context,
                    flow_id=flow.id,
                    sender_id=message.sender_id,
                )
                continue

            flow.total_triggers = (flow.total_triggers or 0) + 1
            flow.last_triggered = now

            result.triggered.append(
                MatchedFlow(flow_id=flow.id, flow_name=flow.name, execution_id=execution.id)
            )
            self.metrics.increment(FLOWS_TRIGGERED, labels=labels)
            logger.info(
                "Flow triggered",
                context=context,
                flow_id=flow.id,
                execution_id=execution.id,
            )

        self.db.flush()
        return result

    def process_inbound_message(
        self,
        message_id: int,
        user_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> TriggerResult:
        """Evaluate triggers for one stored message.

        Args:
            message_id: ID of the inbound message.
            user_id: When given, the message must belong to this user.
            now: Evaluation time (naive UTC).

        Raises:
            MessageNotFoundError: If the message does not exist (or is not
                the user's).
        """
        query = self.db.query(Message).filter(Message.id == message_id)
        if user_id is not None:
            query = query.filter(Message.user_id == user_id)

        message = query.first()
        if message is None:
            raise MessageNotFoundError(f"Message {message_id} not found")

        return self.evaluate_triggers(message, now=now)


__all__ = [
    "MatchedFlow",
    "MessageNotFoundError",
    "RateLimitedFlow",
    "TriggerEvaluator",
    "TriggerResult",
]
