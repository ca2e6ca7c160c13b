"""Auto-reply flow management for EchoDesk.

Provides flow CRUD with validation, activation toggling, cascading delete,
execution reporting and a dry-run simulation of a flow against a test
message.
"""

from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session as DBSession

from echodesk_core.domain.clock import utcnow
from echodesk_core.domain.models import (
    FLOW_PLATFORMS,
    PLATFORMS,
    AutoReplyExecution,
    AutoReplyFlow,
    FlowStep,
    Message,
    MessageType,
    StepType,
    TriggerType,
)
from echodesk_core.domain.services.conditions import (
    KNOWN_STEP_CONDITIONS,
    parse_clock,
    should_execute_step,
    should_trigger,
)
from echodesk_core.domain.services.executions import (
    DEFAULT_EXECUTION_LIST_LIMIT,
    ExecutionLedger,
    FlowExecutionStats,
)

VALID_TRIGGER_TYPES = {
    TriggerType.KEYWORD,
    TriggerType.TIME,
    TriggerType.SENDER,
    TriggerType.MESSAGE_TYPE,
}
VALID_STEP_TYPES = {
    StepType.IMMEDIATE_REPLY,
    StepType.DELAYED_REPLY,
    StepType.CONDITIONAL_REPLY,
    StepType.END,
}

MAX_NAME_LENGTH = 255
MAX_KEYWORDS = 100
MAX_STEPS = 50

# Fields update_flow may change besides steps
UPDATABLE_FIELDS = {
    "name",
    "description",
    "platform",
    "is_active",
    "trigger_keywords",
    "trigger_type",
    "trigger_value",
    "max_replies_per_user",
    "cooldown_period",
    "working_hours",
}


class FlowError(Exception):
    """Base exception for flow errors."""

    pass


class FlowNotFoundError(FlowError):
    """Raised when a flow does not exist or belongs to another user."""

    pass


class FlowValidationError(FlowError):
    """Raised when a flow definition is invalid."""

    pass


def validate_working_hours(working_hours: Optional[dict]) -> None:
    """Validate a working-hours setting.

    Raises:
        FlowValidationError: If times or timezone are invalid.
    """
    if not working_hours:
        return

    for key in ("startTime", "endTime"):
        value = working_hours.get(key)
        if value is None:
            continue
        try:
            parse_clock(value)
        except (ValueError, AttributeError):
            raise FlowValidationError(f"working_hours.{key} must be HH:MM")

    zone = working_hours.get("timezone")
    if zone:
        try:
            ZoneInfo(zone)
        except (ZoneInfoNotFoundError, ValueError):
            raise FlowValidationError(f"Unknown timezone '{zone}'")


def validate_steps(steps: list[dict[str, Any]]) -> None:
    """Validate a step list.

    Raises:
        FlowValidationError: On duplicate numbers, unknown types or
            conditions, missing reply content, negative delays, a next_step
            naming no step, or steps that loop back without an end.
    """
    if len(steps) > MAX_STEPS:
        raise FlowValidationError(f"A flow may have at most {MAX_STEPS} steps")

    seen: set[int] = set()
    for step in steps:
        number = step.get("step_number")
        if not isinstance(number, int) or number < 1:
            raise FlowValidationError("step_number must be a positive integer")
        if number in seen:
            raise FlowValidationError(f"Duplicate step_number {number}")
        seen.add(number)

        if step.get("step_type") not in VALID_STEP_TYPES:
            raise FlowValidationError(f"Invalid step_type for step {number}")
        if (step.get("condition") or "always") not in KNOWN_STEP_CONDITIONS:
            raise FlowValidationError(f"Invalid condition for step {number}")
        if not (step.get("reply_content") or "").strip():
            raise FlowValidationError(f"Step {number} needs reply_content")
        if (step.get("delay") or 0) < 0:
            raise FlowValidationError(f"Step {number} delay must not be negative")

    for step in steps:
        target = step.get("next_step")
        if target is not None and target not in seen:
            raise FlowValidationError(
                f"Step {step['step_number']} next_step {target} is not a step of this flow"
            )

    _reject_loops(steps)


def _reject_loops(steps: list[dict[str, Any]]) -> None:
    # An end step only stops the chain when its condition cannot skip it
    successors: dict[int, int] = {}
    numbers = {step["step_number"] for step in steps}
    for step in steps:
        number = step["step_number"]
        if step.get("is_end_step") and (step.get("condition") or "always") == "always":
            continue
        following = step.get("next_step")
        if following is None:
            following = number + 1
        if following in numbers:
            successors[number] = following

    for start in successors:
        path: set[int] = set()
        current = start
        while current in successors:
            if current in path:
                raise FlowValidationError(
                    f"Steps loop back to step {current} without reaching an end step"
                )
            path.add(current)
            current = successors[current]


class FlowService:
    """Service for auto-reply flow management."""

    def __init__(self, db: DBSession):
        """Initialize the flow service.

        Args:
            db: SQLAlchemy database session.
        """
        self.db = db
        self.ledger = ExecutionLedger(db)

    # -------------------------------------------------------------------------
    # Validation helpers
    # -------------------------------------------------------------------------

    def _validate(self, values: dict[str, Any]) -> None:
        if "name" in values:
            name = (values["name"] or "").strip()
            if not name:
                raise FlowValidationError("name must not be empty")
            if len(name) > MAX_NAME_LENGTH:
                raise FlowValidationError(f"name must not exceed {MAX_NAME_LENGTH} characters")

        if "platform" in values and values["platform"] not in FLOW_PLATFORMS:
            raise FlowValidationError(f"Invalid platform '{values['platform']}'")

        if "trigger_type" in values and values["trigger_type"] not in VALID_TRIGGER_TYPES:
            raise FlowValidationError(f"Invalid trigger type '{values['trigger_type']}'")

        keywords = values.get("trigger_keywords")
        if keywords is not None and len(keywords) > MAX_KEYWORDS:
            raise FlowValidationError(f"At most {MAX_KEYWORDS} trigger keywords allowed")

        if "max_replies_per_user" in values and values["max_replies_per_user"] < 1:
            raise FlowValidationError("max_replies_per_user must be at least 1")

        if "cooldown_period" in values and values["cooldown_period"] < 0:
            raise FlowValidationError("cooldown_period must not be negative")

        if "working_hours" in values:
            validate_working_hours(values["working_hours"])

    @staticmethod
    def _clean_keywords(keywords: Optional[list[str]]) -> list[str]:
        return [k.strip() for k in (keywords or []) if k and k.strip()]

    @staticmethod
    def _build_steps(steps: list[dict[str, Any]]) -> list[FlowStep]:
        return [
            FlowStep(
                step_number=s["step_number"],
                step_type=s["step_type"],
                delay=s.get("delay") or 0,
                condition=s.get("condition") or "always",
                condition_value=s.get("condition_value"),
                reply_content=s["reply_content"],
                reply_image=s.get("reply_image"),
                next_step=s.get("next_step"),
                is_end_step=bool(s.get("is_end_step", False)),
            )
            for s in sorted(steps, key=lambda s: s["step_number"])
        ]

    # -------------------------------------------------------------------------
    # CRUD
    # -------------------------------------------------------------------------

    def create_flow(
        self,
        user_id: int,
        name: str,
        platform: str,
        steps: list[dict[str, Any]],
        description: Optional[str] = None,
        is_active: bool = True,
        trigger_keywords: Optional[list[str]] = None,
        trigger_type: str = TriggerType.KEYWORD,
        trigger_value: Optional[str] = None,
        max_replies_per_user: int = 3,
        cooldown_period: int = 24,
        working_hours: Optional[dict] = None,
    ) -> AutoReplyFlow:
        """Create a flow with its steps.

        Raises:
            FlowValidationError: If the definition is invalid.
        """
        self._validate(
            {
                "name": name,
                "platform": platform,
                "trigger_type": trigger_type,
                "trigger_keywords": trigger_keywords,
                "max_replies_per_user": max_replies_per_user,
                "cooldown_period": cooldown_period,
                "working_hours": working_hours,
            }
        )
        validate_steps(steps)

        now = utcnow()
        flow = AutoReplyFlow(
            user_id=user_id,
            name=name.strip(),
            description=description,
            platform=platform,
            is_active=is_active,
            trigger_keywords=self._clean_keywords(trigger_keywords),
            trigger_type=trigger_type,
            trigger_value=trigger_value,
            max_replies_per_user=max_replies_per_user,
            cooldown_period=cooldown_period,
            working_hours=working_hours,
            total_triggers=0,
            total_replies=0,
            created_at=now,
            updated_at=now,
        )
        flow.steps = self._build_steps(steps)

        self.db.add(flow)
        self.db.flush()
        return flow

    def get_flow(self, flow_id: int, user_id: int) -> AutoReplyFlow:
        """Load a user's flow.

        Raises:
            FlowNotFoundError: If missing or owned by another user.
        """
        flow = (
            self.db.query(AutoReplyFlow)
            .filter(AutoReplyFlow.id == flow_id, AutoReplyFlow.user_id == user_id)
            .first()
        )
        if flow is None:
            raise FlowNotFoundError(f"Auto reply flow {flow_id} not found")
        return flow

    def list_flows(self, user_id: int, platform: Optional[str] = None) -> list[AutoReplyFlow]:
        """A user's flows, newest first."""
        query = self.db.query(AutoReplyFlow).filter(AutoReplyFlow.user_id == user_id)
        if platform:
            query = query.filter(AutoReplyFlow.platform == platform)
        return query.order_by(AutoReplyFlow.created_at.desc(), AutoReplyFlow.id.desc()).all()

    def update_flow(
        self,
        flow_id: int,
        user_id: int,
        values: dict[str, Any],
        steps: Optional[list[dict[str, Any]]] = None,
    ) -> AutoReplyFlow:
        """Update flow fields and optionally replace its steps.

        Running executions keep their current step number; if it no longer
        exists after the update they complete on their next tick.

        Raises:
            FlowNotFoundError: If the flow is not the user's.
            FlowValidationError: If the new definition is invalid.
        """
        flow = self.get_flow(flow_id, user_id)

        unknown = set(values) - UPDATABLE_FIELDS
        if unknown:
            raise FlowValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")

        self._validate(values)
        if steps is not None:
            validate_steps(steps)

        for field_name, value in values.items():
            if field_name == "trigger_keywords":
                value = self._clean_keywords(value)
            elif field_name == "name":
                value = value.strip()
            setattr(flow, field_name, value)

        if steps is not None:
            # Old rows must be gone before reinserting the same step numbers
            flow.steps.clear()
            self.db.flush()
            flow.steps = self._build_steps(steps)

        flow.updated_at = utcnow()
        self.db.flush()
        return flow

    def toggle_flow(self, flow_id: int, user_id: int) -> AutoReplyFlow:
        """Flip a flow between active and inactive."""
        flow = self.get_flow(flow_id, user_id)
        flow.is_active = not flow.is_active
        flow.updated_at = utcnow()
        self.db.flush()
        return flow

    def delete_flow(self, flow_id: int, user_id: int) -> int:
        """Delete a flow together with all its executions.

        Returns:
            Number of executions deleted.
        """
        flow = self.get_flow(flow_id, user_id)
        deleted = self.ledger.delete_for_flow(flow.id)
        self.db.delete(flow)
        self.db.flush()
        return deleted

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def list_executions(
        self,
        flow_id: int,
        user_id: int,
        limit: int = DEFAULT_EXECUTION_LIST_LIMIT,
    ) -> list[AutoReplyExecution]:
        """Newest executions of a user's flow."""
        flow = self.get_flow(flow_id, user_id)
        return self.ledger.list_for_flow(flow.id, limit=limit)

    def get_stats(self, flow_id: int, user_id: int) -> FlowExecutionStats:
        """Execution statistics of a user's flow."""
        flow = self.get_flow(flow_id, user_id)
        return self.ledger.stats_for_flow(flow.id)

    # -------------------------------------------------------------------------
    # Simulation
    # -------------------------------------------------------------------------

    def simulate(
        self,
        flow_id: int,
        user_id: int,
        test_message: str,
        sender_id: str = "test_sender",
        message_type: str = MessageType.DIRECT_MESSAGE,
    ) -> dict[str, Any]:
        """Dry-run a flow against a test message.

        Walks the step chain the executor would follow, reporting whether
        each step would run and when relative to the trigger. Nothing is
        written.
        """
        flow = self.get_flow(flow_id, user_id)
        now = utcnow()

        message = Message(
            user_id=user_id,
            platform=flow.platform if flow.platform in PLATFORMS else None,
            platform_message_id="simulation",
            sender_id=sender_id,
            sender_name=sender_id,
            content=test_message,
            message_type=message_type,
            received_at=now,
        )
        zone_name = (flow.working_hours or {}).get("timezone")

        simulated_steps = []
        offset_minutes = 0
        visited: set[int] = set()
        current = flow.first_step_number

        while current not in visited:
            step = flow.get_step(current)
            if step is None:
                break
            visited.add(current)

            would_execute = should_execute_step(step, message, now, zone_name)
            simulated_steps.append(
                {
                    "step_number": step.step_number,
                    "step_type": step.step_type,
                    "condition": step.condition,
                    "condition_value": step.condition_value,
                    "reply_content": step.reply_content,
                    "delay": step.delay,
                    "would_execute": would_execute,
                    "offset_minutes": offset_minutes,
                }
            )

            if would_execute:
                if step.is_end_step:
                    break
                if step.step_type == StepType.DELAYED_REPLY and step.delay > 0:
                    offset_minutes += step.delay

            current = step.next_step if step.next_step is not None else current + 1

        return {
            "flow_id": flow.id,
            "flow_name": flow.name,
            "test_message": test_message,
            "would_trigger": should_trigger(flow, message),
            "steps": simulated_steps,
        }


__all__ = [
    "FlowError",
    "FlowNotFoundError",
    "FlowService",
    "FlowValidationError",
    "validate_steps",
    "validate_working_hours",
]
