"""Trigger and step condition evaluation for auto-reply flows.

Pure functions, no database access:
- should_trigger: does a flow fire for an inbound message
- should_execute_step: does a flow step run for the execution's message
- within_working_hours: is a moment inside the flow's working-hours window

Step conditions (contains_keyword, time_based, sender_based) without a
condition value always pass. With a value they are evaluated against the
original inbound message:
- contains_keyword: comma-separated keywords, case-insensitive substring
- time_based: "HH:MM-HH:MM" window on the current time (overnight allowed)
- sender_based: comma-separated sender ids or usernames
"""

from datetime import datetime, time, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from echodesk_core.domain.models import (
    AutoReplyFlow,
    FlowStep,
    Message,
    StepCondition,
    TriggerType,
)
from echodesk_core.observability import get_logger

logger = get_logger(__name__)

KNOWN_STEP_CONDITIONS = {
    StepCondition.ALWAYS,
    StepCondition.CONTAINS_KEYWORD,
    StepCondition.TIME_BASED,
    StepCondition.SENDER_BASED,
}


# =============================================================================
# TIME WINDOWS
# =============================================================================


def parse_clock(value: str) -> time:
    """Parse "HH:MM" into a time.

    Raises:
        ValueError: If the value is not a valid 24h clock time.
    """
    hours, _, minutes = value.strip().partition(":")
    if not hours.isdigit() or not minutes.isdigit():
        raise ValueError(f"invalid time '{value}', expected HH:MM")
    return time(int(hours), int(minutes))


def parse_time_window(value: str) -> tuple[time, time]:
    """Parse "HH:MM-HH:MM" into (start, end).

    Raises:
        ValueError: If the window is malformed.
    """
    start, sep, end = value.partition("-")
    if not sep:
        raise ValueError(f"invalid time window '{value}', expected HH:MM-HH:MM")
    return parse_clock(start), parse_clock(end)


def in_time_window(moment: time, start: time, end: time) -> bool:
    """Check a clock time against a window; start > end wraps midnight."""
    if start == end:
        return True
    if start < end:
        return start <= moment < end
    return moment >= start or moment < end


def resolve_zone(name: Optional[str]) -> ZoneInfo:
    """Return the named zone, UTC when missing or unknown."""
    if not name:
        return ZoneInfo("UTC")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone, using UTC", timezone=name)
        return ZoneInfo("UTC")


def local_clock(moment: datetime, zone: ZoneInfo) -> time:
    """Convert a naive-UTC datetime to the wall-clock time in a zone."""
    aware = moment.replace(tzinfo=timezone.utc) if moment.tzinfo is None else moment
    return aware.astimezone(zone).time()


def within_working_hours(working_hours: Optional[dict[str, Any]], moment: datetime) -> bool:
    """Check a moment against a flow's working-hours setting.

    Args:
        working_hours: {"enabled", "startTime", "endTime", "timezone"} or None.
        moment: Naive UTC datetime.

    Returns:
        True when working hours are disabled or the moment is inside them.
    """
    if not working_hours or not working_hours.get("enabled"):
        return True

    try:
        start = parse_clock(working_hours.get("startTime") or "09:00")
        end = parse_clock(working_hours.get("endTime") or "17:00")
    except ValueError:
        logger.warning("Invalid working hours, ignoring", working_hours=working_hours)
        return True

    zone = resolve_zone(working_hours.get("timezone"))
    return in_time_window(local_clock(moment, zone), start, end)


# =============================================================================
# TRIGGERS
# =============================================================================


def _split_values(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def matches_keywords(keywords: list[str], content: str) -> bool:
    """Case-insensitive substring match of any keyword."""
    text = (content or "").lower()
    return any(k and k.lower() in text for k in keywords)


def should_trigger(flow: AutoReplyFlow, message: Message) -> bool:
    """Decide whether a flow fires for an inbound message.

    Keywords are checked first and a hit triggers immediately. Otherwise the
    flow's trigger condition decides: message_type and sender compare for
    equality, time is not supported and never fires, anything else is false.
    Flows with working hours enabled never fire outside them.
    """
    if not within_working_hours(flow.working_hours, message.received_at):
        return False

    if flow.trigger_keywords and matches_keywords(flow.trigger_keywords, message.content):
        return True

    if flow.trigger_type == TriggerType.MESSAGE_TYPE:
        return message.message_type == flow.trigger_value

    if flow.trigger_type == TriggerType.SENDER:
        return message.sender_id == flow.trigger_value

    # TriggerType.TIME is not supported
    return False


# =============================================================================
# STEP CONDITIONS
# =============================================================================


def should_execute_step(
    step: FlowStep,
    message: Optional[Message],
    now: datetime,
    zone_name: Optional[str] = None,
) -> bool:
    """Decide whether a step runs.

    Args:
        step: The flow step about to run.
        message: The execution's original inbound message, if it still exists.
        now: Current naive-UTC time (for time_based).
        zone_name: Timezone for time_based windows (flow working-hours zone).
    """
    condition = step.condition or StepCondition.ALWAYS
    if condition not in KNOWN_STEP_CONDITIONS:
        return False

    value = (step.condition_value or "").strip()
    if condition == StepCondition.ALWAYS or not value:
        return True

    if condition == StepCondition.CONTAINS_KEYWORD:
        if message is None:
            return False
        return matches_keywords(_split_values(value), message.content)

    if condition == StepCondition.SENDER_BASED:
        if message is None:
            return False
        allowed = {v.lower() for v in _split_values(value)}
        candidates = {message.sender_id, message.sender_username}
        return any(c and c.lower() in allowed for c in candidates)

    # StepCondition.TIME_BASED
    try:
        start, end = parse_time_window(value)
    except ValueError:
        logger.warning(
            "Invalid time_based condition value",
            step_number=step.step_number,
            condition_value=value,
        )
        return False
    return in_time_window(local_clock(now, resolve_zone(zone_name)), start, end)


__all__ = [
    "KNOWN_STEP_CONDITIONS",
    "in_time_window",
    "matches_keywords",
    "parse_clock",
    "parse_time_window",
    "resolve_zone",
    "should_execute_step",
    "should_trigger",
    "within_working_hours",
]
