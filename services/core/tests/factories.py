"""Test data factories for EchoDesk Core.

This module provides factory functions to create test data for models.
Use these instead of manually constructing objects in tests for consistency.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from echodesk_core.domain.models import (
    Account,
    AutoReplyExecution,
    AutoReplyFlow,
    FlowStep,
    Message,
    User,
)
from echodesk_core.infrastructure.crypto import CryptoService

# Fixed "now" used by unit tests (a Monday, naive UTC)
NOW = datetime(2026, 3, 2, 12, 0, 0)


# -----------------------------------------------------------------------------
# User Factory
# -----------------------------------------------------------------------------


def create_user(
    session: Session,
    username: str = "testuser",
    password_hash: str = "$argon2id$test$hash",  # Placeholder hash
    **kwargs: Any,
) -> User:
    """Create a User record for testing."""
    user = User(username=username, password_hash=password_hash, **kwargs)
    session.add(user)
    session.flush()
    return user


# -----------------------------------------------------------------------------
# Account Factory
# -----------------------------------------------------------------------------


def create_account(
    session: Session,
    crypto: CryptoService,
    user: User,
    platform: str = "Telegram",
    access_token: str = "123456:test-bot-token",
    **kwargs: Any,
) -> Account:
    """Create a connected Account with an encrypted access token."""
    account = Account(
        user_id=user.id,
        platform=platform,
        access_token_encrypted=crypto.encrypt(access_token),
        **kwargs,
    )
    session.add(account)
    session.flush()
    return account


# -----------------------------------------------------------------------------
# Message Factory
# -----------------------------------------------------------------------------


def create_message(
    session: Session,
    user: User,
    content: str = "hello there",
    platform: str = "Telegram",
    platform_message_id: Optional[str] = None,
    sender_id: str = "555",
    sender_name: str = "Alice",
    message_type: str = "direct_message",
    received_at: Optional[datetime] = None,
    **kwargs: Any,
) -> Message:
    """Create an inbound Message for testing."""
    if platform_message_id is None:
        platform_message_id = f"msg_{session.query(Message).count() + 1}"

    message = Message(
        user_id=user.id,
        platform=platform,
        platform_message_id=platform_message_id,
        sender_id=sender_id,
        sender_name=sender_name,
        content=content,
        message_type=message_type,
        received_at=received_at or NOW,
        **kwargs,
    )
    session.add(message)
    session.flush()
    return message


# -----------------------------------------------------------------------------
# Flow Factory
# -----------------------------------------------------------------------------


def step(
    step_number: int,
    reply_content: str,
    step_type: str = "immediate_reply",
    **kwargs: Any,
) -> dict[str, Any]:
    """Build a step definition dict."""
    return {
        "step_number": step_number,
        "step_type": step_type,
        "reply_content": reply_content,
        **kwargs,
    }


def create_flow(
    session: Session,
    user: User,
    name: str = "Greeting",
    platform: str = "Telegram",
    steps: Optional[list[dict[str, Any]]] = None,
    trigger_keywords: Optional[list[str]] = None,
    **kwargs: Any,
) -> AutoReplyFlow:
    """Create an AutoReplyFlow with steps (one immediate reply by default)."""
    if steps is None:
        steps = [step(1, "Thanks for reaching out!", is_end_step=True)]

    flow = AutoReplyFlow(
        user_id=user.id,
        name=name,
        platform=platform,
        trigger_keywords=["hello"] if trigger_keywords is None else trigger_keywords,
        **kwargs,
    )
    flow.steps = [
        FlowStep(
            step_number=s["step_number"],
            step_type=s.get("step_type", "immediate_reply"),
            delay=s.get("delay", 0),
            condition=s.get("condition", "always"),
            condition_value=s.get("condition_value"),
            reply_content=s["reply_content"],
            reply_image=s.get("reply_image"),
            next_step=s.get("next_step"),
            is_end_step=s.get("is_end_step", False),
        )
        for s in steps
    ]
    session.add(flow)
    session.flush()
    return flow


# -----------------------------------------------------------------------------
# Execution Factory
# -----------------------------------------------------------------------------


def create_execution(
    session: Session,
    flow: AutoReplyFlow,
    message: Message,
    status: str = "active",
    current_step: int = 1,
    next_execution_time: Optional[datetime] = None,
    created_at: Optional[datetime] = None,
    **kwargs: Any,
) -> AutoReplyExecution:
    """Create an AutoReplyExecution directly, bypassing the rate limit."""
    execution = AutoReplyExecution(
        flow_id=flow.id,
        user_id=flow.user_id,
        original_message_id=message.id,
        platform=message.platform,
        sender_id=message.sender_id,
        sender_name=message.sender_name,
        status=status,
        current_step=current_step,
        next_execution_time=next_execution_time or NOW,
        created_at=created_at or NOW,
        last_activity=created_at or NOW,
        **kwargs,
    )
    session.add(execution)
    session.flush()
    return execution
