"""Domain models for EchoDesk.

This module defines the SQLAlchemy ORM models for users, connected platform
accounts, inbound messages, auto-reply flows and their executions.

All timestamps are stored as naive UTC.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from echodesk_core.domain.clock import utcnow

# BIGINT primary keys, compiled as INTEGER on SQLite so autoincrement works
IdType = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


# =============================================================================
# ENUMS
# =============================================================================


class Platform(str):
    """Supported platform values."""

    TWITTER = "Twitter"
    FACEBOOK = "Facebook"
    INSTAGRAM = "Instagram"
    LINKEDIN = "LinkedIn"
    TELEGRAM = "Telegram"
    WHATSAPP = "WhatsApp"
    TIKTOK = "TikTok"
    YOUTUBE = "YouTube"
    ALL = "All"


PLATFORMS = (
    Platform.TWITTER,
    Platform.FACEBOOK,
    Platform.INSTAGRAM,
    Platform.LINKEDIN,
    Platform.TELEGRAM,
    Platform.WHATSAPP,
    Platform.TIKTOK,
    Platform.YOUTUBE,
)

FLOW_PLATFORMS = PLATFORMS + (Platform.ALL,)


class MessageType(str):
    """Inbound message type values."""

    DIRECT_MESSAGE = "direct_message"
    MENTION = "mention"
    COMMENT = "comment"
    REPLY = "reply"


class TriggerType(str):
    """Flow trigger condition types."""

    KEYWORD = "keyword"
    TIME = "time"
    SENDER = "sender"
    MESSAGE_TYPE = "message_type"


class StepType(str):
    """Flow step types."""

    IMMEDIATE_REPLY = "immediate_reply"
    DELAYED_REPLY = "delayed_reply"
    CONDITIONAL_REPLY = "conditional_reply"
    END = "end"


class StepCondition(str):
    """Flow step condition values."""

    CONTAINS_KEYWORD = "contains_keyword"
    TIME_BASED = "time_based"
    SENDER_BASED = "sender_based"
    ALWAYS = "always"


class ExecutionStatus(str):
    """Execution status values.

    PROCESSING is the transient claim marker held while a worker dispatches
    a step; it is never a resting state.
    """

    ACTIVE = "active"
    PROCESSING = "processing"
    COMPLETED = "completed"
    PAUSED = "paused"
    FAILED = "failed"


class AuditActor(str):
    """Audit actor values."""

    USER = "user"
    SYSTEM = "system"


class AuditResult(str):
    """Audit result values."""

    OK = "ok"
    ERROR = "error"


# =============================================================================
# MODELS
# =============================================================================


class User(Base):
    """Tenant user owning accounts, messages and flows."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Relationships
    sessions: Mapped[list["Session"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    accounts: Mapped[list["Account"]] = relationship(back_populates="user")
    flows: Mapped[list["AutoReplyFlow"]] = relationship(back_populates="user")


class Session(Base):
    """Server-side session store."""

    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)  # UUID
    user_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    data_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # Relationships
    user: Mapped["User"] = relationship(back_populates="sessions")


class Account(Base):
    """A user's connected platform account.

    Secrets are Fernet-encrypted (see CryptoService). One account per
    (user, platform).
    """

    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    platform: Mapped[str] = mapped_column(
        Enum(*PLATFORMS, name="account_platform_enum"), nullable=False
    )

    access_token_encrypted: Mapped[str] = mapped_column(Text, nullable=False)
    access_secret_encrypted: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    refresh_token_encrypted: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Platform-specific identifiers
    page_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    platform_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    channel_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    bot_username: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    is_quick_setup: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        UniqueConstraint("user_id", "platform", name="uq_account_platform"),
    )

    # Relationships
    user: Mapped["User"] = relationship(back_populates="accounts")


class Message(Base):
    """Inbound message received on a platform.

    Written by webhook ingestion and reply-creation paths; the auto-reply
    engine only reads these rows.
    """

    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    platform: Mapped[str] = mapped_column(
        Enum(*PLATFORMS, name="message_platform_enum"), nullable=False
    )
    platform_message_id: Mapped[str] = mapped_column(String(128), nullable=False)

    sender_id: Mapped[str] = mapped_column(String(128), nullable=False)
    sender_name: Mapped[str] = mapped_column(String(255), nullable=False)
    sender_username: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    content: Mapped[str] = mapped_column(Text, nullable=False)
    message_type: Mapped[str] = mapped_column(
        Enum(
            "direct_message",
            "mention",
            "comment",
            "reply",
            name="message_type_enum",
        ),
        nullable=False,
        default="direct_message",
    )
    received_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    reply_to_message_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    thread_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "platform",
            "sender_id",
            "platform_message_id",
            name="uq_message_conversation_id",
        ),
        Index("idx_message_user_received", "user_id", "platform", "received_at"),
    )


class AutoReplyFlow(Base):
    """User-authored automation: trigger conditions plus ordered steps."""

    __tablename__ = "auto_reply_flows"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    platform: Mapped[str] = mapped_column(
        Enum(*FLOW_PLATFORMS, name="flow_platform_enum"), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Triggers
    trigger_keywords: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    trigger_type: Mapped[str] = mapped_column(
        Enum("keyword", "time", "sender", "message_type", name="trigger_type_enum"),
        nullable=False,
        default="keyword",
    )
    trigger_value: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Settings
    max_replies_per_user: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    cooldown_period: Mapped[int] = mapped_column(
        Integer, nullable=False, default=24
    )  # hours
    # { "enabled": bool, "startTime": "09:00", "endTime": "17:00", "timezone": "UTC" }
    working_hours: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # Statistics (engine-maintained telemetry)
    total_triggers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_replies: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_triggered: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index("idx_flow_user_platform_active", "user_id", "platform", "is_active"),
    )

    # Relationships
    user: Mapped["User"] = relationship(back_populates="flows")
    steps: Mapped[list["FlowStep"]] = relationship(
        back_populates="flow",
        cascade="all, delete-orphan",
        order_by="FlowStep.step_number",
    )
    executions: Mapped[list["AutoReplyExecution"]] = relationship(
        back_populates="flow",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def get_step(self, step_number: int) -> Optional["FlowStep"]:
        """Return the step with the given number, if any."""
        for step in self.steps:
            if step.step_number == step_number:
                return step
        return None

    @property
    def first_step_number(self) -> int:
        """Lowest step number of the flow (1 for an empty flow)."""
        if not self.steps:
            return 1
        return min(step.step_number for step in self.steps)


class FlowStep(Base):
    """One action within a flow."""

    __tablename__ = "flow_steps"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    flow_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("auto_reply_flows.id", ondelete="CASCADE"), nullable=False
    )
    step_number: Mapped[int] = mapped_column(Integer, nullable=False)
    step_type: Mapped[str] = mapped_column(
        Enum(
            "immediate_reply",
            "delayed_reply",
            "conditional_reply",
            "end",
            name="step_type_enum",
        ),
        nullable=False,
    )
    delay: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # minutes
    condition: Mapped[str] = mapped_column(String(32), nullable=False, default="always")
    condition_value: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    reply_content: Mapped[str] = mapped_column(Text, nullable=False)
    reply_image: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    next_step: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_end_step: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("flow_id", "step_number", name="uq_flow_step_number"),
    )

    # Relationships
    flow: Mapped["AutoReplyFlow"] = relationship(back_populates="steps")


class AutoReplyExecution(Base):
    """One run of a flow against a single inbound message.

    user_id, platform, sender_id and sender_name are copied from the flow and
    the inbound message at creation time and never re-synced.
    """

    __tablename__ = "auto_reply_executions"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    flow_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("auto_reply_flows.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(IdType, nullable=False)
    original_message_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("messages.id", ondelete="CASCADE"), nullable=False
    )

    platform: Mapped[str] = mapped_column(String(32), nullable=False)
    sender_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    sender_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    current_step: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    status: Mapped[str] = mapped_column(
        Enum(
            "active",
            "processing",
            "completed",
            "paused",
            "failed",
            name="execution_status_enum",
        ),
        nullable=False,
        default="active",
    )
    # Optimistic lock; bumped on every claim and release
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    claimed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    next_execution_time: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )
    total_replies: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_activity: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index("idx_execution_flow_status", "flow_id", "status"),
        Index("idx_execution_user_platform", "user_id", "platform"),
        Index("idx_execution_due", "status", "next_execution_time"),
        Index("idx_execution_rate", "flow_id", "sender_id", "created_at"),
    )

    # Relationships
    flow: Mapped["AutoReplyFlow"] = relationship(back_populates="executions")
    original_message: Mapped["Message"] = relationship()
    executed_steps: Mapped[list["ExecutionStep"]] = relationship(
        back_populates="execution",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ExecutionStep.id",
    )


class ExecutionStep(Base):
    """Append-only audit entry for a step the engine attempted to send."""

    __tablename__ = "execution_steps"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    execution_id: Mapped[int] = mapped_column(
        IdType,
        ForeignKey("auto_reply_executions.id", ondelete="CASCADE"),
        nullable=False,
    )
    step_number: Mapped[int] = mapped_column(Integer, nullable=False)
    executed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    reply_content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reply_message_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (Index("idx_execution_step_execution", "execution_id"),)

    # Relationships
    execution: Mapped["AutoReplyExecution"] = relationship(
        back_populates="executed_steps"
    )


class AuditLog(Base):
    """Append-only audit log of user and scheduler actions."""

    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    ts: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )

    actor: Mapped[str] = mapped_column(
        Enum("user", "system", name="audit_actor_enum"), nullable=False
    )
    action_type: Mapped[str] = mapped_column(String(128), nullable=False)

    user_id: Mapped[Optional[int]] = mapped_column(IdType, nullable=True)
    entity_type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    entity_id: Mapped[Optional[int]] = mapped_column(IdType, nullable=True)

    request_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    response_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    result: Mapped[str] = mapped_column(
        Enum("ok", "error", name="audit_result_enum"), nullable=False
    )
    error_detail: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_audit_ts", "ts"),
        Index("idx_audit_action", "action_type"),
        Index("idx_audit_user", "user_id"),
    )


__all__ = [
    "Base",
    "IdType",
    "Platform",
    "PLATFORMS",
    "FLOW_PLATFORMS",
    "MessageType",
    "TriggerType",
    "StepType",
    "StepCondition",
    "ExecutionStatus",
    "AuditActor",
    "AuditResult",
    "User",
    "Session",
    "Account",
    "Message",
    "AutoReplyFlow",
    "FlowStep",
    "AutoReplyExecution",
    "ExecutionStep",
    "AuditLog",
]
