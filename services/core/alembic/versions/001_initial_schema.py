"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-17

Creates all tables for EchoDesk:
- users
- sessions
- accounts
- messages
- auto_reply_flows
- flow_steps
- auto_reply_executions
- execution_steps
- audit_log
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

PLATFORMS = (
    "Twitter",
    "Facebook",
    "Instagram",
    "LinkedIn",
    "Telegram",
    "WhatsApp",
    "TikTok",
    "YouTube",
)


def upgrade() -> None:
    # Users table
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(64), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column(
            "created_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.Column("last_login_at", sa.DateTime, nullable=True),
    )

    # Sessions table
    op.create_table(
        "sessions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.BigInteger, nullable=False),
        sa.Column(
            "created_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.Column("expires_at", sa.DateTime, nullable=False),
        sa.Column("data_json", sa.JSON, nullable=True),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], name="fk_sessions_user", ondelete="CASCADE"
        ),
    )

    # Connected platform accounts
    op.create_table(
        "accounts",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger, nullable=False),
        sa.Column(
            "platform", sa.Enum(*PLATFORMS, name="account_platform_enum"), nullable=False
        ),
        sa.Column("access_token_encrypted", sa.Text, nullable=False),
        sa.Column("access_secret_encrypted", sa.Text, nullable=True),
        sa.Column("refresh_token_encrypted", sa.Text, nullable=True),
        sa.Column("page_id", sa.String(128), nullable=True),
        sa.Column("platform_id", sa.String(128), nullable=True),
        sa.Column("channel_id", sa.String(128), nullable=True),
        sa.Column("display_name", sa.String(128), nullable=True),
        sa.Column("bot_username", sa.String(128), nullable=True),
        sa.Column("expires_at", sa.DateTime, nullable=True),
        sa.Column("is_quick_setup", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], name="fk_accounts_user", ondelete="CASCADE"
        ),
        sa.UniqueConstraint("user_id", "platform", name="uq_account_platform"),
    )

    # Inbound messages
    op.create_table(
        "messages",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger, nullable=False),
        sa.Column(
            "platform", sa.Enum(*PLATFORMS, name="message_platform_enum"), nullable=False
        ),
        sa.Column("platform_message_id", sa.String(128), nullable=False),
        sa.Column("sender_id", sa.String(128), nullable=False),
        sa.Column("sender_name", sa.String(255), nullable=False),
        sa.Column("sender_username", sa.String(128), nullable=True),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column(
            "message_type",
            sa.Enum(
                "direct_message", "mention", "comment", "reply", name="message_type_enum"
            ),
            nullable=False,
            server_default="direct_message",
        ),
        sa.Column("received_at", sa.DateTime, nullable=False),
        sa.Column("reply_to_message_id", sa.String(128), nullable=True),
        sa.Column("thread_id", sa.String(128), nullable=True),
        sa.Column(
            "created_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], name="fk_messages_user", ondelete="CASCADE"
        ),
        sa.UniqueConstraint(
            "user_id",
            "platform",
            "sender_id",
            "platform_message_id",
            name="uq_message_conversation_id",
        ),
    )
    op.create_index(
        "idx_message_user_received",
        "messages",
        ["user_id", "platform", "received_at"],
    )

    # Auto-reply flows
    op.create_table(
        "auto_reply_flows",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column(
            "platform",
            sa.Enum(*PLATFORMS, "All", name="flow_platform_enum"),
            nullable=False,
        ),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("trigger_keywords", sa.JSON, nullable=False),
        sa.Column(
            "trigger_type",
            sa.Enum("keyword", "time", "sender", "message_type", name="trigger_type_enum"),
            nullable=False,
            server_default="keyword",
        ),
        sa.Column("trigger_value", sa.String(255), nullable=True),
        sa.Column("max_replies_per_user", sa.Integer, nullable=False, server_default="3"),
        sa.Column("cooldown_period", sa.Integer, nullable=False, server_default="24"),
        sa.Column("working_hours", sa.JSON, nullable=True),
        sa.Column("total_triggers", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_replies", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_triggered", sa.DateTime, nullable=True),
        sa.Column(
            "created_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.ForeignKeyConstraint(
            ["user_id"], ["users.id"], name="fk_flows_user", ondelete="CASCADE"
        ),
    )
    op.create_index(
        "idx_flow_user_platform_active",
        "auto_reply_flows",
        ["user_id", "platform", "is_active"],
    )

    # Flow steps
    op.create_table(
        "flow_steps",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("flow_id", sa.BigInteger, nullable=False),
        sa.Column("step_number", sa.Integer, nullable=False),
        sa.Column(
            "step_type",
            sa.Enum(
                "immediate_reply",
                "delayed_reply",
                "conditional_reply",
                "end",
                name="step_type_enum",
            ),
            nullable=False,
        ),
        sa.Column("delay", sa.Integer, nullable=False, server_default="0"),
        sa.Column("condition", sa.String(32), nullable=False, server_default="always"),
        sa.Column("condition_value", sa.String(255), nullable=True),
        sa.Column("reply_content", sa.Text, nullable=False),
        sa.Column("reply_image", sa.String(1024), nullable=True),
        sa.Column("next_step", sa.Integer, nullable=True),
        sa.Column("is_end_step", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.ForeignKeyConstraint(
            ["flow_id"],
            ["auto_reply_flows.id"],
            name="fk_steps_flow",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("flow_id", "step_number", name="uq_flow_step_number"),
    )

    # Executions
    op.create_table(
        "auto_reply_executions",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("flow_id", sa.BigInteger, nullable=False),
        sa.Column("user_id", sa.BigInteger, nullable=False),
        sa.Column("original_message_id", sa.BigInteger, nullable=False),
        sa.Column("platform", sa.String(32), nullable=False),
        sa.Column("sender_id", sa.String(128), nullable=True),
        sa.Column("sender_name", sa.String(255), nullable=True),
        sa.Column("current_step", sa.Integer, nullable=False, server_default="1"),
        sa.Column(
            "status",
            sa.Enum(
                "active",
                "processing",
                "completed",
                "paused",
                "failed",
                name="execution_status_enum",
            ),
            nullable=False,
            server_default="active",
        ),
        sa.Column("version", sa.Integer, nullable=False, server_default="0"),
        sa.Column("claimed_at", sa.DateTime, nullable=True),
        sa.Column("next_execution_time", sa.DateTime, nullable=True),
        sa.Column("total_replies", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "last_activity", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "created_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.ForeignKeyConstraint(
            ["flow_id"],
            ["auto_reply_flows.id"],
            name="fk_executions_flow",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["original_message_id"],
            ["messages.id"],
            name="fk_executions_message",
            ondelete="CASCADE",
        ),
    )
    op.create_index(
        "idx_execution_flow_status", "auto_reply_executions", ["flow_id", "status"]
    )
    op.create_index(
        "idx_execution_user_platform", "auto_reply_executions", ["user_id", "platform"]
    )
    op.create_index(
        "idx_execution_due", "auto_reply_executions", ["status", "next_execution_time"]
    )
    op.create_index(
        "idx_execution_rate",
        "auto_reply_executions",
        ["flow_id", "sender_id", "created_at"],
    )

    # Executed step log
    op.create_table(
        "execution_steps",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("execution_id", sa.BigInteger, nullable=False),
        sa.Column("step_number", sa.Integer, nullable=False),
        sa.Column("executed_at", sa.DateTime, nullable=False),
        sa.Column("reply_content", sa.Text, nullable=True),
        sa.Column("reply_message_id", sa.String(128), nullable=True),
        sa.Column("success", sa.Boolean, nullable=False),
        sa.Column("error", sa.Text, nullable=True),
        sa.ForeignKeyConstraint(
            ["execution_id"],
            ["auto_reply_executions.id"],
            name="fk_execution_steps_execution",
            ondelete="CASCADE",
        ),
    )
    op.create_index(
        "idx_execution_step_execution", "execution_steps", ["execution_id"]
    )

    # Audit log
    op.create_table(
        "audit_log",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("ts", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column(
            "actor", sa.Enum("user", "system", name="audit_actor_enum"), nullable=False
        ),
        sa.Column("action_type", sa.String(128), nullable=False),
        sa.Column("user_id", sa.BigInteger, nullable=True),
        sa.Column("entity_type", sa.String(64), nullable=True),
        sa.Column("entity_id", sa.BigInteger, nullable=True),
        sa.Column("request_json", sa.JSON, nullable=True),
        sa.Column("response_json", sa.JSON, nullable=True),
        sa.Column(
            "result", sa.Enum("ok", "error", name="audit_result_enum"), nullable=False
        ),
        sa.Column("error_detail", sa.Text, nullable=True),
    )
    op.create_index("idx_audit_ts", "audit_log", ["ts"])
    op.create_index("idx_audit_action", "audit_log", ["action_type"])
    op.create_index("idx_audit_user", "audit_log", ["user_id"])


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("execution_steps")
    op.drop_table("auto_reply_executions")
    op.drop_table("flow_steps")
    op.drop_table("auto_reply_flows")
    op.drop_table("messages")
    op.drop_table("accounts")
    op.drop_table("sessions")
    op.drop_table("users")
