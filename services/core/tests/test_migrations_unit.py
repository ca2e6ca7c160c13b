"""Tests for the Alembic migrations."""

from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

ALEMBIC_DIR = Path(__file__).resolve().parents[1] / "alembic"


@pytest.fixture
def alembic_config(tmp_path):
    url = f"sqlite+pysqlite:///{tmp_path / 'migrations.db'}"
    config = Config()
    config.set_main_option("script_location", str(ALEMBIC_DIR))
    config.set_main_option("sqlalchemy.url", url)
    return config, url


def test_upgrade_creates_schema(alembic_config):
    config, url = alembic_config

    command.upgrade(config, "head")

    inspector = inspect(create_engine(url))
    assert {
        "users",
        "sessions",
        "accounts",
        "messages",
        "auto_reply_flows",
        "flow_steps",
        "auto_reply_executions",
        "execution_steps",
        "audit_log",
    } <= set(inspector.get_table_names())

    constraints = {c["name"]: c["column_names"] for c in inspector.get_unique_constraints("messages")}
    assert constraints["uq_message_conversation_id"] == [
        "user_id",
        "platform",
        "sender_id",
        "platform_message_id",
    ]


def test_downgrade_removes_schema(alembic_config):
    config, url = alembic_config
    command.upgrade(config, "head")

    command.downgrade(config, "base")

    assert inspect(create_engine(url)).get_table_names() == ["alembic_version"]
