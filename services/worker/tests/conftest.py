"""Pytest configuration and fixtures for worker tests.

These fixtures enable testing Celery tasks without requiring:
- Running Redis/Celery
- A MySQL server
- External platform APIs
"""

import os
from contextlib import contextmanager
from typing import Any, Generator

import pytest
from sqlalchemy import StaticPool, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

# Set test environment variables before importing celery_app
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("MYSQL_URL", "sqlite+pysqlite:///:memory:")


@pytest.fixture(scope="session")
def celery_config() -> dict[str, Any]:
    """Celery configuration for testing."""
    return {
        "broker_url": "memory://",
        "result_backend": "cache+memory://",
        "task_always_eager": True,
        "task_eager_propagates": True,
    }


@pytest.fixture
def eager_app():
    """The worker's Celery app, running tasks synchronously."""
    from echodesk_worker.celery_app import app

    app.conf.update(
        task_always_eager=True,
        task_eager_propagates=True,
    )
    yield app
    app.conf.update(task_always_eager=False, task_eager_propagates=False)


@pytest.fixture
def worker_settings():
    """Settings used by tasks under test."""
    from echodesk_core.config import Settings
    from echodesk_core.infrastructure.crypto import CryptoService

    return Settings(
        mysql_url="sqlite+pysqlite:///:memory:",
        encryption_key=CryptoService.generate_key(),
        log_json=False,
        auto_reply_claim_timeout_minutes=10,
    )


@pytest.fixture
def crypto(worker_settings):
    from echodesk_core.infrastructure.crypto import CryptoService

    return CryptoService(worker_settings.encryption_key)


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    """SQLite in-memory session with the full schema."""
    from echodesk_core.domain.models import Base

    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def patch_session_scope(db_session, monkeypatch):
    """Route the tasks' session_scope() to the test session."""

    @contextmanager
    def scope():
        try:
            yield db_session
            db_session.commit()
        except Exception:
            db_session.rollback()
            raise

    monkeypatch.setattr("echodesk_worker.tasks.auto_reply.session_scope", scope)
    monkeypatch.setattr("echodesk_worker.tasks.maintenance.session_scope", scope)
    return scope


@pytest.fixture
def sent_replies() -> list:
    """Replies captured by the recording registry."""
    return []


@pytest.fixture
def recording_registry(sent_replies):
    """Adapter registry whose adapters capture replies instead of sending."""
    from echodesk_core.providers.base import PlatformAdapter, SendReplyResult
    from echodesk_core.providers.registry import AdapterRegistry

    class CapturingAdapter(PlatformAdapter):
        async def _deliver(self, context):
            sent_replies.append(context)
            return SendReplyResult.ok(f"captured_{len(sent_replies)}")

    registry = AdapterRegistry()
    for platform in ("Telegram", "WhatsApp", "Facebook", "Twitter", "LinkedIn"):
        registry.register(platform, lambda credentials, settings: CapturingAdapter(credentials))
    return registry


@pytest.fixture
def patch_executor(monkeypatch, recording_registry, worker_settings):
    """Build the scheduler tick's StepExecutor with test collaborators."""
    from echodesk_core.domain.services.executor import StepExecutor
    from echodesk_core.observability import MetricsCollector

    metrics = MetricsCollector()

    def build(session):
        return StepExecutor(
            session,
            registry=recording_registry,
            settings=worker_settings,
            metrics=metrics,
        )

    monkeypatch.setattr("echodesk_worker.tasks.auto_reply.StepExecutor", build)
    return metrics
