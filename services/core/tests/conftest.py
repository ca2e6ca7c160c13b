"""Pytest configuration and fixtures for EchoDesk Core tests.

This module provides fixtures for:
- Database: SQLite in-memory shared by the test and the app under test
- HTTP client: AsyncClient for FastAPI testing, anonymous and logged in
- Platforms: an adapter registry whose adapters record instead of sending
"""

from collections.abc import AsyncGenerator, Generator
from typing import Optional

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import StaticPool, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from echodesk_core.config import Settings
from echodesk_core.domain.models import Base
from echodesk_core.infrastructure.crypto import CryptoService
from echodesk_core.observability import MetricsCollector
from echodesk_core.providers.base import (
    AccountCredentials,
    PlatformAdapter,
    ReplyContext,
    SendReplyResult,
)
from echodesk_core.providers.registry import AdapterRegistry


# -----------------------------------------------------------------------------
# Test Settings
# -----------------------------------------------------------------------------


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings with safe defaults."""
    return Settings(
        mysql_url="sqlite+pysqlite:///:memory:",
        redis_url="redis://localhost:6379/15",  # Use DB 15 for tests
        secret_key="test-secret-key-do-not-use-in-production",
        encryption_key=CryptoService.generate_key(),
        session_expire_hours=1,
        log_json=False,
        provider_http_timeout_seconds=5.0,
    )


@pytest.fixture
def crypto(test_settings) -> CryptoService:
    """Crypto service using the test encryption key."""
    return CryptoService(test_settings.encryption_key)


@pytest.fixture
def metrics() -> MetricsCollector:
    """A private metrics collector so counts don't leak between tests."""
    return MetricsCollector()


# -----------------------------------------------------------------------------
# Synchronous Database Fixtures
# -----------------------------------------------------------------------------


def _enable_foreign_keys(engine) -> None:
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@pytest.fixture
def sync_engine():
    """Create a synchronous SQLite in-memory engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    _enable_foreign_keys(engine)

    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def file_engine(tmp_path):
    """SQLite engine on a file, for tests that need real separate connections."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'echodesk_test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    _enable_foreign_keys(engine)

    Base.metadata.create_all(bind=engine)

    yield engine

    engine.dispose()


@pytest.fixture
def sync_session_factory(sync_engine) -> sessionmaker[Session]:
    """Create a synchronous session factory."""
    return sessionmaker(
        bind=sync_engine,
        autocommit=False,
        autoflush=False,
    )


@pytest.fixture
def db_session(sync_session_factory) -> Generator[Session, None, None]:
    """Create a synchronous database session for testing."""
    session = sync_session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# -----------------------------------------------------------------------------
# Platform Adapter Fakes
# -----------------------------------------------------------------------------


class Outbox:
    """Collects replies delivered by RecordingAdapter."""

    def __init__(self):
        self.sent: list[tuple[str, AccountCredentials, ReplyContext]] = []
        self.fail_with: Optional[str] = None

    @property
    def contents(self) -> list[str]:
        return [context.reply_content for _, _, context in self.sent]


class RecordingAdapter(PlatformAdapter):
    """Adapter that records replies in an Outbox instead of calling a platform."""

    def __init__(self, platform: str, credentials: AccountCredentials, outbox: Outbox):
        super().__init__(credentials)
        self.platform = platform
        self.outbox = outbox

    async def _deliver(self, context: ReplyContext) -> SendReplyResult:
        if self.outbox.fail_with:
            return SendReplyResult.failed(self.outbox.fail_with)
        self.outbox.sent.append((self.platform, self.credentials, context))
        return SendReplyResult.ok(f"{self.platform.lower()}_reply_{len(self.outbox.sent)}")


@pytest.fixture
def outbox() -> Outbox:
    return Outbox()


@pytest.fixture
def fake_registry(outbox) -> AdapterRegistry:
    """Registry with recording adapters for the platforms that can reply."""
    registry = AdapterRegistry()
    for platform in ("Twitter", "Facebook", "Telegram", "WhatsApp", "LinkedIn"):
        registry.register(
            platform,
            lambda credentials, settings, platform=platform: RecordingAdapter(
                platform, credentials, outbox
            ),
        )
    return registry


# -----------------------------------------------------------------------------
# FastAPI Test Client Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def test_app(test_settings, sync_session_factory, fake_registry) -> FastAPI:
    """Create a FastAPI test application with test settings and DB override."""
    from echodesk_core.api.deps import get_adapter_registry, get_db
    from echodesk_core.config import get_settings
    from echodesk_core.main import app

    app.state.settings = test_settings

    def override_get_db():
        session = sync_session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_adapter_registry] = lambda: fake_registry

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
async def client(test_app, db_session) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing FastAPI endpoints.

    Note: The db_session fixture is included to ensure the test database
    is set up before the client is created.
    """
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def auth_user(db_session):
    """A registered user."""
    from tests.factories import create_user

    user = create_user(db_session, username="owner")
    db_session.commit()
    return user


@pytest.fixture
async def authenticated_client(
    test_app, db_session, auth_user
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client logged in as auth_user."""
    from echodesk_core.domain.services.auth import AuthService

    session_id = AuthService(db_session).create_session(auth_user.id, expire_hours=1)
    db_session.commit()

    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
        cookies={"session": session_id},
    ) as ac:
        yield ac


# -----------------------------------------------------------------------------
# Cleanup Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Reset the settings cache before each test."""
    from echodesk_core.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
