"""Maintenance tasks for the auto-reply engine."""

from datetime import datetime, timezone

from echodesk_core.config import get_settings
from echodesk_core.domain.services.auth import AuthService
from echodesk_core.domain.services.executions import ExecutionLedger
from echodesk_core.infra.db import session_scope
from echodesk_core.observability import get_collector, get_logger
from echodesk_core.observability.metrics import CLAIMS_RECOVERED

from echodesk_worker.celery_app import app

logger = get_logger(__name__)


def _now_utc() -> datetime:
    """Get current UTC time."""
    return datetime.now(timezone.utc)


@app.task(name="maintenance.recover_stale_claims", bind=True, max_retries=3)
def recover_stale_claims(self, timeout_minutes: int | None = None) -> dict:
    """Return executions stuck in 'processing' to 'active'.

    A worker that died mid-step leaves its claim behind; once the claim is
    older than the timeout the execution is schedulable again.

    Args:
        timeout_minutes: Claim age after which an execution is released
            (default: AUTO_REPLY_CLAIM_TIMEOUT_MINUTES).
    """
    started_at = _now_utc()
    if timeout_minutes is None:
        timeout_minutes = get_settings().auto_reply_claim_timeout_minutes

    try:
        with session_scope() as session:
            recovered = ExecutionLedger(session).recover_stale_claims(timeout_minutes)
    except Exception as e:
        logger.error("Stale claim recovery failed", error=str(e), exc_info=True)
        raise self.retry(exc=e, countdown=60)

    if recovered:
        get_collector().increment(CLAIMS_RECOVERED, value=recovered)
        logger.warning("Recovered stale execution claims", recovered=recovered)

    return {
        "status": "success",
        "recovered": recovered,
        "timeout_minutes": timeout_minutes,
        "started_at": started_at.isoformat(),
    }


@app.task(name="maintenance.cleanup_expired_sessions", bind=True, max_retries=3)
def cleanup_expired_sessions(self) -> dict:
    """Delete expired login sessions."""
    try:
        with session_scope() as session:
            removed = AuthService(session).cleanup_expired_sessions()
    except Exception as e:
        logger.error("Session cleanup failed", error=str(e), exc_info=True)
        raise self.retry(exc=e, countdown=300)

    return {"status": "success", "sessions_removed": removed}
