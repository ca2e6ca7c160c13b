"""Celery application configuration for EchoDesk Worker."""

from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging

from echodesk_core.config import get_settings
from echodesk_core.observability import configure_logging

_settings = get_settings()

CELERY_BROKER_URL = _settings.celery_broker_url
CELERY_RESULT_BACKEND = _settings.celery_result_backend
AUTO_REPLY_TICK_SECONDS = _settings.auto_reply_tick_seconds

app = Celery(
    "echodesk_worker",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
    include=[
        "echodesk_worker.tasks.auto_reply",
        "echodesk_worker.tasks.maintenance",
    ],
)

app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # A tick redelivered after a crash would only re-select what is still
    # due; claims keep it from sending twice.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Time limits (seconds)
    task_soft_time_limit=120,
    task_time_limit=300,
    # Queue routing
    task_routes={
        "auto_reply.*": {"queue": "auto_reply"},
        "maintenance.*": {"queue": "maintenance"},
    },
    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,
)

# Beat schedule for periodic tasks
app.conf.beat_schedule = {
    # Scheduler tick: run every due auto-reply step
    "auto-reply-tick": {
        "task": "auto_reply.run_due_executions",
        "schedule": AUTO_REPLY_TICK_SECONDS,
        "args": (),
        # A tick that waited longer than one interval is superseded by the next
        "options": {"expires": AUTO_REPLY_TICK_SECONDS},
    },
    # Release executions abandoned in 'processing' by a dead worker
    "recover-stale-claims": {
        "task": "maintenance.recover_stale_claims",
        "schedule": 300.0,  # 5 minutes
        "args": (),
    },
    # Daily expired session cleanup at 3 AM UTC
    "daily-session-cleanup": {
        "task": "maintenance.cleanup_expired_sessions",
        "schedule": crontab(hour=3, minute=0),
        "args": (),
    },
}


@setup_logging.connect
def configure_worker_logging(**kwargs) -> None:
    """Use the shared structured logging instead of Celery's default handlers."""
    settings = get_settings()
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_json,
        service_name="echodesk-worker",
    )


if __name__ == "__main__":
    app.start()
