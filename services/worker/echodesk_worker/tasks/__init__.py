"""EchoDesk Worker Tasks."""

# Import all tasks to register them with Celery
from echodesk_worker.tasks import auto_reply  # noqa: F401
from echodesk_worker.tasks import maintenance  # noqa: F401
