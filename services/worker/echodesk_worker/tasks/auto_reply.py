"""Auto-reply scheduler tasks.

run_due_executions is the periodic tick driven by Celery beat; it runs
every due step across all users. process_inbound_message lets ingestion
paths hand a stored message to the trigger evaluator asynchronously.
"""

from typing import Any, Optional

from echodesk_core.domain.services.executor import StepExecutor
from echodesk_core.domain.services.triggers import MessageNotFoundError, TriggerEvaluator
from echodesk_core.infra.db import session_scope
from echodesk_core.observability import get_logger

from echodesk_worker.celery_app import app

logger = get_logger(__name__)


@app.task(name="auto_reply.run_due_executions", max_retries=0)
def run_due_executions(user_id: Optional[int] = None) -> dict:
    """Run one scheduler tick.

    Not retried: anything left unprocessed is picked up by the next tick.

    Args:
        user_id: Restrict the tick to one owner's executions.

    Returns:
        Dictionary with processed/succeeded/failed counts and per-execution
        results.
    """
    with session_scope() as session:
        results = StepExecutor(session).tick(user_id=user_id)

    succeeded = sum(1 for r in results if r.success)
    return {
        "status": "success",
        "processed": len(results),
        "succeeded": succeeded,
        "failed": len(results) - succeeded,
        "results": [r.to_dict() for r in results],
    }


@app.task(name="auto_reply.process_inbound_message")
def process_inbound_message(message_id: int) -> dict[str, Any]:
    """Evaluate auto-reply triggers for a stored inbound message.

    Args:
        message_id: ID of the inbound message.

    Returns:
        The trigger result, or an error status if the message is missing.
    """
    try:
        with session_scope() as session:
            result = TriggerEvaluator(session).process_inbound_message(message_id)
            payload = result.to_dict()
    except MessageNotFoundError as e:
        logger.warning("Inbound message not found", message_id=message_id)
        return {"status": "error", "error": str(e), "message_id": message_id}

    return {"status": "success", **payload}
