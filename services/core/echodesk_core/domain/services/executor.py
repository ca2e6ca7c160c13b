"""Step scheduler and executor for auto-reply executions.

A tick selects due executions, claims each one, runs its current step and
releases it. Running a step means:

1. Resolve the flow and the step numbered `current_step` (either missing
   completes the execution).
2. Evaluate the step condition; a false condition skips to the next step
   without consuming the step's delay.
3. Resolve the owner's account and the platform adapter, and send the reply.
   A missing account or unsupported platform is recorded as a failed step.
4. Append the step log entry, update reply counters, compute the next due
   time (delayed_reply steps wait `delay` minutes) and either complete the
   execution (end step) or move to `next_step` / `current_step + 1`.

The claim is committed before the adapter call, so a concurrent tick that
selected the same execution loses its claim and never sends the step twice.
One execution failing never aborts the rest of the batch, and a tick stops
claiming new executions once its time budget is spent.

Usage:
    executor = StepExecutor(db)
    results = executor.tick()                 # sync callers (Celery)
    results = await executor.run_due(user_id) # async callers (FastAPI)
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session as DBSession

from echodesk_core.config import Settings, get_settings
from echodesk_core.domain.clock import utcnow
from echodesk_core.domain.models import (
    AutoReplyExecution,
    AutoReplyFlow,
    ExecutionStatus,
    FlowStep,
    Message,
    StepType,
)
from echodesk_core.domain.services.accounts import AccountService
from echodesk_core.domain.services.conditions import should_execute_step
from echodesk_core.domain.services.executions import DueExecution, ExecutionLedger
from echodesk_core.infrastructure.crypto import CryptoService, DecryptionError
from echodesk_core.observability import LogContext, MetricsCollector, get_collector, get_logger
from echodesk_core.observability.metrics import (
    CLAIMS_LOST,
    EXECUTION_ERRORS,
    EXECUTIONS_COMPLETED,
    REPLIES_FAILED,
    REPLIES_SENT,
    STEPS_SKIPPED,
    TICK_DUE,
    TICK_DURATION,
)
from echodesk_core.providers.base import ReplyContext, SendReplyResult
from echodesk_core.providers.registry import AdapterRegistry, get_default_registry

logger = get_logger(__name__)

ACCOUNT_NOT_FOUND = "Account not found for platform"


def _labels(execution: AutoReplyExecution) -> dict[str, str]:
    return {"platform": execution.platform, "user_id": str(execution.user_id)}


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class StepResult:
    """Outcome of processing one due execution."""

    execution_id: int
    success: bool = False
    step_executed: Optional[int] = None
    reply_id: Optional[str] = None
    error: Optional[str] = None
    completed: bool = False
    skipped: bool = False

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"execution_id": self.execution_id}
        if self.skipped:
            result["skipped"] = True
            return result
        if self.completed and self.step_executed is None:
            result["completed"] = True
            return result

        result["success"] = self.success
        if self.step_executed is not None:
            result["step_executed"] = self.step_executed
        if self.reply_id:
            result["reply_id"] = self.reply_id
        if self.error:
            result["error"] = self.error
        if self.completed:
            result["completed"] = True
        return result


# =============================================================================
# EXECUTOR
# =============================================================================


class StepExecutor:
    """Runs due auto-reply steps."""

    def __init__(
        self,
        db: DBSession,
        registry: Optional[AdapterRegistry] = None,
        settings: Optional[Settings] = None,
        accounts: Optional[AccountService] = None,
        clock: Callable[[], datetime] = utcnow,
        metrics: Optional[MetricsCollector] = None,
    ):
        """Initialize the executor.

        Args:
            db: SQLAlchemy session. The executor commits: claims must be
                visible to other workers before a reply is sent.
            registry: Platform adapter registry (default: all built-in adapters).
            settings: Application settings (default: get_settings()).
            accounts: Account service used to load credentials.
            clock: Returns the current naive-UTC time.
            metrics: Metrics collector (default: process-wide collector).
        """
        self.db = db
        self.settings = settings or get_settings()
        self.registry = registry or get_default_registry()
        self.ledger = ExecutionLedger(db)
        self.clock = clock
        self.metrics = metrics or get_collector()
        self._accounts = accounts

    @property
    def accounts(self) -> AccountService:
        if self._accounts is None:
            self._accounts = AccountService(
                self.db, CryptoService(self.settings.encryption_key)
            )
        return self._accounts

    # -------------------------------------------------------------------------
    # Tick
    # -------------------------------------------------------------------------

    def tick(self, user_id: Optional[int] = None) -> list[StepResult]:
        """Run one scheduler pass from synchronous code."""
        return asyncio.run(self.run_due(user_id))

    async def run_due(self, user_id: Optional[int] = None) -> list[StepResult]:
        """Process every execution that is due now.

        Args:
            user_id: Restrict the pass to one owner's executions.

        Returns:
            One result per execution this worker processed. Executions
            claimed by another worker are left out.
        """
        started = time.monotonic()
        due = self.ledger.list_due(
            self.clock(), user_id=user_id, limit=self.settings.auto_reply_batch_size
        )
        self.metrics.set_gauge(TICK_DUE, len(due))

        budget = self.settings.auto_reply_tick_budget_seconds
        results: list[StepResult] = []
        for index, item in enumerate(due):
            # Unclaimed executions stay due for the next tick
            if index and time.monotonic() - started >= budget:
                logger.warning(
                    "Auto-reply tick budget exhausted",
                    user_id=user_id,
                    due=len(due),
                    deferred=len(due) - index,
                    budget_seconds=budget,
                )
                break
            result = await self._process(item)
            if result is not None:
                results.append(result)

        duration = time.monotonic() - started
        self.metrics.record_histogram(TICK_DURATION, duration)
        if due:
            logger.info(
                "Auto-reply tick finished",
                user_id=user_id,
                due=len(due),
                processed=len(results),
                failed=sum(1 for r in results if not r.success and not r.skipped),
                duration_ms=round(duration * 1000, 1),
            )
        return results

    async def _process(self, item: DueExecution) -> Optional[StepResult]:
        """Claim, run and release one execution."""
        now = self.clock()
        if not self.ledger.claim(item.id, item.version, now):
            self.db.rollback()
            self.metrics.increment(CLAIMS_LOST)
            logger.debug("Execution claimed elsewhere", execution_id=item.id)
            return None
        self.db.commit()

        try:
            execution = self.db.get(AutoReplyExecution, item.id)
            if execution is None:
                return None
            result = await self.execute_next_step(execution, now)
            self.db.commit()
            return result
        except Exception as e:
            self.db.rollback()
            logger.error(
                "Auto-reply execution failed",
                execution_id=item.id,
                error=str(e),
                exc_info=True,
            )
            self.metrics.increment(EXECUTION_ERRORS)
            self.ledger.release_by_id(item.id, self.clock())
            self.db.commit()
            return StepResult(execution_id=item.id, success=False, error=str(e) or type(e).__name__)

    # -------------------------------------------------------------------------
    # Step execution
    # -------------------------------------------------------------------------

    @staticmethod
    def _following_step(execution: AutoReplyExecution, step: FlowStep) -> int:
        if step.next_step is not None:
            return step.next_step
        return execution.current_step + 1

    def _complete(self, execution: AutoReplyExecution, now: datetime, context: LogContext) -> StepResult:
        self.ledger.release(execution, ExecutionStatus.COMPLETED, now)
        self.metrics.increment(EXECUTIONS_COMPLETED, labels=_labels(execution))
        logger.info("Execution completed", context=context)
        return StepResult(execution_id=execution.id, success=True, completed=True)

    async def execute_next_step(
        self,
        execution: AutoReplyExecution,
        now: Optional[datetime] = None,
    ) -> StepResult:
        """Run the current step of a claimed execution and release it.

        Args:
            execution: An execution this worker holds the claim on.
            now: Processing time (naive UTC).

        Returns:
            StepResult describing what happened.
        """
        now = now or self.clock()
        context = LogContext(
            user_id=execution.user_id,
            flow_id=execution.flow_id,
            execution_id=execution.id,
            platform=execution.platform,
        )

        flow = self.db.get(AutoReplyFlow, execution.flow_id)
        if flow is None:
            return self._complete(execution, now, context)

        step = flow.get_step(execution.current_step)
        if step is None:
            return self._complete(execution, now, context)

        message = self.db.get(Message, execution.original_message_id)
        zone_name = (flow.working_hours or {}).get("timezone")

        if not should_execute_step(step, message, now, zone_name):
            execution.current_step = self._following_step(execution, step)
            execution.next_execution_time = now
            self.ledger.release(execution, ExecutionStatus.ACTIVE, now)
            self.metrics.increment(STEPS_SKIPPED, labels=_labels(execution))
            logger.debug("Step skipped", context=context, step_number=step.step_number)
            return StepResult(execution_id=execution.id, success=True, skipped=True)

        sent = await self._send(execution, step, message)

        self.ledger.record_step(
            execution,
            step_number=step.step_number,
            executed_at=now,
            reply_content=step.reply_content,
            success=sent.success,
            reply_message_id=sent.message_id,
            error=sent.error,
        )

        if sent.success:
            execution.total_replies = (execution.total_replies or 0) + 1
            execution.last_activity = now
            flow.total_replies = (flow.total_replies or 0) + 1
            self.metrics.increment(REPLIES_SENT, labels=_labels(execution))
        else:
            self.metrics.increment(REPLIES_FAILED, labels=_labels(execution))
            logger.warning(
                "Step reply failed",
                context=context,
                step_number=step.step_number,
                error=sent.error,
            )

        if step.step_type == StepType.DELAYED_REPLY and (step.delay or 0) > 0:
            execution.next_execution_time = now + timedelta(minutes=step.delay)
        else:
            execution.next_execution_time = now

        if step.is_end_step:
            self.ledger.release(execution, ExecutionStatus.COMPLETED, now)
            self.metrics.increment(EXECUTIONS_COMPLETED, labels=_labels(execution))
            logger.info("Execution completed", context=context, step_number=step.step_number)
        else:
            execution.current_step = self._following_step(execution, step)
            self.ledger.release(execution, ExecutionStatus.ACTIVE, now)

        return StepResult(
            execution_id=execution.id,
            success=sent.success,
            step_executed=step.step_number,
            reply_id=sent.message_id,
            error=sent.error,
            completed=bool(step.is_end_step),
        )

    async def _send(
        self,
        execution: AutoReplyExecution,
        step: FlowStep,
        message: Optional[Message],
    ) -> SendReplyResult:
        """Deliver a step's reply; failures come back as a failed result."""
        try:
            credentials = self.accounts.get_credentials(execution.user_id, execution.platform)
        except DecryptionError:
            return SendReplyResult.failed("Account credentials could not be decrypted")

        if credentials is None:
            return SendReplyResult.failed(ACCOUNT_NOT_FOUND)

        if not self.registry.supports(execution.platform):
            return SendReplyResult.failed(f"Unsupported platform: {execution.platform}")

        adapter = self.registry.create(execution.platform, credentials, self.settings)
        reply = ReplyContext(
            execution_id=execution.id,
            step_number=step.step_number,
            reply_content=step.reply_content,
            reply_image=step.reply_image,
            sender_id=execution.sender_id,
            sender_name=execution.sender_name,
            original_message_id=execution.original_message_id,
            platform_message_id=message.platform_message_id if message else None,
            message_type=message.message_type if message else None,
            thread_id=message.thread_id if message else None,
        )
        return await adapter.send_reply(reply)


__all__ = [
    "ACCOUNT_NOT_FOUND",
    "StepExecutor",
    "StepResult",
]
