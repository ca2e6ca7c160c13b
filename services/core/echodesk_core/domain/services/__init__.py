"""Domain services for EchoDesk."""

from echodesk_core.domain.services.accounts import AccountService
from echodesk_core.domain.services.audit import AuditService
from echodesk_core.domain.services.auth import AuthService, hash_password, verify_password
from echodesk_core.domain.services.executions import ExecutionLedger, RateLimitExceeded
from echodesk_core.domain.services.executor import StepExecutor, StepResult
from echodesk_core.domain.services.flows import FlowService
from echodesk_core.domain.services.messages import InboundMessageService
from echodesk_core.domain.services.triggers import TriggerEvaluator, TriggerResult

__all__ = [
    "AccountService",
    "AuditService",
    "AuthService",
    "ExecutionLedger",
    "FlowService",
    "InboundMessageService",
    "RateLimitExceeded",
    "StepExecutor",
    "StepResult",
    "TriggerEvaluator",
    "TriggerResult",
    "hash_password",
    "verify_password",
]
