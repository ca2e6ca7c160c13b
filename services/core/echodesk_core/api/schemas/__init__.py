"""API schemas."""

from echodesk_core.api.schemas.accounts import (
    AccountCreate,
    AccountListResponse,
    AccountResponse,
    TelegramQuickSetupRequest,
)
from echodesk_core.api.schemas.auth import (
    ErrorResponse,
    LoginRequest,
    LoginResponse,
    LogoutResponse,
    RegisterRequest,
    UserInfo,
)
from echodesk_core.api.schemas.auto_reply import (
    ExecuteResponse,
    ExecutionListResponse,
    ExecutionResponse,
    FlowCreate,
    FlowDeleteResponse,
    FlowListResponse,
    FlowResponse,
    FlowStatsResponse,
    FlowTestRequest,
    FlowTestResponse,
    FlowUpdate,
    ProcessMessageRequest,
    ProcessMessageResponse,
)
from echodesk_core.api.schemas.message import InboundMessageCreate, InboundMessageResponse

__all__ = [
    # Account schemas
    "AccountCreate",
    "AccountListResponse",
    "AccountResponse",
    "TelegramQuickSetupRequest",
    # Auth schemas
    "ErrorResponse",
    "LoginRequest",
    "LoginResponse",
    "LogoutResponse",
    "RegisterRequest",
    "UserInfo",
    # Auto-reply schemas
    "ExecuteResponse",
    "ExecutionListResponse",
    "ExecutionResponse",
    "FlowCreate",
    "FlowDeleteResponse",
    "FlowListResponse",
    "FlowResponse",
    "FlowStatsResponse",
    "FlowTestRequest",
    "FlowTestResponse",
    "FlowUpdate",
    "ProcessMessageRequest",
    "ProcessMessageResponse",
    # Message schemas
    "InboundMessageCreate",
    "InboundMessageResponse",
]
