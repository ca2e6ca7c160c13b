"""Auto-reply schemas for request/response validation."""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

PlatformName = Literal[
    "Twitter",
    "Facebook",
    "Instagram",
    "LinkedIn",
    "Telegram",
    "WhatsApp",
    "TikTok",
    "YouTube",
]
FlowPlatformName = Literal[
    "Twitter",
    "Facebook",
    "Instagram",
    "LinkedIn",
    "Telegram",
    "WhatsApp",
    "TikTok",
    "YouTube",
    "All",
]
MessageTypeName = Literal["direct_message", "mention", "comment", "reply"]
TriggerTypeName = Literal["keyword", "time", "sender", "message_type"]
StepTypeName = Literal["immediate_reply", "delayed_reply", "conditional_reply", "end"]
StepConditionName = Literal["contains_keyword", "time_based", "sender_based", "always"]


# =============================================================================
# FLOWS
# =============================================================================


class TriggerConditions(BaseModel):
    """Trigger condition used when no keyword matches."""

    type: TriggerTypeName = "keyword"
    value: Optional[str] = Field(None, max_length=255)


class WorkingHours(BaseModel):
    """Window in which a flow may trigger."""

    enabled: bool = False
    startTime: str = Field("09:00", pattern=r"^\d{2}:\d{2}$")
    endTime: str = Field("17:00", pattern=r"^\d{2}:\d{2}$")
    timezone: str = "UTC"


class FlowStepSchema(BaseModel):
    """One step of a flow (request and response)."""

    step_number: int = Field(..., ge=1)
    step_type: StepTypeName
    delay: int = Field(0, ge=0, description="Minutes, used by delayed_reply")
    condition: StepConditionName = "always"
    condition_value: Optional[str] = Field(None, max_length=255)
    reply_content: str = Field(..., min_length=1)
    reply_image: Optional[str] = Field(None, max_length=1024)
    next_step: Optional[int] = Field(None, ge=1)
    is_end_step: bool = False

    class Config:
        from_attributes = True


class FlowCreate(BaseModel):
    """Request body for creating a flow."""

    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    platform: FlowPlatformName
    is_active: bool = True
    trigger_keywords: list[str] = Field(default_factory=list)
    trigger_conditions: TriggerConditions = Field(default_factory=TriggerConditions)
    flow_steps: list[FlowStepSchema] = Field(..., min_length=1)
    max_replies_per_user: int = Field(3, ge=1)
    cooldown_period: int = Field(24, ge=0, description="Hours")
    working_hours: Optional[WorkingHours] = None


class FlowUpdate(BaseModel):
    """Request body for updating a flow. Omitted fields are left unchanged."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    platform: Optional[FlowPlatformName] = None
    is_active: Optional[bool] = None
    trigger_keywords: Optional[list[str]] = None
    trigger_conditions: Optional[TriggerConditions] = None
    flow_steps: Optional[list[FlowStepSchema]] = Field(None, min_length=1)
    max_replies_per_user: Optional[int] = Field(None, ge=1)
    cooldown_period: Optional[int] = Field(None, ge=0)
    working_hours: Optional[WorkingHours] = None


class FlowStatistics(BaseModel):
    """Engine-maintained flow counters."""

    total_triggers: int
    total_replies: int
    last_triggered: Optional[datetime] = None


class FlowResponse(BaseModel):
    """Response body for a flow."""

    id: int
    name: str
    description: Optional[str] = None
    platform: str
    is_active: bool
    trigger_keywords: list[str]
    trigger_conditions: TriggerConditions
    flow_steps: list[FlowStepSchema]
    max_replies_per_user: int
    cooldown_period: int
    working_hours: Optional[dict[str, Any]] = None
    statistics: FlowStatistics
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, flow) -> "FlowResponse":
        """Create response from AutoReplyFlow model."""
        return cls(
            id=flow.id,
            name=flow.name,
            description=flow.description,
            platform=flow.platform,
            is_active=flow.is_active,
            trigger_keywords=flow.trigger_keywords or [],
            trigger_conditions=TriggerConditions(
                type=flow.trigger_type, value=flow.trigger_value
            ),
            flow_steps=[FlowStepSchema.model_validate(s) for s in flow.steps],
            max_replies_per_user=flow.max_replies_per_user,
            cooldown_period=flow.cooldown_period,
            working_hours=flow.working_hours,
            statistics=FlowStatistics(
                total_triggers=flow.total_triggers,
                total_replies=flow.total_replies,
                last_triggered=flow.last_triggered,
            ),
            created_at=flow.created_at,
            updated_at=flow.updated_at,
        )


class FlowListResponse(BaseModel):
    """Response body for listing flows."""

    flows: list[FlowResponse]


class FlowDeleteResponse(BaseModel):
    """Response body for deleting a flow."""

    success: bool = True
    deleted_executions: int


class FlowStatsResponse(BaseModel):
    """Aggregate execution statistics for a flow."""

    total_executions: int
    active_executions: int
    completed_executions: int
    paused_executions: int
    failed_executions: int
    total_replies: int
    last_execution: Optional[datetime] = None


class FlowTestRequest(BaseModel):
    """Request body for a flow dry run."""

    test_message: str = Field(..., min_length=1)
    sender_id: str = "test_sender"
    message_type: MessageTypeName = "direct_message"


class SimulatedStep(BaseModel):
    step_number: int
    step_type: str
    condition: str
    condition_value: Optional[str] = None
    reply_content: str
    delay: int
    would_execute: bool
    offset_minutes: int


class FlowTestResponse(BaseModel):
    """Response body for a flow dry run."""

    flow_id: int
    flow_name: str
    test_message: str
    would_trigger: bool
    steps: list[SimulatedStep]


# =============================================================================
# EXECUTIONS
# =============================================================================


class ExecutedStepResponse(BaseModel):
    """One entry of an execution's step log."""

    step_number: int
    executed_at: datetime
    reply_content: Optional[str] = None
    reply_message_id: Optional[str] = None
    success: bool
    error: Optional[str] = None

    class Config:
        from_attributes = True


class ExecutionResponse(BaseModel):
    """Response body for an execution."""

    id: int
    flow_id: int
    original_message_id: int
    platform: str
    sender_id: Optional[str] = None
    sender_name: Optional[str] = None
    current_step: int
    status: str
    executed_steps: list[ExecutedStepResponse]
    next_execution_time: Optional[datetime] = None
    total_replies: int
    last_activity: datetime
    created_at: datetime

    class Config:
        from_attributes = True


class ExecutionListResponse(BaseModel):
    """Response body for listing a flow's executions."""

    executions: list[ExecutionResponse]


# =============================================================================
# ENGINE
# =============================================================================


class ProcessMessageRequest(BaseModel):
    """Request body for processing a stored inbound message."""

    message_id: int


class MatchedFlowResponse(BaseModel):
    flow_id: int
    flow_name: str
    execution_id: int


class RateLimitedFlowResponse(BaseModel):
    flow_id: int
    flow_name: str
    error: str


class ProcessMessageResponse(BaseModel):
    """Response body for inbound message processing."""

    success: bool = True
    message_id: int
    triggered_flows: list[MatchedFlowResponse]
    rate_limited_flows: list[RateLimitedFlowResponse]
    message: str


class ExecuteResponse(BaseModel):
    """Response body for a scheduler run."""

    success: bool = True
    processed: int
    succeeded: int
    failed: int
    results: list[dict[str, Any]]
