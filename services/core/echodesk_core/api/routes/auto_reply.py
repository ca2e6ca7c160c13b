"""Auto-reply API routes.

Flow management, reporting, and the two engine entry points:
- POST /auto-reply/process runs trigger evaluation for a stored message
- POST /auto-reply/execute runs one scheduler pass over the caller's
  due executions (the Celery beat task does the same for all users)
"""

from typing import Annotated, Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from echodesk_core.api.deps import (
    AccountServiceDep,
    AdapterRegistryDep,
    CurrentUser,
    DBSession,
    SettingsDep,
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
from echodesk_core.domain.services.audit import AuditService
from echodesk_core.domain.services.executions import (
    DEFAULT_EXECUTION_LIST_LIMIT,
    ExecutionLedger,
    ExecutionNotFoundError,
    InvalidExecutionStateError,
)
from echodesk_core.domain.services.executor import StepExecutor
from echodesk_core.domain.services.flows import (
    FlowNotFoundError,
    FlowService,
    FlowValidationError,
)
from echodesk_core.domain.services.triggers import MessageNotFoundError, TriggerEvaluator
from echodesk_core.observability import get_collector

router = APIRouter(prefix="/auto-reply", tags=["auto-reply"])

# Update fields that may not be set to null
NON_NULLABLE_UPDATES = {
    "name",
    "platform",
    "is_active",
    "trigger_keywords",
    "trigger_conditions",
    "flow_steps",
    "max_replies_per_user",
    "cooldown_period",
}


def get_flow_service(db: DBSession) -> FlowService:
    """Get the flow service."""
    return FlowService(db)


def get_step_executor(
    db: DBSession,
    registry: AdapterRegistryDep,
    accounts: AccountServiceDep,
    settings: SettingsDep,
) -> StepExecutor:
    """Get the step executor."""
    return StepExecutor(db, registry=registry, settings=settings, accounts=accounts)


FlowServiceDep = Annotated[FlowService, Depends(get_flow_service)]
StepExecutorDep = Annotated[StepExecutor, Depends(get_step_executor)]


def _flow_not_found(e: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


def _invalid(e: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def _audit_flow(db, user_id: int, action: str, flow_id: int, request_json: Optional[dict] = None) -> None:
    AuditService(db).create_entry(
        actor="user",
        action_type=action,
        result="ok",
        user_id=user_id,
        entity_type="flow",
        entity_id=flow_id,
        request_json=request_json,
    )


# =============================================================================
# ENGINE
# =============================================================================


@router.post("/process", response_model=ProcessMessageResponse)
async def process_message(
    request: ProcessMessageRequest,
    current_user: CurrentUser,
    db: DBSession,
) -> ProcessMessageResponse:
    """Evaluate the caller's flows against a stored inbound message."""
    evaluator = TriggerEvaluator(db)
    try:
        result = evaluator.process_inbound_message(request.message_id, user_id=current_user.id)
    except MessageNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return ProcessMessageResponse(**result.to_dict())


@router.post("/execute", response_model=ExecuteResponse)
async def execute_due(
    current_user: CurrentUser,
    executor: StepExecutorDep,
) -> ExecuteResponse:
    """Run the caller's due auto-reply steps now."""
    results = await executor.run_due(user_id=current_user.id)

    succeeded = sum(1 for r in results if r.success)
    return ExecuteResponse(
        processed=len(results),
        succeeded=succeeded,
        failed=len(results) - succeeded,
        results=[r.to_dict() for r in results],
    )


@router.get("/metrics")
async def get_metrics(current_user: CurrentUser) -> dict[str, Any]:
    """The caller's slice of the in-process auto-reply engine metrics."""
    return get_collector().get_all(labels={"user_id": str(current_user.id)})


# =============================================================================
# FLOWS
# =============================================================================


@router.get("/flows", response_model=FlowListResponse)
async def list_flows(
    current_user: CurrentUser,
    flow_service: FlowServiceDep,
    platform: Optional[str] = Query(None, description="Filter by platform"),
) -> FlowListResponse:
    """List the caller's flows, newest first."""
    flows = flow_service.list_flows(current_user.id, platform=platform)
    return FlowListResponse(flows=[FlowResponse.from_model(f) for f in flows])


@router.post("/flows", response_model=FlowResponse, status_code=status.HTTP_201_CREATED)
async def create_flow(
    request: FlowCreate,
    current_user: CurrentUser,
    flow_service: FlowServiceDep,
    db: DBSession,
) -> FlowResponse:
    """Create a flow."""
    try:
        flow = flow_service.create_flow(
            user_id=current_user.id,
            name=request.name,
            description=request.description,
            platform=request.platform,
            is_active=request.is_active,
            trigger_keywords=request.trigger_keywords,
            trigger_type=request.trigger_conditions.type,
            trigger_value=request.trigger_conditions.value,
            steps=[s.model_dump() for s in request.flow_steps],
            max_replies_per_user=request.max_replies_per_user,
            cooldown_period=request.cooldown_period,
            working_hours=request.working_hours.model_dump() if request.working_hours else None,
        )
    except FlowValidationError as e:
        raise _invalid(e)

    _audit_flow(db, current_user.id, "flow.create", flow.id, {"name": flow.name})
    return FlowResponse.from_model(flow)


@router.get("/flows/{flow_id}", response_model=FlowResponse)
async def get_flow(
    flow_id: int,
    current_user: CurrentUser,
    flow_service: FlowServiceDep,
) -> FlowResponse:
    """Get one flow."""
    try:
        flow = flow_service.get_flow(flow_id, current_user.id)
    except FlowNotFoundError as e:
        raise _flow_not_found(e)
    return FlowResponse.from_model(flow)


@router.put("/flows/{flow_id}", response_model=FlowResponse)
async def update_flow(
    flow_id: int,
    request: FlowUpdate,
    current_user: CurrentUser,
    flow_service: FlowServiceDep,
    db: DBSession,
) -> FlowResponse:
    """Update a flow. Steps, when given, replace the existing ones."""
    data = request.model_dump(exclude_unset=True)
    data = {k: v for k, v in data.items() if v is not None or k not in NON_NULLABLE_UPDATES}

    steps = data.pop("flow_steps", None)
    conditions = data.pop("trigger_conditions", None)
    if conditions is not None:
        data["trigger_type"] = conditions["type"]
        data["trigger_value"] = conditions.get("value")

    try:
        flow = flow_service.update_flow(flow_id, current_user.id, data, steps=steps)
    except FlowNotFoundError as e:
        raise _flow_not_found(e)
    except FlowValidationError as e:
        raise _invalid(e)

    _audit_flow(db, current_user.id, "flow.update", flow.id, {"fields": sorted(data)})
    return FlowResponse.from_model(flow)


@router.delete("/flows/{flow_id}", response_model=FlowDeleteResponse)
async def delete_flow(
    flow_id: int,
    current_user: CurrentUser,
    flow_service: FlowServiceDep,
    db: DBSession,
) -> FlowDeleteResponse:
    """Delete a flow and all of its executions."""
    try:
        deleted = flow_service.delete_flow(flow_id, current_user.id)
    except FlowNotFoundError as e:
        raise _flow_not_found(e)

    _audit_flow(db, current_user.id, "flow.delete", flow_id, {"deleted_executions": deleted})
    return FlowDeleteResponse(deleted_executions=deleted)


@router.patch("/flows/{flow_id}/toggle", response_model=FlowResponse)
async def toggle_flow(
    flow_id: int,
    current_user: CurrentUser,
    flow_service: FlowServiceDep,
    db: DBSession,
) -> FlowResponse:
    """Activate or deactivate a flow."""
    try:
        flow = flow_service.toggle_flow(flow_id, current_user.id)
    except FlowNotFoundError as e:
        raise _flow_not_found(e)

    _audit_flow(db, current_user.id, "flow.toggle", flow.id, {"is_active": flow.is_active})
    return FlowResponse.from_model(flow)


@router.get("/flows/{flow_id}/executions", response_model=ExecutionListResponse)
async def list_flow_executions(
    flow_id: int,
    current_user: CurrentUser,
    flow_service: FlowServiceDep,
    limit: int = Query(DEFAULT_EXECUTION_LIST_LIMIT, ge=1, le=DEFAULT_EXECUTION_LIST_LIMIT),
) -> ExecutionListResponse:
    """Newest executions of a flow."""
    try:
        executions = flow_service.list_executions(flow_id, current_user.id, limit=limit)
    except FlowNotFoundError as e:
        raise _flow_not_found(e)

    return ExecutionListResponse(
        executions=[ExecutionResponse.model_validate(e) for e in executions]
    )


@router.get("/flows/{flow_id}/stats", response_model=FlowStatsResponse)
async def get_flow_stats(
    flow_id: int,
    current_user: CurrentUser,
    flow_service: FlowServiceDep,
) -> FlowStatsResponse:
    """Execution statistics of a flow."""
    try:
        stats = flow_service.get_stats(flow_id, current_user.id)
    except FlowNotFoundError as e:
        raise _flow_not_found(e)
    return FlowStatsResponse(**stats.to_dict())


@router.post("/flows/{flow_id}/test", response_model=FlowTestResponse)
async def test_flow(
    flow_id: int,
    request: FlowTestRequest,
    current_user: CurrentUser,
    flow_service: FlowServiceDep,
) -> FlowTestResponse:
    """Dry-run a flow against a test message. Nothing is sent or stored."""
    try:
        simulation = flow_service.simulate(
            flow_id,
            current_user.id,
            test_message=request.test_message,
            sender_id=request.sender_id,
            message_type=request.message_type,
        )
    except FlowNotFoundError as e:
        raise _flow_not_found(e)
    return FlowTestResponse(**simulation)


# =============================================================================
# EXECUTIONS
# =============================================================================


def _transition_execution(db, action: str, execution_id: int, user_id: int) -> ExecutionResponse:
    ledger = ExecutionLedger(db)
    try:
        if action == "pause":
            execution = ledger.pause(execution_id, user_id)
        else:
            execution = ledger.resume(execution_id, user_id)
    except ExecutionNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except InvalidExecutionStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    AuditService(db).create_entry(
        actor="user",
        action_type=f"execution.{action}",
        result="ok",
        user_id=user_id,
        entity_type="execution",
        entity_id=execution.id,
    )
    return ExecutionResponse.model_validate(execution)


@router.post("/executions/{execution_id}/pause", response_model=ExecutionResponse)
async def pause_execution(
    execution_id: int,
    current_user: CurrentUser,
    db: DBSession,
) -> ExecutionResponse:
    """Pause an active execution."""
    return _transition_execution(db, "pause", execution_id, current_user.id)


@router.post("/executions/{execution_id}/resume", response_model=ExecutionResponse)
async def resume_execution(
    execution_id: int,
    current_user: CurrentUser,
    db: DBSession,
) -> ExecutionResponse:
    """Resume a paused execution; its pending step becomes due now."""
    return _transition_execution(db, "resume", execution_id, current_user.id)
