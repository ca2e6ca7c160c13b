"""Inbound message API routes.

Manual and reply-created paths post inbound messages here; the message is
stored and immediately evaluated against the caller's flows.
"""

from fastapi import APIRouter, HTTPException, status

from echodesk_core.api.deps import CurrentUser, DBSession
from echodesk_core.api.schemas.auto_reply import ProcessMessageResponse
from echodesk_core.api.schemas.message import InboundMessageCreate, InboundMessageResponse
from echodesk_core.domain.services.messages import (
    InboundMessageService,
    MessageValidationError,
)
from echodesk_core.domain.services.triggers import TriggerEvaluator

router = APIRouter(prefix="/messages", tags=["messages"])


@router.post("/inbound", response_model=InboundMessageResponse)
async def receive_inbound_message(
    request: InboundMessageCreate,
    current_user: CurrentUser,
    db: DBSession,
) -> InboundMessageResponse:
    """Store an inbound message and run auto-reply triggers for it.

    A message that was already stored is not evaluated again.
    """
    try:
        message, created = InboundMessageService(db).record(
            user_id=current_user.id,
            **request.model_dump(),
        )
    except MessageValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if created:
        result = TriggerEvaluator(db).evaluate_triggers(message).to_dict()
    else:
        result = {
            "message_id": message.id,
            "triggered_flows": [],
            "rate_limited_flows": [],
            "message": "Message already processed",
        }

    return InboundMessageResponse(
        id=message.id,
        created=created,
        processing=ProcessMessageResponse(**result),
    )
