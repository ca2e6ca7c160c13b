"""Connected account API routes."""

from fastapi import APIRouter, HTTPException, status

from echodesk_core.api.deps import (
    AccountServiceDep,
    AdapterRegistryDep,
    CurrentUser,
    DBSession,
    SettingsDep,
)
from echodesk_core.api.schemas.accounts import (
    AccountCreate,
    AccountListResponse,
    AccountResponse,
    SentMessageResponse,
    TelegramConnectionResponse,
    TelegramQuickSetupRequest,
    WhatsAppQuickSetupRequest,
    WhatsAppTestMessageRequest,
)
from echodesk_core.domain.models import Platform
from echodesk_core.domain.services.accounts import (
    AccountNotFoundError,
    AccountValidationError,
    QuickSetupError,
)
from echodesk_core.domain.services.audit import AuditService
from echodesk_core.infrastructure.crypto import DecryptionError
from echodesk_core.providers.base import ReplyContext

router = APIRouter(prefix="/accounts", tags=["accounts"])


@router.get("", response_model=AccountListResponse)
async def list_accounts(
    current_user: CurrentUser,
    account_service: AccountServiceDep,
) -> AccountListResponse:
    """List the caller's connected accounts."""
    accounts = account_service.list_accounts(current_user.id)
    return AccountListResponse(
        accounts=[AccountResponse.model_validate(a) for a in accounts]
    )


@router.post("", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
async def connect_account(
    request: AccountCreate,
    current_user: CurrentUser,
    account_service: AccountServiceDep,
    db: DBSession,
) -> AccountResponse:
    """Connect (or reconnect) a platform account with existing credentials."""
    try:
        account = account_service.connect_account(
            user_id=current_user.id,
            platform=request.platform,
            access_token=request.access_token,
            access_secret=request.access_secret,
            refresh_token=request.refresh_token,
            page_id=request.page_id,
            platform_id=request.platform_id,
            channel_id=request.channel_id,
            display_name=request.display_name,
            expires_at=request.expires_at,
        )
    except AccountValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    AuditService(db).create_entry(
        actor="user",
        action_type="account.connect",
        result="ok",
        user_id=current_user.id,
        entity_type="account",
        entity_id=account.id,
        request_json={"platform": account.platform},
    )
    return AccountResponse.model_validate(account)


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_account(
    account_id: int,
    current_user: CurrentUser,
    account_service: AccountServiceDep,
    db: DBSession,
) -> None:
    """Disconnect an account."""
    try:
        account_service.delete_account(current_user.id, account_id)
    except AccountNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    AuditService(db).create_entry(
        actor="user",
        action_type="account.delete",
        result="ok",
        user_id=current_user.id,
        entity_type="account",
        entity_id=account_id,
    )


@router.post(
    "/telegram/quick-setup",
    response_model=AccountResponse,
    status_code=status.HTTP_201_CREATED,
)
async def telegram_quick_setup(
    request: TelegramQuickSetupRequest,
    current_user: CurrentUser,
    account_service: AccountServiceDep,
    settings: SettingsDep,
    db: DBSession,
) -> AccountResponse:
    """Connect a Telegram bot by token (validated with getMe)."""
    try:
        account = await account_service.telegram_quick_setup(
            current_user.id,
            request.bot_token,
            timeout=settings.provider_http_timeout_seconds,
        )
    except QuickSetupError as e:
        AuditService(db).create_entry(
            actor="user",
            action_type="account.telegram_quick_setup",
            result="error",
            user_id=current_user.id,
            error_detail=str(e),
        )
        db.commit()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    AuditService(db).create_entry(
        actor="user",
        action_type="account.telegram_quick_setup",
        result="ok",
        user_id=current_user.id,
        entity_type="account",
        entity_id=account.id,
        request_json={"bot_username": account.bot_username},
    )
    return AccountResponse.model_validate(account)


@router.get("/telegram/connection-url", response_model=TelegramConnectionResponse)
async def telegram_connection_url(
    current_user: CurrentUser,
    account_service: AccountServiceDep,
) -> TelegramConnectionResponse:
    """Link customers open to start chatting with the caller's bot."""
    try:
        url, bot_username = account_service.telegram_connection_url(current_user.id)
    except AccountNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return TelegramConnectionResponse(connection_url=url, bot_username=bot_username)


@router.post(
    "/whatsapp/quick-setup",
    response_model=AccountResponse,
    status_code=status.HTTP_201_CREATED,
)
async def whatsapp_quick_setup(
    request: WhatsAppQuickSetupRequest,
    current_user: CurrentUser,
    account_service: AccountServiceDep,
    settings: SettingsDep,
    db: DBSession,
) -> AccountResponse:
    """Connect a WhatsApp Cloud API number (validated against the Graph API)."""
    audit = AuditService(db)
    try:
        account = await account_service.whatsapp_quick_setup(
            current_user.id,
            phone_number_id=request.phone_number_id,
            access_token=request.access_token,
            verify_token=request.verify_token,
            graph_version=settings.whatsapp_graph_version,
            timeout=settings.provider_http_timeout_seconds,
        )
    except QuickSetupError as e:
        audit.create_entry(
            actor="user",
            action_type="account.whatsapp_quick_setup",
            result="error",
            user_id=current_user.id,
            request_json={"phone_number_id": request.phone_number_id},
            error_detail=str(e),
        )
        db.commit()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    audit.create_entry(
        actor="user",
        action_type="account.whatsapp_quick_setup",
        result="ok",
        user_id=current_user.id,
        entity_type="account",
        entity_id=account.id,
        request_json={"phone_number_id": account.page_id},
    )
    return AccountResponse.model_validate(account)


@router.post("/whatsapp/test-message", response_model=SentMessageResponse)
async def whatsapp_test_message(
    request: WhatsAppTestMessageRequest,
    current_user: CurrentUser,
    account_service: AccountServiceDep,
    registry: AdapterRegistryDep,
    settings: SettingsDep,
) -> SentMessageResponse:
    """Send a message from the connected WhatsApp number to check the setup."""
    try:
        credentials = account_service.get_credentials(current_user.id, Platform.WHATSAPP)
    except DecryptionError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="WhatsApp credentials could not be decrypted",
        )
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="WhatsApp account not configured",
        )

    adapter = registry.create(Platform.WHATSAPP, credentials, settings)
    result = await adapter.send_reply(
        ReplyContext(
            execution_id=0,
            step_number=0,
            reply_content=request.message,
            sender_id=request.phone_number,
        )
    )
    if not result.success:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Failed to send message: {result.error}",
        )

    return SentMessageResponse(success=True, message_id=result.message_id)
