"""Authentication API routes."""

from fastapi import APIRouter, HTTPException, Response, status

from echodesk_core.api.deps import (
    AuthServiceDep,
    CurrentUser,
    DBSession,
    SessionId,
    SettingsDep,
)
from echodesk_core.api.schemas.auth import (
    LoginRequest,
    LoginResponse,
    LogoutResponse,
    RegisterRequest,
    UserInfo,
)
from echodesk_core.config import Settings
from echodesk_core.domain.services.audit import AuditService
from echodesk_core.domain.services.auth import RegistrationError

router = APIRouter(prefix="/auth", tags=["auth"])

SESSION_COOKIE = "session"


def _set_session_cookie(response: Response, session_id: str, settings: Settings) -> None:
    response.set_cookie(
        key=SESSION_COOKIE,
        value=session_id,
        httponly=True,
        secure=True,  # Requires HTTPS
        samesite="lax",
        max_age=settings.session_expire_hours * 3600,
    )


@router.post("/register", response_model=LoginResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    response: Response,
    auth_service: AuthServiceDep,
    db: DBSession,
    settings: SettingsDep,
) -> LoginResponse:
    """Create a user account and log it in."""
    try:
        user = auth_service.register_user(request.username, request.password)
    except RegistrationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    session_id = auth_service.create_session(
        user.id,
        expire_hours=settings.session_expire_hours,
    )

    AuditService(db).create_entry(
        actor="user",
        action_type="auth.register",
        result="ok",
        user_id=user.id,
        entity_type="user",
        entity_id=user.id,
        request_json={"username": user.username},
    )

    _set_session_cookie(response, session_id, settings)
    return LoginResponse(success=True, user=UserInfo.model_validate(user))


@router.post("/login", response_model=LoginResponse)
async def login(
    request: LoginRequest,
    response: Response,
    auth_service: AuthServiceDep,
    db: DBSession,
    settings: SettingsDep,
) -> LoginResponse:
    """Authenticate user and create session.

    Sets a session cookie on successful authentication.
    """
    audit = AuditService(db)
    user = auth_service.authenticate_user(request.username, request.password)

    if user is None:
        audit.create_entry(
            actor="user",
            action_type="auth.login",
            result="error",
            request_json={"username": request.username},
            error_detail="Invalid username or password",
        )
        db.commit()

        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
        )

    session_id = auth_service.create_session(
        user.id,
        expire_hours=settings.session_expire_hours,
    )

    audit.create_entry(
        actor="user",
        action_type="auth.login",
        result="ok",
        user_id=user.id,
        entity_type="user",
        entity_id=user.id,
        request_json={"username": request.username},
    )

    _set_session_cookie(response, session_id, settings)
    return LoginResponse(success=True, user=UserInfo.model_validate(user))


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    response: Response,
    session_id: SessionId,
    auth_service: AuthServiceDep,
    current_user: CurrentUser,
    db: DBSession,
) -> LogoutResponse:
    """Invalidate current session and clear cookie."""
    if session_id:
        auth_service.invalidate_session(session_id)

    AuditService(db).create_entry(
        actor="user",
        action_type="auth.logout",
        result="ok",
        user_id=current_user.id,
        entity_type="user",
        entity_id=current_user.id,
    )

    response.delete_cookie(
        key=SESSION_COOKIE,
        httponly=True,
        secure=True,
        samesite="lax",
    )

    return LogoutResponse()


@router.get("/me", response_model=UserInfo)
async def get_current_user_info(
    current_user: CurrentUser,
) -> UserInfo:
    """Get information about the currently authenticated user."""
    return UserInfo.model_validate(current_user)
