"""API dependencies for dependency injection."""

from typing import Annotated, Generator, Optional

from fastapi import Cookie, Depends, HTTPException, status
from sqlalchemy.orm import Session

from echodesk_core.config import Settings, get_settings
from echodesk_core.domain.models import User
from echodesk_core.domain.services.accounts import AccountService
from echodesk_core.domain.services.auth import AuthService
from echodesk_core.infra.db import get_sync_session_factory
from echodesk_core.infrastructure.crypto import CryptoService, InvalidKeyError
from echodesk_core.providers.registry import AdapterRegistry, get_default_registry


def get_db() -> Generator[Session, None, None]:
    """Get a database session."""
    session_factory = get_sync_session_factory()
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_auth_service(db: Annotated[Session, Depends(get_db)]) -> AuthService:
    """Get the authentication service."""
    return AuthService(db)


def get_session_id(session: Annotated[Optional[str], Cookie()] = None) -> Optional[str]:
    """Get the session ID from cookie."""
    return session


def get_current_user_optional(
    session_id: Annotated[Optional[str], Depends(get_session_id)],
    auth_service: Annotated[AuthService, Depends(get_auth_service)],
) -> Optional[User]:
    """Get the current user if authenticated, None otherwise."""
    if not session_id:
        return None
    return auth_service.validate_session(session_id)


def get_current_user(
    user: Annotated[Optional[User], Depends(get_current_user_optional)],
) -> User:
    """Get the current authenticated user.

    Raises:
        HTTPException: If user is not authenticated.
    """
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Cookie"},
        )
    return user


def get_crypto_service(
    settings: Annotated[Settings, Depends(get_settings)],
) -> CryptoService:
    """Get the crypto service for account secrets.

    Raises:
        HTTPException: If ENCRYPTION_KEY is missing or invalid.
    """
    try:
        return CryptoService(settings.encryption_key)
    except InvalidKeyError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Account encryption is not configured",
        )


def get_account_service(
    db: Annotated[Session, Depends(get_db)],
    crypto: Annotated[CryptoService, Depends(get_crypto_service)],
) -> AccountService:
    """Get the account service."""
    return AccountService(db, crypto)


def get_adapter_registry() -> AdapterRegistry:
    """Get the platform adapter registry."""
    return get_default_registry()


# Type aliases for cleaner route signatures
DBSession = Annotated[Session, Depends(get_db)]
CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentUserOptional = Annotated[Optional[User], Depends(get_current_user_optional)]
AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
AccountServiceDep = Annotated[AccountService, Depends(get_account_service)]
AdapterRegistryDep = Annotated[AdapterRegistry, Depends(get_adapter_registry)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
SessionId = Annotated[Optional[str], Depends(get_session_id)]
