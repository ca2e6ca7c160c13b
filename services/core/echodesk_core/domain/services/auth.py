"""Authentication service for EchoDesk.

Provides password hashing, user registration, session management, and user
authentication. Uses Argon2 for password hashing (recommended by OWASP).
"""

import uuid
from datetime import timedelta
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from sqlalchemy.orm import Session as DBSession

from echodesk_core.domain.clock import utcnow
from echodesk_core.domain.models import Session, User

# Password hasher configuration (OWASP recommendations)
_password_hasher = PasswordHasher(
    time_cost=3,  # Number of iterations
    memory_cost=65536,  # 64MB memory
    parallelism=4,  # Number of parallel threads
    hash_len=32,  # Length of hash
    salt_len=16,  # Length of salt
)

MIN_PASSWORD_LENGTH = 8
MAX_USERNAME_LENGTH = 64


class RegistrationError(Exception):
    """Raised when a user cannot be registered."""

    pass


def hash_password(password: str) -> str:
    """Hash a password using Argon2."""
    return _password_hasher.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash.

    Args:
        password: The plaintext password to verify.
        password_hash: The hash to verify against.

    Returns:
        True if the password matches, False otherwise.
    """
    if not password:
        return False

    try:
        _password_hasher.verify(password_hash, password)
        return True
    except VerifyMismatchError:
        return False
    except (VerificationError, InvalidHashError):
        return False


class AuthService:
    """Service for authentication operations."""

    def __init__(self, db: DBSession):
        """Initialize the auth service.

        Args:
            db: SQLAlchemy database session.
        """
        self.db = db

    def register_user(self, username: str, password: str) -> User:
        """Create a new tenant user.

        Args:
            username: Unique login name.
            password: Plaintext password (hashed before storage).

        Returns:
            The created User.

        Raises:
            RegistrationError: If the input is invalid or the username is taken.
        """
        username = (username or "").strip()
        if not username:
            raise RegistrationError("username must not be empty")
        if len(username) > MAX_USERNAME_LENGTH:
            raise RegistrationError(
                f"username must be at most {MAX_USERNAME_LENGTH} characters"
            )
        if not password or len(password) < MIN_PASSWORD_LENGTH:
            raise RegistrationError(
                f"password must be at least {MIN_PASSWORD_LENGTH} characters"
            )

        if self.db.query(User).filter_by(username=username).first() is not None:
            raise RegistrationError("username already taken")

        user = User(
            username=username,
            password_hash=hash_password(password),
            created_at=utcnow(),
        )
        self.db.add(user)
        self.db.flush()
        return user

    def create_session(
        self,
        user_id: int,
        expire_hours: int = 24 * 7,
        data: Optional[dict] = None,
    ) -> str:
        """Create a new session for a user.

        Returns:
            The session ID (UUID string).
        """
        session_id = str(uuid.uuid4())
        now = utcnow()

        session = Session(
            id=session_id,
            user_id=user_id,
            created_at=now,
            expires_at=now + timedelta(hours=expire_hours),
            data_json=data,
        )

        self.db.add(session)
        self.db.flush()
        return session_id

    def validate_session(self, session_id: str) -> Optional[User]:
        """Validate a session and return the associated user.

        Returns:
            The User if the session exists and has not expired, None otherwise.
        """
        if not session_id:
            return None

        session = self.db.query(Session).filter_by(id=session_id).first()
        if session is None:
            return None

        if session.expires_at < utcnow():
            return None

        return self.db.query(User).filter_by(id=session.user_id).first()

    def invalidate_session(self, session_id: str) -> None:
        """Invalidate (delete) a session."""
        self.db.query(Session).filter_by(id=session_id).delete()

    def authenticate_user(self, username: str, password: str) -> Optional[User]:
        """Authenticate a user by username and password.

        Returns:
            The User if authentication succeeds, None otherwise.
        """
        user = self.db.query(User).filter_by(username=username).first()

        if user is None:
            return None

        if not verify_password(password, user.password_hash):
            return None

        user.last_login_at = utcnow()
        return user

    def cleanup_expired_sessions(self) -> int:
        """Remove all expired sessions.

        Returns:
            The number of sessions removed.
        """
        return (
            self.db.query(Session)
            .filter(Session.expires_at < utcnow())
            .delete(synchronize_session=False)
        )
