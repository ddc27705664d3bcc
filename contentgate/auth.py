"""
Authentication and reviewer identity.

Passwords are bcrypt hashes; sessions are short-lived access JWTs plus a
refresh JWT, both carrying the user id as ``sub``. Routes depend on
``get_reviewer``, which turns the bearer token into the ``Reviewer`` acting on
the request: the username the approval engine matches against workflow
assignees, and the organization and roles that scope what the caller may
see and do.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import FrozenSet, Optional, Tuple

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from .config import get_settings
from .database import get_db
from .logging_config import api_logger
from .models.user import User
from .responses import forbidden

settings = get_settings()

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

ACCESS = "access"
REFRESH = "refresh"
ADMIN_ROLE = "admin"


# ============================================================
# PASSWORDS AND TOKENS
# ============================================================

def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def _encode(user_id: int, token_type: str, lifetime: timedelta) -> str:
    claims = {
        "sub": str(user_id),  # JWT sub claim must be a string
        "type": token_type,
        "exp": datetime.now(timezone.utc) + lifetime,
    }
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def create_access_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    return _encode(user_id, ACCESS, lifetime)


def create_refresh_token(user_id: int) -> str:
    return _encode(user_id, REFRESH, timedelta(days=settings.refresh_token_expire_days))


def create_tokens(user_id: int) -> Tuple[str, str]:
    """(access, refresh) token pair for a user."""
    return create_access_token(user_id), create_refresh_token(user_id)


def token_subject(token: str, expected_type: str = ACCESS) -> Optional[int]:
    """User id carried by a valid, unexpired token of the expected type."""
    try:
        claims = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
    if claims.get("type", ACCESS) != expected_type:
        return None
    try:
        return int(claims["sub"])
    except (KeyError, TypeError, ValueError):
        return None


def _active_user(db: Session, user_id: Optional[int]) -> Optional[User]:
    if user_id is None:
        return None
    return db.query(User).filter(User.id == user_id, User.is_active.is_(True)).first()


def refresh_access_token(refresh_token: str, db: Session) -> Optional[Tuple[str, str]]:
    """Rotate a refresh token into a new token pair, if its user is still active."""
    user = _active_user(db, token_subject(refresh_token, REFRESH))
    if user is None:
        return None
    return create_tokens(user.id)


# ============================================================
# REQUEST DEPENDENCIES
# ============================================================

def get_required_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    """The authenticated, active user; 401 otherwise."""
    user = _active_user(db, token_subject(token)) if token else None
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


@dataclass(frozen=True)
class Reviewer:
    """The caller as the approval engine sees it."""

    user_id: int
    username: str
    organization_id: Optional[str]
    roles: FrozenSet[str]

    @classmethod
    def from_user(cls, user: User) -> "Reviewer":
        return cls(
            user_id=user.id,
            username=user.username,
            organization_id=user.organization_id,
            roles=frozenset(user.roles or ()),
        )

    @property
    def is_admin(self) -> bool:
        return ADMIN_ROLE in self.roles

    def scope(self, organization_id: Optional[str] = None) -> Optional[str]:
        """Organization filter for listings; a reviewer bound to an organization never sees another."""
        return self.organization_id or organization_id

    def check_organization(self, organization_id: Optional[str], resource: str = "Resource"):
        """Raise 403 when the resource belongs to an organization other than the reviewer's."""
        if self.organization_id and self.organization_id != organization_id:
            api_logger.warning(
                "Cross-organization access refused",
                username=self.username,
                organization_id=self.organization_id,
                resource=resource,
                resource_organization_id=organization_id,
            )
            forbidden(f"{resource} belongs to another organization")


def get_reviewer(user: User = Depends(get_required_user)) -> Reviewer:
    return Reviewer.from_user(user)


def require_admin(reviewer: Reviewer = Depends(get_reviewer)) -> Reviewer:
    if not reviewer.is_admin:
        forbidden("Administrator role required")
    return reviewer
