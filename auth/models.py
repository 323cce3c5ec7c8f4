"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Dataclasses own
the domain shape; stores and the service do the work.

UserView is the only user shape that ever leaves the service. It has no
password_hash field at all, so a caller cannot leak what is not there.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class TokenKind(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


@dataclass
class User:
    """A stored account. password_hash is None for accounts without a local password."""

    email: str
    username: str
    first_name: str
    last_name: str
    id: str | None = None
    password_hash: str | None = None
    email_verified: bool = False
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_login: datetime | None = None


@dataclass
class RefreshTokenRecord:
    """A persisted refresh token. token is the full encoded JWT and the lookup key."""

    token: str
    user_id: str
    expires_at: datetime
    created_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at < now


@dataclass(frozen=True)
class TokenClaims:
    """The verified contents of a token."""

    subject_id: str
    kind: TokenKind
    issued_at: datetime
    expires_at: datetime
    token_id: str


@dataclass(frozen=True)
class Principal:
    """The identity attached to an authenticated request."""

    user_id: str


@dataclass(frozen=True)
class UserView:
    """Sanitized user view -- the password hash is stripped."""

    id: str
    email: str
    username: str
    first_name: str
    last_name: str
    email_verified: bool
    is_active: bool
    created_at: str
    updated_at: str
    last_login: str | None

    @classmethod
    def from_user(cls, user: User) -> "UserView":
        return cls(
            id=user.id or "",
            email=user.email,
            username=user.username,
            first_name=user.first_name,
            last_name=user.last_name,
            email_verified=user.email_verified,
            is_active=user.is_active,
            created_at=user.created_at.isoformat() if user.created_at else "",
            updated_at=user.updated_at.isoformat() if user.updated_at else "",
            last_login=user.last_login.isoformat() if user.last_login else None,
        )


@dataclass(frozen=True)
class CookieIntent:
    """An instruction for the transport layer to set or clear a cookie.

    The service never touches HTTP responses. It returns this intent and the
    API layer executes it via api.cookies.apply_cookie_intent().
    """

    name: str
    value: str
    max_age: int
    secure: bool
    httponly: bool = True
    samesite: str = "strict"
    clear: bool = False


@dataclass(frozen=True)
class AuthPayload:
    user: UserView
    access_token: str
    refresh_token: str
    cookie: CookieIntent


@dataclass(frozen=True)
class SignupInput:
    email: str
    username: str
    first_name: str
    last_name: str
    password: str
