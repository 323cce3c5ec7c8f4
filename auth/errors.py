"""
auth/errors.py -- Error taxonomy and the Result type returned by AuthService.

Domain failures are values, not exceptions. Every AuthService method returns
Success[T] | Failure, and callers branch on isinstance() (or match/case). The
closed ErrorKind enum lets the HTTP layer map every kind through one table,
and a test asserts that table is exhaustive.

Infrastructure failures (lost DB connection, aborted transaction) are NOT part
of this taxonomy. They propagate as exceptions and the API catch-all handler
turns them into a redacted 500.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    INVALID_INPUT = "INVALID_INPUT"
    EMAIL_ALREADY_EXISTS = "EMAIL_ALREADY_EXISTS"
    USERNAME_TAKEN = "USERNAME_TAKEN"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    ACCOUNT_DEACTIVATED = "ACCOUNT_DEACTIVATED"
    INVALID_REFRESH_TOKEN = "INVALID_REFRESH_TOKEN"
    REFRESH_TOKEN_EXPIRED = "REFRESH_TOKEN_EXPIRED"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    UNAUTHENTICATED = "UNAUTHENTICATED"


# Safe, user-facing default messages. Never include hashing or signing details.
DEFAULT_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.INVALID_INPUT: "Invalid input.",
    ErrorKind.EMAIL_ALREADY_EXISTS: "User with this email already exists.",
    ErrorKind.USERNAME_TAKEN: "Username already taken.",
    ErrorKind.INVALID_CREDENTIALS: "Invalid email or password.",
    ErrorKind.ACCOUNT_DEACTIVATED: "Account is deactivated.",
    ErrorKind.INVALID_REFRESH_TOKEN: "Invalid refresh token.",
    ErrorKind.REFRESH_TOKEN_EXPIRED: "Refresh token expired or invalid.",
    ErrorKind.USER_NOT_FOUND: "User not found.",
    ErrorKind.UNAUTHENTICATED: "Authentication required.",
}


class TokenError(str, Enum):
    """Why TokenCodec.verify() rejected a token.

    Internal only -- callers collapse both to UNAUTHENTICATED or
    INVALID_REFRESH_TOKEN so clients cannot tell them apart.
    """

    EXPIRED = "expired"
    INVALID_SIGNATURE = "invalid_signature"


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T


@dataclass(frozen=True)
class Failure:
    """A domain failure.

    field / code are set only for INVALID_INPUT: field names the offending
    input ("email", "password", ...) and code is the field-specific machine
    code ("INVALID_EMAIL", "WEAK_PASSWORD", ...).
    """

    kind: ErrorKind
    message: str = ""
    field: str | None = None
    code: str | None = None

    def __post_init__(self) -> None:
        if not self.message:
            object.__setattr__(self, "message", DEFAULT_MESSAGES[self.kind])

    @classmethod
    def invalid_input(cls, field: str, code: str, message: str) -> "Failure":
        return cls(ErrorKind.INVALID_INPUT, message, field=field, code=code)


Result = Union[Success[T], Failure]


class InvalidPasswordError(ValueError):
    """Raised by CredentialHasher.hash() for input bcrypt cannot hash faithfully.

    AuthService validates length before hashing, so this only escapes when the
    hasher is called directly with bad input.
    """

    kind = ErrorKind.INVALID_INPUT
