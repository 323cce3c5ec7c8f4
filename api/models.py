"""
API request and response models for the auth service REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Request models only bound sizes. Field rules (email shape, username length,
password strength) belong to AuthService so every caller gets the same
fail-fast, field-coded errors -- not a pydantic 422 for some callers and a
domain error for others.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import UserView

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    """Request body for POST /api/v1/auth/signup."""

    email: str = Field(max_length=255)
    username: str = Field(max_length=255)
    first_name: str = Field(max_length=100)
    last_name: str = Field(max_length=100)
    password: str = Field(max_length=255)


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    email: str = Field(max_length=255)
    password: str = Field(max_length=255)


class RefreshRequest(BaseModel):
    """Request body for POST /api/v1/auth/refresh and /logout.

    refresh_token may be omitted when the client relies on the httpOnly
    refresh_token cookie instead.
    """

    refresh_token: Optional[str] = Field(default=None, max_length=2048)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Sanitized user view. There is no password field to leak."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    username: str
    first_name: str
    last_name: str
    email_verified: bool
    is_active: bool
    created_at: str
    updated_at: str
    last_login: Optional[str]

    @classmethod
    def from_view(cls, view: UserView) -> "UserResponse":
        return cls(
            id=view.id,
            email=view.email,
            username=view.username,
            first_name=view.first_name,
            last_name=view.last_name,
            email_verified=view.email_verified,
            is_active=view.is_active,
            created_at=view.created_at,
            updated_at=view.updated_at,
            last_login=view.last_login,
        )


class AuthResponse(BaseModel):
    """Returned by signup, login and refresh."""

    model_config = ConfigDict(frozen=True)

    user: UserResponse
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class LogoutAllResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    revoked: int


class MessageResponse(BaseModel):
    message: str


# ---------------------------------------------------------------------------
# Error envelope and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error. field is set only for field-level validation errors."""

    code: str
    message: str
    detail: Optional[str] = None
    field: Optional[str] = None


class ErrorResponse(BaseModel):
    """Uniform error envelope: {"error": {...}}."""

    error: ErrorDetail


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
