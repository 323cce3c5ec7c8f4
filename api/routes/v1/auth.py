"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/signup      -- create account; returns tokens, sets refresh cookie
  POST /api/v1/auth/login       -- password login; returns tokens, sets refresh cookie
  POST /api/v1/auth/refresh     -- rotate refresh token (body or cookie)
  POST /api/v1/auth/logout      -- revoke one refresh token; clears cookie; idempotent
  POST /api/v1/auth/logout-all  -- revoke every session of the caller (requires auth)
  GET  /api/v1/auth/me          -- current user (requires auth)

Handlers are plain `def`, not `async def`: signup and login run bcrypt, and
FastAPI dispatches sync handlers to its thread pool so hashing never blocks
the event loop.

Security:
  [C1] AuthService.login() equalizes timing for unknown emails -- do not
       pre-check existence here.
  [M5] Cache-Control: no-store on every response that carries a token.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.cookies import apply_cookie_intent
from api.errors import failure_response
from api.models import (
    AuthResponse,
    LoginRequest,
    LogoutAllResponse,
    MessageResponse,
    RefreshRequest,
    SignupRequest,
    UserResponse,
)
from auth.dependencies import get_principal
from auth.errors import ErrorKind, Failure
from auth.models import AuthPayload, Principal, SignupInput
from auth.service import REFRESH_COOKIE_NAME, AuthService

# Auth policy:
# - POST /auth/signup, /auth/login, /auth/refresh, /auth/logout: public
# - POST /auth/logout-all, GET /auth/me: require an access token (get_principal)
router = APIRouter()


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _auth_response(service: AuthService, payload: AuthPayload, status_code: int = 200) -> JSONResponse:
    body = AuthResponse(
        user=UserResponse.from_view(payload.user),
        access_token=payload.access_token,
        refresh_token=payload.refresh_token,
        expires_in=int(service.codec.config.access_ttl.total_seconds()),
    )
    resp = JSONResponse(status_code=status_code, content=body.model_dump())
    apply_cookie_intent(resp, payload.cookie)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


def _presented_refresh_token(request: Request, body: RefreshRequest | None) -> str | None:
    """Body wins over the cookie, mirroring header-over-cookie for access tokens."""
    if body is not None and body.refresh_token:
        return body.refresh_token
    return request.cookies.get(REFRESH_COOKIE_NAME)


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/signup", response_model=AuthResponse, status_code=201)
def signup(request: Request, body: SignupRequest) -> JSONResponse:
    """Create an account and start its first session."""
    service = _service(request)
    result = service.signup(
        SignupInput(
            email=body.email,
            username=body.username,
            first_name=body.first_name,
            last_name=body.last_name,
            password=body.password,
        )
    )
    if isinstance(result, Failure):
        return failure_response(result)
    return _auth_response(service, result.value, status_code=201)


@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    Unknown email and wrong password both answer INVALID_CREDENTIALS.
    """
    service = _service(request)
    result = service.login(body.email, body.password)
    if isinstance(result, Failure):
        return failure_response(result)
    return _auth_response(service, result.value)


@router.post("/auth/refresh", response_model=AuthResponse)
def refresh(request: Request, body: RefreshRequest | None = None) -> JSONResponse:
    """Exchange a refresh token for a new access token and a new refresh token.

    The presented refresh token is consumed: presenting it again fails.
    """
    service = _service(request)
    token = _presented_refresh_token(request, body)
    if not token:
        return failure_response(Failure(ErrorKind.INVALID_REFRESH_TOKEN))
    result = service.refresh(token)
    if isinstance(result, Failure):
        return failure_response(result)
    return _auth_response(service, result.value)


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request, body: RefreshRequest | None = None) -> JSONResponse:
    """Revoke the presented refresh token and clear the cookie. Always 200."""
    service = _service(request)
    token = _presented_refresh_token(request, body)
    intent = service.clear_refresh_cookie()
    if token:
        intent = service.logout(token).value
    resp = JSONResponse(content=MessageResponse(message="Logged out.").model_dump())
    apply_cookie_intent(resp, intent)
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout-all", response_model=LogoutAllResponse)
def logout_all(request: Request, principal: Principal = Depends(get_principal)) -> JSONResponse:
    """Revoke every refresh token of the current user and clear the cookie."""
    service = _service(request)
    revoked = service.logout_all(principal.user_id).value
    resp = JSONResponse(content=LogoutAllResponse(revoked=revoked).model_dump())
    apply_cookie_intent(resp, service.clear_refresh_cookie())
    return resp


@router.get("/auth/me", response_model=UserResponse)
def me(request: Request, principal: Principal = Depends(get_principal)) -> JSONResponse:
    """Return the current user. A deactivated account answers USER_NOT_FOUND."""
    result = _service(request).get_user_by_id(principal.user_id)
    if isinstance(result, Failure):
        return failure_response(result)
    return JSONResponse(content=UserResponse.from_view(result.value).model_dump())
