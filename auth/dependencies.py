"""
auth/dependencies.py -- Resolve the caller's identity from an inbound request.

Token sources, in priority order (exactly one is trusted per request):
  1. Authorization: Bearer <token> header -- API clients.
  2. "access_token" cookie -- browser clients.
If a Bearer header is present, the cookie is ignored even when the header's
token turns out to be invalid. A non-Bearer Authorization header (Basic, ...)
is not a token source and does not shadow the cookie.

Only access tokens resolve to a principal. A perfectly valid refresh token
presented here is anonymous, like any other failure. Resolution never raises;
routes that need an identity use get_principal(), which turns anonymous into
HTTP 401.

Layer rule: may import from fastapi (Request/HTTPException) because these
helpers are FastAPI dependencies. No imports from api/.
"""

from __future__ import annotations

from collections.abc import Mapping

from fastapi import HTTPException, Request

from auth.errors import DEFAULT_MESSAGES, ErrorKind
from auth.models import Principal, TokenKind
from auth.tokens import TokenCodec

ACCESS_COOKIE_NAME = "access_token"
_BEARER_PREFIX = "Bearer "


def extract_token(headers: Mapping[str, str], cookies: Mapping[str, str]) -> str | None:
    """Return the bearer token from the Authorization header, else the access cookie.

    headers must be case-insensitive (Starlette's Headers is) or use the
    canonical "authorization" key.
    """
    auth_header = headers.get("authorization") or ""
    if auth_header.startswith(_BEARER_PREFIX):
        return auth_header[len(_BEARER_PREFIX) :].strip() or None
    return cookies.get(ACCESS_COOKIE_NAME) or None


def resolve(codec: TokenCodec, token: str | None) -> Principal | None:
    """Map a token to a Principal. Anything but a valid access token is anonymous."""
    if not token:
        return None
    claims = codec.verify_kind(token, TokenKind.ACCESS)
    if claims is None:
        return None
    return Principal(user_id=claims.subject_id)


def resolve_identity(codec: TokenCodec, headers: Mapping[str, str], cookies: Mapping[str, str]) -> Principal | None:
    return resolve(codec, extract_token(headers, cookies))


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------


def try_get_principal(request: Request) -> Principal | None:
    """Soft variant: the Principal for this request, or None when anonymous."""
    codec: TokenCodec = request.app.state.token_codec
    return resolve_identity(codec, request.headers, request.cookies)


def get_principal(request: Request) -> Principal:
    """Require an identity. Raises HTTP 401 if the request is anonymous.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(principal: Principal = Depends(get_principal)): ...
    """
    principal = try_get_principal(request)
    if principal is None:
        raise HTTPException(
            status_code=401,
            detail={
                "code": ErrorKind.UNAUTHENTICATED.value,
                "message": DEFAULT_MESSAGES[ErrorKind.UNAUTHENTICATED],
            },
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal
