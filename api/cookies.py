"""
api/cookies.py -- Execute CookieIntents returned by AuthService.

The service decides WHAT cookie to set (name, value, lifetime, Secure flag);
this module is the only place that writes Set-Cookie headers.

httponly=True: JS cannot read the refresh token (XSS mitigation).
samesite="strict": the refresh cookie is never sent on cross-site requests.
secure: only sent over HTTPS; forced on when ENVIRONMENT=production.
max_age: matches the refresh token lifetime so cookie and token expire together.
"""

from __future__ import annotations

from starlette.responses import Response

from auth.models import CookieIntent


def apply_cookie_intent(response: Response, intent: CookieIntent) -> None:
    """Set or clear the cookie described by intent on response."""
    if intent.clear:
        response.delete_cookie(
            intent.name,
            httponly=intent.httponly,
            samesite=intent.samesite,
            secure=intent.secure,
        )
        return
    response.set_cookie(
        intent.name,
        value=intent.value,
        max_age=intent.max_age,
        httponly=intent.httponly,
        samesite=intent.samesite,
        secure=intent.secure,
    )
