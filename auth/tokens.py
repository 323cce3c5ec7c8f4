"""
auth/tokens.py -- Signed, expiring bearer tokens (JWT via python-jose).

Security design decisions:
  JWT: python-jose with HS256. One signing key for both token kinds. Each
       token carries a "type" claim ("access" or "refresh") and callers MUST
       check it -- an access token presented where a refresh token is required
       (or the reverse) is rejected even though its signature is valid.

  Claims: sub (user id), type, iat, exp, jti. jti is random per token so two
       refresh tokens issued for the same user in the same second still differ
       (the refresh store treats a duplicate value as a hard error).

  Verification returns a Result instead of raising. The failure reason
       (EXPIRED vs INVALID_SIGNATURE) is for logs and tests only; callers
       collapse it before anything reaches a client.

  Key state: the secret lives in an immutable SigningConfig built once at
       startup and passed to TokenCodec's constructor. Nothing here reads
       settings at import time, so tests can run codecs with distinct keys.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from jose import ExpiredSignatureError, JWTError, jwt

from auth.errors import Success, TokenError
from auth.models import TokenClaims, TokenKind

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("authsvc.auth.tokens")

_ALGORITHM = "HS256"
ACCESS_TOKEN_TTL = timedelta(minutes=15)
REFRESH_TOKEN_TTL = timedelta(days=7)


@dataclass(frozen=True)
class SigningConfig:
    """Process-wide signing state: set once, never rotated mid-process."""

    secret_key: str = field(repr=False)
    algorithm: str = _ALGORITHM
    access_ttl: timedelta = ACCESS_TOKEN_TTL
    refresh_ttl: timedelta = REFRESH_TOKEN_TTL

    @classmethod
    def from_settings(cls, settings: Settings) -> "SigningConfig":
        return cls(
            secret_key=settings.secret_key,
            access_ttl=timedelta(seconds=settings.access_token_expire_seconds),
            refresh_ttl=timedelta(seconds=settings.refresh_token_expire_seconds),
        )

    def ttl_for(self, kind: TokenKind) -> timedelta:
        return self.access_ttl if kind is TokenKind.ACCESS else self.refresh_ttl


class TokenCodec:
    """Issue and verify access/refresh tokens.

    Usage:
        codec = TokenCodec(SigningConfig(secret_key=settings.secret_key))
        token = codec.issue(user.id, TokenKind.ACCESS)
        result = codec.verify(token)
    """

    def __init__(self, config: SigningConfig) -> None:
        self.config = config

    def issue(self, subject_id: str, kind: TokenKind, ttl: timedelta | None = None) -> str:
        """Encode a signed token for subject_id.

        ttl defaults to the configured lifetime for kind (15 min access,
        7 days refresh). A negative ttl yields an already-expired token,
        which is how tests exercise expiry.
        """
        now = datetime.now(timezone.utc)
        lifetime = ttl if ttl is not None else self.config.ttl_for(kind)
        payload = {
            "sub": subject_id,
            "type": kind.value,
            "iat": now,
            "exp": now + lifetime,
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, self.config.secret_key, algorithm=self.config.algorithm)

    def verify(self, token: str) -> Success[TokenClaims] | TokenFailure:
        """Check signature and expiry and return the decoded claims.

        Failure reasons: TokenError.EXPIRED or TokenError.INVALID_SIGNATURE.
        A token that is well signed but lacks the expected claims is treated
        as INVALID_SIGNATURE -- it was not minted by this codec.
        """
        try:
            payload = jwt.decode(token, self.config.secret_key, algorithms=[self.config.algorithm])
        except ExpiredSignatureError:
            return TokenFailure(TokenError.EXPIRED)
        except JWTError:
            return TokenFailure(TokenError.INVALID_SIGNATURE)

        try:
            claims = TokenClaims(
                subject_id=str(payload["sub"]),
                kind=TokenKind(payload["type"]),
                issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
                expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
                token_id=str(payload["jti"]),
            )
        except (KeyError, ValueError, TypeError):
            logger.warning("Signed token with missing or malformed claims rejected")
            return TokenFailure(TokenError.INVALID_SIGNATURE)
        return Success(claims)

    def verify_kind(self, token: str, kind: TokenKind) -> TokenClaims | None:
        """Return claims only if token verifies AND carries the given type tag."""
        result = self.verify(token)
        if isinstance(result, Success) and result.value.kind is kind:
            return result.value
        return None


@dataclass(frozen=True)
class TokenFailure:
    """Why a token failed verification. Never shown to clients."""

    reason: TokenError
