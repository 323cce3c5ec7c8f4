"""
auth/service.py -- AuthService: signup, login, refresh, logout, get_user_by_id.

The service owns every business invariant of the token lifecycle and holds no
mutable state between calls. Each public method is a self-contained unit over
its collaborators:

  CredentialHasher   -- bcrypt hash / verify
  TokenCodec         -- issue / verify JWTs
  UserStore          -- user repository
  RefreshTokenStore  -- persisted refresh tokens, atomic rotation

Domain failures are returned as Failure values (auth/errors.py), never raised.
Infrastructure exceptions (SQLAlchemyError and friends) propagate untouched;
the API layer logs them and answers with a redacted 500.

Sequencing notes:
  [C1] login runs a dummy bcrypt check when the email is unknown, so "no such
       user" and "wrong password" cost the same and return the same error.

  [SR-1] login checks is_active BEFORE the password. A deactivated account is
       therefore distinguishable from a wrong password without knowing the
       password. This ordering is externally observable behaviour and is kept
       on purpose; it is flagged for security review, not silently changed.

  [R1] refresh deletes the presented token and inserts its successor in one
       transaction (RefreshTokenStore.replace). If the DELETE finds nothing, a
       concurrent refresh already consumed the token and this call fails with
       INVALID_REFRESH_TOKEN. A refresh token is only handed back to a caller
       after its row has committed.

Blocking: bcrypt is CPU-bound. Callers on an event loop must run these
methods in a worker thread (the FastAPI routes are plain `def` handlers,
which FastAPI dispatches to its thread pool).
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy.exc import IntegrityError

from auth.errors import ErrorKind, Failure, Result, Success
from auth.hashing import BCRYPT_MAX_BYTES, CredentialHasher
from auth.models import AuthPayload, CookieIntent, RefreshTokenRecord, SignupInput, TokenKind, User, UserView
from auth.store import RefreshTokenStore, UserStore
from auth.tokens import TokenCodec

logger = logging.getLogger("authsvc.auth.service")

REFRESH_COOKIE_NAME = "refresh_token"

_EMAIL_RE = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
USERNAME_MIN, USERNAME_MAX = 3, 30
PASSWORD_MIN = 8


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_signup(data: SignupInput) -> Failure | None:
    """Return the first failing check as an INVALID_INPUT Failure, or None.

    Fail-fast, not aggregate: checks run in a fixed order (email, username,
    names, password) and only the first failure is reported.
    """
    if not _EMAIL_RE.fullmatch(data.email):
        return Failure.invalid_input("email", "INVALID_EMAIL", "Invalid email format.")
    if not USERNAME_MIN <= len(data.username) <= USERNAME_MAX:
        return Failure.invalid_input(
            "username", "INVALID_USERNAME", f"Username must be {USERNAME_MIN}-{USERNAME_MAX} characters."
        )
    if not data.first_name:
        return Failure.invalid_input("first_name", "INVALID_NAME", "First and last name are required.")
    if not data.last_name:
        return Failure.invalid_input("last_name", "INVALID_NAME", "First and last name are required.")
    if len(data.password) < PASSWORD_MIN:
        return Failure.invalid_input(
            "password", "WEAK_PASSWORD", f"Password must be at least {PASSWORD_MIN} characters."
        )
    if len(data.password.encode("utf-8")) > BCRYPT_MAX_BYTES:
        return Failure.invalid_input(
            "password", "PASSWORD_TOO_LONG", f"Password must be at most {BCRYPT_MAX_BYTES} bytes."
        )
    return None


class AuthService:
    """Token lifecycle orchestration.

    Usage:
        service = AuthService(users, refresh_tokens, hasher, codec)
        result = service.login("a@example.com", "password1")
        if isinstance(result, Failure):
            ...
    """

    def __init__(
        self,
        users: UserStore,
        refresh_tokens: RefreshTokenStore,
        hasher: CredentialHasher,
        codec: TokenCodec,
        secure_cookies: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.users = users
        self.refresh_tokens = refresh_tokens
        self.hasher = hasher
        self.codec = codec
        self.secure_cookies = secure_cookies
        self._clock = clock

    # ------------------------------------------------------------------
    # Signup / login
    # ------------------------------------------------------------------

    def signup(self, data: SignupInput) -> Result[AuthPayload]:
        invalid = validate_signup(data)
        if invalid is not None:
            return invalid

        conflict = self._find_conflict(data.email, data.username)
        if conflict is not None:
            return conflict

        new_user = User(
            email=data.email,
            username=data.username,
            first_name=data.first_name,
            last_name=data.last_name,
            password_hash=self.hasher.hash(data.password),
            email_verified=False,
        )
        try:
            user = self.users.create_user(new_user)
        except IntegrityError:
            # A concurrent signup claimed the email or username between our
            # lookup and the insert. Report it the same way as step 2.
            conflict = self._find_conflict(data.email, data.username)
            if conflict is None:
                raise
            return conflict

        logger.info("Signup succeeded user_id=%s", user.id)
        return Success(self._start_session(user))

    def login(self, email: str, password: str) -> Result[AuthPayload]:
        user = self.users.find_user_by_email(email)
        if user is None or user.password_hash is None:
            self.hasher.verify_dummy(password)  # [C1]
            logger.info("Login failed: unknown account")
            return Failure(ErrorKind.INVALID_CREDENTIALS)

        if not user.is_active:  # [SR-1]
            logger.info("Login refused for deactivated user_id=%s", user.id)
            return Failure(ErrorKind.ACCOUNT_DEACTIVATED)

        if not self.hasher.verify(password, user.password_hash):
            logger.info("Login failed: bad password for user_id=%s", user.id)
            return Failure(ErrorKind.INVALID_CREDENTIALS)

        user.last_login = self.users.update_user_last_login(user.id, self._clock())
        user.updated_at = user.last_login
        logger.info("Login succeeded user_id=%s", user.id)
        return Success(self._start_session(user))

    # ------------------------------------------------------------------
    # Refresh / logout
    # ------------------------------------------------------------------

    def refresh(self, presented_token: str) -> Result[AuthPayload]:
        claims = self.codec.verify_kind(presented_token, TokenKind.REFRESH)
        if claims is None:
            return Failure(ErrorKind.INVALID_REFRESH_TOKEN)

        now = self._clock()
        record = self.refresh_tokens.find_by_value(presented_token)
        if record is None or record.is_expired(now):
            return Failure(ErrorKind.REFRESH_TOKEN_EXPIRED)
        if record.user_id != claims.subject_id:
            logger.warning("Refresh token subject does not match its stored owner")
            return Failure(ErrorKind.INVALID_REFRESH_TOKEN)

        user = self.users.find_user_by_id(record.user_id)
        if user is None:
            return Failure(ErrorKind.INVALID_REFRESH_TOKEN)
        if not user.is_active:
            return Failure(ErrorKind.ACCOUNT_DEACTIVATED)

        access_token = self.codec.issue(user.id, TokenKind.ACCESS)
        successor = self._new_refresh_record(user.id, now)
        if not self.refresh_tokens.replace(presented_token, successor):  # [R1]
            logger.warning("Refresh token replay rejected for user_id=%s", user.id)
            return Failure(ErrorKind.INVALID_REFRESH_TOKEN)

        logger.info("Refresh token rotated for user_id=%s", user.id)
        return Success(self._payload(user, access_token, successor.token))

    def logout(self, refresh_token: str) -> Success[CookieIntent]:
        """Revoke one refresh token. Idempotent: an unknown token is not an error."""
        if self.refresh_tokens.delete_by_value(refresh_token):
            logger.info("Logout revoked one refresh token")
        return Success(self.clear_refresh_cookie())

    def logout_all(self, user_id: str) -> Success[int]:
        """Revoke every refresh token of a user. Returns how many were removed."""
        removed = self.refresh_tokens.delete_all_for_user(user_id)
        logger.info("Revoked %d session(s) for user_id=%s", removed, user_id)
        return Success(removed)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_user_by_id(self, user_id: str) -> Result[UserView]:
        """Return the sanitized user. Missing and inactive look identical to the caller."""
        user = self.users.find_user_by_id(user_id)
        if user is None or not user.is_active:
            return Failure(ErrorKind.USER_NOT_FOUND)
        return Success(UserView.from_user(user))

    # ------------------------------------------------------------------
    # Cookie intents
    # ------------------------------------------------------------------

    def refresh_cookie(self, token: str) -> CookieIntent:
        return CookieIntent(
            name=REFRESH_COOKIE_NAME,
            value=token,
            max_age=int(self.codec.config.refresh_ttl.total_seconds()),
            secure=self.secure_cookies,
        )

    def clear_refresh_cookie(self) -> CookieIntent:
        return CookieIntent(name=REFRESH_COOKIE_NAME, value="", max_age=0, secure=self.secure_cookies, clear=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _find_conflict(self, email: str, username: str) -> Failure | None:
        """Email collisions are reported before username collisions."""
        existing = self.users.find_users_by_email_or_username(email, username)
        if any(u.email == email for u in existing):
            return Failure(ErrorKind.EMAIL_ALREADY_EXISTS)
        if any(u.username == username for u in existing):
            return Failure(ErrorKind.USERNAME_TAKEN)
        return None

    def _new_refresh_record(self, user_id: str, now: datetime) -> RefreshTokenRecord:
        return RefreshTokenRecord(
            token=self.codec.issue(user_id, TokenKind.REFRESH),
            user_id=user_id,
            expires_at=now + self.codec.config.refresh_ttl,
            created_at=now,
        )

    def _start_session(self, user: User) -> AuthPayload:
        """Issue both tokens and persist the refresh record before returning them."""
        access_token = self.codec.issue(user.id, TokenKind.ACCESS)
        record = self._new_refresh_record(user.id, self._clock())
        self.refresh_tokens.create(record)
        return self._payload(user, access_token, record.token)

    def _payload(self, user: User, access_token: str, refresh_token: str) -> AuthPayload:
        return AuthPayload(
            user=UserView.from_user(user),
            access_token=access_token,
            refresh_token=refresh_token,
            cookie=self.refresh_cookie(refresh_token),
        )
