"""
auth/hashing.py -- One-way password hashing with bcrypt.

bcrypt is used directly (no passlib wrapper). Cost factor 12 by default; the
hash text embeds salt and cost ("$2b$12$..."), so verify() needs nothing but
the stored string.

bcrypt only reads the first 72 bytes of its input. Older releases truncated
silently, newer ones raise. We check the encoded length ourselves and raise
InvalidPasswordError either way, so behaviour does not depend on the
installed bcrypt version.

Timing equalization [C1]: verify_dummy() runs a full bcrypt check against a
fixed hash of the same cost. The login flow calls it when the email is
unknown, so response time does not reveal whether an account exists.

Layer rule: no imports from api/. core/monitoring is used for the hook type only.
"""

from __future__ import annotations

import logging
import time

import bcrypt

from auth.errors import InvalidPasswordError
from core.monitoring import TimingHook

logger = logging.getLogger("authsvc.auth.hashing")

BCRYPT_MAX_BYTES = 72
DEFAULT_ROUNDS = 12


class CredentialHasher:
    """Hash and verify passwords.

    Usage:
        hasher = CredentialHasher(rounds=12, timing_hook=SlowOperationLogger(1000))
        stored = hasher.hash("correct horse")
        hasher.verify("correct horse", stored)  # True
    """

    def __init__(self, rounds: int = DEFAULT_ROUNDS, timing_hook: TimingHook | None = None) -> None:
        self.rounds = rounds
        self._timing_hook = timing_hook
        # Same cost as real hashes; verify_dummy() is then a single checkpw [C1].
        self._dummy_hash = bcrypt.hashpw(b"authsvc_timing_dummy", bcrypt.gensalt(rounds=rounds)).decode("utf-8")

    def hash(self, password: str) -> str:
        """Return a salted bcrypt hash of password.

        Raises InvalidPasswordError if the password exceeds 72 UTF-8 bytes.
        """
        encoded = password.encode("utf-8")
        if len(encoded) > BCRYPT_MAX_BYTES:
            raise InvalidPasswordError(f"Password must be at most {BCRYPT_MAX_BYTES} bytes.")
        start = time.perf_counter()
        hashed = bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")
        self._report("password_hash", start)
        return hashed

    def verify(self, password: str, hash_text: str) -> bool:
        """Return True if password matches hash_text.

        A malformed or empty hash_text returns False rather than raising. A
        password over 72 bytes can never match, since hash() refuses them.
        """
        encoded = password.encode("utf-8")
        if len(encoded) > BCRYPT_MAX_BYTES:
            return False
        start = time.perf_counter()
        try:
            return bcrypt.checkpw(encoded, hash_text.encode("utf-8"))
        except ValueError:
            logger.warning("Password verification against a malformed hash")
            return False
        finally:
            self._report("password_verify", start)

    def verify_dummy(self, password: str) -> None:
        """Burn one bcrypt verification so unknown accounts cost the same as known ones [C1]."""
        self.verify(password, self._dummy_hash)

    def _report(self, operation: str, start: float) -> None:
        if self._timing_hook is not None:
            self._timing_hook(operation, (time.perf_counter() - start) * 1000)
