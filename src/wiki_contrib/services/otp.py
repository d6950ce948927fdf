"""One-time email verification codes, encrypted at rest."""

from __future__ import annotations

import hmac
import json
import logging
import secrets
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Final

from wiki_contrib.core.settings import settings
from wiki_contrib.services.crypto import DecryptionError, SecretCipher
from wiki_contrib.services.store import KeyValueStore
from wiki_contrib.utils.hash import hash_email, short_hash

logger = logging.getLogger(__name__)

CODE_DIGITS: Final[int] = 6
_CODE_FLOOR: Final[int] = 10 ** (CODE_DIGITS - 1)
_KEY_PREFIX: Final[str] = "otp"


@dataclass(frozen=True)
class VerificationCode:
    """Stored record for a pending verification."""

    identity_hash: str
    encrypted_code: str
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


def generate_code() -> str:
    """Return a uniformly random 6-digit numeric code."""
    return str(_CODE_FLOOR + secrets.randbelow(9 * _CODE_FLOOR))


class OneTimeCodeStore:
    """Issue and verify one-time codes keyed by a hashed identity.

    At most one live code exists per identity: issuing again overwrites the
    previous record. A successful verification deletes the record; a failed
    one leaves it in place so the user can retry until it expires.
    """

    def __init__(
        self,
        store: KeyValueStore,
        cipher: SecretCipher,
        *,
        ttl_seconds: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._cipher = cipher
        self._ttl_seconds = (
            ttl_seconds if ttl_seconds is not None else settings.verification_code_ttl_seconds
        )
        self._clock = clock

    @staticmethod
    def _key(identity_hash: str) -> str:
        return f"{_KEY_PREFIX}:{identity_hash}"

    def issue(self, identity: str) -> str:
        """Create a fresh code for ``identity`` and return it in plaintext."""
        identity_hash = hash_email(identity)
        code = generate_code()
        now = self._clock()
        record = VerificationCode(
            identity_hash=identity_hash,
            encrypted_code=self._cipher.encrypt(code),
            created_at=now,
            expires_at=now + self._ttl_seconds,
        )
        self._store.put(self._key(identity_hash), json.dumps(asdict(record)), self._ttl_seconds)
        logger.debug("Stored verification code for identity %s", short_hash(identity_hash))
        return code

    def _load(self, identity_hash: str) -> VerificationCode | None:
        raw = self._store.get(self._key(identity_hash))
        if raw is None:
            return None
        try:
            return VerificationCode(**json.loads(raw))
        except (TypeError, ValueError):
            logger.warning(
                "Discarding malformed verification record for %s", short_hash(identity_hash)
            )
            self._store.delete(self._key(identity_hash))
            return None

    def verify(self, identity: str, candidate: str) -> bool:
        """Return True and consume the code if ``candidate`` matches.

        Fails closed: a missing, expired, malformed or undecryptable record
        never verifies.
        """
        identity_hash = hash_email(identity)
        record = self._load(identity_hash)
        if record is None:
            logger.debug("No verification code on file for %s", short_hash(identity_hash))
            return False

        if record.is_expired(self._clock()):
            self._store.delete(self._key(identity_hash))
            logger.debug("Verification code expired for %s", short_hash(identity_hash))
            return False

        try:
            expected = self._cipher.decrypt(record.encrypted_code)
        except DecryptionError:
            logger.error(
                "Failed to decrypt verification code for %s", short_hash(identity_hash)
            )
            return False

        if not hmac.compare_digest(expected.encode(), candidate.strip().encode()):
            return False

        self._store.delete(self._key(identity_hash))
        return True

    def invalidate(self, identity: str) -> None:
        """Drop any pending code for ``identity``."""
        self._store.delete(self._key(hash_email(identity)))
