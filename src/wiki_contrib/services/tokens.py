"""Signed, time-boxed tokens asserting that an email address was verified."""

from __future__ import annotations

import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Final

from jose import JWTError, jwt

from wiki_contrib.core.errors import ConfigurationError
from wiki_contrib.core.settings import settings
from wiki_contrib.utils.hash import normalize_email

TOKEN_PURPOSE: Final[str] = "email-verification"


class TokenError(ValueError):
    """Base class for verification token failures."""


class TokenInvalid(TokenError):
    """Token is malformed, forged, for another purpose, or for another email."""


class TokenExpired(TokenError):
    """Token signature is valid but its validity window has passed."""


@dataclass(frozen=True)
class VerifiedEmail:
    """Claims carried by a valid verification token."""

    email: str
    issued_at: int
    expires_at: int
    token_id: str


class VerificationTokenService:
    """Issue and validate stateless verification tokens.

    Tokens are HS256 JWTs. Expiry is checked here against the injected clock
    rather than inside the JWT library so that validation is deterministic
    under test.
    """

    def __init__(
        self,
        secret: str | None,
        *,
        ttl_seconds: int | None = None,
        algorithm: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ConfigurationError("Token signing secret is not configured")
        self._secret = secret
        self._ttl_seconds = (
            ttl_seconds if ttl_seconds is not None else settings.verification_token_ttl_seconds
        )
        self._algorithm = algorithm or settings.jwt_algorithm
        self._clock = clock

    def issue(self, email: str) -> str:
        """Return a token asserting that ``email`` was verified just now."""
        now = int(self._clock())
        claims: dict[str, object] = {
            "email": normalize_email(email),
            "iat": now,
            "exp": now + self._ttl_seconds,
            "purpose": TOKEN_PURPOSE,
            "jti": secrets.token_hex(8),
        }
        encoded: str = jwt.encode(claims, self._secret, algorithm=self._algorithm)
        return encoded

    def validate(self, token: str) -> VerifiedEmail:
        """Decode ``token`` and return its claims.

        Raises:
            TokenInvalid: Bad signature, malformed payload or wrong purpose.
            TokenExpired: The validity window has passed.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"verify_exp": False},
            )
        except JWTError as err:
            raise TokenInvalid("Verification token could not be decoded") from err

        if payload.get("purpose") != TOKEN_PURPOSE:
            raise TokenInvalid("Token was not issued for email verification")

        email = payload.get("email")
        expires_at = payload.get("exp")
        issued_at = payload.get("iat")
        if not isinstance(email, str) or not email:
            raise TokenInvalid("Token does not carry an email address")
        if not isinstance(expires_at, int) or not isinstance(issued_at, int):
            raise TokenInvalid("Token is missing its validity window")

        if self._clock() >= expires_at:
            raise TokenExpired("Email verification has expired")

        return VerifiedEmail(
            email=email,
            issued_at=issued_at,
            expires_at=expires_at,
            token_id=str(payload.get("jti", "")),
        )

    def validate_for(self, token: str, email: str) -> VerifiedEmail:
        """Validate ``token`` and require that it was issued for ``email``."""
        verified = self.validate(token)
        if verified.email != normalize_email(email):
            raise TokenInvalid("Token was issued for a different email address")
        return verified
