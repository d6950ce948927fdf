"""Email ownership verification: send a code, exchange it for a token."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from wiki_contrib.core.errors import RateLimitError, ValidationError
from wiki_contrib.core.settings import settings
from wiki_contrib.services.email import EmailDeliveryError, EmailSender
from wiki_contrib.services.otp import OneTimeCodeStore
from wiki_contrib.services.rate_limit import RateLimiter
from wiki_contrib.services.store import KeyValueStore
from wiki_contrib.services.tokens import VerificationTokenService
from wiki_contrib.utils.hash import hash_email, mask_email
from wiki_contrib.utils.validation import is_code_shaped, validate_email

logger = logging.getLogger(__name__)


class EmailVerificationService:
    """Coordinate code issuance, delivery and confirmation for one email.

    Two per-email windows bound abuse: how many codes may be sent in
    ``code_request_window_seconds`` and how many wrong codes may be tried
    while a code is alive.
    """

    def __init__(
        self,
        store: KeyValueStore,
        codes: OneTimeCodeStore,
        tokens: VerificationTokenService,
        mailer: EmailSender,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._codes = codes
        self._tokens = tokens
        self._mailer = mailer
        self._request_limiter = RateLimiter(store, scope="code-request", clock=clock)
        self._failure_limiter = RateLimiter(store, scope="code-failure", clock=clock)

    async def request_code(self, email: str) -> bool:
        """Issue a code for ``email`` and send it.

        Returns False when the email could not be delivered; the code issued
        for that attempt is discarded so it can never be confirmed.

        Raises:
            ValidationError: ``email`` is not a plausible address.
            RateLimitError: Too many codes were requested for this address.
        """
        address = validate_email(email)
        identity_hash = hash_email(address)

        decision = self._request_limiter.check(
            identity_hash,
            settings.code_requests_per_window,
            settings.code_request_window_seconds,
        )
        if not decision.allowed:
            raise RateLimitError(
                "Too many verification codes requested. Please try again later.",
                retry_after=decision.retry_after or 0.0,
            )

        code = self._codes.issue(address)
        try:
            await self._mailer.send_verification_code(address, code)
        except EmailDeliveryError as exc:
            self._codes.invalidate(address)
            logger.error("Failed to send verification email to %s: %s", mask_email(address), exc)
            return False

        self._request_limiter.record(identity_hash, settings.code_request_window_seconds)
        logger.info("Verification code sent to %s", mask_email(address))
        return True

    def confirm_code(self, email: str, code: str) -> str | None:
        """Exchange a correct code for a verification token.

        Returns None for a wrong, expired or unknown code.

        Raises:
            ValidationError: ``email`` is not a plausible address.
            RateLimitError: Too many wrong codes were tried recently.
        """
        address = validate_email(email)
        identity_hash = hash_email(address)
        window_seconds = settings.verification_code_ttl_seconds

        decision = self._failure_limiter.check(
            identity_hash,
            settings.code_confirm_failures_per_window,
            window_seconds,
        )
        if not decision.allowed:
            raise RateLimitError(
                "Too many incorrect verification attempts. Please try again later.",
                retry_after=decision.retry_after or 0.0,
            )

        if not is_code_shaped(code):
            raise ValidationError("Verification code must be 6 digits")

        if not self._codes.verify(address, code):
            self._failure_limiter.record(identity_hash, window_seconds)
            logger.info("Verification failed for %s", mask_email(address))
            return None

        logger.info("Email verified for %s", mask_email(address))
        return self._tokens.issue(address)
