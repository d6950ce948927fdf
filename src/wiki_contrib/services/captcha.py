"""Human-verification (reCAPTCHA) scoring."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from wiki_contrib.core.errors import ConfigurationError
from wiki_contrib.core.settings import settings

logger = logging.getLogger(__name__)

HTTP_OK = 200
# Providers without a score (checkbox style) are treated as fully human.
_DEFAULT_SCORE = 1.0


@dataclass(frozen=True)
class CaptchaResult:
    """Outcome of a captcha check."""

    accepted: bool
    score: float


REJECTED = CaptchaResult(accepted=False, score=0.0)


class CaptchaValidator:
    """Validate captcha tokens against the provider's verify endpoint.

    This is a hard gate: any transport failure, non-200 response, or
    ``success: false`` yields a rejection with score 0. There is no retry.
    """

    def __init__(
        self,
        secret: str | None,
        *,
        verify_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self._secret = secret
        self._verify_url = verify_url or settings.recaptcha_verify_url
        self._http = http_client
        self._timeout = httpx.Timeout(
            timeout_seconds if timeout_seconds is not None else settings.http_timeout_seconds
        )

    async def _post(self, data: dict[str, str]) -> httpx.Response:
        if self._http is not None:
            return await self._http.post(self._verify_url, data=data, timeout=self._timeout)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.post(self._verify_url, data=data)

    async def validate(self, token: str, client_ip: str) -> CaptchaResult:
        """Return whether ``token`` was accepted and the provider's score."""
        if not self._secret:
            raise ConfigurationError("Captcha secret is not configured")

        try:
            response = await self._post(
                {"secret": self._secret, "response": token, "remoteip": client_ip}
            )
        except httpx.HTTPError as exc:
            logger.error("Captcha verification request failed: %s", type(exc).__name__)
            return REJECTED

        if response.status_code != HTTP_OK:
            logger.error("Captcha provider responded with %s", response.status_code)
            return REJECTED

        try:
            payload = response.json()
        except ValueError:
            logger.error("Captcha provider returned a non-JSON body")
            return REJECTED

        if not payload.get("success"):
            logger.warning(
                "Captcha validation failed: %s", payload.get("error-codes", [])
            )
            return REJECTED

        score = payload.get("score")
        if score is None:
            score = _DEFAULT_SCORE
        try:
            return CaptchaResult(accepted=True, score=float(score))
        except (TypeError, ValueError):
            logger.error("Captcha provider returned a non-numeric score")
            return REJECTED
