"""Error taxonomy for the contribution pipeline.

Every error raised towards a caller derives from ``ContributionError`` and
carries a machine-readable code, the HTTP status it maps to, and the last
pipeline stage that completed before the failure (``None`` outside the
orchestrator).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - typing helper
    from wiki_contrib.services.stages import ContributionStage


class ContributionError(Exception):
    """Base class for errors reported to contributors."""

    code = "CONTRIBUTION_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        stage: ContributionStage | None = None,
    ) -> None:
        self.message = message
        self.stage = stage
        super().__init__(message)

    @property
    def public_message(self) -> str:
        """Message that is safe to show to the end user."""
        return self.message


class ValidationError(ContributionError):
    """Malformed or missing input. Safe to retry after correction."""

    code = "VALIDATION_ERROR"
    status_code = 400


class VerificationError(ContributionError):
    """Email verification token is missing, expired, forged or mismatched."""

    code = "VERIFICATION_FAILED"
    status_code = 403


class CaptchaError(ContributionError):
    """The human-verification check rejected the request."""

    code = "CAPTCHA_FAILED"
    status_code = 403

    def __init__(
        self,
        message: str,
        *,
        score: float = 0.0,
        stage: ContributionStage | None = None,
    ) -> None:
        super().__init__(message, stage=stage)
        self.score = score


class RateLimitError(ContributionError):
    """Too many recent actions from the same identity."""

    code = "RATE_LIMITED"
    status_code = 429

    def __init__(
        self,
        message: str,
        *,
        retry_after: float,
        stage: ContributionStage | None = None,
    ) -> None:
        super().__init__(message, stage=stage)
        self.retry_after = retry_after


class ModerationError(ContributionError):
    """Submitted text was rejected by content moderation."""

    code = "CONTENT_REJECTED"
    status_code = 400

    def __init__(
        self,
        message: str,
        *,
        field: str,
        method: str,
        stage: ContributionStage | None = None,
    ) -> None:
        super().__init__(message, stage=stage)
        self.field = field
        self.method = method


class HostingError(ContributionError):
    """A hosting write stage failed after earlier writes may have landed.

    ``last_stage`` names the last stage that completed so an operator can
    clean up an orphaned branch or pull request by hand.
    """

    code = "HOSTING_FAILED"
    status_code = 502

    def __init__(self, message: str, *, last_stage: ContributionStage) -> None:
        super().__init__(message, stage=last_stage)
        self.last_stage = last_stage

    @property
    def public_message(self) -> str:
        return "Failed to create pull request. Please try again later."


class ConfigurationError(ContributionError):
    """A required secret or setting is missing. Fatal for the request."""

    code = "CONFIGURATION_ERROR"
    status_code = 500

    @property
    def public_message(self) -> str:
        return "Service is temporarily unavailable."
