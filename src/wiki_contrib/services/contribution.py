"""Anonymous contribution pipeline.

Turns one verified, human, moderated edit into a pull request. Stages run
strictly in :class:`ContributionStage` order. Stages up to moderation only
read state and fail with typed errors; the hosting stages write to the
repository, are never retried or rolled back, and report the last stage
that completed so an operator can clean up by hand.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Final

from wiki_contrib.core.errors import (
    CaptchaError,
    HostingError,
    ModerationError,
    RateLimitError,
    ValidationError,
    VerificationError,
)
from wiki_contrib.core.settings import settings
from wiki_contrib.services.captcha import CaptchaValidator
from wiki_contrib.services.hosting import HostingGateway
from wiki_contrib.services.moderation import ContentModerator
from wiki_contrib.services.rate_limit import RateLimitDecision, RateLimiter
from wiki_contrib.services.stages import ContributionStage
from wiki_contrib.services.store import KeyValueStore
from wiki_contrib.services.tokens import TokenExpired, TokenInvalid, VerificationTokenService
from wiki_contrib.utils.hash import hash_client_address, hash_email, mask_email, short_hash
from wiki_contrib.utils.validation import validate_email, validate_slug

logger = logging.getLogger(__name__)

DISPLAY_NAME_MIN: Final[int] = 2
DISPLAY_NAME_MAX: Final[int] = 50
REASON_MAX: Final[int] = 500
TITLE_MAX: Final[int] = 200
CONTENT_MAX_BYTES: Final[int] = 1024 * 1024

LABEL_MAX: Final[int] = 50
REF_PREFIX: Final[str] = "ref:"
REF_HASH_SHORT: Final[int] = 16
# Longest hash that still fits a label after the prefix.
REF_HASH_LINKABLE: Final[int] = LABEL_MAX - len(REF_PREFIX)

_TAG_PATTERN = re.compile(r"<[^>]*>")


@dataclass(frozen=True)
class ContributionRequest:
    """One anonymous edit as submitted by the editor UI."""

    section: str
    page_id: str
    page_title: str
    content: str
    email: str
    display_name: str
    verification_token: str
    captcha_token: str
    reason: str = ""
    consent_to_link_email: bool = False


@dataclass(frozen=True)
class ContributionResult:
    """Where the submitted edit ended up."""

    pr_number: int
    pr_url: str
    branch_name: str


@dataclass(frozen=True)
class ContributionPolicy:
    """Tunable limits applied by the orchestrator."""

    captcha_min_score: float = 0.5
    max_contributions: int = 5
    window_seconds: int = 3600
    moderation_sample_chars: int = 5000
    content_path_template: str = "public/content/{section}/{page_id}.md"

    @classmethod
    def from_settings(cls) -> ContributionPolicy:
        return cls(
            captcha_min_score=settings.captcha_min_score,
            max_contributions=settings.contributions_per_window,
            window_seconds=settings.contribution_window_seconds,
            moderation_sample_chars=settings.moderation_sample_chars,
            content_path_template=settings.content_path_template,
        )


@dataclass(frozen=True)
class SanitizedFields:
    """Submission fields after cleaning and bounds checks."""

    section: str
    page_id: str
    title: str
    content: str
    display_name: str
    reason: str


def strip_tags(text: str) -> str:
    """Remove anything that looks like an HTML/XML tag."""
    return _TAG_PATTERN.sub("", text)


def sanitize_display_name(value: str) -> str:
    cleaned = strip_tags(value or "").strip()[:DISPLAY_NAME_MAX].strip()
    if len(cleaned) < DISPLAY_NAME_MIN:
        raise ValidationError(
            f"Display name must be between {DISPLAY_NAME_MIN} and {DISPLAY_NAME_MAX} characters"
        )
    return cleaned


def sanitize_reason(value: str | None) -> str:
    return strip_tags(value or "").strip()[:REASON_MAX].strip()


def sanitize_request(request: ContributionRequest) -> SanitizedFields:
    """Clean free text and enforce field bounds.

    Raises:
        ValidationError: A field is empty, too long or not path-safe.
    """
    title = (request.page_title or "").strip()
    if not 1 <= len(title) <= TITLE_MAX:
        raise ValidationError(f"Page title must be between 1 and {TITLE_MAX} characters")

    content = request.content or ""
    if not content.strip():
        raise ValidationError("Content is required")
    if len(content.encode("utf-8")) > CONTENT_MAX_BYTES:
        raise ValidationError("Content exceeds the 1 MiB limit")

    return SanitizedFields(
        section=validate_slug(request.section, "Section"),
        page_id=validate_slug(request.page_id, "Page id"),
        title=title,
        content=content,
        display_name=sanitize_display_name(request.display_name),
        reason=sanitize_reason(request.reason),
    )


def clip_label(label: str) -> str:
    return label[:LABEL_MAX]


def build_labels(
    section: str, display_name: str, email_hash: str, *, linkable: bool = False
) -> list[str]:
    """Return the review labels attached to an anonymous pull request."""
    ref_length = REF_HASH_LINKABLE if linkable else REF_HASH_SHORT
    labels = [
        "anonymous-edit",
        "needs-review",
        clip_label(section),
        clip_label(f"name:{display_name}"),
        clip_label(f"{REF_PREFIX}{email_hash[:ref_length]}"),
    ]
    if linkable:
        labels.append("linkable")
    return labels


def build_branch_name(section: str, page_id: str, timestamp_ms: int) -> str:
    return f"anon-edit/{section}/{page_id}/{timestamp_ms}"


def build_commit_message(
    fields: SanitizedFields, masked_email: str, email_hash: str, submitted_at: str
) -> str:
    lines = [
        f"Update {fields.title}",
        "",
        f"Anonymous contribution by: {fields.display_name}",
        f"Email: {masked_email} (verified)",
        f"Email hash: {email_hash}",
    ]
    if fields.reason:
        lines.append(f"Reason: {fields.reason}")
    lines += ["", f"Submitted: {submitted_at}"]
    return "\n".join(lines)


def build_pull_request_body(
    fields: SanitizedFields, masked_email: str, submitted_at: str, captcha_score: float
) -> str:
    lines = [
        "## Anonymous Edit Submission",
        "",
        f"**Submitted by:** {fields.display_name}",
        f"**Email:** {masked_email} (verified)",
    ]
    if fields.reason:
        lines.append(f"**Reason:** {fields.reason}")
    lines += [
        f"**Timestamp:** {submitted_at}",
        f"**reCAPTCHA Score:** {captcha_score:.2f}",
        "",
        "---",
        "",
        "*This edit was submitted anonymously via the wiki editor.*",
        "*The submitter's email address has been verified.*",
    ]
    return "\n".join(lines)


class ContributionOrchestrator:
    """Run the contribution pipeline for one request at a time.

    Holds no per-request state; every limit lives in the shared store so
    independent invocations see each other's work.
    """

    def __init__(
        self,
        *,
        tokens: VerificationTokenService,
        captcha: CaptchaValidator,
        moderator: ContentModerator,
        gateway: HostingGateway,
        store: KeyValueStore,
        policy: ContributionPolicy | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._tokens = tokens
        self._captcha = captcha
        self._moderator = moderator
        self._gateway = gateway
        self._policy = policy or ContributionPolicy.from_settings()
        self._clock = clock
        self._address_limiter = RateLimiter(store, scope="contribution-ip", clock=clock)
        self._email_limiter = RateLimiter(store, scope="contribution-email", clock=clock)

    def rate_limit_status(self, client_ip: str) -> RateLimitDecision:
        """Report remaining contribution capacity for a network address."""
        return self._address_limiter.check(
            hash_client_address(client_ip),
            self._policy.max_contributions,
            self._policy.window_seconds,
        )

    def _verify_email(self, request: ContributionRequest) -> str:
        email = validate_email(request.email)
        if not request.verification_token:
            raise VerificationError(
                "Email verification required", stage=ContributionStage.RECEIVED
            )
        try:
            self._tokens.validate_for(request.verification_token, email)
        except TokenExpired as err:
            raise VerificationError(
                "Email verification expired. Please verify again.",
                stage=ContributionStage.RECEIVED,
            ) from err
        except TokenInvalid as err:
            raise VerificationError(
                "Invalid verification token", stage=ContributionStage.RECEIVED
            ) from err
        return email

    async def _check_captcha(self, request: ContributionRequest, client_ip: str) -> float:
        if not request.captcha_token:
            raise CaptchaError(
                "CAPTCHA verification required", stage=ContributionStage.EMAIL_VERIFIED
            )
        result = await self._captcha.validate(request.captcha_token, client_ip)
        if not result.accepted or result.score < self._policy.captcha_min_score:
            logger.info("Captcha rejected submission with score %.2f", result.score)
            raise CaptchaError(
                "CAPTCHA verification failed. Please try again.",
                score=result.score,
                stage=ContributionStage.EMAIL_VERIFIED,
            )
        return result.score

    def _check_rate_limits(self, address_hash: str, email_hash: str) -> None:
        for limiter, identity_hash in (
            (self._address_limiter, address_hash),
            (self._email_limiter, email_hash),
        ):
            decision = limiter.check(
                identity_hash, self._policy.max_contributions, self._policy.window_seconds
            )
            if not decision.allowed:
                raise RateLimitError(
                    "Too many submissions. Please try again later.",
                    retry_after=decision.retry_after or 0.0,
                    stage=ContributionStage.CAPTCHA_PASSED,
                )

    async def _moderate(self, fields: SanitizedFields) -> None:
        checks = [("Display name", fields.display_name)]
        if fields.reason:
            checks.append(("Reason", fields.reason))
        checks.append(("Content", fields.content[: self._policy.moderation_sample_chars]))

        for field_name, text in checks:
            verdict = await self._moderator.classify(text)
            if verdict.flagged:
                logger.info(
                    "%s rejected by moderation (method: %s)", field_name, verdict.method
                )
                raise ModerationError(
                    f"{field_name} contains inappropriate language",
                    field=field_name,
                    method=verdict.method,
                    stage=ContributionStage.SANITIZED,
                )

    async def submit(self, request: ContributionRequest, client_ip: str) -> ContributionResult:
        """Run every stage for ``request`` and return the opened pull request.

        Raises:
            ValidationError, VerificationError, CaptchaError, RateLimitError,
            ModerationError: The submission was rejected before any write.
            HostingError: A repository write failed; ``last_stage`` tells how
                far the write sequence got.
        """
        email = self._verify_email(request)
        stage = ContributionStage.EMAIL_VERIFIED

        captcha_score = await self._check_captcha(request, client_ip)
        stage = ContributionStage.CAPTCHA_PASSED

        address_hash = hash_client_address(client_ip)
        email_hash = hash_email(email)
        self._check_rate_limits(address_hash, email_hash)
        stage = ContributionStage.RATE_LIMIT_OK

        fields = sanitize_request(request)
        stage = ContributionStage.SANITIZED

        await self._moderate(fields)
        stage = ContributionStage.MODERATION_PASSED

        timestamp_ms = int(self._clock() * 1000)
        submitted_at = (
            datetime.fromtimestamp(timestamp_ms / 1000, UTC)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z")
        )
        branch_name = build_branch_name(fields.section, fields.page_id, timestamp_ms)
        file_path = self._policy.content_path_template.format(
            section=fields.section, page_id=fields.page_id
        )
        masked = mask_email(email)
        base = self._gateway.default_branch

        try:
            head_sha = await self._gateway.get_default_branch_head()
            await self._gateway.create_branch(branch_name, head_sha)
            stage = ContributionStage.BRANCH_CREATED

            revision = await self._gateway.get_file_revision(file_path, base)
            await self._gateway.commit_file(
                branch_name,
                file_path,
                fields.content,
                build_commit_message(fields, masked, email_hash, submitted_at),
                expected_revision=revision,
            )
            stage = ContributionStage.CONTENT_COMMITTED

            pull_request = await self._gateway.open_pull_request(
                f"[Anonymous] Update {fields.title}",
                build_pull_request_body(fields, masked, submitted_at, captcha_score),
                branch_name,
                base,
            )
            stage = ContributionStage.PULL_REQUEST_OPENED

            await self._gateway.add_labels(
                pull_request.number,
                build_labels(
                    fields.section,
                    fields.display_name,
                    email_hash,
                    linkable=request.consent_to_link_email,
                ),
            )
            stage = ContributionStage.LABELS_ATTACHED
        except Exception as exc:
            logger.error(
                "Hosting write failed after stage %s on branch %s: %s: %s",
                stage.value,
                branch_name,
                type(exc).__name__,
                exc,
            )
            raise HostingError(
                f"Hosting write failed after {stage.value}", last_stage=stage
            ) from exc

        self._address_limiter.record(address_hash, self._policy.window_seconds)
        self._email_limiter.record(email_hash, self._policy.window_seconds)
        logger.info(
            "Anonymous PR #%s opened on %s for %s (ref %s)",
            pull_request.number,
            branch_name,
            masked,
            short_hash(email_hash),
        )
        return ContributionResult(
            pr_number=pull_request.number,
            pr_url=pull_request.url,
            branch_name=branch_name,
        )
