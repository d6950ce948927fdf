"""Pipeline stages of an anonymous contribution."""

from __future__ import annotations

from enum import Enum


class ContributionStage(Enum):
    """States a submission moves through, strictly in declaration order.

    A failure reports the last stage that completed, never the one that
    was being attempted.
    """

    RECEIVED = "Received"
    EMAIL_VERIFIED = "EmailVerified"
    CAPTCHA_PASSED = "CaptchaPassed"
    RATE_LIMIT_OK = "RateLimitOk"
    SANITIZED = "Sanitized"
    MODERATION_PASSED = "ModerationPassed"
    BRANCH_CREATED = "BranchCreated"
    CONTENT_COMMITTED = "ContentCommitted"
    PULL_REQUEST_OPENED = "PullRequestOpened"
    LABELS_ATTACHED = "LabelsAttached"
    COMPLETED = "Completed"
