# src/wiki_contrib/services/__init__.py
"""Business logic services for the wiki contribution pipeline."""

from .captcha import CaptchaValidator
from .contribution import ContributionOrchestrator
from .crypto import SecretCipher
from .hosting import GitHubGateway, HostingGateway
from .moderation import ContentModerator
from .otp import OneTimeCodeStore
from .rate_limit import RateLimiter
from .tokens import VerificationTokenService
from .verification import EmailVerificationService

__all__ = [
    "CaptchaValidator",
    "ContentModerator",
    "ContributionOrchestrator",
    "EmailVerificationService",
    "GitHubGateway",
    "HostingGateway",
    "OneTimeCodeStore",
    "RateLimiter",
    "SecretCipher",
    "VerificationTokenService",
]
