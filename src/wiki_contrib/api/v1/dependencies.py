"""Shared API dependencies: service wiring, client address, error mapping."""

from __future__ import annotations

import logging
import math
from typing import Annotated

from fastapi import Depends, HTTPException, Request

from wiki_contrib.core.errors import (
    ConfigurationError,
    ContributionError,
    HostingError,
    RateLimitError,
)
from wiki_contrib.core.settings import settings
from wiki_contrib.services.captcha import CaptchaValidator
from wiki_contrib.services.contribution import ContributionOrchestrator
from wiki_contrib.services.crypto import SecretCipher
from wiki_contrib.services.email import SendGridMailer
from wiki_contrib.services.hosting import GitHubGateway, HostingGateway
from wiki_contrib.services.moderation import ContentModerator
from wiki_contrib.services.otp import OneTimeCodeStore
from wiki_contrib.services.store import KeyValueStore, get_store
from wiki_contrib.services.tokens import VerificationTokenService
from wiki_contrib.services.verification import EmailVerificationService

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"


def http_error(err: ContributionError) -> HTTPException:
    """Translate a pipeline error into the HTTP response the caller sees."""
    headers: dict[str, str] | None = None
    if isinstance(err, RateLimitError):
        headers = {"Retry-After": str(max(1, math.ceil(err.retry_after)))}
    if isinstance(err, HostingError):
        logger.error("Contribution failed after stage %s: %s", err.last_stage.value, err.message)
    elif isinstance(err, ConfigurationError):
        logger.error("Service misconfigured: %s", err.message)
    return HTTPException(status_code=err.status_code, detail=err.public_message, headers=headers)


def get_client_ip(request: Request) -> str:
    """Return the caller's network address as seen through trusted proxies.

    Each trusted proxy appends the address it received the request from, so
    the entry ``trusted_proxy_hops`` from the right of ``X-Forwarded-For`` is
    the first one a client cannot forge.
    """
    hops = settings.trusted_proxy_hops
    if hops > 0:
        forwarded = [
            part.strip()
            for part in request.headers.get("x-forwarded-for", "").split(",")
            if part.strip()
        ]
        if forwarded:
            return forwarded[-min(hops, len(forwarded))]
        for header in ("x-real-ip", "client-ip"):
            value = request.headers.get(header)
            if value and value.strip():
                return value.strip()
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT


class _GatewaySingleton:
    """Process-wide hosting gateway so its HTTP client is reused."""

    _instance: GitHubGateway | None = None

    @classmethod
    def get_instance(cls) -> GitHubGateway:
        if cls._instance is None:
            cls._instance = GitHubGateway(settings.github_token)
        return cls._instance

    @classmethod
    async def close(cls) -> None:
        if cls._instance is not None:
            await cls._instance.close()
            cls._instance = None


async def close_hosting_gateway() -> None:
    await _GatewaySingleton.close()


def get_kv_store() -> KeyValueStore:
    try:
        return get_store()
    except ConfigurationError as err:
        raise http_error(err) from err


def get_token_service() -> VerificationTokenService:
    try:
        return VerificationTokenService(settings.token_signing_secret)
    except ConfigurationError as err:
        raise http_error(err) from err


def get_hosting_gateway() -> HostingGateway:
    try:
        return _GatewaySingleton.get_instance()
    except ConfigurationError as err:
        raise http_error(err) from err


StoreDep = Annotated[KeyValueStore, Depends(get_kv_store)]
TokenServiceDep = Annotated[VerificationTokenService, Depends(get_token_service)]
GatewayDep = Annotated[HostingGateway, Depends(get_hosting_gateway)]


def get_verification_service(
    store: StoreDep, tokens: TokenServiceDep
) -> EmailVerificationService:
    try:
        codes = OneTimeCodeStore(store, SecretCipher(settings.code_encryption_secret))
        mailer = SendGridMailer(settings.sendgrid_api_key, settings.sendgrid_from_email)
    except ConfigurationError as err:
        raise http_error(err) from err
    return EmailVerificationService(store, codes, tokens, mailer)


def get_orchestrator(
    store: StoreDep, tokens: TokenServiceDep, gateway: GatewayDep
) -> ContributionOrchestrator:
    return ContributionOrchestrator(
        tokens=tokens,
        captcha=CaptchaValidator(settings.recaptcha_secret_key),
        moderator=ContentModerator(settings.openai_api_key),
        gateway=gateway,
        store=store,
    )

