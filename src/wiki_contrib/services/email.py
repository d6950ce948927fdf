"""Outbound delivery of verification codes through SendGrid."""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from wiki_contrib.core.errors import ConfigurationError
from wiki_contrib.core.settings import settings

logger = logging.getLogger(__name__)

TEST_SUBJECT_PREFIX = "[TEST] "


class EmailDeliveryError(RuntimeError):
    """The email provider did not accept the message."""


class EmailSender(Protocol):
    """Anything that can deliver a verification code to an address."""

    async def send_verification_code(self, to: str, code: str) -> None: ...


@dataclass(frozen=True)
class VerificationEmail:
    """Rendered verification message."""

    subject: str
    text: str
    html: str


def render_verification_email(
    code: str,
    *,
    site_name: str,
    site_url: str,
    ttl_minutes: int,
    test_mode: bool = False,
) -> VerificationEmail:
    """Render the subject and both bodies of the verification email."""
    subject = f"Your {site_name} verification code"
    if test_mode:
        subject = TEST_SUBJECT_PREFIX + subject

    text = (
        f"{site_name.upper()}\n"
        "Email Verification\n\n"
        f"Thank you for contributing to the {site_name}!\n\n"
        f"Your verification code is: {code}\n\n"
        f"This code expires in {ttl_minutes} minutes. After verification you can "
        "make multiple edits for 24 hours without verifying again.\n\n"
        "If you didn't request this code, you can safely ignore this email.\n\n"
        f"{site_url}\n"
    )

    safe_name = html.escape(site_name)
    safe_url = html.escape(site_url, quote=True)
    body = (
        "<!DOCTYPE html>"
        '<html lang="en"><head><meta charset="UTF-8">'
        f"<title>Email Verification - {safe_name}</title></head>"
        '<body style="margin:0;padding:24px;background-color:#0f172a;'
        'font-family:Arial,sans-serif;color:#e2e8f0;">'
        f'<h1 style="color:#ffffff;">{safe_name}</h1>'
        f"<p>Thank you for contributing to the {safe_name}! To complete your "
        "anonymous edit, please use the verification code below:</p>"
        '<div style="font-size:42px;font-weight:bold;letter-spacing:12px;'
        f"font-family:'Courier New',monospace;\">{html.escape(code)}</div>"
        f"<p>Expires in {ttl_minutes} minutes. After verification you can make "
        "multiple edits for 24 hours without re-verifying.</p>"
        "<p>If you didn't request this code, you can safely ignore this email.</p>"
        f'<p><a href="{safe_url}" style="color:#3b82f6;">Visit {safe_name}</a></p>'
        "</body></html>"
    )
    return VerificationEmail(subject=subject, text=text, html=body)


class SendGridMailer:
    """Send verification emails through the SendGrid v3 ``mail/send`` API."""

    def __init__(
        self,
        api_key: str | None,
        from_email: str | None,
        *,
        api_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float | None = None,
        test_mode: bool | None = None,
    ) -> None:
        if not api_key or not from_email:
            raise ConfigurationError("SendGrid API key or sender address is not configured")
        self._api_key = api_key
        self._from_email = from_email
        self._api_url = api_url or settings.sendgrid_api_url
        self._http = http_client
        self._timeout = httpx.Timeout(
            timeout_seconds if timeout_seconds is not None else settings.http_timeout_seconds
        )
        self._test_mode = settings.is_development if test_mode is None else test_mode

    async def _post(self, payload: dict[str, object]) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self._api_key}"}
        if self._http is not None:
            return await self._http.post(
                self._api_url, json=payload, headers=headers, timeout=self._timeout
            )
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.post(self._api_url, json=payload, headers=headers)

    async def send_verification_code(self, to: str, code: str) -> None:
        """Deliver ``code`` to ``to``.

        Raises:
            EmailDeliveryError: The request failed or SendGrid rejected it.
        """
        message = render_verification_email(
            code,
            site_name=settings.site_name,
            site_url=settings.site_url,
            ttl_minutes=max(1, settings.verification_code_ttl_seconds // 60),
            test_mode=self._test_mode,
        )
        payload: dict[str, object] = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": {"email": self._from_email, "name": settings.site_name},
            "subject": message.subject,
            "content": [
                {"type": "text/plain", "value": message.text},
                {"type": "text/html", "value": message.html},
            ],
        }

        try:
            response = await self._post(payload)
        except httpx.HTTPError as exc:
            raise EmailDeliveryError(f"SendGrid request failed: {type(exc).__name__}") from exc

        if not response.is_success:
            raise EmailDeliveryError(f"SendGrid API error: {response.status_code}")
