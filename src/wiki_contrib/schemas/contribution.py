"""Schemas for anonymous contribution submission."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from wiki_contrib.services.contribution import ContributionRequest


class ContributionIn(BaseModel):
    """Anonymous edit payload sent by the wiki editor.

    Field names follow the editor's camelCase JSON; snake_case names are
    accepted as well.
    """

    model_config = ConfigDict(populate_by_name=True)

    section: str
    page_id: str = Field(alias="pageId")
    page_title: str = Field(alias="pageTitle")
    content: str
    email: str
    display_name: str = Field(alias="displayName")
    reason: str | None = None
    verification_token: str = Field(alias="verificationToken")
    captcha_token: str = Field(alias="captchaToken")
    consent_to_link_email: bool = Field(default=False, alias="consentToLinkEmail")

    def to_request(self) -> ContributionRequest:
        return ContributionRequest(
            section=self.section,
            page_id=self.page_id,
            page_title=self.page_title,
            content=self.content,
            email=self.email,
            display_name=self.display_name,
            reason=self.reason or "",
            verification_token=self.verification_token,
            captcha_token=self.captcha_token,
            consent_to_link_email=self.consent_to_link_email,
        )


class ContributionOut(BaseModel):
    """Pull request created for a contribution."""

    model_config = ConfigDict(populate_by_name=True)

    pr_number: int = Field(alias="prNumber")
    pr_url: str = Field(alias="prUrl")
    branch_name: str = Field(alias="branchName")


class RateLimitStatusOut(BaseModel):
    """Remaining contribution capacity for the caller's network address."""

    model_config = ConfigDict(populate_by_name=True)

    allowed: bool
    remaining: int
    retry_after: int = Field(default=0, alias="retryAfter")
