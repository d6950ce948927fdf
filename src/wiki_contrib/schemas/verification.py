"""Schemas for the email verification endpoints."""
from __future__ import annotations

from pydantic import BaseModel, Field


class CodeRequest(BaseModel):
    """Ask for a verification code to be emailed."""

    email: str = Field(min_length=1, max_length=254)


class CodeRequestResponse(BaseModel):
    accepted: bool


class CodeConfirmation(BaseModel):
    """Exchange an emailed code for a verification token."""

    email: str = Field(min_length=1, max_length=254)
    code: str = Field(min_length=1, max_length=16)


class CodeConfirmationResponse(BaseModel):
    verified: bool
    token: str | None = None
