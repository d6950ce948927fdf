"""Email verification endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Response, status

from wiki_contrib.api.v1.dependencies import get_verification_service, http_error
from wiki_contrib.core.errors import ContributionError
from wiki_contrib.schemas.verification import (
    CodeConfirmation,
    CodeConfirmationResponse,
    CodeRequest,
    CodeRequestResponse,
)
from wiki_contrib.services.verification import EmailVerificationService

router = APIRouter(prefix="/verification", tags=["verification"])

VerificationServiceDep = Annotated[
    EmailVerificationService, Depends(get_verification_service)
]


@router.post("/request", response_model=CodeRequestResponse)
async def request_code(
    payload: CodeRequest,
    response: Response,
    verification: VerificationServiceDep,
) -> CodeRequestResponse:
    """Email a one-time verification code.

    Responds 502 with ``accepted: false`` when the email could not be
    delivered; no usable code is left behind in that case.
    """
    try:
        accepted = await verification.request_code(payload.email)
    except ContributionError as err:
        raise http_error(err) from err

    if not accepted:
        response.status_code = status.HTTP_502_BAD_GATEWAY
    return CodeRequestResponse(accepted=accepted)


@router.post("/confirm", response_model=CodeConfirmationResponse)
async def confirm_code(
    payload: CodeConfirmation,
    verification: VerificationServiceDep,
) -> CodeConfirmationResponse:
    """Exchange an emailed code for a verification token."""
    try:
        token = verification.confirm_code(payload.email, payload.code)
    except ContributionError as err:
        raise http_error(err) from err
    return CodeConfirmationResponse(verified=token is not None, token=token)
