"""Anonymous contribution endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, status

from wiki_contrib.api.v1.dependencies import (
    get_client_ip,
    get_orchestrator,
    http_error,
)
from wiki_contrib.core.errors import ContributionError
from wiki_contrib.schemas.contribution import (
    ContributionIn,
    ContributionOut,
    RateLimitStatusOut,
)
from wiki_contrib.services.contribution import ContributionOrchestrator

router = APIRouter(prefix="/contributions", tags=["contributions"])

OrchestratorDep = Annotated[ContributionOrchestrator, Depends(get_orchestrator)]
ClientIpDep = Annotated[str, Depends(get_client_ip)]


@router.post("", response_model=ContributionOut, status_code=status.HTTP_201_CREATED)
async def submit_contribution(
    payload: ContributionIn,
    client_ip: ClientIpDep,
    orchestrator: OrchestratorDep,
) -> ContributionOut:
    """Turn an anonymous edit into a pull request for review.

    Args:
        payload: The edit, the submitter's verified email and proof tokens
        client_ip: Caller network address, used for rate limiting
        orchestrator: Contribution pipeline

    Returns:
        Number, URL and branch of the opened pull request

    Raises:
        HTTPException: When any pipeline stage rejects the submission
    """
    try:
        result = await orchestrator.submit(payload.to_request(), client_ip)
    except ContributionError as err:
        raise http_error(err) from err
    return ContributionOut(
        pr_number=result.pr_number,
        pr_url=result.pr_url,
        branch_name=result.branch_name,
    )


@router.get("/rate-limit", response_model=RateLimitStatusOut)
async def get_rate_limit(
    client_ip: ClientIpDep, orchestrator: OrchestratorDep
) -> RateLimitStatusOut:
    """Report how many submissions the caller has left without using one."""
    decision = orchestrator.rate_limit_status(client_ip)
    return RateLimitStatusOut(
        allowed=decision.allowed,
        remaining=decision.remaining,
        retry_after=decision.retry_after_seconds,
    )
