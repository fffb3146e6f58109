"""Worker routes for GrameenLink.

Scores are computed from the profile snapshot in the request and never
stored; the caller (worker identity management) owns the profile.
"""

from typing import Any

from fastapi import APIRouter, Body, HTTPException, Request, status
from pydantic import BaseModel

from grameenlink.marketplace.normalize import normalize_worker_profile
from grameenlink.marketplace.scoring import (
    MAX_SCORE,
    compute_score,
    profile_completion,
    score_breakdown,
)

from ..logging_config import get_logger
from ..rate_limit import limiter

logger = get_logger("grameenlink.routes.workers")
router = APIRouter(prefix="/workers", tags=["workers"])


class ScoreResponse(BaseModel):
    """Shakti Score for a worker profile."""

    score: int
    max_score: int = MAX_SCORE
    breakdown: dict[str, int]
    profile_completion: int


@router.post("/score", response_model=ScoreResponse)
@limiter.limit("60/minute")
async def score_worker(request: Request, profile: dict[str, Any] = Body(...)):
    """Compute the Shakti Score for a posted profile.

    Accepts the registration form shape (camelCase, nested ``location`` and
    ``rating``) as well as snake_case fields.
    """
    try:
        snapshot = normalize_worker_profile(profile)
    except (TypeError, ValueError, OverflowError) as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid worker profile: {e}",
        ) from e

    score = compute_score(snapshot)
    logger.debug(f"POST /workers/score | score={score}")
    return ScoreResponse(
        score=score,
        breakdown=score_breakdown(snapshot),
        profile_completion=profile_completion(snapshot),
    )
