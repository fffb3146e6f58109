"""Shakti Score trust metric for worker profiles."""

from grameenlink.marketplace.scoring.calculator import (
    CATEGORY_CAPS,
    MAX_SCORE,
    compute_score,
    profile_completion,
    score_breakdown,
)
from grameenlink.marketplace.scoring.models import VerificationStatus, WorkerProfile

__all__ = [
    "WorkerProfile",
    "VerificationStatus",
    "compute_score",
    "score_breakdown",
    "profile_completion",
    "CATEGORY_CAPS",
    "MAX_SCORE",
]
