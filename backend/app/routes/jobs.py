"""Job routes for GrameenLink.

Employers post jobs here; applications to them live under /applications.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from fastapi import APIRouter, Query, Request, status
from pydantic import BaseModel, Field, field_validator

from grameenlink.marketplace.applications import ForbiddenError, Job, StateTransition

from ..auth import CurrentActor
from ..database import Service
from ..logging_config import get_logger, log_request
from ..rate_limit import limiter

logger = get_logger("grameenlink.routes.jobs")
router = APIRouter(prefix="/jobs", tags=["jobs"])


# =============================================================================
# Request/Response Models
# =============================================================================

JobStatus = Literal["active", "in-progress", "completed", "closed"]


class JobCreate(BaseModel):
    """Request to post a job."""

    title: str = Field(..., min_length=1, max_length=200)
    workers_needed: int = Field(1, ge=1)
    category: str | None = None
    salary: Decimal | None = Field(None, ge=0)
    company_name: str | None = None
    location: dict[str, Any] = Field(default_factory=dict)

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Title cannot be blank")
        return v


class JobResponse(BaseModel):
    """Job details response."""

    id: str
    employer_id: str
    title: str
    workers_needed: int
    status: JobStatus
    category: str | None = None
    salary: Decimal | None = None
    company_name: str | None = None
    location: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None
    final_application_id: str | None = None


class JobListResponse(BaseModel):
    """Jobs matching a query, newest first."""

    jobs: list[JobResponse]
    total: int


class TransitionResponse(BaseModel):
    """One audit log entry."""

    id: str
    job_id: str
    application_id: str | None = None
    from_status: str | None = None
    to_status: str
    actor_id: str | None = None
    actor_role: str | None = None
    note: str | None = None
    created_at: datetime


def to_job_response(job: Job) -> JobResponse:
    return JobResponse(**job.to_dict())


def to_transition_response(transition: StateTransition) -> TransitionResponse:
    return TransitionResponse(**transition.to_dict())


# =============================================================================
# Endpoints
# =============================================================================


@router.post("", response_model=JobResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
async def create_job(
    request: Request,
    body: JobCreate,
    actor: CurrentActor,
    service: Service,
):
    """Post a new job. Only employers can post."""
    if not actor.is_employer:
        raise ForbiddenError("Only employers can post jobs")

    job = service.create_job(
        employer_id=actor.id,
        title=body.title,
        workers_needed=body.workers_needed,
        category=body.category,
        salary=body.salary,
        company_name=body.company_name,
        location=body.location,
    )
    log_request(logger, "POST /jobs", actor.id, job=job.id)
    return to_job_response(job)


@router.get("", response_model=JobListResponse)
@limiter.limit("60/minute")
async def list_jobs(
    request: Request,
    service: Service,
    employer: str | None = Query(None, description="Filter by employer ID"),
    status_filter: JobStatus | None = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=100),
):
    """List jobs, newest first. Workers browse active jobs; employers their own postings."""
    jobs = service.list_jobs(employer_id=employer, status=status_filter, limit=limit)
    logger.debug(f"GET /jobs | employer={employer} | status={status_filter} | count={len(jobs)}")
    return JobListResponse(jobs=[to_job_response(j) for j in jobs], total=len(jobs))


@router.get("/{job_id}", response_model=JobResponse)
@limiter.limit("120/minute")
async def get_job(request: Request, job_id: str, service: Service):
    """Get job details."""
    return to_job_response(service.get_job(job_id))


@router.post("/{job_id}/close", response_model=JobResponse)
@limiter.limit("20/minute")
async def close_job(request: Request, job_id: str, actor: CurrentActor, service: Service):
    """Stop a job from taking further applications."""
    job = service.close_job(job_id, actor)
    log_request(logger, "POST /jobs/close", actor.id, job=job_id)
    return to_job_response(job)


@router.get("/{job_id}/transitions", response_model=list[TransitionResponse])
@limiter.limit("60/minute")
async def get_job_transitions(
    request: Request, job_id: str, actor: CurrentActor, service: Service
):
    """Audit log for a job and its applications. Visible to the job's employer."""
    job = service.get_job(job_id)
    if actor.id != job.employer_id:
        raise ForbiddenError("Only the job's employer can view its history")
    return [to_transition_response(t) for t in service.get_transitions(job_id)]
