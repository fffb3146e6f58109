"""Job application routes for GrameenLink.

Every mutation goes through ``ApplicationService``; errors it raises are
mapped to HTTP responses by the handler in ``app.main``. List responses
carry a ``version`` digest (also sent as ``ETag``) that dashboards compare
between polls to skip redundant updates.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from fastapi import APIRouter, Query, Request, Response, status
from pydantic import BaseModel, Field

from grameenlink.marketplace.applications import (
    Actor,
    ApplicationService,
    ForbiddenError,
    JobApplication,
)
from grameenlink.types import content_digest

from ..auth import CurrentActor
from ..database import Service
from ..logging_config import get_logger, log_request
from ..rate_limit import limiter

logger = get_logger("grameenlink.routes.applications")
router = APIRouter(prefix="/applications", tags=["applications"])


# =============================================================================
# Request/Response Models
# =============================================================================

ApplicationStatus = Literal["pending", "accepted", "rejected", "in-progress", "completed", "cancelled"]
PaymentStatus = Literal["pending", "processing", "paid"]


class ApplicationCreate(BaseModel):
    """Request to apply to a job."""

    job_id: str = Field(..., min_length=1)
    notes: str | None = Field(None, max_length=2000)


class StatusUpdate(BaseModel):
    """Request to move an application to a new status."""

    status: ApplicationStatus


class PaymentUpdate(BaseModel):
    """Request to record payment for completed work."""

    status: Literal["processing", "paid"] = "paid"
    amount: Decimal | None = Field(None, ge=0)


class StatusChangeResponse(BaseModel):
    status: str
    changed_at: datetime
    note: str | None = None


class ApplicationResponse(BaseModel):
    """Job application response."""

    id: str
    job_id: str
    worker_id: str
    employer_id: str
    status: ApplicationStatus
    applied_at: datetime | None = None
    is_final_selection: bool = False
    payment_status: PaymentStatus = "pending"
    payment_amount: Decimal | None = None
    payment_date: datetime | None = None
    accepted_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    updated_at: datetime | None = None
    notes: str | None = None
    status_history: list[StatusChangeResponse] = Field(default_factory=list)


class ApplicationListResponse(BaseModel):
    """Applications matching a query, newest first."""

    applications: list[ApplicationResponse]
    total: int
    version: str


def to_application_response(application: JobApplication) -> ApplicationResponse:
    return ApplicationResponse(**application.to_dict())


def _listing(response: Response, applications: list[JobApplication]) -> ApplicationListResponse:
    version = content_digest([a.to_dict() for a in applications])
    response.headers["ETag"] = f'"{version}"'
    return ApplicationListResponse(
        applications=[to_application_response(a) for a in applications],
        total=len(applications),
        version=version,
    )


def _check_can_view(application: JobApplication, actor: Actor) -> None:
    if actor.id not in (application.worker_id, application.employer_id):
        raise ForbiddenError(f"{actor.role} {actor.id} cannot view application {application.id}")


def _scope_query(
    actor: Actor,
    service: ApplicationService,
    worker: str | None,
    employer: str | None,
    job: str | None,
) -> tuple[str | None, str | None]:
    """Restrict a listing to what the actor may see. Returns (worker_id, employer_id)."""
    if actor.is_worker:
        if worker not in (None, actor.id) or employer is not None:
            raise ForbiddenError("Workers can only list their own applications")
        return actor.id, None

    if worker is not None and employer is None and job is None:
        # Employer looking at one worker's applications to their jobs
        return worker, actor.id
    if employer not in (None, actor.id):
        raise ForbiddenError("Employers can only list applications to their own jobs")
    if job is not None and service.get_job(job).employer_id != actor.id:
        raise ForbiddenError("Employers can only list applications to their own jobs")
    return worker, actor.id


# =============================================================================
# Endpoints
# =============================================================================


@router.get("", response_model=ApplicationListResponse)
@limiter.limit("120/minute")
async def list_applications(
    request: Request,
    response: Response,
    actor: CurrentActor,
    service: Service,
    worker: str | None = Query(None, description="Filter by worker ID"),
    employer: str | None = Query(None, description="Filter by employer ID"),
    job: str | None = Query(None, description="Filter by job ID"),
    status_filter: ApplicationStatus | None = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=100),
):
    """List applications visible to the caller.

    Workers see their own applications. Employers see applications to
    their jobs, optionally narrowed to one job or one worker.
    """
    worker_id, employer_id = _scope_query(actor, service, worker, employer, job)
    applications = service.list_applications(
        job_id=job,
        worker_id=worker_id,
        employer_id=employer_id,
        status=status_filter,
        limit=limit,
    )
    return _listing(response, applications)


@router.get("/current", response_model=ApplicationListResponse)
@limiter.limit("120/minute")
async def current_applications(
    request: Request, response: Response, actor: CurrentActor, service: Service
):
    """The calling worker's pending, accepted and in-progress applications."""
    if not actor.is_worker:
        raise ForbiddenError("Only workers have current applications")
    return _listing(response, service.get_current_applications(actor.id))


@router.get("/past", response_model=ApplicationListResponse)
@limiter.limit("120/minute")
async def past_applications(
    request: Request, response: Response, actor: CurrentActor, service: Service
):
    """The calling worker's completed jobs, most recently completed first."""
    if not actor.is_worker:
        raise ForbiddenError("Only workers have past applications")
    return _listing(response, service.get_past_applications(actor.id))


@router.post("", response_model=ApplicationResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def submit_application(
    request: Request,
    body: ApplicationCreate,
    actor: CurrentActor,
    service: Service,
):
    """Apply to a job. Only workers can apply."""
    if not actor.is_worker:
        raise ForbiddenError("Only workers can apply to jobs")
    application = service.submit(body.job_id, actor.id, notes=body.notes)
    log_request(logger, "POST /applications", actor.id, application=application.id, job=body.job_id)
    return to_application_response(application)


@router.get("/{application_id}", response_model=ApplicationResponse)
@limiter.limit("120/minute")
async def get_application(
    request: Request, application_id: str, actor: CurrentActor, service: Service
):
    """Get one application. Visible to its worker and its employer."""
    application = service.get_application(application_id)
    _check_can_view(application, actor)
    return to_application_response(application)


@router.patch("/{application_id}/status", response_model=ApplicationResponse)
@limiter.limit("30/minute")
async def update_application_status(
    request: Request,
    application_id: str,
    body: StatusUpdate,
    actor: CurrentActor,
    service: Service,
):
    """Move an application along its lifecycle (accept, reject, start, complete, cancel)."""
    application = service.set_status(application_id, body.status, actor)
    log_request(
        logger, "PATCH /applications/status", actor.id, application=application_id, status=body.status
    )
    return to_application_response(application)


@router.delete("/{application_id}", response_model=ApplicationResponse)
@limiter.limit("30/minute")
async def cancel_application(
    request: Request, application_id: str, actor: CurrentActor, service: Service
):
    """Withdraw a pending application. The record is kept as cancelled."""
    application = service.cancel(application_id, actor)
    log_request(logger, "DELETE /applications", actor.id, application=application_id)
    return to_application_response(application)


@router.patch("/{application_id}/final-selection", response_model=ApplicationResponse)
@limiter.limit("30/minute")
async def select_final(
    request: Request, application_id: str, actor: CurrentActor, service: Service
):
    """Confirm an accepted applicant as the worker for the job."""
    application = service.select_final(application_id, actor)
    log_request(logger, "PATCH /applications/final-selection", actor.id, application=application_id)
    return to_application_response(application)


@router.patch("/{application_id}/complete", response_model=ApplicationResponse)
@limiter.limit("30/minute")
async def complete_application(
    request: Request, application_id: str, actor: CurrentActor, service: Service
):
    """Mark in-progress work as completed."""
    application = service.mark_complete(application_id, actor)
    log_request(logger, "PATCH /applications/complete", actor.id, application=application_id)
    return to_application_response(application)


@router.patch("/{application_id}/payment", response_model=ApplicationResponse)
@limiter.limit("20/minute")
async def record_payment(
    request: Request,
    application_id: str,
    body: PaymentUpdate,
    actor: CurrentActor,
    service: Service,
):
    """Record payment for completed work. Amounts are stored, not settled."""
    application = service.record_payment(
        application_id, actor, amount=body.amount, status=body.status
    )
    log_request(
        logger,
        "PATCH /applications/payment",
        actor.id,
        application=application_id,
        payment=body.status,
        amount=body.amount,
    )
    return to_application_response(application)
