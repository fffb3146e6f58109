"""Job application lifecycle for the GrameenLink marketplace.

Models:
- Job: A job posted by an employer
- JobApplication: A worker's application to a job
- JobStatus / ApplicationStatus / PaymentStatus: Lifecycle statuses
- StateTransition: Audit log entry for state changes
- Actor: Who is calling (worker or employer)

Service:
- ApplicationService: submit, set_status, cancel, select_final,
  mark_complete, record_payment and the read models
"""

from grameenlink.marketplace.applications.models import (
    APPLICATION_TRANSITIONS,
    VALID_JOB_TRANSITIONS,
    Actor,
    ActorRole,
    ApplicationStatus,
    Job,
    JobApplication,
    JobStatus,
    PaymentStatus,
    StateTransition,
    StatusChange,
    to_money,
)
from grameenlink.marketplace.applications.service import (
    AlreadySelectedError,
    ApplicationNotFoundError,
    ApplicationService,
    ApplicationServiceError,
    DuplicateApplicationError,
    ForbiddenError,
    IllegalTransitionError,
    JobNotFoundError,
    NotFoundError,
)
from grameenlink.marketplace.applications.storage import (
    ApplicationStorage,
    InMemoryApplicationStorage,
)

__all__ = [
    # Models
    "Actor",
    "ActorRole",
    "Job",
    "JobApplication",
    "JobStatus",
    "ApplicationStatus",
    "PaymentStatus",
    "StateTransition",
    "StatusChange",
    "APPLICATION_TRANSITIONS",
    "VALID_JOB_TRANSITIONS",
    "to_money",
    # Storage
    "ApplicationStorage",
    "InMemoryApplicationStorage",
    # Service
    "ApplicationService",
    "ApplicationServiceError",
    "NotFoundError",
    "ApplicationNotFoundError",
    "JobNotFoundError",
    "DuplicateApplicationError",
    "IllegalTransitionError",
    "ForbiddenError",
    "AlreadySelectedError",
]
