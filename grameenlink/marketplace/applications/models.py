"""
Job and job application data models.

Statuses are stored as plain string values so records round-trip through
JSON and database rows unchanged; the enums exist for callers and for
validation.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional

from grameenlink.types import format_datetime, parse_datetime, utc_now


class ActorRole(str, Enum):
    """Who is performing an operation."""

    WORKER = "worker"
    EMPLOYER = "employer"


class JobStatus(str, Enum):
    """Job lifecycle status."""

    ACTIVE = "active"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CLOSED = "closed"


class ApplicationStatus(str, Enum):
    """Application lifecycle status."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """Payment status of an application. Amounts are recorded, not settled."""

    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"


# from_status -> {to_status: roles allowed to initiate}
APPLICATION_TRANSITIONS: Dict[str, Dict[str, frozenset]] = {
    ApplicationStatus.PENDING.value: {
        ApplicationStatus.ACCEPTED.value: frozenset({ActorRole.EMPLOYER.value}),
        ApplicationStatus.REJECTED.value: frozenset({ActorRole.EMPLOYER.value}),
        ApplicationStatus.CANCELLED.value: frozenset({ActorRole.WORKER.value}),
    },
    ApplicationStatus.ACCEPTED.value: {
        ApplicationStatus.IN_PROGRESS.value: frozenset({ActorRole.EMPLOYER.value}),
        ApplicationStatus.REJECTED.value: frozenset({ActorRole.EMPLOYER.value}),
    },
    ApplicationStatus.IN_PROGRESS.value: {
        ApplicationStatus.COMPLETED.value: frozenset(
            {ActorRole.EMPLOYER.value, ActorRole.WORKER.value}
        ),
    },
    ApplicationStatus.COMPLETED.value: {},
    ApplicationStatus.REJECTED.value: {},
    ApplicationStatus.CANCELLED.value: {},
}

VALID_JOB_TRANSITIONS: Dict[str, set] = {
    JobStatus.ACTIVE.value: {JobStatus.IN_PROGRESS.value, JobStatus.CLOSED.value},
    JobStatus.IN_PROGRESS.value: {
        JobStatus.COMPLETED.value,
        JobStatus.ACTIVE.value,
        JobStatus.CLOSED.value,
    },
    JobStatus.COMPLETED.value: set(),
    JobStatus.CLOSED.value: set(),
}

TERMINAL_APPLICATION_STATUSES = frozenset(
    {
        ApplicationStatus.COMPLETED.value,
        ApplicationStatus.REJECTED.value,
        ApplicationStatus.CANCELLED.value,
    }
)

# Statuses that do not block a new application for the same (job, worker)
INACTIVE_APPLICATION_STATUSES = frozenset(
    {ApplicationStatus.REJECTED.value, ApplicationStatus.CANCELLED.value}
)

FINAL_SELECTION_STATUSES = frozenset(
    {
        ApplicationStatus.ACCEPTED.value,
        ApplicationStatus.IN_PROGRESS.value,
        ApplicationStatus.COMPLETED.value,
    }
)

MAX_TITLE_LENGTH = 200


def _enum_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _validate_choice(value: str, enum_cls, label: str) -> None:
    valid = {e.value for e in enum_cls}
    if value not in valid:
        raise ValueError(f"Invalid {label}: {value!r}. Must be one of {sorted(valid)}")


def to_money(value: Any) -> Optional[Decimal]:
    """Coerce an amount to a finite ``Decimal``. Floats go through ``str``."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid amount: {value!r}")
    if not isinstance(value, Decimal):
        try:
            value = Decimal(str(value))
        except InvalidOperation as e:
            raise ValueError(f"Invalid amount: {value!r}") from e
    if not value.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return value


def _money_str(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


def new_id() -> str:
    """Generate an opaque record ID."""
    return str(uuid.uuid4())


@dataclass(frozen=True)
class Actor:
    """The caller of an engine operation. Identity is asserted, not verified."""

    id: str
    role: str

    def __post_init__(self):
        object.__setattr__(self, "role", _enum_value(self.role))
        _validate_choice(self.role, ActorRole, "actor role")
        if not self.id:
            raise ValueError("Actor id is required")

    @property
    def is_worker(self) -> bool:
        return self.role == ActorRole.WORKER.value

    @property
    def is_employer(self) -> bool:
        return self.role == ActorRole.EMPLOYER.value


@dataclass
class Job:
    """A job posted by an employer."""

    id: str
    employer_id: str
    title: str = ""
    workers_needed: int = 1
    status: str = JobStatus.ACTIVE.value
    category: Optional[str] = None
    salary: Optional[Decimal] = None
    company_name: Optional[str] = None
    location: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    # Written only through the store's claim/release of the final selection
    final_application_id: Optional[str] = None

    def __post_init__(self):
        self.status = _enum_value(self.status)
        self.salary = to_money(self.salary)
        _validate_choice(self.status, JobStatus, "status")
        if not self.employer_id:
            raise ValueError("Job requires an employer")
        if isinstance(self.workers_needed, bool) or not isinstance(self.workers_needed, int):
            raise ValueError("workers_needed must be an integer")
        if self.workers_needed < 1:
            raise ValueError("workers_needed must be at least 1")
        if len(self.title) > MAX_TITLE_LENGTH:
            raise ValueError(f"Title too long (max {MAX_TITLE_LENGTH} characters)")
        if self.salary is not None and self.salary < 0:
            raise ValueError("Salary cannot be negative")

    def can_transition_to(self, new_status) -> bool:
        """Check whether the job may move to ``new_status``."""
        return _enum_value(new_status) in VALID_JOB_TRANSITIONS.get(self.status, set())

    @property
    def is_active(self) -> bool:
        """Whether the job is accepting applications."""
        return self.status == JobStatus.ACTIVE.value

    @property
    def is_terminal(self) -> bool:
        return not VALID_JOB_TRANSITIONS.get(self.status)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "employer_id": self.employer_id,
            "title": self.title,
            "workers_needed": self.workers_needed,
            "status": self.status,
            "category": self.category,
            "salary": _money_str(self.salary),
            "company_name": self.company_name,
            "location": dict(self.location),
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
            "completed_at": format_datetime(self.completed_at),
            "final_application_id": self.final_application_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Job":
        return cls(
            id=data["id"],
            employer_id=data["employer_id"],
            title=data.get("title") or "",
            workers_needed=int(data.get("workers_needed", 1)),
            status=data.get("status", JobStatus.ACTIVE.value),
            category=data.get("category"),
            salary=to_money(data.get("salary")),
            company_name=data.get("company_name"),
            location=dict(data.get("location") or {}),
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
            completed_at=parse_datetime(data.get("completed_at")),
            final_application_id=data.get("final_application_id"),
        )


@dataclass
class StatusChange:
    """One entry in an application's status history."""

    status: str
    changed_at: datetime
    note: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "changed_at": self.changed_at.isoformat(),
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StatusChange":
        return cls(
            status=data["status"],
            changed_at=parse_datetime(data["changed_at"]),
            note=data.get("note"),
        )


@dataclass
class JobApplication:
    """A worker's application to perform a job."""

    id: str
    job_id: str
    worker_id: str
    employer_id: str
    status: str = ApplicationStatus.PENDING.value
    applied_at: Optional[datetime] = None
    is_final_selection: bool = False
    payment_status: str = PaymentStatus.PENDING.value
    payment_amount: Optional[Decimal] = None
    payment_date: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    notes: Optional[str] = None
    status_history: List[StatusChange] = field(default_factory=list)

    def __post_init__(self):
        self.status = _enum_value(self.status)
        self.payment_status = _enum_value(self.payment_status)
        self.payment_amount = to_money(self.payment_amount)
        _validate_choice(self.status, ApplicationStatus, "status")
        _validate_choice(self.payment_status, PaymentStatus, "payment status")
        if not self.job_id or not self.worker_id or not self.employer_id:
            raise ValueError("Application requires job, worker and employer references")
        if self.is_final_selection and self.status not in FINAL_SELECTION_STATUSES:
            raise ValueError(
                f"Final selection is not allowed for an application in status {self.status!r}"
            )
        if (
            self.payment_status == PaymentStatus.PAID.value
            and self.status != ApplicationStatus.COMPLETED.value
        ):
            raise ValueError("Only completed applications can be paid")
        if self.payment_amount is not None and self.payment_amount < 0:
            raise ValueError("Payment amount cannot be negative")

    def allowed_initiators(self, new_status) -> frozenset:
        """Roles that may move this application to ``new_status`` (empty if illegal)."""
        return APPLICATION_TRANSITIONS.get(self.status, {}).get(
            _enum_value(new_status), frozenset()
        )

    def can_transition_to(self, new_status) -> bool:
        return bool(self.allowed_initiators(new_status))

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_APPLICATION_STATUSES

    @property
    def blocks_reapplication(self) -> bool:
        """Whether this application prevents the worker applying to the job again."""
        return self.status not in INACTIVE_APPLICATION_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "worker_id": self.worker_id,
            "employer_id": self.employer_id,
            "status": self.status,
            "applied_at": format_datetime(self.applied_at),
            "is_final_selection": self.is_final_selection,
            "payment_status": self.payment_status,
            "payment_amount": _money_str(self.payment_amount),
            "payment_date": format_datetime(self.payment_date),
            "accepted_at": format_datetime(self.accepted_at),
            "started_at": format_datetime(self.started_at),
            "completed_at": format_datetime(self.completed_at),
            "updated_at": format_datetime(self.updated_at),
            "notes": self.notes,
            "status_history": [entry.to_dict() for entry in self.status_history],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobApplication":
        return cls(
            id=data["id"],
            job_id=data["job_id"],
            worker_id=data["worker_id"],
            employer_id=data["employer_id"],
            status=data.get("status", ApplicationStatus.PENDING.value),
            applied_at=parse_datetime(data.get("applied_at")),
            is_final_selection=bool(data.get("is_final_selection", False)),
            payment_status=data.get("payment_status") or PaymentStatus.PENDING.value,
            payment_amount=to_money(data.get("payment_amount")),
            payment_date=parse_datetime(data.get("payment_date")),
            accepted_at=parse_datetime(data.get("accepted_at")),
            started_at=parse_datetime(data.get("started_at")),
            completed_at=parse_datetime(data.get("completed_at")),
            updated_at=parse_datetime(data.get("updated_at")),
            notes=data.get("notes"),
            status_history=[
                StatusChange.from_dict(entry) for entry in data.get("status_history") or []
            ],
        )


@dataclass
class StateTransition:
    """Audit log entry for a job or application state change."""

    id: str
    job_id: str
    to_status: str
    from_status: Optional[str] = None
    application_id: Optional[str] = None
    actor_id: Optional[str] = None
    actor_role: Optional[str] = None
    note: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)

    @property
    def is_job_transition(self) -> bool:
        return self.application_id is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "application_id": self.application_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "actor_id": self.actor_id,
            "actor_role": self.actor_role,
            "note": self.note,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StateTransition":
        return cls(
            id=data["id"],
            job_id=data["job_id"],
            application_id=data.get("application_id"),
            from_status=data.get("from_status"),
            to_status=data["to_status"],
            actor_id=data.get("actor_id"),
            actor_role=data.get("actor_role"),
            note=data.get("note"),
            created_at=parse_datetime(data.get("created_at")) or utc_now(),
        )
