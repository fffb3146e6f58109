"""Normalization of loosely shaped records into the canonical models.

Records reach the marketplace from older clients and from the legacy API
with inconsistent field names: camelCase and snake_case, ``_id`` or ``id``,
references that are either a bare ID or an embedded document, and several
spellings of the same concept (``companyName``, ``company``,
``employer.company.name``). This module is the one place that knows those
aliases. Everything downstream works with ``Job``, ``JobApplication`` and
``WorkerProfile`` only.

Usage:
    from grameenlink.marketplace.normalize import normalize_application

    app = normalize_application(
        {"_id": "a1", "job": {"_id": "j1"}, "worker": "w1",
         "employer": "e1", "status": "pending"}
    )
"""

import math
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from grameenlink.marketplace.applications.models import (
    ApplicationStatus,
    Job,
    JobApplication,
    JobStatus,
    StatusChange,
    to_money,
)
from grameenlink.marketplace.scoring.models import WorkerProfile
from grameenlink.types import parse_datetime

_MISSING = object()

# Legacy status spellings -> canonical values
_JOB_STATUS_ALIASES = {
    "open": JobStatus.ACTIVE.value,
    "in_progress": JobStatus.IN_PROGRESS.value,
    "inprogress": JobStatus.IN_PROGRESS.value,
    "cancelled": JobStatus.CLOSED.value,
    "canceled": JobStatus.CLOSED.value,
}

_APPLICATION_STATUS_ALIASES = {
    "in_progress": ApplicationStatus.IN_PROGRESS.value,
    "inprogress": ApplicationStatus.IN_PROGRESS.value,
    "selected": ApplicationStatus.ACCEPTED.value,
    "withdrawn": ApplicationStatus.CANCELLED.value,
    "canceled": ApplicationStatus.CANCELLED.value,
}


def _lookup(raw: Mapping[str, Any], path: str) -> Any:
    current: Any = raw
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _first(raw: Mapping[str, Any], *paths: str, default: Any = None) -> Any:
    """Value of the first alias present and not None/blank."""
    for path in paths:
        value = _lookup(raw, path)
        if value is _MISSING or value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return default


def _ref(value: Any) -> Optional[str]:
    """Reference to another record: a bare ID or an embedded document."""
    if value is None:
        return None
    if isinstance(value, Mapping):
        inner = value.get("_id", value.get("id"))
        return str(inner) if inner is not None else None
    return str(value)


def _number(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"Expected a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError) as exc:
        raise ValueError(f"Expected a number, got {value!r}") from exc
    if not math.isfinite(number):
        raise ValueError(f"Expected a finite number, got {value!r}")
    return number


def _whole(value: Any, default: Optional[int] = None) -> Optional[int]:
    number = _number(value)
    return default if number is None else int(number)


def _money(value: Any) -> Optional[Decimal]:
    if value == "":
        return None
    try:
        return to_money(value)
    except ValueError as exc:
        raise ValueError(f"Expected a number, got {value!r}") from exc


def _status(value: Any, aliases: Dict[str, str], default: str) -> str:
    if value is None:
        return default
    text = str(value).strip().lower()
    return aliases.get(text, text)


def normalize_job(raw: Mapping[str, Any]) -> Job:
    """Map a job record in any known shape onto ``Job``."""
    employer = _first(raw, "employer_id", "employerId", "employer")
    location = _first(raw, "location", default={})
    if isinstance(location, str):
        location = {"address": location}

    return Job(
        id=_ref(_first(raw, "id", "_id")),
        employer_id=_ref(employer),
        title=str(_first(raw, "title", default="")).strip(),
        workers_needed=_whole(
            _first(raw, "workers_needed", "workersNeeded", "positions"), default=1
        ),
        status=_status(_first(raw, "status"), _JOB_STATUS_ALIASES, JobStatus.ACTIVE.value),
        category=_as_text(_first(raw, "category")),
        salary=_money(_first(raw, "salary", "wage", "pay", "payment")),
        company_name=_as_text(
            _first(
                raw,
                "company_name",
                "companyName",
                "company",
                "employer.company.name",
                "employer.companyName",
            )
        ),
        location=dict(location),
        created_at=parse_datetime(_first(raw, "created_at", "createdAt")),
        updated_at=parse_datetime(_first(raw, "updated_at", "updatedAt")),
        completed_at=parse_datetime(_first(raw, "completed_at", "completedAt")),
    )


def normalize_application(raw: Mapping[str, Any]) -> JobApplication:
    """Map an application record in any known shape onto ``JobApplication``."""
    job = _first(raw, "job_id", "jobId", "job")
    employer = _first(raw, "employer_id", "employerId", "employer", "job.employer")

    history = []
    for entry in _first(raw, "status_history", "statusHistory", default=[]) or []:
        changed_at = parse_datetime(_first(entry, "changed_at", "changedAt"))
        if changed_at is None:
            continue
        history.append(
            StatusChange(
                status=_status(
                    entry.get("status"), _APPLICATION_STATUS_ALIASES, ApplicationStatus.PENDING.value
                ),
                changed_at=changed_at,
                note=entry.get("note"),
            )
        )

    return JobApplication(
        id=_ref(_first(raw, "id", "_id")),
        job_id=_ref(job),
        worker_id=_ref(_first(raw, "worker_id", "workerId", "worker")),
        employer_id=_ref(employer),
        status=_status(
            _first(raw, "status"), _APPLICATION_STATUS_ALIASES, ApplicationStatus.PENDING.value
        ),
        applied_at=parse_datetime(
            _first(raw, "applied_at", "appliedAt", "applicationDetails.appliedAt", "createdAt")
        ),
        is_final_selection=bool(_first(raw, "is_final_selection", "isFinalSelection", default=False)),
        payment_status=str(_first(raw, "payment_status", "paymentStatus", default="pending")).lower(),
        payment_amount=_money(_first(raw, "payment_amount", "paymentAmount")),
        payment_date=parse_datetime(_first(raw, "payment_date", "paymentDate")),
        accepted_at=parse_datetime(_first(raw, "accepted_at", "acceptedAt")),
        started_at=parse_datetime(_first(raw, "started_at", "startedAt")),
        completed_at=parse_datetime(
            _first(raw, "completed_at", "completedAt", "jobCompletedDate")
        ),
        updated_at=parse_datetime(_first(raw, "updated_at", "updatedAt")),
        notes=_first(raw, "notes", "applicationDetails.notes"),
        status_history=history,
    )


def normalize_worker_profile(raw: Mapping[str, Any]) -> WorkerProfile:
    """Map a worker record (registration form, profile API, legacy document) onto ``WorkerProfile``."""
    rating = _first(raw, "rating", default=None)
    if isinstance(rating, Mapping):
        rating_average = _number(rating.get("average")) or 0.0
        rating_count = _whole(rating.get("count"), default=0)
    else:
        rating_average = _number(_first(raw, "rating_average", "ratingAverage", "rating")) or 0.0
        rating_count = _whole(_first(raw, "rating_count", "ratingCount"), default=0)

    documents = _first(raw, "documents", default=0)
    if not isinstance(documents, int) or isinstance(documents, bool):
        documents = len(documents) if hasattr(documents, "__len__") else 0

    emergency = _first(raw, "emergency_contact", "emergencyContact")
    if isinstance(emergency, Mapping):
        emergency = emergency.get("name")

    return WorkerProfile(
        name=_as_text(_first(raw, "name", "fullName")),
        age=_whole(_first(raw, "age")),
        phone=_as_text(_first(raw, "phone", "phoneNumber", "mobile")),
        email=_as_text(_first(raw, "email")),
        gender=_as_text(_first(raw, "gender")),
        id_number=_as_text(_first(raw, "id_number", "aadharNumber", "aadhaarNumber", "aadhar")),
        skills=_as_list(_first(raw, "skills", default=())),
        experience=_as_text(_first(raw, "experience", "experience_years", "experienceYears")),
        preferred_category=_as_text(_first(raw, "preferred_category", "preferredCategory")),
        expected_salary=_as_text(_first(raw, "expected_salary", "expectedSalary")),
        languages=_as_list(_first(raw, "languages", "language", default=())),
        village=_as_text(_first(raw, "village", "location.village")),
        district=_as_text(_first(raw, "district", "location.district")),
        state=_as_text(_first(raw, "state", "location.state")),
        pincode=_as_text(_first(raw, "pincode", "location.pincode")),
        availability=_as_text(_first(raw, "availability")),
        preferred_work_type=_as_text(_first(raw, "preferred_work_type", "preferredWorkType")),
        work_radius=_whole(_first(raw, "work_radius", "workRadius")),
        bio=_as_text(_first(raw, "bio")),
        documents=documents,
        emergency_contact=_as_text(emergency),
        verification_status=str(
            _first(raw, "verification_status", "verificationStatus", default="pending")
        ).lower(),
        rating_average=rating_average,
        rating_count=rating_count,
        completed_jobs=_whole(_first(raw, "completed_jobs", "completedJobs"), default=0),
    )


def _as_text(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _as_list(value: Any) -> List[str]:
    """Lists arrive either as arrays or as one comma-separated string."""
    if isinstance(value, str):
        return [part.strip() for part in value.split(",")]
    if not isinstance(value, (list, tuple, set, frozenset)):
        return [str(value)] if value else []
    return [str(v) for v in value]
