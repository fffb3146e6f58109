"""
Application store.

Provides persistence for jobs, job applications and their transition log.
The store is the single source of truth; the service layer is its only
writer. Records handed out are copies, so a caller mutating a returned
object cannot bypass the transition engine.
"""

import copy
import logging
import threading
from typing import Dict, List, Optional, Protocol

from grameenlink.marketplace.applications.models import (
    INACTIVE_APPLICATION_STATUSES,
    ApplicationStatus,
    Job,
    JobApplication,
    JobStatus,
    StateTransition,
)
from grameenlink.types import utc_now

logger = logging.getLogger(__name__)

SELECTABLE_JOB_STATUSES = (JobStatus.ACTIVE.value, JobStatus.IN_PROGRESS.value)


class DuplicateRecordError(Exception):
    """A worker already has a live application for the job."""

    pass


class ApplicationStorage(Protocol):
    """Protocol for application persistence backends."""

    # Jobs
    def save_job(self, job: Job) -> str:
        """Save a job. Returns the job ID."""
        ...

    def get_job(self, job_id: str) -> Optional[Job]:
        """Get a job by ID."""
        ...

    def list_jobs(
        self,
        employer_id: Optional[str] = None,
        status: Optional[JobStatus] = None,
        limit: int = 100,
    ) -> List[Job]:
        """List jobs with optional filters."""
        ...

    def update_job(self, job: Job, expected_status: Optional[str] = None) -> bool:
        """Update a job.

        When ``expected_status`` is given the write only happens if the stored
        job still has that status. Returns True if the write happened.
        ``final_application_id`` is never written here.
        """
        ...

    def claim_final_selection(self, job_id: str, application_id: str) -> bool:
        """Make ``application_id`` the job's final selection.

        Succeeds only while the job is active or in progress and no
        application holds the selection. Returns True if the claim was taken.
        """
        ...

    def release_final_selection(self, job_id: str, application_id: str) -> bool:
        """Clear the job's final selection if ``application_id`` holds it."""
        ...

    # Applications
    def save_application(self, application: JobApplication) -> str:
        """Save a new application. Returns the application ID.

        Raises DuplicateRecordError if the worker already has a live
        (not rejected, not cancelled) application for the job.
        """
        ...

    def get_application(self, application_id: str) -> Optional[JobApplication]:
        """Get an application by ID."""
        ...

    def list_applications(
        self,
        job_id: Optional[str] = None,
        worker_id: Optional[str] = None,
        employer_id: Optional[str] = None,
        status: Optional[ApplicationStatus] = None,
        limit: int = 100,
    ) -> List[JobApplication]:
        """List applications with optional filters, newest first."""
        ...

    def update_application(
        self,
        application: JobApplication,
        expected_status: Optional[str] = None,
    ) -> bool:
        """Update an application, optionally guarded by its current status."""
        ...

    # Transitions (audit log)
    def save_transition(self, transition: StateTransition) -> str:
        """Save a state transition record. Returns the transition ID."""
        ...

    def get_transitions(self, job_id: str) -> List[StateTransition]:
        """Get all state transitions for a job, oldest first."""
        ...


def _status_value(status) -> Optional[str]:
    return status.value if hasattr(status, "value") else status


class InMemoryApplicationStorage:
    """In-memory application storage for tests and local development."""

    def __init__(self):
        """Initialize empty storage."""
        self._jobs: Dict[str, Job] = {}
        self._applications: Dict[str, JobApplication] = {}
        self._transitions: Dict[str, List[StateTransition]] = {}  # job_id -> list
        self._lock = threading.Lock()

    # === Jobs ===

    def save_job(self, job: Job) -> str:
        """Save a job."""
        with self._lock:
            self._jobs[job.id] = copy.deepcopy(job)
            self._transitions.setdefault(job.id, [])
        return job.id

    def get_job(self, job_id: str) -> Optional[Job]:
        """Get a job by ID."""
        with self._lock:
            job = self._jobs.get(job_id)
            return copy.deepcopy(job) if job else None

    def list_jobs(
        self,
        employer_id: Optional[str] = None,
        status: Optional[JobStatus] = None,
        limit: int = 100,
    ) -> List[Job]:
        """List jobs with optional filters."""
        with self._lock:
            jobs = list(self._jobs.values())

        if employer_id is not None:
            jobs = [j for j in jobs if j.employer_id == employer_id]
        if status is not None:
            status_val = _status_value(status)
            jobs = [j for j in jobs if j.status == status_val]

        jobs.sort(key=lambda j: j.created_at or utc_now(), reverse=True)
        return [copy.deepcopy(j) for j in jobs[:limit]]

    def update_job(self, job: Job, expected_status: Optional[str] = None) -> bool:
        """Update a job."""
        with self._lock:
            current = self._jobs.get(job.id)
            if current is None:
                return False
            if expected_status is not None and current.status != _status_value(expected_status):
                logger.warning(
                    "Job %s changed concurrently: expected %r, found %r",
                    job.id,
                    _status_value(expected_status),
                    current.status,
                )
                return False
            stored = copy.deepcopy(job)
            stored.final_application_id = current.final_application_id
            self._jobs[job.id] = stored
            return True

    def claim_final_selection(self, job_id: str, application_id: str) -> bool:
        """Take the job's final selection for an application."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status not in SELECTABLE_JOB_STATUSES:
                return False
            if job.final_application_id is not None:
                return False
            job.final_application_id = application_id
            job.updated_at = utc_now()
            return True

    def release_final_selection(self, job_id: str, application_id: str) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.final_application_id != application_id:
                return False
            job.final_application_id = None
            job.updated_at = utc_now()
            return True

    # === Applications ===

    def save_application(self, application: JobApplication) -> str:
        """Save a new application."""
        with self._lock:
            for existing in self._applications.values():
                if (
                    existing.job_id == application.job_id
                    and existing.worker_id == application.worker_id
                    and existing.status not in INACTIVE_APPLICATION_STATUSES
                ):
                    raise DuplicateRecordError(
                        f"Worker {application.worker_id} already has application "
                        f"{existing.id} for job {application.job_id}"
                    )
            self._applications[application.id] = copy.deepcopy(application)
        return application.id

    def get_application(self, application_id: str) -> Optional[JobApplication]:
        """Get an application by ID."""
        with self._lock:
            app = self._applications.get(application_id)
            return copy.deepcopy(app) if app else None

    def list_applications(
        self,
        job_id: Optional[str] = None,
        worker_id: Optional[str] = None,
        employer_id: Optional[str] = None,
        status: Optional[ApplicationStatus] = None,
        limit: int = 100,
    ) -> List[JobApplication]:
        """List applications with optional filters."""
        with self._lock:
            apps = list(self._applications.values())

        if job_id is not None:
            apps = [a for a in apps if a.job_id == job_id]
        if worker_id is not None:
            apps = [a for a in apps if a.worker_id == worker_id]
        if employer_id is not None:
            apps = [a for a in apps if a.employer_id == employer_id]
        if status is not None:
            status_val = _status_value(status)
            apps = [a for a in apps if a.status == status_val]

        # Newest first; id breaks ties so listings are stable between polls
        apps.sort(key=lambda a: (a.applied_at or utc_now(), a.id), reverse=True)
        return [copy.deepcopy(a) for a in apps[:limit]]

    def update_application(
        self,
        application: JobApplication,
        expected_status: Optional[str] = None,
    ) -> bool:
        """Update an application."""
        with self._lock:
            current = self._applications.get(application.id)
            if current is None:
                return False
            if expected_status is not None and current.status != _status_value(expected_status):
                logger.warning(
                    "Application %s changed concurrently: expected %r, found %r",
                    application.id,
                    _status_value(expected_status),
                    current.status,
                )
                return False
            self._applications[application.id] = copy.deepcopy(application)
            return True

    # === Transitions ===

    def save_transition(self, transition: StateTransition) -> str:
        """Save a state transition record."""
        with self._lock:
            self._transitions.setdefault(transition.job_id, []).append(transition)
        return transition.id

    def get_transitions(self, job_id: str) -> List[StateTransition]:
        """Get all state transitions for a job."""
        with self._lock:
            transitions = list(self._transitions.get(job_id, []))
        return sorted(transitions, key=lambda t: t.created_at)
