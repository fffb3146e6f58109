"""
Application lifecycle service.

All writes to jobs and applications go through this service. Each
operation is checked against the transition table and the actor, then
written through the store's status-guarded update. A write that loses a
race fails instead of overwriting the newer status.
"""

import logging
import threading
from decimal import Decimal
from typing import List, Optional

from grameenlink.marketplace.applications.models import (
    Actor,
    ActorRole,
    ApplicationStatus,
    Job,
    JobApplication,
    JobStatus,
    PaymentStatus,
    StateTransition,
    StatusChange,
    new_id,
    to_money,
)
from grameenlink.marketplace.applications.storage import (
    SELECTABLE_JOB_STATUSES,
    ApplicationStorage,
    DuplicateRecordError,
)
from grameenlink.marketplace.config import MarketplaceConfig
from grameenlink.types import utc_now

logger = logging.getLogger(__name__)


# =============================================================================
# Errors
# =============================================================================


class ApplicationServiceError(Exception):
    """Base error for application lifecycle operations."""

    pass


class NotFoundError(ApplicationServiceError):
    """A referenced record does not exist."""

    pass


class ApplicationNotFoundError(NotFoundError):
    """Application does not exist."""

    pass


class JobNotFoundError(NotFoundError):
    """Job does not exist."""

    pass


class DuplicateApplicationError(ApplicationServiceError):
    """Worker already has a live application for this job."""

    pass


class IllegalTransitionError(ApplicationServiceError):
    """The requested state change is not allowed from the current state."""

    pass


class ForbiddenError(ApplicationServiceError):
    """Actor is not allowed to perform this operation."""

    pass


class AlreadySelectedError(ApplicationServiceError):
    """Another application already holds the job's final selection."""

    pass


_CURRENT_STATUSES = (
    ApplicationStatus.PENDING.value,
    ApplicationStatus.ACCEPTED.value,
    ApplicationStatus.IN_PROGRESS.value,
)

# Internal scans must see every application of a job, not one page
_SCAN_LIMIT = 10_000

_TIMESTAMP_FIELDS = {
    ApplicationStatus.ACCEPTED.value: "accepted_at",
    ApplicationStatus.IN_PROGRESS.value: "started_at",
    ApplicationStatus.COMPLETED.value: "completed_at",
}


def _status_value(status) -> str:
    return status.value if hasattr(status, "value") else str(status)


class ApplicationService:
    """Job application state machine over an ``ApplicationStorage``."""

    def __init__(
        self,
        storage: ApplicationStorage,
        config: Optional[MarketplaceConfig] = None,
    ):
        self.storage = storage
        self.config = config or MarketplaceConfig()
        self._lock = threading.RLock()

    # =========================================================================
    # Jobs
    # =========================================================================

    def create_job(
        self,
        employer_id: str,
        title: str = "",
        workers_needed: int = 1,
        category: Optional[str] = None,
        salary: Optional[Decimal] = None,
        company_name: Optional[str] = None,
        location: Optional[dict] = None,
    ) -> Job:
        """Post a new job in ``active`` status."""
        now = utc_now()
        try:
            job = Job(
                id=new_id(),
                employer_id=employer_id,
                title=title.strip(),
                workers_needed=workers_needed,
                category=category,
                salary=salary,
                company_name=company_name,
                location=location or {},
                created_at=now,
                updated_at=now,
            )
        except ValueError as e:
            raise ApplicationServiceError(str(e)) from e

        self.storage.save_job(job)
        self._record(job.id, None, None, job.status, employer_id, ActorRole.EMPLOYER.value)
        logger.info(f"create_job | job={job.id} | employer={employer_id}")
        return job

    def get_job(self, job_id: str) -> Job:
        """Get a job or raise JobNotFoundError."""
        job = self.storage.get_job(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    def list_jobs(
        self,
        employer_id: Optional[str] = None,
        status: Optional[JobStatus] = None,
        limit: Optional[int] = None,
    ) -> List[Job]:
        return self.storage.list_jobs(
            employer_id=employer_id, status=status, limit=self._limit(limit)
        )

    def close_job(self, job_id: str, actor: Actor) -> Job:
        """Stop a job from taking further applications or selections."""
        with self._lock:
            job = self.get_job(job_id)
            if not job.can_transition_to(JobStatus.CLOSED):
                raise self._rejected(
                    IllegalTransitionError(f"Cannot close job in status: {job.status}")
                )
            if not actor.is_employer or actor.id != job.employer_id:
                raise self._rejected(ForbiddenError("Only the job's employer can close it"))
            return self._set_job_status(job, JobStatus.CLOSED.value, actor)

    # =========================================================================
    # Applications: reads
    # =========================================================================

    def get_application(self, application_id: str) -> JobApplication:
        """Get an application or raise ApplicationNotFoundError."""
        application = self.storage.get_application(application_id)
        if application is None:
            raise ApplicationNotFoundError(f"Application {application_id} not found")
        return application

    def list_applications(
        self,
        job_id: Optional[str] = None,
        worker_id: Optional[str] = None,
        employer_id: Optional[str] = None,
        status: Optional[ApplicationStatus] = None,
        limit: Optional[int] = None,
    ) -> List[JobApplication]:
        if status is not None:
            status = _status_value(status)
            if status not in {s.value for s in ApplicationStatus}:
                raise ApplicationServiceError(f"Unknown application status: {status}")
        return self.storage.list_applications(
            job_id=job_id,
            worker_id=worker_id,
            employer_id=employer_id,
            status=status,
            limit=self._limit(limit),
        )

    def get_current_applications(self, worker_id: str) -> List[JobApplication]:
        """Applications the worker is still waiting on or working."""
        return [
            a
            for a in self.list_applications(worker_id=worker_id)
            if a.status in _CURRENT_STATUSES
        ]

    def get_past_applications(self, worker_id: str) -> List[JobApplication]:
        """Completed work for a worker, most recently completed first."""
        past = self.list_applications(
            worker_id=worker_id, status=ApplicationStatus.COMPLETED
        )
        past.sort(key=lambda a: a.completed_at or a.updated_at or utc_now(), reverse=True)
        return past

    def get_transitions(self, job_id: str) -> List[StateTransition]:
        """Audit log for a job and its applications."""
        self.get_job(job_id)
        return self.storage.get_transitions(job_id)

    # =========================================================================
    # Applications: lifecycle
    # =========================================================================

    def submit(
        self, job_id: str, worker_id: str, notes: Optional[str] = None
    ) -> JobApplication:
        """Apply to a job on behalf of a worker. New applications start pending."""
        with self._lock:
            job = self.get_job(job_id)
            if not job.is_active:
                raise self._rejected(
                    IllegalTransitionError(
                        f"Job {job_id} is not accepting applications (status: {job.status})"
                    )
                )
            if worker_id == job.employer_id:
                raise self._rejected(ApplicationServiceError("Cannot apply to your own job"))

            existing = self.storage.list_applications(
                job_id=job_id, worker_id=worker_id, limit=_SCAN_LIMIT
            )
            live = [a for a in existing if a.blocks_reapplication]
            if live:
                raise self._rejected(
                    DuplicateApplicationError(
                        f"Worker {worker_id} already applied to job {job_id} "
                        f"(application {live[0].id} is {live[0].status})"
                    )
                )

            now = utc_now()
            application = JobApplication(
                id=new_id(),
                job_id=job_id,
                worker_id=worker_id,
                employer_id=job.employer_id,
                applied_at=now,
                updated_at=now,
                notes=notes,
                status_history=[
                    StatusChange(
                        status=ApplicationStatus.PENDING.value,
                        changed_at=now,
                        note="Application submitted",
                    )
                ],
            )
            try:
                self.storage.save_application(application)
            except DuplicateRecordError as e:
                raise self._rejected(DuplicateApplicationError(str(e))) from e
            self._record(
                job_id,
                application.id,
                None,
                application.status,
                worker_id,
                ActorRole.WORKER.value,
                "Application submitted",
            )

        logger.info(f"submit | application={application.id} | job={job_id} | worker={worker_id}")
        return application

    def set_status(
        self, application_id: str, target_status, actor: Actor
    ) -> JobApplication:
        """Move an application to ``target_status`` if the table allows it."""
        target = _status_value(target_status)
        if target not in {s.value for s in ApplicationStatus}:
            raise self._rejected(IllegalTransitionError(f"Unknown application status: {target}"))
        if target == ApplicationStatus.COMPLETED.value:
            return self.mark_complete(application_id, actor)
        if target == ApplicationStatus.CANCELLED.value:
            return self.cancel(application_id, actor)

        with self._lock:
            application = self.get_application(application_id)
            self._authorize(application, target, actor)

            if target == ApplicationStatus.REJECTED.value and application.is_final_selection:
                updated = self._apply(application, target, actor, is_final_selection=False)
                self._release_final_selection(updated, actor)
                return updated

            return self._apply(application, target, actor)

    def cancel(self, application_id: str, actor: Actor) -> JobApplication:
        """Withdraw a pending application. Workers cannot withdraw after the employer acts."""
        with self._lock:
            application = self.get_application(application_id)
            self._authorize(application, ApplicationStatus.CANCELLED.value, actor)
            return self._apply(
                application,
                ApplicationStatus.CANCELLED.value,
                actor,
                note="Application withdrawn by worker",
            )

    def select_final(self, application_id: str, actor: Actor) -> JobApplication:
        """Confirm an accepted applicant as the one who will do the job.

        The parent job moves from active to in-progress. Only one application
        per job can hold the final selection.
        """
        with self._lock:
            application = self.get_application(application_id)
            if application.status != ApplicationStatus.ACCEPTED.value:
                raise self._rejected(
                    IllegalTransitionError(
                        f"Only accepted applications can be selected "
                        f"(application {application_id} is {application.status})"
                    )
                )
            self._check_owner(application, actor, {ActorRole.EMPLOYER.value})

            if application.is_final_selection:
                return application

            job = self.get_job(application.job_id)
            if job.status not in SELECTABLE_JOB_STATUSES:
                raise self._rejected(
                    IllegalTransitionError(f"Cannot select a worker for job in status: {job.status}")
                )

            # The job row is claimed before anything else is written
            self._claim_final_selection(job, application)
            moved_job = False
            try:
                if job.status == JobStatus.ACTIVE.value:
                    self._set_job_status(job, JobStatus.IN_PROGRESS.value, actor, "Worker selected")
                    moved_job = True

                application.is_final_selection = True
                application.updated_at = utc_now()
                application.status_history.append(
                    StatusChange(
                        status=application.status,
                        changed_at=application.updated_at,
                        note="Final selection",
                    )
                )
                self._write(application, expected_status=ApplicationStatus.ACCEPTED.value)
            except ApplicationServiceError:
                self._undo_final_selection(job, application, actor, moved_job)
                raise

            self._record(
                application.job_id,
                application.id,
                application.status,
                application.status,
                actor.id,
                actor.role,
                "Final selection",
            )
            logger.info(
                f"select_final | application={application.id} | job={job.id} | actor={actor.id}"
            )

            if self.config.reject_others_on_final_selection and job.workers_needed == 1:
                self._reject_competing(application, actor)

            return application

    def mark_complete(self, application_id: str, actor: Actor) -> JobApplication:
        """Mark in-progress work as done and open it for payment."""
        with self._lock:
            application = self.get_application(application_id)
            self._authorize(application, ApplicationStatus.COMPLETED.value, actor)

            changes = {}
            if application.payment_status != PaymentStatus.PAID.value:
                changes["payment_status"] = PaymentStatus.PENDING.value
            updated = self._apply(
                application, ApplicationStatus.COMPLETED.value, actor, **changes
            )
            try:
                self._maybe_complete_job(updated.job_id, actor)
            except IllegalTransitionError as e:
                # The completed application stands; the job moved on concurrently
                logger.warning(f"Job {updated.job_id} left as is after completing {updated.id}: {e}")
            return updated

    def record_payment(
        self,
        application_id: str,
        actor: Actor,
        amount: Optional[Decimal] = None,
        status=PaymentStatus.PAID,
    ) -> JobApplication:
        """Record that the employer has paid (or started paying) for completed work.

        Amounts are stored as given; nothing here reconciles them.
        """
        status = _status_value(status)
        if status not in (PaymentStatus.PROCESSING.value, PaymentStatus.PAID.value):
            raise ApplicationServiceError(f"Cannot record payment status: {status}")
        try:
            amount = to_money(amount)
        except ValueError as e:
            raise ApplicationServiceError(str(e)) from e
        if amount is not None and amount < 0:
            raise ApplicationServiceError("Payment amount cannot be negative")

        with self._lock:
            application = self.get_application(application_id)
            if application.status != ApplicationStatus.COMPLETED.value:
                raise self._rejected(
                    IllegalTransitionError("Only completed applications can be paid")
                )
            self._check_owner(application, actor, {ActorRole.EMPLOYER.value})
            if application.payment_status == PaymentStatus.PAID.value:
                raise self._rejected(
                    IllegalTransitionError(f"Application {application_id} is already paid")
                )

            previous = application.payment_status
            now = utc_now()
            application.payment_status = status
            if amount is not None:
                application.payment_amount = amount
            if status == PaymentStatus.PAID.value:
                application.payment_date = now
            application.updated_at = now

            self._write(application, expected_status=ApplicationStatus.COMPLETED.value)
            self._record(
                application.job_id,
                application.id,
                application.status,
                application.status,
                actor.id,
                actor.role,
                f"Payment {previous} -> {status}",
            )
            logger.info(
                f"record_payment | application={application.id} | actor={actor.id} | "
                f"{previous} -> {status} | amount={application.payment_amount}"
            )
            return application

    # =========================================================================
    # Internals
    # =========================================================================

    def _job_applications(self, job_id: str) -> List[JobApplication]:
        return self.storage.list_applications(job_id=job_id, limit=_SCAN_LIMIT)

    def _limit(self, limit: Optional[int]) -> int:
        if limit is None:
            return self.config.max_list_limit
        return max(1, min(limit, self.config.max_list_limit))

    @staticmethod
    def _rejected(error: ApplicationServiceError) -> ApplicationServiceError:
        logger.warning(f"{type(error).__name__}: {error}")
        return error

    def _authorize(self, application: JobApplication, target: str, actor: Actor) -> None:
        """Check the transition table, then the actor's role and ownership."""
        allowed = application.allowed_initiators(target)
        if not allowed:
            raise self._rejected(
                IllegalTransitionError(
                    f"Cannot move application {application.id} from "
                    f"{application.status} to {target}"
                )
            )
        self._check_owner(application, actor, allowed)

    def _check_owner(self, application: JobApplication, actor: Actor, roles) -> None:
        if actor.role not in roles:
            raise self._rejected(
                ForbiddenError(
                    f"A {actor.role} cannot perform this action on application {application.id}"
                )
            )
        owner = application.worker_id if actor.is_worker else application.employer_id
        if actor.id != owner:
            raise self._rejected(
                ForbiddenError(f"{actor.role} {actor.id} does not own application {application.id}")
            )

    def _apply(
        self,
        application: JobApplication,
        target: str,
        actor: Actor,
        note: Optional[str] = None,
        **changes,
    ) -> JobApplication:
        previous = application.status
        now = utc_now()

        application.status = target
        application.updated_at = now
        stamp = _TIMESTAMP_FIELDS.get(target)
        if stamp:
            setattr(application, stamp, now)
        for name, value in changes.items():
            setattr(application, name, value)
        note = note or f"Status changed to {target}"
        application.status_history.append(StatusChange(status=target, changed_at=now, note=note))

        self._write(application, expected_status=previous)
        self._record(
            application.job_id, application.id, previous, target, actor.id, actor.role, note
        )
        logger.info(
            f"set_status | application={application.id} | actor={actor.id} | "
            f"{previous} -> {target}"
        )
        return application

    def _write(self, application: JobApplication, expected_status: str) -> None:
        if not self.storage.update_application(application, expected_status=expected_status):
            if self.storage.get_application(application.id) is None:
                raise ApplicationNotFoundError(f"Application {application.id} not found")
            raise self._rejected(
                IllegalTransitionError(
                    f"Application {application.id} was modified by another request; "
                    "refresh and try again"
                )
            )

    def _set_job_status(
        self, job: Job, new_status: str, actor: Actor, note: Optional[str] = None
    ) -> Job:
        previous = job.status
        if not job.can_transition_to(new_status):
            raise self._rejected(
                IllegalTransitionError(f"Cannot move job {job.id} from {previous} to {new_status}")
            )
        now = utc_now()
        job.status = new_status
        job.updated_at = now
        if new_status == JobStatus.COMPLETED.value:
            job.completed_at = now
        if not self.storage.update_job(job, expected_status=previous):
            raise self._rejected(
                IllegalTransitionError(f"Job {job.id} was modified by another request")
            )
        self._record(job.id, None, previous, new_status, actor.id, actor.role, note)
        logger.info(f"job_status | job={job.id} | actor={actor.id} | {previous} -> {new_status}")
        return job

    def _claim_final_selection(self, job: Job, application: JobApplication) -> None:
        if self.storage.claim_final_selection(job.id, application.id):
            return
        current = self.get_job(job.id)
        if current.final_application_id == application.id:
            # Left behind by an interrupted selection of this same application
            return
        if current.final_application_id is not None:
            raise self._rejected(
                AlreadySelectedError(
                    f"Application {current.final_application_id} is already the final "
                    f"selection for job {job.id}"
                )
            )
        raise self._rejected(
            IllegalTransitionError(f"Cannot select a worker for job in status: {current.status}")
        )

    def _undo_final_selection(
        self, job: Job, application: JobApplication, actor: Actor, moved_job: bool
    ) -> None:
        """Roll back the job side of a selection whose application write failed."""
        if moved_job:
            try:
                self._set_job_status(job, JobStatus.ACTIVE.value, actor, "Final selection failed")
            except ApplicationServiceError as e:
                logger.warning(f"Could not reopen job {job.id}: {e}")
        if not self.storage.release_final_selection(job.id, application.id):
            logger.warning(f"Could not release final selection of job {job.id}")

    def _release_final_selection(self, application: JobApplication, actor: Actor) -> None:
        """Free the job's selection and put an in-progress job back to active."""
        self.storage.release_final_selection(application.job_id, application.id)
        job = self.storage.get_job(application.job_id)
        if job is None or job.status != JobStatus.IN_PROGRESS.value:
            return
        self._set_job_status(job, JobStatus.ACTIVE.value, actor, "Final selection withdrawn")

    def _reject_competing(self, selected: JobApplication, actor: Actor) -> None:
        """Reject other open applications for a filled single-worker job (best effort)."""
        for other in self._job_applications(selected.job_id):
            if other.id == selected.id or other.status not in (
                ApplicationStatus.PENDING.value,
                ApplicationStatus.ACCEPTED.value,
            ):
                continue
            try:
                self._apply(
                    other,
                    ApplicationStatus.REJECTED.value,
                    actor,
                    note="Another worker was selected",
                )
            except ApplicationServiceError as e:
                logger.warning(f"Failed to reject application {other.id}: {e}")

    def _maybe_complete_job(self, job_id: str, actor: Actor) -> Optional[Job]:
        job = self.storage.get_job(job_id)
        if job is None or job.status != JobStatus.IN_PROGRESS.value:
            return None
        applications = self._job_applications(job_id)
        selected = [a for a in applications if a.is_final_selection]
        unfinished = [
            a
            for a in applications
            if a.status == ApplicationStatus.IN_PROGRESS.value
            or (a.is_final_selection and a.status != ApplicationStatus.COMPLETED.value)
        ]
        if not selected or unfinished:
            return None
        return self._set_job_status(job, JobStatus.COMPLETED.value, actor, "All work completed")

    def _record(
        self,
        job_id: str,
        application_id: Optional[str],
        from_status: Optional[str],
        to_status: str,
        actor_id: Optional[str],
        actor_role: Optional[str],
        note: Optional[str] = None,
    ) -> StateTransition:
        transition = StateTransition(
            id=new_id(),
            job_id=job_id,
            application_id=application_id,
            from_status=from_status,
            to_status=to_status,
            actor_id=actor_id,
            actor_role=actor_role,
            note=note,
        )
        self.storage.save_transition(transition)
        return transition
