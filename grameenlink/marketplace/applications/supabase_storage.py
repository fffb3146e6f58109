"""
Supabase-backed application storage.

Rows map one-to-one onto the model ``to_dict`` forms. Conditional writes use
the ``UPDATE ... WHERE id = ? AND status = ?`` pattern so two requests racing
on the same record cannot both succeed. The job's ``final_application_id``
column is only set while NULL, and ``job_applications`` carries a unique index
on (job_id, worker_id) over live rows; see ``backend/migrations``.
"""

import logging
from typing import List, Optional

from supabase import Client

from grameenlink.marketplace.applications.models import (
    ApplicationStatus,
    Job,
    JobApplication,
    JobStatus,
    StateTransition,
)
from grameenlink.marketplace.applications.storage import (
    SELECTABLE_JOB_STATUSES,
    DuplicateRecordError,
)
from grameenlink.types import format_datetime, utc_now

logger = logging.getLogger(__name__)

JOBS_TABLE = "jobs"
JOB_APPLICATIONS_TABLE = "job_applications"
JOB_TRANSITIONS_TABLE = "job_state_transitions"


def _status_value(status) -> Optional[str]:
    return status.value if hasattr(status, "value") else status


class SupabaseApplicationStorage:
    """Application storage over a Supabase (PostgREST) client."""

    def __init__(self, client: Client):
        self._db = client

    # === Jobs ===

    def save_job(self, job: Job) -> str:
        self._db.table(JOBS_TABLE).insert(job.to_dict()).execute()
        return job.id

    def get_job(self, job_id: str) -> Optional[Job]:
        result = self._db.table(JOBS_TABLE).select("*").eq("id", job_id).execute()
        return Job.from_dict(result.data[0]) if result.data else None

    def list_jobs(
        self,
        employer_id: Optional[str] = None,
        status: Optional[JobStatus] = None,
        limit: int = 100,
    ) -> List[Job]:
        query = self._db.table(JOBS_TABLE).select("*")
        if employer_id is not None:
            query = query.eq("employer_id", employer_id)
        if status is not None:
            query = query.eq("status", _status_value(status))
        result = query.order("created_at", desc=True).limit(limit).execute()
        return [Job.from_dict(row) for row in result.data or []]

    def update_job(self, job: Job, expected_status: Optional[str] = None) -> bool:
        data = job.to_dict()
        data.pop("final_application_id", None)
        query = self._db.table(JOBS_TABLE).update(data).eq("id", job.id)
        if expected_status is not None:
            query = query.eq("status", _status_value(expected_status))
        result = query.execute()
        if result.data:
            return True
        if expected_status is not None:
            logger.warning(
                f"Conditional update missed job {job.id}: expected status "
                f"'{_status_value(expected_status)}'"
            )
        return False

    def claim_final_selection(self, job_id: str, application_id: str) -> bool:
        result = (
            self._db.table(JOBS_TABLE)
            .update(
                {
                    "final_application_id": application_id,
                    "updated_at": format_datetime(utc_now()),
                }
            )
            .eq("id", job_id)
            .in_("status", list(SELECTABLE_JOB_STATUSES))
            .is_("final_application_id", "null")
            .execute()
        )
        if result.data:
            return True
        logger.warning(f"Final selection claim missed job {job_id} for application {application_id}")
        return False

    def release_final_selection(self, job_id: str, application_id: str) -> bool:
        result = (
            self._db.table(JOBS_TABLE)
            .update({"final_application_id": None, "updated_at": format_datetime(utc_now())})
            .eq("id", job_id)
            .eq("final_application_id", application_id)
            .execute()
        )
        return bool(result.data)

    # === Applications ===

    def save_application(self, application: JobApplication) -> str:
        try:
            self._db.table(JOB_APPLICATIONS_TABLE).insert(application.to_dict()).execute()
        except Exception as e:
            if "duplicate" in str(e).lower() or "unique" in str(e).lower():
                raise DuplicateRecordError(
                    f"Worker {application.worker_id} already has a live application "
                    f"for job {application.job_id}"
                ) from e
            raise
        return application.id

    def get_application(self, application_id: str) -> Optional[JobApplication]:
        result = (
            self._db.table(JOB_APPLICATIONS_TABLE).select("*").eq("id", application_id).execute()
        )
        return JobApplication.from_dict(result.data[0]) if result.data else None

    def list_applications(
        self,
        job_id: Optional[str] = None,
        worker_id: Optional[str] = None,
        employer_id: Optional[str] = None,
        status: Optional[ApplicationStatus] = None,
        limit: int = 100,
    ) -> List[JobApplication]:
        query = self._db.table(JOB_APPLICATIONS_TABLE).select("*")
        if job_id is not None:
            query = query.eq("job_id", job_id)
        if worker_id is not None:
            query = query.eq("worker_id", worker_id)
        if employer_id is not None:
            query = query.eq("employer_id", employer_id)
        if status is not None:
            query = query.eq("status", _status_value(status))
        result = (
            query.order("applied_at", desc=True).order("id", desc=True).limit(limit).execute()
        )
        return [JobApplication.from_dict(row) for row in result.data or []]

    def update_application(
        self,
        application: JobApplication,
        expected_status: Optional[str] = None,
    ) -> bool:
        query = (
            self._db.table(JOB_APPLICATIONS_TABLE)
            .update(application.to_dict())
            .eq("id", application.id)
        )
        if expected_status is not None:
            query = query.eq("status", _status_value(expected_status))
        result = query.execute()
        if result.data:
            return True
        if expected_status is not None:
            logger.warning(
                f"Conditional update missed application {application.id}: expected status "
                f"'{_status_value(expected_status)}'"
            )
        return False

    # === Transitions ===

    def save_transition(self, transition: StateTransition) -> str:
        self._db.table(JOB_TRANSITIONS_TABLE).insert(transition.to_dict()).execute()
        return transition.id

    def get_transitions(self, job_id: str) -> List[StateTransition]:
        result = (
            self._db.table(JOB_TRANSITIONS_TABLE)
            .select("*")
            .eq("job_id", job_id)
            .order("created_at")
            .execute()
        )
        return [StateTransition.from_dict(row) for row in result.data or []]
