"""
HTTP client for the marketplace API.

Wraps the ``/api/v1`` endpoints used by the worker and employer dashboards.
Every request carries the caller's identity in the ``X-Actor-Id`` and
``X-Actor-Role`` headers. Responses are mapped onto the canonical models
through ``grameenlink.marketplace.normalize`` so older payload shapes are
accepted too.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx

from grameenlink.marketplace.applications.models import Actor, Job, JobApplication, to_money
from grameenlink.marketplace.config import MarketplaceConfig
from grameenlink.marketplace.normalize import normalize_application, normalize_job
from grameenlink.types import content_digest

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


class MarketplaceClientError(Exception):
    """A request to the marketplace API failed.

    ``status_code`` is None for transport failures (timeouts, refused
    connections). ``error`` carries the server's error name when it sent one.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, error: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.error = error


@dataclass
class ApplicationList:
    """One page of applications plus the server's version digest."""

    applications: List[JobApplication] = field(default_factory=list)
    version: Optional[str] = None

    def __len__(self) -> int:
        return len(self.applications)


class MarketplaceClient:
    """Async client for application reads and mutations."""

    def __init__(
        self,
        base_url: str,
        actor: Actor,
        config: Optional[MarketplaceConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.actor = actor
        self.config = config or MarketplaceConfig()
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + API_PREFIX,
            headers={
                "X-Actor-Id": actor.id,
                "X-Actor-Role": actor.role,
                "Accept": "application/json",
            },
            timeout=self.config.request_timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "MarketplaceClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # =========================================================================
    # Reads
    # =========================================================================

    async def list_applications(
        self,
        worker_id: Optional[str] = None,
        job_id: Optional[str] = None,
        employer_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> ApplicationList:
        params = {
            key: value
            for key, value in (
                ("worker", worker_id),
                ("job", job_id),
                ("employer", employer_id),
                ("status", status),
            )
            if value is not None
        }
        return _application_list(await self._request("GET", "/applications", params=params))

    async def current_applications(self) -> ApplicationList:
        """The calling worker's open applications and work in progress."""
        return _application_list(await self._request("GET", "/applications/current"))

    async def past_applications(self) -> ApplicationList:
        return _application_list(await self._request("GET", "/applications/past"))

    async def get_application(self, application_id: str) -> JobApplication:
        return normalize_application(await self._request("GET", f"/applications/{application_id}"))

    async def list_jobs(
        self, employer_id: Optional[str] = None, status: Optional[str] = None
    ) -> List[Job]:
        params = {
            key: value
            for key, value in (("employer", employer_id), ("status", status))
            if value is not None
        }
        data = await self._request("GET", "/jobs", params=params)
        rows = data if isinstance(data, list) else data.get("jobs", [])
        return [normalize_job(row) for row in rows]

    async def get_job(self, job_id: str) -> Job:
        return normalize_job(await self._request("GET", f"/jobs/{job_id}"))

    # =========================================================================
    # Mutations
    # =========================================================================

    async def submit(self, job_id: str, notes: Optional[str] = None) -> JobApplication:
        body = {"job_id": job_id}
        if notes:
            body["notes"] = notes
        return normalize_application(await self._request("POST", "/applications", json=body))

    async def cancel(self, application_id: str) -> JobApplication:
        return normalize_application(
            await self._request("DELETE", f"/applications/{application_id}")
        )

    async def set_status(self, application_id: str, status: str) -> JobApplication:
        status = status.value if hasattr(status, "value") else status
        return normalize_application(
            await self._request(
                "PATCH", f"/applications/{application_id}/status", json={"status": status}
            )
        )

    async def select_final(self, application_id: str) -> JobApplication:
        return normalize_application(
            await self._request("PATCH", f"/applications/{application_id}/final-selection")
        )

    async def mark_complete(self, application_id: str) -> JobApplication:
        return normalize_application(
            await self._request("PATCH", f"/applications/{application_id}/complete")
        )

    async def record_payment(
        self, application_id: str, amount: Optional[Decimal] = None, status: str = "paid"
    ) -> JobApplication:
        body: Dict[str, Any] = {"status": status}
        if amount is not None:
            # Decimal string on the wire
            body["amount"] = str(to_money(amount))
        return normalize_application(
            await self._request("PATCH", f"/applications/{application_id}/payment", json=body)
        )

    # =========================================================================
    # Transport
    # =========================================================================

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise MarketplaceClientError(f"{method} {path} failed: {e}") from e

        if response.status_code >= 400:
            detail, error = response.reason_phrase, None
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                detail = body.get("detail", detail)
                error = body.get("error")
            logger.debug(f"{method} {path} -> {response.status_code} {error}: {detail}")
            raise MarketplaceClientError(str(detail), status_code=response.status_code, error=error)

        return response.json()


def _application_list(data: Any) -> ApplicationList:
    """Accepts the ``{applications, version}`` envelope or a bare list."""
    if isinstance(data, list):
        rows, version = data, None
    else:
        rows, version = data.get("applications", []), data.get("version")
    applications = [normalize_application(row) for row in rows]
    if version is None:
        version = content_digest([a.to_dict() for a in applications])
    return ApplicationList(applications=applications, version=version)
