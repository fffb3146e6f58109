"""Tests for the polling view synchronizer and the marketplace client."""

import asyncio
import json
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest

from grameenlink.marketplace.applications import Actor, JobApplication
from grameenlink.marketplace.config import MarketplaceConfig
from grameenlink.sync import (
    ApplicationList,
    ApplicationsView,
    MarketplaceClient,
    MarketplaceClientError,
    ViewSynchronizer,
    default_version_key,
)


class FakeSource:
    """Fetch callable that records concurrency and can be held open."""

    def __init__(self, value):
        self.value = value
        self.calls = 0
        self.active = 0
        self.max_active = 0
        self.gate = None

    async def __call__(self):
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            else:
                await asyncio.sleep(0)
            if isinstance(self.value, Exception):
                raise self.value
            return list(self.value)
        finally:
            self.active -= 1


PENDING = [{"id": "a1", "status": "pending"}]
ACCEPTED = [{"id": "a1", "status": "accepted"}]


class TestVersionKey:
    def test_equal_content_equal_key(self):
        assert default_version_key([{"b": 1, "a": 2}]) == default_version_key([{"a": 2, "b": 1}])
        assert default_version_key(PENDING) != default_version_key(ACCEPTED)

    def test_models_are_compared_by_content(self):
        app = JobApplication(id="a1", job_id="j1", worker_id="w1", employer_id="e1")
        same = JobApplication(id="a1", job_id="j1", worker_id="w1", employer_id="e1")
        assert default_version_key([app]) == default_version_key([same])

    def test_server_version_wins(self):
        listing = ApplicationList(applications=[], version="etag-1")
        assert default_version_key(listing) == "etag-1"


class TestViewSynchronizer:
    @pytest.mark.asyncio
    async def test_start_fetches_immediately(self):
        source = FakeSource(PENDING)
        sync = ViewSynchronizer(source, interval=10, settle_delay=0.01)
        updates = []
        sync.subscribe(updates.append)

        sync.start()
        await sync.wait_idle()
        try:
            assert source.calls == 1
            assert sync.state == PENDING
            assert updates == [PENDING]
        finally:
            sync.stop()

    @pytest.mark.asyncio
    async def test_no_overlapping_fetches(self):
        source = FakeSource(PENDING)
        source.gate = asyncio.Event()
        sync = ViewSynchronizer(source, interval=0.01, settle_delay=0.01)

        sync.start()
        try:
            await asyncio.sleep(0.1)
            # Many ticks elapsed while the first fetch was held open
            assert source.calls == 1
            assert sync.in_flight
            assert await sync.refresh() is False

            source.gate.set()
            await asyncio.sleep(0.1)
            assert source.calls > 1
            assert source.max_active == 1
        finally:
            sync.stop()

    @pytest.mark.asyncio
    async def test_unchanged_results_do_not_notify(self):
        source = FakeSource(PENDING)
        sync = ViewSynchronizer(source, interval=0.01, settle_delay=0.01)
        updates = []
        sync.subscribe(updates.append)

        sync.start()
        try:
            await asyncio.sleep(0.1)
            assert source.calls > 2
            assert len(updates) == 1

            source.value = ACCEPTED
            await asyncio.sleep(0.1)
            assert updates[-1] == ACCEPTED
            assert len(updates) == 2
        finally:
            sync.stop()

    @pytest.mark.asyncio
    async def test_manual_refresh(self):
        source = FakeSource(PENDING)
        sync = ViewSynchronizer(source, interval=10, settle_delay=0.01)

        assert await sync.refresh() is False  # not started

        sync.start()
        try:
            await sync.wait_idle()
            source.value = ACCEPTED
            assert await sync.refresh() is True
            assert sync.state == ACCEPTED
            assert source.calls == 2
        finally:
            sync.stop()

    @pytest.mark.asyncio
    async def test_mutation_triggers_refetch_after_settle_delay(self):
        source = FakeSource(PENDING)
        sync = ViewSynchronizer(source, interval=10, settle_delay=0.02)

        sync.start()
        try:
            await sync.wait_idle()
            source.value = ACCEPTED
            sync.notify_mutation()
            assert source.calls == 1

            await asyncio.sleep(0.1)
            await sync.wait_idle()
            assert source.calls == 2
            assert sync.state == ACCEPTED
        finally:
            sync.stop()

    @pytest.mark.asyncio
    async def test_mutation_during_fetch_refetches_afterwards(self):
        source = FakeSource(PENDING)
        sync = ViewSynchronizer(source, interval=10, settle_delay=0.01)

        sync.start()
        try:
            await sync.wait_idle()
            source.gate = asyncio.Event()
            refresh = asyncio.create_task(sync.refresh())
            await asyncio.sleep(0)
            assert sync.in_flight

            sync.notify_mutation()
            await asyncio.sleep(0.05)
            assert source.calls == 2  # settle fired but did not overlap

            source.value = ACCEPTED
            source.gate.set()
            await refresh
            await sync.wait_idle()

            assert source.calls == 3
            assert source.max_active == 1
            assert sync.state == ACCEPTED
        finally:
            sync.stop()

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_stop_others(self):
        source = FakeSource(PENDING)
        sync = ViewSynchronizer(source, interval=10, settle_delay=0.01)

        def broken(state):
            raise RuntimeError("render failed")

        updates = []
        sync.subscribe(broken)
        sync.subscribe(updates.append)

        sync.start()
        try:
            await sync.wait_idle()
            source.gate = asyncio.Event()
            refresh = asyncio.create_task(sync.refresh())
            await asyncio.sleep(0)
            sync.notify_mutation()
            await asyncio.sleep(0.05)

            source.value = ACCEPTED
            source.gate.set()
            await refresh
            await sync.wait_idle()

            # The refetch queued behind the failing notification still ran
            assert source.calls == 3
            assert updates == [PENDING, ACCEPTED]
            assert sync.state == ACCEPTED
        finally:
            sync.stop()

    @pytest.mark.asyncio
    async def test_failing_error_listener(self):
        source = FakeSource(MarketplaceClientError("timeout"))
        sync = ViewSynchronizer(source, interval=10, settle_delay=0.01)
        errors = []
        sync.subscribe_errors(lambda error: 1 / 0)
        sync.subscribe_errors(errors.append)

        sync.start()
        try:
            await sync.wait_idle()
            assert errors == [source.value]
            assert sync.is_active
        finally:
            sync.stop()

    @pytest.mark.asyncio
    async def test_result_after_stop_is_dropped(self):
        source = FakeSource(PENDING)
        source.gate = asyncio.Event()
        sync = ViewSynchronizer(source, interval=10, settle_delay=0.01)
        updates = []
        sync.subscribe(updates.append)

        sync.start()
        await asyncio.sleep(0)
        sync.stop()
        source.gate.set()
        await sync.wait_idle()

        assert source.calls == 1
        assert sync.state is None
        assert updates == []
        assert not sync.is_active

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_state(self):
        source = FakeSource(PENDING)
        sync = ViewSynchronizer(source, interval=10, settle_delay=0.01)
        errors = []
        sync.subscribe_errors(errors.append)

        sync.start()
        try:
            await sync.wait_idle()
            failure = MarketplaceClientError("connection refused")
            source.value = failure

            assert await sync.refresh() is True
            assert sync.state == PENDING
            assert sync.last_error is failure
            assert errors == [failure]

            source.value = ACCEPTED
            await sync.refresh()
            assert sync.last_error is None
            assert sync.state == ACCEPTED
        finally:
            sync.stop()

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        source = FakeSource(PENDING)
        sync = ViewSynchronizer(source, interval=10, settle_delay=0.01)
        updates = []
        unsubscribe = sync.subscribe(updates.append)
        unsubscribe()

        sync.start()
        await sync.wait_idle()
        sync.stop()
        assert updates == []

    def test_invalid_timing(self):
        with pytest.raises(ValueError, match="interval"):
            ViewSynchronizer(FakeSource(PENDING), interval=0)
        with pytest.raises(ValueError, match="settle_delay"):
            ViewSynchronizer(FakeSource(PENDING), interval=1, settle_delay=-1)

    def test_defaults_from_config(self):
        sync = ViewSynchronizer(
            FakeSource(PENDING),
            config=MarketplaceConfig(poll_interval_seconds=3, settle_delay_seconds=0.2),
        )
        assert sync.interval == 3
        assert sync.settle_delay == 0.2


# =============================================================================
# Client and ApplicationsView over a mock transport
# =============================================================================


def application_row(status="pending"):
    return JobApplication(
        id="a1",
        job_id="j1",
        worker_id="worker-1",
        employer_id="employer-1",
        status=status,
        applied_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
    ).to_dict()


LEGACY_JOB = {
    "_id": "j1",
    "employer": {"_id": "employer-1", "companyName": "Singh Farms"},
    "title": "Paddy transplanting",
    "status": "open",
    "salary": "400.50",
}

class FakeServer:
    """Minimal stand-in for the applications API."""

    def __init__(self):
        self.status = "pending"
        self.requests = []
        self.fail_mutations = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "GET" and request.url.path == "/api/v1/applications":
            row = application_row(self.status)
            return httpx.Response(
                200, json={"applications": [row], "total": 1, "version": f"v-{self.status}"}
            )
        if request.method == "PATCH" and request.url.path == "/api/v1/applications/a1/status":
            if self.fail_mutations:
                return httpx.Response(
                    409,
                    json={"detail": "Cannot move application", "error": "IllegalTransitionError"},
                )
            self.status = json.loads(request.content)["status"]
            return httpx.Response(200, json=application_row(self.status))
        if request.method == "GET" and request.url.path == "/api/v1/applications/current":
            return httpx.Response(200, json={"applications": [application_row(self.status)]})
        if request.method == "PATCH" and request.url.path == "/api/v1/applications/a1/payment":
            body = json.loads(request.content)
            row = application_row("completed")
            row.update(payment_status=body["status"], payment_amount=body.get("amount"))
            return httpx.Response(200, json=row)
        if request.method == "GET" and request.url.path == "/api/v1/jobs":
            return httpx.Response(200, json={"jobs": [LEGACY_JOB], "total": 1})
        if request.method == "GET" and request.url.path == "/api/v1/jobs/j1":
            return httpx.Response(200, json=LEGACY_JOB)
        return httpx.Response(404, json={"detail": "Not found", "error": "NotFound"})

    @property
    def list_calls(self):
        return [
            r
            for r in self.requests
            if r.method == "GET" and r.url.path == "/api/v1/applications"
        ]


@pytest.fixture
def server():
    return FakeServer()


@pytest.fixture
def employer_client(server):
    return MarketplaceClient(
        "http://testserver",
        Actor(id="employer-1", role="employer"),
        config=MarketplaceConfig(poll_interval_seconds=10, settle_delay_seconds=0.01),
        transport=httpx.MockTransport(server),
    )


class TestMarketplaceClient:
    @pytest.mark.asyncio
    async def test_list_sends_actor_and_filters(self, server, employer_client):
        async with employer_client:
            listing = await employer_client.list_applications(employer_id="employer-1", job_id="j1")

        assert listing.version == "v-pending"
        assert [a.id for a in listing.applications] == ["a1"]
        request = server.requests[0]
        assert request.headers["X-Actor-Id"] == "employer-1"
        assert request.headers["X-Actor-Role"] == "employer"
        assert request.url.params["employer"] == "employer-1"
        assert request.url.params["job"] == "j1"
        assert "worker" not in request.url.params

    @pytest.mark.asyncio
    async def test_jobs_are_normalized(self, server, employer_client):
        async with employer_client:
            jobs = await employer_client.list_jobs(status="active")
            job = await employer_client.get_job("j1")

        assert [j.id for j in jobs] == ["j1"]
        assert server.requests[0].url.params["status"] == "active"
        assert job.status == "active"
        assert job.company_name == "Singh Farms"
        assert job.salary == Decimal("400.50")

    @pytest.mark.asyncio
    async def test_current_applications(self, server, employer_client):
        async with employer_client:
            listing = await employer_client.current_applications()

        assert [a.id for a in listing.applications] == ["a1"]
        assert listing.version is not None

    @pytest.mark.asyncio
    async def test_payment_amount_sent_as_decimal_string(self, server, employer_client):
        async with employer_client:
            paid = await employer_client.record_payment("a1", amount=0.1)

        assert json.loads(server.requests[0].content)["amount"] == "0.1"
        assert paid.payment_amount == Decimal("0.1")
        assert paid.payment_status == "paid"

    @pytest.mark.asyncio
    async def test_error_response(self, server, employer_client):
        server.fail_mutations = True
        async with employer_client:
            with pytest.raises(MarketplaceClientError) as exc_info:
                await employer_client.set_status("a1", "accepted")

        assert exc_info.value.status_code == 409
        assert exc_info.value.error == "IllegalTransitionError"

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = MarketplaceClient(
            "http://testserver",
            Actor(id="worker-1", role="worker"),
            transport=httpx.MockTransport(refuse),
        )
        async with client:
            with pytest.raises(MarketplaceClientError) as exc_info:
                await client.list_applications(worker_id="worker-1")
        assert exc_info.value.status_code is None


class TestApplicationsView:
    @pytest.mark.asyncio
    async def test_mutation_is_followed_by_refetch(self, server, employer_client):
        view = ApplicationsView(employer_client, job_id="j1")
        async with employer_client:
            async with view:
                await view.synchronizer.wait_idle()
                assert [a.status for a in view.applications] == ["pending"]
                assert server.list_calls[0].url.params["employer"] == "employer-1"

                updated = await view.set_status("a1", "accepted")
                assert updated.status == "accepted"

                await asyncio.sleep(0.05)
                await view.synchronizer.wait_idle()
                assert len(server.list_calls) == 2
                assert [a.status for a in view.applications] == ["accepted"]

    @pytest.mark.asyncio
    async def test_failed_mutation_still_refetches(self, server, employer_client):
        server.fail_mutations = True
        view = ApplicationsView(employer_client)
        async with employer_client:
            async with view:
                await view.synchronizer.wait_idle()
                with pytest.raises(MarketplaceClientError):
                    await view.set_status("a1", "accepted")

                await asyncio.sleep(0.05)
                await view.synchronizer.wait_idle()
                assert len(server.list_calls) == 2
                assert view.last_error is None

    def test_worker_view_scopes_to_worker(self):
        client = MarketplaceClient("http://testserver", Actor(id="worker-1", role="worker"))
        view = ApplicationsView(client)
        assert view.applications == []
        assert view._query["worker_id"] == "worker-1"
        assert view._query["employer_id"] is None
