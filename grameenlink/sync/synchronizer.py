"""
Polling view synchronizer.

Keeps a locally held copy of server state current for a dashboard without a
push channel:

- ``start()`` fetches once immediately, then on every interval tick.
- A tick (or a manual ``refresh()``) never starts a fetch while another
  fetch is still unresolved.
- Subscribers are only notified when the fetched data actually changed,
  judged by comparing version keys.
- After a mutation, ``notify_mutation()`` schedules a refetch once a short
  settle delay has passed. If a fetch is already running at that point the
  refetch runs as soon as it resolves, since that fetch may predate the
  mutation.
- ``stop()`` cancels the timers. A fetch that is already in flight is left
  to finish, but its result is discarded.

A failed fetch keeps the previous state, records ``last_error`` and notifies
error subscribers. There is no retry beyond the next scheduled tick.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional

from grameenlink.marketplace.applications.models import JobApplication
from grameenlink.marketplace.config import MarketplaceConfig
from grameenlink.sync.client import ApplicationList, MarketplaceClient
from grameenlink.types import content_digest

logger = logging.getLogger(__name__)

Fetch = Callable[[], Awaitable[Any]]
Listener = Callable[[Any], None]


def _plain(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def default_version_key(value: Any) -> str:
    """Version of a fetched result.

    A server-supplied ``version`` attribute wins; otherwise the digest of the
    result's canonical JSON form is used.
    """
    version = getattr(value, "version", None)
    if version:
        return str(version)
    return content_digest(_plain(value))


class ViewSynchronizer:
    """Reconciles one fetched resource with local view state."""

    def __init__(
        self,
        fetch: Fetch,
        interval: Optional[float] = None,
        settle_delay: Optional[float] = None,
        version_key: Callable[[Any], str] = default_version_key,
        config: Optional[MarketplaceConfig] = None,
    ):
        config = config or MarketplaceConfig()
        self._fetch = fetch
        self.interval = config.poll_interval_seconds if interval is None else interval
        self.settle_delay = config.settle_delay_seconds if settle_delay is None else settle_delay
        if self.interval <= 0:
            raise ValueError("interval must be positive")
        if self.settle_delay < 0:
            raise ValueError("settle_delay cannot be negative")
        self._version_key = version_key

        self.state: Any = None
        self.version: Optional[str] = None
        self.last_error: Optional[BaseException] = None
        self.fetch_count = 0

        self._active = False
        self._generation = 0
        self._in_flight = False
        self._refetch_pending = False
        self._poll_task: Optional[asyncio.Task] = None
        self._settle_task: Optional[asyncio.Task] = None
        self._fetch_task: Optional[asyncio.Task] = None
        self._listeners: List[Listener] = []
        self._error_listeners: List[Listener] = []

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def start(self) -> None:
        """Begin synchronizing: one fetch now, then one per interval."""
        if self._active:
            return
        self._active = True
        self._generation += 1
        if self._in_flight:
            # A fetch from the previous session is still out; refetch once it lands
            self._refetch_pending = True
        else:
            self._spawn_fetch()
        self._poll_task = asyncio.get_running_loop().create_task(self._poll())
        logger.debug(f"synchronizer started | interval={self.interval}s")

    def stop(self) -> None:
        """Stop synchronizing. Results of a fetch still in flight are dropped."""
        if not self._active:
            return
        self._active = False
        self._refetch_pending = False
        for task in (self._poll_task, self._settle_task):
            if task is not None and not task.done():
                task.cancel()
        self._poll_task = None
        self._settle_task = None
        logger.debug("synchronizer stopped")

    async def refresh(self) -> bool:
        """Fetch now, outside the interval.

        Returns False without fetching when a fetch is already in flight or
        the synchronizer is stopped.
        """
        if not self._active or self._in_flight:
            return False
        self._spawn_fetch()
        await self.wait_idle()
        return True

    def notify_mutation(self) -> None:
        """Schedule a refetch after the settle delay following a local mutation."""
        if not self._active:
            return
        if self._settle_task is not None and not self._settle_task.done():
            self._settle_task.cancel()
        self._settle_task = asyncio.get_running_loop().create_task(self._settle())

    async def wait_idle(self) -> None:
        """Wait for the fetch currently in flight, if any, to resolve."""
        while self._fetch_task is not None and not self._fetch_task.done():
            await asyncio.wait({self._fetch_task})

    # =========================================================================
    # Subscribers
    # =========================================================================

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener(state)`` whenever the state changes. Returns an unsubscribe function."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    def subscribe_errors(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener(error)`` whenever a fetch fails."""
        self._error_listeners.append(listener)
        return (
            lambda: self._error_listeners.remove(listener)
            if listener in self._error_listeners
            else None
        )

    # =========================================================================
    # Internals
    # =========================================================================

    async def _poll(self) -> None:
        while self._active:
            await asyncio.sleep(self.interval)
            if not self._active:
                break
            if self._in_flight:
                logger.debug("poll tick skipped: fetch in flight")
                continue
            self._spawn_fetch()

    async def _settle(self) -> None:
        await asyncio.sleep(self.settle_delay)
        if not self._active:
            return
        if self._in_flight:
            self._refetch_pending = True
            return
        self._spawn_fetch()

    def _spawn_fetch(self) -> None:
        if self._in_flight:
            return
        # Claimed before the task runs so a tick in the same loop pass sees it
        self._in_flight = True
        self._fetch_task = asyncio.get_running_loop().create_task(
            self._fetch_once(self._generation)
        )

    async def _fetch_once(self, generation: int) -> None:
        self.fetch_count += 1
        try:
            result = await self._fetch()
        except Exception as e:
            self._in_flight = False
            if self._is_current(generation):
                self._handle_error(e)
            else:
                logger.debug(f"dropping fetch error from a stopped session: {e}")
        else:
            self._in_flight = False
            if self._is_current(generation):
                self._apply(result)
            else:
                logger.debug("dropping fetch result from a stopped session")

        if self._refetch_pending and self._active:
            self._refetch_pending = False
            self._spawn_fetch()

    def _is_current(self, generation: int) -> bool:
        return self._active and generation == self._generation

    def _apply(self, result: Any) -> None:
        self.last_error = None
        key = self._version_key(result)
        if key == self.version:
            return
        self.state = result
        self.version = key
        _notify(self._listeners, result)

    def _handle_error(self, error: Exception) -> None:
        self.last_error = error
        logger.warning(f"fetch failed, keeping previous state: {error}")
        _notify(self._error_listeners, error)


def _notify(listeners: List[Listener], value: Any) -> None:
    """Call each listener in turn; one failing does not stop the rest."""
    for listener in list(listeners):
        try:
            listener(value)
        except Exception:
            logger.exception(f"listener {listener!r} failed")


class ApplicationsView:
    """Dashboard view of applications kept in sync with the server.

    A worker view lists the worker's own applications; an employer view
    lists applications to the employer's jobs, optionally narrowed to one
    job. Mutation helpers call the server, then schedule a refetch instead
    of trusting the returned record, since another actor may have changed
    the same data in the meantime.
    """

    def __init__(
        self,
        client: MarketplaceClient,
        job_id: Optional[str] = None,
        status: Optional[str] = None,
        interval: Optional[float] = None,
        settle_delay: Optional[float] = None,
    ):
        self.client = client
        actor = client.actor
        self._query = {
            "worker_id": actor.id if actor.is_worker else None,
            "employer_id": actor.id if actor.is_employer else None,
            "job_id": job_id,
            "status": status,
        }
        self.synchronizer = ViewSynchronizer(
            self._load,
            interval=interval,
            settle_delay=settle_delay,
            config=client.config,
        )

    async def _load(self) -> ApplicationList:
        return await self.client.list_applications(**self._query)

    @property
    def applications(self) -> List[JobApplication]:
        state = self.synchronizer.state
        return list(state.applications) if state is not None else []

    @property
    def last_error(self) -> Optional[BaseException]:
        return self.synchronizer.last_error

    def start(self) -> None:
        self.synchronizer.start()

    def stop(self) -> None:
        self.synchronizer.stop()

    async def refresh(self) -> bool:
        return await self.synchronizer.refresh()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self.synchronizer.subscribe(listener)

    async def __aenter__(self) -> "ApplicationsView":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.stop()

    # Mutations

    async def submit(self, job_id: str, notes: Optional[str] = None) -> JobApplication:
        return await self._mutate(self.client.submit(job_id, notes=notes))

    async def cancel(self, application_id: str) -> JobApplication:
        return await self._mutate(self.client.cancel(application_id))

    async def set_status(self, application_id: str, status: str) -> JobApplication:
        return await self._mutate(self.client.set_status(application_id, status))

    async def select_final(self, application_id: str) -> JobApplication:
        return await self._mutate(self.client.select_final(application_id))

    async def mark_complete(self, application_id: str) -> JobApplication:
        return await self._mutate(self.client.mark_complete(application_id))

    async def _mutate(self, call: Awaitable[JobApplication]) -> JobApplication:
        try:
            return await call
        finally:
            # Failed mutations refetch too
            self.synchronizer.notify_mutation()
