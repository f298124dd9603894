"""Time tracking orchestration.

:class:`TimeTrackingFacade` ties the local time entry store, the remote
work item client, the graph builder and the eligibility rules together:

* fetching: sum today's local entries, and unless the day is already full,
  load the sprint's work items and reduce them to the eligible ones;
* saving: store each entry locally, push it to Azure DevOps, then refresh.

A remote failure during a save stops the batch. Entries stored locally but
not pushed are reported as pending reconciliation.
"""

import asyncio
import datetime as dt
import logging
from collections.abc import Callable, Sequence
from enum import Enum
from typing import Any, Protocol

from pydantic import BaseModel, Field

from sprint_tracker.api.client import AzureDevOpsClient, AzureDevOpsError
from sprint_tracker.api.models import LoadResult, PersistableTimeEntry, RemoteWorkItem, TimeEntry, WorkItem
from sprint_tracker.config.auth import AuthError
from sprint_tracker.config.settings import Settings
from sprint_tracker.config.workflow import CLOSED_STATE
from sprint_tracker.core.eligibility import resolve_entry_target, select_eligible_work_items
from sprint_tracker.core.graph import build_work_item_graph
from sprint_tracker.storage.local import TimeEntryStore, TimeEntryStoreError

logger = logging.getLogger(__name__)

REMOTE_ERRORS = (AzureDevOpsError, AuthError)


class SaveState(str, Enum):
    """State of the save pipeline."""

    SAVING = "saving"
    ERROR = "error"
    COMPLETE = "complete"


class WorkItemFetchError(Exception):
    """Raised when the sprint's work items cannot be loaded."""


class WorkTrackingClient(Protocol):
    """The remote operations the facade relies on."""

    async def __aenter__(self) -> "WorkTrackingClient": ...

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None: ...

    async def list_sprint_work_items(self) -> list[RemoteWorkItem]: ...

    async def update_work_item(
        self,
        work_item_id: int,
        remaining_work: float,
        completed_work: float,
        state: str | None = None,
    ) -> Any: ...


class SaveFailure(BaseModel):
    """The entry a save batch stopped at."""

    index: int = Field(description="Position of the entry in the batch")
    work_item_id: int = Field(description="Work item the entry targets")
    message: str = Field(description="What went wrong")
    stored_locally: bool = Field(description="Whether the entry reached the local store")


class SaveResult(BaseModel):
    """Outcome of a save batch."""

    state: SaveState
    saved: list[TimeEntry] = Field(default_factory=list, description="Entries stored locally and remotely")
    failure: SaveFailure | None = None
    pending_reconciliation: list[PersistableTimeEntry] = Field(
        default_factory=list, description="Entries stored locally but not pushed remotely"
    )
    skipped: list[TimeEntry] = Field(default_factory=list, description="Entries never attempted")
    refresh_error: str | None = Field(default=None, description="Refresh failure after a successful save")


ClientFactory = Callable[[Settings], WorkTrackingClient]


class TimeTrackingFacade:
    """Find the work items to log time against and save time entries."""

    def __init__(
        self,
        settings: Settings,
        store: TimeEntryStore,
        client_factory: ClientFactory = AzureDevOpsClient.from_settings,
        on_loading: Callable[[], None] | None = None,
        on_loaded: Callable[[list[WorkItem], float], None] | None = None,
        on_saving: Callable[[SaveState], None] | None = None,
        saving_delay: float = 0.0,
        today: Callable[[], dt.date] = dt.date.today,
    ) -> None:
        """Initialize the facade.

        Args:
            settings: Connection and time tracking settings
            store: Local time entry store
            client_factory: Builds a remote client for the given settings
            on_loading: Called when a fetch starts
            on_loaded: Called with the eligible items and today's hours when a fetch completes
            on_saving: Called on every save state change
            saving_delay: Pause before processing a batch, lets a UI show the SAVING state
            today: Date provider
        """
        self._settings = settings
        self._store = store
        self._client_factory = client_factory
        self._on_loading = on_loading
        self._on_loaded = on_loaded
        self._on_saving = on_saving
        self._saving_delay = saving_delay
        self._today = today

        self._save_state = SaveState.COMPLETE
        self._fetch_task: asyncio.Task[LoadResult] | None = None
        self._last_load: LoadResult | None = None
        self._last_save_result: SaveResult | None = None
        self._pending: list[PersistableTimeEntry] = []

    @property
    def settings(self) -> Settings:
        """Get the settings in use."""
        return self._settings

    @property
    def save_state(self) -> SaveState:
        """Get the current save pipeline state."""
        return self._save_state

    @property
    def last_load(self) -> LoadResult | None:
        """Get the result of the last completed fetch."""
        return self._last_load

    @property
    def last_save_result(self) -> SaveResult | None:
        """Get the result of the last save batch."""
        return self._last_save_result

    @property
    def pending_reconciliation(self) -> list[PersistableTimeEntry]:
        """Get every entry stored locally this session but never pushed remotely."""
        return list(self._pending)

    def reconfigure(self, settings: Settings) -> "TimeTrackingFacade":
        """Create a facade for new settings, sharing the store and callbacks."""
        return TimeTrackingFacade(
            settings,
            self._store,
            client_factory=self._client_factory,
            on_loading=self._on_loading,
            on_loaded=self._on_loaded,
            on_saving=self._on_saving,
            saving_delay=self._saving_delay,
            today=self._today,
        )

    # Fetching

    def refresh(self, settings: Settings | None = None) -> "asyncio.Task[LoadResult] | None":
        """Start loading the work items in the background.

        Must be called from a running event loop. If a fetch is already
        running, that fetch is returned instead of starting another one;
        replaced settings then apply from the next fetch.

        Returns:
            The fetch task, or None if the settings are incomplete
        """
        logger.debug("Refresh triggered / new settings? %s", settings is not None)
        if settings is not None:
            self._settings = settings
        return self._start_fetch()

    async def find_work_items_to_entry_time(self) -> LoadResult | None:
        """Load the work items time can be logged against.

        Returns:
            The eligible items and today's hours, or None if the settings are incomplete

        Raises:
            WorkItemFetchError: If the remote lookup fails
        """
        task = self._start_fetch()
        if task is None:
            return None
        return await task

    def _start_fetch(self) -> "asyncio.Task[LoadResult] | None":
        if not self._settings.is_valid():
            logger.debug("Settings incomplete, lookup not happening")
            return None
        if self._fetch_task is not None and not self._fetch_task.done():
            logger.debug("Fetch already in progress, joining it")
            return self._fetch_task
        if self._on_loading:
            self._on_loading()
        self._fetch_task = asyncio.create_task(self._load_work_items())
        return self._fetch_task

    async def _load_work_items(self) -> LoadResult:
        settings = self._settings
        entries = await asyncio.to_thread(self._store.list_entries_for_date, self._today())
        total = sum(entry.hours for entry in entries)
        logger.info("Number of entries logged today: %d, with a total time of %s hours", len(entries), total)

        if total >= settings.expected_hours_per_day:
            logger.debug(
                "Number of hours logged already reaches %d, lookup not happening",
                settings.expected_hours_per_day,
            )
            result = LoadResult(work_items=[], total_hours_logged_today=total)
        else:
            work_items = await self._find_work_items_in_sprint(settings)
            result = LoadResult(work_items=work_items, total_hours_logged_today=total)

        self._last_load = result
        if self._on_loaded:
            self._on_loaded(result.work_items, result.total_hours_logged_today)
        return result

    async def _find_work_items_in_sprint(self, settings: Settings) -> list[WorkItem]:
        try:
            async with self._client_factory(settings) as client:
                records = await client.list_sprint_work_items()
        except REMOTE_ERRORS as e:
            raise WorkItemFetchError(f"Could not load sprint work items: {e}") from e

        graph = build_work_item_graph(records)
        return select_eligible_work_items(graph.nodes(), settings.allow_time_entry_without_task)

    # Saving

    def start_save(self, entries: Sequence[TimeEntry]) -> "asyncio.Task[SaveResult]":
        """Start saving entries in the background.

        The SAVING state is reported before this returns.
        """
        self._set_save_state(SaveState.SAVING)
        return asyncio.create_task(self._save_batch(entries))

    async def save_time_entries(self, entries: Sequence[TimeEntry]) -> SaveResult:
        """Store entries locally and remotely, strictly in order, then refresh.

        Every entry is computed from the work item snapshot it carries, so
        several entries for the same item in one batch do not see each
        other's updates.
        """
        self._set_save_state(SaveState.SAVING)
        return await self._save_batch(entries)

    async def _save_batch(self, entries: Sequence[TimeEntry]) -> SaveResult:
        logger.info("Saving %d time entries for date: %s", len(entries), self._today())
        try:
            result = await self._save(list(entries))
        except BaseException:
            self._set_save_state(SaveState.ERROR)
            raise
        self._last_save_result = result
        self._set_save_state(result.state)
        return result

    async def _save(self, entries: list[TimeEntry]) -> SaveResult:
        if self._saving_delay:
            await asyncio.sleep(self._saving_delay)

        entries = [self._resolve_target(entry) for entry in entries]
        saved: list[TimeEntry] = []
        pending: list[PersistableTimeEntry] = []
        index = 0
        stored = False

        if entries:
            try:
                async with self._client_factory(self._settings) as client:
                    for index, entry in enumerate(entries):
                        stored = False
                        record = await asyncio.to_thread(self._store.append_time_entry, entry.to_persistable())
                        stored = True
                        pending.append(record)
                        await self._push(client, entry)
                        pending.pop()
                        saved.append(entry)
            except Exception as e:
                failed = entries[index]
                logger.error(
                    "Saving time entry %d for work item %d failed, %d entries not attempted: %s",
                    index + 1,
                    failed.work_item.id,
                    len(entries) - index - 1,
                    e,
                    exc_info=not isinstance(e, (TimeEntryStoreError, *REMOTE_ERRORS)),
                )
                self._pending.extend(pending)
                return SaveResult(
                    state=SaveState.ERROR,
                    saved=saved,
                    failure=SaveFailure(
                        index=index,
                        work_item_id=failed.work_item.id,
                        message=str(e) or type(e).__name__,
                        stored_locally=stored,
                    ),
                    pending_reconciliation=pending,
                    skipped=entries[index + 1 :],
                )

        refresh_error = None
        try:
            await self._refresh_after_save()
        except WorkItemFetchError as e:
            logger.warning("Refresh after save failed: %s", e)
            refresh_error = str(e)

        return SaveResult(state=SaveState.COMPLETE, saved=saved, refresh_error=refresh_error)

    async def _push(self, client: WorkTrackingClient, entry: TimeEntry) -> None:
        await client.update_work_item(
            entry.work_item.id,
            remaining_work=entry.compute_remaining_work(),
            completed_work=entry.compute_completed_work(),
            state=CLOSED_STATE if entry.close_work_item else None,
        )

    async def _refresh_after_save(self) -> None:
        # A fetch started before the save would report stale hours
        running = self._fetch_task
        if running is not None and not running.done():
            await asyncio.wait([running])
        await self.find_work_items_to_entry_time()

    def _resolve_target(self, entry: TimeEntry) -> TimeEntry:
        target = resolve_entry_target(entry.work_item)
        if target is entry.work_item:
            return entry
        return entry.model_copy(update={"work_item": target})

    def _set_save_state(self, state: SaveState) -> None:
        self._save_state = state
        if self._on_saving:
            self._on_saving(state)
