"""Pydantic models for sprint work items and time entries."""

import datetime as dt
from decimal import ROUND_UP, Decimal

from pydantic import BaseModel, ConfigDict, Field

from sprint_tracker.config.workflow import EXPECTED_HOURS_PER_DAY, WorkItemType


class WorkItem(BaseModel):
    """An immutable snapshot of an Azure DevOps work item.

    ``parent`` is a childless copy of the parent, one level up only.
    ``children`` is ``None`` until the item has been through graph assembly
    and an empty tuple afterwards if nothing points at it.
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(description="Work item id; values below 1 are local placeholders")
    type: WorkItemType = Field(description="Work item type")
    title: str = Field(default="", description="Work item title")
    state: str = Field(default="", description="State label, e.g. 'Active'")
    completed_work: float = Field(default=0.0, ge=0, description="Completed work")
    remaining_work: float = Field(default=0.0, ge=0, description="Remaining work")
    parent: "WorkItem | None" = Field(default=None, description="Parent snapshot")
    children: "tuple[WorkItem, ...] | None" = Field(default=None, description="Direct children")

    @property
    def parent_id(self) -> int | None:
        """Id of the parent, if linked."""
        return self.parent.id if self.parent is not None else None

    @property
    def is_placeholder_only(self) -> bool:
        """Check if this item was synthesized locally and does not exist remotely."""
        return self.id < 1

    def is_same(self, other: "WorkItem") -> bool:
        """Check if both snapshots describe the same work item."""
        return self.id == other.id

    def without_relations(self) -> "WorkItem":
        """Return a copy with no parent and no children."""
        return self.model_copy(update={"parent": None, "children": None})

    def with_parent(self, parent: "WorkItem") -> "WorkItem":
        """Return a copy linked to a childless snapshot of ``parent``."""
        return self.model_copy(update={"parent": parent.without_relations()})

    def with_children(self, children: "list[WorkItem] | tuple[WorkItem, ...]") -> "WorkItem":
        """Return a copy with ``children`` as its direct children."""
        return self.model_copy(update={"children": tuple(children)})


class RemoteWorkItem(BaseModel):
    """A flat work item record as returned by the remote service."""

    model_config = ConfigDict(frozen=True)

    id: int
    type: WorkItemType
    title: str = ""
    state: str = ""
    completed_work: float = 0.0
    remaining_work: float = 0.0
    parent_id: int | None = None

    def to_work_item(self) -> WorkItem:
        """Convert to an unlinked work item snapshot."""
        return WorkItem(
            id=self.id,
            type=self.type,
            title=self.title,
            state=self.state,
            completed_work=self.completed_work,
            remaining_work=self.remaining_work,
        )


class PersistableTimeEntry(BaseModel):
    """The part of a time entry that is written to the local store."""

    model_config = ConfigDict(frozen=True)

    hours: float = Field(gt=0)
    work_item_id: int
    burn: bool = True
    date: dt.date


class TimeEntry(BaseModel):
    """Hours logged against a work item."""

    model_config = ConfigDict(frozen=True)

    hours: float = Field(gt=0, description="Hours spent")
    work_item: WorkItem = Field(description="Target work item")
    burn: bool = Field(default=True, description="Deduct the hours from remaining work")
    close_work_item: bool = Field(default=False, description="Set the work item state to Closed")
    date: dt.date = Field(default_factory=dt.date.today)
    expected_hours_per_day: int = Field(default=EXPECTED_HOURS_PER_DAY, gt=0)

    @classmethod
    def for_selection(
        cls,
        work_item: WorkItem,
        hours: float,
        burn: bool = True,
        close_work_item: bool = False,
        expected_hours_per_day: int = EXPECTED_HOURS_PER_DAY,
    ) -> "TimeEntry":
        """Create an entry for a selected leaf, logging placeholders on their parent."""
        target = work_item
        if work_item.is_placeholder_only:
            if work_item.parent is None:
                raise ValueError(f"Placeholder work item {work_item.id} has no parent")
            target = work_item.parent
        return cls(
            hours=hours,
            work_item=target,
            burn=burn,
            close_work_item=close_work_item,
            expected_hours_per_day=expected_hours_per_day,
        )

    def compute_remaining_work(self) -> float:
        """Remaining work after this entry, never below zero."""
        if not self.burn:
            return self.work_item.remaining_work
        return max(self.work_item.remaining_work - self.hours, 0.0)

    def compute_completed_work(self) -> float:
        """Completed work after this entry.

        Tasks accrue raw hours. Other types accrue the fraction of a working
        day, rounded up to two decimals.
        """
        if self.work_item.type == WorkItemType.TASK:
            return self.work_item.completed_work + self.hours
        fraction = (Decimal(str(self.hours)) / Decimal(self.expected_hours_per_day)).quantize(
            Decimal("0.01"), rounding=ROUND_UP
        )
        return self.work_item.completed_work + float(fraction)

    def to_persistable(self) -> PersistableTimeEntry:
        """Project the entry onto its stored fields."""
        return PersistableTimeEntry(
            hours=self.hours,
            work_item_id=self.work_item.id,
            burn=self.burn,
            date=self.date,
        )


class LoadResult(BaseModel):
    """Outcome of looking up the work items to log time against."""

    work_items: list[WorkItem] = Field(default_factory=list, description="Eligible work items")
    total_hours_logged_today: float = Field(default=0.0, description="Hours already logged today")
