"""Selection of the work items time can be logged against."""

from collections.abc import Iterable

from sprint_tracker.api.models import WorkItem
from sprint_tracker.config.workflow import NEW_STATE, NO_TASK_TITLE, WorkItemType

ELIGIBLE_TYPES = (WorkItemType.USER_STORY, WorkItemType.BUG)


def placeholder_task(parent: WorkItem) -> WorkItem:
    """Create the stand-in task used to log time directly on ``parent``.

    The id is the negated parent id, which never collides with a real id.
    """
    return WorkItem(
        id=-parent.id,
        type=WorkItemType.TASK,
        title=NO_TASK_TITLE,
        state=NEW_STATE,
        completed_work=0.0,
        remaining_work=0.0,
        children=(),
    ).with_parent(parent)


def _needs_placeholder_task(item: WorkItem, allow_time_entry_without_task: bool) -> bool:
    if item.children:
        return False
    if item.type == WorkItemType.BUG:
        return True
    return item.type == WorkItemType.USER_STORY and not allow_time_entry_without_task


def select_eligible_work_items(
    items: Iterable[WorkItem],
    allow_time_entry_without_task: bool = False,
) -> list[WorkItem]:
    """Pick the user stories and bugs from assembled work items.

    Childless bugs, and childless user stories unless
    ``allow_time_entry_without_task`` is set, get a single placeholder task
    so there is always a leaf to select. The result is ordered by type
    (user stories first, then bugs) and then by id.
    """
    eligible = []
    for item in items:
        if item.type not in ELIGIBLE_TYPES:
            continue
        if _needs_placeholder_task(item, allow_time_entry_without_task):
            item = item.with_children([placeholder_task(item)])
        eligible.append(item)
    return sorted(eligible, key=lambda item: (item.type.order, item.id))


def selectable_leaves(items: Iterable[WorkItem]) -> list[WorkItem]:
    """Get every leaf time can be logged against, in display order."""
    return [child for item in items for child in item.children or ()]


def resolve_entry_target(work_item: WorkItem) -> WorkItem:
    """Get the work item that really receives time logged on ``work_item``.

    Placeholder tasks stand for their parent.
    """
    if work_item.is_placeholder_only and work_item.parent is not None:
        return work_item.parent
    return work_item
