"""Time tracking reconciliation: graph assembly, eligibility and orchestration."""

from sprint_tracker.core.eligibility import select_eligible_work_items, selectable_leaves
from sprint_tracker.core.facade import SaveResult, SaveState, TimeTrackingFacade, WorkItemFetchError
from sprint_tracker.core.graph import WorkItemGraph, build_work_item_graph, build_work_item_hierarchy

__all__ = [
    "SaveResult",
    "SaveState",
    "TimeTrackingFacade",
    "WorkItemFetchError",
    "WorkItemGraph",
    "build_work_item_graph",
    "build_work_item_hierarchy",
    "select_eligible_work_items",
    "selectable_leaves",
]
