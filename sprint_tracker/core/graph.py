"""Work item hierarchy assembly.

The remote query returns a flat list of records that point at their parent
by id. This module turns that list into one level of parent/child nesting:
every node carries its direct children, and every child carries a childless
snapshot of its parent. Grandparent links are not followed.
"""

import logging
from collections.abc import Iterable, Iterator

from sprint_tracker.api.models import RemoteWorkItem, WorkItem
from sprint_tracker.config.workflow import NEW_STATE, WorkItemType

logger = logging.getLogger(__name__)


def placeholder_parent(parent_id: int) -> WorkItem:
    """Create a stand-in for a parent that was not part of the fetched records."""
    return WorkItem(
        id=parent_id,
        type=WorkItemType.EPIC,
        title=f"[Work item {parent_id}]",
        state=NEW_STATE,
        completed_work=0.0,
        remaining_work=0.0,
    )


class WorkItemGraph:
    """Assembled work items keyed by id."""

    def __init__(self, nodes: dict[int, WorkItem]) -> None:
        self._nodes = nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._nodes

    def __iter__(self) -> Iterator[WorkItem]:
        return iter(self._nodes.values())

    def get(self, item_id: int) -> WorkItem | None:
        """Get an assembled node by id."""
        return self._nodes.get(item_id)

    def nodes(self) -> list[WorkItem]:
        """Get every node, each with its direct children."""
        return list(self._nodes.values())

    def roots(self) -> list[WorkItem]:
        """Get the top-level nodes (those without a parent)."""
        return [node for node in self._nodes.values() if node.parent is None]

    def children_of(self, item_id: int) -> tuple[WorkItem, ...]:
        """Get the direct children of a node, empty if unknown."""
        node = self._nodes.get(item_id)
        return (node.children or ()) if node else ()


def build_work_item_graph(records: Iterable[RemoteWorkItem]) -> WorkItemGraph:
    """Assemble flat records into a parent/child graph.

    Parents referenced but not present in ``records`` are replaced by
    placeholder epics, so no record is ever dropped.
    """
    records = list(records)
    by_id: dict[int, RemoteWorkItem] = {}
    for record in records:
        by_id.setdefault(record.id, record)

    buffer: dict[int, WorkItem] = {}
    parent_of: dict[int, int] = {}

    def convert(item_id: int) -> WorkItem:
        if item_id not in buffer:
            record = by_id.get(item_id)
            if record is None:
                logger.debug("Parent %d not fetched, using a placeholder", item_id)
                buffer[item_id] = placeholder_parent(item_id)
            else:
                buffer[item_id] = record.to_work_item()
        return buffer[item_id]

    # Attach: link every record to its parent, creating parents on demand
    for record in records:
        convert(record.id)
        if record.parent_id is None or record.parent_id == record.id:
            continue
        logger.debug("Processing parent %d for work item %d", record.parent_id, record.id)
        convert(record.parent_id)
        parent_of[record.id] = record.parent_id

    # Recompute: children are assigned from the parent links, once, over the whole buffer
    children_ids: dict[int, list[int]] = {item_id: [] for item_id in buffer}
    for child_id, parent_id in parent_of.items():
        children_ids[parent_id].append(child_id)

    def linked(item_id: int) -> WorkItem:
        item = buffer[item_id]
        parent_id = parent_of.get(item_id)
        return item.with_parent(buffer[parent_id]) if parent_id is not None else item

    nodes = {
        item_id: linked(item_id).with_children([linked(child_id) for child_id in sorted(children_ids[item_id])])
        for item_id in buffer
    }
    return WorkItemGraph(nodes)


def build_work_item_hierarchy(records: Iterable[RemoteWorkItem]) -> list[WorkItem]:
    """Assemble flat records and return only the top-level work items."""
    return build_work_item_graph(records).roots()
