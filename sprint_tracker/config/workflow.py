"""Work item types and workflow constants.

Azure DevOps exposes work item types and states as free-text labels.
This module maps the labels we care about onto a fixed set of types and
holds the field reference names used when reading and updating items.
"""

from enum import Enum


class WorkItemType(str, Enum):
    """Work item types, in hierarchy order."""

    EPIC = "epic"
    FEATURE = "feature"
    USER_STORY = "user_story"
    TASK = "task"
    BUG = "bug"

    @classmethod
    def from_ado_name(cls, value: str | None) -> "WorkItemType":
        """Map an Azure DevOps 'System.WorkItemType' value to a type.

        Anything that is not a known container or leaf type is treated as a
        user story (Product Backlog Item, Requirement, ...).
        """
        names = {
            "epic": cls.EPIC,
            "feature": cls.FEATURE,
            "task": cls.TASK,
            "bug": cls.BUG,
        }
        return names.get((value or "").strip().lower(), cls.USER_STORY)

    @property
    def order(self) -> int:
        """Position of the type in declaration order."""
        return list(WorkItemType).index(self)


EXPECTED_HOURS_PER_DAY = 6

NEW_STATE = "New"
CLOSED_STATE = "Closed"

NO_TASK_TITLE = "(No task - time will be captured in the parent)"

# Azure DevOps field reference names
FIELD_ID = "System.Id"
FIELD_TYPE = "System.WorkItemType"
FIELD_TITLE = "System.Title"
FIELD_STATE = "System.State"
FIELD_COMPLETED_WORK = "Microsoft.VSTS.Scheduling.CompletedWork"
FIELD_REMAINING_WORK = "Microsoft.VSTS.Scheduling.RemainingWork"

PARENT_RELATION = "System.LinkTypes.Hierarchy-Reverse"


# Display configuration
TYPE_ICONS: dict[WorkItemType, str] = {
    WorkItemType.EPIC: "◆",
    WorkItemType.FEATURE: "◇",
    WorkItemType.USER_STORY: "■",
    WorkItemType.TASK: "●",
    WorkItemType.BUG: "✖",
}

TYPE_COLORS: dict[WorkItemType, str] = {
    WorkItemType.EPIC: "magenta",
    WorkItemType.FEATURE: "magenta",
    WorkItemType.USER_STORY: "blue",
    WorkItemType.TASK: "yellow",
    WorkItemType.BUG: "red",
}
