"""Azure DevOps API client and models."""

from sprint_tracker.api.client import AzureDevOpsClient, AzureDevOpsError
from sprint_tracker.api.models import LoadResult, PersistableTimeEntry, RemoteWorkItem, TimeEntry, WorkItem

__all__ = [
    "AzureDevOpsClient",
    "AzureDevOpsError",
    "LoadResult",
    "PersistableTimeEntry",
    "RemoteWorkItem",
    "TimeEntry",
    "WorkItem",
]
