"""Local storage."""

from sprint_tracker.storage.local import LocalStorage, TimeEntryStore, TimeEntryStoreError

__all__ = ["LocalStorage", "TimeEntryStore", "TimeEntryStoreError"]
