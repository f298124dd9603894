"""Local storage utilities."""

import csv
import datetime as dt
import logging
from pathlib import Path
from typing import Any

from sprint_tracker.api.models import PersistableTimeEntry
from sprint_tracker.config.settings import (
    Settings,
    get_config_dir,
    get_settings,
    save_settings,
)

logger = logging.getLogger(__name__)

TIME_ENTRIES_FILE = "timeentries.csv"


class TimeEntryStoreError(Exception):
    """Raised when the local time entry file cannot be written."""


def _format_row(entry: PersistableTimeEntry) -> list[str]:
    return [
        repr(float(entry.hours)),
        str(entry.work_item_id),
        "true" if entry.burn else "false",
        entry.date.isoformat(),
    ]


def _parse_bool(value: str) -> bool:
    normalized = value.strip().lower()
    if normalized == "true":
        return True
    if normalized == "false":
        return False
    raise ValueError(f"Not a boolean: {value!r}")


def _parse_row(row: list[str]) -> PersistableTimeEntry:
    if len(row) != 4:
        raise ValueError(f"Expected 4 columns, got {len(row)}")
    hours, work_item_id, burn, date = (column.strip() for column in row)
    return PersistableTimeEntry(
        hours=float(hours),
        work_item_id=int(work_item_id),
        burn=_parse_bool(burn),
        date=dt.date.fromisoformat(date),
    )


class TimeEntryStore:
    """Append-only record of the time entries logged from this machine.

    Each entry is one CSV row: ``hours,work_item_id,burn,date``. The file is
    only rewritten by :meth:`compact`; a single writer is assumed.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or get_config_dir() / TIME_ENTRIES_FILE

    @property
    def path(self) -> Path:
        """Get the path of the time entries file."""
        return self._path

    def append_time_entry(self, entry: PersistableTimeEntry) -> PersistableTimeEntry:
        """Append an entry to the file and return it."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "a", newline="", encoding="utf-8") as f:
                csv.writer(f).writerow(_format_row(entry))
        except OSError as e:
            raise TimeEntryStoreError(f"Could not write time entry to {self._path}: {e}") from e
        logger.debug("Stored %s hours for work item %d on %s", entry.hours, entry.work_item_id, entry.date)
        return entry

    def _read_rows(self) -> list[tuple[int, list[str]]]:
        if not self._path.exists():
            return []
        with open(self._path, newline="", encoding="utf-8", errors="replace") as f:
            return [(line, row) for line, row in enumerate(csv.reader(f), start=1) if row]

    def load_time_entries(self) -> list[PersistableTimeEntry]:
        """Load all entries, skipping rows that cannot be parsed."""
        entries = []
        for line, row in self._read_rows():
            try:
                entries.append(_parse_row(row))
            except ValueError as e:
                logger.warning("Skipping corrupt time entry at %s:%d (%s)", self._path, line, e)
        return entries

    def list_entries_for_date(self, date: dt.date) -> list[PersistableTimeEntry]:
        """Get the entries logged for ``date``."""
        return [entry for entry in self.load_time_entries() if entry.date == date]

    def total_hours_for_date(self, date: dt.date) -> float:
        """Sum of hours logged for ``date``."""
        return sum(entry.hours for entry in self.list_entries_for_date(date))

    def compact(self, retention_days: int, today: dt.date | None = None) -> int:
        """Drop entries older than the retention window.

        Corrupt rows are dropped as well.

        Returns:
            Number of rows removed.
        """
        rows = self._read_rows()
        if not rows:
            return 0
        cutoff = (today or dt.date.today()) - dt.timedelta(days=retention_days)
        kept = [entry for entry in self.load_time_entries() if entry.date >= cutoff]

        tmp_path = self._path.with_suffix(".tmp")
        try:
            with open(tmp_path, "w", newline="", encoding="utf-8") as f:
                writer = csv.writer(f)
                for entry in kept:
                    writer.writerow(_format_row(entry))
            tmp_path.replace(self._path)
        except OSError as e:
            raise TimeEntryStoreError(f"Could not compact {self._path}: {e}") from e

        removed = len(rows) - len(kept)
        logger.info("Removed %d time entries older than %s", removed, cutoff)
        return removed


class LocalStorage:
    """Manage local storage for sprint-tracker."""

    def __init__(self) -> None:
        self._config_dir = get_config_dir()

    @property
    def config_dir(self) -> Path:
        """Get the configuration directory."""
        return self._config_dir

    @property
    def settings(self) -> Settings:
        """Get current settings."""
        return get_settings()

    def save(self, settings: Settings) -> Settings:
        """Save settings to disk."""
        return save_settings(settings)

    def update_settings(self, **changes: Any) -> Settings:
        """Replace the given settings fields and save the result.

        ``None`` values are ignored so callers can pass optional CLI options
        straight through.
        """
        updates = {key: value for key, value in changes.items() if value is not None}
        settings = Settings.model_validate({**self.settings.model_dump(), **updates})
        return self.save(settings)

    @property
    def time_entries(self) -> TimeEntryStore:
        """Get the time entry store in the configuration directory."""
        return TimeEntryStore(self._config_dir / TIME_ENTRIES_FILE)
