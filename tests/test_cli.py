"""Tests for CLI commands."""

import datetime as dt
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from sprint_tracker.api.client import AzureDevOpsError
from sprint_tracker.api.models import PersistableTimeEntry, RemoteWorkItem
from sprint_tracker.cli import cli
from sprint_tracker.config.settings import Settings, get_settings, reset_settings, save_settings
from sprint_tracker.config.workflow import WorkItemType
from sprint_tracker.storage.local import TimeEntryStore


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def mock_storage(tmp_path: Path):
    """Set up mock storage with temp directory."""
    with patch("sprint_tracker.config.settings.Path.home", return_value=tmp_path):
        reset_settings()
        yield tmp_path
    reset_settings()


@pytest.fixture
def configured(mock_storage: Path) -> Path:
    """Save a complete connection."""
    save_settings(Settings(
        services_url="https://dev.azure.com/acme",
        project="Proj",
        team="Team",
        pat="secret-token-1234",
    ))
    return mock_storage


@pytest.fixture
def mock_client():
    """Create a mock AzureDevOpsClient with a small sprint."""
    mock = MagicMock()
    mock.__aenter__ = AsyncMock(return_value=mock)
    mock.__aexit__ = AsyncMock(return_value=None)
    mock.list_sprint_work_items = AsyncMock(return_value=[
        RemoteWorkItem(id=1, type=WorkItemType.USER_STORY, title="Login page", state="Active"),
        RemoteWorkItem(id=2, type=WorkItemType.TASK, title="Build form", state="Active", remaining_work=4.0, parent_id=1),
        RemoteWorkItem(id=3, type=WorkItemType.BUG, title="Crash on save", state="Active", remaining_work=4.0),
    ])
    mock.update_work_item = AsyncMock(return_value=None)
    return mock


def time_entries(home: Path) -> TimeEntryStore:
    return TimeEntryStore(home / ".sprint-tracker" / "timeentries.csv")


class TestConfigureCommand:
    """Tests for 'sprint-tracker configure' command."""

    def test_configure_saves_settings(self, runner: CliRunner, mock_storage: Path) -> None:
        """Options are persisted to the settings file."""
        result = runner.invoke(cli, [
            "configure",
            "--url", "https://dev.azure.com/acme",
            "--project", "Proj",
            "--team", "Team",
            "--pat", "secret-token-1234",
            "--allow-without-task",
        ])

        assert result.exit_code == 0
        assert "Configuration saved" in result.output
        assert "secret-token-1234" not in result.output
        assert "1234" in result.output

        reset_settings()
        settings = get_settings()
        assert settings.is_valid()
        assert settings.team == "Team"
        assert settings.allow_time_entry_without_task is True

    def test_configure_partial_update(self, runner: CliRunner, configured: Path) -> None:
        """Unspecified options keep their stored value."""
        result = runner.invoke(cli, ["configure", "--team", "Other"])

        assert result.exit_code == 0
        reset_settings()
        settings = get_settings()
        assert settings.team == "Other"
        assert settings.project == "Proj"

    def test_configure_show(self, runner: CliRunner, configured: Path) -> None:
        """Without options the current settings are shown."""
        result = runner.invoke(cli, ["configure"])

        assert result.exit_code == 0
        assert "Configuration saved" not in result.output
        assert "Proj" in result.output

    def test_configure_incomplete(self, runner: CliRunner, mock_storage: Path) -> None:
        """Missing connection fields are reported."""
        result = runner.invoke(cli, ["configure", "--url", "https://dev.azure.com/acme"])

        assert result.exit_code == 0
        assert "Incomplete" in result.output


class TestItemsCommand:
    """Tests for 'sprint-tracker items' command."""

    def test_items_not_configured(self, runner: CliRunner, mock_storage: Path) -> None:
        """items requires a configured connection."""
        result = runner.invoke(cli, ["items"])

        assert result.exit_code == 1
        assert "Connection not configured" in result.output

    def test_items_tree(self, runner: CliRunner, configured: Path, mock_client: MagicMock) -> None:
        """Eligible items are listed with their leaves."""
        with patch("sprint_tracker.cli.AzureDevOpsClient") as mock_cls:
            mock_cls.from_settings.return_value = mock_client
            result = runner.invoke(cli, ["items"])

        assert result.exit_code == 0
        assert "Time logged today" in result.output
        assert "Login page" in result.output
        assert "Build form" in result.output
        assert "Crash on save" in result.output
        assert "No task" in result.output

    def test_items_day_full(self, runner: CliRunner, configured: Path, mock_client: MagicMock) -> None:
        """A full day is reported without a remote lookup."""
        time_entries(configured).append_time_entry(
            PersistableTimeEntry(hours=6.0, work_item_id=2, date=dt.date.today())
        )

        with patch("sprint_tracker.cli.AzureDevOpsClient") as mock_cls:
            mock_cls.from_settings.return_value = mock_client
            result = runner.invoke(cli, ["items"])

        assert result.exit_code == 0
        assert "All good" in result.output
        mock_client.list_sprint_work_items.assert_not_called()

    def test_items_json(self, runner: CliRunner, configured: Path, mock_client: MagicMock) -> None:
        """JSON output includes the items and today's hours."""
        with patch("sprint_tracker.cli.AzureDevOpsClient") as mock_cls:
            mock_cls.from_settings.return_value = mock_client
            result = runner.invoke(cli, ["items", "-f", "json"])

        assert result.exit_code == 0
        assert '"work_items"' in result.output
        assert '"total_hours_logged_today": 0.0' in result.output

    def test_items_api_error(self, runner: CliRunner, configured: Path, mock_client: MagicMock) -> None:
        """Remote failures exit with an error."""
        mock_client.list_sprint_work_items = AsyncMock(side_effect=AzureDevOpsError("API error: boom", 500))

        with patch("sprint_tracker.cli.AzureDevOpsClient") as mock_cls:
            mock_cls.from_settings.return_value = mock_client
            result = runner.invoke(cli, ["items"])

        assert result.exit_code == 1
        assert "boom" in result.output


class TestLogCommand:
    """Tests for 'sprint-tracker log' command."""

    def test_log_hours(self, runner: CliRunner, configured: Path, mock_client: MagicMock) -> None:
        """Hours are stored locally and pushed to the task."""
        with patch("sprint_tracker.cli.AzureDevOpsClient") as mock_cls:
            mock_cls.from_settings.return_value = mock_client
            result = runner.invoke(cli, ["log", "-e", "2=2.5"])

        assert result.exit_code == 0
        assert "Saved 1 time entries" in result.output
        mock_client.update_work_item.assert_awaited_once_with(
            2, remaining_work=1.5, completed_work=2.5, state=None
        )
        entries = time_entries(configured).load_time_entries()
        assert [(e.work_item_id, e.hours) for e in entries] == [(2, 2.5)]

    def test_log_on_item_without_task(self, runner: CliRunner, configured: Path, mock_client: MagicMock) -> None:
        """Time on an item without tasks goes to the item itself."""
        with patch("sprint_tracker.cli.AzureDevOpsClient") as mock_cls:
            mock_cls.from_settings.return_value = mock_client
            result = runner.invoke(cli, ["log", "-e", "3=3"])

        assert result.exit_code == 0
        mock_client.update_work_item.assert_awaited_once_with(
            3, remaining_work=1.0, completed_work=0.5, state=None
        )

    def test_log_default_hours(self, runner: CliRunner, configured: Path, mock_client: MagicMock) -> None:
        """Without hours, the rest of the day is split over the entries."""
        with patch("sprint_tracker.cli.AzureDevOpsClient") as mock_cls:
            mock_cls.from_settings.return_value = mock_client
            result = runner.invoke(cli, ["log", "-e", "2", "--no-burn", "--close"])

        assert result.exit_code == 0
        mock_client.update_work_item.assert_awaited_once_with(
            2, remaining_work=4.0, completed_work=6.0, state="Closed"
        )

    def test_log_unknown_item(self, runner: CliRunner, configured: Path, mock_client: MagicMock) -> None:
        """Ids outside the sprint are rejected."""
        with patch("sprint_tracker.cli.AzureDevOpsClient") as mock_cls:
            mock_cls.from_settings.return_value = mock_client
            result = runner.invoke(cli, ["log", "-e", "999=1"])

        assert result.exit_code == 1
        assert "Not a sprint task" in result.output
        mock_client.update_work_item.assert_not_called()

    def test_log_invalid_hours(self, runner: CliRunner, configured: Path, mock_client: MagicMock) -> None:
        """Less than half an hour is rejected."""
        with patch("sprint_tracker.cli.AzureDevOpsClient") as mock_cls:
            mock_cls.from_settings.return_value = mock_client
            result = runner.invoke(cli, ["log", "-e", "2=0.2"])

        assert result.exit_code == 1
        assert "Invalid hours" in result.output
        assert time_entries(configured).load_time_entries() == []

    def test_log_malformed_entry(self, runner: CliRunner, configured: Path) -> None:
        """Entries must start with a work item id."""
        result = runner.invoke(cli, ["log", "-e", "abc"])

        assert result.exit_code == 1
        assert "WORK_ITEM_ID" in result.output

    def test_log_remote_failure(self, runner: CliRunner, configured: Path, mock_client: MagicMock) -> None:
        """A failed push reports the entry kept locally."""
        mock_client.update_work_item = AsyncMock(side_effect=AzureDevOpsError("API error: rule", 400))

        with patch("sprint_tracker.cli.AzureDevOpsClient") as mock_cls:
            mock_cls.from_settings.return_value = mock_client
            result = runner.invoke(cli, ["log", "-e", "2=1", "-e", "3=1"])

        assert result.exit_code == 1
        assert "Saving stopped at entry 1" in result.output
        assert "Stored locally" in result.output
        assert "Not attempted" in result.output
        assert [e.work_item_id for e in time_entries(configured).load_time_entries()] == [2]

    def test_log_nothing_to_do(self, runner: CliRunner, configured: Path, mock_client: MagicMock) -> None:
        """Nothing is saved once the day is full."""
        time_entries(configured).append_time_entry(
            PersistableTimeEntry(hours=6.0, work_item_id=2, date=dt.date.today())
        )

        with patch("sprint_tracker.cli.AzureDevOpsClient") as mock_cls:
            mock_cls.from_settings.return_value = mock_client
            result = runner.invoke(cli, ["log", "-e", "2=1"])

        assert result.exit_code == 0
        assert "Nothing to log time against today" in result.output
        mock_client.update_work_item.assert_not_called()


class TestTodayCommand:
    """Tests for 'sprint-tracker today' command."""

    def test_today_empty(self, runner: CliRunner, mock_storage: Path) -> None:
        """No entries message."""
        result = runner.invoke(cli, ["today"])

        assert result.exit_code == 0
        assert "No time logged today" in result.output

    def test_today_entries(self, runner: CliRunner, mock_storage: Path) -> None:
        """Today's entries are listed with a total."""
        store = time_entries(mock_storage)
        store.append_time_entry(PersistableTimeEntry(hours=2.0, work_item_id=42, date=dt.date.today()))
        store.append_time_entry(PersistableTimeEntry(hours=1.5, work_item_id=43, date=dt.date.today()))
        store.append_time_entry(PersistableTimeEntry(hours=9.0, work_item_id=44, date=dt.date(2020, 1, 1)))

        result = runner.invoke(cli, ["today"])

        assert result.exit_code == 0
        assert "#42" in result.output
        assert "#44" not in result.output
        assert "Total: 3.5 hours" in result.output


class TestPruneCommand:
    """Tests for 'sprint-tracker prune' command."""

    def test_prune(self, runner: CliRunner, mock_storage: Path) -> None:
        """Old entries are removed."""
        store = time_entries(mock_storage)
        store.append_time_entry(PersistableTimeEntry(hours=2.0, work_item_id=1, date=dt.date(2020, 1, 1)))
        store.append_time_entry(PersistableTimeEntry(hours=2.0, work_item_id=2, date=dt.date.today()))

        result = runner.invoke(cli, ["prune", "--days", "30"])

        assert result.exit_code == 0
        assert "Removed 1 entries older than 30 days" in result.output
        assert [e.work_item_id for e in store.load_time_entries()] == [2]


class TestHelpMessages:
    """Tests for help messages."""

    def test_main_help(self, runner: CliRunner) -> None:
        """Main help shows commands."""
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        for command in ("configure", "items", "log", "today", "prune"):
            assert command in result.output
