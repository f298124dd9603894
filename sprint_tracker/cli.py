"""CLI commands for sprint-tracker."""

import asyncio
import datetime as dt
import json
import logging
from typing import Any

import click
from rich.console import Console

from sprint_tracker.api.client import AzureDevOpsClient, AzureDevOpsError
from sprint_tracker.api.models import LoadResult, TimeEntry
from sprint_tracker.config.auth import AuthError
from sprint_tracker.config.settings import Settings, get_settings_path
from sprint_tracker.core.eligibility import resolve_entry_target, selectable_leaves
from sprint_tracker.core.entry_input import is_invalid_hours, parse_hours, suggested_hours
from sprint_tracker.core.facade import SaveResult, SaveState, TimeTrackingFacade, WorkItemFetchError
from sprint_tracker.display import build_settings_table, build_time_entries_table, build_work_item_tree
from sprint_tracker.storage.local import LocalStorage, TimeEntryStoreError

console = Console()


def run_async(coro: Any) -> Any:
    """Run an async coroutine synchronously."""
    return asyncio.run(coro)


def handle_errors(func: Any) -> Any:
    """Decorator to handle common errors gracefully."""

    @click.pass_context
    def wrapper(ctx: click.Context, *args: Any, **kwargs: Any) -> Any:
        try:
            return ctx.invoke(func, *args, **kwargs)
        except AuthError as e:
            console.print(f"[red]Authentication error:[/red] {e}")
            raise SystemExit(1)
        except (AzureDevOpsError, WorkItemFetchError) as e:
            console.print(f"[red]API error:[/red] {e}")
            raise SystemExit(1)
        except TimeEntryStoreError as e:
            console.print(f"[red]Storage error:[/red] {e}")
            raise SystemExit(1)
        except Exception as e:
            console.print(f"[red]Error:[/red] {e}")
            raise SystemExit(1)

    wrapper.__name__ = func.__name__
    wrapper.__doc__ = func.__doc__
    return wrapper


@click.group()
@click.version_option(package_name="sprint-tracker")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def cli(verbose: bool) -> None:
    """Sprint Tracker - log your sprint time against Azure DevOps work items.

    Get started by configuring the connection:

        sprint-tracker configure --url https://dev.azure.com/your-org
        --project 'Your Project' --team 'Your Team' --pat 'your-token'

    Then run 'sprint-tracker items' to see what you can log time against.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )


def _build_facade(storage: LocalStorage, settings: Settings) -> TimeTrackingFacade:
    return TimeTrackingFacade(
        settings,
        storage.time_entries,
        client_factory=AzureDevOpsClient.from_settings,
    )


def _require_settings(storage: LocalStorage) -> Settings:
    settings = storage.settings
    if not settings.is_valid():
        console.print("[yellow]Connection not configured.[/yellow] Run 'sprint-tracker configure' first.")
        raise SystemExit(1)
    return settings


# =============================================================================
# Configuration Commands
# =============================================================================


@cli.command()
@click.option("--url", "services_url", help="Organization URL, e.g. https://dev.azure.com/acme")
@click.option("--project", help="Project name")
@click.option("--team", help="Team name")
@click.option("--pat", help="Personal access token")
@click.option(
    "--allow-without-task/--require-task",
    "allow_time_entry_without_task",
    default=None,
    help="Allow logging time directly on user stories that have no tasks",
)
@click.option("--hours-per-day", "expected_hours_per_day", type=click.IntRange(min=1), help="Hours expected to be logged per day")
@click.option("--retention-days", type=click.IntRange(min=1), help="Days of local entries kept by 'prune'")
@handle_errors
def configure(**options: Any) -> None:
    """Show or update the connection and time tracking settings."""
    storage = LocalStorage()
    if any(value is not None for value in options.values()):
        settings = storage.update_settings(**options)
        console.print(f"[green]Configuration saved to {get_settings_path()}[/green]\n")
    else:
        settings = storage.settings

    console.print(build_settings_table(settings))

    if not settings.is_valid():
        console.print("\n[yellow]Incomplete: URL, project, team and token are all required.[/yellow]")


# =============================================================================
# Time Tracking Commands
# =============================================================================


def _print_hours_logged(result: LoadResult, settings: Settings) -> None:
    console.print(
        f"Time logged today: [bold]{result.total_hours_logged_today}[/bold] hours"
        f" / Expected: {settings.expected_hours_per_day} hours\n"
    )


@cli.command()
@click.option("--format", "-f", "output_format", type=click.Choice(["tree", "json"]), default="tree", help="Output format")
@handle_errors
def items(output_format: str) -> None:
    """List the sprint work items you can log time against."""
    storage = LocalStorage()
    settings = _require_settings(storage)

    async def _items() -> None:
        facade = _build_facade(storage, settings)
        result = await facade.find_work_items_to_entry_time()

        if output_format == "json":
            console.print(json.dumps(result.model_dump(mode="json"), indent=2))
            return

        _print_hours_logged(result, settings)
        if not result.work_items:
            console.print("[green]All good - There's no work left to do here today![/green]")
            return

        console.print(build_work_item_tree("Sprint work items", result.work_items))
        console.print("\n[dim]Log time with: sprint-tracker log -e ID=HOURS[/dim]")

    run_async(_items())


def _parse_entry_option(value: str) -> tuple[int, str | None]:
    item_id, _, hours = value.partition("=")
    try:
        return int(item_id.strip().lstrip("#")), hours.strip() or None
    except ValueError:
        raise click.BadParameter(f"Expected WORK_ITEM_ID or WORK_ITEM_ID=HOURS, got '{value}'", param_hint="--entry")


def _print_save_result(result: SaveResult) -> None:
    if result.state == SaveState.COMPLETE:
        console.print(f"[green]Saved {len(result.saved)} time entries.[/green]")
        if result.refresh_error:
            console.print(f"[yellow]Could not refresh work items:[/yellow] {result.refresh_error}")
        return

    failure = result.failure
    if failure is not None:
        console.print(
            f"[red]Saving stopped at entry {failure.index + 1} (work item #{failure.work_item_id}):[/red] {failure.message}"
        )
    if result.saved:
        console.print(f"[green]Saved:[/green] {', '.join(f'#{e.work_item.id}' for e in result.saved)}")
    for pending in result.pending_reconciliation:
        console.print(
            f"[yellow]Stored locally but not in Azure DevOps:[/yellow] #{pending.work_item_id} ({pending.hours}h)"
        )
    if result.skipped:
        console.print(f"[dim]Not attempted: {', '.join(f'#{e.work_item.id}' for e in result.skipped)}[/dim]")


@cli.command()
@click.option("--entry", "-e", "entry_options", multiple=True, required=True, help="WORK_ITEM_ID=HOURS, hours default to an even split of the day")
@click.option("--no-burn", is_flag=True, help="Do not deduct the hours from remaining work")
@click.option("--close", "close_work_item", is_flag=True, help="Close the work items")
@handle_errors
def log(entry_options: tuple[str, ...], no_burn: bool, close_work_item: bool) -> None:
    """Log hours against sprint work items.

    \b
    Examples:
        sprint-tracker log -e 1234=2.5 -e 1240=3
        sprint-tracker log -e 1234 -e 1240        # split the rest of the day
        sprint-tracker log -e 1234=1 --close
    """
    storage = LocalStorage()
    settings = _require_settings(storage)
    requested = [_parse_entry_option(value) for value in entry_options]

    async def _log() -> None:
        facade = _build_facade(storage, settings)
        result = await facade.find_work_items_to_entry_time()

        leaves = {resolve_entry_target(leaf).id: leaf for leaf in selectable_leaves(result.work_items)}
        if not leaves:
            _print_hours_logged(result, settings)
            console.print("[yellow]Nothing to log time against today.[/yellow]")
            return

        unknown = [item_id for item_id, _ in requested if item_id not in leaves]
        if unknown:
            console.print(f"[red]Not a sprint task:[/red] {', '.join(f'#{i}' for i in unknown)}")
            console.print("[dim]Run 'sprint-tracker items' to see what you can log time against.[/dim]")
            raise SystemExit(1)

        default_hours = str(
            suggested_hours(len(requested), result.total_hours_logged_today, settings.expected_hours_per_day)
        )
        entries = []
        for item_id, hours_text in requested:
            hours_text = hours_text or default_hours
            if is_invalid_hours(hours_text):
                console.print(f"[red]Invalid hours for #{item_id}:[/red] {hours_text}")
                raise SystemExit(1)
            entries.append(
                TimeEntry.for_selection(
                    leaves[item_id],
                    parse_hours(hours_text),
                    burn=not no_burn,
                    close_work_item=close_work_item,
                    expected_hours_per_day=settings.expected_hours_per_day,
                )
            )

        save_result = await facade.save_time_entries(entries)
        _print_save_result(save_result)
        if save_result.state == SaveState.ERROR:
            raise SystemExit(1)

    run_async(_log())


@cli.command()
@handle_errors
def today() -> None:
    """Show the time entries logged today from this machine."""

    storage = LocalStorage()
    date = dt.date.today()
    entries = storage.time_entries.list_entries_for_date(date)
    if not entries:
        console.print("[yellow]No time logged today.[/yellow]")
        return

    console.print(build_time_entries_table(date, entries))
    console.print(f"\n[dim]Total: {sum(e.hours for e in entries)} hours[/dim]")


@cli.command()
@click.option("--days", type=click.IntRange(min=1), help="Keep entries from the last N days (defaults to the configured retention)")
@handle_errors
def prune(days: int | None) -> None:
    """Remove old entries from the local time entry file."""
    storage = LocalStorage()
    retention = days or storage.settings.retention_days
    removed = storage.time_entries.compact(retention)
    console.print(f"[green]Removed {removed} entries older than {retention} days.[/green]")
