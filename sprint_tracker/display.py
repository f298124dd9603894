"""Display utilities for rendering work items and time entries."""

import datetime as dt
from collections.abc import Sequence
from typing import Any

from rich.table import Table
from rich.tree import Tree

from sprint_tracker.api.models import PersistableTimeEntry, WorkItem
from sprint_tracker.config.settings import Settings
from sprint_tracker.config.workflow import TYPE_COLORS, TYPE_ICONS


def format_value(value: Any, max_width: int | None = None) -> str:
    """Format a value for display, truncating long text.

    Empty values are shown as "-".
    """
    if value is None or value == "":
        return "-"
    text = str(value)
    if max_width and len(text) > max_width:
        text = text[: max_width - 3] + "..."
    return text


def format_hours(value: float | None) -> str:
    """Format hours as e.g. '2.5h'."""
    if value is None:
        return "-"
    return f"{float(value):g}h"


def work_item_label(item: WorkItem, max_width: int | None = 60) -> str:
    """Render a work item as a single markup line."""
    icon = TYPE_ICONS.get(item.type, "○")
    color = TYPE_COLORS.get(item.type, "white")
    return (
        f"[{color}]{icon}[/{color}] [cyan]#{item.id}[/cyan] "
        f"{format_value(item.title, max_width)} [dim]({format_value(item.state)})[/dim]"
    )


def leaf_label(leaf: WorkItem) -> str:
    """Render a selectable leaf.

    Placeholder tasks are shown under their parent's id, which is the id
    time is logged with.
    """
    if leaf.is_placeholder_only:
        return f"[cyan]#{leaf.parent_id}[/cyan] [dim]{leaf.title}[/dim]"
    return (
        f"{work_item_label(leaf)} "
        f"[dim]{format_hours(leaf.completed_work)} done, {format_hours(leaf.remaining_work)} left[/dim]"
    )


def build_work_item_tree(title: str, items: Sequence[WorkItem]) -> Tree:
    """Build a Rich Tree of eligible work items and their leaves.

    Args:
        title: Tree root label
        items: Eligible work items, each with its children assembled

    Returns:
        A Rich Tree ready for display
    """
    root = Tree(f"[bold]{title}[/bold]")
    for item in items:
        branch = root.add(work_item_label(item))
        for leaf in item.children or ():
            branch.add(leaf_label(leaf))
        if not item.children:
            branch.add("[dim](Create a task first to log time)[/dim]")
    return root


def build_settings_table(settings: Settings) -> Table:
    """Build a Rich Table showing the current settings, token masked."""
    table = Table(title="Settings", show_header=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    table.add_row("URL", format_value(settings.services_url))
    table.add_row("Project", format_value(settings.project))
    table.add_row("Team", format_value(settings.team))
    table.add_row("Token", format_value(settings.masked_pat()))
    table.add_row("Allow time without task", "yes" if settings.allow_time_entry_without_task else "no")
    table.add_row("Hours per day", str(settings.expected_hours_per_day))
    table.add_row("Retention (days)", str(settings.retention_days))
    return table


def build_time_entries_table(date: dt.date, entries: Sequence[PersistableTimeEntry]) -> Table:
    """Build a Rich Table of the time entries logged on ``date``."""
    table = Table(title=f"Time entries {date.isoformat()}")
    table.add_column("Work item", style="cyan")
    table.add_column("Hours", justify="right")
    table.add_column("Burn", justify="center")

    for entry in entries:
        table.add_row(f"#{entry.work_item_id}", format_hours(entry.hours), "✓" if entry.burn else "")

    return table
