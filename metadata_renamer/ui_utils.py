# metadata_renamer/ui_utils.py
from typing import List, Dict

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .enums import ProcessingStatus
from .observability import DecisionEvent

STATUS_STYLES = {
    ProcessingStatus.SUCCESS: "green",
    ProcessingStatus.DRY_RUN: "yellow",
    ProcessingStatus.PATH_ALREADY_CORRECT: "dim",
    ProcessingStatus.RETRY_QUEUED: "cyan",
    ProcessingStatus.RETRY_EXHAUSTED: "magenta",
    ProcessingStatus.BULK_REFRESH_TRIGGERED: "blue",
}


def _style_for(status: ProcessingStatus) -> str:
    if status in STATUS_STYLES:
        return STATUS_STYLES[status]
    if status.is_failure:
        return "bold red"
    if status.is_abort:
        return "red"
    return "white"


def build_actions_table(events: List[DecisionEvent]) -> Table:
    """Original -> new for every rename that happened (or would have happened)."""
    actions_table = Table(show_header=False, box=None, padding=(0, 1))
    actions_table.add_column("Original")
    actions_table.add_column("Arrow", justify="center")
    actions_table.add_column("New")
    for event in events:
        if event.status not in (ProcessingStatus.SUCCESS, ProcessingStatus.DRY_RUN) or not event.source or not event.target:
            continue
        actions_table.add_row(
            Text(str(event.source), style="red"),
            Text("->", style="dim"),
            Text(str(event.target), style="green"),
        )
    return actions_table


def build_summary_table(events: List[DecisionEvent]) -> Table:
    counts: Dict[ProcessingStatus, int] = {}
    for event in events:
        counts[event.status] = counts.get(event.status, 0) + 1

    table = Table(show_header=True, header_style="bold magenta", title="Reconciliation Summary")
    table.add_column("Outcome", min_width=24)
    table.add_column("Items", justify="right")
    for status in ProcessingStatus:
        if status in counts:
            table.add_row(Text(str(status), style=_style_for(status)), str(counts[status]))
    return table


def print_run_summary(console: Console, events: List[DecisionEvent], dry_run: bool) -> None:
    if console.quiet:
        return
    actions = build_actions_table(events)
    if actions.row_count:
        title = "[yellow]Planned renames (dry run)[/yellow]" if dry_run else "[green]Renames performed[/green]"
        console.print(Panel(actions, title=title, border_style="dim", expand=False))
    console.print(build_summary_table(events))
    problems = [e for e in events if e.status.is_abort or e.status.is_failure]
    if problems:
        console.print(Text(f"{len(problems)} item(s) were refused or failed; see the log for details.", style="bold red"))
    elif dry_run:
        console.print("[yellow]Dry run: nothing was changed. Use --live to apply.[/yellow]")
