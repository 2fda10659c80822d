# tests/test_ui_utils.py

from pathlib import Path

from rich.console import Console

from metadata_renamer.enums import EntityKind, ProcessingStatus
from metadata_renamer.observability import DecisionEvent
from metadata_renamer.ui_utils import build_actions_table, build_summary_table, print_run_summary


def event(status, source=None, target=None, item_id='x'):
    return DecisionEvent(kind=EntityKind.EPISODE, item_id=item_id, item_name=None, status=status,
                         message="", source=source, target=target)

EVENTS = [
    event(ProcessingStatus.SUCCESS, Path("/tv/a.mkv"), Path("/tv/A S01E01.mkv")),
    event(ProcessingStatus.PATH_ALREADY_CORRECT, Path("/tv/b.mkv"), Path("/tv/b.mkv")),
    event(ProcessingStatus.PATH_ALREADY_CORRECT, Path("/tv/c.mkv"), Path("/tv/c.mkv")),
    event(ProcessingStatus.ABORT_EPISODE_MISMATCH, Path("/tv/d.mkv")),
]


def test_actions_table_lists_only_renames():
    assert build_actions_table(EVENTS).row_count == 1

def test_summary_table_counts_per_status():
    table = build_summary_table(EVENTS)
    assert table.row_count == 3
    assert table.title == "Reconciliation Summary"

def test_print_run_summary_mentions_problems():
    console = Console(record=True, width=200)
    print_run_summary(console, EVENTS, dry_run=False)
    text = console.export_text()
    assert "Renames performed" in text
    assert "Path Already Correct" in text
    assert "1 item(s) were refused or failed" in text

def test_print_run_summary_dry_run_hint():
    console = Console(record=True, width=200)
    print_run_summary(console, EVENTS[:1], dry_run=True)
    assert "Use --live to apply" in console.export_text()

def test_print_run_summary_quiet():
    console = Console(record=True, quiet=True)
    print_run_summary(console, EVENTS, dry_run=True)
    assert console.export_text() == ""
