# metadata_renamer/observability.py

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, List, Protocol, Dict, Iterable

from .enums import EntityKind, ProcessingStatus

log = logging.getLogger(__name__)


@dataclass
class DecisionEvent:
    """One terminal decision of the coordinator for one catalog item."""
    kind: EntityKind
    item_id: str
    item_name: Optional[str]
    status: ProcessingStatus
    message: str
    source: Optional[Path] = None
    target: Optional[Path] = None
    dry_run: bool = False
    timestamp: float = field(default_factory=time.time)


class DecisionSink(Protocol):
    def record(self, event: DecisionEvent) -> None: ...


def _level_for(status: ProcessingStatus) -> int:
    if status.is_failure:
        return logging.ERROR
    if status.is_abort or status in (ProcessingStatus.DRY_RUN, ProcessingStatus.RETRY_EXHAUSTED):
        return logging.WARNING
    if status.is_skip:
        return logging.INFO if status is not ProcessingStatus.PATH_ALREADY_CORRECT else logging.DEBUG
    return logging.INFO


class LoggingDecisionSink:
    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or log

    def record(self, event: DecisionEvent) -> None:
        label = f"{event.kind} '{event.item_name or event.item_id}'"
        self.logger.log(_level_for(event.status), f"[{event.status}] {label}: {event.message}")


class CollectingDecisionSink:
    """Keeps every event in memory, e.g. for a summary table at the end of a run."""

    def __init__(self):
        self._lock = threading.Lock()
        self._events: List[DecisionEvent] = []

    def record(self, event: DecisionEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> List[DecisionEvent]:
        with self._lock:
            return list(self._events)

    def by_status(self, status: ProcessingStatus) -> List[DecisionEvent]:
        return [e for e in self.events if e.status is status]

    def for_item(self, item_id: str) -> List[DecisionEvent]:
        return [e for e in self.events if e.item_id == item_id]

    def counts(self) -> Dict[ProcessingStatus, int]:
        totals: Dict[ProcessingStatus, int] = {}
        for e in self.events:
            totals[e.status] = totals.get(e.status, 0) + 1
        return totals

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


class FanOutSink:
    def __init__(self, sinks: Iterable[DecisionSink]):
        self.sinks = list(sinks)

    def record(self, event: DecisionEvent) -> None:
        for sink in self.sinks:
            sink.record(event)
