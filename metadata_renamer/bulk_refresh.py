# metadata_renamer/bulk_refresh.py

import logging
import threading
from collections import deque
from typing import Deque, Optional

log = logging.getLogger(__name__)


class BulkRefreshDetector:
    """
    Counts routine show updates in a sliding time window.

    A "replace all metadata" refresh produces many show updates in a short time
    without any provider id changing. Once `threshold` such updates land inside
    `window_seconds`, and at least `cooldown_seconds` have passed since the previous
    trigger, `record()` returns True and the window is emptied.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._timestamps: Deque[float] = deque()
        self._last_trigger: Optional[float] = None

    def record(self, now: float, window_seconds: float, threshold: int, cooldown_seconds: float) -> bool:
        with self._lock:
            self._timestamps.append(now)
            while self._timestamps and now - self._timestamps[0] > window_seconds:
                self._timestamps.popleft()

            count = len(self._timestamps)
            if count < threshold:
                return False
            if self._last_trigger is not None and now - self._last_trigger < cooldown_seconds:
                log.debug(f"Bulk refresh pattern seen ({count} updates) but last sweep was {now - self._last_trigger:.0f}s ago, waiting for cooldown.")
                return False

            self._last_trigger = now
            self._timestamps.clear()
        log.info(f"Bulk metadata refresh detected: {count} show updates within {window_seconds:.0f}s.")
        return True

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._timestamps)

    def clear(self) -> None:
        with self._lock:
            self._timestamps.clear()
            self._last_trigger = None
