# metadata_renamer/retry_queue.py

import logging
import threading
from typing import Dict, List, Optional

from .enums import ProcessingStatus
from .models import RetryEntry

log = logging.getLogger(__name__)


class RetryQueue:
    """
    Episodes whose metadata was incomplete when they were processed.

    Entries move absent -> queued -> retried N times -> removed, either on success
    or once `attempts` reaches the configured maximum. The queue has no timer of
    its own: the coordinator asks for due entries whenever a notification arrives.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[str, RetryEntry] = {}

    def enqueue(self, episode_id: str, reason: str, now: float) -> RetryEntry:
        """Queue an episode, or refresh the reason and timestamp of an existing entry without resetting its attempt count."""
        with self._lock:
            entry = self._entries.get(episode_id)
            if entry is None:
                entry = RetryEntry(episode_id=episode_id, reason=reason, last_attempt=now)
                self._entries[episode_id] = entry
                log.info(f"[{ProcessingStatus.RETRY_QUEUED}] Episode {episode_id}: {reason}")
            else:
                entry.reason = reason
                entry.last_attempt = now
                log.debug(f"Episode {episode_id} still incomplete after {entry.attempts} retr{'y' if entry.attempts == 1 else 'ies'}: {reason}")
            return entry

    def due(self, now: float, min_delay_seconds: float) -> List[RetryEntry]:
        with self._lock:
            return [e for e in self._entries.values() if now - e.last_attempt >= min_delay_seconds]

    def begin_attempt(self, episode_id: str, now: float) -> Optional[RetryEntry]:
        with self._lock:
            entry = self._entries.get(episode_id)
            if entry is not None:
                entry.attempts += 1
                entry.last_attempt = now
            return entry

    def is_exhausted(self, episode_id: str, max_attempts: int) -> bool:
        with self._lock:
            entry = self._entries.get(episode_id)
            return entry is not None and entry.attempts >= max_attempts

    def remove(self, episode_id: str, success: bool = True) -> Optional[RetryEntry]:
        with self._lock:
            entry = self._entries.pop(episode_id, None)
        if entry is None:
            return None
        if success:
            log.info(f"Episode {episode_id} left the retry queue after {entry.attempts} retr{'y' if entry.attempts == 1 else 'ies'}.")
        else:
            log.warning(f"[{ProcessingStatus.RETRY_EXHAUSTED}] Giving up on episode {episode_id} after {entry.attempts} retries. Last reason: {entry.reason}")
        return entry

    def get(self, episode_id: str) -> Optional[RetryEntry]:
        with self._lock:
            return self._entries.get(episode_id)

    def __contains__(self, episode_id: str) -> bool:
        with self._lock:
            return episode_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
