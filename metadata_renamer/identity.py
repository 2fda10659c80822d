# metadata_renamer/identity.py

import logging
import threading
from typing import Optional, Dict, List, Tuple, NamedTuple, Iterable

from .enums import IdentityState

log = logging.getLogger(__name__)


def _clean(provider_ids: Optional[Dict[str, str]]) -> Dict[str, str]:
    if not provider_ids:
        return {}
    return {str(k).strip(): str(v).strip() for k, v in provider_ids.items() if k and v is not None and str(v).strip()}


def get_best_provider(provider_ids: Optional[Dict[str, str]], preferred: Iterable[str]) -> Optional[Tuple[str, str]]:
    """Pick (label, id) for folder names: first preferred provider present, else first by key. Labels are lower-case."""
    ids = _clean(provider_ids)
    if not ids:
        return None
    by_lower = {k.lower(): (k, v) for k, v in ids.items()}
    for pref in preferred:
        hit = by_lower.get(str(pref).strip().lower())
        if hit:
            return hit[0].lower(), hit[1]
    key = sorted(ids, key=str.lower)[0]
    return key.lower(), ids[key]


def compute_provider_hash(provider_ids: Optional[Dict[str, str]]) -> str:
    ids = _clean(provider_ids)
    if not ids:
        return ""
    return "|".join(f"{k}={ids[k]}" for k in sorted(ids, key=str.lower))


def changed_providers(previous: Optional[Dict[str, str]], current: Optional[Dict[str, str]]) -> List[str]:
    """Keys of `current` whose value is new or differs from `previous` (keys compared case-insensitively)."""
    prev = {k.lower(): v for k, v in _clean(previous).items()}
    return [k for k, v in sorted(_clean(current).items(), key=lambda kv: kv[0].lower()) if prev.get(k.lower()) != v]


def infer_selected_provider(
    previous: Optional[Dict[str, str]],
    current: Optional[Dict[str, str]],
    preferred: Iterable[str],
) -> Optional[Tuple[str, str]]:
    """Guess which provider the user just picked while re-identifying an item."""
    preferred = list(preferred)
    ids = _clean(current)
    changed = changed_providers(previous, current) if previous else []
    if changed:
        changed_lower = {k.lower(): k for k in changed}
        for pref in preferred:
            key = changed_lower.get(str(pref).strip().lower())
            if key:
                return key.lower(), ids[key]
        return changed[0].lower(), ids[changed[0]]
    return get_best_provider(ids, preferred)


class IdentityResult(NamedTuple):
    hash: str
    changed: bool
    is_first_time: bool

    @property
    def state(self) -> IdentityState:
        if self.is_first_time:
            return IdentityState.FIRST_TIME
        return IdentityState.CHANGED if self.changed else IdentityState.UNCHANGED


class IdentityChangeDetector:
    """Remembers the provider-id fingerprint of every show/movie seen during this process."""

    def __init__(self):
        self._lock = threading.Lock()
        self._hash_by_item: Dict[str, str] = {}
        self._ids_by_item: Dict[str, Dict[str, str]] = {}

    def compute_state(self, entity_id: str, current_provider_ids: Optional[Dict[str, str]]) -> IdentityResult:
        new_hash = compute_provider_hash(current_provider_ids)
        with self._lock:
            old_hash = self._hash_by_item.get(entity_id)
        if old_hash is None:
            return IdentityResult(new_hash, False, True)
        return IdentityResult(new_hash, old_hash != new_hash, False)

    def previous_ids(self, entity_id: str) -> Optional[Dict[str, str]]:
        with self._lock:
            ids = self._ids_by_item.get(entity_id)
            return dict(ids) if ids is not None else None

    def remember(self, entity_id: str, provider_hash: str, provider_ids: Optional[Dict[str, str]]) -> None:
        with self._lock:
            old = self._hash_by_item.get(entity_id)
            self._hash_by_item[entity_id] = provider_hash
            self._ids_by_item[entity_id] = _clean(provider_ids)
        if old is not None and old != provider_hash:
            log.info(f"Provider ids changed for item {entity_id}: '{old}' -> '{provider_hash}'")

    def forget(self, entity_id: str) -> None:
        with self._lock:
            self._hash_by_item.pop(entity_id, None)
            self._ids_by_item.pop(entity_id, None)

    def clear(self) -> None:
        with self._lock:
            self._hash_by_item.clear()
            self._ids_by_item.clear()
