# metadata_renamer/remapper.py
"""
Season/episode remapping for folders whose contents contradict metadata.

The typical case is a multi-season show imported flat under "Season 1": the
folder holds far more files than metadata lists for season 1. Files are then
ordered by their parsed episode tokens and each position is walked through the
catalog's season boundaries (season 1 has 36 episodes, season 2 has 54, ...) to
get a (season, episode-within-season) pair. When the catalog has no usable
boundaries a fixed episodes-per-season split is used as a last resort.

Assignments are memoized per folder, so moving files out of a folder never
shifts the positions of the files that remain. A memo is forgotten once every
file it mapped has left the folder.
"""

import logging
import math
import threading
from pathlib import Path
from typing import Optional, Dict, List, Tuple, Iterable

from .catalog import CatalogService
from .naming import is_video_file, episode_sort_key

log = logging.getLogger(__name__)

# Last-resort split when neither the configuration nor the catalog gives a better figure.
DEFAULT_FALLBACK_EPISODES_PER_SEASON = 24

SeasonEpisode = Tuple[int, int]


def resolve_absolute_index(index: int, boundaries: List[Tuple[int, int]]) -> SeasonEpisode:
    """Map a 1-based whole-series index onto [(season, episode_count), ...]. Overflow goes to the last season."""
    if index < 1:
        raise ValueError(f"Absolute episode index must be >= 1, got {index}")
    if not boundaries:
        raise ValueError("No season boundaries to resolve against")
    remaining = index
    for season_number, count in boundaries:
        if remaining <= count:
            return season_number, remaining
        remaining -= count
    last_season, last_count = boundaries[-1]
    return last_season, last_count + remaining


def split_by_fixed_size(index: int, episodes_per_season: int) -> SeasonEpisode:
    return (index - 1) // episodes_per_season + 1, (index - 1) % episodes_per_season + 1


class SeasonEpisodeRemapper:
    def __init__(self, catalog: CatalogService):
        self.catalog = catalog
        self._lock = threading.Lock()
        self._folder_memo: Dict[Path, Dict[Path, SeasonEpisode]] = {}

    @staticmethod
    def list_video_files(folder: Path, extensions: Iterable[str]) -> List[Path]:
        extensions = list(extensions)
        try:
            return [p for p in folder.iterdir() if p.is_file() and is_video_file(p, extensions)]
        except OSError as e:
            log.warning(f"Could not list folder '{folder}': {e}")
            return []

    def season_boundaries(self, show_id: str) -> List[Tuple[int, int]]:
        """Regular seasons (specials excluded) in order, with their metadata episode counts."""
        numbers = {s.season_number for s in self.catalog.get_seasons(show_id) if s.season_number}
        numbers.update(e.season_number for e in self.catalog.get_episodes(show_id) if e.season_number)
        boundaries = []
        for season_number in sorted(n for n in numbers if n > 0):
            count = self.catalog.get_season_episode_count(show_id, season_number)
            if count:
                boundaries.append((season_number, count))
        return boundaries

    def is_folder_unreliable(self, folder: Path, show_id: str, season_number: Optional[int], settings) -> bool:
        """True when the folder holds more files than metadata lists for its season, or is overstuffed as season 1."""
        file_count = len(self.list_video_files(folder, settings.video_extensions))
        if season_number is not None:
            metadata_count = self.catalog.get_season_episode_count(show_id, season_number)
            if metadata_count is not None and file_count > metadata_count:
                log.info(f"Folder '{folder.name}' holds {file_count} video files but metadata lists {metadata_count} for season {season_number}.")
                return True
        if season_number in (None, 1) and file_count > settings.overstuffed_season_threshold:
            log.info(f"Folder '{folder.name}' holds {file_count} video files, above the overstuffed threshold of {settings.overstuffed_season_threshold}.")
            return True
        return False

    def fallback_episodes_per_season(self, show_id: str, file_count: int, settings) -> int:
        if settings.fallback_episodes_per_season:
            return settings.fallback_episodes_per_season
        season_count = len({s.season_number for s in self.catalog.get_seasons(show_id) if s.season_number})
        if season_count and file_count:
            return max(1, math.ceil(file_count / season_count))
        return DEFAULT_FALLBACK_EPISODES_PER_SEASON

    def folder_assignments(self, folder: Path, show_id: str, settings) -> Dict[Path, SeasonEpisode]:
        """(season, episode) for every video file in `folder`, computed once per folder and then reused."""
        with self._lock:
            memo = self._live_memo(folder)
            if memo is not None:
                return dict(memo)

            files = sorted(self.list_video_files(folder, settings.video_extensions), key=episode_sort_key)
            boundaries = self.season_boundaries(show_id)
            mapping: Dict[Path, SeasonEpisode] = {}
            if boundaries:
                for position, file_path in enumerate(files, start=1):
                    mapping[file_path] = resolve_absolute_index(position, boundaries)
            elif files:
                per_season = self.fallback_episodes_per_season(show_id, len(files), settings)
                log.warning(
                    f"No usable season boundaries for show {show_id}; splitting '{folder.name}' "
                    f"into seasons of {per_season} episodes as a last resort."
                )
                for position, file_path in enumerate(files, start=1):
                    mapping[file_path] = split_by_fixed_size(position, per_season)

            self._folder_memo[folder] = mapping
            log.debug(f"Remap computed for '{folder}': {len(mapping)} files")
            return dict(mapping)

    def assignment_for(self, file_path: Path, show_id: str, settings) -> Optional[SeasonEpisode]:
        return self.folder_assignments(file_path.parent, show_id, settings).get(file_path)

    def has_memo(self, folder: Path) -> bool:
        with self._lock:
            return self._live_memo(folder) is not None

    def _live_memo(self, folder: Path) -> Optional[Dict[Path, SeasonEpisode]]:
        """The folder's memo, dropped (None) once none of its mapped files is still there. Caller holds the lock."""
        memo = self._folder_memo.get(folder)
        if memo is None or any(p.exists() for p in memo):
            return memo
        del self._folder_memo[folder]
        log.debug(f"All remapped files have left '{folder}', forgetting its remap.")
        return None

    def clear(self) -> None:
        with self._lock:
            self._folder_memo.clear()
