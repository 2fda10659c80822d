# metadata_renamer/catalog.py
"""Catalog query port and a read-only catalog backed by a JSON snapshot."""

import logging
from datetime import date
from pathlib import Path
from typing import Optional, List, Dict, Union, Protocol

from pydantic import BaseModel, Field, ValidationError

from .exceptions import CatalogError
from .models import ShowEntity, SeasonEntity, EpisodeEntity, MovieEntity

log = logging.getLogger(__name__)


class CatalogService(Protocol):
    """What the coordinator may ask the host catalog. Lookups are the only source of episode counts."""

    def get_show(self, show_id: str) -> Optional[ShowEntity]: ...

    def get_seasons(self, show_id: str) -> List[SeasonEntity]: ...

    def get_episodes(self, show_id: str) -> List[EpisodeEntity]: ...

    def get_episode(self, episode_id: str) -> Optional[EpisodeEntity]: ...

    def get_season_episode_count(self, show_id: str, season_number: int) -> Optional[int]: ...

    def get_all_shows(self) -> List[ShowEntity]: ...

    def get_all_movies(self) -> List[MovieEntity]: ...


# --- Snapshot schema ---

class SeasonRecord(BaseModel):
    id: str
    season_number: Optional[int] = None
    name: Optional[str] = None
    path: Optional[str] = None
    episode_count: Optional[int] = Field(default=None, ge=0, description="Overrides the count derived from the episode list.")


class EpisodeRecord(BaseModel):
    id: str
    season_number: Optional[int] = None
    episode_number: Optional[int] = None
    title: Optional[str] = None
    path: Optional[str] = None


class ShowRecord(BaseModel):
    id: str
    name: Optional[str] = None
    path: Optional[str] = None
    year: Optional[int] = None
    premiere_date: Optional[date] = None
    provider_ids: Dict[str, str] = Field(default_factory=dict)
    library: Optional[str] = None
    seasons: List[SeasonRecord] = Field(default_factory=list)
    episodes: List[EpisodeRecord] = Field(default_factory=list)


class MovieRecord(BaseModel):
    id: str
    name: Optional[str] = None
    path: Optional[str] = None
    year: Optional[int] = None
    premiere_date: Optional[date] = None
    provider_ids: Dict[str, str] = Field(default_factory=dict)
    library: Optional[str] = None


class CatalogSnapshot(BaseModel):
    root: Optional[str] = Field(default=None, description="Base folder for relative paths (default: the snapshot's folder).")
    library_roots: Dict[str, str] = Field(default_factory=dict, description="Library name -> top folder of that library. These folders are never renamed.")
    shows: List[ShowRecord] = Field(default_factory=list)
    movies: List[MovieRecord] = Field(default_factory=list)


class SnapshotCatalog:
    def __init__(self, snapshot: CatalogSnapshot, base_dir: Optional[Path] = None):
        self._base_dir = Path(snapshot.root) if snapshot.root else base_dir
        self._shows: Dict[str, ShowEntity] = {}
        self._seasons: Dict[str, List[SeasonEntity]] = {}
        self._season_counts: Dict[str, Dict[int, int]] = {}
        self._episodes: Dict[str, List[EpisodeEntity]] = {}
        self._episode_index: Dict[str, EpisodeEntity] = {}
        self._movies: Dict[str, MovieEntity] = {}
        self._library_roots: Dict[str, Path] = {
            name.casefold(): self._resolve(folder) for name, folder in snapshot.library_roots.items() if folder and folder.strip()
        }

        for rec in snapshot.shows:
            if rec.id in self._shows:
                raise CatalogError(f"Duplicate show id '{rec.id}' in snapshot")
            self._shows[rec.id] = ShowEntity(
                id=rec.id, name=rec.name, path=self._resolve(rec.path), provider_ids=dict(rec.provider_ids),
                year=rec.year, premiere_date=rec.premiere_date, library_name=rec.library, library_root=self._library_root(rec.library),
            )
            self._seasons[rec.id] = [
                SeasonEntity(id=s.id, show_id=rec.id, season_number=s.season_number, name=s.name, path=self._resolve(s.path))
                for s in rec.seasons
            ]
            episodes = [
                EpisodeEntity(id=e.id, show_id=rec.id, season_number=e.season_number, episode_number=e.episode_number,
                              title=e.title, path=self._resolve(e.path))
                for e in rec.episodes
            ]
            self._episodes[rec.id] = episodes
            for ep in episodes:
                self._episode_index[ep.id] = ep

            counts: Dict[int, int] = {}
            for ep in episodes:
                if ep.season_number is not None:
                    counts[ep.season_number] = counts.get(ep.season_number, 0) + 1
            for s in rec.seasons:
                if s.season_number is not None and s.episode_count is not None:
                    counts[s.season_number] = s.episode_count
            self._season_counts[rec.id] = counts

        for rec in snapshot.movies:
            self._movies[rec.id] = MovieEntity(
                id=rec.id, name=rec.name, path=self._resolve(rec.path), provider_ids=dict(rec.provider_ids),
                year=rec.year, premiere_date=rec.premiere_date, library_name=rec.library, library_root=self._library_root(rec.library),
            )
        log.debug(f"Catalog snapshot loaded: {len(self._shows)} shows, {len(self._episode_index)} episodes, {len(self._movies)} movies")

    @classmethod
    def from_json_file(cls, path: Union[str, Path]) -> 'SnapshotCatalog':
        snapshot_path = Path(path)
        try:
            raw = snapshot_path.read_text(encoding='utf-8')
        except OSError as e:
            raise CatalogError(f"Cannot read catalog snapshot '{snapshot_path}': {e}") from e
        try:
            snapshot = CatalogSnapshot.model_validate_json(raw)
        except ValidationError as e_val:
            details = "; ".join(f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e_val.errors())
            raise CatalogError(f"Catalog snapshot '{snapshot_path}' is invalid: {details}") from e_val
        return cls(snapshot, base_dir=snapshot_path.resolve().parent)

    def _library_root(self, library: Optional[str]) -> Optional[Path]:
        if not library:
            return None
        return self._library_roots.get(library.casefold())

    def _resolve(self, raw: Optional[str]) -> Optional[Path]:
        if not raw or not raw.strip():
            return None
        p = Path(raw)
        if not p.is_absolute() and self._base_dir is not None:
            p = self._base_dir / p
        return p

    def get_show(self, show_id: str) -> Optional[ShowEntity]:
        return self._shows.get(show_id)

    def get_seasons(self, show_id: str) -> List[SeasonEntity]:
        return list(self._seasons.get(show_id, []))

    def get_episodes(self, show_id: str) -> List[EpisodeEntity]:
        return list(self._episodes.get(show_id, []))

    def get_episode(self, episode_id: str) -> Optional[EpisodeEntity]:
        return self._episode_index.get(episode_id)

    def get_season_episode_count(self, show_id: str, season_number: int) -> Optional[int]:
        return self._season_counts.get(show_id, {}).get(season_number)

    def get_all_shows(self) -> List[ShowEntity]:
        return list(self._shows.values())

    def get_all_movies(self) -> List[MovieEntity]:
        return list(self._movies.values())
