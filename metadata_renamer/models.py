# models.py
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Optional, List, Dict, Any, Union, ClassVar, Tuple

from .enums import EntityKind, ProcessingStatus


def _path_str(path: Optional[Path]) -> Optional[str]:
    return str(path) if path else None


@dataclass
class ShowEntity:
    """A series as recorded in the catalog."""
    id: str
    name: Optional[str] = None
    path: Optional[Path] = None
    provider_ids: Dict[str, str] = field(default_factory=dict)
    year: Optional[int] = None
    premiere_date: Optional[date] = None
    library_name: Optional[str] = None
    library_root: Optional[Path] = None # Top folder of the library; never renamed

    kind: ClassVar[EntityKind] = EntityKind.SHOW

    @property
    def effective_year(self) -> Optional[int]:
        if self.year:
            return self.year
        return self.premiere_date.year if self.premiere_date else None

    def log_fields(self) -> Dict[str, Any]:
        return {
            'kind': str(self.kind), 'id': self.id, 'name': self.name,
            'year': self.effective_year, 'path': _path_str(self.path),
            'provider_ids': dict(self.provider_ids), 'library': self.library_name,
            'library_root': _path_str(self.library_root),
        }


@dataclass
class SeasonEntity:
    id: str
    show_id: str
    season_number: Optional[int] = None
    name: Optional[str] = None # Season display name, e.g. "The Beginning"
    path: Optional[Path] = None

    kind: ClassVar[EntityKind] = EntityKind.SEASON

    def log_fields(self) -> Dict[str, Any]:
        return {
            'kind': str(self.kind), 'id': self.id, 'show_id': self.show_id,
            'season': self.season_number, 'name': self.name, 'path': _path_str(self.path),
        }


@dataclass
class EpisodeEntity:
    id: str
    show_id: str
    season_number: Optional[int] = None
    episode_number: Optional[int] = None
    title: Optional[str] = None
    path: Optional[Path] = None

    kind: ClassVar[EntityKind] = EntityKind.EPISODE

    @property
    def name(self) -> Optional[str]:
        return self.title

    def log_fields(self) -> Dict[str, Any]:
        return {
            'kind': str(self.kind), 'id': self.id, 'show_id': self.show_id,
            'season': self.season_number, 'episode': self.episode_number,
            'title': self.title, 'path': _path_str(self.path),
        }


@dataclass
class MovieEntity:
    id: str
    name: Optional[str] = None
    path: Optional[Path] = None # The movie's video file, or its folder
    provider_ids: Dict[str, str] = field(default_factory=dict)
    year: Optional[int] = None
    premiere_date: Optional[date] = None
    library_name: Optional[str] = None
    library_root: Optional[Path] = None # Top folder of the library; never renamed

    kind: ClassVar[EntityKind] = EntityKind.MOVIE

    @property
    def effective_year(self) -> Optional[int]:
        if self.year:
            return self.year
        return self.premiere_date.year if self.premiere_date else None

    def log_fields(self) -> Dict[str, Any]:
        return {
            'kind': str(self.kind), 'id': self.id, 'name': self.name,
            'year': self.effective_year, 'path': _path_str(self.path),
            'provider_ids': dict(self.provider_ids), 'library': self.library_name,
            'library_root': _path_str(self.library_root),
        }


CatalogEntity = Union[ShowEntity, SeasonEntity, EpisodeEntity, MovieEntity]


@dataclass(frozen=True)
class ItemUpdatedEvent:
    """Host notification: one catalog entity changed. `kind` tags the payload type."""
    kind: EntityKind
    item: CatalogEntity

    def __post_init__(self):
        if self.item.kind is not self.kind:
            raise ValueError(f"Event kind {self.kind} does not match payload kind {self.item.kind}")

    @classmethod
    def for_item(cls, item: CatalogEntity) -> 'ItemUpdatedEvent':
        return cls(kind=item.kind, item=item)


@dataclass
class RenameOutcome:
    """Result of a single rename/move attempt. Truthy when the item is (or would be) canonically named."""
    status: ProcessingStatus
    source: Optional[Path] = None
    target: Optional[Path] = None
    message: str = ""
    dry_run: bool = False

    def __bool__(self) -> bool:
        return self.status.is_positive

    @property
    def final_path(self) -> Optional[Path]:
        """Where the item lives after this outcome (unchanged for dry runs and failures)."""
        if self.status is ProcessingStatus.SUCCESS and self.target is not None:
            return self.target
        return self.source


@dataclass
class RetryEntry:
    episode_id: str
    reason: str
    last_attempt: float
    attempts: int = 0 # Retries performed so far, the initial failure is not counted


@dataclass
class NormalizationResult:
    """Paths moved by the folder normalizer, so callers can rebase stale catalog paths."""
    moved: Dict[Path, Path] = field(default_factory=dict)
    created_dirs: List[Path] = field(default_factory=list)
    removed_dirs: List[Path] = field(default_factory=list)
    skipped: List[Tuple[Path, str]] = field(default_factory=list)

    def merge(self, other: 'NormalizationResult') -> None:
        self.moved.update(other.moved)
        self.created_dirs.extend(other.created_dirs)
        self.removed_dirs.extend(other.removed_dirs)
        self.skipped.extend(other.skipped)
