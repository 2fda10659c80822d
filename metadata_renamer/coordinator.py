# metadata_renamer/coordinator.py
"""
Event-driven reconciliation of catalog metadata against the folder/file layout.

The host delivers one ``ItemUpdatedEvent`` at a time to
``RenameCoordinator.handle_item_updated``. Each entity kind has its own handler;
every handler walks the same gates (feature flag, cooldown, path checks,
identity) before rendering a canonical name and handing it to the
``SafeRenameExecutor``. A show whose identity is new or changed cascades to all
of its seasons and episodes. The only asynchronous path is the full-catalog
sweep started when a bulk metadata refresh is detected; it runs on a single
background worker and is cancelled by ``clear_state()``/``close()``.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, Future, TimeoutError as FutureTimeoutError
from dataclasses import replace
from pathlib import Path
from typing import Optional, Dict, Set, Callable, List, Tuple

from .catalog import CatalogService
from .enums import EntityKind, ProcessingStatus
from .file_system_ops import SafeRenameExecutor, rebase_paths
from .identity import IdentityChangeDetector, IdentityResult, compute_provider_hash, infer_selected_provider
from .bulk_refresh import BulkRefreshDetector
from .models import (
    ItemUpdatedEvent, CatalogEntity, ShowEntity, SeasonEntity, EpisodeEntity, MovieEntity, RenameOutcome,
)
from .naming import (
    NameRenderer, do_filenames_match, parse_season_episode, parse_season_folder_number,
    guess_episode_number, looks_like_raw_filename, is_video_file, normalize_for_comparison,
)
from .observability import DecisionEvent, DecisionSink, LoggingDecisionSink
from .remapper import SeasonEpisodeRemapper
from .retry_queue import RetryQueue
from .structure import FolderStructureNormalizer, season_display_name

log = logging.getLogger(__name__)

# Subfolders that may sit next to a movie's video without making the folder a multi-movie folder.
MOVIE_EXTRA_FOLDER_NAMES = {'subs', 'subtitles', 'extras', 'featurettes', 'behind the scenes', 'deleted scenes', 'trailers'}

# Expired cooldown stamps are swept once the table grows past this many entries.
COOLDOWN_PRUNE_THRESHOLD = 1024


class CoordinatorState:
    """All derived, process-lifetime state of one coordinator. Nothing here is persisted."""

    def __init__(self, catalog: CatalogService):
        self.lock = threading.RLock()
        self.last_attempt_by_item: Dict[str, float] = {}
        self.last_event_time: Optional[float] = None
        self.episodes_processed_for_show: Set[str] = set()
        self.identity = IdentityChangeDetector()
        self.retry_queue = RetryQueue()
        self.bulk_refresh = BulkRefreshDetector()
        self.remapper = SeasonEpisodeRemapper(catalog)

    def clear(self) -> None:
        with self.lock:
            self.last_attempt_by_item.clear()
            self.last_event_time = None
            self.episodes_processed_for_show.clear()
            self.identity.clear()
            self.retry_queue.clear()
            self.bulk_refresh.clear()
            self.remapper.clear()


def _item_key(item: CatalogEntity) -> str:
    return f"{item.kind.name}:{item.id}"


def _library_allowed(item, settings) -> bool:
    if not settings.allowed_library_names:
        return True
    allowed = {name.casefold() for name in settings.allowed_library_names}
    return bool(item.library_name) and item.library_name.casefold() in allowed


def _is_library_root(path: Path, item) -> bool:
    return item.library_root is not None and path == item.library_root


def _folder_names_movie(folder: Path, movie: MovieEntity, video: Path) -> bool:
    """True when the folder is named after the movie (its title first) or after the video file."""
    folder_name = normalize_for_comparison(folder.name)
    if folder_name == normalize_for_comparison(video.stem):
        return True
    title = normalize_for_comparison(movie.name or "")
    return bool(title) and (folder_name == title or folder_name.startswith(f"{title} "))


class RenameCoordinator:
    def __init__(
        self,
        catalog: CatalogService,
        executor: Optional[SafeRenameExecutor] = None,
        sink: Optional[DecisionSink] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.catalog = catalog
        self.executor = executor or SafeRenameExecutor()
        self.sink = sink or LoggingDecisionSink()
        self.clock = clock
        self.normalizer = FolderStructureNormalizer(self.executor)
        self.state = CoordinatorState(catalog)

        self._sweep_guard = threading.Lock()
        self._cancel_event = threading.Event()
        self._sweep_pool: Optional[ThreadPoolExecutor] = None
        self._sweep_future: Optional[Future] = None

        self._handlers: Dict[EntityKind, Callable[[CatalogEntity, object], DecisionEvent]] = {
            EntityKind.SHOW: self._on_show,
            EntityKind.SEASON: self._on_season,
            EntityKind.EPISODE: self._on_episode,
            EntityKind.MOVIE: self._on_movie,
        }
        unhandled = set(EntityKind) - set(self._handlers)
        if unhandled:
            raise RuntimeError(f"No handler for entity kinds: {', '.join(str(k) for k in unhandled)}")

    # --- Host entry points ---

    def handle_item_updated(self, event: ItemUpdatedEvent, settings) -> Optional[DecisionEvent]:
        """Process one host notification to completion and return the decision taken for its item."""
        item = event.item
        log.debug(f"Item updated: {item.log_fields()}")
        if not settings.enabled:
            return self._decide(item, ProcessingStatus.SKIP_DISABLED, "Renaming is disabled in the configuration", settings)

        self._sweep_retry_queue(settings)

        if settings.global_min_interval_seconds > 0:
            now = self.clock()
            with self.state.lock:
                last = self.state.last_event_time
                if last is not None and now - last < settings.global_min_interval_seconds:
                    return self._decide(item, ProcessingStatus.SKIP_GLOBAL_DEBOUNCE,
                                        f"Another item was handled {now - last:.1f}s ago (minimum interval {settings.global_min_interval_seconds:.1f}s)", settings)
                self.state.last_event_time = now

        handler = self._handlers[event.kind]
        try:
            return handler(item, settings)
        except Exception as e:
            log.exception(f"Unexpected error while handling {event.kind} '{item.id}'")
            return self._decide(item, ProcessingStatus.INTERNAL_ERROR, f"{type(e).__name__}: {e}", settings)

    def clear_state(self) -> None:
        """Cancel any background sweep and forget all derived state (host unload/reload)."""
        self._stop_background_sweep()
        self.state.clear()
        log.info("Coordinator state cleared.")

    def close(self) -> None:
        self._stop_background_sweep()

    def wait_for_background_work(self, timeout: Optional[float] = None) -> bool:
        """Block until a running bulk sweep finishes. Returns False on timeout."""
        with self._sweep_guard:
            future = self._sweep_future
        if future is None:
            return True
        try:
            future.result(timeout=timeout)
        except FutureTimeoutError:
            return False
        return True

    # --- Shared helpers ---

    def _decide(self, item: CatalogEntity, status: ProcessingStatus, message: str, settings,
                source: Optional[Path] = None, target: Optional[Path] = None) -> DecisionEvent:
        decision = DecisionEvent(
            kind=item.kind, item_id=item.id, item_name=item.name, status=status, message=message,
            source=source, target=target, dry_run=bool(settings.dry_run),
        )
        self.sink.record(decision)
        return decision

    def _decide_outcome(self, item: CatalogEntity, outcome: RenameOutcome, settings) -> DecisionEvent:
        return self._decide(item, outcome.status, outcome.message or str(outcome.status), settings,
                            source=outcome.source, target=outcome.target)

    def _cooldown_remaining(self, item: CatalogEntity, settings) -> Optional[float]:
        """Stamp the item as attempted now, unless it is still cooling down (then return the seconds left)."""
        now = self.clock()
        key = _item_key(item)
        with self.state.lock:
            last = self.state.last_attempt_by_item.get(key)
            if last is not None and now - last < settings.per_item_cooldown_seconds:
                return settings.per_item_cooldown_seconds - (now - last)
            self.state.last_attempt_by_item[key] = now
            if len(self.state.last_attempt_by_item) > COOLDOWN_PRUNE_THRESHOLD:
                self._prune_cooldowns(now, settings)
        return None

    def _prune_cooldowns(self, now: float, settings) -> None:
        stamps = self.state.last_attempt_by_item
        expired = [k for k, t in stamps.items() if now - t >= settings.per_item_cooldown_seconds]
        for k in expired:
            del stamps[k]
        if expired:
            log.debug(f"Dropped {len(expired)} expired cooldown stamp(s), {len(stamps)} left.")

    def _stamp_attempt(self, item: CatalogEntity) -> None:
        with self.state.lock:
            self.state.last_attempt_by_item[_item_key(item)] = self.clock()

    def _gate(self, item: CatalogEntity, settings, enabled: bool) -> Optional[DecisionEvent]:
        if not enabled:
            return self._decide(item, ProcessingStatus.SKIP_KIND_DISABLED, f"Renaming of {str(item.kind).lower()} items is disabled", settings)
        if isinstance(item, (ShowEntity, MovieEntity)) and not _library_allowed(item, settings):
            return self._decide(item, ProcessingStatus.SKIP_LIBRARY_NOT_ALLOWED, f"Library '{item.library_name}' is not in the allowed list", settings)
        remaining = self._cooldown_remaining(item, settings)
        if remaining is not None:
            return self._decide(item, ProcessingStatus.SKIP_COOLDOWN, f"Processed recently, {remaining:.0f}s of cooldown left", settings)
        return None

    def _check_identified(self, item, settings) -> Optional[DecisionEvent]:
        if not item.path:
            return self._decide(item, ProcessingStatus.SKIP_NO_PATH, "Item has no path", settings)
        if settings.require_provider_id_match and not compute_provider_hash(item.provider_ids):
            return self._decide(item, ProcessingStatus.SKIP_NO_PROVIDER_IDS, "No external provider id, item is not identified", settings, source=item.path)
        if not item.name or not item.name.strip():
            return self._decide(item, ProcessingStatus.SKIP_MISSING_NAME, "Item has no name", settings, source=item.path)
        return None

    # --- Shows ---

    def _on_show(self, show: ShowEntity, settings) -> DecisionEvent:
        gated = self._gate(show, settings, settings.rename_series_folders)
        if gated:
            return gated
        return self._process_show(show, settings)

    def _process_show(self, show: ShowEntity, settings, from_sweep: bool = False,
                      cancel: Optional[threading.Event] = None) -> DecisionEvent:
        with self.state.lock:
            rejected = self._check_identified(show, settings)
            if rejected:
                return rejected
            if not show.path.is_dir():
                return self._decide(show, ProcessingStatus.SKIP_PATH_MISSING, f"Show folder does not exist: '{show.path}'", settings, source=show.path)
            if _is_library_root(show.path, show):
                return self._decide(show, ProcessingStatus.SKIP_LIBRARY_ROOT, f"'{show.path}' is the top folder of library '{show.library_name}'", settings, source=show.path)

            identity = self.state.identity.compute_state(_item_key(show), show.provider_ids)
            previous_ids = self.state.identity.previous_ids(_item_key(show))
            self.state.identity.remember(_item_key(show), identity.hash, show.provider_ids)

            if not from_sweep and settings.only_rename_when_provider_ids_change and not (identity.changed or identity.is_first_time):
                self._note_routine_show_update(show, settings)
                return self._decide(show, ProcessingStatus.SKIP_PROVIDER_IDS_UNCHANGED, "Provider ids unchanged since last seen", settings, source=show.path)

            log.info(f"Show '{show.name}' identity: {identity.state}")
            provider = infer_selected_provider(previous_ids if identity.changed else None, show.provider_ids,
                                               settings.preferred_series_providers)
            desired = NameRenderer(settings).show_folder_name(show, provider)
            if do_filenames_match(show.path.name, desired):
                outcome = RenameOutcome(ProcessingStatus.PATH_ALREADY_CORRECT, source=show.path, target=show.path,
                                        message=f"Folder already named '{show.path.name}'", dry_run=settings.dry_run)
            else:
                outcome = self.executor.try_rename(show.path, desired, settings.dry_run)
            decision = self._decide_outcome(show, outcome, settings)

            if outcome.status.is_failure:
                return decision
            should_cascade = from_sweep or identity.changed or show.id not in self.state.episodes_processed_for_show
            if should_cascade:
                self._cascade_show(show, outcome.final_path, identity, settings, cancel)
            return decision

    def _note_routine_show_update(self, show: ShowEntity, settings) -> None:
        triggered = self.state.bulk_refresh.record(
            self.clock(), settings.bulk_refresh_window_seconds, settings.bulk_refresh_threshold,
            settings.bulk_refresh_cooldown_seconds,
        )
        if triggered:
            self._decide(show, ProcessingStatus.BULK_REFRESH_TRIGGERED, "Bulk metadata refresh detected, starting a full reconciliation sweep", settings)
            self._schedule_bulk_sweep(settings)
        else:
            log.debug(f"Routine update of show '{show.name}' ({self.state.bulk_refresh.pending} in the bulk refresh window).")

    def _cascade_show(self, show: ShowEntity, show_path: Path, identity: IdentityResult, settings,
                      cancel: Optional[threading.Event] = None) -> None:
        with self.state.lock:
            self.state.episodes_processed_for_show.add(show.id)

        moves: Dict[Path, Path] = {}
        if show.path != show_path:
            moves[show.path] = show_path
        current_show = replace(show, path=show_path)
        seasons = [replace(s, path=rebase_paths(s.path, moves)) for s in self.catalog.get_seasons(show.id)]
        episodes = [replace(e, path=rebase_paths(e.path, moves)) for e in self.catalog.get_episodes(show.id)]
        log.info(f"Cascading show '{show.name}' ({identity.state}) to {len(seasons)} season(s) and {len(episodes)} episode(s).")

        normalized = self.normalizer.normalize_show(current_show, show_path, seasons, episodes, settings)
        if normalized.moved:
            seasons = [replace(s, path=rebase_paths(s.path, normalized.moved)) for s in seasons]
            episodes = [replace(e, path=rebase_paths(e.path, normalized.moved)) for e in episodes]

        if settings.rename_season_folders:
            season_moves: Dict[Path, Path] = {}
            for season in seasons:
                if cancel is not None and cancel.is_set():
                    return
                self._stamp_attempt(season)
                decision = self._process_season(season, settings, show=current_show)
                if decision.status is ProcessingStatus.SUCCESS and decision.source and decision.target:
                    season_moves[decision.source] = decision.target
            if season_moves:
                episodes = [replace(e, path=rebase_paths(e.path, season_moves)) for e in episodes]

        if settings.rename_episode_files:
            for episode in sorted(episodes, key=lambda e: (e.season_number or 0, e.episode_number or 0, e.id)):
                if cancel is not None and cancel.is_set():
                    return
                self._stamp_attempt(episode)
                self._process_episode(episode, settings, show=current_show)

    # --- Seasons ---

    def _on_season(self, season: SeasonEntity, settings) -> DecisionEvent:
        gated = self._gate(season, settings, settings.rename_season_folders)
        if gated:
            return gated
        return self._process_season(season, settings)

    def _process_season(self, season: SeasonEntity, settings, show: Optional[ShowEntity] = None) -> DecisionEvent:
        with self.state.lock:
            if not season.path:
                return self._decide(season, ProcessingStatus.SKIP_NO_PATH, "Season has no folder", settings)
            if not season.path.is_dir():
                return self._decide(season, ProcessingStatus.SKIP_PATH_MISSING, f"Season folder does not exist: '{season.path}'", settings, source=season.path)
            if season.season_number is None:
                return self._decide(season, ProcessingStatus.SKIP_MISSING_SEASON_NUMBER, "Season has no season number", settings, source=season.path)

            show = show or self.catalog.get_show(season.show_id)
            if show is not None and show.path is not None and season.path == show.path:
                return self._decide(season, ProcessingStatus.SKIP_NOT_A_SEASON_FOLDER, "Season items live directly in the show folder", settings, source=season.path)

            folder_number = parse_season_folder_number(season.path.name)
            if folder_number is not None and folder_number != season.season_number:
                return self._decide(season, ProcessingStatus.ABORT_EPISODE_MISMATCH,
                                    f"Folder '{season.path.name}' names season {folder_number} but metadata says season {season.season_number}",
                                    settings, source=season.path)

            desired = NameRenderer(settings).season_folder_name(season.season_number, season.name, show)
            if do_filenames_match(season.path.name, desired):
                return self._decide(season, ProcessingStatus.PATH_ALREADY_CORRECT, f"Folder already named '{season.path.name}'", settings, source=season.path, target=season.path)
            return self._decide_outcome(season, self.executor.try_rename(season.path, desired, settings.dry_run), settings)

    # --- Episodes ---

    def _on_episode(self, episode: EpisodeEntity, settings) -> DecisionEvent:
        gated = self._gate(episode, settings, settings.rename_episode_files)
        if gated:
            return gated
        return self._process_episode(episode, settings)

    def _queue_retry(self, episode: EpisodeEntity, reason: str, settings) -> DecisionEvent:
        self.state.retry_queue.enqueue(episode.id, reason, self.clock())
        return self._decide(episode, ProcessingStatus.RETRY_QUEUED, reason, settings, source=episode.path)

    def _canonical_season_folder(self, show: ShowEntity, season_number: int, renderer: NameRenderer) -> Path:
        try:
            for child in sorted(show.path.iterdir()):
                if child.is_dir() and parse_season_folder_number(child.name) == season_number:
                    return child
        except OSError as e:
            log.warning(f"Could not list show folder '{show.path}': {e}")
        display_name = season_display_name(self.catalog.get_seasons(show.id), season_number)
        return show.path / renderer.season_folder_name(season_number, display_name, show)

    def _process_episode(self, episode: EpisodeEntity, settings, show: Optional[ShowEntity] = None) -> DecisionEvent:
        with self.state.lock:
            path = episode.path
            if not path:
                return self._decide(episode, ProcessingStatus.SKIP_NO_PATH, "Episode has no file", settings)
            if not path.is_file():
                return self._decide(episode, ProcessingStatus.SKIP_PATH_MISSING, f"Episode file does not exist: '{path}'", settings, source=path)
            show = show or self.catalog.get_show(episode.show_id)
            remapper = self.state.remapper

            folder = path.parent
            folder_season = parse_season_folder_number(folder.name)
            check_season = folder_season if folder_season is not None else episode.season_number
            unreliable = remapper.has_memo(folder) or remapper.is_folder_unreliable(folder, episode.show_id, check_season, settings)

            resolved: Optional[Tuple[int, int]] = None
            if episode.episode_number is None:
                if unreliable:
                    resolved = remapper.assignment_for(path, episode.show_id, settings)
                    if resolved:
                        log.info(f"Episode '{path.name}' has no metadata numbers; remapped to S{resolved[0]:02d}E{resolved[1]:02d} by folder position.")
                if resolved is None:
                    tentative = guess_episode_number(path.name)
                    if tentative is None:
                        return self._decide(episode, ProcessingStatus.SKIP_MISSING_EPISODE_NUMBER,
                                            "Episode number absent from both metadata and file name", settings, source=path)
                    return self._queue_retry(episode, f"Episode number missing from metadata (file name suggests {tentative})", settings)
            elif episode.season_number is None:
                parsed = parse_season_episode(path.name)
                season_number = parsed.season if parsed.season is not None else (None if unreliable else folder_season)
                if season_number is None:
                    return self._queue_retry(episode, "Season number missing from metadata", settings)
                resolved = (season_number, episode.episode_number)
            else:
                resolved = (episode.season_number, episode.episode_number)
            season_number, episode_number = resolved

            # Metadata numbers (with or without a metadata season) must agree with the file name.
            if episode.episode_number is not None:
                parsed = parse_season_episode(path.name)
                disagrees = parsed.episode is not None and (
                    parsed.episode != episode_number or (parsed.season is not None and parsed.season != season_number)
                )
                if disagrees:
                    remapped = remapper.assignment_for(path, episode.show_id, settings) if unreliable else None
                    if remapped != resolved:
                        return self._decide(
                            episode, ProcessingStatus.ABORT_EPISODE_MISMATCH,
                            f"File name says S{parsed.season if parsed.season is not None else '?'}E{parsed.episode} but metadata says "
                            f"S{season_number}E{episode_number}; refusing to rename a possibly misidentified file",
                            settings, source=path,
                        )
                    log.info(f"File name numbering of '{path.name}' differs from metadata but matches the folder remap; trusting metadata.")

            if looks_like_raw_filename(episode.title, path.name):
                return self._queue_retry(episode, f"Title '{episode.title}' looks like a raw file name", settings)

            renderer = NameRenderer(settings)
            target_dir: Optional[Path] = None
            if unreliable and show is not None and show.path is not None and show.path.is_dir():
                canonical_dir = self._canonical_season_folder(show, season_number, renderer)
                if canonical_dir != folder:
                    if not self.executor.ensure_directory(canonical_dir, settings.dry_run):
                        return self._decide(episode, ProcessingStatus.FILE_OPERATION_ERROR,
                                            f"Could not create season folder '{canonical_dir}'", settings, source=path)
                    target_dir = canonical_dir

            desired = renderer.episode_file_name(show, episode, season_number, episode_number, path.suffix)
            if target_dir is None and do_filenames_match(path.name, desired):
                self.state.retry_queue.remove(episode.id, success=True)
                return self._decide(episode, ProcessingStatus.PATH_ALREADY_CORRECT, f"File already named '{path.name}'", settings, source=path, target=path)

            outcome = self.executor.try_rename(path, desired, settings.dry_run,
                                               expected_numbers=(season_number, episode_number), target_dir=target_dir)
            if outcome.status is ProcessingStatus.SUCCESS:
                self.executor.rename_sidecars(path, outcome.target, settings.dry_run)
            if outcome:
                self.state.retry_queue.remove(episode.id, success=True)
            return self._decide_outcome(episode, outcome, settings)

    def _sweep_retry_queue(self, settings) -> None:
        if not settings.rename_episode_files:
            return
        queue = self.state.retry_queue
        now = self.clock()
        for entry in queue.due(now, settings.retry_min_delay_seconds):
            queue.begin_attempt(entry.episode_id, now)
            episode = self.catalog.get_episode(entry.episode_id)
            if episode is None:
                log.info(f"Queued episode {entry.episode_id} is no longer in the catalog, dropping it.")
                queue.remove(entry.episode_id, success=False)
                continue
            log.debug(f"Retrying episode {entry.episode_id} (attempt {entry.attempts}/{settings.retry_max_attempts}): {entry.reason}")
            try:
                decision = self._process_episode(episode, settings)
            except Exception:
                log.exception(f"Unexpected error while retrying episode {entry.episode_id}")
                queue.remove(entry.episode_id, success=False)
                continue
            if decision.status is not ProcessingStatus.RETRY_QUEUED:
                queue.remove(entry.episode_id, success=decision.status.is_positive)
            elif queue.is_exhausted(entry.episode_id, settings.retry_max_attempts):
                removed = queue.remove(entry.episode_id, success=False)
                self._decide(episode, ProcessingStatus.RETRY_EXHAUSTED,
                             f"Gave up after {removed.attempts} retries: {removed.reason}", settings, source=episode.path)

    # --- Movies ---

    def _on_movie(self, movie: MovieEntity, settings) -> DecisionEvent:
        gated = self._gate(movie, settings, settings.rename_movie_folders)
        if gated:
            return gated
        return self._process_movie(movie, settings)

    def _movie_rename_target(self, movie: MovieEntity, settings) -> Tuple[Path, bool]:
        """(path to rename, is_file).

        A lone video renames its folder only when that folder is named after the movie
        and is not a library's top folder. Everything else renames the file itself.
        """
        movie_path = movie.path
        if movie_path.is_dir():
            return movie_path, False
        parent = movie_path.parent
        if _is_library_root(parent, movie) or not _folder_names_movie(parent, movie, movie_path):
            return movie_path, True
        try:
            siblings = list(parent.iterdir())
        except OSError as e:
            log.warning(f"Could not list '{parent}': {e}")
            return movie_path, True
        videos = [p for p in siblings if p.is_file() and is_video_file(p, settings.video_extensions)]
        other_dirs = [p for p in siblings if p.is_dir() and p.name.casefold() not in MOVIE_EXTRA_FOLDER_NAMES]
        if videos == [movie_path] and not other_dirs:
            return parent, False
        return movie_path, True

    def _process_movie(self, movie: MovieEntity, settings, from_sweep: bool = False) -> DecisionEvent:
        with self.state.lock:
            rejected = self._check_identified(movie, settings)
            if rejected:
                return rejected
            if not movie.path.exists():
                return self._decide(movie, ProcessingStatus.SKIP_PATH_MISSING, f"Movie path does not exist: '{movie.path}'", settings, source=movie.path)

            identity = self.state.identity.compute_state(_item_key(movie), movie.provider_ids)
            previous_ids = self.state.identity.previous_ids(_item_key(movie))
            self.state.identity.remember(_item_key(movie), identity.hash, movie.provider_ids)
            if not from_sweep and settings.only_rename_when_provider_ids_change and not (identity.changed or identity.is_first_time):
                return self._decide(movie, ProcessingStatus.SKIP_PROVIDER_IDS_UNCHANGED, "Provider ids unchanged since last seen", settings, source=movie.path)

            provider = infer_selected_provider(previous_ids if identity.changed else None, movie.provider_ids,
                                               settings.preferred_movie_providers)
            target_path, is_file = self._movie_rename_target(movie, settings)
            if not is_file and _is_library_root(target_path, movie):
                return self._decide(movie, ProcessingStatus.SKIP_LIBRARY_ROOT, f"'{target_path}' is the top folder of library '{movie.library_name}'", settings, source=target_path)
            desired = NameRenderer(settings).movie_folder_name(movie, provider)
            if is_file:
                desired = f"{desired}{target_path.suffix}"
            if do_filenames_match(target_path.name, desired):
                return self._decide(movie, ProcessingStatus.PATH_ALREADY_CORRECT, f"Already named '{target_path.name}'", settings, source=target_path, target=target_path)

            outcome = self.executor.try_rename(target_path, desired, settings.dry_run)
            if is_file and outcome.status is ProcessingStatus.SUCCESS:
                self.executor.rename_sidecars(target_path, outcome.target, settings.dry_run)
            return self._decide_outcome(movie, outcome, settings)

    # --- Bulk sweep ---

    def _schedule_bulk_sweep(self, settings) -> None:
        with self._sweep_guard:
            if self._sweep_future is not None and not self._sweep_future.done():
                log.info("A reconciliation sweep is already running, not starting another.")
                return
            if self._sweep_pool is None:
                self._sweep_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="reconcile-sweep")
            self._sweep_future = self._sweep_pool.submit(self._run_full_sweep, settings.model_copy(), self._cancel_event)

    def _run_full_sweep(self, settings, cancel: threading.Event) -> None:
        shows: List[ShowEntity] = self.catalog.get_all_shows() if settings.rename_series_folders else []
        movies: List[MovieEntity] = self.catalog.get_all_movies() if settings.rename_movie_folders else []
        log.info(f"Full reconciliation sweep started: {len(shows)} show(s), {len(movies)} movie(s).")
        for item in [*shows, *movies]:
            if cancel.is_set():
                log.info("Full reconciliation sweep cancelled.")
                return
            if not _library_allowed(item, settings):
                continue
            try:
                self._stamp_attempt(item)
                if isinstance(item, ShowEntity):
                    self._process_show(item, settings, from_sweep=True, cancel=cancel)
                else:
                    self._process_movie(item, settings, from_sweep=True)
            except Exception:
                log.exception(f"Unexpected error while sweeping {item.kind} '{item.id}'")
        log.info("Full reconciliation sweep finished.")

    def _stop_background_sweep(self) -> None:
        self._cancel_event.set()
        with self._sweep_guard:
            pool = self._sweep_pool
            self._sweep_pool = None
            self._sweep_future = None
            self._cancel_event = threading.Event()
        if pool is not None:
            pool.shutdown(wait=False, cancel_futures=True)
