# metadata_renamer/structure.py

import logging
from pathlib import Path
from typing import Optional, Dict, List

from .enums import ProcessingStatus
from .file_system_ops import SafeRenameExecutor, log_outcome
from .models import ShowEntity, SeasonEntity, EpisodeEntity, NormalizationResult
from .naming import (
    NameRenderer, parse_season_folder_number, parse_season_episode,
    is_video_file, do_filenames_match,
)

log = logging.getLogger(__name__)


def season_display_name(seasons: List[SeasonEntity], season_number: int) -> Optional[str]:
    for season in seasons:
        if season.season_number == season_number and season.name:
            return season.name
    return None


def _season_subfolders(folder: Path) -> Dict[Path, int]:
    found: Dict[Path, int] = {}
    try:
        children = sorted(folder.iterdir())
    except OSError as e:
        log.warning(f"Could not list '{folder}': {e}")
        return found
    for child in children:
        if child.is_dir():
            number = parse_season_folder_number(child.name)
            if number is not None:
                found[child] = number
    return found


class FolderStructureNormalizer:
    """
    Repairs two known-bad show layouts before episodes are renamed:

    * nested season folders (``Season 1/Season 1/*.mkv``) are flattened one level
      and the outer folder gets the canonical season name;
    * video files lying directly in the show folder are moved into the season
      folder their metadata (or their ``S##E##`` token) points at.

    Files whose season cannot be determined stay where they are.
    """

    def __init__(self, executor: SafeRenameExecutor):
        self.executor = executor

    def normalize_show(
        self,
        show: ShowEntity,
        show_path: Path,
        seasons: List[SeasonEntity],
        episodes: List[EpisodeEntity],
        settings,
    ) -> NormalizationResult:
        result = NormalizationResult()
        if not show_path.is_dir():
            return result
        renderer = NameRenderer(settings)
        result.merge(self.flatten_nested_season_folders(show, show_path, seasons, renderer, settings.dry_run))
        result.merge(self.migrate_loose_files(show, show_path, seasons, episodes, renderer, settings))
        if result.moved:
            log.info(f"Normalized folder layout of '{show.name}': {len(result.moved)} item(s) moved.")
        return result

    def flatten_nested_season_folders(
        self,
        show: ShowEntity,
        show_path: Path,
        seasons: List[SeasonEntity],
        renderer: NameRenderer,
        dry_run: bool,
    ) -> NormalizationResult:
        result = NormalizationResult()
        for outer, outer_number in _season_subfolders(show_path).items():
            inner_folders = _season_subfolders(outer)
            if not inner_folders:
                continue

            for inner, inner_number in inner_folders.items():
                all_moved = True
                if inner_number != outer_number:
                    log.warning(f"Nested folder '{outer.name}/{inner.name}' names a different season, leaving it alone.")
                    result.skipped.append((inner, "nested season number differs from its parent"))
                    continue
                for child in sorted(inner.iterdir()):
                    outcome = self.executor.move_file_into(child, outer, dry_run)
                    log_outcome(outcome)
                    if outcome.status is ProcessingStatus.SUCCESS:
                        result.moved[child] = outcome.target
                    elif outcome.status is not ProcessingStatus.DRY_RUN:
                        result.skipped.append((child, outcome.message))
                        all_moved = False
                if all_moved and self.executor.remove_dir_if_empty(inner, dry_run) and not dry_run:
                    result.removed_dirs.append(inner)

            canonical = renderer.season_folder_name(outer_number, season_display_name(seasons, outer_number), show)
            if not do_filenames_match(outer.name, canonical):
                outcome = self.executor.try_rename(outer, canonical, dry_run)
                log_outcome(outcome)
                if outcome.status is ProcessingStatus.SUCCESS:
                    result.moved[outer] = outcome.target
        return result

    def migrate_loose_files(
        self,
        show: ShowEntity,
        show_path: Path,
        seasons: List[SeasonEntity],
        episodes: List[EpisodeEntity],
        renderer: NameRenderer,
        settings,
    ) -> NormalizationResult:
        result = NormalizationResult()
        try:
            loose = sorted(p for p in show_path.iterdir() if p.is_file() and is_video_file(p, settings.video_extensions))
        except OSError as e:
            log.warning(f"Could not list show folder '{show_path}': {e}")
            return result
        if not loose:
            return result

        metadata_season_by_path = {ep.path: ep.season_number for ep in episodes if ep.path is not None}
        existing = {number: folder for folder, number in _season_subfolders(show_path).items()}

        for video in loose:
            season_number = metadata_season_by_path.get(video)
            if season_number is None:
                parsed = parse_season_episode(video.name)
                if parsed.season is not None:
                    season_number = parsed.season
                elif parsed.episode is not None:
                    season_number = 1
            if season_number is None:
                log.info(f"[{ProcessingStatus.SKIP_MISSING_SEASON_NUMBER}] Leaving '{video.name}' in the show folder: no season known.")
                result.skipped.append((video, "season unknown"))
                continue

            target_folder = existing.get(season_number)
            if target_folder is None:
                target_folder = show_path / renderer.season_folder_name(season_number, season_display_name(seasons, season_number), show)
                if not self.executor.ensure_directory(target_folder, settings.dry_run):
                    result.skipped.append((video, f"could not create '{target_folder.name}'"))
                    continue
                if not settings.dry_run:
                    result.created_dirs.append(target_folder)
                existing[season_number] = target_folder

            outcome = self.executor.move_file_into(video, target_folder, settings.dry_run)
            log_outcome(outcome)
            if outcome.status is ProcessingStatus.SUCCESS:
                result.moved[video] = outcome.target
                result.moved.update(self.executor.rename_sidecars(video, outcome.target, settings.dry_run))
            elif outcome.status is not ProcessingStatus.DRY_RUN:
                result.skipped.append((video, outcome.message))
        return result
