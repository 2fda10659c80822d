# metadata_renamer/file_system_ops.py

import errno
import logging
import os
import shutil
import sys
import uuid
from pathlib import Path
from typing import Optional, Tuple, Dict

from .enums import ProcessingStatus
from .exceptions import FileOperationError, UnsafeNameError
from .models import RenameOutcome
from .naming import is_safe_name, parse_season_episode

log = logging.getLogger(__name__)

WINDOWS_PATH_LENGTH_WARNING_THRESHOLD = 240
TEMP_SUFFIX_PREFIX = ".renametmp_"


def validate_name(desired_name: str, expected_numbers: Optional[Tuple[int, int]] = None) -> None:
    """Raise UnsafeNameError when `desired_name` must not be used as a filesystem name.

    With `expected_numbers` (season, episode), the season/episode tokens embedded in
    the name must equal them. Names without tokens pass.
    """
    if not is_safe_name(desired_name):
        raise UnsafeNameError(f"'{desired_name}' is not a filesystem-safe name")
    if expected_numbers is None:
        return
    expected_season, expected_episode = expected_numbers
    parsed = parse_season_episode(desired_name)
    if parsed.episode is None:
        return
    if parsed.episode != expected_episode or (parsed.season is not None and parsed.season != expected_season):
        raise UnsafeNameError(
            f"'{desired_name}' carries S{parsed.season}E{parsed.episode} but metadata says S{expected_season}E{expected_episode}"
        )


def rebase_path(path: Optional[Path], old_root: Path, new_root: Path) -> Optional[Path]:
    """Translate `path` from under `old_root` to under `new_root`. Paths outside `old_root` are returned unchanged."""
    if path is None:
        return None
    try:
        relative = Path(path).relative_to(old_root)
    except ValueError:
        return path
    return new_root / relative


def rebase_paths(path: Optional[Path], moves: Dict[Path, Path]) -> Optional[Path]:
    """Replay recorded moves (file or folder, oldest first) on `path`."""
    if path is None:
        return None
    for old, new in moves.items():
        path = rebase_path(path, old, new)
    return path


def log_outcome(outcome: RenameOutcome) -> None:
    """Surface an executor outcome for callers that do not report through a decision sink."""
    if outcome.status is ProcessingStatus.SUCCESS:
        log.info(outcome.message)
    elif outcome.status is ProcessingStatus.DRY_RUN:
        log.warning(outcome.message)
    elif outcome.status.is_abort:
        log.warning(f"[{outcome.status}] {outcome.message}")


def _is_same_entry(a: Path, b: Path) -> bool:
    try:
        return a.exists() and b.exists() and os.path.samefile(a, b)
    except OSError:
        return False


def _move(src: Path, dst: Path) -> None:
    try:
        os.rename(str(src), str(dst))
        return
    except OSError as e_rename:
        if e_rename.errno != errno.EXDEV:
            raise FileOperationError(f"Could not rename '{src}' -> '{dst}': {e_rename}") from e_rename
        log.warning(f"os.rename failed across devices ('{e_rename}'), attempting shutil.move for '{src.name}' -> '{dst}'...")
    try:
        shutil.move(str(src), str(dst))
    except (OSError, shutil.Error) as e_move:
        raise FileOperationError(f"Could not move '{src}' -> '{dst}': {e_move}") from e_move


def _case_only_rename(src: Path, dst: Path) -> None:
    temp_path = src.parent / f"{src.name}{TEMP_SUFFIX_PREFIX}{uuid.uuid4().hex[:8]}"
    while temp_path.exists():
        temp_path = src.parent / f"{src.name}{TEMP_SUFFIX_PREFIX}{uuid.uuid4().hex[:8]}"
    log.debug(f"Case-only rename via temporary name '{temp_path.name}'")
    _move(src, temp_path)
    try:
        _move(temp_path, dst)
    except FileOperationError:
        log.error(f"Second step of case-only rename failed, restoring '{src.name}'")
        _move(temp_path, src)
        raise


class SafeRenameExecutor:
    """Validates a candidate name, refuses collisions, then renames (or logs a dry run)."""

    def try_rename(
        self,
        entity_path: Optional[Path],
        desired_name: str,
        dry_run: bool,
        expected_numbers: Optional[Tuple[int, int]] = None,
        target_dir: Optional[Path] = None,
    ) -> RenameOutcome:
        if not entity_path or not str(entity_path).strip():
            return RenameOutcome(ProcessingStatus.SKIP_NO_PATH, message="Item has no path", dry_run=dry_run)
        source = Path(entity_path)
        if not source.exists():
            msg = f"Path does not exist: '{source}'"
            log.debug(f"[{ProcessingStatus.SKIP_PATH_MISSING}] {msg}")
            return RenameOutcome(ProcessingStatus.SKIP_PATH_MISSING, source=source, message=msg, dry_run=dry_run)

        try:
            validate_name(desired_name, expected_numbers)
        except UnsafeNameError as e_name:
            status = ProcessingStatus.ABORT_EPISODE_MISMATCH if expected_numbers and is_safe_name(desired_name) else ProcessingStatus.ABORT_UNSAFE_NAME
            log.debug(f"[{status}] Refusing to rename '{source}': {e_name}")
            return RenameOutcome(status, source=source, message=str(e_name), dry_run=dry_run)

        destination_dir = Path(target_dir) if target_dir else source.parent
        target = destination_dir / desired_name

        if target == source:
            msg = f"Already named '{desired_name}'"
            log.debug(f"[{ProcessingStatus.PATH_ALREADY_CORRECT}] {msg}")
            return RenameOutcome(ProcessingStatus.PATH_ALREADY_CORRECT, source=source, target=target, message=msg, dry_run=dry_run)

        case_only = _is_same_entry(source, target)
        if (target.exists() or target.is_symlink()) and not case_only:
            msg = f"Target already exists, not merging: '{target}'"
            log.debug(f"[{ProcessingStatus.TARGET_EXISTS}] Cannot rename '{source}': {msg}")
            return RenameOutcome(ProcessingStatus.TARGET_EXISTS, source=source, target=target, message=msg, dry_run=dry_run)

        if sys.platform == 'win32' and len(str(target)) > WINDOWS_PATH_LENGTH_WARNING_THRESHOLD:
            log.warning(f"Target path exceeds {WINDOWS_PATH_LENGTH_WARNING_THRESHOLD} characters and may fail on Windows: '{target}'")

        if dry_run:
            msg = f"DRY RUN: Would rename '{source}' -> '{target}'"
            log.debug(msg)
            return RenameOutcome(ProcessingStatus.DRY_RUN, source=source, target=target, message=msg, dry_run=True)

        try:
            if not destination_dir.is_dir():
                raise FileOperationError(f"Destination folder does not exist: '{destination_dir}'")
            if case_only:
                _case_only_rename(source, target)
            else:
                _move(source, target)
            if not target.exists():
                raise FileOperationError(f"Rename reported success but '{target}' does not exist")
        except FileOperationError as e_op:
            log.error(f"[{ProcessingStatus.FILE_OPERATION_ERROR}] {e_op}", exc_info=True)
            return RenameOutcome(ProcessingStatus.FILE_OPERATION_ERROR, source=source, target=target, message=str(e_op))

        msg = f"Renamed '{source}' -> '{target}'"
        log.debug(msg)
        return RenameOutcome(ProcessingStatus.SUCCESS, source=source, target=target, message=msg)

    def rename_sidecars(self, old_video_path: Path, new_video_path: Path, dry_run: bool) -> Dict[Path, Path]:
        """Carry files sharing the video's stem (subtitles, .nfo) along with a video rename or move."""
        moved: Dict[Path, Path] = {}
        folder = old_video_path.parent
        old_stem = old_video_path.stem
        try:
            candidates = [p for p in folder.iterdir() if p.is_file() and p != old_video_path]
        except OSError as e:
            log.warning(f"Could not list '{folder}' for sidecar files: {e}")
            return moved
        for sidecar in candidates:
            if not sidecar.name.startswith(f"{old_stem}.") or sidecar.suffix.lower() == old_video_path.suffix.lower():
                continue
            new_name = f"{new_video_path.stem}{sidecar.name[len(old_stem):]}"
            outcome = self.try_rename(sidecar, new_name, dry_run, target_dir=new_video_path.parent)
            log_outcome(outcome)
            if outcome.status is ProcessingStatus.SUCCESS:
                moved[sidecar] = outcome.target
        return moved

    def move_file_into(self, source: Path, destination_dir: Path, dry_run: bool) -> RenameOutcome:
        return self.try_rename(source, source.name, dry_run, target_dir=destination_dir)

    def ensure_directory(self, path: Path, dry_run: bool) -> bool:
        if path.is_dir():
            return True
        if path.exists():
            log.error(f"Cannot create folder '{path}': a file with that name exists")
            return False
        try:
            validate_name(path.name)
        except UnsafeNameError as e_name:
            log.warning(f"[{ProcessingStatus.ABORT_UNSAFE_NAME}] Refusing to create folder: {e_name}")
            return False
        if dry_run:
            log.warning(f"DRY RUN: Would create folder '{path}'")
            return True
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            log.error(f"[{ProcessingStatus.FILE_OPERATION_ERROR}] Failed to create folder '{path}': {e}", exc_info=True)
            return False
        log.info(f"Created folder '{path}'")
        return True

    def remove_dir_if_empty(self, path: Path, dry_run: bool) -> bool:
        try:
            if not path.is_dir() or any(path.iterdir()):
                return False
        except OSError as e:
            log.error(f"Could not inspect folder '{path}': {e}")
            return False
        if dry_run:
            log.warning(f"DRY RUN: Would remove empty folder '{path}'")
            return True
        try:
            path.rmdir()
        except OSError as e:
            log.error(f"[{ProcessingStatus.FILE_OPERATION_ERROR}] Failed to remove empty folder '{path}': {e}", exc_info=True)
            return False
        log.info(f"Removed empty folder '{path}'")
        return True
