# tests/test_file_system_ops.py

import errno
import logging
import pytest
from pathlib import Path

from metadata_renamer import file_system_ops
from metadata_renamer.enums import ProcessingStatus
from metadata_renamer.exceptions import UnsafeNameError, FileOperationError
from metadata_renamer.file_system_ops import SafeRenameExecutor, validate_name, rebase_path, rebase_paths


@pytest.fixture
def executor():
    return SafeRenameExecutor()


# --- validate_name ---

def test_validate_name_accepts_matching_tokens():
    validate_name("Show S01E07 - Title.mkv", (1, 7))
    validate_name("Show - Title.mkv", (1, 7)) # no tokens, nothing to contradict

@pytest.mark.parametrize("name, expected", [
    ("Show S01E05.mkv", (1, 7)),
    ("Show S02E07.mkv", (1, 7)),
])
def test_validate_name_rejects_token_mismatch(name, expected):
    with pytest.raises(UnsafeNameError):
        validate_name(name, expected)

@pytest.mark.parametrize("name", ["", "a/b", "bad:name", "CON"])
def test_validate_name_rejects_unsafe(name):
    with pytest.raises(UnsafeNameError):
        validate_name(name)


# --- try_rename ---

def test_try_rename_live(tmp_path, executor):
    source = tmp_path / "old.mkv"
    source.write_text("data")
    outcome = executor.try_rename(source, "new.mkv", dry_run=False)
    assert outcome.status is ProcessingStatus.SUCCESS
    assert bool(outcome) is True
    assert not source.exists()
    assert (tmp_path / "new.mkv").read_text() == "data"
    assert outcome.final_path == tmp_path / "new.mkv"

def test_try_rename_dry_run_leaves_file(tmp_path, executor):
    source = tmp_path / "old.mkv"
    source.write_text("data")
    outcome = executor.try_rename(source, "new.mkv", dry_run=True)
    assert outcome.status is ProcessingStatus.DRY_RUN
    assert outcome.dry_run is True
    assert "Would rename" in outcome.message
    assert source.exists()
    assert not (tmp_path / "new.mkv").exists()
    assert outcome.final_path == source

def test_try_rename_never_overwrites(tmp_path, executor):
    source = tmp_path / "old.mkv"
    source.write_text("old")
    existing = tmp_path / "new.mkv"
    existing.write_text("keep me")
    outcome = executor.try_rename(source, "new.mkv", dry_run=False)
    assert outcome.status is ProcessingStatus.TARGET_EXISTS
    assert source.read_text() == "old"
    assert existing.read_text() == "keep me"

def test_try_rename_target_exists_even_in_dry_run(tmp_path, executor):
    (tmp_path / "old.mkv").write_text("old")
    (tmp_path / "new.mkv").write_text("new")
    outcome = executor.try_rename(tmp_path / "old.mkv", "new.mkv", dry_run=True)
    assert outcome.status is ProcessingStatus.TARGET_EXISTS

def test_try_rename_unsafe_name_aborts_in_dry_run_too(tmp_path, executor):
    source = tmp_path / "old.mkv"
    source.write_text("x")
    outcome = executor.try_rename(source, "bad/name.mkv", dry_run=True)
    assert outcome.status is ProcessingStatus.ABORT_UNSAFE_NAME
    assert source.exists()

def test_try_rename_episode_token_mismatch_aborts(tmp_path, executor):
    source = tmp_path / "Show S01E05.mkv"
    source.write_text("x")
    outcome = executor.try_rename(source, "Show S01E05 - Title.mkv", dry_run=False, expected_numbers=(1, 7))
    assert outcome.status is ProcessingStatus.ABORT_EPISODE_MISMATCH
    assert source.exists()

def test_try_rename_missing_path(tmp_path, executor):
    assert executor.try_rename(None, "x.mkv", dry_run=False).status is ProcessingStatus.SKIP_NO_PATH
    assert executor.try_rename(tmp_path / "nope.mkv", "x.mkv", dry_run=False).status is ProcessingStatus.SKIP_PATH_MISSING

def test_try_rename_same_name_is_already_correct(tmp_path, executor):
    source = tmp_path / "same.mkv"
    source.write_text("x")
    outcome = executor.try_rename(source, "same.mkv", dry_run=False)
    assert outcome.status is ProcessingStatus.PATH_ALREADY_CORRECT

def test_try_rename_into_other_folder(tmp_path, executor):
    source = tmp_path / "Season 01" / "Show S02E01.mkv"
    source.parent.mkdir()
    source.write_text("x")
    target_dir = tmp_path / "Season 02"
    target_dir.mkdir()
    outcome = executor.try_rename(source, "Show S02E01 - Title.mkv", dry_run=False, expected_numbers=(2, 1), target_dir=target_dir)
    assert outcome.status is ProcessingStatus.SUCCESS
    assert (target_dir / "Show S02E01 - Title.mkv").exists()

def test_try_rename_live_into_missing_folder_fails_cleanly(tmp_path, executor):
    source = tmp_path / "a.mkv"
    source.write_text("x")
    outcome = executor.try_rename(source, "b.mkv", dry_run=False, target_dir=tmp_path / "missing")
    assert outcome.status is ProcessingStatus.FILE_OPERATION_ERROR
    assert source.exists()

def test_try_rename_reports_os_errors(tmp_path, executor, mocker, caplog):
    source = tmp_path / "a.mkv"
    source.write_text("x")
    mocker.patch('metadata_renamer.file_system_ops.os.rename', side_effect=PermissionError(errno.EACCES, "denied"))
    with caplog.at_level(logging.ERROR, logger="metadata_renamer"):
        outcome = executor.try_rename(source, "b.mkv", dry_run=False)
    assert outcome.status is ProcessingStatus.FILE_OPERATION_ERROR
    assert bool(outcome) is False
    assert "denied" in outcome.message
    assert source.exists()
    assert "File Operation Error" in caplog.text

def test_move_falls_back_to_shutil_across_devices(tmp_path, mocker):
    source = tmp_path / "a.mkv"
    source.write_text("x")
    mocker.patch('metadata_renamer.file_system_ops.os.rename', side_effect=OSError(errno.EXDEV, "cross-device"))
    mock_move = mocker.patch('metadata_renamer.file_system_ops.shutil.move')
    file_system_ops._move(source, tmp_path / "b.mkv")
    mock_move.assert_called_once_with(str(source), str(tmp_path / "b.mkv"))

def test_move_wraps_errors(tmp_path, mocker):
    mocker.patch('metadata_renamer.file_system_ops.os.rename', side_effect=OSError(errno.EIO, "io"))
    with pytest.raises(FileOperationError):
        file_system_ops._move(tmp_path / "a", tmp_path / "b")

def test_case_only_rename(tmp_path, executor, mocker):
    source = tmp_path / "show s01e01.mkv"
    source.write_text("x")
    target = tmp_path / "Show S01E01.mkv"
    # Emulate a case-insensitive filesystem: the target resolves to the source entry.
    mocker.patch('metadata_renamer.file_system_ops._is_same_entry', return_value=True)
    mock_case = mocker.patch('metadata_renamer.file_system_ops._case_only_rename')
    outcome = executor.try_rename(source, target.name, dry_run=False)
    mock_case.assert_called_once_with(source, target)
    # The mocked rename did nothing, so the result check reports a failure for the missing target.
    assert outcome.status is ProcessingStatus.FILE_OPERATION_ERROR


# --- sidecars / folders ---

def test_rename_sidecars_follow_video(tmp_path, executor):
    video = tmp_path / "old.mkv"
    video.write_text("v")
    (tmp_path / "old.en.srt").write_text("s")
    (tmp_path / "old.nfo").write_text("n")
    (tmp_path / "older.srt").write_text("unrelated")
    new_video = tmp_path / "new.mkv"
    video.rename(new_video)

    moved = executor.rename_sidecars(video, new_video, dry_run=False)

    assert (tmp_path / "new.en.srt").exists()
    assert (tmp_path / "new.nfo").exists()
    assert (tmp_path / "older.srt").exists()
    assert moved == {tmp_path / "old.en.srt": tmp_path / "new.en.srt", tmp_path / "old.nfo": tmp_path / "new.nfo"}

def test_rename_sidecars_dry_run(tmp_path, executor):
    (tmp_path / "old.mkv").write_text("v")
    (tmp_path / "old.srt").write_text("s")
    moved = executor.rename_sidecars(tmp_path / "old.mkv", tmp_path / "new.mkv", dry_run=True)
    assert moved == {}
    assert (tmp_path / "old.srt").exists()

def test_ensure_directory(tmp_path, executor):
    target = tmp_path / "Season 02"
    assert executor.ensure_directory(target, dry_run=True) is True
    assert not target.exists()
    assert executor.ensure_directory(target, dry_run=False) is True
    assert target.is_dir()

def test_ensure_directory_refuses_file_and_unsafe_names(tmp_path, executor):
    blocker = tmp_path / "Season 01"
    blocker.write_text("not a folder")
    assert executor.ensure_directory(blocker, dry_run=False) is False
    assert executor.ensure_directory(tmp_path / "bad?", dry_run=False) is False

def test_remove_dir_if_empty(tmp_path, executor):
    empty = tmp_path / "empty"
    empty.mkdir()
    full = tmp_path / "full"
    full.mkdir()
    (full / "f").write_text("x")
    assert executor.remove_dir_if_empty(full, dry_run=False) is False
    assert executor.remove_dir_if_empty(empty, dry_run=True) is True
    assert empty.exists()
    assert executor.remove_dir_if_empty(empty, dry_run=False) is True
    assert not empty.exists()


# --- path rebasing ---

def test_rebase_path():
    assert rebase_path(Path("/tv/Foo/Season 01/a.mkv"), Path("/tv/Foo"), Path("/tv/Foo (2020)")) == Path("/tv/Foo (2020)/Season 01/a.mkv")
    assert rebase_path(Path("/tv/Bar/a.mkv"), Path("/tv/Foo"), Path("/tv/Foo (2020)")) == Path("/tv/Bar/a.mkv")
    assert rebase_path(None, Path("/a"), Path("/b")) is None

def test_rebase_paths_replays_moves_in_order():
    moves = {
        Path("/tv/Foo/a.mkv"): Path("/tv/Foo/Season 1/a.mkv"),
        Path("/tv/Foo/Season 1"): Path("/tv/Foo/Season 01"),
    }
    assert rebase_paths(Path("/tv/Foo/a.mkv"), moves) == Path("/tv/Foo/Season 01/a.mkv")
    assert rebase_paths(Path("/tv/Foo/Season 1/b.mkv"), moves) == Path("/tv/Foo/Season 01/b.mkv")
