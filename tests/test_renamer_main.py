# tests/test_renamer_main.py

import json
import logging
import os
import pytest

import renamer_main
from metadata_renamer import config_manager
from metadata_renamer.log_setup import LOGGER_NAME


@pytest.fixture(autouse=True)
def isolated_run(mocker, monkeypatch, tmp_path):
    """No stray config/.env from the machine, and no logging handlers left behind."""
    mocker.patch('metadata_renamer.config_manager.find_dotenv', return_value="")
    for key in list(os.environ):
        if key.startswith(config_manager.ENV_PREFIX):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)

@pytest.fixture
def snapshot(tmp_path):
    (tmp_path / "tv" / "Foo").mkdir(parents=True)
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps({
        'shows': [{'id': 'foo', 'name': 'Foo', 'year': 2020, 'path': 'tv/Foo', 'provider_ids': {'Tmdb': '42'}}],
    }), encoding='utf-8')
    return path


def run_main(*argv):
    try:
        renamer_main.main(list(argv))
    except SystemExit as e:
        return e.code
    return 0


def test_reconcile_dry_run_by_default(tmp_path, snapshot):
    code = run_main('-q', '--config', str(tmp_path / "absent.toml"), 'reconcile', str(snapshot))
    assert code == 0
    assert (tmp_path / "tv" / "Foo").is_dir()

def test_reconcile_live(tmp_path, snapshot, capsys, mocker):
    mocker.patch('metadata_renamer.config_manager.Confirm.ask', return_value=False)
    code = run_main('--config', str(tmp_path / "absent.toml"), 'reconcile', str(snapshot), '--live')
    assert code == 0
    assert (tmp_path / "tv" / "Foo (2020) [tmdb-42]").is_dir()
    assert "Reconciliation Summary" in capsys.readouterr().out

def test_reconcile_show_filter_skips_unknown_ids(tmp_path, snapshot):
    code = run_main('-q', '--config', str(tmp_path / "absent.toml"), 'reconcile', str(snapshot), '--live', '--show-id', 'other')
    assert code == 0
    assert (tmp_path / "tv" / "Foo").is_dir()

def test_reconcile_bad_snapshot_exits_1(tmp_path, capsys):
    bad = tmp_path / "bad.json"
    bad.write_text('{"shows": [{"name": "no id"}]}', encoding='utf-8')
    code = run_main('-q', '--config', str(tmp_path / "absent.toml"), 'reconcile', str(bad))
    assert code == 1
    assert "shows.0.id" in capsys.readouterr().err

def test_invalid_config_exits_2(tmp_path, snapshot, capsys):
    config = tmp_path / "config.toml"
    config.write_text('[default]\nretry_max_attempts = "many"\n', encoding='utf-8')
    code = run_main('-q', '--config', str(config), 'reconcile', str(snapshot))
    assert code == 2
    assert "FATAL CONFIGURATION ERROR" in capsys.readouterr().err

def test_config_generate_and_validate(tmp_path):
    target = tmp_path / "conf" / "config.toml"
    assert run_main('-q', 'config', 'generate', '-o', str(target)) == 0
    assert target.is_file()

    # Quiet mode never prompts before overwriting.
    assert run_main('-q', 'config', 'generate', '-o', str(target)) == 1
    assert run_main('-q', 'config', 'generate', '-o', str(target), '--force') == 0

    assert run_main('-q', '--config', str(target), 'config', 'validate') == 0

def test_config_validate_reports_bad_profile(tmp_path, monkeypatch):
    config = tmp_path / "config.toml"
    config.write_text('[default]\n\n[fast]\nbulk_refresh_threshold = 1\n', encoding='utf-8')
    assert run_main('-q', '--config', str(config), 'config', 'validate') == 1

def test_config_show_prints_effective_settings(tmp_path, capsys):
    config = tmp_path / "config.toml"
    config.write_text('[default]\nseries_folder_format = "{Name}"\n', encoding='utf-8')
    assert run_main('--config', str(config), 'config', 'show') == 0
    out = capsys.readouterr().out
    assert '"series_folder_format": "{Name}"' in out
