import argparse

import pytest

from libsync.config import LibSettings, cli_overrides_from_args


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ("LIBSYNC_LOG_LEVEL", "LIBSYNC_QUERY_LIMIT", "LIBSYNC_CASCADE_FOLDER_REMOVAL"):
        monkeypatch.delenv(key, raising=False)


def test_defaults_leave_open_behaviours_off(tmp_path):
    cfg = LibSettings.load(config_path=tmp_path / "missing.toml")
    assert cfg.cascade_folder_removal is False
    assert cfg.allow_scan_cancel is False
    assert cfg.autosave is True
    assert cfg.snapshot_key == "audiocore_library"
    assert cfg.config_path == tmp_path / "missing.toml"


def test_toml_then_env_then_cli_priority(tmp_path, monkeypatch):
    path = tmp_path / "config.toml"
    path.write_text('log_level = "DEBUG"\nquery_limit = 5\nmetadata_workers = 2\nunknown_key = 1\n')
    monkeypatch.setenv("LIBSYNC_QUERY_LIMIT", "7")

    cfg = LibSettings.load(config_path=path, overrides={"metadata_workers": 8, "log_level": None})

    assert cfg.log_level == "DEBUG"  # from file, None override ignored
    assert cfg.query_limit == 7  # env beats file
    assert cfg.metadata_workers == 8  # CLI beats everything


def test_write_excludes_config_path(tmp_path):
    cfg = LibSettings(db_path=str(tmp_path / "lib.db"), cascade_folder_removal=True)
    target = cfg.write(tmp_path / "out" / "config.toml")

    text = target.read_text()
    assert "cascade_folder_removal = true" in text
    assert "config_path" not in text
    assert "log_json" not in text  # None values are skipped

    again = LibSettings.load(config_path=target)
    assert again.cascade_folder_removal is True
    assert again.db_path == str(tmp_path / "lib.db")


def test_resolved_db_path_expands_user():
    cfg = LibSettings(db_path="~/lib.db")
    assert "~" not in str(cfg.resolved_db_path)


def test_cli_overrides_from_args_picks_known_keys():
    ns = argparse.Namespace(log_level="WARNING", db_path=None, cmd="scan", path="/x")
    assert cli_overrides_from_args(ns) == {"log_level": "WARNING", "db_path": None}
