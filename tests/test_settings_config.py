import logging
import os
from pathlib import Path

import pytest

from constants import ENV_CONFIG_PATH, ENV_DATA_DIR, ENV_LOG_LEVEL, ENV_QUERY_CAP
from datamodels.profile import IngestProfile
from infra.config import load_config
from infra.diagnostics_logging import cleanup_old_logs, setup_logging
from infra.errors import ValidationError


def test_ingest_window_defaults_and_validation(settings):
    assert settings.get_ingest_window_days() == 7
    assert settings.set_ingest_window_days(30) == 30
    assert settings.get_ingest_window_days() == 30
    assert (settings.base_dir / "ingest_window_days.txt").read_text() == "30"
    for bad in (0, 366, "abc", True):
        with pytest.raises(ValidationError):
            settings.set_ingest_window_days(bad)
    assert settings.get_ingest_window_days() == 30


def test_corrupt_window_file_falls_back(settings):
    settings.base_dir.mkdir(parents=True)
    (settings.base_dir / "ingest_window_days.txt").write_text("999")
    assert settings.get_ingest_window_days() == 7


def test_ingest_profile_is_sanitized_server_side(settings):
    saved = settings.set_ingest_profile({"autoSyncOnStartup": True, "maxEventsPerSync": 50,
                                         "windowsChannels": []})
    assert saved == IngestProfile(auto_sync_on_startup=True, max_events_per_sync=100,
                                  windows_channels=("Application",))
    assert settings.get_ingest_profile() == saved

    saved = settings.set_ingest_profile({"maxEventsPerSync": 50000,
                                         "windowsChannels": ["security", "Bogus", "Security", "System"]})
    assert saved.max_events_per_sync == 20000
    assert saved.windows_channels == ("Security", "System")


def test_corrupt_profile_file_falls_back(settings):
    settings.base_dir.mkdir(parents=True)
    (settings.base_dir / "ingest_profile.json").write_text("{oops")
    assert settings.get_ingest_profile() == IngestProfile()


def test_theme_and_export_dir(settings, tmp_path):
    assert settings.get_theme() is None
    assert settings.set_theme("dark") == "dark"
    with pytest.raises(ValidationError):
        settings.set_theme("neon")
    assert settings.set_export_dir(str(tmp_path)) == str(tmp_path)
    assert settings.get_export_dir() == str(tmp_path)
    with pytest.raises(ValidationError):
        settings.set_export_dir(str(tmp_path / "missing"))
    assert settings.set_export_dir("") is None
    assert settings.get_export_dir() is None


def test_opaque_values_round_trip(settings):
    settings.set("last_view", "crashes")
    assert settings.get("last_view") == "crashes"
    settings.set("last_view", None)
    assert settings.get("last_view") is None


def test_config_layers_yaml_then_env(tmp_path, monkeypatch):
    config_file = tmp_path / "hermes.yaml"
    config_file.write_text(f"data_dir: {tmp_path / 'from-yaml'}\nquery_cap: 500\nlog_level: DEBUG\n")
    monkeypatch.setenv(ENV_CONFIG_PATH, str(config_file))
    monkeypatch.setenv(ENV_QUERY_CAP, "750")
    monkeypatch.delenv(ENV_DATA_DIR, raising=False)
    monkeypatch.delenv(ENV_LOG_LEVEL, raising=False)

    config = load_config(use_dotenv=False)
    assert config.data_dir == tmp_path / "from-yaml"
    assert config.query_cap == 750
    assert config.log_level == "DEBUG"
    assert config.db_path == tmp_path / "from-yaml" / "events.db"


def test_config_ignores_invalid_values(tmp_path, monkeypatch):
    monkeypatch.delenv(ENV_CONFIG_PATH, raising=False)
    monkeypatch.setenv(ENV_QUERY_CAP, "lots")
    monkeypatch.setenv(ENV_DATA_DIR, str(tmp_path))
    config = load_config(use_dotenv=False)
    assert config.query_cap == 10000
    assert config.data_dir == Path(tmp_path)


def test_setup_logging_writes_dated_file_and_prunes(tmp_path):
    log_dir = tmp_path / "logs"
    log_dir.mkdir()
    stale = log_dir / "diagnostics_20200101.log"
    stale.write_text("old")
    os.utime(stale, (0, 0))

    log_file = setup_logging("INFO", log_dir, retention_days=7)
    try:
        assert not stale.exists()
        logging.getLogger("hermes.test").info("hello diagnostics")
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "hello diagnostics" in log_file.read_text(encoding="utf-8")
        assert cleanup_old_logs(log_dir, 7) == 0
    finally:
        setup_logging("WARNING")
