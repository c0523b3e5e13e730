from __future__ import annotations

import json
import os

import pytest

from gatekeeper.core.config.manager import ConfigManager
from gatekeeper.core.config.models import AppConfig
from gatekeeper.core.errors import ConfigError

from .helpers.fakes import DummyLogger


def _write(path: str, obj) -> None:
    with open(path, "w", encoding="utf-8") as f:
        if isinstance(obj, str):
            f.write(obj)
        else:
            json.dump(obj, f)


def test_missing_file_is_created_with_defaults(tmp_config_root):
    cm = ConfigManager(fs=tmp_config_root, logger=DummyLogger())
    cfg = cm.load()
    assert cfg == AppConfig()
    assert os.path.exists(tmp_config_root.app)
    with open(tmp_config_root.app, "r", encoding="utf-8") as f:
        on_disk = json.load(f)
    assert on_disk["whitelist"]["sweep_interval_seconds"] == 5.0
    assert on_disk["whitelist"]["case_sensitive"] is False


def test_values_are_loaded(tmp_config_root):
    _write(tmp_config_root.app, {"whitelist": {"case_sensitive": True, "kick_on_revoke": True}, "messages": {"locale": "RU"}})
    cfg = ConfigManager(fs=tmp_config_root, logger=DummyLogger()).load()
    assert cfg.whitelist.case_sensitive is True
    assert cfg.whitelist.kick_on_revoke is True
    assert cfg.messages.locale == "ru"
    assert cfg.whitelist.whitelist_file == "whitelist.txt"


def test_corrupt_json_is_quarantined_and_defaults_used(tmp_config_root):
    _write(tmp_config_root.app, "{not json")
    logger = DummyLogger()
    cfg = ConfigManager(fs=tmp_config_root, logger=logger).load()
    assert cfg == AppConfig()
    backups = os.listdir(tmp_config_root.backups_dir)
    assert any("gatekeeper.json" in b and "corrupt" in b for b in backups)
    with open(tmp_config_root.app, "r", encoding="utf-8") as f:
        assert json.load(f)["config_version"] == 1


def test_invalid_values_fall_back_without_overwriting(tmp_config_root):
    bad = {"whitelist": {"sweep_interval_seconds": -1}, "unknown": 1}
    _write(tmp_config_root.app, bad)
    logger = DummyLogger()
    cfg = ConfigManager(fs=tmp_config_root, logger=logger).load()
    assert cfg == AppConfig()
    with open(tmp_config_root.app, "r", encoding="utf-8") as f:
        assert json.load(f) == bad
    assert any("Invalid configuration" in m for m in logger.messages("error"))


def test_reload_keeps_previous_on_bad_file(tmp_config_root):
    _write(tmp_config_root.app, {"whitelist": {"kick_on_revoke": True}})
    cm = ConfigManager(fs=tmp_config_root, logger=DummyLogger())
    cm.load()
    _write(tmp_config_root.app, {"whitelist": {"kick_on_revoke": "maybe"}})
    assert cm.reload().whitelist.kick_on_revoke is True

    _write(tmp_config_root.app, {"whitelist": {"kick_on_revoke": False}})
    assert cm.reload().whitelist.kick_on_revoke is False


def test_get_before_load_raises(tmp_config_root):
    with pytest.raises(ConfigError):
        ConfigManager(fs=tmp_config_root, logger=DummyLogger()).get()


def test_save_round_trips_and_respects_read_only(tmp_config_root):
    cm = ConfigManager(fs=tmp_config_root, logger=DummyLogger())
    cfg = cm.load()
    updated = cfg.model_copy(update={"whitelist": cfg.whitelist.model_copy(update={"backup_keep": 9})})
    cm.save(updated)
    assert ConfigManager(fs=tmp_config_root, logger=DummyLogger()).load().whitelist.backup_keep == 9

    ro = ConfigManager(fs=tmp_config_root, logger=DummyLogger(), read_only=True)
    with pytest.raises(ConfigError):
        ro.save(updated)


def test_api_key_hashes_are_normalized():
    cfg = AppConfig.model_validate({"web": {"api_key_hashes": [" ABCDEF ", ""]}})
    assert cfg.web.api_key_hashes == ["abcdef"]
