"""Tests for ConfigStore."""

import json
from datetime import date
from pathlib import Path

from tweetvault.core.config_store import ConfigStore


class TestLoad:
    def test_missing_file_gives_defaults(self, tmp_path: Path):
        store = ConfigStore(tmp_path / "config.json", tmp_path / "media")
        assert store.load() == {"mediaDir": "", "updatedAt": None}

    def test_corrupt_file_gives_defaults(self, tmp_path: Path):
        config_file = tmp_path / "config.json"
        config_file.write_text("{not json")

        store = ConfigStore(config_file, tmp_path / "media")

        assert store.load()["mediaDir"] == ""


class TestSave:
    def test_save_persists_and_stamps(self, tmp_path: Path):
        config_file = tmp_path / "nested" / "config.json"
        store = ConfigStore(config_file, tmp_path / "media")

        saved = store.save(tmp_path / "chosen")

        assert saved["mediaDir"] == str(tmp_path / "chosen")
        assert saved["updatedAt"]
        on_disk = json.loads(config_file.read_text())
        assert on_disk["mediaDir"] == str(tmp_path / "chosen")

    def test_saved_dir_becomes_media_root(self, config_store: ConfigStore, tmp_path: Path):
        config_store.save(tmp_path / "chosen")
        assert config_store.resolve_media_root() == (tmp_path / "chosen").resolve()


class TestResolve:
    def test_default_media_root(self, config_store: ConfigStore, media_root: Path):
        assert config_store.resolve_media_root() == media_root.resolve()
        assert config_store.resolve_media_root().is_absolute()

    def test_today_dir_is_created(self, config_store: ConfigStore, media_root: Path):
        path = config_store.resolve_today_dir(date(2026, 1, 23))

        assert path == media_root.resolve() / "2026-01-23"
        assert path.is_dir()

    def test_today_dir_defaults_to_current_date(self, config_store: ConfigStore):
        path = config_store.resolve_today_dir()
        assert path.name == date.today().strftime("%Y-%m-%d")
