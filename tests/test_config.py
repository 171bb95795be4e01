"""Tests for hotfolder.config"""
import json

from hotfolder.config import (
    DEFAULT_CONFIG,
    LEGACY_TOKEN_FILE_NAME,
    Config,
    FolderTokenStore,
)
from hotfolder.folders import LocalFolder


class TestConfig:
    """Test suite for Config"""

    def test_creates_default_file(self, tmp_path):
        """Test that a missing config file is created with defaults"""
        path = tmp_path / "config.json"
        cfg = Config(path)
        assert path.exists()
        assert json.loads(path.read_text()) == DEFAULT_CONFIG
        assert cfg.poll_interval == 2.0
        assert cfg.ignored_extensions == [".tmp"]
        assert cfg.auto_run_action is False

    def test_stored_values_override_defaults(self, tmp_path):
        """Test that stored keys win and missing keys get defaults"""
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"auto_run_action": True, "action_id": " resize "}))
        cfg = Config(path)
        assert cfg.auto_run_action is True
        assert cfg.action_id == "resize"
        assert cfg.use_fs_events is True

    def test_corrupt_file_falls_back_to_defaults(self, tmp_path):
        """Test that unreadable JSON yields defaults instead of crashing"""
        path = tmp_path / "config.json"
        path.write_text("{not json")
        cfg = Config(path)
        assert cfg.poll_interval == 2.0

    def test_poll_interval_has_a_floor(self, tmp_path):
        """Test the minimum poll interval"""
        cfg = Config(tmp_path / "config.json")
        cfg.poll_interval = 0.01
        assert cfg.poll_interval == 0.25

    def test_ignored_extensions_normalised(self, tmp_path):
        """Test that extensions are lowercased and dotted"""
        cfg = Config(tmp_path / "config.json")
        cfg.ignored_extensions = ["TMP", " .Part ", ""]
        assert cfg.ignored_extensions == [".tmp", ".part"]

    def test_round_trip_save(self, tmp_path):
        """Test that saved settings are loaded back"""
        path = tmp_path / "config.json"
        cfg = Config(path)
        cfg.actions = {"resize": "magick {path} -resize 50% {path}", " ": "x"}
        cfg.action_id = "resize"
        cfg.auto_run_action = True
        cfg.save()

        again = Config(path)
        assert again.actions == {"resize": "magick {path} -resize 50% {path}"}
        assert again.is_action_configured()

    def test_legacy_token_migrated(self, tmp_path):
        """Test that hotfolder_token.json is folded into the config and removed"""
        legacy = tmp_path / LEGACY_TOKEN_FILE_NAME
        legacy.write_text(json.dumps({"token": "/data/hotfolder"}))

        cfg = Config(tmp_path / "config.json")

        assert cfg.hotfolder_token == "/data/hotfolder"
        assert not legacy.exists()
        assert json.loads((tmp_path / "config.json").read_text())["hotfolder_token"] == "/data/hotfolder"

    def test_legacy_token_does_not_override(self, tmp_path):
        """Test that an existing token wins over the legacy file"""
        (tmp_path / "config.json").write_text(json.dumps({"hotfolder_token": "/new"}))
        (tmp_path / LEGACY_TOKEN_FILE_NAME).write_text(json.dumps({"token": "/old"}))

        assert Config(tmp_path / "config.json").hotfolder_token == "/new"


class TestFolderTokenStore:
    """Test suite for FolderTokenStore"""

    def test_restore_without_token(self, tmp_path):
        """Test that restore returns None when nothing was persisted"""
        store = FolderTokenStore(Config(tmp_path / "config.json"))
        assert store.restore() is None

    def test_persist_and_restore(self, tmp_path):
        """Test that a persisted folder is restored on a fresh config"""
        hot = tmp_path / "hot"
        hot.mkdir()
        path = tmp_path / "config.json"
        token = FolderTokenStore(Config(path)).persist(LocalFolder(hot))

        restored = FolderTokenStore(Config(path)).restore()

        assert token == str(hot.resolve())
        assert restored is not None
        assert restored.native_path == str(hot.resolve())

    def test_restore_missing_folder(self, tmp_path):
        """Test that a token pointing at a deleted folder restores nothing"""
        cfg = Config(tmp_path / "config.json")
        cfg.hotfolder_token = str(tmp_path / "deleted")
        assert FolderTokenStore(cfg).restore() is None
