"""Configuration management for Hotfolder Watcher.

Stores and retrieves settings from a JSON config file in the
platform-appropriate application data directory, and keeps the persistent
token that identifies the hotfolder between runs.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from hotfolder.folders import LocalFolder
from hotfolder.platform_utils import (
    get_config_dir as _platform_config_dir,
)
from hotfolder.platform_utils import (
    get_log_path as _platform_log_path,
)

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "config.json"
LEGACY_TOKEN_FILE_NAME = "hotfolder_token.json"

MIN_POLL_INTERVAL_MS = 250

DEFAULT_CONFIG: dict[str, Any] = {
    "hotfolder_token": None,  # absolute path of the granted hotfolder
    # ---- processing action ----
    "auto_run_action": False,
    "action_id": "",
    "actions": {},  # action id -> command template ({path}, {name})
    "action_timeout_seconds": 0,  # 0 = no timeout
    # ---- detection ----
    "poll_interval_ms": 2000,
    "ignored_extensions": [".tmp"],
    "exclude_patterns": [],  # glob patterns, e.g. ["~*", ".DS_Store"]
    "use_fs_events": True,  # wake the poller early on filesystem events
    "process_existing_on_start": False,
    # ---- logging ----
    "log_level": "INFO",
    "max_log_size_mb": 10,
    "log_backup_count": 3,
    # ---- notifications ----
    "speak_status": False,
    "play_sound_on_error": False,
}


def get_config_dir() -> Path:
    """Return the platform-appropriate application config directory."""
    return _platform_config_dir()


def get_config_path() -> Path:
    """Return the path to the configuration file."""
    return get_config_dir() / CONFIG_FILE_NAME


def get_log_path() -> Path:
    """Return the path to the log file."""
    return _platform_log_path()


class Config:
    """Configuration manager backed by a JSON file."""

    def __init__(self, path: Path | None = None):
        """Load config from *path*, falling back to the platform default."""
        self._path = path or get_config_path()
        self._data: dict[str, Any] = dict(DEFAULT_CONFIG)
        self.load()

    @property
    def path(self) -> Path:
        return self._path

    # ---- persistence ----

    def load(self) -> None:
        """Load configuration from disk, applying defaults for missing keys."""
        if self._path.exists():
            try:
                with open(self._path, encoding="utf-8") as fh:
                    stored = json.load(fh)
                self._data = {**DEFAULT_CONFIG, **stored}
                logger.info("Configuration loaded from %s", self._path)
            except (json.JSONDecodeError, OSError) as exc:
                logger.warning("Could not read config (%s); using defaults.", exc)
                self._data = dict(DEFAULT_CONFIG)
        else:
            self._data = dict(DEFAULT_CONFIG)
            self.save()
            logger.info("Created default configuration at %s", self._path)
        self._migrate_legacy_token()

    def _migrate_legacy_token(self) -> None:
        """Fold an old ``hotfolder_token.json`` next to the config into it."""
        legacy = self._path.parent / LEGACY_TOKEN_FILE_NAME
        if not legacy.exists():
            return
        try:
            with open(legacy, encoding="utf-8") as fh:
                stored = json.load(fh)
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Could not read legacy token file (%s); ignoring.", exc)
            return
        if isinstance(stored, dict):
            token = stored.get("token") or stored.get("hotfolder_token")
            if token and not self.hotfolder_token:
                self._data["hotfolder_token"] = token
            self.save()
            logger.info("Migrated legacy token file %s", legacy)
        try:
            legacy.unlink()
        except OSError:
            logger.debug("Could not remove legacy token file %s", legacy, exc_info=True)

    def save(self) -> None:
        """Persist the current configuration to disk."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "w", encoding="utf-8") as fh:
                json.dump(self._data, fh, indent=2)
            logger.info("Configuration saved.")
        except OSError as exc:
            logger.error("Failed to save configuration: %s", exc)

    # ---- hotfolder ----

    @property
    def hotfolder_token(self) -> str | None:
        """Return the persisted hotfolder token (its absolute path)."""
        return self._data.get("hotfolder_token") or None

    @hotfolder_token.setter
    def hotfolder_token(self, value: str | None) -> None:
        self._data["hotfolder_token"] = value or None

    # ---- processing action ----

    @property
    def auto_run_action(self) -> bool:
        """Return whether the action runs on every detected file."""
        return bool(self._data.get("auto_run_action", False))

    @auto_run_action.setter
    def auto_run_action(self, value: bool) -> None:
        self._data["auto_run_action"] = bool(value)

    @property
    def action_id(self) -> str:
        """Return the id of the action to run."""
        return (self._data.get("action_id") or "").strip()

    @action_id.setter
    def action_id(self, value: str) -> None:
        self._data["action_id"] = (value or "").strip()

    @property
    def actions(self) -> dict[str, str]:
        """Return the configured action id -> command template mapping."""
        actions = self._data.get("actions") or {}
        return {str(k): str(v) for k, v in actions.items()}

    @actions.setter
    def actions(self, value: dict[str, str]) -> None:
        self._data["actions"] = {k.strip(): v for k, v in value.items() if k.strip()}

    @property
    def action_timeout(self) -> float:
        """Return the per-action timeout in seconds (0 = none)."""
        return float(self._data.get("action_timeout_seconds", 0))

    @action_timeout.setter
    def action_timeout(self, value: float) -> None:
        self._data["action_timeout_seconds"] = max(0.0, float(value))

    # ---- detection ----

    @property
    def poll_interval(self) -> float:
        """Return the poll interval in seconds."""
        ms = int(self._data.get("poll_interval_ms", 2000))
        return max(MIN_POLL_INTERVAL_MS, ms) / 1000.0

    @poll_interval.setter
    def poll_interval(self, seconds: float) -> None:
        """Set the poll interval (minimum 250 ms)."""
        self._data["poll_interval_ms"] = max(MIN_POLL_INTERVAL_MS, int(seconds * 1000))

    @property
    def ignored_extensions(self) -> list[str]:
        return list(self._data.get("ignored_extensions", [".tmp"]))

    @ignored_extensions.setter
    def ignored_extensions(self, value: list[str]) -> None:
        """Set ignored extensions, normalised to lowercase with a leading dot."""
        cleaned = []
        for ext in value:
            ext = ext.strip().lower()
            if ext:
                cleaned.append(ext if ext.startswith(".") else "." + ext)
        self._data["ignored_extensions"] = cleaned

    @property
    def exclude_patterns(self) -> list[str]:
        """Return glob patterns used to skip files."""
        return self._data.get("exclude_patterns", [])

    @exclude_patterns.setter
    def exclude_patterns(self, value: list[str]) -> None:
        self._data["exclude_patterns"] = [p.strip() for p in value if p.strip()]

    @property
    def use_fs_events(self) -> bool:
        return bool(self._data.get("use_fs_events", True))

    @use_fs_events.setter
    def use_fs_events(self, value: bool) -> None:
        self._data["use_fs_events"] = bool(value)

    @property
    def process_existing_on_start(self) -> bool:
        return bool(self._data.get("process_existing_on_start", False))

    @process_existing_on_start.setter
    def process_existing_on_start(self, value: bool) -> None:
        self._data["process_existing_on_start"] = bool(value)

    # ---- logging ----

    @property
    def log_level(self) -> str:
        """Return the current logging level name."""
        return self._data.get("log_level", "INFO")

    @log_level.setter
    def log_level(self, value: str) -> None:
        self._data["log_level"] = value.upper()

    @property
    def max_log_size_mb(self) -> int:
        """Return the maximum log file size in MB before rotation."""
        return int(self._data.get("max_log_size_mb", 10))

    @max_log_size_mb.setter
    def max_log_size_mb(self, value: int) -> None:
        self._data["max_log_size_mb"] = max(1, int(value))

    @property
    def log_backup_count(self) -> int:
        """Return the number of rotated log backups to keep."""
        return int(self._data.get("log_backup_count", 3))

    @log_backup_count.setter
    def log_backup_count(self, value: int) -> None:
        self._data["log_backup_count"] = max(0, int(value))

    # ---- notifications ----

    @property
    def speak_status(self) -> bool:
        return bool(self._data.get("speak_status", False))

    @speak_status.setter
    def speak_status(self, value: bool) -> None:
        self._data["speak_status"] = bool(value)

    @property
    def play_sound_on_error(self) -> bool:
        return bool(self._data.get("play_sound_on_error", False))

    @play_sound_on_error.setter
    def play_sound_on_error(self, value: bool) -> None:
        self._data["play_sound_on_error"] = bool(value)

    # ---- convenience ----

    def is_action_configured(self) -> bool:
        """Return True when auto-run is on and the chosen action has a command."""
        return (
            self.auto_run_action
            and bool(self.action_id)
            and bool(self.actions.get(self.action_id, "").strip())
        )


class FolderTokenStore:
    """Persists the hotfolder between runs as a token in the config.

    The token is the folder's absolute path.
    """

    def __init__(self, config: Config):
        self._config = config

    def restore(self) -> LocalFolder | None:
        """Return the persisted hotfolder, or None if unset or no longer usable."""
        token = self._config.hotfolder_token
        if not token:
            return None
        folder = LocalFolder(token)
        if not folder.exists():
            logger.warning("Persisted hotfolder no longer exists: %s", token)
            return None
        logger.info("Restored hotfolder from persistent token: %s", token)
        return folder

    def persist(self, folder: LocalFolder) -> str:
        """Save *folder* as the hotfolder and return its token."""
        token = str(Path(folder.native_path).resolve())
        self._config.hotfolder_token = token
        self._config.save()
        logger.info("Saved persistent token for hotfolder")
        return token
