"""
Cross-platform utilities for Hotfolder Watcher.

Keeps OS detection in one place so the rest of the package never has to
branch on ``sys.platform`` itself.

Supported platforms:
  - Windows 10/11
  - macOS 12+
  - Linux
"""

from __future__ import annotations

import logging
import os
import subprocess
import sys
from pathlib import Path

logger = logging.getLogger(__name__)

# ---- platform flags ----------------------------------------------------

IS_WINDOWS: bool = sys.platform == "win32"
IS_MACOS: bool = sys.platform == "darwin"
IS_LINUX: bool = sys.platform.startswith("linux")

_APP_DIR_NAME = "Hotfolder"

# ---- directories -------------------------------------------------------


def get_config_dir() -> Path:
    """
    Return the application config directory, created if needed.

    - Windows : ``%APPDATA%\\Hotfolder``
    - macOS   : ``~/Library/Application Support/Hotfolder``
    - Linux   : ``$XDG_CONFIG_HOME/Hotfolder`` (default ``~/.config``)
    """
    if IS_WINDOWS:
        base = os.environ.get("APPDATA", str(Path.home()))
    elif IS_MACOS:
        base = str(Path.home() / "Library" / "Application Support")
    else:
        base = os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config"))

    config_dir = Path(base) / _APP_DIR_NAME
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_log_path() -> Path:
    """Return the path to the log file (inside the config directory)."""
    return get_config_dir() / "hotfolder.log"


# ---- alerts -------------------------------------------------------------


def play_error_sound() -> None:
    """Play the OS error/alert sound.  Silent on unsupported platforms."""
    try:
        if IS_WINDOWS:
            import winsound  # type: ignore[import-untyped]
            winsound.MessageBeep(winsound.MB_ICONHAND)
        elif IS_MACOS:
            subprocess.Popen(
                ["afplay", "/System/Library/Sounds/Basso.aiff"],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        # Linux: no universal system sound
    except Exception:
        logger.debug("Could not play error sound.", exc_info=True)
