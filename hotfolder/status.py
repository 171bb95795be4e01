"""Status line and event log for Hotfolder Watcher."""

from __future__ import annotations

import logging
import threading
from collections import deque
from datetime import datetime
from typing import Protocol

from hotfolder.notify import notifier
from hotfolder.platform_utils import play_error_sound

logger = logging.getLogger(__name__)


class StatusSink(Protocol):
    """Receives human-readable status updates from the watcher core."""

    def report(self, message: str) -> None:
        """Append an event line to the log."""
        ...

    def set_status(self, message: str, error: bool = False) -> None:
        """Replace the aggregate status line (and log it)."""
        ...


class StatusBoard:
    """
    Default :class:`StatusSink`.

    Keeps a single status line plus an append-only history of events
    (the newest *history_limit* lines are held in memory; everything goes
    to the log file through :mod:`logging`).

    Parameters
    ----------
    speak : bool
        Announce status-line changes through the screen reader notifier.
    play_sound_on_error : bool
        Play the OS alert sound when an error status is set.
    history_limit : int
        Number of event lines kept in memory.
    """

    def __init__(
        self,
        speak: bool = False,
        play_sound_on_error: bool = False,
        history_limit: int = 1000,
    ):
        self._speak = speak
        self._play_sound_on_error = play_sound_on_error
        self._status = "Idle"
        self._history: deque[str] = deque(maxlen=history_limit)
        self._lock = threading.Lock()

    @property
    def status(self) -> str:
        with self._lock:
            return self._status

    @property
    def history(self) -> list[str]:
        with self._lock:
            return list(self._history)

    def report(self, message: str) -> None:
        stamp = datetime.now().strftime("%H:%M:%S")
        with self._lock:
            self._history.append(f"[{stamp}] {message}")
        logger.info("%s", message)

    def set_status(self, message: str, error: bool = False) -> None:
        with self._lock:
            changed = message != self._status
            self._status = message
        self.report(message)
        if error and self._play_sound_on_error:
            play_error_sound()
        if changed and self._speak:
            notifier.speak(message)
