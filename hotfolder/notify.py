"""Spoken status announcements for Hotfolder Watcher.

Status-line changes can be read out for users who run the watcher without
looking at its log.  Windows uses accessible_output2 (JAWS, NVDA,
Narrator); macOS uses the built-in ``say`` command; elsewhere the
announcements are dropped.
"""

import logging
import subprocess
import threading
import time

from hotfolder.platform_utils import IS_MACOS, IS_WINDOWS

logger = logging.getLogger(__name__)

_HAS_AO2 = False
if IS_WINDOWS:
    try:
        from accessible_output2.outputs.auto import (
            Auto as _AO2Auto,  # type: ignore[import-untyped]
        )

        _HAS_AO2 = True
    except ImportError:
        logger.warning(
            "accessible_output2 not installed; spoken status disabled."
        )

# identical announcements inside this window are spoken once
_REPEAT_WINDOW_SECONDS = 10.0


class ScreenReaderNotifier:
    """Non-blocking speech output for status announcements.

    ``speak(text)`` returns immediately; the speech runs on a daemon thread.
    Repeating the previous message within a short window is a no-op so a
    flapping status line does not flood the screen reader.
    """

    def __init__(self) -> None:
        self._output = _AO2Auto() if _HAS_AO2 else None  # type: ignore[name-defined]
        self._last_text = ""
        self._last_at = 0.0
        self._lock = threading.Lock()

    @property
    def available(self) -> bool:
        """True if a speech backend is available."""
        return self._output is not None or IS_MACOS

    def speak(self, text: str, interrupt: bool = True) -> None:
        if not self.available:
            logger.debug("Speech unavailable: %s", text)
            return

        now = time.monotonic()
        with self._lock:
            if text == self._last_text and now - self._last_at < _REPEAT_WINDOW_SECONDS:
                return
            self._last_text = text
            self._last_at = now

        threading.Thread(
            target=self._do_speak,
            args=(text, interrupt),
            daemon=True,
            name="StatusSpeech",
        ).start()

    def _do_speak(self, text: str, interrupt: bool) -> None:
        try:
            if self._output:
                self._output.speak(text, interrupt=interrupt)
            elif IS_MACOS:
                subprocess.run(
                    ["say", text],
                    timeout=15,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                )
        except Exception:
            logger.debug("Speech announcement failed.", exc_info=True)


notifier = ScreenReaderNotifier()
