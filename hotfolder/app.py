"""
Application controller for Hotfolder Watcher.

Ties together configuration, logging, the persisted hotfolder token, the
status board and the monitor, and runs them on an asyncio event loop until
asked to stop.
"""

from __future__ import annotations

import asyncio
import logging
import logging.handlers
import signal
import sys
import threading
from pathlib import Path

from hotfolder import __app_name__, __version__
from hotfolder.config import Config, FolderTokenStore, get_log_path
from hotfolder.folders import LocalFolder
from hotfolder.platform_utils import IS_WINDOWS
from hotfolder.status import StatusBoard
from hotfolder.watcher import HotfolderMonitor, HotfolderNotReady

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(config: Config, log_path: Path | None = None, level: str | None = None) -> None:
    """Configure a rotating file log and a stderr handler on the root logger."""
    log_path = log_path or get_log_path()
    level_no = getattr(logging, (level or config.log_level).upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level_no)

    fmt = logging.Formatter(_LOG_FORMAT)

    fh = logging.handlers.RotatingFileHandler(
        str(log_path),
        maxBytes=config.max_log_size_mb * 1024 * 1024,
        backupCount=config.log_backup_count,
        encoding="utf-8",
    )
    fh.setLevel(level_no)
    fh.setFormatter(fmt)
    root_logger.addHandler(fh)

    sh = logging.StreamHandler(sys.stderr)
    sh.setLevel(level_no)
    sh.setFormatter(fmt)
    root_logger.addHandler(sh)


class App:
    """Central orchestrator for a headless hotfolder run."""

    def __init__(self, config: Config | None = None, status: StatusBoard | None = None):
        self.config = config or Config()
        self.status = status or StatusBoard(
            speak=self.config.speak_status,
            play_sound_on_error=self.config.play_sound_on_error,
        )
        self.tokens = FolderTokenStore(self.config)
        self.monitor: HotfolderMonitor | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stop_event: asyncio.Event | None = None
        self._ready = threading.Event()

    # ------------------------------------------------------------------
    # Hotfolder
    # ------------------------------------------------------------------

    def ensure_hotfolder(self, granted: str | None = None) -> LocalFolder | None:
        """Return the hotfolder, granting *granted* when given.

        A freshly granted folder is persisted so later runs restore it.
        """
        if granted:
            folder = LocalFolder(Path(granted).expanduser())
            if not folder.exists():
                self.status.set_status(f"Not a folder: {granted}", error=True)
                return None
            self.tokens.persist(folder)
            self.status.report("Hotfolder set from selected folder")
            return folder

        folder = self.tokens.restore()
        if folder is None:
            self.status.set_status("Hotfolder not set.", error=True)
        return folder

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def run_async(self, folder: LocalFolder) -> int:
        """Monitor *folder* until :meth:`request_stop` is called."""
        self._loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()
        self._ready.set()

        self.monitor = HotfolderMonitor.from_config(folder, self.config, self.status)
        self.status.set_status("Hotfolder ready")
        try:
            await self.monitor.start()
        except HotfolderNotReady as exc:
            logger.error("Cannot start monitoring: %s", exc)
            return 1

        try:
            await self._stop_event.wait()
        finally:
            self.monitor.stop()
            await self.monitor.wait_idle()
        return 0

    def run(self, granted: str | None = None) -> int:
        """Run in the foreground until SIGINT/SIGTERM; return an exit status."""
        logger.info("%s %s starting.", __app_name__, __version__)
        self.status.set_status("Initializing…")
        folder = self.ensure_hotfolder(granted)
        if folder is None:
            return 1
        return asyncio.run(self._run_with_signals(folder))

    async def _run_with_signals(self, folder: LocalFolder) -> int:
        loop = asyncio.get_running_loop()
        if not IS_WINDOWS:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, self.request_stop)
        else:
            signal.signal(signal.SIGINT, lambda *_: self.request_stop())
        return await self.run_async(folder)

    def request_stop(self) -> None:
        """Ask the running loop to stop.  Safe to call from any thread."""
        if self._loop is None or self._stop_event is None:
            return
        logger.info("Shutting down…")
        self._loop.call_soon_threadsafe(self._stop_event.set)

    def wait_until_ready(self, timeout: float | None = None) -> bool:
        """Block until :meth:`run_async` has started (used by service hosts)."""
        return self._ready.wait(timeout)

    def get_status_summary(self) -> str:
        """Return a short human-readable status string."""
        monitor = self.monitor
        if monitor is None or not monitor.is_running:
            return self.status.status
        stats = monitor.stats
        summary = f"{self.status.status} ({monitor.queue_length} queued"
        if stats:
            summary += f", {stats.total_archived} archived, {stats.total_failed} failed"
        return summary + ")"
