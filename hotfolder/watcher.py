"""
Hotfolder monitor: lifecycle and scheduling for the watcher core.

Everything runs on one asyncio event loop.  A periodic ticker task runs
change detection; whenever a tick queues new files a drain task is
scheduled, and the drain's own re-entrancy guard keeps processing
serialized.  For local folders a watchdog observer wakes the ticker early
when files are created or moved in, which only shortens latency: the
snapshot diff stays the single source of new names.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from hotfolder.actions import CommandActionRunner
from hotfolder.archiver import Archiver, ArchiveStats
from hotfolder.config import Config
from hotfolder.detector import ChangeDetector, ClaimTracker
from hotfolder.filters import NameFilter
from hotfolder.folders import FolderHandle
from hotfolder.pipeline import ProcessingPipeline
from hotfolder.processor import STATUS_MONITORING, QueueProcessor
from hotfolder.session import WatcherSession
from hotfolder.status import StatusSink

logger = logging.getLogger(__name__)

STATUS_STOPPED = "Stopped"
STATUS_NOT_READY = "Hotfolder not ready."

# pause after a filesystem event before ticking, so the writer can finish
_EVENT_SETTLE_SECONDS = 0.5


class HotfolderNotReady(RuntimeError):
    """The hotfolder cannot be listed, so monitoring cannot start."""


class _WakeHandler(FileSystemEventHandler):
    """Watchdog handler that wakes the ticker from the observer thread."""

    def __init__(self, loop: asyncio.AbstractEventLoop, wake: asyncio.Event):
        super().__init__()
        self._loop = loop
        self._wake = wake

    def _nudge(self) -> None:
        try:
            self._loop.call_soon_threadsafe(self._wake.set)
        except RuntimeError:
            # loop already closed during shutdown
            pass

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._nudge()

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._nudge()


class HotfolderMonitor:
    """
    Owns one hotfolder and the session that tracks it while monitoring.

    Usage::

        monitor = HotfolderMonitor.from_config(folder, config, status)
        await monitor.start()
        ...
        monitor.stop()
        await monitor.wait_idle()
    """

    def __init__(
        self,
        folder: FolderHandle,
        detector: ChangeDetector,
        processor: QueueProcessor,
        status: StatusSink,
        poll_interval: float = 2.0,
        use_fs_events: bool = False,
        process_existing_on_start: bool = False,
        archiver: Archiver | None = None,
    ):
        self.folder = folder
        self._detector = detector
        self._processor = processor
        self._status = status
        self._poll_interval = poll_interval
        self._use_fs_events = use_fs_events
        self._process_existing = process_existing_on_start
        self._archiver = archiver

        self.session: WatcherSession | None = None
        self._ticker: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()
        self._wake: asyncio.Event | None = None
        self._observer: Any | None = None

    @classmethod
    def from_config(cls, folder: FolderHandle, config: Config, status: StatusSink) -> "HotfolderMonitor":
        """Wire up the detector, pipeline and archiver from *config*."""
        if config.auto_run_action and not config.is_action_configured():
            logger.warning(
                "Auto-run is on but action %r has no command; files will be archived without it",
                config.action_id,
            )
        name_filter = NameFilter(config.ignored_extensions, config.exclude_patterns)
        archiver = Archiver(name_filter, status)
        runner = CommandActionRunner(config.actions, timeout=config.action_timeout)
        pipeline = ProcessingPipeline(
            archiver,
            runner,
            status,
            auto_run_action=config.auto_run_action,
            action_id=config.action_id,
        )
        detector = ChangeDetector(name_filter, ClaimTracker(status), status)
        return cls(
            folder,
            detector,
            QueueProcessor(pipeline, status),
            status,
            poll_interval=config.poll_interval,
            use_fs_events=config.use_fs_events,
            process_existing_on_start=config.process_existing_on_start,
            archiver=archiver,
        )

    # ---- lifecycle ----

    async def start(self) -> None:
        """Take a baseline snapshot and start the periodic ticker.

        Files already in the hotfolder become the baseline and are not
        processed unless ``process_existing_on_start`` is set.

        Raises
        ------
        HotfolderNotReady
            If the hotfolder cannot be listed.
        """
        if self.is_running:
            logger.warning("Monitor already running for %s", self.folder.name)
            return

        session = WatcherSession(self.folder)
        try:
            await self._detector.snapshot(session)
        except Exception as exc:
            logger.exception("Cannot list hotfolder %s", self.folder.name)
            self._status.set_status(STATUS_NOT_READY, error=True)
            raise HotfolderNotReady(f"Cannot list hotfolder: {exc}") from exc

        self.session = session
        self._wake = asyncio.Event()
        self._status.set_status(STATUS_MONITORING)
        self._start_observer()
        self._ticker = asyncio.create_task(self._run_ticker(session), name="HotfolderTicker")
        logger.info(
            "Watching '%s' (interval=%.2fs, fs_events=%s)",
            self.folder.native_path or self.folder.name,
            self._poll_interval,
            self._observer is not None,
        )

        if self._process_existing:
            await self.process_all_now()

    def stop(self) -> None:
        """Stop monitoring and drop everything still queued.

        A file already in the pipeline is not interrupted; use
        :meth:`wait_idle` to wait for it.
        """
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None
        self._stop_observer()

        session = self.session
        self.session = None
        if session is not None:
            dropped = session.close()
            if dropped:
                logger.info("Dropped %d queued file(s): %s", len(dropped),
                            ", ".join(r.name for r in dropped))
            self._status.set_status(STATUS_STOPPED)
        self._status.report("Monitoring stopped, queue cleared")

    async def wait_idle(self) -> None:
        """Wait for in-flight drain tasks to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def is_running(self) -> bool:
        return self.session is not None and self._ticker is not None and not self._ticker.done()

    # ---- status ----

    @property
    def queue_length(self) -> int:
        return len(self.session.queue) if self.session else 0

    @property
    def queued_files(self) -> list[str]:
        return self.session.queue.names if self.session else []

    @property
    def in_flight(self) -> str | None:
        return self.session.in_flight if self.session else None

    @property
    def stats(self) -> ArchiveStats | None:
        return self._archiver.stats if self._archiver else None

    # ---- operations ----

    async def tick(self) -> int:
        """Run one detection pass now; return the number of files queued."""
        session = self.session
        if session is None:
            return 0
        queued = await self._detector.tick(session)
        if queued:
            self._schedule_drain(session)
        return len(queued)

    async def process_all_now(self) -> int:
        """Queue every eligible file in the hotfolder that is not already claimed."""
        session = self.session
        if session is None:
            logger.warning("Cannot sweep: monitoring is not running.")
            return 0
        try:
            queued = await self._detector.claim_all(session)
        except Exception as exc:
            logger.exception("Sweep of %s failed", self.folder.name)
            self._status.report(f"Monitor error: {exc}")
            return 0
        if queued:
            self._schedule_drain(session)
        count = len(queued)
        self._status.report(f"Queued {count} file{'s' if count != 1 else ''} for processing.")
        return count

    # ---- internals ----

    def _schedule_drain(self, session: WatcherSession) -> None:
        if session.draining:
            return
        task = asyncio.create_task(self._processor.drain(session), name="HotfolderDrain")
        self._tasks.add(task)
        task.add_done_callback(self._on_drain_done)

    def _on_drain_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Queue drain failed", exc_info=exc)

    async def _sleep(self) -> None:
        assert self._wake is not None
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=self._poll_interval)
        except asyncio.TimeoutError:
            return
        self._wake.clear()
        await asyncio.sleep(_EVENT_SETTLE_SECONDS)

    async def _run_ticker(self, session: WatcherSession) -> None:
        while session.active:
            await self._sleep()
            if not session.active:
                break
            try:
                queued = await self._detector.tick(session)
            except Exception:
                logger.exception("Detection tick failed")
                continue
            if queued:
                self._schedule_drain(session)

    def _start_observer(self) -> None:
        path = self.folder.native_path
        if not self._use_fs_events or path is None or self._wake is None:
            return
        try:
            observer = Observer()
            observer.schedule(
                _WakeHandler(asyncio.get_running_loop(), self._wake),
                path,
                recursive=False,
            )
            observer.start()
        except Exception:
            logger.warning("Filesystem events unavailable for %s; polling only", path,
                           exc_info=True)
            return
        self._observer = observer

    def _stop_observer(self) -> None:
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None
