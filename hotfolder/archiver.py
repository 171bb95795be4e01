"""
Archive engine for Hotfolder Watcher.

Relocates a processed file into the ``_processed`` subfolder of the
hotfolder.  The file may be deleted or moved by someone else at any point,
and a folder backend may support only some file operations, so the
archiver:

- resolves (or creates) the archive folder once per session and caches it,
- re-fetches the file handle by name when the one it was given is stale,
- treats a file that is already gone as archived,
- tries an ordered list of relocation strategies (direct move first, then
  copy followed by delete) and records which one succeeded.
"""

from __future__ import annotations

import enum
import logging
import threading
import time
from dataclasses import dataclass, field

from hotfolder.filters import NameFilter
from hotfolder.folders import FileHandle, FileRecord, FolderHandle, UnsupportedOperation
from hotfolder.session import WatcherSession
from hotfolder.status import StatusSink

logger = logging.getLogger(__name__)

PROCESSED_FOLDER_NAME = "_processed"
STATUS_ARCHIVE_UNAVAILABLE = "Processed folder unavailable. See log."

_HISTORY_LIMIT = 1000


class ArchiveOutcome(enum.Enum):
    ARCHIVED = "archived"
    ALREADY_GONE = "already_gone"
    FAILED = "failed"


@dataclass
class ArchiveRecord:
    """Result of archiving one file."""
    name: str
    outcome: ArchiveOutcome = ArchiveOutcome.FAILED
    strategy: str = ""
    error: str = ""
    started: float = 0.0
    finished: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.outcome is not ArchiveOutcome.FAILED

    @property
    def duration(self) -> float:
        if self.finished and self.started:
            return self.finished - self.started
        return 0.0


@dataclass
class ArchiveStats:
    """Aggregated archive outcomes."""
    total_archived: int = 0
    total_already_gone: int = 0
    total_failed: int = 0
    last_archived: str = ""
    history: list[ArchiveRecord] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record(self, rec: ArchiveRecord) -> None:
        with self._lock:
            self.history.append(rec)
            if rec.outcome is ArchiveOutcome.ARCHIVED:
                self.total_archived += 1
                self.last_archived = rec.name
            elif rec.outcome is ArchiveOutcome.ALREADY_GONE:
                self.total_already_gone += 1
            else:
                self.total_failed += 1
            if len(self.history) > _HISTORY_LIMIT:
                self.history = self.history[-_HISTORY_LIMIT:]


# ---------------------------------------------------------------------------
# Relocation strategies
# ---------------------------------------------------------------------------


class RelocationStrategy:
    """One way of getting a file into the archive folder.

    ``relocate`` either completes or raises.  A handle lacking the needed
    operation raises :class:`UnsupportedOperation`.
    """

    name = "abstract"

    async def relocate(self, handle: FileHandle, dest: FolderHandle) -> None:
        raise NotImplementedError


class MoveStrategy(RelocationStrategy):
    name = "move"

    async def relocate(self, handle: FileHandle, dest: FolderHandle) -> None:
        await handle.move(dest, overwrite=True)


class CopyDeleteStrategy(RelocationStrategy):
    name = "copy+delete"

    async def relocate(self, handle: FileHandle, dest: FolderHandle) -> None:
        await handle.copy(dest, overwrite=True)
        await handle.delete()


DEFAULT_STRATEGIES: tuple[RelocationStrategy, ...] = (MoveStrategy(), CopyDeleteStrategy())


# ---------------------------------------------------------------------------
# Archiver
# ---------------------------------------------------------------------------


class Archiver:
    """
    Moves processed files into the archive subfolder.

    Parameters
    ----------
    name_filter : NameFilter
        Used to skip ignored entries when re-fetching a file by name.
    status : StatusSink
        Receives progress and error lines.
    strategies : sequence of RelocationStrategy, optional
        Tried in order; defaults to move, then copy+delete.
    folder_name : str
        Name of the archive subfolder.
    """

    def __init__(
        self,
        name_filter: NameFilter,
        status: StatusSink,
        strategies: tuple[RelocationStrategy, ...] | list[RelocationStrategy] | None = None,
        folder_name: str = PROCESSED_FOLDER_NAME,
    ):
        self._filter = name_filter
        self._status = status
        self._strategies = tuple(strategies) if strategies is not None else DEFAULT_STRATEGIES
        self.folder_name = folder_name
        self.stats = ArchiveStats()

    # ---- archive folder ----

    async def _find_archive_folder(self, session: WatcherSession) -> FolderHandle | None:
        entries = await session.folder.list_entries()
        for entry in entries:
            if entry.is_directory and entry.name == self.folder_name:
                return entry.handle  # type: ignore[return-value]
        return None

    async def resolve_archive_folder(self, session: WatcherSession) -> FolderHandle | None:
        """Return the session's archive folder, creating it if needed.

        Safe to call repeatedly and from overlapping tasks: losing a
        creation race simply re-lists and picks up the winner's folder.
        """
        if session.archive_folder is not None:
            return session.archive_folder

        folder = None
        try:
            folder = await self._find_archive_folder(session)
            if folder is None:
                try:
                    folder = await session.folder.create_subfolder(self.folder_name)
                except Exception as exc:
                    logger.debug("Creating %s failed (%s); re-listing", self.folder_name, exc)
                    folder = await self._find_archive_folder(session)
                if folder is not None:
                    self._status.report(f"Processed folder ready: {self.folder_name}")
        except Exception as exc:
            logger.exception("Failed to resolve processed folder")
            self._status.report(f"Failed to resolve processed folder: {exc}")
            folder = None

        if folder is None:
            logger.error("Processed folder %s could not be resolved", self.folder_name)
        session.archive_folder = folder
        return folder

    # ---- file handle ----

    async def _is_live(self, handle: FileHandle) -> bool:
        try:
            await handle.probe_metadata()
        except UnsupportedOperation:
            # no way to check; let the relocation attempt find out
            return True
        except Exception as exc:
            logger.debug("Handle for %s is stale: %s", handle.name, exc)
            return False
        return True

    async def _find_file(self, session: WatcherSession, name: str) -> FileHandle | None:
        entries = await session.folder.list_entries()
        for entry in entries:
            if (
                not entry.is_directory
                and entry.name == name
                and not self._filter.is_ignored_name(entry.name)
            ):
                return entry.handle  # type: ignore[return-value]
        return None

    async def locate(self, session: WatcherSession, record: FileRecord) -> FileHandle | None:
        """Return a live handle for *record*, or None if the file is gone."""
        if await self._is_live(record.handle):
            return record.handle
        return await self._find_file(session, record.name)

    async def is_gone(self, session: WatcherSession, record: FileRecord) -> bool:
        """Return True only when *record* is confirmed missing from the hotfolder."""
        try:
            return await self.locate(session, record) is None
        except Exception:
            logger.warning("Could not check whether %s is still present", record.name,
                           exc_info=True)
            return False

    async def _still_present(self, session: WatcherSession, name: str) -> bool:
        try:
            return await self._find_file(session, name) is not None
        except Exception:
            logger.warning("Could not re-list %s to confirm %s", session.folder.name, name,
                           exc_info=True)
            return True

    # ---- main entry ----

    async def archive(self, session: WatcherSession, record: FileRecord) -> ArchiveRecord:
        """Relocate *record* into the archive folder and return the outcome.

        Never raises (except for task cancellation); failures are reported
        through the returned record.
        """
        rec = ArchiveRecord(name=record.name, started=time.time())
        try:
            await self._archive(session, record, rec)
        except Exception as exc:
            logger.exception("Unexpected error archiving %s", record.name)
            rec.outcome = ArchiveOutcome.FAILED
            rec.error = str(exc)
        finally:
            rec.finished = time.time()
            self.stats.record(rec)
            logger.info("Archive of %s: %s in %.2fs", rec.name, rec.outcome.value, rec.duration)
        return rec

    async def _archive(self, session: WatcherSession, record: FileRecord, rec: ArchiveRecord) -> None:
        name = record.name
        if self._filter.is_ignored_name(name):
            rec.error = "Ignored file type"
            logger.info("Not archiving ignored file %s", name)
            return

        dest = await self.resolve_archive_folder(session)
        if dest is None:
            rec.error = "Processed folder unavailable"
            self._status.set_status(STATUS_ARCHIVE_UNAVAILABLE, error=True)
            return

        handle = await self.locate(session, record)
        if handle is None:
            rec.outcome = ArchiveOutcome.ALREADY_GONE
            self._status.report(f"Skipped moving {name}; file already moved or missing.")
            session.forget(name)
            return

        last_error: Exception | None = None
        for strategy in self._strategies:
            try:
                await strategy.relocate(handle, dest)
            except UnsupportedOperation as exc:
                logger.debug("Strategy %s unavailable for %s: %s", strategy.name, name, exc)
                continue
            except Exception as exc:
                logger.warning("Strategy %s failed for %s: %s", strategy.name, name, exc)
                last_error = exc
                continue
            rec.outcome = ArchiveOutcome.ARCHIVED
            rec.strategy = strategy.name
            self._status.report(f"Moved {name} to {self.folder_name} ({strategy.name})")
            session.forget(name)
            return

        # the cached folder may have been removed under us; re-resolve next time
        session.archive_folder = None

        if not await self._still_present(session, name):
            rec.outcome = ArchiveOutcome.ALREADY_GONE
            self._status.report(f"File already absent after processing: {name}")
            session.forget(name)
            return

        if last_error is not None:
            rec.error = str(last_error)
            self._status.report(f"Failed to move {name} to processed folder: {last_error}")
        else:
            rec.error = "No supported move operation"
            self._status.report(f"Failed to move {name}: no supported move operation")
