"""Per-run watcher state.

A :class:`WatcherSession` is created when monitoring starts and dropped
when it stops.  Every component receives it explicitly; nothing in the
package keeps tracking state at module level.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from hotfolder.folders import FileRecord, FolderHandle
from hotfolder.processor import ProcessingQueue


@dataclass
class WatcherSession:
    """Tracking sets, queue and caches for one monitoring run.

    ``known`` holds the eligible names seen in the latest snapshot and
    ``claimed`` the names owned by a queued or in-flight record.  Only the
    event loop thread mutates these, so no locking is needed.
    """
    folder: FolderHandle
    known: set[str] = field(default_factory=set)
    claimed: set[str] = field(default_factory=set)
    queue: ProcessingQueue = field(default_factory=ProcessingQueue)
    draining: bool = False
    archive_folder: FolderHandle | None = None
    in_flight: str | None = None
    active: bool = True
    _listings: int = field(default=0, repr=False)
    _forget_seq: int = field(default=0, repr=False)
    _forgotten: dict[str, int] = field(default_factory=dict, repr=False)

    def claim(self, name: str) -> bool:
        """Claim *name*; return False if it is already claimed."""
        if name in self.claimed:
            return False
        self.claimed.add(name)
        return True

    def release(self, name: str) -> None:
        self.claimed.discard(name)

    def forget(self, name: str) -> None:
        """Drop *name* from the known snapshot after it left the folder."""
        self.known.discard(name)
        if self._listings:
            self._forget_seq += 1
            self._forgotten[name] = self._forget_seq

    def begin_listing(self) -> int:
        """Mark the start of a folder listing; pass the result to :meth:`end_listing`."""
        self._listings += 1
        return self._forget_seq

    def end_listing(self, since: int) -> set[str]:
        """Return the names forgotten while the listing started at *since* ran.

        Such a listing may still show those files, so its caller must not
        treat them as new or known.
        """
        self._listings -= 1
        stale = {name for name, seq in self._forgotten.items() if seq > since}
        if not self._listings:
            self._forgotten.clear()
        return stale

    def close(self) -> list[FileRecord]:
        """Deactivate the session and return the records dropped from the queue.

        Claims of dropped records are released.  The record currently in the
        pipeline (if any) keeps its claim until its run completes.
        """
        self.active = False
        dropped = self.queue.clear()
        for rec in dropped:
            self.claimed.discard(rec.name)
        self.draining = False
        return dropped
