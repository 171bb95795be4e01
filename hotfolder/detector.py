"""
Snapshot-diff change detection for the hotfolder.

Each tick lists the hotfolder, keeps the eligible files, and diffs their
names against the session's known set.  Newly appeared names are claimed
and queued by :class:`ClaimTracker`.
"""

from __future__ import annotations

import logging

from hotfolder.filters import NameFilter
from hotfolder.folders import FileRecord, FolderEntry
from hotfolder.session import WatcherSession
from hotfolder.status import StatusSink

logger = logging.getLogger(__name__)

STATUS_MONITOR_ERROR = "Error monitoring. See console."


class ClaimTracker:
    """Claims newly detected names and hands them to the session queue."""

    def __init__(self, status: StatusSink):
        self._status = status

    def claim_new(
        self,
        session: WatcherSession,
        names: list[str],
        files: list[FolderEntry],
    ) -> list[FileRecord]:
        """Claim each of *names* not already claimed and queue its record.

        Returns the records pushed onto the queue, in the order of *names*.
        """
        by_name = {f.name: f for f in files}
        queued = []
        for name in names:
            if not session.claim(name):
                logger.debug("Skipping %s: already claimed", name)
                continue
            self._status.report(f"New file detected: {name}")
            entry = by_name.get(name)
            if entry is None:
                session.release(name)
                logger.info("No handle for %s in current listing; dropped", name)
                continue
            record = FileRecord(name, entry.handle)
            session.queue.push(record)
            queued.append(record)
            self._status.report(
                f"Added to queue: {name} ({len(session.queue)} in queue)"
            )
        return queued


class ChangeDetector:
    """Finds names that appeared in the hotfolder since the last snapshot."""

    def __init__(self, name_filter: NameFilter, claims: ClaimTracker, status: StatusSink):
        self._filter = name_filter
        self._claims = claims
        self._status = status

    async def eligible_files(self, session: WatcherSession) -> list[FolderEntry]:
        """List the hotfolder's eligible files.

        Names archived while the listing was in progress are left out: the
        listing may predate their move, and they are neither new nor known.
        """
        since = session.begin_listing()
        try:
            entries = await session.folder.list_entries()
        finally:
            stale = session.end_listing(since)
        if stale:
            logger.debug("Ignoring names archived during listing: %s", ", ".join(sorted(stale)))
        return [e for e in self._filter.eligible(entries) if e.name not in stale]

    async def snapshot(self, session: WatcherSession) -> int:
        """Replace the known set with the current eligible names.

        Listing errors propagate: a hotfolder that cannot be listed at
        start-up is not ready for monitoring.
        """
        files = await self.eligible_files(session)
        session.known = {f.name for f in files}
        logger.info("Baseline snapshot: %d file(s) already present", len(session.known))
        return len(session.known)

    async def tick(self, session: WatcherSession) -> list[FileRecord]:
        """Run one detection pass and return the records it queued.

        A listing failure is logged and the pass is skipped; the caller's
        ticker keeps running.
        """
        try:
            files = await self.eligible_files(session)
        except Exception as exc:
            logger.exception("Monitor error while listing %s", session.folder.name)
            self._status.report(f"Monitor error: {exc}")
            self._status.set_status(STATUS_MONITOR_ERROR)
            return []

        if not session.active:
            return []

        new_names = [f.name for f in files if f.name not in session.known]
        if not new_names:
            return []

        queued = self._claims.claim_new(session, new_names, files)
        # wholesale replacement: names removed externally drop out of tracking
        session.known = {f.name for f in files}
        return queued

    async def claim_all(self, session: WatcherSession) -> list[FileRecord]:
        """Claim and queue every eligible file not already claimed.

        Used for a manual sweep, e.g. to pick up files that were present
        before monitoring started or that a failed archive left behind.
        """
        files = await self.eligible_files(session)
        if not session.active:
            return []
        queued = self._claims.claim_new(session, [f.name for f in files], files)
        session.known |= {f.name for f in files}
        return queued
