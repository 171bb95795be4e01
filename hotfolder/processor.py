"""FIFO queue of claimed files and the serialized worker that drains it."""

from __future__ import annotations

import logging
from collections import deque
from typing import TYPE_CHECKING

from hotfolder.folders import FileRecord

if TYPE_CHECKING:
    from hotfolder.pipeline import ProcessingPipeline
    from hotfolder.session import WatcherSession
    from hotfolder.status import StatusSink

logger = logging.getLogger(__name__)

STATUS_MONITORING = "Monitoring…"


class ProcessingQueue:
    """Claimed records in discovery order."""

    def __init__(self) -> None:
        self._items: deque[FileRecord] = deque()

    def __len__(self) -> int:
        return len(self._items)

    def push(self, record: FileRecord) -> None:
        self._items.append(record)

    def pop(self) -> FileRecord | None:
        """Remove and return the oldest record, or None when empty."""
        if not self._items:
            return None
        return self._items.popleft()

    def clear(self) -> list[FileRecord]:
        """Empty the queue and return what was in it."""
        dropped = list(self._items)
        self._items.clear()
        return dropped

    @property
    def names(self) -> list[str]:
        return [rec.name for rec in self._items]


class QueueProcessor:
    """Runs queued records through the pipeline strictly one at a time.

    ``drain()`` is re-entrancy guarded by the session's ``draining`` flag:
    a second call while a drain is active returns immediately, and the
    running drain picks up anything appended in the meantime.
    """

    def __init__(self, pipeline: "ProcessingPipeline", status: "StatusSink"):
        self._pipeline = pipeline
        self._status = status

    async def drain(self, session: "WatcherSession") -> int:
        """Process queued records until the queue is empty.

        Returns the number of records this call processed (0 when another
        drain already owns the queue).
        """
        if session.draining or not session.queue:
            return 0

        session.draining = True
        waiting = len(session.queue)
        self._status.report(f"Processing queue: {waiting} file(s) waiting")
        self._status.set_status(f"Processing queue ({waiting} file(s))")
        processed = 0
        try:
            while (record := session.queue.pop()) is not None:
                remaining = len(session.queue)
                self._status.report(
                    f"Processing queued file: {record.name} ({remaining} remaining)"
                )
                self._status.set_status(
                    f"Processing: {record.name} ({remaining} in queue)"
                )
                session.in_flight = record.name
                try:
                    await self._pipeline.run(session, record)
                finally:
                    session.in_flight = None
                processed += 1
        finally:
            session.draining = False

        logger.debug("Drain finished after %d file(s)", processed)
        if session.active:
            self._status.report("Queue processing complete")
            self._status.set_status(STATUS_MONITORING)
        return processed
