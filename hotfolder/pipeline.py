"""Per-file processing: run the configured action, archive, release the claim."""

from __future__ import annotations

import logging

from hotfolder.actions import ActionError, ActionNotConfigured, ActionRunner
from hotfolder.archiver import ArchiveOutcome, ArchiveRecord, Archiver
from hotfolder.folders import FileRecord
from hotfolder.session import WatcherSession
from hotfolder.status import StatusSink

logger = logging.getLogger(__name__)

STATUS_ACTION_FAILED = "Action failed. See log."
STATUS_PROCESSING_ERROR = "Processing error. See log."


class ProcessingPipeline:
    """
    Runs one claimed file through the action and the archiver.

    The claim on the record's name is released when :meth:`run` returns,
    whatever happened on the way.  Errors never escape :meth:`run`, so one
    bad file cannot stop the queue drain.

    Parameters
    ----------
    archiver : Archiver
        Relocates the file into the archive subfolder.
    runner : ActionRunner or None
        Executes the external action.  ``None`` disables the action step.
    status : StatusSink
        Receives progress and error lines.
    auto_run_action : bool
        Run the action before archiving.
    action_id : str
        Which configured action to run.
    """

    def __init__(
        self,
        archiver: Archiver,
        runner: ActionRunner | None,
        status: StatusSink,
        auto_run_action: bool = False,
        action_id: str = "",
    ):
        self._archiver = archiver
        self._runner = runner
        self._status = status
        self._auto_run_action = auto_run_action
        self._action_id = (action_id or "").strip()

    async def run(self, session: WatcherSession, record: FileRecord) -> ArchiveRecord | None:
        """Process *record*; return the archive record, or None if not archived."""
        try:
            try:
                await self._run_action(record)
            except ActionError as exc:
                if await self._archiver.is_gone(session, record):
                    logger.info("Action skipped for %s; file no longer present (%s)",
                                record.name, exc)
                    result = await self._archiver.archive(session, record)
                    self._status.report(f"Completed processing: {record.name}")
                    return result
                logger.error("Action failed for %s: %s", record.name, exc)
                self._status.report(f"Failed to run action on {record.name}: {exc}")
                self._status.set_status(STATUS_ACTION_FAILED, error=True)
                return None

            result = await self._archiver.archive(session, record)
            if result.outcome is ArchiveOutcome.FAILED:
                self._status.set_status(STATUS_PROCESSING_ERROR, error=True)
            else:
                self._status.report(f"Completed processing: {record.name}")
            return result
        except Exception as exc:
            logger.exception("Processing failure for %s", record.name)
            self._status.report(f"Processing failure: {exc}")
            self._status.set_status(STATUS_PROCESSING_ERROR, error=True)
            return None
        finally:
            session.release(record.name)

    async def _run_action(self, record: FileRecord) -> None:
        if not self._auto_run_action or self._runner is None:
            return
        if not self._action_id:
            self._status.report("Action configuration incomplete; skipping.")
            return
        try:
            await self._runner.run(self._action_id, record)
        except ActionNotConfigured as exc:
            logger.warning("%s", exc)
            self._status.report("Action configuration incomplete; skipping.")
            return
        self._status.report(f"Action executed: {self._action_id} on {record.name}")
