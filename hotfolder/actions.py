"""
External processing actions.

An action is a command line configured under an id in ``Config.actions``,
for example::

    "actions": {
        "thumbnail": "magick {path} -resize 512x512 {path}.thumb.jpg"
    }

``{path}`` expands to the file's full path and ``{name}`` to its file
name.  The template is split into arguments before expansion, so paths
containing spaces stay a single argument.
"""

from __future__ import annotations

import asyncio
import logging
import shlex
from typing import Protocol

from hotfolder.folders import FileRecord

logger = logging.getLogger(__name__)

_OUTPUT_TAIL = 400  # characters of process output kept in error messages


class ActionError(Exception):
    """An action ran but did not succeed."""


class ActionNotConfigured(ActionError):
    """The requested action id has no usable command."""


class ActionRunner(Protocol):
    async def run(self, action_id: str, record: FileRecord) -> None: ...


def build_command(template: str, record: FileRecord) -> list[str]:
    """Expand *template* for *record* into an argument list."""
    try:
        tokens = shlex.split(template)
    except ValueError as exc:
        raise ActionNotConfigured(f"Invalid command template {template!r}: {exc}") from exc
    if not tokens:
        raise ActionNotConfigured("Empty command template")

    path = record.handle.native_path
    if path is None and "{path}" in template:
        raise ActionError(f"{record.name} has no local path for {{path}}")
    try:
        return [tok.format(path=path, name=record.name) for tok in tokens]
    except (KeyError, IndexError, AttributeError, ValueError) as exc:
        raise ActionNotConfigured(
            f"Bad token {exc} in command template {template!r}"
        ) from exc


class CommandActionRunner:
    """
    Runs configured actions as subprocesses.

    Parameters
    ----------
    actions : dict
        Maps action id to command template.
    timeout : float
        Seconds before a running action is killed.  0 = no limit.
    """

    def __init__(self, actions: dict[str, str] | None = None, timeout: float = 0):
        self._actions = dict(actions or {})
        self._timeout = timeout

    async def run(self, action_id: str, record: FileRecord) -> None:
        template = self._actions.get(action_id, "").strip()
        if not template:
            raise ActionNotConfigured(f"No command configured for action {action_id!r}")

        argv = build_command(template, record)
        logger.info("Running action %s on %s: %s", action_id, record.name, argv)
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as exc:
            raise ActionError(f"Cannot start {argv[0]!r}: {exc}") from exc

        try:
            if self._timeout > 0:
                output, _ = await asyncio.wait_for(proc.communicate(), self._timeout)
            else:
                output, _ = await proc.communicate()
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise ActionError(
                f"Action {action_id!r} timed out after {self._timeout:g}s"
            ) from None

        if proc.returncode != 0:
            tail = (output or b"").decode("utf-8", "replace").strip()[-_OUTPUT_TAIL:]
            raise ActionError(
                f"Action {action_id!r} exited with status {proc.returncode}: {tail}"
            )
        logger.debug("Action %s finished for %s", action_id, record.name)
