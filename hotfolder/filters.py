"""Eligibility rules for hotfolder entries."""

from __future__ import annotations

import fnmatch
import logging

from hotfolder.folders import FolderEntry

logger = logging.getLogger(__name__)

DEFAULT_IGNORED_EXTENSIONS = (".tmp",)


def _normalise_extension(ext: str) -> str:
    ext = ext.strip().lower()
    if ext and not ext.startswith("."):
        ext = "." + ext
    return ext


class NameFilter:
    """Decides whether a folder entry is a file the watcher should pick up.

    Directories are never eligible.  A file is ignored when its lowercased
    name ends with one of *ignored_extensions* or matches one of the glob
    *exclude_patterns* (case-insensitive).
    """

    def __init__(
        self,
        ignored_extensions: list[str] | tuple[str, ...] | None = None,
        exclude_patterns: list[str] | None = None,
    ):
        if ignored_extensions is None:
            ignored_extensions = DEFAULT_IGNORED_EXTENSIONS
        self._extensions = tuple(
            e for e in (_normalise_extension(x) for x in ignored_extensions) if e
        )
        self._exclude_patterns = [p.lower() for p in (exclude_patterns or []) if p.strip()]

    @property
    def ignored_extensions(self) -> tuple[str, ...]:
        return self._extensions

    def is_ignored_name(self, name: str) -> bool:
        """Return True if *name* is excluded by extension or pattern."""
        lower = name.lower()
        if any(lower.endswith(ext) for ext in self._extensions):
            return True
        for pattern in self._exclude_patterns:
            if fnmatch.fnmatch(lower, pattern):
                logger.debug("Excluding %s (matches %s)", name, pattern)
                return True
        return False

    def is_eligible(self, entry: FolderEntry) -> bool:
        if entry.is_directory:
            return False
        return not self.is_ignored_name(entry.name)

    def eligible(self, entries: list[FolderEntry]) -> list[FolderEntry]:
        """Return the eligible subset of *entries*, in listing order."""
        return [e for e in entries if self.is_eligible(e)]
