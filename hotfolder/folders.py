"""
Folder and file handles used by the watcher core.

The core only talks to the capability protocols below, so a hotfolder can
be backed by anything that can list entries and relocate files.  Any file
operation may be missing on a given backend; such operations raise
:class:`UnsupportedOperation` instead of being absent.

:class:`LocalFolder` and :class:`LocalFile` implement the protocols on the
local filesystem.  Blocking calls are pushed to a worker thread with
``asyncio.to_thread`` so every I/O call is a suspension point for the
event loop.
"""

from __future__ import annotations

import asyncio
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Union


class UnsupportedOperation(NotImplementedError):
    """Raised when a handle does not provide the requested capability."""


@dataclass(frozen=True)
class FileMetadata:
    size: int
    modified: float


class FileHandle(Protocol):
    """Opaque reference to one file inside a folder."""

    @property
    def name(self) -> str: ...

    @property
    def native_path(self) -> str | None: ...

    async def probe_metadata(self) -> FileMetadata: ...

    async def move(self, dest: "FolderHandle", overwrite: bool = False) -> None: ...

    async def copy(self, dest: "FolderHandle", overwrite: bool = False) -> None: ...

    async def delete(self) -> None: ...


class FolderHandle(Protocol):
    """Opaque reference to a directory."""

    @property
    def name(self) -> str: ...

    @property
    def native_path(self) -> str | None: ...

    async def list_entries(self) -> list["FolderEntry"]: ...

    async def create_subfolder(self, name: str) -> "FolderHandle": ...


@dataclass(frozen=True)
class FolderEntry:
    """One item of a folder listing."""
    name: str
    is_directory: bool
    handle: Union[FileHandle, FolderHandle]


@dataclass(frozen=True)
class FileRecord:
    """A claimed file waiting for (or going through) the pipeline."""
    name: str
    handle: FileHandle


# ---------------------------------------------------------------------------
# Local filesystem backend
# ---------------------------------------------------------------------------


def _target_in(dest: FolderHandle, name: str, overwrite: bool) -> Path:
    if dest.native_path is None:
        raise UnsupportedOperation(f"Destination {dest.name!r} has no local path")
    target = Path(dest.native_path) / name
    if not overwrite and target.exists():
        raise FileExistsError(f"{target} already exists")
    return target


class LocalFile:
    """A file on the local filesystem."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def __repr__(self) -> str:
        return f"LocalFile({str(self.path)!r})"

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def native_path(self) -> str:
        return str(self.path)

    async def probe_metadata(self) -> FileMetadata:
        st = await asyncio.to_thread(os.stat, self.path)
        return FileMetadata(size=st.st_size, modified=st.st_mtime)

    async def move(self, dest: FolderHandle, overwrite: bool = False) -> None:
        target = _target_in(dest, self.name, overwrite)
        # os.replace fails with EXDEV across devices; callers fall back to copy+delete
        await asyncio.to_thread(os.replace, self.path, target)
        self.path = target

    async def copy(self, dest: FolderHandle, overwrite: bool = False) -> None:
        target = _target_in(dest, self.name, overwrite)
        await asyncio.to_thread(shutil.copy2, self.path, target)

    async def delete(self) -> None:
        await asyncio.to_thread(os.remove, self.path)


class LocalFolder:
    """A directory on the local filesystem."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def __repr__(self) -> str:
        return f"LocalFolder({str(self.path)!r})"

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def native_path(self) -> str:
        return str(self.path)

    def exists(self) -> bool:
        return self.path.is_dir()

    async def list_entries(self) -> list[FolderEntry]:
        return await asyncio.to_thread(self._scan)

    def _scan(self) -> list[FolderEntry]:
        entries = []
        with os.scandir(self.path) as it:
            for item in it:
                try:
                    is_dir = item.is_dir()
                except OSError:
                    # vanished between readdir and stat
                    continue
                handle = LocalFolder(item.path) if is_dir else LocalFile(item.path)
                entries.append(FolderEntry(item.name, is_dir, handle))
        entries.sort(key=lambda e: e.name)
        return entries

    async def create_subfolder(self, name: str) -> "LocalFolder":
        target = self.path / name
        await asyncio.to_thread(os.mkdir, target)
        return LocalFolder(target)
