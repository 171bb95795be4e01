"""Shared fixtures: in-memory folder/file handles and a recording status sink."""
import asyncio
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from hotfolder.folders import FileMetadata, FolderEntry, UnsupportedOperation  # noqa: E402

ALL_CAPS = frozenset({"probe", "move", "copy", "delete"})


class FakeFile:
    """Handle to a file in a FakeFolder.

    ``caps`` limits which operations exist; ``errors`` maps an operation
    name to an exception raised instead of performing it; ``stale`` makes
    the metadata probe fail even though the file still exists.
    """

    def __init__(self, folder, name, caps=ALL_CAPS, errors=None, stale=False):
        self.folder = folder
        self._name = name
        self.caps = frozenset(caps)
        self.errors = dict(errors or {})
        self.stale = stale

    def __repr__(self):
        return f"FakeFile({self._name!r})"

    @property
    def name(self):
        return self._name

    @property
    def native_path(self):
        return None

    def _check(self, op):
        if op not in self.caps:
            raise UnsupportedOperation(op)
        self.folder.calls.append((op, self._name))
        err = self.errors.get(op)
        if err is not None:
            if callable(err) and not isinstance(err, BaseException):
                err = err()
            raise err
        if self._name not in self.folder.files:
            raise FileNotFoundError(self._name)

    async def probe_metadata(self):
        await asyncio.sleep(0)
        self._check("probe")
        if self.stale:
            raise OSError("stale handle")
        return FileMetadata(size=len(self.folder.files[self._name]), modified=0.0)

    async def move(self, dest, overwrite=False):
        await asyncio.sleep(0)
        self._check("move")
        if not overwrite and self._name in dest.files:
            raise FileExistsError(self._name)
        dest.files[self._name] = self.folder.files.pop(self._name)

    async def copy(self, dest, overwrite=False):
        await asyncio.sleep(0)
        self._check("copy")
        if not overwrite and self._name in dest.files:
            raise FileExistsError(self._name)
        dest.files[self._name] = self.folder.files[self._name]

    async def delete(self):
        await asyncio.sleep(0)
        self._check("delete")
        del self.folder.files[self._name]


class FakeFolder:
    """In-memory folder with injectable failures.

    ``list_gate`` holds each listing, after it has read the entries, until
    the event is set.
    """

    def __init__(self, name="hotfolder", files=None, file_caps=ALL_CAPS):
        self._name = name
        self.files = dict(files or {})
        self.subfolders = {}
        self.file_caps = file_caps
        self.file_errors = {}
        self.list_errors = []
        self.create_error = None
        self.list_gate = None
        self.parked_listings = 0
        self.calls = []

    @property
    def name(self):
        return self._name

    @property
    def native_path(self):
        return None

    def add(self, *names, data=b"x"):
        for name in names:
            self.files[name] = data

    def handle(self, name, **kwargs):
        kwargs.setdefault("caps", self.file_caps)
        kwargs.setdefault("errors", self.file_errors)
        return FakeFile(self, name, **kwargs)

    async def list_entries(self):
        await asyncio.sleep(0)
        self.calls.append(("list", self._name))
        if self.list_errors:
            raise self.list_errors.pop(0)
        entries = [FolderEntry(n, True, f) for n, f in sorted(self.subfolders.items())]
        entries += [FolderEntry(n, False, self.handle(n)) for n in sorted(self.files)]
        if self.list_gate is not None:
            gate = self.list_gate
            self.parked_listings += 1
            await gate.wait()
        return entries

    async def create_subfolder(self, name):
        await asyncio.sleep(0)
        self.calls.append(("create", name))
        if self.create_error is not None:
            err, self.create_error = self.create_error, None
            if callable(err) and not isinstance(err, BaseException):
                err = err()
            raise err
        if name in self.subfolders:
            raise FileExistsError(name)
        folder = FakeFolder(name)
        self.subfolders[name] = folder
        return folder


class RecordingStatus:
    """StatusSink that keeps everything it is told."""

    def __init__(self):
        self.lines = []
        self.statuses = []
        self.errors = []

    def report(self, message):
        self.lines.append(message)

    def set_status(self, message, error=False):
        self.statuses.append(message)
        if error:
            self.errors.append(message)
        self.report(message)

    @property
    def status(self):
        return self.statuses[-1] if self.statuses else ""


@pytest.fixture
def folder():
    return FakeFolder()


@pytest.fixture
def status():
    return RecordingStatus()
