"""Folder access capabilities.

A capability is an opaque, revocable grant to read one folder tree. The core
only relies on the small protocol below; `LocalFolderCapability` implements it
on top of the local filesystem.

Permission requests are only honoured inside a user gesture (a click or a
command typed by the user). Outside one the host refuses silently, the same
way a browser refuses `requestPermission()` from a mount-time effect.
"""
from __future__ import annotations

import asyncio
import contextvars
import os
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Iterator, List, Optional, Protocol, Tuple, Union, runtime_checkable

from .errors import PermissionDenied
from .formats import mime_type_for

GRANTED = "granted"
DENIED = "denied"
PROMPT = "prompt"

_in_gesture: contextvars.ContextVar[bool] = contextvars.ContextVar("libsync_user_gesture", default=False)


@contextmanager
def user_gesture() -> Iterator[None]:
    """Mark the enclosed code (and tasks it spawns) as user initiated."""
    token = _in_gesture.set(True)
    try:
        yield
    finally:
        _in_gesture.reset(token)


def in_user_gesture() -> bool:
    return _in_gesture.get()


@dataclass(frozen=True)
class FileInfo:
    name: str
    size: int
    last_modified: float
    mime_type: str
    local_path: Optional[str] = None


@runtime_checkable
class FileHandle(Protocol):
    kind: str  # "file"
    name: str

    async def get_file(self) -> FileInfo: ...


@runtime_checkable
class FolderCapability(Protocol):
    kind: str  # "directory"
    name: str

    async def query_permission(self) -> str: ...

    async def request_permission(self) -> str: ...

    def entries(self) -> AsyncIterator[Tuple[str, Union["FolderCapability", FileHandle]]]: ...


class LocalFileHandle:
    kind = "file"

    def __init__(self, path: Path) -> None:
        self.path = path
        self.name = path.name

    def _stat(self) -> FileInfo:
        st = self.path.stat()
        return FileInfo(
            name=self.name,
            size=st.st_size,
            last_modified=st.st_mtime,
            mime_type=mime_type_for(self.name),
            local_path=str(self.path),
        )

    async def get_file(self) -> FileInfo:
        return await asyncio.to_thread(self._stat)


class LocalFolderCapability:
    """Read access to a local directory tree.

    The grant lives only in this process: pickling keeps the path but drops
    the grant, so a capability restored after a restart reports `prompt`
    until `request_permission()` runs again inside a user gesture.
    """

    kind = "directory"

    def __init__(self, path: Union[str, Path], *, granted: bool = False) -> None:
        p = Path(path)
        self.path = str(p)
        self.name = p.name or self.path
        self._granted = granted

    def __getstate__(self):
        state = self.__dict__.copy()
        state["_granted"] = False
        return state

    def __setstate__(self, state):
        self.__dict__.update(state)

    def __repr__(self) -> str:
        return f"LocalFolderCapability({self.path!r}, granted={self._granted})"

    @classmethod
    async def open(cls, path: Union[str, Path]) -> Optional["LocalFolderCapability"]:
        """Folder-picker equivalent: returns a granted capability or None."""
        cap = cls(path)
        if await cap.request_permission() != GRANTED:
            return None
        return cap

    def _readable(self) -> bool:
        return os.path.isdir(self.path) and os.access(self.path, os.R_OK | os.X_OK)

    async def query_permission(self) -> str:
        if not self._granted:
            return PROMPT
        return GRANTED if await asyncio.to_thread(self._readable) else DENIED

    async def request_permission(self) -> str:
        if not in_user_gesture():
            return PROMPT
        ok = await asyncio.to_thread(self._readable)
        self._granted = ok
        return GRANTED if ok else DENIED

    def _list(self) -> List[Tuple[str, bool]]:
        with os.scandir(self.path) as it:
            return [(e.name, e.is_dir(follow_symlinks=False)) for e in it]

    async def entries(self) -> AsyncIterator[Tuple[str, Union["LocalFolderCapability", LocalFileHandle]]]:
        if not self._granted:
            raise PermissionDenied(f"no read grant for {self.path}", path=self.path)
        listing = await asyncio.to_thread(self._list)
        for name, is_dir in listing:
            child = Path(self.path) / name
            if is_dir:
                yield name, LocalFolderCapability(child, granted=True)
            else:
                yield name, LocalFileHandle(child)
