"""Recursive audio-file discovery over a folder capability.

Traversal is depth-first and strictly sequential: one directory entry is
awaited at a time and sibling subdirectories are never walked in parallel.
Files are produced lazily by `iter_audio_files()`; `scan()` is the push
variant calling back for every file as soon as it is found.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Iterable, List, Optional

from .errors import FileReadError, LibraryError
from .formats import is_audio_name, mime_type_for
from .logging import log_event
from .models import DiscoveredFile, ScanProgress


@dataclass
class _Counter:
    files_found: int = 0


def _join(base: str, name: str) -> str:
    return f"{base}/{name}" if base else name


class DirectoryScanner:
    def __init__(self) -> None:
        self.errors: List[FileReadError] = []

    async def iter_audio_files(
        self,
        capability,
        on_progress: Optional[Callable[[ScanProgress], None]] = None,
        stop_event: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[DiscoveredFile]:
        """Yield every supported audio file below `capability`.

        Raises FileReadError only when the root itself cannot be listed;
        unreadable files and subdirectories are logged and skipped, and
        `errors` holds those of the latest walk only.
        """
        self.errors = []
        counter = _Counter()
        async for f in self._walk(capability, "", counter, on_progress, stop_event, root=True):
            yield f

    async def _walk(
        self,
        directory,
        base_path: str,
        counter: _Counter,
        on_progress: Optional[Callable[[ScanProgress], None]],
        stop_event: Optional[asyncio.Event],
        *,
        root: bool = False,
    ) -> AsyncIterator[DiscoveredFile]:
        def report(current: str) -> None:
            if on_progress:
                on_progress(ScanProgress(current_file=current, files_found=counter.files_found))

        try:
            async for name, handle in directory.entries():
                if stop_event is not None and stop_event.is_set():
                    return
                path = _join(base_path, name)

                if handle.kind == "directory":
                    async for f in self._walk(handle, path, counter, on_progress, stop_event):
                        yield f
                elif handle.kind == "file" and is_audio_name(name):
                    discovered = await self._read_file(handle, name, path, base_path)
                    if discovered is not None:
                        counter.files_found += 1
                        yield discovered

                report(path)
        except (OSError, LibraryError) as e:
            err = FileReadError(f"cannot read directory: {e}", path=base_path or getattr(directory, "name", ""))
            if root:
                raise err from e
            self._record(err)
        # Empty directories still produce one progress event for their level
        report(base_path)

    async def _read_file(self, handle, name: str, path: str, directory: str) -> Optional[DiscoveredFile]:
        try:
            info = await handle.get_file()
        except (OSError, LibraryError) as e:
            self._record(FileReadError(f"cannot read file: {e}", path=path))
            return None
        return DiscoveredFile(
            name=info.name or name,
            path=path,
            directory=directory,
            size=info.size,
            last_modified=info.last_modified,
            mime_type=info.mime_type or mime_type_for(name),
            local_path=info.local_path,
        )

    def _record(self, err: FileReadError) -> None:
        self.errors.append(err)
        log_event("file_read_error", level="WARNING", msg=str(err), path=err.path)

    async def scan(
        self,
        capability,
        on_file_found: Optional[Callable[[DiscoveredFile], None]] = None,
        on_progress: Optional[Callable[[ScanProgress], None]] = None,
        stop_event: Optional[asyncio.Event] = None,
    ) -> List[DiscoveredFile]:
        """Walk `capability`, calling `on_file_found` for each file as it is found."""
        found: List[DiscoveredFile] = []
        async for f in self.iter_audio_files(capability, on_progress, stop_event):
            found.append(f)
            if on_file_found:
                on_file_found(f)
        return found


def filter_audio_files(files: Iterable[DiscoveredFile]) -> List[DiscoveredFile]:
    """Apply the supported-extension allow-list to a pre-enumerated file list."""
    return [f for f in files if is_audio_name(f.name)]
