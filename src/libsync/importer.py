"""Turns discovered files into catalog tracks."""
from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

from .errors import MetadataExtractionError
from .formats import mime_type_for
from .logging import log_event
from .metadata import (
    MetadataExtractor,
    MutagenExtractor,
    generate_track_id,
    normalize_track_number,
    normalize_year,
    parse_file_name,
)
from .models import DiscoveredFile, Track, now_iso

if TYPE_CHECKING:  # pragma: no cover
    from .store import LibraryStore


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def source_path_of(file: DiscoveredFile, folder_path: Optional[str]) -> str:
    if file.local_path:
        return file.local_path
    if folder_path:
        return f"{folder_path.rstrip('/')}/{file.path}"
    return file.path


def build_track(
    file: DiscoveredFile,
    metadata: Dict[str, Any],
    folder_path: Optional[str] = None,
) -> Track:
    """Synthesize a Track from extracted metadata, falling back to the file name."""
    guessed = parse_file_name(file.name)
    title = _text(metadata.get("title")) or guessed.get("title") or file.name
    artist = _text(metadata.get("artist")) or guessed.get("artist")
    album = _text(metadata.get("album"))
    track_number = normalize_track_number(metadata.get("track"))
    if track_number is None:
        track_number = guessed.get("track")
    duration = metadata.get("duration")

    track_id = _text(metadata.get("id")) or generate_track_id(
        artist=artist,
        album=album,
        title=title,
        file_name=file.name,
        file_size=file.size,
    )
    return Track(
        id=track_id,
        title=title,
        artist=artist,
        album=album,
        year=normalize_year(metadata.get("year")),
        track_number=track_number,
        genre=_text(metadata.get("genre")),
        duration=float(duration) if isinstance(duration, (int, float)) else None,
        artwork_ref=_text(metadata.get("artwork")),
        source_path=source_path_of(file, folder_path),
        file_name=file.name,
        file_size=file.size,
        file_type=file.mime_type or mime_type_for(file.name),
        folder_path=folder_path,
        date_added=now_iso(),
    )


class ImportPipeline:
    """Extracts metadata per file and submits whole batches to the store.

    At most `max_workers` extractions run at once; each one runs in a worker
    thread since tag parsing is blocking file I/O.
    """

    def __init__(self, extractor: Optional[MetadataExtractor] = None, *, max_workers: int = 4) -> None:
        self.extractor = extractor or MutagenExtractor()
        self.max_workers = max(1, max_workers)
        self._slots: Optional[asyncio.Semaphore] = None
        self._slots_loop: Optional[asyncio.AbstractEventLoop] = None

    def _semaphore(self) -> asyncio.Semaphore:
        # Bound to the running loop; the CLI runs one loop per command
        loop = asyncio.get_running_loop()
        if self._slots is None or self._slots_loop is not loop:
            self._slots = asyncio.Semaphore(self.max_workers)
            self._slots_loop = loop
        return self._slots

    async def extract_track(self, file: DiscoveredFile, folder_path: Optional[str] = None) -> Optional[Track]:
        """Build one Track, or None if the file's metadata could not be read."""
        async with self._semaphore():
            try:
                metadata = await asyncio.to_thread(self.extractor.extract, file)
            except MetadataExtractionError as e:
                log_event("metadata_error", level="WARNING", msg=str(e), path=file.path)
                return None
            except Exception as e:  # extractors are pluggable; any failure skips the file
                err = MetadataExtractionError(f"extractor failed: {e}", path=file.path)
                log_event("metadata_error", level="WARNING", msg=str(err), path=file.path)
                return None
        return build_track(file, metadata or {}, folder_path)

    async def extract_all(self, files: Iterable[DiscoveredFile], folder_path: Optional[str] = None) -> List[Track]:
        results = await asyncio.gather(*(self.extract_track(f, folder_path) for f in files))
        return [t for t in results if t is not None]

    async def import_files(
        self,
        files: Iterable[DiscoveredFile],
        into: "LibraryStore",
        folder_path: Optional[str] = None,
    ) -> List[Track]:
        """Extract every file and import the batch with a single store call."""
        tracks = await self.extract_all(files, folder_path)
        return await self.submit(tracks, into)

    async def submit(self, tracks: Iterable[Track], into: "LibraryStore", *, save: bool = True) -> List[Track]:
        """Hand one extracted batch to the store; an empty batch is not submitted."""
        batch = list(tracks)
        if batch:
            await into.import_tracks(batch, save=save)
            log_event("tracks_submitted", count=len(batch))
        return batch
