"""The library store: single owner and single writer of catalog state."""
from __future__ import annotations

import asyncio
import sqlite3
import uuid
from dataclasses import replace
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from loguru import logger

from . import actions as a
from .aggregates import derive_aggregates, prune_aggregates
from .capabilities import CapabilityRegistry
from .config import LibSettings
from .db import LibraryDB
from .errors import CapabilityLost, StorageWriteFailure
from .importer import ImportPipeline
from .logging import log_event
from .models import (
    Album,
    Artist,
    CapabilityRecord,
    Folder,
    LibraryState,
    Playlist,
    Track,
    now_iso,
)
from . import queries
from .reducer import reduce
from .scanner import DirectoryScanner
from .session import ScanSessionRunner
from .snapshot_store import SnapshotStore
from .verifier import PermissionVerifier

Subscriber = Callable[[LibraryState], None]


def reconcile_folders(
    folders: Iterable[Folder],
    records: Sequence[CapabilityRecord],
) -> Tuple[Folder, ...]:
    """Attach restored capabilities to snapshot folders after a restart.

    Nothing restored from disk is trusted: every capability-backed folder is
    flagged for re-verification. A folder whose capability is missing from the
    registry keeps its flags but also needs verification (which will then
    report it as lost). Legacy folders carry their own file list and are left
    alone.
    """
    by_path = {r.path: r.capability for r in records}
    out: List[Folder] = []
    for folder in folders:
        capability = by_path.get(folder.path)
        if capability is None and folder.is_legacy:
            out.append(replace(folder, capability=None, needs_permission_verification=False))
            continue
        if capability is None:
            err = CapabilityLost("folder has no entry in the capability registry", path=folder.path)
            log_event("capability_lost", level="WARNING", msg=str(err), path=folder.path)
        out.append(replace(folder, capability=capability, needs_permission_verification=True))

    known = {f.path for f in out}
    for r in records:
        if r.path not in known:
            logger.debug(f"Capability for {r.path} has no folder in the snapshot; ignoring it")
    return tuple(out)


class LibraryStore:
    """State container updated only through `dispatch`.

    Collaborators are injected; `LibraryStore.open(settings)` wires the
    default sqlite-backed ones. Catalog-changing operations are coroutines
    because they end with a snapshot write.
    """

    def __init__(
        self,
        settings: Optional[LibSettings] = None,
        *,
        snapshots: Optional[SnapshotStore] = None,
        registry: Optional[CapabilityRegistry] = None,
        verifier: Optional[PermissionVerifier] = None,
        scanner: Optional[DirectoryScanner] = None,
        importer: Optional[ImportPipeline] = None,
    ) -> None:
        self.settings = settings or LibSettings()
        self.snapshots = snapshots
        self.registry = registry
        self.verifier = verifier or PermissionVerifier()
        self.scanner = scanner or DirectoryScanner()
        self.importer = importer or ImportPipeline(max_workers=self.settings.metadata_workers)
        self._state = LibraryState()
        self._subscribers: List[Subscriber] = []
        self._sessions = ScanSessionRunner(self)
        self._snapshot_unreadable = False

    @classmethod
    def open(cls, settings: LibSettings, **collaborators) -> "LibraryStore":
        db = LibraryDB(settings.resolved_db_path)
        db.ensure_schema()
        return cls(
            settings,
            snapshots=SnapshotStore(db, settings.snapshot_key),
            registry=CapabilityRegistry(db),
            **collaborators,
        )

    # State

    @property
    def state(self) -> LibraryState:
        return self._state

    def dispatch(self, action: object) -> LibraryState:
        new_state = reduce(self._state, action)
        if new_state is self._state:
            return new_state
        self._state = new_state
        for fn in list(self._subscribers):
            try:
                fn(new_state)
            except Exception:  # a broken view must not break the store
                logger.exception("State subscriber failed")
        return new_state

    def subscribe(self, fn: Subscriber) -> Callable[[], None]:
        self._subscribers.append(fn)

        def unsubscribe() -> None:
            if fn in self._subscribers:
                self._subscribers.remove(fn)

        return unsubscribe

    # Persistence

    async def save(self) -> bool:
        """Write the snapshot now. Failures are logged; memory stays authoritative."""
        if self.snapshots is None or not self._state.is_initialized:
            return False
        if self._snapshot_unreadable:
            logger.warning("Snapshot not saved: the stored library could not be read and is kept as is")
            return False
        try:
            await asyncio.to_thread(self.snapshots.save, self._state.snapshot())
        except StorageWriteFailure as e:
            log_event("storage_write_failure", level="ERROR", msg=str(e), store="snapshot")
            self.dispatch(a.SetError("Library changes could not be saved and will be lost on restart"))
            return False
        return True

    async def commit(self) -> None:
        if self.settings.autosave:
            await self.save()

    async def load(self) -> bool:
        """Restore the catalog and folder capabilities after a process start."""
        snapshot = None
        records: Sequence[CapabilityRecord] = ()
        ok = True
        if self.snapshots is not None:
            try:
                snapshot = await asyncio.to_thread(self.snapshots.load)
            except sqlite3.Error as e:
                logger.error(f"Failed to load library: {e}")
                self.dispatch(a.SetError("Failed to load library"))
                ok = False
        if self.registry is not None:
            try:
                records = await asyncio.to_thread(self.registry.retrieve_all)
            except sqlite3.Error as e:
                logger.error(f"Failed to load folder capabilities: {e}")
                ok = False

        if snapshot:
            try:
                restored = self._decode_snapshot(snapshot, records)
            except (TypeError, ValueError, KeyError, AttributeError) as e:
                # Keep the stored record intact until the user clears the library
                logger.error(f"Failed to load library: stored snapshot is malformed: {e}")
                self._snapshot_unreadable = True
                self.dispatch(a.SetError("Failed to load library"))
                ok = False
            else:
                self.dispatch(restored)
                logger.info(
                    f"Library restored: {len(self._state.tracks)} tracks, {len(self._state.folders)} folders"
                )
        self.dispatch(a.Initialize())
        return ok

    @staticmethod
    def _decode_snapshot(snapshot, records: Sequence[CapabilityRecord]) -> a.RestoreSnapshot:
        folders = [Folder.from_dict(f) for f in snapshot.get("folders") or []]
        return a.RestoreSnapshot(
            tracks=tuple(Track.from_dict(t) for t in snapshot.get("tracks") or []),
            albums=tuple(Album.from_dict(x) for x in snapshot.get("albums") or []),
            artists=tuple(Artist.from_dict(x) for x in snapshot.get("artists") or []),
            playlists=tuple(Playlist.from_dict(p) for p in snapshot.get("playlists") or []),
            folders=reconcile_folders(folders, records),
            last_scan_date=snapshot.get("last_scan_date"),
        )

    # Folders

    async def add_folder(self, folder: Folder) -> bool:
        """Register a folder. Returns False, changing nothing, if its path is known."""
        if self._state.folder(folder.path) is not None:
            logger.info(f"Folder already in library: {folder.path}")
            return False
        folder = replace(
            folder,
            has_valid_capability=folder.capability is not None,
            needs_permission_verification=False,
        )
        self.dispatch(a.AddFolder(folder))
        log_event("folder_added", path=folder.path, legacy=folder.is_legacy)

        if folder.capability is not None and self.registry is not None:
            try:
                await asyncio.to_thread(self.registry.persist, folder.path, folder.capability)
            except StorageWriteFailure as e:
                log_event("storage_write_failure", level="ERROR", msg=str(e), store="capabilities")
        await self.commit()
        return True

    async def remove_folder(self, path: str) -> bool:
        if self._state.folder(path) is None:
            return False
        self.dispatch(a.RemoveFolder(path))
        if self.registry is not None:
            try:
                await asyncio.to_thread(self.registry.forget, path)
            except StorageWriteFailure as e:
                log_event("storage_write_failure", level="ERROR", msg=str(e), store="capabilities")

        removed = 0
        if self.settings.cascade_folder_removal:
            removed = self._remove_folder_tracks(path)
        log_event("folder_removed", path=path, tracks_removed=removed)
        await self.commit()
        return True

    def _remove_folder_tracks(self, path: str) -> int:
        drop = {t.id for t in self._state.tracks if t.folder_path == path}
        if not drop:
            return 0
        self.dispatch(a.RemoveTracks(tuple(drop)))
        albums, artists = prune_aggregates(
            self._state.albums, self._state.artists, self._state.tracks, drop
        )
        self.dispatch(a.SetAlbums(albums))
        self.dispatch(a.SetArtists(artists))
        return len(drop)

    # Tracks

    async def import_tracks(self, tracks: Iterable[Track], *, save: bool = True) -> bool:
        """Merge tracks by id and fold their albums/artists into the catalog."""
        batch = tuple(tracks)
        if not batch:
            return True
        self.dispatch(a.AddTracks(batch))
        # Aggregates follow the catalog's copy of each id, which may predate this batch
        held = {t.id: t for t in self._state.tracks}
        albums, artists = derive_aggregates(held[t.id] for t in batch if t.id in held)
        self.dispatch(a.MergeAggregates(tuple(albums), tuple(artists)))
        if save:
            await self.commit()
        return True

    async def record_play(self, track_id: str) -> bool:
        if not any(t.id == track_id for t in self._state.tracks):
            return False
        self.dispatch(a.IncrementPlayCount(track_id, now_iso()))
        await self.commit()
        return True

    async def update_track(self, track_id: str, **changes) -> bool:
        """Edit descriptive fields of one track; its id cannot change."""
        if not any(t.id == track_id for t in self._state.tracks):
            return False
        self.dispatch(a.UpdateTrack(track_id, changes))
        await self.commit()
        return True

    def clear_error(self) -> None:
        self.dispatch(a.ClearError())

    # Scanning

    async def scan_library(self) -> bool:
        """Run a scan session; returns False at once if one is already running."""
        return await self._sessions.run()

    def cancel_scan(self) -> bool:
        return self._sessions.cancel()

    # Playlists

    async def create_playlist(self, name: str, description: Optional[str] = None) -> Optional[str]:
        if not name or not name.strip():
            self.dispatch(a.SetError("Failed to create playlist"))
            return None
        playlist = Playlist(
            id=f"playlist-{uuid.uuid4().hex}",
            name=name.strip(),
            description=description,
        )
        self.dispatch(a.AddPlaylist(playlist))
        await self.commit()
        return playlist.id

    async def add_to_playlist(self, playlist_id: str, track_ids: Iterable[str]) -> bool:
        playlist = self._state.playlist(playlist_id)
        if playlist is None:
            self.dispatch(a.SetError("Failed to add to playlist"))
            return False
        ids = list(playlist.track_ids)
        for tid in track_ids:
            if tid not in ids:
                ids.append(tid)
        self.dispatch(a.UpdatePlaylist(replace(playlist, track_ids=tuple(ids))))
        await self.commit()
        return True

    async def remove_from_playlist(self, playlist_id: str, track_ids: Iterable[str]) -> bool:
        playlist = self._state.playlist(playlist_id)
        if playlist is None:
            self.dispatch(a.SetError("Failed to remove from playlist"))
            return False
        drop = set(track_ids)
        self.dispatch(
            a.UpdatePlaylist(replace(playlist, track_ids=tuple(t for t in playlist.track_ids if t not in drop)))
        )
        await self.commit()
        return True

    async def delete_playlist(self, playlist_id: str) -> bool:
        if self._state.playlist(playlist_id) is None:
            return False
        self.dispatch(a.RemovePlaylists((playlist_id,)))
        await self.commit()
        return True

    async def clear_library(self) -> bool:
        """Drop tracks, albums, artists and playlists; folders are kept.

        Also the only way to overwrite a stored snapshot that failed to load.
        """
        self.dispatch(a.ResetLibrary())
        self._snapshot_unreadable = False
        await self.commit()
        return True

    # Queries

    def get_most_played(self, limit: Optional[int] = None) -> List[Track]:
        return queries.get_most_played(self._state, limit or self.settings.query_limit)

    def get_recently_added(self, limit: Optional[int] = None) -> List[Track]:
        return queries.get_recently_added(self._state, limit or self.settings.query_limit)

    def get_recently_played(self, limit: Optional[int] = None) -> List[Track]:
        return queries.get_recently_played(self._state, limit or self.settings.query_limit)

    def get_tracks_by_album(self, album_id: str) -> List[Track]:
        return queries.get_tracks_by_album(self._state, album_id)

    def get_tracks_by_artist(self, artist_id: str) -> List[Track]:
        return queries.get_tracks_by_artist(self._state, artist_id)

    def get_tracks_by_playlist(self, playlist_id: str) -> List[Track]:
        return queries.get_tracks_by_playlist(self._state, playlist_id)

    def search_library(self, query: str) -> queries.SearchResults:
        return queries.search_library(self._state, query)

    def get_library_stats(self) -> queries.LibraryStats:
        return queries.get_library_stats(self._state)
