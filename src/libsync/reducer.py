"""Pure state transitions for the library store.

`reduce(state, action)` never mutates its input and never raises for an
action it does not know; such actions return the state unchanged.
"""
from __future__ import annotations

from dataclasses import fields, replace
from typing import Callable, Dict, Type

from . import actions as a
from .aggregates import merge_albums, merge_artists
from .models import Folder, LibraryState, ScanPhase, ScanSession, Track

_TRACK_FIELDS = {f.name for f in fields(Track)} - {"id"}


def _add_tracks(state: LibraryState, action: a.AddTracks) -> LibraryState:
    known = {t.id for t in state.tracks}
    added = []
    for track in action.tracks:
        # Same id means same entity: the entry already in the catalog wins
        if track.id in known:
            continue
        known.add(track.id)
        added.append(track)
    if not added:
        return state
    return replace(state, tracks=state.tracks + tuple(added))


def _remove_tracks(state: LibraryState, action: a.RemoveTracks) -> LibraryState:
    drop = set(action.track_ids)
    return replace(state, tracks=tuple(t for t in state.tracks if t.id not in drop))


def _update_track(state: LibraryState, action: a.UpdateTrack) -> LibraryState:
    changes = {k: v for k, v in action.changes.items() if k in _TRACK_FIELDS}
    return replace(
        state,
        tracks=tuple(replace(t, **changes) if t.id == action.track_id else t for t in state.tracks),
    )


def _increment_play_count(state: LibraryState, action: a.IncrementPlayCount) -> LibraryState:
    return replace(
        state,
        tracks=tuple(
            replace(t, play_count=t.play_count + 1, last_played=action.played_at)
            if t.id == action.track_id
            else t
            for t in state.tracks
        ),
    )


def _set_albums(state: LibraryState, action: a.SetAlbums) -> LibraryState:
    return replace(state, albums=tuple(action.albums))


def _set_artists(state: LibraryState, action: a.SetArtists) -> LibraryState:
    return replace(state, artists=tuple(action.artists))


def _merge_aggregates(state: LibraryState, action: a.MergeAggregates) -> LibraryState:
    return replace(
        state,
        albums=merge_albums(state.albums, action.albums),
        artists=merge_artists(state.artists, action.artists),
    )


def _add_folder(state: LibraryState, action: a.AddFolder) -> LibraryState:
    if state.folder(action.folder.path) is not None:
        return state
    return replace(state, folders=state.folders + (action.folder,))


def _remove_folder(state: LibraryState, action: a.RemoveFolder) -> LibraryState:
    return replace(state, folders=tuple(f for f in state.folders if f.path != action.path))


def _update_folder(state: LibraryState, action: a.UpdateFolder) -> LibraryState:
    updated = action.folder
    return replace(
        state,
        folders=tuple(updated if f.path == updated.path else f for f in state.folders),
    )


def _add_playlist(state: LibraryState, action: a.AddPlaylist) -> LibraryState:
    if state.playlist(action.playlist.id) is not None:
        return state
    return replace(state, playlists=state.playlists + (action.playlist,))


def _update_playlist(state: LibraryState, action: a.UpdatePlaylist) -> LibraryState:
    updated = action.playlist
    return replace(
        state,
        playlists=tuple(updated if p.id == updated.id else p for p in state.playlists),
    )


def _remove_playlists(state: LibraryState, action: a.RemovePlaylists) -> LibraryState:
    drop = set(action.playlist_ids)
    return replace(state, playlists=tuple(p for p in state.playlists if p.id not in drop))


def _scan_started(state: LibraryState, action: a.ScanStarted) -> LibraryState:
    if state.session.is_scanning:
        return state
    session = ScanSession(
        phase=ScanPhase.SCANNING,
        last_scan_date=state.session.last_scan_date,
    )
    return replace(state, session=session)


def _scan_total_revised(state: LibraryState, action: a.ScanTotalRevised) -> LibraryState:
    session = state.session
    if not session.is_scanning or action.total <= session.scan_total:
        return state
    return replace(state, session=replace(session, scan_total=action.total))


def _scan_progressed(state: LibraryState, action: a.ScanProgressed) -> LibraryState:
    session = state.session
    if not session.is_scanning:
        return state
    progress = max(session.scan_progress, action.progress)
    if session.scan_total > 0:
        progress = min(progress, session.scan_total)
    if progress == session.scan_progress:
        return state
    return replace(state, session=replace(session, scan_progress=progress))


def _scan_current_file(state: LibraryState, action: a.ScanCurrentFile) -> LibraryState:
    if not state.session.is_scanning:
        return state
    return replace(state, session=replace(state.session, current_file=action.path))


def _scan_completed(state: LibraryState, action: a.ScanCompleted) -> LibraryState:
    session = replace(
        state.session,
        phase=ScanPhase.IDLE,
        current_file=None,
        last_scan_date=action.finished_at,
        error=action.warning,
        error_kind="warning" if action.warning else None,
    )
    return replace(state, session=session)


def _scan_failed(state: LibraryState, action: a.ScanFailed) -> LibraryState:
    session = replace(
        state.session,
        phase=ScanPhase.FAILED,
        current_file=None,
        error=action.message,
        error_kind=action.kind,
    )
    return replace(state, session=session)


def _scan_cancelled(state: LibraryState, action: a.ScanCancelled) -> LibraryState:
    session = replace(
        state.session,
        phase=ScanPhase.IDLE,
        current_file=None,
        error="Scan cancelled.",
        error_kind="scan_cancelled",
    )
    return replace(state, session=session)


def _set_error(state: LibraryState, action: a.SetError) -> LibraryState:
    return replace(state, error=action.message)


def _clear_error(state: LibraryState, action: a.ClearError) -> LibraryState:
    return replace(state, error=None)


def _reset_library(state: LibraryState, action: a.ResetLibrary) -> LibraryState:
    # Folders survive a reset so the next scan can rebuild the catalog
    session = state.session if state.session.is_scanning else ScanSession()
    return LibraryState(
        folders=state.folders,
        session=session,
        is_initialized=state.is_initialized,
    )


def _initialize(state: LibraryState, action: a.Initialize) -> LibraryState:
    return replace(state, is_initialized=True)


def _restore_snapshot(state: LibraryState, action: a.RestoreSnapshot) -> LibraryState:
    folders: Dict[str, Folder] = {}
    for folder in action.folders:
        folders.setdefault(folder.path, folder)
    return replace(
        state,
        tracks=tuple(action.tracks),
        albums=tuple(action.albums),
        artists=tuple(action.artists),
        playlists=tuple(action.playlists),
        folders=tuple(folders.values()),
        session=replace(state.session, last_scan_date=action.last_scan_date),
    )


_HANDLERS: Dict[Type, Callable[[LibraryState, object], LibraryState]] = {
    a.AddTracks: _add_tracks,
    a.RemoveTracks: _remove_tracks,
    a.UpdateTrack: _update_track,
    a.IncrementPlayCount: _increment_play_count,
    a.SetAlbums: _set_albums,
    a.SetArtists: _set_artists,
    a.MergeAggregates: _merge_aggregates,
    a.AddFolder: _add_folder,
    a.RemoveFolder: _remove_folder,
    a.UpdateFolder: _update_folder,
    a.AddPlaylist: _add_playlist,
    a.UpdatePlaylist: _update_playlist,
    a.RemovePlaylists: _remove_playlists,
    a.ScanStarted: _scan_started,
    a.ScanTotalRevised: _scan_total_revised,
    a.ScanProgressed: _scan_progressed,
    a.ScanCurrentFile: _scan_current_file,
    a.ScanCompleted: _scan_completed,
    a.ScanFailed: _scan_failed,
    a.ScanCancelled: _scan_cancelled,
    a.SetError: _set_error,
    a.ClearError: _clear_error,
    a.ResetLibrary: _reset_library,
    a.Initialize: _initialize,
    a.RestoreSnapshot: _restore_snapshot,
}


def reduce(state: LibraryState, action: object) -> LibraryState:
    handler = _HANDLERS.get(type(action))
    if handler is None:
        return state
    return handler(state, action)
