"""Named intents accepted by `LibraryStore.dispatch`.

Every action is an immutable record; `reducer.reduce` is the only code that
turns them into state transitions.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union

from .models import Album, Artist, Folder, Playlist, Track


# Tracks

@dataclass(frozen=True)
class AddTracks:
    tracks: Tuple[Track, ...]


@dataclass(frozen=True)
class RemoveTracks:
    track_ids: Tuple[str, ...]


@dataclass(frozen=True)
class UpdateTrack:
    track_id: str
    changes: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class IncrementPlayCount:
    track_id: str
    played_at: str


# Aggregates

@dataclass(frozen=True)
class SetAlbums:
    albums: Tuple[Album, ...]


@dataclass(frozen=True)
class SetArtists:
    artists: Tuple[Artist, ...]


@dataclass(frozen=True)
class MergeAggregates:
    """Albums/artists derived from one import pass, merged by id."""

    albums: Tuple[Album, ...]
    artists: Tuple[Artist, ...]


# Folders

@dataclass(frozen=True)
class AddFolder:
    folder: Folder


@dataclass(frozen=True)
class RemoveFolder:
    path: str


@dataclass(frozen=True)
class UpdateFolder:
    folder: Folder


# Playlists

@dataclass(frozen=True)
class AddPlaylist:
    playlist: Playlist


@dataclass(frozen=True)
class UpdatePlaylist:
    playlist: Playlist


@dataclass(frozen=True)
class RemovePlaylists:
    playlist_ids: Tuple[str, ...]


# Scan session

@dataclass(frozen=True)
class ScanStarted:
    pass


@dataclass(frozen=True)
class ScanTotalRevised:
    total: int


@dataclass(frozen=True)
class ScanProgressed:
    progress: int


@dataclass(frozen=True)
class ScanCurrentFile:
    path: Optional[str]


@dataclass(frozen=True)
class ScanCompleted:
    finished_at: str
    warning: Optional[str] = None


@dataclass(frozen=True)
class ScanFailed:
    kind: str
    message: str


@dataclass(frozen=True)
class ScanCancelled:
    pass


# Errors and lifecycle

@dataclass(frozen=True)
class SetError:
    message: str


@dataclass(frozen=True)
class ClearError:
    pass


@dataclass(frozen=True)
class ResetLibrary:
    pass


@dataclass(frozen=True)
class Initialize:
    pass


@dataclass(frozen=True)
class RestoreSnapshot:
    tracks: Tuple[Track, ...]
    albums: Tuple[Album, ...]
    artists: Tuple[Artist, ...]
    playlists: Tuple[Playlist, ...]
    folders: Tuple[Folder, ...]
    last_scan_date: Optional[str] = None


Action = Union[
    AddTracks,
    RemoveTracks,
    UpdateTrack,
    IncrementPlayCount,
    SetAlbums,
    SetArtists,
    MergeAggregates,
    AddFolder,
    RemoveFolder,
    UpdateFolder,
    AddPlaylist,
    UpdatePlaylist,
    RemovePlaylists,
    ScanStarted,
    ScanTotalRevised,
    ScanProgressed,
    ScanCurrentFile,
    ScanCompleted,
    ScanFailed,
    ScanCancelled,
    SetError,
    ClearError,
    ResetLibrary,
    Initialize,
    RestoreSnapshot,
]
