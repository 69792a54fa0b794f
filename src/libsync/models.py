from __future__ import annotations

from dataclasses import dataclass, field, fields, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _known(cls, data: Dict[str, Any]) -> Dict[str, Any]:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


@dataclass(frozen=True)
class DiscoveredFile:
    """An audio file found by the scanner or listed in a legacy folder."""

    name: str
    path: str  # relative to the folder root, POSIX separators
    directory: str
    size: int = 0
    last_modified: float = 0.0
    mime_type: str = ""
    local_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiscoveredFile":
        return cls(**_known(cls, data))


@dataclass(frozen=True)
class Track:
    id: str
    title: str
    source_path: str
    file_name: str
    artist: Optional[str] = None
    album: Optional[str] = None
    year: Optional[int] = None
    track_number: Optional[int] = None
    genre: Optional[str] = None
    duration: Optional[float] = None
    artwork_ref: Optional[str] = None
    file_size: int = 0
    file_type: str = ""
    folder_path: Optional[str] = None
    date_added: str = field(default_factory=now_iso)
    play_count: int = 0
    last_played: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Track":
        return cls(**_known(cls, data))


@dataclass(frozen=True)
class Album:
    id: str
    key: str
    title: str
    artist: Optional[str] = None
    year: Optional[int] = None
    track_ids: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["track_ids"] = list(self.track_ids)
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Album":
        values = _known(cls, data)
        values["track_ids"] = tuple(values.get("track_ids") or ())
        return cls(**values)


@dataclass(frozen=True)
class Artist:
    id: str
    key: str
    name: str
    albums: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["albums"] = list(self.albums)
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Artist":
        values = _known(cls, data)
        values["albums"] = tuple(values.get("albums") or ())
        return cls(**values)


@dataclass(frozen=True)
class Playlist:
    id: str
    name: str
    description: Optional[str] = None
    track_ids: Tuple[str, ...] = ()
    date_created: str = field(default_factory=now_iso)

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["track_ids"] = list(self.track_ids)
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Playlist":
        values = _known(cls, data)
        values["track_ids"] = tuple(values.get("track_ids") or ())
        return cls(**values)


@dataclass(frozen=True)
class Folder:
    """A registered library folder.

    `capability` is the live access object and only exists in memory; the
    snapshot keeps the descriptor (path, name) and the flags.
    """

    path: str
    name: str
    capability: Any = field(default=None, compare=False, repr=False)
    has_valid_capability: bool = False
    needs_permission_verification: bool = False
    files: Optional[Tuple[DiscoveredFile, ...]] = None

    @property
    def is_legacy(self) -> bool:
        return self.files is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "name": self.name,
            "has_valid_capability": self.has_valid_capability,
            "needs_permission_verification": self.needs_permission_verification,
            "files": [f.to_dict() for f in self.files] if self.files is not None else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Folder":
        values = _known(cls, data)
        values.pop("capability", None)
        files = values.get("files")
        if files is not None:
            values["files"] = tuple(DiscoveredFile.from_dict(f) for f in files)
        return cls(**values)


class ScanPhase(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    FAILED = "failed"


@dataclass(frozen=True)
class ScanSession:
    phase: ScanPhase = ScanPhase.IDLE
    scan_progress: int = 0
    scan_total: int = 0
    current_file: Optional[str] = None
    last_scan_date: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None

    @property
    def is_scanning(self) -> bool:
        return self.phase is ScanPhase.SCANNING


@dataclass(frozen=True)
class ScanProgress:
    current_file: str
    files_found: int


@dataclass(frozen=True)
class CapabilityRecord:
    path: str
    capability: Any
    stored_ts: int


@dataclass(frozen=True)
class LibraryState:
    tracks: Tuple[Track, ...] = ()
    albums: Tuple[Album, ...] = ()
    artists: Tuple[Artist, ...] = ()
    playlists: Tuple[Playlist, ...] = ()
    folders: Tuple[Folder, ...] = ()
    session: ScanSession = field(default_factory=ScanSession)
    is_initialized: bool = False
    error: Optional[str] = None

    def folder(self, path: str) -> Optional[Folder]:
        for f in self.folders:
            if f.path == path:
                return f
        return None

    def playlist(self, playlist_id: str) -> Optional[Playlist]:
        for p in self.playlists:
            if p.id == playlist_id:
                return p
        return None

    def snapshot(self) -> Dict[str, Any]:
        """Serializable part of the state; live capabilities are left out."""
        return {
            "tracks": [t.to_dict() for t in self.tracks],
            "albums": [a.to_dict() for a in self.albums],
            "artists": [a.to_dict() for a in self.artists],
            "playlists": [p.to_dict() for p in self.playlists],
            "folders": [f.to_dict() for f in self.folders],
            "last_scan_date": self.session.last_scan_date,
        }
