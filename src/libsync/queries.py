"""Read-only projections over a LibraryState. None of these mutate state."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from .aggregates import normalize_key
from .models import Album, Artist, LibraryState, Playlist, Track


@dataclass(frozen=True)
class SearchResults:
    tracks: List[Track] = field(default_factory=list)
    albums: List[Album] = field(default_factory=list)
    artists: List[Artist] = field(default_factory=list)
    playlists: List[Playlist] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.tracks) + len(self.albums) + len(self.artists) + len(self.playlists)


@dataclass(frozen=True)
class LibraryStats:
    total_tracks: int
    total_albums: int
    total_artists: int
    total_playlists: int
    total_folders: int
    total_size_bytes: int
    total_duration_seconds: float


def get_most_played(state: LibraryState, limit: int = 10) -> List[Track]:
    return sorted(state.tracks, key=lambda t: t.play_count, reverse=True)[:limit]


def get_recently_added(state: LibraryState, limit: int = 10) -> List[Track]:
    # ISO-8601 timestamps in UTC sort correctly as strings
    return sorted(state.tracks, key=lambda t: t.date_added or "", reverse=True)[:limit]


def get_recently_played(state: LibraryState, limit: int = 10) -> List[Track]:
    played = [t for t in state.tracks if t.last_played]
    return sorted(played, key=lambda t: t.last_played, reverse=True)[:limit]


def get_tracks_by_album(state: LibraryState, album_id: str) -> List[Track]:
    album = next((a for a in state.albums if a.id == album_id), None)
    if album is None:
        return []
    ids = set(album.track_ids)
    return [t for t in state.tracks if t.id in ids]


def get_tracks_by_artist(state: LibraryState, artist_id: str) -> List[Track]:
    artist = next((a for a in state.artists if a.id == artist_id), None)
    if artist is None:
        return []
    return [t for t in state.tracks if t.artist and normalize_key(t.artist) == artist.key]


def get_tracks_by_playlist(state: LibraryState, playlist_id: str) -> List[Track]:
    """Tracks in playlist order; ids no longer in the catalog are skipped."""
    playlist = state.playlist(playlist_id)
    if playlist is None:
        return []
    by_id = {t.id: t for t in state.tracks}
    return [by_id[i] for i in playlist.track_ids if i in by_id]


def _matches(q: str, *values) -> bool:
    return any(v and q in v.casefold() for v in values)


def search_library(state: LibraryState, query: str) -> SearchResults:
    if not query or not query.strip():
        return SearchResults()
    q = query.strip().casefold()
    return SearchResults(
        tracks=[t for t in state.tracks if _matches(q, t.title, t.artist, t.album)],
        albums=[a for a in state.albums if _matches(q, a.title, a.artist)],
        artists=[a for a in state.artists if _matches(q, a.name)],
        playlists=[p for p in state.playlists if _matches(q, p.name)],
    )


def get_library_stats(state: LibraryState) -> LibraryStats:
    return LibraryStats(
        total_tracks=len(state.tracks),
        total_albums=len(state.albums),
        total_artists=len(state.artists),
        total_playlists=len(state.playlists),
        total_folders=len(state.folders),
        total_size_bytes=sum(t.file_size for t in state.tracks),
        total_duration_seconds=sum(t.duration or 0.0 for t in state.tracks),
    )
