"""Album and artist derivation from tracks.

Albums and artists are never created by the user; they are derived from the
`album` / `artist` fields of imported tracks and keyed by a normalized form of
the title or name, so "Red" and "red!" land in the same aggregate.
"""
from __future__ import annotations

from dataclasses import replace
from typing import Dict, Iterable, List, Sequence, Set, Tuple

from .models import Album, Artist, Track


def normalize_key(text: str) -> str:
    """Case-insensitive key with every non-alphanumeric character stripped."""
    folded = (text or "").casefold()
    key = "".join(ch for ch in folded if ch.isalnum())
    # Titles made only of punctuation still need a usable key
    return key or folded.strip()


def album_id(key: str) -> str:
    return f"album-{key}"


def artist_id(key: str) -> str:
    return f"artist-{key}"


def _append_unique(items: Tuple[str, ...], *new: str) -> Tuple[str, ...]:
    seen = set(items)
    out = list(items)
    for item in new:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return tuple(out)


def _append_titles(titles: Tuple[str, ...], *new: str) -> Tuple[str, ...]:
    """Like `_append_unique`, but titles compare by normalized key; first spelling wins."""
    seen = {normalize_key(t) for t in titles}
    out = list(titles)
    for title in new:
        key = normalize_key(title)
        if key not in seen:
            seen.add(key)
            out.append(title)
    return tuple(out)


def derive_aggregates(tracks: Iterable[Track]) -> Tuple[List[Album], List[Artist]]:
    """Build the albums and artists referenced by one batch of tracks."""
    albums: Dict[str, Album] = {}
    artists: Dict[str, Artist] = {}

    for track in tracks:
        if track.album:
            key = normalize_key(track.album)
            album = albums.get(key)
            if album is None:
                album = Album(
                    id=album_id(key),
                    key=key,
                    title=track.album,
                    artist=track.artist,
                    year=track.year,
                )
            albums[key] = replace(album, track_ids=_append_unique(album.track_ids, track.id))

        if track.artist:
            key = normalize_key(track.artist)
            artist = artists.get(key)
            if artist is None:
                artist = Artist(id=artist_id(key), key=key, name=track.artist)
            if track.album:
                artist = replace(artist, albums=_append_titles(artist.albums, track.album))
            artists[key] = artist

    return list(albums.values()), list(artists.values())


def merge_albums(existing: Sequence[Album], incoming: Iterable[Album]) -> Tuple[Album, ...]:
    """Union incoming albums into existing ones by key; existing fields win."""
    merged: Dict[str, Album] = {a.key: a for a in existing}
    order: List[str] = [a.key for a in existing]
    for album in incoming:
        current = merged.get(album.key)
        if current is None:
            merged[album.key] = album
            order.append(album.key)
            continue
        merged[album.key] = replace(
            current,
            artist=current.artist or album.artist,
            year=current.year or album.year,
            track_ids=_append_unique(current.track_ids, *album.track_ids),
        )
    return tuple(merged[k] for k in order)


def merge_artists(existing: Sequence[Artist], incoming: Iterable[Artist]) -> Tuple[Artist, ...]:
    merged: Dict[str, Artist] = {a.key: a for a in existing}
    order: List[str] = [a.key for a in existing]
    for artist in incoming:
        current = merged.get(artist.key)
        if current is None:
            merged[artist.key] = artist
            order.append(artist.key)
            continue
        merged[artist.key] = replace(current, albums=_append_titles(current.albums, *artist.albums))
    return tuple(merged[k] for k in order)


def prune_aggregates(
    albums: Sequence[Album],
    artists: Sequence[Artist],
    remaining: Sequence[Track],
    removed_ids: Set[str],
) -> Tuple[Tuple[Album, ...], Tuple[Artist, ...]]:
    """Drop removed track ids from aggregates; aggregates left empty disappear."""
    kept_albums: List[Album] = []
    for album in albums:
        ids = tuple(t for t in album.track_ids if t not in removed_ids)
        if ids:
            kept_albums.append(replace(album, track_ids=ids))

    by_artist: Dict[str, Set[str]] = {}
    for track in remaining:
        if track.artist:
            keys = by_artist.setdefault(normalize_key(track.artist), set())
            if track.album:
                keys.add(normalize_key(track.album))

    kept_artists: List[Artist] = []
    for artist in artists:
        if artist.key not in by_artist:
            continue
        live = by_artist[artist.key]
        kept_artists.append(
            replace(artist, albums=tuple(a for a in artist.albums if normalize_key(a) in live))
        )

    return tuple(kept_albums), tuple(kept_artists)
