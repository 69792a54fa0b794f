"""Metadata extraction for discovered audio files.

The import pipeline talks to any object with an `extract(file) -> dict`
method. `MutagenExtractor` is the default; it reads tags with mutagen and
returns whatever it finds. Missing fields are normal and are filled in by the
importer from the file name.

Returned keys (all optional): title, artist, album, year, track, genre,
duration, artwork, id.
"""
from __future__ import annotations

import hashlib
import os
import re
from pathlib import PurePosixPath
from typing import Any, Dict, Optional, Protocol

from loguru import logger

from .errors import MetadataExtractionError
from .models import DiscoveredFile

_ARTIST_TITLE_RE = re.compile(r"^(.*?)\s-\s(.*)$")
_TRACK_TITLE_RE = re.compile(r"^(\d+)[\s.\-]+(.*)$")
_TRACK_NUMBER_RE = re.compile(r"^\s*(\d+)(?:\s*/\s*\d+)?\s*$")
_YEAR_RE = re.compile(r"\b(19\d{2}|20\d{2})\b")
_ID_UNSAFE_RE = re.compile(r"[^a-z0-9]")


class MetadataExtractor(Protocol):
    def extract(self, file: DiscoveredFile) -> Dict[str, Any]: ...


def _first(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, list):
        if not value:
            return ""
        return str(value[0]).strip()
    return str(value).strip()


def _tag_value(tags: object, *keys: str) -> str:
    if tags is None:
        return ""
    for key in keys:
        try:
            value = tags.get(key)
        except (KeyError, ValueError, TypeError):
            value = None
        if value:
            return _first(value)
    return ""


def _artwork_bytes(audio) -> Optional[bytes]:
    """Raw bytes of the first embedded picture, across the common containers."""
    pictures = list(getattr(audio, "pictures", None) or [])  # FLAC PICTURE blocks
    for pic in pictures:
        if getattr(pic, "type", None) == 3 and getattr(pic, "data", None):  # 3 = Front cover
            return bytes(pic.data)
    if pictures and getattr(pictures[0], "data", None):
        return bytes(pictures[0].data)

    tags = getattr(audio, "tags", None)
    if tags is None:
        return None
    getall = getattr(tags, "getall", None)
    if callable(getall):  # ID3
        for frame in getall("APIC"):
            if getattr(frame, "data", None):
                return bytes(frame.data)
    try:
        covr = tags.get("covr")  # MP4
    except (KeyError, ValueError, TypeError):
        covr = None
    if covr:
        return bytes(covr[0])
    return None


class MutagenExtractor:
    """Reads tags and stream info with mutagen.

    Raises MetadataExtractionError when the file itself cannot be read. A file
    mutagen cannot parse is not an error: it yields an empty record so the
    importer falls back to the file name.
    """

    def extract(self, file: DiscoveredFile) -> Dict[str, Any]:
        from mutagen import File, MutagenError

        path = file.local_path
        if not path:
            raise MetadataExtractionError("file has no readable location", path=file.path)
        if not os.access(path, os.R_OK):
            raise MetadataExtractionError("file is not readable", path=file.path)

        try:
            easy = File(path, easy=True)
        except MutagenError as e:
            # mutagen wraps I/O failures; those mean the file is unreadable
            if e.args and isinstance(e.args[0], OSError):
                raise MetadataExtractionError(f"read failed: {e}", path=file.path) from e
            logger.debug(f"Unparseable audio, falling back to file name: {file.path}: {e}")
            return {}
        except OSError as e:
            raise MetadataExtractionError(f"read failed: {e}", path=file.path) from e
        if easy is None:
            return {}

        tags = getattr(easy, "tags", None)
        info = getattr(easy, "info", None)
        length = getattr(info, "length", None)

        meta: Dict[str, Any] = {
            "title": _tag_value(tags, "title"),
            "artist": _tag_value(tags, "artist", "albumartist"),
            "album": _tag_value(tags, "album"),
            "year": _tag_value(tags, "date", "year", "originaldate"),
            "track": _tag_value(tags, "tracknumber"),
            "genre": _tag_value(tags, "genre"),
            "duration": float(length) if isinstance(length, (int, float)) else None,
        }
        mbid = _tag_value(tags, "musicbrainz_trackid")
        if mbid:
            meta["id"] = f"mbid-{mbid.lower()}"

        try:
            full = File(path)
            art = _artwork_bytes(full) if full is not None else None
        except (MutagenError, OSError) as e:
            logger.debug(f"Artwork lookup failed for {file.path}: {e}")
            art = None
        if art:
            meta["artwork"] = "sha1:" + hashlib.sha1(art).hexdigest()

        return {k: v for k, v in meta.items() if v not in ("", None)}


def parse_file_name(file_name: str) -> Dict[str, Any]:
    """Guess title/artist/track from "Artist - NN - Title" style file names."""
    stem = PurePosixPath(file_name).stem if "." in file_name else file_name

    m = _ARTIST_TITLE_RE.match(stem)
    if m and not m.group(1).strip().isdigit():
        artist = m.group(1).strip()
        title = m.group(2).strip()
        t = _TRACK_TITLE_RE.match(title)
        if t:
            return {"title": t.group(2).strip(), "artist": artist, "track": int(t.group(1))}
        return {"title": title, "artist": artist}

    t = _TRACK_TITLE_RE.match(stem)
    if t and t.group(2).strip():
        return {"title": t.group(2).strip(), "track": int(t.group(1))}

    return {"title": stem}


def normalize_track_number(value: Any) -> Optional[int]:
    """Accept 7, "7" or "7/12"; anything else becomes None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, (list, tuple)) and value:
        return normalize_track_number(value[0])
    if isinstance(value, str):
        m = _TRACK_NUMBER_RE.match(value)
        if m:
            return int(m.group(1))
    return None


def normalize_year(value: Any) -> Optional[int]:
    """Extract a four-digit year from an int or a date string like 2004-05-01."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str):
        m = _YEAR_RE.search(value)
        if m:
            return int(m.group(1))
    return None


def generate_track_id(
    *,
    artist: Optional[str],
    album: Optional[str],
    title: Optional[str],
    file_name: str,
    file_size: int,
) -> str:
    """Deterministic id so rescanning the same file maps to the same track."""
    parts = [p for p in (artist, album) if p]
    parts.append(title or file_name)
    if file_size:
        parts.append(str(file_size))
    return "track-" + _ID_UNSAFE_RE.sub("-", "-".join(parts).lower())
