from __future__ import annotations

from pathlib import PurePosixPath


# Fixed allow-list shared by the scanner and manual file selection.
SUPPORTED_AUDIO_EXTENSIONS = (".mp3", ".wav", ".flac", ".ogg", ".m4a", ".aac", ".opus", ".wma")

_MIME_TYPES = {
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".flac": "audio/flac",
    ".ogg": "audio/ogg",
    ".m4a": "audio/mp4",
    ".aac": "audio/aac",
    ".opus": "audio/opus",
    ".wma": "audio/x-ms-wma",
}


def extension_of(name: str) -> str:
    return PurePosixPath(name).suffix.lower()


def is_audio_name(name: str) -> bool:
    # macOS AppleDouble sidecar files (._*) are metadata blobs, not audio.
    if name.startswith("._"):
        return False
    return extension_of(name) in SUPPORTED_AUDIO_EXTENSIONS


def mime_type_for(name: str) -> str:
    """MIME type for a supported file name, or "" when unknown."""
    return _MIME_TYPES.get(extension_of(name), "")
