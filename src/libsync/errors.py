"""Error taxonomy for the synchronization core.

Per-file and per-folder errors are raised at the lowest level and converted to
skip-and-continue by the caller; only the session-level errors end a scan in
the Failed phase.
"""
from __future__ import annotations

from typing import Optional


class LibraryError(Exception):
    kind = "library_error"
    user_message: Optional[str] = None

    def __init__(self, message: str = "", *, path: Optional[str] = None) -> None:
        super().__init__(message or self.kind)
        self.path = path


class PermissionDenied(LibraryError):
    kind = "permission_denied"


class CapabilityLost(PermissionDenied):
    """A persisted capability that no longer deserializes or validates."""

    kind = "capability_lost"


class FileReadError(LibraryError):
    kind = "file_read_error"


class MetadataExtractionError(LibraryError):
    kind = "metadata_extraction_error"


class NoFoldersProcessable(LibraryError):
    kind = "no_folders_processable"
    user_message = (
        "None of your library folders could be read. "
        "Remove them and add them again to grant access."
    )


class NoAudioFilesFound(LibraryError):
    kind = "no_audio_files_found"
    user_message = "The scan finished but no supported audio files were found in your folders."


class ScanCancelledError(LibraryError):
    kind = "scan_cancelled"
    user_message = "Scan cancelled."


class StorageWriteFailure(LibraryError):
    kind = "storage_write_failure"
