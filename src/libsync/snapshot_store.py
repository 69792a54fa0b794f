"""Whole-snapshot persistence of the serializable library state."""
from __future__ import annotations

import json
import sqlite3
import time
from typing import Any, Dict, Optional

from loguru import logger

from .db import LibraryDB
from .errors import StorageWriteFailure

SNAPSHOT_KEYS = ("tracks", "albums", "artists", "playlists", "folders", "last_scan_date")


class SnapshotStore:
    """Saves and loads the catalog snapshot under one well-known record id.

    Writes overwrite the whole record. Live capabilities never reach this
    store; `LibraryState.snapshot()` leaves them out.
    """

    def __init__(self, db: LibraryDB, key: str = "audiocore_library") -> None:
        self.db = db
        self.key = key

    def save(self, snapshot: Dict[str, Any]) -> None:
        data = {k: snapshot.get(k) for k in SNAPSHOT_KEYS}
        try:
            payload = json.dumps(data, ensure_ascii=False)
            self.db.put_snapshot(self.key, payload, int(time.time()))
        except (sqlite3.Error, OSError, TypeError, ValueError) as e:
            raise StorageWriteFailure(f"snapshot save failed: {e}") from e
        logger.debug(f"Snapshot saved: {len(data.get('tracks') or [])} tracks")

    def load(self) -> Optional[Dict[str, Any]]:
        """Return the stored snapshot, or None when nothing was saved yet.

        A corrupt record is logged and treated as absent.
        """
        raw = self.db.get_snapshot(self.key)
        if raw is None:
            return None
        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.error(f"Stored snapshot is not valid JSON, ignoring it: {e}")
            return None
        if not isinstance(data, dict):
            logger.error("Stored snapshot has an unexpected shape, ignoring it")
            return None
        return data
