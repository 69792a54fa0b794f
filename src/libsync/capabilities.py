"""Restart-aware registry of folder capabilities.

Two tiers: live capability objects for this process, and their pickled form
in the `capabilities` table so a restart can try to restore them. A restored
capability is never trusted as-is; the store marks its folder for
re-verification.
"""
from __future__ import annotations

import pickle
import sqlite3
import time
from typing import Any, Dict, List, Optional

from .db import LibraryDB
from .errors import CapabilityLost, StorageWriteFailure
from .logging import log_event
from .models import CapabilityRecord


class CapabilityRegistry:
    def __init__(self, db: LibraryDB) -> None:
        self.db = db
        self._live: Dict[str, Any] = {}

    def persist(self, path: str, capability: Any) -> None:
        """Store `capability` under `path`, overwriting any previous entry.

        The live copy is kept even when the durable write fails; the caller
        decides whether to surface StorageWriteFailure.
        """
        self._live[path] = capability
        try:
            blob = pickle.dumps(capability)
        except (pickle.PicklingError, TypeError, AttributeError) as e:
            raise StorageWriteFailure(f"capability for {path} is not serializable: {e}", path=path) from e
        try:
            self.db.upsert_capability(path, blob, int(time.time()))
        except sqlite3.Error as e:
            raise StorageWriteFailure(f"capability write failed for {path}: {e}", path=path) from e

    def retrieve_all(self) -> List[CapabilityRecord]:
        """Load every stored capability; undecodable entries are logged and skipped."""
        records: List[CapabilityRecord] = []
        for path, blob, ts in self.db.all_capabilities():
            try:
                capability = pickle.loads(blob)
            except Exception as e:  # any unpickling failure means the grant is gone
                err = CapabilityLost(f"stored capability no longer deserializes: {e}", path=path)
                log_event("capability_lost", level="WARNING", msg=str(err), path=path)
                continue
            self._live[path] = capability
            records.append(CapabilityRecord(path=path, capability=capability, stored_ts=ts))
        return records

    def get(self, path: str) -> Optional[Any]:
        return self._live.get(path)

    def forget(self, path: str) -> None:
        self._live.pop(path, None)
        try:
            self.db.delete_capability(path)
        except sqlite3.Error as e:
            raise StorageWriteFailure(f"capability delete failed for {path}: {e}", path=path) from e
