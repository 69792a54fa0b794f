import sqlite3
import threading
from pathlib import Path
from typing import List, Optional, Tuple
from loguru import logger

SCHEMA_VERSION = "1"


class LibraryDB:
    """Durable storage for the catalog snapshot and folder capabilities.

    The two live in separate tables with no cross-table transaction; callers
    treat them as independent, eventually consistent stores.
    """

    def __init__(self, path: Path):
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = threading.local()

    @property
    def conn(self) -> sqlite3.Connection:
        # One connection per thread; store calls arrive from asyncio worker threads
        if not hasattr(self._conn, "connection"):
            self._conn.connection = sqlite3.connect(self.path, check_same_thread=False)
            self._conn.connection.row_factory = sqlite3.Row
            self._conn.connection.execute("PRAGMA journal_mode = WAL;")
            self._conn.connection.execute("PRAGMA synchronous = NORMAL;")
        return self._conn.connection

    def ensure_schema(self):
        """Create tables if missing and record the schema version."""
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS meta (
                key TEXT PRIMARY KEY,
                value TEXT
            )
        """)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS snapshots (
                id TEXT PRIMARY KEY,
                data_json TEXT NOT NULL,
                saved_ts INTEGER
            )
        """)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS capabilities (
                path TEXT PRIMARY KEY,
                capability BLOB NOT NULL,
                stored_ts INTEGER
            )
        """)

        row = self.conn.execute("SELECT value FROM meta WHERE key = 'schema_version'").fetchone()
        if row is None:
            self.conn.execute(
                "INSERT INTO meta (key, value) VALUES ('schema_version', ?)", (SCHEMA_VERSION,)
            )
            logger.info(f"DB initialized at {self.path} (schema v{SCHEMA_VERSION})")

        self.conn.commit()

    def close(self):
        if hasattr(self._conn, "connection"):
            self._conn.connection.close()
            del self._conn.connection

    # Snapshots

    def put_snapshot(self, snapshot_id: str, data_json: str, ts: int) -> None:
        """Overwrite the whole snapshot stored under `snapshot_id`."""
        self.conn.execute(
            """INSERT INTO snapshots (id, data_json, saved_ts)
               VALUES (?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET
                   data_json = excluded.data_json,
                   saved_ts = excluded.saved_ts;""",
            (snapshot_id, data_json, ts),
        )
        self.conn.commit()

    def get_snapshot(self, snapshot_id: str) -> Optional[str]:
        row = self.conn.execute(
            "SELECT data_json FROM snapshots WHERE id = ?", (snapshot_id,)
        ).fetchone()
        return row["data_json"] if row else None

    # Capabilities

    def upsert_capability(self, path: str, blob: bytes, ts: int) -> None:
        self.conn.execute(
            """INSERT INTO capabilities (path, capability, stored_ts)
               VALUES (?, ?, ?)
               ON CONFLICT(path) DO UPDATE SET
                   capability = excluded.capability,
                   stored_ts = excluded.stored_ts;""",
            (path, sqlite3.Binary(blob), ts),
        )
        self.conn.commit()

    def all_capabilities(self) -> List[Tuple[str, bytes, int]]:
        rows = self.conn.execute(
            "SELECT path, capability, stored_ts FROM capabilities ORDER BY path"
        ).fetchall()
        return [(r["path"], bytes(r["capability"]), r["stored_ts"]) for r in rows]

    def delete_capability(self, path: str) -> None:
        self.conn.execute("DELETE FROM capabilities WHERE path = ?", (path,))
        self.conn.commit()
