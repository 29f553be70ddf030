from __future__ import annotations
from contextlib import closing
from typing import Any, List, Optional
import json, os, re, sqlite3

from idealab_core.errors import StorageTransientError
from idealab_core.logger import get_logger
from idealab_core.storage.models import StoredBlob
from idealab_core.storage.provider import StorageProvider

log = get_logger("idealab.storage.sqlite")

_STORE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_\-]*$")


class SQLiteStorage(StorageProvider):
    """
    One object store inside one SQLite database file.

    Values are tagged so that strings, structured values and binary blobs
    come back exactly as they were written:
      text -> str, json -> decoded JSON value, blob -> StoredBlob
    """
    name = "sqlite"

    def __init__(self, path="db/blob/keyval-store.sqlite3", store="keyval"):
        if not _STORE_NAME.match(store):
            raise ValueError(f"invalid object store name: {store!r}")
        dir_path = os.path.dirname(path) or "."
        os.makedirs(dir_path, exist_ok=True)
        self.path = path
        self.store = store
        self.database = os.path.splitext(os.path.basename(path))[0]

    def _connect(self) -> sqlite3.Connection:
        # One connection per call so scanner worker threads never share one
        conn = sqlite3.connect(self.path)
        conn.execute(
            f"""CREATE TABLE IF NOT EXISTS "{self.store}"(
                key TEXT PRIMARY KEY,
                kind TEXT NOT NULL,
                value BLOB,
                media_type TEXT
            )"""
        )
        return conn

    def list_keys(self) -> List[str]:
        try:
            with closing(self._connect()) as conn:
                rows = conn.execute(f'SELECT key FROM "{self.store}" ORDER BY key').fetchall()
        except sqlite3.Error as e:
            raise StorageTransientError(f"cannot enumerate {self.database}/{self.store}: {e}") from e
        return [row[0] for row in rows]

    def read(self, key: str) -> Optional[Any]:
        try:
            with closing(self._connect()) as conn:
                row = conn.execute(
                    f'SELECT kind, value, media_type FROM "{self.store}" WHERE key=?', (key,)
                ).fetchone()
        except sqlite3.Error as e:
            raise StorageTransientError(f"cannot read {key!r} from {self.database}/{self.store}: {e}") from e
        if row is None:
            return None
        kind, value, media_type = row
        if kind == "blob":
            return StoredBlob(bytes(value), media_type or "application/octet-stream")
        if kind == "json":
            return json.loads(value)
        return value

    def write(self, key: str, value: Any) -> None:
        if value is None:
            raise ValueError(f"refusing to store None under {key!r}")
        media_type = None
        if isinstance(value, StoredBlob):
            kind, payload, media_type = "blob", sqlite3.Binary(value.data), value.media_type
        elif isinstance(value, (bytes, bytearray)):
            kind, payload, media_type = "blob", sqlite3.Binary(bytes(value)), "application/octet-stream"
        elif isinstance(value, str):
            kind, payload = "text", value
        else:
            kind, payload = "json", json.dumps(value, separators=(",", ":"), ensure_ascii=False)
        try:
            with closing(self._connect()) as conn:
                conn.execute(
                    f'INSERT INTO "{self.store}"(key, kind, value, media_type) VALUES(?,?,?,?) '
                    "ON CONFLICT(key) DO UPDATE SET kind=excluded.kind, value=excluded.value, "
                    "media_type=excluded.media_type",
                    (key, kind, payload, media_type),
                )
                conn.commit()
        except sqlite3.Error as e:
            raise StorageTransientError(f"cannot write {key!r} to {self.database}/{self.store}: {e}") from e

    def delete(self, key: str) -> bool:
        try:
            with closing(self._connect()) as conn:
                cur = conn.execute(f'DELETE FROM "{self.store}" WHERE key=?', (key,))
                conn.commit()
                removed = cur.rowcount > 0
        except sqlite3.Error as e:
            raise StorageTransientError(f"cannot delete {key!r} from {self.database}/{self.store}: {e}") from e
        return removed
