from __future__ import annotations
from contextlib import closing
from typing import Any, List, Optional, Tuple
import os, sqlite3

from idealab_core.constants import DEFAULT_BLOB_DATABASE, DEFAULT_OBJECT_STORE
from idealab_core.errors import StorageTransientError
from idealab_core.logger import get_logger
from idealab_core.storage.provider import StorageProvider
from idealab_core.storage.providers.sqlite_provider import SQLiteStorage, _STORE_NAME

log = get_logger("idealab.storage.blob")

DB_SUFFIX = ".sqlite3"


class BlobBackend(StorageProvider):
    """
    Blob-capable store made of every SQLite database found in one directory.

    Each (database, object store) pair is a sub-store named "<database>/<store>".
    Bare-key reads and writes go to the default sub-store; scans enumerate all
    of them through iter_substores().
    """
    name = "blob"

    def __init__(self, directory="db/blob", default_database=DEFAULT_BLOB_DATABASE,
                 default_store=DEFAULT_OBJECT_STORE):
        os.makedirs(directory, exist_ok=True)
        self.directory = directory
        self.default = SQLiteStorage(self._path(default_database), default_store)
        self.default_name = f"{default_database}/{default_store}"

    def _path(self, database: str) -> str:
        return os.path.join(self.directory, f"{database}{DB_SUFFIX}")

    def databases(self) -> List[str]:
        names = {
            entry[: -len(DB_SUFFIX)]
            for entry in os.listdir(self.directory)
            if entry.endswith(DB_SUFFIX)
        }
        names.add(self.default.database)
        return sorted(names)

    def _object_stores(self, database: str) -> List[str]:
        path = self._path(database)
        if not os.path.exists(path):
            return []
        try:
            with closing(sqlite3.connect(path)) as conn:
                rows = conn.execute(
                    "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
                ).fetchall()
        except sqlite3.Error as e:
            raise StorageTransientError(f"cannot open database {database}: {e}") from e
        return [row[0] for row in rows if _STORE_NAME.match(row[0])]

    def substore(self, name: Optional[str]) -> SQLiteStorage:
        if not name or name == self.default_name:
            return self.default
        database, _, store = name.partition("/")
        return SQLiteStorage(self._path(database), store or DEFAULT_OBJECT_STORE)

    def iter_substores(self) -> List[Tuple[str, SQLiteStorage]]:
        """Every readable sub-store; a database that cannot be opened is logged and skipped."""
        found: List[Tuple[str, SQLiteStorage]] = [(self.default_name, self.default)]
        for database in self.databases():
            try:
                stores = self._object_stores(database)
            except StorageTransientError as e:
                log.error(f"[STORE] skipping database {database}: {e}")
                continue
            for store in stores:
                name = f"{database}/{store}"
                if name != self.default_name:
                    found.append((name, SQLiteStorage(self._path(database), store)))
        return found

    def list_keys(self) -> List[str]:
        return self.default.list_keys()

    def read(self, key: str) -> Optional[Any]:
        return self.default.read(key)

    def write(self, key: str, value: Any) -> None:
        self.default.write(key, value)

    def delete(self, key: str) -> bool:
        return self.default.delete(key)
