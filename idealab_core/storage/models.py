# idealab_core/storage/models.py
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


class BackendKind(str, Enum):
    LOCAL = "local"      # small-quota synchronous store
    SESSION = "session"  # session-scoped synchronous store
    BLOB = "blob"        # larger-quota blob-capable store

    @property
    def label(self) -> str:
        return {
            BackendKind.LOCAL: "LocalStorage",
            BackendKind.SESSION: "SessionStorage",
            BackendKind.BLOB: "BlobStore",
        }[self]


@dataclass(frozen=True)
class StoredBlob:
    """Binary payload held by the blob store, the analogue of a browser Blob."""
    data: bytes
    media_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class StorageRecord:
    """
    One key/value pair observed by a scan, plus derived metadata.

    Records are snapshots: they are never updated after a scan and carry no
    handle to the underlying value. Re-scan to observe changes.
    """
    backend: BackendKind
    raw_key: str
    display_key: str
    size_bytes: int
    preview: str
    last_modified: Optional[int] = None
    is_backup: bool = False
    is_orphan: bool = False
    substore: Optional[str] = None
    project_id: Optional[str] = None
    is_active_session: bool = False
    category: str = "others"


@dataclass(frozen=True)
class DeleteOutcome:
    deleted: bool


@dataclass(frozen=True)
class BulkDeleteReport:
    deleted_count: int = 0
    not_found_count: int = 0
    failures: Tuple[Tuple[StorageRecord, str], ...] = field(default_factory=tuple)
