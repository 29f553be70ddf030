"""
idealab_core.config
-------------------
Runtime settings. Explicit dict values win over IDEALAB_* environment
variables, which win over the defaults below.
"""

from __future__ import annotations
import os
from dataclasses import dataclass, fields
from typing import Any, Dict, Optional

from idealab_core.constants import DEFAULT_BLOB_DATABASE

_ENV = {
    "local_path": "IDEALAB_LOCAL_PATH",
    "local_quota_bytes": "IDEALAB_LOCAL_QUOTA",
    "session_provider": "IDEALAB_SESSION_PROVIDER",
    "session_path": "IDEALAB_SESSION_PATH",
    "blob_dir": "IDEALAB_BLOB_DIR",
    "blob_database": "IDEALAB_BLOB_DATABASE",
    "inline_threshold_bytes": "IDEALAB_INLINE_THRESHOLD",
    "scan_workers": "IDEALAB_SCAN_WORKERS",
}


@dataclass(frozen=True)
class StorageConfig:
    local_path: str = "db/local_storage.json"
    local_quota_bytes: Optional[int] = 5 * 1024 * 1024
    session_provider: str = "memory"  # memory | json-file
    session_path: str = "db/session_storage.json"
    blob_dir: str = "db/blob"
    blob_database: str = DEFAULT_BLOB_DATABASE
    inline_threshold_bytes: int = 1024
    scan_workers: int = 4


def _coerce(name: str, raw: Any) -> Any:
    if name in ("local_quota_bytes", "inline_threshold_bytes", "scan_workers"):
        if raw in (None, "", "none", "None") and name == "local_quota_bytes":
            return None
        value = int(raw)
        if value < 0 or (name == "scan_workers" and value < 1):
            raise ValueError(f"{name} out of range: {value}")
        return value
    return str(raw)


def load_config(config: Optional[Dict[str, Any]] = None) -> StorageConfig:
    config = config or {}
    values: Dict[str, Any] = {}
    for f in fields(StorageConfig):
        if f.name in config:
            values[f.name] = _coerce(f.name, config[f.name])
        elif os.getenv(_ENV[f.name]) is not None:
            values[f.name] = _coerce(f.name, os.environ[_ENV[f.name]])
    return StorageConfig(**values)
