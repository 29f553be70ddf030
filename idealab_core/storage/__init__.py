# idealab_core/storage/__init__.py

from __future__ import annotations
from typing import Dict, List, Optional, Tuple, Union

from .models import BackendKind, StoredBlob, StorageRecord, DeleteOutcome, BulkDeleteReport
from .provider import StorageProvider
from .providers.memory_provider import InMemoryStorage
from .providers.json_file_provider import JSONFileStorage
from .providers.sqlite_provider import SQLiteStorage
from .providers.blob_backend import BlobBackend
from idealab_core.config import StorageConfig, load_config


class BackendSet:
    """The configured adapters, keyed by backend kind."""

    def __init__(self, providers: Dict[BackendKind, StorageProvider]):
        self.providers = dict(providers)

    def get(self, kind: BackendKind) -> StorageProvider:
        try:
            return self.providers[kind]
        except KeyError:
            raise KeyError(f"no {kind.label} backend configured") from None

    @property
    def blob(self) -> Optional[BlobBackend]:
        provider = self.providers.get(BackendKind.BLOB)
        return provider if isinstance(provider, BlobBackend) else None

    def items(self) -> List[Tuple[BackendKind, StorageProvider]]:
        return [(kind, self.providers[kind]) for kind in BackendKind if kind in self.providers]

    def resolve(self, record: StorageRecord) -> StorageProvider:
        """Adapter owning a scanned record, down to the blob sub-store it came from."""
        provider = self.get(record.backend)
        if isinstance(provider, BlobBackend):
            return provider.substore(record.substore)
        return provider

    def close(self) -> None:
        for provider in self.providers.values():
            provider.close()


def load_backends(config: Union[StorageConfig, dict, None] = None) -> BackendSet:
    """
    Factory building all three stores from settings.

    Session store:
        - memory (default)
        - json-file
    """
    if not isinstance(config, StorageConfig):
        config = load_config(config)

    if config.session_provider == "memory":
        session: StorageProvider = InMemoryStorage()
    elif config.session_provider == "json-file":
        session = JSONFileStorage(config.session_path)
    else:
        raise ValueError(f"Unknown session provider: {config.session_provider}")

    return BackendSet({
        BackendKind.LOCAL: JSONFileStorage(config.local_path, quota_bytes=config.local_quota_bytes),
        BackendKind.SESSION: session,
        BackendKind.BLOB: BlobBackend(config.blob_dir, default_database=config.blob_database),
    })


__all__ = [
    "BackendKind",
    "BackendSet",
    "BlobBackend",
    "BulkDeleteReport",
    "DeleteOutcome",
    "InMemoryStorage",
    "JSONFileStorage",
    "SQLiteStorage",
    "StorageProvider",
    "StorageRecord",
    "StoredBlob",
    "load_backends",
]
