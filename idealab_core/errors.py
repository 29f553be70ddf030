from __future__ import annotations


class StorageError(Exception):
    pass


class StorageTransientError(StorageError):
    """A read, open or enumeration failed; the item is skipped for this pass."""


class StoragePermanentError(StorageError):
    pass


class StorageQuotaError(StoragePermanentError):
    pass


class MigrationError(Exception):
    pass


class ExternalizeError(MigrationError):
    def __init__(self, path: str, reason: str):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class MigrationPreconditionError(ValueError):
    pass
