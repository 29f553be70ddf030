# idealab_core/storage/provider.py
from __future__ import annotations
from typing import Any, List, Optional


class StorageProvider:
    """
    Key/value contract every backend adapter implements.

    - read() of a missing key returns None, never raises for absence
    - delete() returns False when the key was already gone
    - no caching and no retries; failures surface as StorageError subclasses
    """
    name: str = "base"

    def list_keys(self) -> List[str]:
        raise NotImplementedError

    def read(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    def write(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        raise NotImplementedError

    def close(self) -> None:
        return
