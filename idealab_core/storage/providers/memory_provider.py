from typing import Any, Dict, List, Optional
from idealab_core.storage.provider import StorageProvider


class InMemoryStorage(StorageProvider):
    """Session-scoped store; contents live only as long as the object."""
    name = "memory"

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self.items: Dict[str, Any] = dict(initial or {})

    def list_keys(self) -> List[str]:
        return list(self.items.keys())

    def read(self, key: str):
        return self.items.get(key)

    def write(self, key: str, value: Any) -> None:
        if value is None:
            raise ValueError(f"refusing to store None under {key!r}")
        self.items[key] = value

    def delete(self, key: str) -> bool:
        return self.items.pop(key, None) is not None
