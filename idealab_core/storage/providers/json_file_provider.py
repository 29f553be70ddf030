from __future__ import annotations
from typing import Dict, List, Optional
import json, os, tempfile

from idealab_core.errors import StorageQuotaError, StorageTransientError
from idealab_core.logger import get_logger
from idealab_core.storage.provider import StorageProvider

log = get_logger("idealab.storage.json")


class JSONFileStorage(StorageProvider):
    """
    Small-quota synchronous store persisted as one JSON object of string values.

    The file is re-read on every call so that edits made by other writers are
    observed; a missing file is an empty store.
    """
    name = "json-file"

    def __init__(self, path="db/local_storage.json", quota_bytes: Optional[int] = None):
        self.path = path
        self.quota_bytes = quota_bytes
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)

    def _load(self) -> Dict[str, str]:
        try:
            with open(self.path, "r", encoding="utf-8") as handle:
                data = json.load(handle)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            raise StorageTransientError(f"cannot read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageTransientError(f"{self.path} does not hold a key/value object")
        return data

    def _dump(self, data: Dict[str, str]) -> None:
        dir_path = os.path.dirname(self.path) or "."
        fd, tmp = tempfile.mkstemp(dir=dir_path, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, ensure_ascii=False)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    @staticmethod
    def usage_bytes(data: Dict[str, str]) -> int:
        return sum(len(k.encode("utf-8")) + len(v.encode("utf-8")) for k, v in data.items())

    def list_keys(self) -> List[str]:
        return list(self._load().keys())

    def read(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def write(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"{self.name} only stores strings, got {type(value).__name__}")
        data = self._load()
        data[key] = value
        if self.quota_bytes is not None and self.usage_bytes(data) > self.quota_bytes:
            raise StorageQuotaError(
                f"writing {key!r} would exceed quota of {self.quota_bytes} bytes"
            )
        self._dump(data)

    def delete(self, key: str) -> bool:
        data = self._load()
        if key not in data:
            return False
        del data[key]
        self._dump(data)
        log.debug(f"[STORE] removed {key} from {self.path}")
        return True
