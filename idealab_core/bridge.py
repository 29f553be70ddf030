from __future__ import annotations
from typing import Any, Callable, Optional

from idealab_core.logger import get_logger
from idealab_core.storage import BackendSet, StorageRecord, StoredBlob
from idealab_core.utils import compact_json

log = get_logger("idealab.bridge")

SessionImporter = Callable[[str], Any]


def value_as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, StoredBlob):
        return value.data.decode("utf-8", errors="replace")
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return compact_json(value)


class LoadBridge:
    """
    Hands stored or uploaded content to the application's session importer.

    The importer owns parsing; this class never interprets the text.
    """

    def __init__(self, backends: BackendSet, importer: SessionImporter):
        self.backends = backends
        self.importer = importer

    def load_selected(self, record: StorageRecord) -> Optional[Any]:
        """Re-read the record's key (not the snapshot) and import it. None if the key is gone."""
        provider = self.backends.resolve(record)
        value = provider.read(record.raw_key)
        if value is None:
            log.warning(f"[BRIDGE] {record.display_key} no longer exists")
            return None
        log.info(f"[BRIDGE] importing {record.display_key}")
        self.importer(value_as_text(value))
        return value

    def import_from_text(self, content: str) -> None:
        log.info(f"[BRIDGE] importing uploaded content ({len(content)} chars)")
        self.importer(content)
