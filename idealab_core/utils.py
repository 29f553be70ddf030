"""
idealab_core.utils
------------------
Small helpers for base64, canonical serialization and size formatting.
Serialization here defines what "size" means for every scanned record.
"""

from __future__ import annotations
import base64, json
from typing import Any


def b64e(b: bytes) -> str:
    return base64.b64encode(b).decode("ascii")

def b64d(s: str) -> bytes:
    return base64.b64decode(s.encode("ascii"), validate=True)

def compact_json(obj: Any) -> str:
    # Matches the compact form a browser JSON.stringify would produce
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False)

def serialize_value(value: Any) -> bytes:
    """Byte form of a stored value; its length is the record's size."""
    from idealab_core.storage.models import StoredBlob

    if isinstance(value, StoredBlob):
        return value.data
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return value.encode("utf-8")
    return compact_json(value).encode("utf-8")

def human_size(n: float) -> str:
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if n < 1024:
            return f"{n:.1f}{unit}" if unit != "B" else f"{int(n)}B"
        n /= 1024
    return f"{n:.1f}PB"
