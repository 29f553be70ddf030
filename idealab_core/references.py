"""
idealab_core.references
-----------------------
Inline payloads and the references that replace them.

Inline payload: a "data:<mime>;base64,..." URL (or raw bytes) embedded in a
project record.
Reference: "idb://<namespace>/<key>", resolving to the blob stored under
"media-<namespace>-<key>" in the blob store.
"""

from __future__ import annotations
import binascii, os
from dataclasses import dataclass
from typing import Any, Optional, Set
from urllib.parse import quote, unquote, unquote_to_bytes

from idealab_core.constants import MEDIA_KEY_PREFIX, REFERENCE_SCHEME
from idealab_core.storage.models import StoredBlob
from idealab_core.storage.provider import StorageProvider
from idealab_core.utils import b64d, b64e

DEFAULT_MEDIA_TYPE = "application/octet-stream"

_VIDEO_BY_EXT = {"webm": "video/webm", "mkv": "video/webm", "mov": "video/quicktime", "mp4": "video/mp4"}


@dataclass(frozen=True)
class BlobReference:
    namespace: str
    key: str

    @property
    def url(self) -> str:
        return make_reference(self.namespace, self.key)

    @property
    def storage_key(self) -> str:
        return media_storage_key(self.namespace, self.key)


def make_reference(namespace: str, key: str) -> str:
    return f"{REFERENCE_SCHEME}{namespace}/{quote(key, safe='/-_.~')}"


def parse_reference(url: Any) -> Optional[BlobReference]:
    if not is_reference(url):
        return None
    clean = url.split("?", 1)[0][len(REFERENCE_SCHEME):]
    namespace, sep, key = clean.partition("/")
    if not namespace or not sep or not key:
        return None
    return BlobReference(namespace=namespace, key=unquote(key))


def is_reference(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(REFERENCE_SCHEME)


def is_inline_payload(value: Any) -> bool:
    if isinstance(value, str):
        return value.startswith("data:")
    return isinstance(value, (bytes, bytearray, StoredBlob))


def inline_size(value: Any) -> int:
    if isinstance(value, StoredBlob):
        return value.size
    if isinstance(value, (bytes, bytearray)):
        return len(value)
    return len(value.encode("utf-8"))


def media_storage_key(namespace: str, key: str) -> str:
    return f"{MEDIA_KEY_PREFIX}{namespace}-{key}"


def heal_media_type(media_type: str, namespace: str, key: str = "") -> str:
    """Replace missing or legacy MIME types for audio and video payloads."""
    if namespace == "audio" and media_type in ("", DEFAULT_MEDIA_TYPE, "audio/mp3"):
        return "audio/mpeg"
    if namespace == "video" and media_type in ("", DEFAULT_MEDIA_TYPE):
        ext = os.path.splitext(key)[1].lstrip(".").lower()
        return _VIDEO_BY_EXT.get(ext, "video/mp4")
    return media_type or DEFAULT_MEDIA_TYPE


def decode_data_url(url: str) -> StoredBlob:
    if not url.startswith("data:"):
        raise ValueError("not a data: URL")
    header, sep, payload = url[5:].partition(",")
    if not sep:
        raise ValueError("data: URL has no payload separator")
    params = header.split(";")
    media_type = params[0] or DEFAULT_MEDIA_TYPE
    if "base64" in params[1:]:
        try:
            data = b64d(payload)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"invalid base64 payload: {e}") from e
    else:
        data = unquote_to_bytes(payload)
    return StoredBlob(data=data, media_type=media_type)


def encode_data_url(blob: StoredBlob) -> str:
    return f"data:{blob.media_type};base64,{b64e(blob.data)}"


def to_blob(value: Any) -> StoredBlob:
    if isinstance(value, StoredBlob):
        return value
    if isinstance(value, (bytes, bytearray)):
        return StoredBlob(bytes(value))
    return decode_data_url(value)


def resolve_reference(store: StorageProvider, url: str) -> Optional[StoredBlob]:
    """Blob a reference points at, or None when the reference or its target is missing."""
    ref = parse_reference(url)
    if ref is None:
        return None
    value = store.read(ref.storage_key)
    if value is None:
        return None
    if isinstance(value, str):
        return decode_data_url(value) if value.startswith("data:") else None
    if isinstance(value, (bytes, bytearray, StoredBlob)):
        return to_blob(value)
    return None


def collect_references(record: Any) -> Set[str]:
    """Storage keys of every media blob referenced anywhere inside a project record."""
    found: Set[str] = set()
    stack = [record]
    while stack:
        node = stack.pop()
        if isinstance(node, dict):
            stack.extend(node.values())
        elif isinstance(node, list):
            stack.extend(node)
        else:
            ref = parse_reference(node)
            if ref is not None:
                found.add(ref.storage_key)
    return found
