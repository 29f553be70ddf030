"""
idealab_core.classifier
-----------------------
Maintenance tags derived from naming conventions.

These are heuristics over key names, not structural facts: a key called
"project-<id>" is assumed to be a per-project record, and anything with
"backup" in its name is assumed to be a backup.
"""

from __future__ import annotations
import re
from dataclasses import dataclass
from typing import Container, Optional

from idealab_core.constants import ACTIVE_SESSION_KEYS, PROJECT_KEY_PREFIX
from idealab_core.introspect import ProjectCollection, SingleProject

_PROJECT_SEGMENT = re.compile(
    r"(?:^|[/:_\s])" + re.escape(PROJECT_KEY_PREFIX) + r"(?P<id>[^/:\s]+)"
)

_IMAGE_PREFIXES = ("media-images", "media-assets", "image_")
_AUDIO_PREFIXES = ("media-audio", "audio_")
_VIDEO_PREFIXES = ("media-video", "video_")


@dataclass(frozen=True)
class Classification:
    is_backup: bool
    is_orphan: bool
    project_id: Optional[str] = None
    is_active_session: bool = False
    category: str = "others"


def extract_project_id(raw_key: str) -> Optional[str]:
    match = _PROJECT_SEGMENT.search(raw_key)
    return match.group("id") if match else None


def is_active_session_key(raw_key: str) -> bool:
    return raw_key in ACTIVE_SESSION_KEYS


def categorize(raw_key: str, shape=None) -> str:
    lowered = raw_key.lower()
    if lowered.startswith(_IMAGE_PREFIXES) or "thumbnail" in lowered:
        return "images"
    if lowered.startswith(_AUDIO_PREFIXES):
        return "audio"
    if lowered.startswith(_VIDEO_PREFIXES):
        return "video"
    if lowered.startswith(PROJECT_KEY_PREFIX) or is_active_session_key(raw_key):
        return "projects"
    if "backup" in lowered:
        return "backups"
    # Unconventional key names still get filed by what they hold
    if isinstance(shape, ProjectCollection):
        return "backups"
    if isinstance(shape, SingleProject):
        return "projects"
    return "others"


def classify(raw_key: str, registry: Container[str], shape=None) -> Classification:
    active = is_active_session_key(raw_key)
    project_id = None if active else extract_project_id(raw_key)
    return Classification(
        is_backup="backup" in raw_key.lower(),
        is_orphan=project_id is not None and project_id not in registry,
        project_id=project_id,
        is_active_session=active,
        category=categorize(raw_key, shape),
    )
