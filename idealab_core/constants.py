# idealab_core/constants.py
"""Persisted layout conventions shared with the authoring application."""

PROJECT_KEY_PREFIX = "project-"
MEDIA_KEY_PREFIX = "media-"
REFERENCE_SCHEME = "idb://"

# Keys the persistence middleware writes the live session under
ACTIVE_SESSION_KEYS = ("idea-lab-storage", "workflow-storage")

DEFAULT_BLOB_DATABASE = "keyval-store"
DEFAULT_OBJECT_STORE = "keyval"

RAW_PREVIEW = "Raw Data (Not JSON)"
UNKNOWN_PREVIEW = "Unknown Data Format"


def project_key(project_id: str) -> str:
    return f"{PROJECT_KEY_PREFIX}{project_id}"
