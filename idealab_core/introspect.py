"""
idealab_core.introspect
-----------------------
Best-effort preview of a stored value without interpreting it fully.

The raw value is parsed once and matched against explicit shapes:

    NotStructured      value is not JSON (or is JSON null)
    Envelope           persistence wrapper {"state": {...}, ...}; unwrapped first
    ProjectCollection  state.savedProjects is a non-empty mapping
    SingleProject      state carries a seriesName
    Unrecognized       anything else

introspect() never raises: an unexpected failure while matching shapes
falls back to the NotStructured preview.
"""

from __future__ import annotations
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from idealab_core.constants import RAW_PREVIEW, UNKNOWN_PREVIEW
from idealab_core.logger import get_logger
from idealab_core.storage.models import StoredBlob

log = get_logger("idealab.introspect")

_NOT_PARSED = object()


@dataclass(frozen=True)
class NotStructured:
    pass


@dataclass(frozen=True)
class Envelope:
    state: Dict[str, Any]
    outer: Dict[str, Any]


@dataclass(frozen=True)
class ProjectCollection:
    names: List[str]

    @property
    def count(self) -> int:
        return len(self.names)


@dataclass(frozen=True)
class SingleProject:
    series: str
    episode: Optional[str] = None
    step: Optional[Any] = None


@dataclass(frozen=True)
class Unrecognized:
    pass


Shape = Union[NotStructured, ProjectCollection, SingleProject, Unrecognized]


@dataclass(frozen=True)
class Introspection:
    preview: str
    last_modified: Optional[int] = None
    shape: Shape = NotStructured()
    enveloped: bool = False


def parse_structured(raw: Any) -> Any:
    """Decoded JSON value, or _NOT_PARSED when raw is not structured data."""
    if isinstance(raw, StoredBlob):
        return _NOT_PARSED
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = bytes(raw).decode("utf-8")
        except UnicodeDecodeError:
            return _NOT_PARSED
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except (ValueError, RecursionError):
            return _NOT_PARSED
    if raw is None:
        return _NOT_PARSED
    return raw


def unwrap(parsed: Any) -> Union[Envelope, Any]:
    if isinstance(parsed, dict) and isinstance(parsed.get("state"), dict):
        return Envelope(state=parsed["state"], outer=parsed)
    return parsed


def _number(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def extract_last_modified(state: Any, outer: Any) -> Optional[int]:
    for source in (state, outer):
        if isinstance(source, dict):
            ts = _number(source.get("lastModified"))
            if ts is not None:
                return ts
    return None


def match_shape(state: Any) -> Shape:
    if not isinstance(state, dict):
        return Unrecognized()

    projects = state.get("savedProjects")
    if isinstance(projects, dict) and projects:
        names = []
        for project_id, project in projects.items():
            name = project.get("seriesName") if isinstance(project, dict) else None
            names.append(str(name) if name else str(project_id))
        return ProjectCollection(names=names)

    series = state.get("seriesName")
    if series:
        return SingleProject(
            series=str(series),
            episode=state.get("episodeName"),
            step=state.get("currentStep"),
        )
    return Unrecognized()


def render_preview(shape: Shape) -> str:
    if isinstance(shape, ProjectCollection):
        return f"Contains {shape.count} project(s): {', '.join(shape.names)}"
    if isinstance(shape, SingleProject):
        episode = shape.episode or "Untitled"
        step = "?" if shape.step in (None, "") else shape.step
        return f"Project: {shape.series} - {episode} (Step {step})"
    if isinstance(shape, Unrecognized):
        return UNKNOWN_PREVIEW
    return RAW_PREVIEW


def introspect(raw: Any, key: str = "") -> Introspection:
    parsed = parse_structured(raw)
    if parsed is _NOT_PARSED:
        return Introspection(preview=RAW_PREVIEW)

    try:
        unwrapped = unwrap(parsed)
        if isinstance(unwrapped, Envelope):
            state, outer, enveloped = unwrapped.state, unwrapped.outer, True
        else:
            state, outer, enveloped = unwrapped, parsed, False
        shape = match_shape(state)
        return Introspection(
            preview=render_preview(shape),
            last_modified=extract_last_modified(state, outer),
            shape=shape,
            enveloped=enveloped,
        )
    except Exception as e:
        log.debug(f"[SCAN] preview fallback for {key!r}: {e}")
        return Introspection(preview=RAW_PREVIEW)
