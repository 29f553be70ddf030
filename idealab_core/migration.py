"""
idealab_core.migration
----------------------
Moves inline binary payloads out of project records into the blob store.

For every requested project id the engine:

1. loads the record from the first source that has it (active session, then blob store)
2. rewrites a deep copy, externalizing each inline payload above the threshold
   to "media-<namespace>-<key>" and replacing it with "idb://<namespace>/<key>"
3. writes the copy back to "project-<id>" only when every field succeeded

A failing field leaves the persisted record exactly as it was. Every media key
the failed attempt touched is put back on a best-effort basis: keys it created
are deleted, keys it overwrote get their previous value again. Fields that
already hold a reference are skipped, so re-running a batch is safe.

Blob keys are derived from item ids. Two fields of one project never share a
key: a list item whose key is already taken gets its index appended, and if
that is taken too the project fails.

Concurrent writers to the same project key are not guarded against: a write
that lands between load and commit is overwritten by the commit.
"""

from __future__ import annotations
import copy, json
from collections import Counter
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple, Union

from idealab_core.config import StorageConfig, load_config
from idealab_core.constants import project_key
from idealab_core.errors import ExternalizeError, MigrationError, MigrationPreconditionError
from idealab_core.logger import get_logger
from idealab_core.references import (
    collect_references, heal_media_type, inline_size, is_inline_payload, make_reference,
    media_storage_key, to_blob,
)
from idealab_core.storage.models import StoredBlob
from idealab_core.storage.provider import StorageProvider
from idealab_core.utils import compact_json, human_size

log = get_logger("idealab.migration")

IMAGES, AUDIOS, ASSETS = "images", "audios", "assets"


# ------------------------------------------------------------------
# Where binary payloads live inside a project record
# ------------------------------------------------------------------
@dataclass(frozen=True)
class FieldSpec:
    group: Optional[str]  # top-level container, None for root fields
    layout: str           # root | object | list | map
    name: str             # field holding the payload
    namespace: str        # images | assets | audio | video
    counter: str          # images | audios | assets
    key: str              # blob key template: {pid}, {item}
    item_attr: Optional[str] = "id"  # list element id attribute; None uses the index


FIELD_SPECS: Tuple[FieldSpec, ...] = (
    FieldSpec("script", "list", "finalImageUrl", "images", IMAGES, "{pid}-cut-{item}-final"),
    FieldSpec("script", "list", "draftImageUrl", "images", IMAGES, "{pid}-cut-{item}-draft"),
    FieldSpec("script", "list", "audioUrl", "audio", AUDIOS, "{pid}-audio-{item}"),
    FieldSpec("script", "list", "sfxUrl", "audio", AUDIOS, "{pid}-cut-{item}-sfx"),
    FieldSpec("script", "list", "videoUrl", "video", ASSETS, "{pid}-video-{item}"),
    FieldSpec("assetDefinitions", "map", "referenceImage", "assets", ASSETS, "{pid}-asset-{item}-ref"),
    FieldSpec("assetDefinitions", "map", "draftImage", "assets", ASSETS, "{pid}-asset-{item}-draft"),
    FieldSpec("assetDefinitions", "map", "masterImage", "assets", ASSETS, "{pid}-asset-{item}-master"),
    FieldSpec("masterStyle", "object", "referenceImage", "assets", ASSETS, "{pid}-asset-master-style-ref"),
    FieldSpec("styleAnchor", "object", "referenceImage", "assets", ASSETS, "{pid}-asset-style-anchor-ref"),
    FieldSpec(None, "root", "thumbnailUrl", "images", IMAGES, "{pid}-thumbnail"),
    FieldSpec(None, "root", "thumbnailPreview", "images", IMAGES, "{pid}-thumb-preview"),
    FieldSpec("thumbnailSettings", "object", "frameImage", "images", IMAGES, "{pid}-thumb-frame"),
    FieldSpec("chatHistory", "list", "image", "images", IMAGES, "{pid}-chat-{item}", item_attr=None),
    FieldSpec("visualAssets", "map", "previewImageUrl", "images", IMAGES, "{pid}-asset-{item}-visual-preview"),
    FieldSpec("assets", "map", "masterImage", "assets", ASSETS, "{pid}-cutasset-{item}-master"),
    FieldSpec("assets", "map", "draftImage", "assets", ASSETS, "{pid}-cutasset-{item}-draft"),
    FieldSpec("assets", "map", "referenceImage", "assets", ASSETS, "{pid}-cutasset-{item}-ref"),
    FieldSpec("assets", "map", "imageUrl", "assets", ASSETS, "{pid}-cutasset-{item}-final"),
)


@dataclass
class FieldLocation:
    spec: FieldSpec
    container: Dict[str, Any]
    item: Optional[str]
    path: str
    index: Optional[int] = None  # position in a list layout

    @property
    def value(self) -> Any:
        return self.container.get(self.spec.name)

    def blob_key(self, project_id: str, suffix: Optional[str] = None) -> str:
        item = self.item if suffix is None else f"{self.item}-{suffix}"
        return self.spec.key.format(pid=project_id, item=item)


def iter_fields(record: Dict[str, Any], specs: Sequence[FieldSpec] = FIELD_SPECS) -> Iterator[FieldLocation]:
    """Every binary-bearing field present in a record, in a stable order."""
    for spec in specs:
        if spec.layout == "root":
            if spec.name in record:
                yield FieldLocation(spec, record, None, spec.name)
            continue

        group = record.get(spec.group)
        if spec.layout == "object":
            if isinstance(group, dict) and spec.name in group:
                yield FieldLocation(spec, group, None, f"{spec.group}.{spec.name}")
        elif spec.layout == "list" and isinstance(group, list):
            for index, element in enumerate(group):
                if not isinstance(element, dict) or spec.name not in element:
                    continue
                item = element.get(spec.item_attr) if spec.item_attr else None
                item = str(index if item is None else item)
                yield FieldLocation(spec, element, item, f"{spec.group}[{index}].{spec.name}", index)
        elif spec.layout == "map" and isinstance(group, dict):
            for item, element in group.items():
                if isinstance(element, dict) and spec.name in element:
                    yield FieldLocation(spec, element, str(item), f"{spec.group}.{item}.{spec.name}")


# ------------------------------------------------------------------
# Project sources, consulted in priority order
# ------------------------------------------------------------------
@dataclass
class LoadedProject:
    record: Dict[str, Any]
    source: str
    text_encoded: bool = False


class ProjectSource:
    name: str = "base"

    def try_load(self, project_id: str) -> Optional[LoadedProject]:
        raise NotImplementedError


class ActiveSessionSource(ProjectSource):
    """The record currently open in the application, if its id matches."""
    name = "active-session"

    def __init__(self, accessor: Callable[[], Optional[Dict[str, Any]]]):
        self.accessor = accessor

    def try_load(self, project_id: str) -> Optional[LoadedProject]:
        record = self.accessor()
        if isinstance(record, dict) and record.get("id") is not None and str(record["id"]) == project_id:
            return LoadedProject(record=record, source=self.name)
        return None


class BlobStoreSource(ProjectSource):
    name = "blob-store"

    def __init__(self, store: StorageProvider):
        self.store = store

    def try_load(self, project_id: str) -> Optional[LoadedProject]:
        value = self.store.read(project_key(project_id))
        if value is None:
            return None
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
            except ValueError as e:
                raise MigrationError(f"stored record is not JSON: {e}") from e
            if isinstance(parsed, dict):
                return LoadedProject(record=parsed, source=self.name, text_encoded=True)
            raise MigrationError("stored record is not a JSON object")
        if isinstance(value, dict):
            return LoadedProject(record=value, source=self.name)
        raise MigrationError(f"stored record has unexpected type {type(value).__name__}")


# ------------------------------------------------------------------
# Results
# ------------------------------------------------------------------
@dataclass(frozen=True)
class ProjectMigrationResult:
    project_id: str
    status: str  # migrated | unchanged | skipped | failed
    images: int = 0
    audios: int = 0
    assets: int = 0
    bytes_freed: int = 0
    error: Optional[str] = None


@dataclass(frozen=True)
class MigrationReport:
    images: int = 0
    audios: int = 0
    assets: int = 0
    bytes_freed: int = 0
    results: Tuple[ProjectMigrationResult, ...] = field(default_factory=tuple)

    @property
    def failed(self) -> List[ProjectMigrationResult]:
        return [r for r in self.results if r.status == "failed"]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_results(cls, results: Iterable[ProjectMigrationResult]) -> "MigrationReport":
        results = tuple(results)
        return cls(
            images=sum(r.images for r in results),
            audios=sum(r.audios for r in results),
            assets=sum(r.assets for r in results),
            bytes_freed=sum(r.bytes_freed for r in results),
            results=results,
        )


# ------------------------------------------------------------------
# Engine
# ------------------------------------------------------------------
CommitHook = Callable[[str, Dict[str, Any]], None]


def _validate_ids(project_ids: Any) -> List[str]:
    if project_ids is None or isinstance(project_ids, (str, bytes)):
        raise MigrationPreconditionError("project_ids must be a collection of project id strings")
    try:
        ids = list(project_ids)
    except TypeError:
        raise MigrationPreconditionError("project_ids must be iterable") from None
    for pid in ids:
        if not isinstance(pid, str) or not pid.strip():
            raise MigrationPreconditionError(f"invalid project id: {pid!r}")
    return list(dict.fromkeys(ids))


class MigrationEngine:
    def __init__(self, blob_store: StorageProvider, sources: Optional[Sequence[ProjectSource]] = None,
                 threshold_bytes: int = 1024, on_commit: Optional[CommitHook] = None,
                 specs: Sequence[FieldSpec] = FIELD_SPECS):
        self.blob_store = blob_store
        self.sources = list(sources) if sources is not None else [BlobStoreSource(blob_store)]
        self.threshold_bytes = threshold_bytes
        self.on_commit = on_commit
        self.specs = specs

    @classmethod
    def with_session(cls, blob_store: StorageProvider,
                     session_accessor: Optional[Callable[[], Optional[Dict[str, Any]]]] = None,
                     **kwargs) -> "MigrationEngine":
        sources: List[ProjectSource] = []
        if session_accessor is not None:
            sources.append(ActiveSessionSource(session_accessor))
        sources.append(BlobStoreSource(blob_store))
        return cls(blob_store, sources, **kwargs)

    @classmethod
    def from_config(cls, blob_store: StorageProvider, config: Union[StorageConfig, dict, None] = None,
                    session_accessor: Optional[Callable[[], Optional[Dict[str, Any]]]] = None,
                    **kwargs) -> "MigrationEngine":
        """Engine using the configured inline threshold."""
        if not isinstance(config, StorageConfig):
            config = load_config(config)
        kwargs.setdefault("threshold_bytes", config.inline_threshold_bytes)
        return cls.with_session(blob_store, session_accessor, **kwargs)

    def _load(self, project_id: str) -> Optional[LoadedProject]:
        for source in self.sources:
            loaded = source.try_load(project_id)
            if loaded is not None:
                return loaded
        return None

    def _claim_key(self, project_id: str, loc: FieldLocation, taken: Set[str]) -> str:
        key = loc.blob_key(project_id)
        if media_storage_key(loc.spec.namespace, key) in taken and loc.index is not None:
            key = loc.blob_key(project_id, suffix=str(loc.index))
        if media_storage_key(loc.spec.namespace, key) in taken:
            raise ExternalizeError(loc.path, f"blob key {key} is already used by another field")
        return key

    def _externalize(self, project_id: str, loc: FieldLocation, value: Any,
                     taken: Set[str], touched: List[Tuple[str, Any]]) -> str:
        try:
            blob = to_blob(value)
        except ValueError as e:
            raise ExternalizeError(loc.path, str(e)) from e
        key = self._claim_key(project_id, loc, taken)
        blob = StoredBlob(blob.data, heal_media_type(blob.media_type, loc.spec.namespace, key))
        storage_key = media_storage_key(loc.spec.namespace, key)
        try:
            previous = self.blob_store.read(storage_key)
            touched.append((storage_key, previous))
            self.blob_store.write(storage_key, blob)
        except Exception as e:
            raise ExternalizeError(loc.path, f"blob write failed: {e}") from e
        taken.add(storage_key)
        return make_reference(loc.spec.namespace, key)

    def _rollback(self, touched: List[Tuple[str, Any]]) -> None:
        for storage_key, previous in reversed(touched):
            try:
                if previous is None:
                    self.blob_store.delete(storage_key)
                else:
                    self.blob_store.write(storage_key, previous)
            except Exception as e:
                log.warning(f"[MIGRATE] could not restore blob {storage_key}: {e}")

    def migrate_project(self, project_id: str) -> ProjectMigrationResult:
        try:
            loaded = self._load(project_id)
        except Exception as e:
            log.error(f"[MIGRATE] cannot load project {project_id}: {e}")
            return ProjectMigrationResult(project_id, "failed", error=str(e))
        if loaded is None:
            log.info(f"[MIGRATE] project {project_id} not found, skipping")
            return ProjectMigrationResult(project_id, "skipped")

        working = copy.deepcopy(loaded.record)
        counts: Counter = Counter()
        freed = 0
        # keys already referenced by the record are never reused
        taken = collect_references(working)
        touched: List[Tuple[str, Any]] = []
        try:
            for loc in list(iter_fields(working, self.specs)):
                value = loc.value
                if not is_inline_payload(value):
                    continue
                size = inline_size(value)
                if size <= self.threshold_bytes:
                    continue
                reference = self._externalize(project_id, loc, value, taken, touched)
                loc.container[loc.spec.name] = reference
                counts[loc.spec.counter] += 1
                freed += size - len(reference.encode("utf-8"))
                log.debug(f"[MIGRATE] {project_id} {loc.path} -> {reference}")

            if not counts:
                log.info(f"[MIGRATE] project {project_id} has no inline payloads above threshold")
                return ProjectMigrationResult(project_id, "unchanged")

            payload = compact_json(working) if loaded.text_encoded else working
            self.blob_store.write(project_key(project_id), payload)
        except Exception as e:
            self._rollback(touched)
            log.error(f"[MIGRATE] project {project_id} left unmodified: {e}")
            return ProjectMigrationResult(project_id, "failed", error=str(e))

        if self.on_commit is not None:
            try:
                self.on_commit(project_id, working)
            except Exception as e:
                log.warning(f"[MIGRATE] commit hook failed for {project_id}: {e}")

        log.info(
            f"[MIGRATE] project {project_id} ({loaded.source}) saved, freed {human_size(freed)}"
        )
        return ProjectMigrationResult(
            project_id, "migrated",
            images=counts[IMAGES], audios=counts[AUDIOS], assets=counts[ASSETS], bytes_freed=freed,
        )

    def migrate(self, project_ids: Iterable[str]) -> MigrationReport:
        """Attempt every id once; per-project failures are reported, never raised."""
        ids = _validate_ids(project_ids)
        log.info(f"[MIGRATE] starting migration for {len(ids)} project(s)")
        report = MigrationReport.from_results(self.migrate_project(pid) for pid in ids)
        log.info(
            f"[MIGRATE] complete: images={report.images} audios={report.audios} "
            f"assets={report.assets} freed={human_size(report.bytes_freed)} failed={len(report.failed)}"
        )
        return report
