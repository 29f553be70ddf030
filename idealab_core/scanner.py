"""
idealab_core.scanner
--------------------
Builds one complete, size-ordered snapshot of every record in every store.

Sub-stores are read concurrently and joined before sorting; the scan never
streams partial results. Failures are absorbed where they happen:

- a key that cannot be read is skipped
- a sub-store that cannot be enumerated is skipped
- when nothing at all is reachable the snapshot is empty and an error is logged
"""

from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from idealab_core.classifier import classify
from idealab_core.config import StorageConfig, load_config
from idealab_core.introspect import introspect
from idealab_core.logger import get_logger
from idealab_core.storage import BackendKind, BackendSet, BlobBackend, StorageProvider, StorageRecord
from idealab_core.utils import human_size, serialize_value

log = get_logger("idealab.scanner")

Source = Tuple[BackendKind, Optional[str], StorageProvider]


def display_key(kind: BackendKind, raw_key: str, substore: Optional[str] = None,
                active: bool = False, default_substore: Optional[str] = None) -> str:
    if active:
        return f"{kind.label}: Active Session ({raw_key})"
    if substore and substore != default_substore:
        return f"{kind.label}: {substore} / {raw_key}"
    return f"{kind.label}: {raw_key}"


def build_record(kind: BackendKind, raw_key: str, value: Any, registry,
                 substore: Optional[str] = None,
                 default_substore: Optional[str] = None) -> StorageRecord:
    info = introspect(value, raw_key)
    tags = classify(raw_key, registry, info.shape)
    return StorageRecord(
        backend=kind,
        raw_key=raw_key,
        display_key=display_key(kind, raw_key, substore, tags.is_active_session, default_substore),
        size_bytes=len(serialize_value(value)),
        preview=info.preview,
        last_modified=info.last_modified,
        is_backup=tags.is_backup,
        is_orphan=tags.is_orphan,
        substore=substore,
        project_id=tags.project_id,
        is_active_session=tags.is_active_session,
        category=tags.category,
    )


class Scanner:
    def __init__(self, backends: BackendSet, max_workers: int = 4):
        self.backends = backends
        self.max_workers = max(1, max_workers)

    @classmethod
    def from_config(cls, backends: BackendSet, config: Union[StorageConfig, dict, None] = None) -> "Scanner":
        if not isinstance(config, StorageConfig):
            config = load_config(config)
        return cls(backends, max_workers=config.scan_workers)

    def _sources(self) -> List[Source]:
        sources: List[Source] = []
        for kind, provider in self.backends.items():
            if isinstance(provider, BlobBackend):
                try:
                    substores = provider.iter_substores()
                except Exception as e:
                    log.error(f"[SCAN] cannot enumerate {kind.label} databases: {e}")
                    continue
                sources.extend((kind, name, sub) for name, sub in substores)
            else:
                sources.append((kind, None, provider))
        return sources

    def _scan_source(self, source: Source, registry) -> Tuple[List[StorageRecord], bool]:
        kind, substore, provider = source
        where = f"{kind.label}" + (f" [{substore}]" if substore else "")
        try:
            keys = provider.list_keys()
        except Exception as e:
            log.error(f"[SCAN] skipping {where}: {e}")
            return [], False

        blob = self.backends.blob
        default_substore = blob.default_name if blob is not None else None
        records: List[StorageRecord] = []
        for key in keys:
            try:
                value = provider.read(key)
                if value is None:
                    continue  # removed between listing and reading
                records.append(build_record(kind, key, value, registry, substore, default_substore))
            except Exception as e:
                log.warning(f"[SCAN] skipping {where} key {key!r}: {e}")
        log.debug(f"[SCAN] {where}: {len(records)} record(s)")
        return records, True

    def scan(self, registry: Optional[Iterable[str]] = None) -> List[StorageRecord]:
        """Snapshot of all records, largest first. Orphans are judged against registry."""
        snapshot = frozenset(registry or ())
        sources = self._sources()
        if not sources:
            log.error("[SCAN] no storage backend reachable")
            return []

        workers = min(self.max_workers, len(sources))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="idealab-scan") as pool:
            results = list(pool.map(lambda s: self._scan_source(s, snapshot), sources))

        if not any(ok for _, ok in results):
            log.error("[SCAN] no storage backend reachable")
            return []

        records = [record for found, _ in results for record in found]
        records.sort(key=lambda r: (-r.size_bytes, r.display_key))
        log.info(
            f"[SCAN] {len(records)} record(s), {human_size(sum(r.size_bytes for r in records))} "
            f"across {len(sources)} store(s)"
        )
        return records


@dataclass(frozen=True)
class CategoryTotals:
    count: int = 0
    size: int = 0


@dataclass(frozen=True)
class StorageSummary:
    categories: Dict[str, CategoryTotals] = field(default_factory=dict)
    total: CategoryTotals = CategoryTotals()
    backups: CategoryTotals = CategoryTotals()
    orphans: CategoryTotals = CategoryTotals()


CATEGORIES = ("images", "audio", "video", "projects", "backups", "others")


def _totals(records: List[StorageRecord]) -> CategoryTotals:
    return CategoryTotals(count=len(records), size=sum(r.size_bytes for r in records))


def summarize(records: Iterable[StorageRecord]) -> StorageSummary:
    records = list(records)
    return StorageSummary(
        categories={c: _totals([r for r in records if r.category == c]) for c in CATEGORIES},
        total=_totals(records),
        backups=_totals([r for r in records if r.is_backup]),
        orphans=_totals([r for r in records if r.is_orphan]),
    )
