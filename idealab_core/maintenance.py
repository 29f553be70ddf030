from __future__ import annotations
from typing import Callable, Iterable, List, Set, Tuple

from idealab_core.constants import MEDIA_KEY_PREFIX, project_key
from idealab_core.introspect import parse_structured
from idealab_core.logger import get_logger
from idealab_core.references import collect_references
from idealab_core.storage import BackendKind, BackendSet, BulkDeleteReport, DeleteOutcome, StorageRecord

log = get_logger("idealab.maintenance")

RecordPredicate = Callable[[StorageRecord], bool]


def is_backup(record: StorageRecord) -> bool:
    return record.is_backup


def is_orphan(record: StorageRecord) -> bool:
    return record.is_orphan


def delete_one(backends: BackendSet, record: StorageRecord) -> DeleteOutcome:
    """
    Remove the key a scanned record points at.

    An already-absent key is reported as deleted=False, not as an error.
    Backend failures propagate. The caller's snapshot is left untouched.
    """
    provider = backends.resolve(record)
    deleted = provider.delete(record.raw_key)
    if deleted:
        log.info(f"[MAINT] deleted {record.display_key}")
    else:
        log.info(f"[MAINT] already gone: {record.display_key}")
    return DeleteOutcome(deleted=deleted)


def delete_by_classification(backends: BackendSet, records: Iterable[StorageRecord],
                             predicate: RecordPredicate) -> BulkDeleteReport:
    deleted = 0
    not_found = 0
    failures: List[Tuple[StorageRecord, str]] = []
    for record in records:
        if not predicate(record):
            continue
        try:
            outcome = delete_one(backends, record)
        except Exception as e:
            log.error(f"[MAINT] failed to delete {record.display_key}: {e}")
            failures.append((record, str(e) or type(e).__name__))
            continue
        if outcome.deleted:
            deleted += 1
        else:
            not_found += 1

    log.info(f"[MAINT] bulk delete: {deleted} deleted, {not_found} already gone, {len(failures)} failed")
    return BulkDeleteReport(deleted_count=deleted, not_found_count=not_found, failures=tuple(failures))


def find_unreferenced_media(backends: BackendSet, records: Iterable[StorageRecord],
                            registry: Iterable[str]) -> List[StorageRecord]:
    """
    Media blobs in the default blob sub-store that no registered project references.

    If any registered project cannot be read the result is empty: an unreadable
    project might reference anything.
    """
    blob = backends.blob
    if blob is None:
        return []

    referenced: Set[str] = set()
    for project_id in registry:
        try:
            value = blob.read(project_key(project_id))
        except Exception as e:
            log.error(f"[MAINT] cannot read project {project_id}, not reporting unreferenced media: {e}")
            return []
        parsed = parse_structured(value) if value is not None else None
        if isinstance(parsed, dict):
            referenced |= collect_references(parsed)

    return [
        r for r in records
        if r.backend is BackendKind.BLOB
        and r.substore in (None, blob.default_name)
        and r.raw_key.startswith(MEDIA_KEY_PREFIX)
        and r.raw_key not in referenced
    ]
