"""
Record stores used by the billing service.

A store holds whole-record snapshots in named collections. Every write goes
through `batch`, which applies a list of Put/Delete operations all-or-nothing:
readers see either the state before the batch or the state after it.

Backups export every collection to one YAML file; restoring one validates
all of its records before the store content is replaced.
"""

import logging
import os
import tempfile
from copy import deepcopy
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import yaml

from .errors import StorageError
from .records import dump_record, load_record

logger = logging.getLogger(__name__)

COLLECTIONS = ('units', 'contracts', 'invoices', 'bookings', 'settings')


@dataclass(frozen=True)
class Put:
    collection: str
    record: Any


@dataclass(frozen=True)
class Delete:
    collection: str
    id: str


Operation = Union[Put, Delete]


def _check_collection(collection: str):
    if collection not in COLLECTIONS:
        raise StorageError(f"Unknown collection {collection!r}")


class Store:
    """Interface the billing service needs from a persistence backend."""

    def get_all(self, collection: str) -> List[Any]:
        raise NotImplementedError

    def get_by_id(self, collection: str, record_id: str) -> Optional[Any]:
        raise NotImplementedError

    def batch(self, operations: Sequence[Operation]) -> None:
        raise NotImplementedError

    def put(self, collection: str, record) -> None:
        self.batch([Put(collection, record)])

    def delete(self, collection: str, record_id: str) -> None:
        self.batch([Delete(collection, record_id)])

    def replace_all(self, records: Dict[str, List[Any]]) -> None:
        """Swap the whole content for `records` (collection -> list of records) in one step."""
        raise NotImplementedError

    def snapshot(self) -> Dict[str, List[dict]]:
        """Every record as plain data, by collection."""
        return {name: [dump_record(r) for r in self.get_all(name)] for name in COLLECTIONS}


class MemoryStore(Store):
    """Process-local store. Records are copied in and out, never shared."""

    def __init__(self):
        self._data: Dict[str, Dict[str, Any]] = {name: {} for name in COLLECTIONS}

    def get_all(self, collection):
        _check_collection(collection)
        return [deepcopy(r) for r in self._data[collection].values()]

    def get_by_id(self, collection, record_id):
        _check_collection(collection)
        record = self._data[collection].get(record_id)
        return deepcopy(record) if record is not None else None

    def batch(self, operations):
        staged = {name: dict(records) for name, records in self._data.items()}
        _apply(staged, operations, lambda record: deepcopy(record))
        self._data = staged
        logger.debug(f"Applied batch of {len(operations)} operations")

    def replace_all(self, records):
        self._data = _index(records, deepcopy)


class YamlStore(Store):
    """
    Whole database in one YAML document.

    Each batch writes a complete new snapshot to a temporary file next to
    the target and renames it into place, so a failed write leaves the
    previous file (and the in-memory snapshot) untouched.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._data = self._read()

    def _read(self) -> Dict[str, Dict[str, dict]]:
        data = {name: {} for name in COLLECTIONS}
        if not self.path.exists():
            logger.info(f"Store {self.path} does not exist, starting empty")
            return data

        try:
            doc = yaml.safe_load(self.path.read_text(encoding='utf-8')) or {}
        except (OSError, yaml.YAMLError) as e:
            raise StorageError(f"Could not read {self.path}: {e}") from e
        if not isinstance(doc, dict):
            raise StorageError(f"Could not read {self.path}: expected a mapping of collections")

        for name in COLLECTIONS:
            for item in doc.get(name) or []:
                if not isinstance(item, dict) or 'id' not in item:
                    raise StorageError(f"Could not read {self.path}: {name} entry without an id")
                data[name][item['id']] = item
        logger.debug(f"Loaded store {self.path}: " +
                     ", ".join(f"{len(data[n])} {n}" for n in COLLECTIONS))
        return data

    def get_all(self, collection):
        _check_collection(collection)
        return [load_record(collection, item) for item in self._data[collection].values()]

    def get_by_id(self, collection, record_id):
        _check_collection(collection)
        item = self._data[collection].get(record_id)
        return load_record(collection, item) if item is not None else None

    def batch(self, operations):
        staged = {name: dict(records) for name, records in self._data.items()}
        _apply(staged, operations, dump_record)
        self._write(staged)
        self._data = staged
        logger.debug(f"Wrote batch of {len(operations)} operations to {self.path}")

    def replace_all(self, records):
        staged = _index(records, dump_record)
        self._write(staged)
        self._data = staged
        logger.info(f"Replaced every record in {self.path}")

    def _write(self, data):
        _dump_yaml(self.path, {name: list(data[name].values()) for name in COLLECTIONS})


def _apply(staged, operations, encode):
    for op in operations:
        _check_collection(op.collection)
        if isinstance(op, Put):
            staged[op.collection][op.record.id] = encode(op.record)
        elif isinstance(op, Delete):
            staged[op.collection].pop(op.id, None)
        else:
            raise StorageError(f"Unsupported operation {op!r}")


def _index(records, encode):
    data = {name: {} for name in COLLECTIONS}
    for name, items in records.items():
        _check_collection(name)
        for record in items:
            data[name][record.id] = encode(record)
    return data


def _dump_yaml(path: Path, doc: dict) -> None:
    """Write doc to a temporary file beside path and rename it into place."""
    tmp_name = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=path.name, suffix='.tmp', dir=path.parent)
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            yaml.safe_dump(doc, f, sort_keys=False, allow_unicode=True)
        os.replace(tmp_name, path)
    except (OSError, yaml.YAMLError) as e:
        if tmp_name and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise StorageError(f"Could not write {path}: {e}") from e


# -------------------- backups --------------------

BACKUP_FORMAT_VERSION = 1


def record_counts(records: Dict[str, list]) -> Dict[str, int]:
    return {name: len(records.get(name) or []) for name in COLLECTIONS}


def write_backup(store: Store, path: Union[str, Path]) -> Dict[str, int]:
    """Export every collection of the store to a single YAML backup file."""
    path = Path(path)
    snapshot = store.snapshot()
    doc = {'metadata': {'format_version': BACKUP_FORMAT_VERSION, 'created': date.today().isoformat()}}
    doc.update(snapshot)
    _dump_yaml(path, doc)

    counts = record_counts(snapshot)
    logger.info(f"Backup written to {path}: " + ", ".join(f"{n} {name}" for name, n in counts.items()))
    return counts


def read_backup(path: Union[str, Path]) -> Dict[str, List[Any]]:
    """
    Load and validate a backup file.

    Every record is decoded before anything is returned, so a damaged file
    is rejected as a whole with a StorageError.
    """
    path = Path(path)
    try:
        doc = yaml.safe_load(path.read_text(encoding='utf-8'))
    except (OSError, yaml.YAMLError) as e:
        raise StorageError(f"Could not read backup {path}: {e}") from e
    if not isinstance(doc, dict):
        raise StorageError(f"Backup {path} is not a mapping of collections")

    version = (doc.get('metadata') or {}).get('format_version')
    if version != BACKUP_FORMAT_VERSION:
        raise StorageError(f"Backup {path} has unsupported format version {version!r}")

    records = {}
    for name in COLLECTIONS:
        items = doc.get(name) or []
        if not isinstance(items, list):
            raise StorageError(f"Backup {path}: {name} is not a list")
        for item in items:
            if not isinstance(item, dict) or 'id' not in item:
                raise StorageError(f"Backup {path}: {name} entry without an id")
        records[name] = [load_record(name, item) for item in items]
    return records


def restore_backup(store: Store, path: Union[str, Path]) -> Dict[str, int]:
    """Replace all of the store's data with the content of a backup file."""
    records = read_backup(path)
    store.replace_all(records)
    counts = record_counts(records)
    logger.info(f"Restored {path}: " + ", ".join(f"{n} {name}" for name, n in counts.items()))
    return counts
