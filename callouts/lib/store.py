"""Record stores: the persistence collaborator.

The callout core only ever writes status and log records through this narrow
interface; it never reads business records to make decisions. Writes report
failure as a DmlFailure result instead of raising.

Two implementations ship:
- InMemoryRecordStore: dict-backed, for tests and short-lived processes
- JsonlRecordStore: append-only JSON Lines file
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol, Union

logger = logging.getLogger(__name__)

__all__ = [
    "DmlResult",
    "DmlFailure",
    "RecordStore",
    "InMemoryRecordStore",
    "JsonlRecordStore",
]


@dataclass(frozen=True)
class DmlResult:
    """Result of one insert or update."""

    id: Optional[str] = None
    success: bool = True
    error: Optional[str] = None


@dataclass(frozen=True)
class DmlFailure(DmlResult):
    """A write that did not persist."""

    success: bool = False


class RecordStore(Protocol):
    def insert(self, entity: str, record: Mapping[str, Any]) -> DmlResult:
        ...

    def update(self, entity: str, record: Mapping[str, Any]) -> DmlResult:
        ...


def _record_id(record: Mapping[str, Any]) -> Optional[str]:
    value = record.get("id")
    return str(value) if value is not None else None


class InMemoryRecordStore:
    """Dict-backed store keyed by entity then record id."""

    def __init__(self) -> None:
        self._records: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def insert(self, entity: str, record: Mapping[str, Any]) -> DmlResult:
        record_id = _record_id(record) or uuid.uuid4().hex
        with self._lock:
            table = self._records.setdefault(entity, {})
            if record_id in table:
                return DmlFailure(id=record_id, error=f"Duplicate id in {entity}: {record_id}")
            table[record_id] = {**record, "id": record_id}
        return DmlResult(id=record_id)

    def update(self, entity: str, record: Mapping[str, Any]) -> DmlResult:
        record_id = _record_id(record)
        if record_id is None:
            return DmlFailure(error=f"Update on {entity} requires an id")
        with self._lock:
            table = self._records.setdefault(entity, {})
            if record_id not in table:
                return DmlFailure(id=record_id, error=f"No {entity} record with id {record_id}")
            table[record_id] = {**table[record_id], **record}
        return DmlResult(id=record_id)

    def get(self, entity: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._records.get(entity, {}).get(record_id)
            return dict(record) if record is not None else None

    def all(self, entity: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [dict(r) for r in self._records.get(entity, {}).values()]


class JsonlRecordStore:
    """Append-only JSON Lines store.

    Every write appends one line: ``{"entity", "op", "id", "record"}``.
    Updates append a new version rather than rewriting earlier lines;
    ``load()`` folds versions into the latest state per id.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _append(self, entity: str, op: str, record_id: str, record: Mapping[str, Any]) -> DmlResult:
        line = json.dumps(
            {"entity": entity, "op": op, "id": record_id, "record": {**record, "id": record_id}},
            default=str,
        )
        try:
            with self._lock:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as fh:
                    fh.write(line + "\n")
        except OSError as exc:
            return DmlFailure(id=record_id, error=f"{type(exc).__name__}: {exc}")
        return DmlResult(id=record_id)

    def insert(self, entity: str, record: Mapping[str, Any]) -> DmlResult:
        return self._append(entity, "insert", _record_id(record) or uuid.uuid4().hex, record)

    def update(self, entity: str, record: Mapping[str, Any]) -> DmlResult:
        record_id = _record_id(record)
        if record_id is None:
            return DmlFailure(error=f"Update on {entity} requires an id")
        return self._append(entity, "update", record_id, record)

    def load(self, entity: str) -> List[Dict[str, Any]]:
        """Latest version of every record for ``entity``, in first-write order."""
        if not self.path.exists():
            return []
        latest: Dict[str, Dict[str, Any]] = {}
        with self.path.open("r", encoding="utf-8") as fh:
            for line_number, line in enumerate(fh, start=1):
                if not line.strip():
                    continue
                try:
                    row = json.loads(line)
                except json.JSONDecodeError:
                    logger.warning("Skipping corrupt line %d in %s", line_number, self.path)
                    continue
                if row.get("entity") != entity:
                    continue
                previous = latest.get(row["id"], {})
                latest[row["id"]] = {**previous, **row["record"]}
        return list(latest.values())
