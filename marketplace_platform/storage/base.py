"""Record store contract shared by the in-memory and JSON-file stores."""

import copy
from abc import ABC, abstractmethod
from collections.abc import Collection
from dataclasses import replace
from threading import RLock
from typing import Any, Generic, Optional, TypeVar

from ..errors import NotFound, ValidationError

R = TypeVar("R")


def _matches(record: Any, filters: dict) -> bool:
    for name, wanted in filters.items():
        actual = getattr(record, name)
        if isinstance(wanted, Collection) and not isinstance(wanted, str):
            if actual not in wanted:
                return False
        elif actual != wanted:
            return False
    return True


class RecordStore(ABC, Generic[R]):
    """Single-record atomic storage for one record type.

    ``update`` is a compare-and-set: when ``expected`` is given, the write
    applies only if every expected field still holds that value, otherwise
    nothing is written and ``None`` is returned. Records with a ``version``
    field get it bumped on every update.
    """

    resource = "record"

    def __init__(self):
        self._lock = RLock()

    @abstractmethod
    def _get(self, record_id: str) -> Optional[R]:
        ...

    @abstractmethod
    def _put(self, record: R) -> None:
        ...

    @abstractmethod
    def _all(self) -> list[R]:
        ...

    def find_by_id(self, record_id: str) -> Optional[R]:
        """Get a record by ID."""
        with self._lock:
            record = self._get(record_id)
        return copy.deepcopy(record)

    def get(self, record_id: str) -> R:
        """Get a record by ID or raise NotFound."""
        record = self.find_by_id(record_id)
        if record is None:
            raise NotFound(self.resource, record_id)
        return record

    def find_many(self, **filters) -> list[R]:
        """List records whose fields equal (or are contained in) the filters."""
        with self._lock:
            records = [r for r in self._all() if _matches(r, filters)]
        return copy.deepcopy(records)

    def create(self, record: R) -> R:
        """Insert a new record."""
        if hasattr(record, "validate"):
            record.validate()
        with self._lock:
            if self._get(record.id) is not None:
                raise ValidationError("id", record.id, f"{self.resource} already exists")
            self._put(copy.deepcopy(record))
        return copy.deepcopy(record)

    def update(
        self,
        record_id: str,
        fields: dict,
        expected: Optional[dict] = None,
    ) -> Optional[R]:
        """Apply ``fields`` to a record, guarded by ``expected``."""
        with self._lock:
            current = self._get(record_id)
            if current is None:
                raise NotFound(self.resource, record_id)
            if expected and not _matches(current, expected):
                return None

            changes = dict(fields)
            if hasattr(current, "version"):
                changes["version"] = current.version + 1
            updated = replace(current, **changes)
            if hasattr(updated, "validate"):
                updated.validate()
            self._put(updated)
        return copy.deepcopy(updated)
