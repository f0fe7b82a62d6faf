"""Thread-safe in-process record store."""

from typing import Optional

from .base import R, RecordStore


class InMemoryStore(RecordStore[R]):
    """Keeps records in a dict; used by tests and embedding callers."""

    def __init__(self, resource: str = "record"):
        super().__init__()
        self.resource = resource
        self._records: dict[str, R] = {}

    def _get(self, record_id: str) -> Optional[R]:
        return self._records.get(record_id)

    def _put(self, record: R) -> None:
        self._records[record.id] = record

    def _all(self) -> list[R]:
        return list(self._records.values())
