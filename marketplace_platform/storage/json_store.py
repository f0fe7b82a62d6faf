"""JSON-file record store backing the command-line interface."""

import json
import os
import tempfile
from pathlib import Path
from typing import Optional

from .base import R, RecordStore


class JsonFileStore(RecordStore[R]):
    """Stores one record type as a JSON list in ``path``.

    Records must provide ``to_dict`` and ``from_dict``. Writes go through a
    temporary file and ``os.replace`` so a crash never leaves half a file.

    Every read goes to disk, so compare-and-set sees writes made through
    another store on the same file. The guard itself is the in-process lock:
    one data directory supports a single writing process at a time.
    """

    def __init__(self, path: Path, record_cls, resource: str = "record"):
        super().__init__()
        self.path = Path(path)
        self.record_cls = record_cls
        self.resource = resource
        self._ensure_data_file()

    def _ensure_data_file(self) -> None:
        """Ensure data directory and file exist."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            self._save([])

    def _load(self) -> list[R]:
        """Load all records from storage."""
        with open(self.path, "r") as f:
            data = json.load(f)
        return [self.record_cls.from_dict(item) for item in data]

    def _save(self, records: list[R]) -> None:
        """Save all records to storage."""
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump([r.to_dict() for r in records], f, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def _get(self, record_id: str) -> Optional[R]:
        for record in self._load():
            if record.id == record_id:
                return record
        return None

    def _put(self, record: R) -> None:
        records = self._load()
        if any(r.id == record.id for r in records):
            records = [record if r.id == record.id else r for r in records]
        else:
            records.append(record)
        self._save(records)

    def _all(self) -> list[R]:
        return self._load()
