"""Persistence collaborators for tasks, users, submissions and payments."""

from dataclasses import dataclass
from pathlib import Path

from ..models import Payment, Submission, Task, User
from .base import RecordStore
from .json_store import JsonFileStore
from .memory import InMemoryStore


@dataclass
class Stores:
    """The record stores the workflow engine reads and writes."""

    tasks: RecordStore
    users: RecordStore
    submissions: RecordStore
    payments: RecordStore

    @classmethod
    def in_memory(cls) -> "Stores":
        return cls(
            tasks=InMemoryStore("task"),
            users=InMemoryStore("user"),
            submissions=InMemoryStore("submission"),
            payments=InMemoryStore("payment"),
        )

    @classmethod
    def json_files(cls, data_dir: Path) -> "Stores":
        data_dir = Path(data_dir)
        return cls(
            tasks=JsonFileStore(data_dir / "tasks.json", Task, "task"),
            users=JsonFileStore(data_dir / "users.json", User, "user"),
            submissions=JsonFileStore(data_dir / "submissions.json", Submission, "submission"),
            payments=JsonFileStore(data_dir / "payments.json", Payment, "payment"),
        )


__all__ = ["RecordStore", "InMemoryStore", "JsonFileStore", "Stores"]
