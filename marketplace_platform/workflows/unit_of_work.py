"""Compare-and-set commit of a task change."""

from typing import Optional

from ..models.task import Task
from ..storage.base import RecordStore

# Fields a workflow step may change on an existing task
TASK_WRITE_FIELDS = (
    "status",
    "freelancer_id",
    "assigned_by",
    "deadline",
    "revisions_used",
    "reassignment_count",
    "admin_notes",
    "workflow_timestamps",
    "updated_at",
)


def commit_task(tasks: RecordStore, before: Task, after: Task) -> Optional[Task]:
    """Write ``after`` if the stored task still matches ``before``.

    The guard covers status, freelancer and version, so any interleaved
    write makes this return ``None`` instead of overwriting it.
    """
    return tasks.update(
        before.id,
        {name: getattr(after, name) for name in TASK_WRITE_FIELDS},
        expected={
            "status": before.status,
            "freelancer_id": before.freelancer_id,
            "version": before.version,
        },
    )
