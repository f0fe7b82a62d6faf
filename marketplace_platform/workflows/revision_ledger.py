"""Revision accounting: bounded rework with deadline extensions."""

from datetime import datetime, timedelta
from typing import Optional

from ..errors import RevisionLimitExceeded, ValidationError
from ..models.task import Task, TaskStatus
from . import state_machine

DEFAULT_EXTENSION = timedelta(hours=48)


def can_request_revision(task: Task) -> bool:
    """Check if the task still has revisions left."""
    return task.revisions_used < task.revision_limit


def increment_revision(
    task: Task,
    now: Optional[datetime] = None,
    extension: timedelta = DEFAULT_EXTENSION,
) -> Task:
    """Use one revision and send the task back to work.

    The counter, the deadline (pushed forward from its current value, not
    from now) and the status change together in the returned copy. On any
    failure the input task is untouched.
    """
    if not can_request_revision(task):
        raise RevisionLimitExceeded(task.id, task.revisions_used, task.revision_limit)
    if task.deadline is None:
        raise ValidationError("deadline", None, "task has no deadline to extend")

    resumed = task
    if task.status != TaskStatus.IN_PROGRESS:
        resumed = state_machine.transition(task, TaskStatus.IN_PROGRESS, now=now)

    return resumed.evolve(
        revisions_used=task.revisions_used + 1,
        deadline=task.deadline + extension,
    )
