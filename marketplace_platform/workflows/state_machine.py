"""Task lifecycle state machine.

The transition table maps every ``TaskStatus`` to the frozen set of its legal
successors. Completeness over the enum is checked when this module is
imported, so adding a status without wiring it in fails immediately.
"""

from datetime import datetime
from types import MappingProxyType
from typing import Optional

from ..errors import InvalidStateTransition
from ..models.task import Task, TaskStatus, utcnow

S = TaskStatus

TRANSITIONS = MappingProxyType({
    S.SUBMITTED: frozenset({S.UNDER_REVIEW, S.CANCELLED}),
    S.UNDER_REVIEW: frozenset({S.ASSIGNED, S.CANCELLED}),
    S.ASSIGNED: frozenset({S.IN_PROGRESS, S.CANCELLED}),
    S.IN_PROGRESS: frozenset({S.SUBMITTED_WORK, S.CANCELLED}),
    S.SUBMITTED_WORK: frozenset({S.QA_REVIEW}),
    S.QA_REVIEW: frozenset({S.DELIVERED, S.REVISION_REQUESTED, S.ASSIGNED}),  # assigned = reassignment
    S.REVISION_REQUESTED: frozenset({S.IN_PROGRESS}),
    S.DELIVERED: frozenset({S.COMPLETED, S.CLIENT_REVISION, S.DISPUTED}),
    S.CLIENT_REVISION: frozenset({S.IN_PROGRESS}),
    S.DISPUTED: frozenset({S.QA_REVIEW, S.CANCELLED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
})

# A freelancer giving a task back reopens it for assignment
RELEASABLE = frozenset({S.ASSIGNED, S.IN_PROGRESS})


def _check_table() -> None:
    missing = set(TaskStatus) - set(TRANSITIONS)
    if missing:
        raise RuntimeError(
            "Transition table missing states: " + ", ".join(sorted(s.value for s in missing))
        )
    for status in TaskStatus:
        if status.is_terminal and TRANSITIONS[status]:
            raise RuntimeError(f"Terminal state {status.value} has outgoing transitions")


_check_table()


def can_transition(current: TaskStatus, requested: TaskStatus) -> bool:
    """Whether ``requested`` is a legal successor of ``current``."""
    return requested in TRANSITIONS.get(current, frozenset())


def allowed_transitions(current: TaskStatus) -> frozenset:
    return TRANSITIONS.get(current, frozenset())


def _stamp(timestamps: dict, status: TaskStatus, now: datetime) -> dict:
    """Record the milestone for ``status`` unless it is already set."""
    stamped = dict(timestamps)
    milestone = status.milestone
    if milestone and milestone not in stamped:
        stamped[milestone] = now
    return stamped


def transition(task: Task, requested: TaskStatus, now: Optional[datetime] = None) -> Task:
    """Return a copy of ``task`` moved to ``requested``.

    Raises InvalidStateTransition when the table does not allow the move; the
    input task is never modified. Leaving the assigned statuses clears the
    freelancer. Persistence and workload bookkeeping are the caller's job.
    """
    if not can_transition(task.status, requested):
        raise InvalidStateTransition(task.status, requested)

    now = now or utcnow()
    freelancer_id = task.freelancer_id if requested.implies_assignment else None
    return task.evolve(
        status=requested,
        freelancer_id=freelancer_id,
        assigned_by=task.assigned_by if freelancer_id else None,
        workflow_timestamps=_stamp(task.workflow_timestamps, requested, now),
        updated_at=now,
    )


def release(task: Task, now: Optional[datetime] = None) -> Task:
    """Return an assigned or in-progress task to the assignment pool."""
    if task.status not in RELEASABLE:
        raise InvalidStateTransition(task.status, TaskStatus.UNDER_REVIEW)

    now = now or utcnow()
    return task.evolve(
        status=TaskStatus.UNDER_REVIEW,
        freelancer_id=None,
        assigned_by=None,
        updated_at=now,
    )
