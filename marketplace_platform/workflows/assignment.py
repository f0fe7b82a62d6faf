"""
Freelancer matching and task assignment.

Scores every eligible freelancer with a weighted fitness formula, picks the
best one deterministically, and commits assignments as a single unit with
the freelancer's workload counter.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from threading import Lock
from typing import Callable

from ..errors import (
    AssignmentConflict,
    InvalidStateTransition,
    NoEligibleCandidate,
    ValidationError,
    WorkloadExceeded,
)
from ..models.task import Task, TaskStatus, utcnow
from ..models.user import User, UserRole, UserStatus
from ..storage.base import RecordStore
from . import state_machine
from .unit_of_work import commit_task
from .workload import WorkloadTracker

logger = logging.getLogger(__name__)

WEIGHTS = {
    "performance_score": Decimal("0.4"),
    "skill_match": Decimal("0.3"),
    "availability": Decimal("0.2"),
    "completion_rate": Decimal("0.1"),
}

DEFAULT_COMPLETION_RATE = 50.0


def _clamp(value) -> Decimal:
    amount = Decimal(str(value))
    return max(Decimal("0"), min(Decimal("100"), amount))


@dataclass
class MatchResult:
    """Result of scoring a freelancer against a task."""
    freelancer_id: str
    freelancer_name: str
    score: int  # 0-100
    match_reasons: list[str] = field(default_factory=list)
    performance_score: float = 0.0
    current_active_tasks: int = 0
    max_active_tasks: int = 0

    def to_dict(self) -> dict:
        return {
            "freelancer_id": self.freelancer_id,
            "freelancer_name": self.freelancer_name,
            "score": self.score,
            "match_reasons": list(self.match_reasons),
            "performance_score": self.performance_score,
            "current_active_tasks": self.current_active_tasks,
            "max_active_tasks": self.max_active_tasks,
        }


class AssignmentMatcher:
    """
    Weighted-score freelancer selection.

    Considers:
    - Performance score (40%)
    - Skill match with the task category (30%)
    - Availability under the workload cap (20%)
    - On-time completion rate (10%)

    Equal scores are ordered by lower current workload, then higher
    performance score, then earlier signup, then freelancer ID.
    """

    def __init__(self, users: RecordStore, default_completion_rate: float = DEFAULT_COMPLETION_RATE):
        self.users = users
        self.default_completion_rate = default_completion_rate

    def score_candidate(self, freelancer: User, task: Task) -> tuple[int, list[str]]:
        """Calculate the assignment score for a freelancer-task pair."""
        reasons = []

        performance = _clamp(freelancer.performance_score)

        skill_match = _clamp(100 if freelancer.has_skill(task.category.value) else 0)
        if skill_match:
            reasons.append(f"Skill match: {task.category.value}")

        availability = _clamp(100 if freelancer.has_capacity else 0)
        if availability:
            reasons.append(
                f"Available ({freelancer.current_active_tasks}/{freelancer.max_active_tasks} active)"
            )

        rate = freelancer.on_time_completion_rate
        completion = _clamp(self.default_completion_rate if rate is None else rate)

        total = (
            performance * WEIGHTS["performance_score"]
            + skill_match * WEIGHTS["skill_match"]
            + availability * WEIGHTS["availability"]
            + completion * WEIGHTS["completion_rate"]
        )
        reasons.append(f"Performance score {performance}")
        return int(total.quantize(Decimal("1"), rounding=ROUND_HALF_UP)), reasons

    def eligible_candidates(self, task: Task) -> list[User]:
        """Active freelancers with the task's skill and spare capacity."""
        freelancers = self.users.find_many(role=UserRole.FREELANCER, status=UserStatus.ACTIVE)
        return [
            f for f in freelancers
            if f.has_skill(task.category.value) and f.has_capacity
        ]

    def rank_candidates(self, task: Task, candidates: list[User]) -> list[MatchResult]:
        """Score and sort candidates, best first."""
        scored = []
        for freelancer in candidates:
            score, reasons = self.score_candidate(freelancer, task)
            scored.append((score, freelancer, reasons))

        scored.sort(
            key=lambda item: (
                -item[0],
                item[1].current_active_tasks,
                -item[1].performance_score,
                item[1].created_at,
                item[1].id,
            )
        )

        return [
            MatchResult(
                freelancer_id=freelancer.id,
                freelancer_name=freelancer.name or freelancer.email or freelancer.id,
                score=score,
                match_reasons=reasons,
                performance_score=freelancer.performance_score,
                current_active_tasks=freelancer.current_active_tasks,
                max_active_tasks=freelancer.max_active_tasks,
            )
            for score, freelancer, reasons in scored
        ]

    def find_best_freelancer(self, task: Task) -> MatchResult:
        """
        Pick the best freelancer for a task.

        Raises:
            NoEligibleCandidate: if no active freelancer has the skill and capacity
        """
        ranked = self.rank_candidates(task, self.eligible_candidates(task))
        if not ranked:
            logger.warning("No available freelancers found for task type: %s", task.category.value)
            raise NoEligibleCandidate(task.id, task.category.value)

        logger.info(
            "Top candidates for task %s: %s",
            task.id,
            ", ".join(f"{m.freelancer_id}={m.score}" for m in ranked[:3]),
        )
        return ranked[0]

    def recommendations(self, task: Task, limit: int = 5) -> list[MatchResult]:
        """Ranked candidates for an admin choosing manually."""
        return self.rank_candidates(task, self.eligible_candidates(task))[:limit]


class TaskAssigner:
    """Commits assignments together with the freelancer workload counter."""

    def __init__(
        self,
        tasks: RecordStore,
        workload: WorkloadTracker,
        matcher: AssignmentMatcher,
        clock: Callable = utcnow,
    ):
        self.tasks = tasks
        self.workload = workload
        self.matcher = matcher
        self.clock = clock
        self._locks: dict[str, Lock] = {}
        self._locks_guard = Lock()

    def _lock_for(self, task_id: str) -> Lock:
        with self._locks_guard:
            return self._locks.setdefault(task_id, Lock())

    def _ensure_current(self, before: Task) -> None:
        """Raise AssignmentConflict if the stored task moved on since ``before`` was read."""
        stored = self.tasks.get(before.id)
        if (stored.status, stored.freelancer_id, stored.version) != (
            before.status,
            before.freelancer_id,
            before.version,
        ):
            logger.warning("Lost assignment race on task %s", before.id)
            raise AssignmentConflict(before.id, before.status, before.freelancer_id)

    def _claim(self, before: Task, after: Task, freelancer_id: str) -> Task:
        """Reserve the freelancer's slot and commit the task in one unit.

        The task pre-state is checked before the freelancer's capacity, so a
        caller that lost the race sees AssignmentConflict rather than the
        winner's workload.
        """
        with self._lock_for(before.id):
            self._ensure_current(before)
            try:
                with self.workload.reserve(freelancer_id):
                    committed = commit_task(self.tasks, before, after)
                    if committed is None:
                        logger.warning("Lost assignment race on task %s", before.id)
                        raise AssignmentConflict(before.id, before.status, before.freelancer_id)
            except WorkloadExceeded:
                # A write outside this assigner may have taken the task meanwhile
                self._ensure_current(before)
                raise
        return committed

    def assign_task(self, task: Task, freelancer_id: str, assigned_by: str) -> Task:
        """
        Assign a task to a specific freelancer.

        Args:
            task: Task as last read by the caller
            freelancer_id: Freelancer to assign
            assigned_by: User ID of whoever made the assignment

        Returns:
            The committed task

        Raises:
            InvalidStateTransition: task cannot move to assigned
            WorkloadExceeded: freelancer inactive or at capacity
            AssignmentConflict: task changed since ``task`` was read
        """
        now = self.clock()
        assigned = state_machine.transition(task, TaskStatus.ASSIGNED, now=now)
        assigned = assigned.evolve(freelancer_id=freelancer_id, assigned_by=assigned_by)

        committed = self._claim(task, assigned, freelancer_id)
        logger.info("Task %s assigned to freelancer %s by %s", task.id, freelancer_id, assigned_by)
        return committed

    def auto_assign_task(self, task: Task, assigned_by: str) -> Task:
        """Assign the best-matched freelancer; NoEligibleCandidate propagates."""
        best = self.matcher.find_best_freelancer(task)
        return self.assign_task(task, best.freelancer_id, assigned_by)

    def reassign_task(
        self,
        task: Task,
        new_freelancer_id: str,
        reason: str,
        assigned_by: str,
    ) -> Task:
        """
        Move a task from its current freelancer to another one.

        Works from assigned and in_progress (the task is released and
        reassigned in one write) and from qa_review. The previous
        freelancer's slot is given back only once the new assignment has
        committed.
        """
        previous_id = task.freelancer_id
        if previous_id is None:
            raise InvalidStateTransition(task.status, TaskStatus.ASSIGNED)
        if new_freelancer_id == previous_id:
            raise ValidationError(
                "freelancer_id", new_freelancer_id, "task is already assigned to this freelancer"
            )

        now = self.clock()
        if task.status in state_machine.RELEASABLE:
            reopened = state_machine.release(task, now=now)
        else:
            reopened = task
        assigned = state_machine.transition(reopened, TaskStatus.ASSIGNED, now=now)

        count = task.reassignment_count + 1
        notes = list(task.admin_notes)
        if reason:
            notes.append(f"Reassignment {count}: {reason}")
        assigned = assigned.evolve(
            freelancer_id=new_freelancer_id,
            assigned_by=assigned_by,
            reassignment_count=count,
            admin_notes=notes,
        )

        committed = self._claim(task, assigned, new_freelancer_id)
        self.workload.release(previous_id)

        logger.info(
            "Task %s reassigned from %s to %s", task.id, previous_id, new_freelancer_id
        )
        return committed
