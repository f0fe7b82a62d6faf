"""Workflow orchestrator sequencing every caller action on a task."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Optional

from ..config import PlatformSettings
from ..errors import (
    AssignmentConflict,
    AuthorizationError,
    ConcurrentModification,
    InvalidStateTransition,
    ValidationError,
)
from ..models.effects import (
    AuditEntry,
    NotificationPriority,
    NotificationRequest,
    NotificationType,
    RealtimeEvent,
)
from ..models.payment import Payment, PaymentStatus
from ..models.submission import ClientReviewStatus, QAStatus, Submission, SubmissionType
from ..models.task import ACTIVE_STATUSES, Task, TaskCategory, TaskPriority, TaskStatus, to_money, utcnow
from ..models.user import Actor, User, UserRole, UserStatus
from ..schemas import TASK_CREATE_SCHEMA, validate_payload
from ..storage import Stores
from . import revision_ledger, state_machine
from .assignment import AssignmentMatcher, MatchResult, TaskAssigner
from .fee_calculator import compute_fees
from .side_effects import EffectBatch, EffectDispatcher, EffectOutcome
from .unit_of_work import commit_task
from .workload import WorkloadTracker

logger = logging.getLogger(__name__)


@dataclass
class OperationResult:
    """Committed task plus the outcome of every side effect sent for it."""
    task: Task
    effects: list[EffectOutcome] = field(default_factory=list)
    payment: Optional[Payment] = None
    submission: Optional[Submission] = None

    @property
    def effects_ok(self) -> bool:
        return all(outcome.ok for outcome in self.effects)


def _parse_deadline(raw: str, now: datetime) -> datetime:
    try:
        deadline = datetime.fromisoformat(raw)
    except ValueError:
        raise ValidationError("deadline", raw, "must be an ISO 8601 date or datetime") from None
    if deadline.tzinfo is None:
        deadline = deadline.replace(tzinfo=timezone.utc)
    if deadline <= now:
        raise ValidationError("deadline", raw, "must be in the future")
    return deadline


class WorkflowOrchestrator:
    """
    Entry point for every task workflow action.

    Each action checks the actor's role and ownership, computes the next
    task value through the state machine, revision ledger and fee
    calculator, commits it with one compare-and-set write, and then sends
    notifications, realtime events and audit entries.
    """

    def __init__(
        self,
        stores: Stores,
        settings: Optional[PlatformSettings] = None,
        dispatcher: Optional[EffectDispatcher] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.stores = stores
        self.settings = settings or PlatformSettings()
        self.dispatcher = dispatcher or EffectDispatcher()
        self.clock = clock
        self.workload = WorkloadTracker(stores.users)
        self.matcher = AssignmentMatcher(
            stores.users, default_completion_rate=self.settings.default_completion_rate
        )
        self.assigner = TaskAssigner(stores.tasks, self.workload, self.matcher, clock=clock)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_task(self, task_id: str) -> Task:
        return self.stores.tasks.get(task_id)

    def get_user(self, user_id: str) -> User:
        return self.stores.users.get(user_id)

    def list_tasks(
        self,
        status: Optional[TaskStatus] = None,
        client_id: Optional[str] = None,
        freelancer_id: Optional[str] = None,
    ) -> list[Task]:
        """List tasks with optional filtering, newest first."""
        filters = {}
        if status:
            filters["status"] = status
        if client_id:
            filters["client_id"] = client_id
        if freelancer_id:
            filters["freelancer_id"] = freelancer_id
        tasks = self.stores.tasks.find_many(**filters)
        return sorted(tasks, key=lambda t: t.created_at, reverse=True)

    def submissions_for(self, task_id: str) -> list[Submission]:
        submissions = self.stores.submissions.find_many(task_id=task_id)
        return sorted(submissions, key=lambda s: s.submitted_at)

    def recommendations(self, task_id: str, limit: int = 5) -> list[MatchResult]:
        return self.matcher.recommendations(self.get_task(task_id), limit=limit)

    def register_user(self, user: User) -> User:
        """Add a user; freelancers start with no active tasks."""
        if user.is_freelancer:
            user.current_active_tasks = 0
        return self.stores.users.create(user)

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    @staticmethod
    def _require_role(actor: Actor, action: str, *roles: UserRole) -> None:
        if actor.role not in roles:
            allowed = " or ".join(r.value for r in roles)
            raise AuthorizationError(actor.id, action, f"Only {allowed} users can {action}")

    @staticmethod
    def _require_owner(actor: Actor, task: Task, action: str, allow_admin: bool = False) -> None:
        if allow_admin and actor.is_admin:
            return
        if actor.role != UserRole.CLIENT or task.client_id != actor.id:
            raise AuthorizationError(actor.id, action, f"Task {task.id} does not belong to you")

    @staticmethod
    def _require_assignee(actor: Actor, task: Task, action: str) -> None:
        if actor.role != UserRole.FREELANCER or task.freelancer_id != actor.id:
            raise AuthorizationError(actor.id, action, f"Task {task.id} is not assigned to you")

    @staticmethod
    def _require_status(task: Task, status: TaskStatus, requested: TaskStatus) -> None:
        if task.status != status:
            raise InvalidStateTransition(task.status, requested)

    # ------------------------------------------------------------------
    # Commit and effects
    # ------------------------------------------------------------------

    def _commit(self, before: Task, after: Task) -> Task:
        committed = commit_task(self.stores.tasks, before, after)
        if committed is None:
            logger.warning("Concurrent write on task %s (version %d)", before.id, before.version)
            raise ConcurrentModification(before.id, before.version)
        logger.info("Task %s: %s -> %s", before.id, before.status.value, committed.status.value)
        return committed

    def _notify(self, batch: EffectBatch, recipient_id: Optional[str], kind: NotificationType,
                title: str, message: str, task: Task) -> None:
        if not recipient_id:
            return
        batch.notify(NotificationRequest(
            recipient_id=recipient_id,
            type=kind,
            title=title,
            message=message,
            related_task_id=task.id,
            priority=NotificationPriority(task.priority.notification_priority),
        ))

    def _notify_admins(self, batch: EffectBatch, kind: NotificationType, title: str,
                       message: str, task: Task) -> None:
        for admin in self.stores.users.find_many(role=UserRole.ADMIN, status=UserStatus.ACTIVE):
            self._notify(batch, admin.id, kind, title, message, task)

    @staticmethod
    def _event(batch: EffectBatch, name: str, task: Task, users=(), role: Optional[str] = None) -> None:
        batch.emit(RealtimeEvent(
            target_users=[u for u in users if u],
            target_role=role,
            event_name=name,
            payload={"task_id": task.id, "status": task.status.value},
        ))

    @staticmethod
    def _audit(batch: EffectBatch, actor: Actor, action: str, before: Optional[Task], after: Task,
               **extra) -> None:
        changes = {"status": {"from": before.status.value if before else None, "to": after.status.value}}
        if before is None or before.freelancer_id != after.freelancer_id:
            changes["freelancer_id"] = {
                "from": before.freelancer_id if before else None,
                "to": after.freelancer_id,
            }
        changes.update(extra)
        batch.log(AuditEntry(
            actor_id=actor.id,
            action=action,
            resource_id=after.id,
            changes=changes,
            request_metadata={"role": actor.role.value},
        ))

    def _finish(self, batch: EffectBatch, task: Task, **extras) -> OperationResult:
        return OperationResult(task=task, effects=self.dispatcher.dispatch(batch), **extras)

    # ------------------------------------------------------------------
    # Client actions
    # ------------------------------------------------------------------

    def create_task(self, actor: Actor, payload: dict) -> OperationResult:
        """Post a new task in ``submitted`` from a JSON-like payload."""
        self._require_role(actor, "create tasks", UserRole.CLIENT)
        validate_payload(payload, TASK_CREATE_SCHEMA)

        now = self.clock()
        task = Task(
            title=payload["title"].strip(),
            description=payload["description"].strip(),
            category=TaskCategory.parse(payload["category"]),
            priority=TaskPriority(payload.get("priority", "medium")),
            client_id=actor.id,
            budget=to_money(payload["budget"]),
            deadline=_parse_deadline(payload["deadline"], now),
            revision_limit=payload.get("revision_limit", self.settings.default_revision_limit),
            created_at=now,
            updated_at=now,
        )
        task = self.stores.tasks.create(task)
        logger.info("Task %s created by client %s", task.id, actor.id)

        batch = EffectBatch()
        self._notify_admins(
            batch, NotificationType.TASK_SUBMITTED, "New Task Submitted",
            f'A new task "{task.title}" has been submitted by {actor.id}', task,
        )
        self._event(batch, "task:created", task, role=UserRole.ADMIN.value)
        self._audit(batch, actor, "create_task", None, task, budget=str(task.budget))
        return self._finish(batch, task)

    def approve_delivery(self, actor: Actor, task_id: str, feedback: str = "") -> OperationResult:
        """Client approves delivered work: task completes and payment is escrowed."""
        task = self.get_task(task_id)
        self._require_owner(actor, task, "approve delivery")

        now = self.clock()
        completed = state_machine.transition(task, TaskStatus.COMPLETED, now=now)
        split = compute_fees(task.budget, self.settings.platform_commission_pct)
        committed = self._commit(task, completed)

        payment = self.stores.payments.create(Payment(
            task_id=task.id,
            client_id=task.client_id,
            freelancer_id=task.freelancer_id,
            task_budget=split.budget,
            platform_commission_pct=split.commission_pct,
            platform_fee=split.fee,
            freelancer_payout=split.payout,
            created_at=now,
        ))
        self.workload.release(task.freelancer_id)
        self._review_latest(task.id, client_review_status=ClientReviewStatus.APPROVED,
                            feedback=feedback, reviewed_at=now)
        logger.info("Payment %s escrowed for task %s: fee=%s payout=%s",
                    payment.id, task.id, payment.platform_fee, payment.freelancer_payout)

        batch = EffectBatch()
        self._notify(
            batch, task.freelancer_id, NotificationType.TASK_APPROVED, "Task Approved",
            f'"{task.title}" was approved; ${payment.freelancer_payout} is held in escrow', committed,
        )
        self._event(batch, "task:completed", committed, users=[task.client_id, task.freelancer_id])
        self._audit(batch, actor, "approve_delivery", task, committed, payment_id=payment.id)
        return self._finish(batch, committed, payment=payment)

    def request_revision(self, actor: Actor, task_id: str, feedback: str = "") -> OperationResult:
        """Client sends delivered work back, using one revision."""
        task = self.get_task(task_id)
        self._require_owner(actor, task, "request revisions")
        self._require_status(task, TaskStatus.DELIVERED, TaskStatus.CLIENT_REVISION)

        now = self.clock()
        extension = timedelta(hours=self.settings.revision_deadline_extension_hours)
        reopened = state_machine.transition(task, TaskStatus.CLIENT_REVISION, now=now)
        revised = revision_ledger.increment_revision(reopened, now=now, extension=extension)
        committed = self._commit(task, revised)
        self._review_latest(task.id, client_review_status=ClientReviewStatus.REVISION_REQUESTED,
                            feedback=feedback, reviewed_at=now)

        batch = EffectBatch()
        self._notify(
            batch, task.freelancer_id, NotificationType.REVISION_REQUESTED, "Revision Requested",
            f'Client requested changes to "{task.title}" '
            f"({committed.revisions_used}/{committed.revision_limit} revisions used)", committed,
        )
        self._notify(
            batch, task.client_id, NotificationType.REVISION_REQUESTED, "Revision in Progress",
            f'Your revision request for "{task.title}" is being worked on', committed,
        )
        self._event(batch, "task:revision", committed, users=[task.freelancer_id])
        self._audit(batch, actor, "request_revision", task, committed,
                    revisions_used=committed.revisions_used)
        return self._finish(batch, committed)

    def raise_dispute(self, actor: Actor, task_id: str, reason: str) -> OperationResult:
        task = self.get_task(task_id)
        self._require_owner(actor, task, "dispute deliveries")
        if not reason.strip():
            raise ValidationError("reason", reason, "a dispute needs a reason")

        disputed = state_machine.transition(task, TaskStatus.DISPUTED, now=self.clock())
        disputed = disputed.evolve(admin_notes=disputed.admin_notes + [f"Dispute: {reason}"])
        committed = self._commit(task, disputed)

        batch = EffectBatch()
        self._notify_admins(
            batch, NotificationType.DISPUTE_RAISED, "Dispute Raised",
            f'Client disputed delivery of "{task.title}": {reason}', committed,
        )
        self._notify(
            batch, task.freelancer_id, NotificationType.DISPUTE_RAISED, "Dispute Raised",
            f'The client disputed your delivery of "{task.title}"', committed,
        )
        self._audit(batch, actor, "raise_dispute", task, committed, reason=reason)
        return self._finish(batch, committed)

    # ------------------------------------------------------------------
    # Admin actions
    # ------------------------------------------------------------------

    def admin_review(self, actor: Actor, task_id: str, approve: bool, notes: str = "") -> OperationResult:
        """Approve a new task for assignment or reject it."""
        self._require_role(actor, "review tasks", UserRole.ADMIN)
        task = self.get_task(task_id)
        self._require_status(
            task, TaskStatus.SUBMITTED,
            TaskStatus.UNDER_REVIEW if approve else TaskStatus.CANCELLED,
        )

        target = TaskStatus.UNDER_REVIEW if approve else TaskStatus.CANCELLED
        reviewed = state_machine.transition(task, target, now=self.clock())
        if notes:
            reviewed = reviewed.evolve(admin_notes=reviewed.admin_notes + [notes])
        committed = self._commit(task, reviewed)

        batch = EffectBatch()
        if approve:
            self._notify(batch, task.client_id, NotificationType.TASK_APPROVED, "Task Approved",
                         f'"{task.title}" was approved and is open for assignment', committed)
            self._event(batch, "task:available", committed, role=UserRole.FREELANCER.value)
        else:
            self._notify(batch, task.client_id, NotificationType.TASK_REJECTED, "Task Rejected",
                         f'"{task.title}" was rejected' + (f": {notes}" if notes else ""), committed)
        self._audit(batch, actor, "approve_task" if approve else "reject_task", task, committed)
        return self._finish(batch, committed)

    def _assignment_effects(self, batch: EffectBatch, actor: Actor, action: str,
                            before: Task, after: Task) -> None:
        self._notify(
            batch, after.freelancer_id, NotificationType.TASK_ASSIGNED, "New Task Assigned",
            f"You have been assigned a new task: {after.title}", after,
        )
        self._notify(
            batch, after.client_id, NotificationType.TASK_ACCEPTED, "Freelancer Assigned",
            f'A freelancer is now working on "{after.title}"', after,
        )
        self._event(batch, "task:assigned", after, users=[after.freelancer_id, after.client_id])
        self._audit(batch, actor, action, before, after)

    def admin_assign(self, actor: Actor, task_id: str, freelancer_id: str) -> OperationResult:
        self._require_role(actor, "assign tasks", UserRole.ADMIN)
        task = self.get_task(task_id)
        committed = self.assigner.assign_task(task, freelancer_id, assigned_by=actor.id)

        batch = EffectBatch()
        self._assignment_effects(batch, actor, "assign_task", task, committed)
        return self._finish(batch, committed)

    def auto_assign(self, actor: Actor, task_id: str) -> OperationResult:
        """Assign the best-scoring eligible freelancer."""
        self._require_role(actor, "assign tasks", UserRole.ADMIN)
        task = self.get_task(task_id)
        committed = self.assigner.auto_assign_task(task, assigned_by=actor.id)

        batch = EffectBatch()
        self._assignment_effects(batch, actor, "auto_assign_task", task, committed)
        return self._finish(batch, committed)

    def reassign(self, actor: Actor, task_id: str, freelancer_id: str, reason: str) -> OperationResult:
        self._require_role(actor, "reassign tasks", UserRole.ADMIN)
        task = self.get_task(task_id)
        committed = self.assigner.reassign_task(task, freelancer_id, reason, assigned_by=actor.id)

        batch = EffectBatch()
        self._notify(
            batch, task.freelancer_id, NotificationType.TASK_RELEASED, "Task Reassigned",
            f'"{task.title}" has been reassigned' + (f": {reason}" if reason else ""), committed,
        )
        self._assignment_effects(batch, actor, "reassign_task", task, committed)
        return self._finish(batch, committed)

    def qa_review(self, actor: Actor, task_id: str, approve: bool, feedback: str = "") -> OperationResult:
        """Internal quality check: deliver to the client or send back for rework."""
        self._require_role(actor, "review submissions", UserRole.ADMIN)
        task = self.get_task(task_id)

        now = self.clock()
        target = TaskStatus.DELIVERED if approve else TaskStatus.REVISION_REQUESTED
        reviewed = state_machine.transition(task, target, now=now)
        committed = self._commit(task, reviewed)
        self._review_latest(task.id, qa_status=QAStatus.APPROVED if approve else QAStatus.REJECTED,
                            feedback=feedback, reviewed_at=now)

        batch = EffectBatch()
        if approve:
            self._notify(batch, task.client_id, NotificationType.CLIENT_APPROVAL, "Task Delivered",
                         f'Your task "{task.title}" has been completed and is ready for review', committed)
            self._notify(batch, task.freelancer_id, NotificationType.QA_FEEDBACK, "Submission Approved",
                         f'Your work on "{task.title}" passed QA and was delivered', committed)
            self._event(batch, "task:delivered", committed, users=[task.client_id, task.freelancer_id])
        else:
            self._notify(batch, task.freelancer_id, NotificationType.QA_FEEDBACK, "Revision Requested",
                         f'QA requested changes to "{task.title}"' + (f": {feedback}" if feedback else ""),
                         committed)
            self._event(batch, "task:qa_rejected", committed, users=[task.freelancer_id])
        self._audit(batch, actor, "qa_review", task, committed, approved=approve)
        return self._finish(batch, committed)

    def resolve_dispute(self, actor: Actor, task_id: str, rework: bool, notes: str = "") -> OperationResult:
        """Send a disputed task back to QA, or cancel it."""
        self._require_role(actor, "resolve disputes", UserRole.ADMIN)
        task = self.get_task(task_id)

        target = TaskStatus.QA_REVIEW if rework else TaskStatus.CANCELLED
        resolved = state_machine.transition(task, target, now=self.clock())
        if notes:
            resolved = resolved.evolve(admin_notes=resolved.admin_notes + [f"Resolution: {notes}"])
        committed = self._commit(task, resolved)
        if not rework:
            self.workload.release(task.freelancer_id)

        batch = EffectBatch()
        outcome = "returned to QA" if rework else "cancelled"
        for recipient in (task.client_id, task.freelancer_id):
            self._notify(batch, recipient, NotificationType.DISPUTE_RESOLVED, "Dispute Resolved",
                         f'The dispute on "{task.title}" was resolved: task {outcome}', committed)
        self._audit(batch, actor, "resolve_dispute", task, committed, rework=rework)
        return self._finish(batch, committed)

    def release_payment(self, actor: Actor, payment_id: str) -> OperationResult:
        """Release escrowed funds to the freelancer."""
        self._require_role(actor, "release payments", UserRole.ADMIN)
        payment = self.stores.payments.get(payment_id)
        if not payment.release(now=self.clock()):
            raise ValidationError("status", payment.status.value, "payment is not held in escrow")

        released = self.stores.payments.update(
            payment.id,
            {"status": payment.status, "released_at": payment.released_at},
            expected={"status": PaymentStatus.ESCROWED},
        )
        if released is None:
            raise ValidationError("status", payment_id, "payment was released concurrently")
        logger.info("Payment %s released to freelancer %s", payment.id, payment.freelancer_id)

        task = self.get_task(payment.task_id)
        batch = EffectBatch()
        self._notify(batch, payment.freelancer_id, NotificationType.PAYMENT_RELEASED, "Payment Released",
                     f"You received ${payment.freelancer_payout} for task completion", task)
        batch.log(AuditEntry(
            actor_id=actor.id,
            action="release_payment",
            resource="payment",
            resource_id=payment.id,
            changes={"status": {"from": PaymentStatus.ESCROWED.value, "to": released.status.value}},
            request_metadata={"role": actor.role.value},
        ))
        return self._finish(batch, task, payment=released)

    # ------------------------------------------------------------------
    # Freelancer actions
    # ------------------------------------------------------------------

    def accept_task(self, actor: Actor, task_id: str) -> OperationResult:
        """Freelancer claims an open task for themselves."""
        self._require_role(actor, "accept tasks", UserRole.FREELANCER)
        task = self.get_task(task_id)
        if task.freelancer_id is not None:
            raise AssignmentConflict(task.id, TaskStatus.UNDER_REVIEW)

        committed = self.assigner.assign_task(task, actor.id, assigned_by=actor.id)

        batch = EffectBatch()
        self._notify(batch, task.client_id, NotificationType.TASK_ACCEPTED, "Task Accepted",
                     f'A freelancer accepted "{task.title}"', committed)
        self._event(batch, "task:accepted", committed, users=[task.client_id], role=UserRole.ADMIN.value)
        self._audit(batch, actor, "accept_task", task, committed)
        return self._finish(batch, committed)

    def start_task(self, actor: Actor, task_id: str) -> OperationResult:
        task = self.get_task(task_id)
        self._require_assignee(actor, task, "start work")

        started = state_machine.transition(task, TaskStatus.IN_PROGRESS, now=self.clock())
        committed = self._commit(task, started)

        batch = EffectBatch()
        self._event(batch, "task:started", committed, users=[task.client_id])
        self._audit(batch, actor, "start_task", task, committed)
        return self._finish(batch, committed)

    def submit_work(
        self,
        actor: Actor,
        task_id: str,
        deliverables: list[str],
        comments: str = "",
    ) -> OperationResult:
        """
        Hand in work for QA.

        The task moves through submitted_work into qa_review in one write and
        a Submission is recorded. Any submission after the first is typed as
        a revision.
        """
        task = self.get_task(task_id)
        self._require_assignee(actor, task, "submit work")
        deliverables = [d.strip() for d in deliverables if d and d.strip()]
        if not deliverables:
            raise ValidationError("deliverables", deliverables, "at least one deliverable is required")

        now = self.clock()
        handed_in = state_machine.transition(task, TaskStatus.SUBMITTED_WORK, now=now)
        in_qa = state_machine.transition(handed_in, TaskStatus.QA_REVIEW, now=now)
        committed = self._commit(task, in_qa)

        previous = self.stores.submissions.find_many(task_id=task.id)
        submission = self.stores.submissions.create(Submission(
            task_id=task.id,
            freelancer_id=actor.id,
            submission_type=SubmissionType.REVISION if previous else SubmissionType.INITIAL,
            deliverables=deliverables,
            comments=comments,
            submitted_at=now,
        ))

        batch = EffectBatch()
        self._notify_admins(batch, NotificationType.TASK_SUBMITTED, "Work Submitted for QA",
                            f'Work on "{task.title}" is ready for quality review', committed)
        self._event(batch, "task:submitted", committed, role=UserRole.ADMIN.value)
        self._audit(batch, actor, "submit_work", task, committed, submission_id=submission.id)
        return self._finish(batch, committed, submission=submission)

    def resume_revision(self, actor: Actor, task_id: str) -> OperationResult:
        """Pick up work again after QA asked for changes."""
        task = self.get_task(task_id)
        self._require_assignee(actor, task, "resume work")
        self._require_status(task, TaskStatus.REVISION_REQUESTED, TaskStatus.IN_PROGRESS)

        resumed = state_machine.transition(task, TaskStatus.IN_PROGRESS, now=self.clock())
        committed = self._commit(task, resumed)

        batch = EffectBatch()
        self._audit(batch, actor, "resume_revision", task, committed)
        return self._finish(batch, committed)

    def release_task(self, actor: Actor, task_id: str, reason: str = "") -> OperationResult:
        """Assigned freelancer gives the task back to the assignment pool."""
        task = self.get_task(task_id)
        if not actor.is_admin:
            self._require_assignee(actor, task, "release tasks")

        released = state_machine.release(task, now=self.clock())
        committed = self._commit(task, released)
        self.workload.release(task.freelancer_id)

        batch = EffectBatch()
        message = f'"{task.title}" was released by its freelancer' + (f": {reason}" if reason else "")
        self._notify_admins(batch, NotificationType.TASK_RELEASED, "Task Released", message, committed)
        self._event(batch, "task:available", committed, role=UserRole.FREELANCER.value)
        self._audit(batch, actor, "release_task", task, committed, reason=reason)
        return self._finish(batch, committed)

    # ------------------------------------------------------------------
    # Shared actions
    # ------------------------------------------------------------------

    def cancel_task(self, actor: Actor, task_id: str, reason: str = "") -> OperationResult:
        """Cancel a task; the freelancer's slot is given back if one was held."""
        task = self.get_task(task_id)
        self._require_owner(actor, task, "cancel tasks", allow_admin=True)

        cancelled = state_machine.transition(task, TaskStatus.CANCELLED, now=self.clock())
        if reason:
            cancelled = cancelled.evolve(admin_notes=cancelled.admin_notes + [f"Cancelled: {reason}"])
        committed = self._commit(task, cancelled)
        if task.status in ACTIVE_STATUSES:
            self.workload.release(task.freelancer_id)

        batch = EffectBatch()
        for recipient in {task.client_id, task.freelancer_id} - {actor.id, None}:
            self._notify(batch, recipient, NotificationType.TASK_CANCELLED, "Task Cancelled",
                         f'"{task.title}" was cancelled' + (f": {reason}" if reason else ""), committed)
        self._audit(batch, actor, "cancel_task", task, committed, reason=reason)
        return self._finish(batch, committed)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def _review_latest(self, task_id: str, **changes) -> Optional[Submission]:
        submissions = self.submissions_for(task_id)
        if not submissions:
            return None
        return self.stores.submissions.update(submissions[-1].id, changes)

    def task_statistics(self) -> dict:
        """Get platform task statistics."""
        tasks = self.stores.tasks.find_many()
        payments = self.stores.payments.find_many()

        stats = {
            "total_tasks": len(tasks),
            "by_status": {},
            "by_category": {},
            "overdue_count": 0,
            "avg_completion_time_hours": 0,
            "escrowed_total": "0",
            "platform_fees_total": "0",
        }

        completion_times = []

        for task in tasks:
            status = task.status.value
            stats["by_status"][status] = stats["by_status"].get(status, 0) + 1

            category = task.category.value
            stats["by_category"][category] = stats["by_category"].get(category, 0) + 1

            if task.is_overdue:
                stats["overdue_count"] += 1

            assigned_at = task.workflow_timestamps.get("assignedAt")
            completed_at = task.workflow_timestamps.get("completedAt")
            if assigned_at and completed_at:
                completion_times.append((completed_at - assigned_at).total_seconds() / 3600)

        if completion_times:
            stats["avg_completion_time_hours"] = sum(completion_times) / len(completion_times)

        stats["escrowed_total"] = str(sum(
            (p.task_budget for p in payments if p.status == PaymentStatus.ESCROWED), start=Decimal("0")
        ))
        stats["platform_fees_total"] = str(sum((p.platform_fee for p in payments), start=Decimal("0")))
        return stats
