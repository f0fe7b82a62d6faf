"""Tests for the workflow orchestrator actions."""

from datetime import timedelta
from decimal import Decimal

import pytest

from marketplace_platform.config import PlatformSettings
from marketplace_platform.errors import (
    AssignmentConflict,
    AuthorizationError,
    ConcurrentModification,
    InvalidStateTransition,
    NotFound,
    RevisionLimitExceeded,
    ValidationError,
)
from marketplace_platform.models import (
    ClientReviewStatus,
    NotificationPriority,
    NotificationType,
    PaymentStatus,
    QAStatus,
    SubmissionType,
    TaskStatus,
    User,
    UserRole,
)
from marketplace_platform.workflows import state_machine
from marketplace_platform.workflows.orchestrator import WorkflowOrchestrator
from marketplace_platform.workflows.side_effects import EffectDispatcher, RecordingSink


def _workload(stores, user_id):
    return stores.users.get(user_id).current_active_tasks


@pytest.fixture
def actors(admin, client, freelancer):
    return admin.as_actor(), client.as_actor(), freelancer.as_actor()


@pytest.fixture
def delivered(orchestrator, actors, make_task):
    """A task that went through assignment, work, submission and QA."""
    admin, _, freelancer = actors
    task = make_task()
    orchestrator.accept_task(freelancer, task.id)
    orchestrator.start_task(freelancer, task.id)
    orchestrator.submit_work(freelancer, task.id, ["https://files.example/v1.zip"])
    return orchestrator.qa_review(admin, task.id, approve=True).task


# ── Task creation and admin review ───────────────────────────────────────

class TestCreateTask:
    def test_creates_submitted_task(self, orchestrator, actors, task_payload, sink):
        _, client, _ = actors
        result = orchestrator.create_task(client, task_payload)

        task = result.task
        assert task.status == TaskStatus.SUBMITTED
        assert task.client_id == client.id
        assert task.budget == Decimal("250.00")
        assert task.revision_limit == 2
        assert task.freelancer_id is None
        assert result.effects_ok
        assert [n.recipient_id for n in sink.notifications] == ["admin-1"]
        assert sink.notifications[0].priority == NotificationPriority.HIGH

    def test_revision_limit_defaults_from_settings(self, stores, sink, clock, actors, task_payload):
        _, client, _ = actors
        orchestrator = WorkflowOrchestrator(
            stores, settings=PlatformSettings(default_revision_limit=4),
            dispatcher=EffectDispatcher(sink, sink, sink), clock=clock,
        )
        assert orchestrator.create_task(client, task_payload).task.revision_limit == 4

    @pytest.mark.parametrize("field,value", [
        ("budget", "-5"),
        ("budget", "10.999"),
        ("category", "plumbing"),
        ("title", ""),
        ("deadline", "next tuesday"),
    ])
    def test_invalid_payload(self, orchestrator, actors, task_payload, field, value):
        _, client, _ = actors
        task_payload[field] = value
        with pytest.raises(ValidationError) as excinfo:
            orchestrator.create_task(client, task_payload)
        assert excinfo.value.field == field

    def test_past_deadline_rejected(self, orchestrator, actors, task_payload, clock):
        _, client, _ = actors
        task_payload["deadline"] = (clock() - timedelta(days=1)).isoformat()
        with pytest.raises(ValidationError):
            orchestrator.create_task(client, task_payload)

    def test_unknown_fields_rejected(self, orchestrator, actors, task_payload):
        _, client, _ = actors
        task_payload["freelancer_id"] = "freelancer-1"
        with pytest.raises(ValidationError):
            orchestrator.create_task(client, task_payload)

    def test_only_clients_post_tasks(self, orchestrator, actors, task_payload):
        _, _, freelancer = actors
        with pytest.raises(AuthorizationError):
            orchestrator.create_task(freelancer, task_payload)


class TestAdminReview:
    def test_approve_opens_for_assignment(self, orchestrator, actors, make_task, clock):
        admin, _, _ = actors
        task = make_task(status=TaskStatus.SUBMITTED)
        result = orchestrator.admin_review(admin, task.id, approve=True)
        assert result.task.status == TaskStatus.UNDER_REVIEW
        assert result.task.workflow_timestamps["reviewedAt"] == clock()

    def test_reject_cancels(self, orchestrator, actors, make_task, sink):
        admin, client, _ = actors
        task = make_task(status=TaskStatus.SUBMITTED)
        result = orchestrator.admin_review(admin, task.id, approve=False, notes="Out of scope")
        assert result.task.status == TaskStatus.CANCELLED
        assert result.task.admin_notes == ["Out of scope"]
        assert sink.notifications[0].type == NotificationType.TASK_REJECTED
        assert sink.notifications[0].recipient_id == client.id

    def test_requires_admin(self, orchestrator, actors, make_task):
        _, client, _ = actors
        task = make_task(status=TaskStatus.SUBMITTED)
        with pytest.raises(AuthorizationError):
            orchestrator.admin_review(client, task.id, approve=True)

    def test_only_new_tasks(self, orchestrator, actors, make_task):
        admin, _, _ = actors
        with pytest.raises(InvalidStateTransition):
            orchestrator.admin_review(admin, make_task().id, approve=True)


# ── Assignment ───────────────────────────────────────────────────────────

class TestAssignmentActions:
    def test_accept_task(self, orchestrator, actors, make_task, stores, sink):
        _, client, freelancer = actors
        task = make_task()
        result = orchestrator.accept_task(freelancer, task.id)

        assert result.task.status == TaskStatus.ASSIGNED
        assert result.task.freelancer_id == freelancer.id
        assert result.task.assigned_by == freelancer.id
        assert _workload(stores, freelancer.id) == 1
        assert sink.notifications[0].recipient_id == client.id
        assert sink.audit[0].action == "accept_task"

    def test_accept_already_assigned_task(self, orchestrator, actors, make_task, make_freelancer):
        _, _, freelancer = actors
        other = make_freelancer("freelancer-2").as_actor()
        task = make_task()
        orchestrator.accept_task(freelancer, task.id)
        with pytest.raises(AssignmentConflict):
            orchestrator.accept_task(other, task.id)

    def test_admin_assign(self, orchestrator, actors, make_task, sink):
        admin, _, freelancer = actors
        result = orchestrator.admin_assign(admin, make_task().id, freelancer.id)
        assert result.task.assigned_by == admin.id
        assert sink.notifications[0].type == NotificationType.TASK_ASSIGNED
        assert sink.notifications[0].recipient_id == freelancer.id

    def test_auto_assign(self, orchestrator, actors, make_task, make_freelancer):
        admin, _, _ = actors
        make_freelancer("star", performance_score=99.0)
        result = orchestrator.auto_assign(admin, make_task().id)
        assert result.task.freelancer_id == "star"

    def test_reassign(self, orchestrator, actors, make_task, make_freelancer, stores):
        admin, _, freelancer = actors
        backup = make_freelancer("backup")
        task = make_task()
        orchestrator.accept_task(freelancer, task.id)
        orchestrator.start_task(freelancer, task.id)

        result = orchestrator.reassign(admin, task.id, backup.id, "unresponsive")

        assert result.task.freelancer_id == backup.id
        assert result.task.status == TaskStatus.ASSIGNED
        assert result.task.admin_notes == ["Reassignment 1: unresponsive"]
        assert _workload(stores, freelancer.id) == 0
        assert _workload(stores, backup.id) == 1

    def test_recommendations(self, orchestrator, make_task, make_freelancer):
        make_freelancer("a", performance_score=60.0)
        make_freelancer("b", performance_score=90.0)
        assert [m.freelancer_id for m in orchestrator.recommendations(make_task().id)] == ["b", "a"]

    def test_double_accept_by_single_slot_freelancer(self, orchestrator, make_task, make_freelancer, stores):
        solo = make_freelancer("solo", max_active_tasks=1).as_actor()
        task = make_task()
        orchestrator.accept_task(solo, task.id)
        with pytest.raises(AssignmentConflict):
            orchestrator.accept_task(solo, task.id)
        assert _workload(stores, "solo") == 1


class TestRegisterUser:
    def test_freelancer_starts_idle(self, orchestrator, stores):
        user = orchestrator.register_user(
            User(id="new", role=UserRole.FREELANCER, skills={"Web_Development"}, current_active_tasks=4)
        )
        assert user.current_active_tasks == 0
        assert stores.users.get("new").skills == {"web-development"}

    @pytest.mark.parametrize("field,value", [
        ("performance_score", 150.0),
        ("performance_score", -1.0),
        ("on_time_completion_rate", -20.0),
        ("on_time_completion_rate", 100.5),
        ("max_active_tasks", 0),
    ])
    def test_out_of_range_profile_rejected(self, orchestrator, stores, field, value):
        with pytest.raises(ValidationError) as excinfo:
            orchestrator.register_user(User(id="bad", role=UserRole.FREELANCER, **{field: value}))
        assert excinfo.value.field == field
        assert stores.users.find_by_id("bad") is None


# ── Freelancer work ──────────────────────────────────────────────────────

class TestWork:
    def test_start_requires_assignee(self, orchestrator, actors, make_task, make_freelancer):
        _, _, freelancer = actors
        task = make_task()
        orchestrator.accept_task(freelancer, task.id)
        stranger = make_freelancer("stranger").as_actor()
        with pytest.raises(AuthorizationError):
            orchestrator.start_task(stranger, task.id)

    def test_submit_goes_to_qa_with_submission(self, orchestrator, actors, make_task, clock):
        _, _, freelancer = actors
        task = make_task()
        orchestrator.accept_task(freelancer, task.id)
        orchestrator.start_task(freelancer, task.id)
        clock.advance(hours=5)

        result = orchestrator.submit_work(freelancer, task.id, ["https://files.example/v1.zip"], "done")

        assert result.task.status == TaskStatus.QA_REVIEW
        assert result.task.workflow_timestamps["submittedWorkAt"] == clock()
        assert result.submission.submission_type == SubmissionType.INITIAL
        assert result.submission.deliverables == ["https://files.example/v1.zip"]

    def test_submit_requires_deliverables(self, orchestrator, actors, make_task):
        _, _, freelancer = actors
        task = make_task()
        orchestrator.accept_task(freelancer, task.id)
        orchestrator.start_task(freelancer, task.id)
        with pytest.raises(ValidationError):
            orchestrator.submit_work(freelancer, task.id, ["  "])

    def test_qa_rejection_and_resubmission(self, orchestrator, actors, make_task):
        admin, _, freelancer = actors
        task = make_task()
        orchestrator.accept_task(freelancer, task.id)
        orchestrator.start_task(freelancer, task.id)
        orchestrator.submit_work(freelancer, task.id, ["v1"])

        rejected = orchestrator.qa_review(admin, task.id, approve=False, feedback="Fix the header")
        assert rejected.task.status == TaskStatus.REVISION_REQUESTED
        first = orchestrator.submissions_for(task.id)[0]
        assert first.qa_status == QAStatus.REJECTED
        assert first.feedback == "Fix the header"

        orchestrator.resume_revision(freelancer, task.id)
        again = orchestrator.submit_work(freelancer, task.id, ["v2"])
        assert again.submission.submission_type == SubmissionType.REVISION
        assert again.task.revisions_used == 0

    def test_qa_approval_delivers(self, delivered, orchestrator):
        assert delivered.status == TaskStatus.DELIVERED
        assert orchestrator.submissions_for(delivered.id)[0].qa_status == QAStatus.APPROVED


class TestRelease:
    def test_assign_then_release_restores_everything(self, orchestrator, actors, make_task, stores):
        _, _, freelancer = actors
        task = make_task()
        before = _workload(stores, freelancer.id)

        orchestrator.accept_task(freelancer, task.id)
        result = orchestrator.release_task(freelancer, task.id, "double booked")

        assert result.task.status == TaskStatus.UNDER_REVIEW
        assert result.task.freelancer_id is None
        assert _workload(stores, freelancer.id) == before

    def test_release_from_in_progress(self, orchestrator, actors, make_task, stores):
        _, _, freelancer = actors
        task = make_task()
        orchestrator.accept_task(freelancer, task.id)
        orchestrator.start_task(freelancer, task.id)
        result = orchestrator.release_task(freelancer, task.id)
        assert result.task.status == TaskStatus.UNDER_REVIEW
        assert "startedAt" in result.task.workflow_timestamps
        assert _workload(stores, freelancer.id) == 0

    def test_released_task_can_be_taken_again(self, orchestrator, actors, make_task, make_freelancer):
        _, _, freelancer = actors
        task = make_task()
        orchestrator.accept_task(freelancer, task.id)
        orchestrator.release_task(freelancer, task.id)
        other = make_freelancer("freelancer-2").as_actor()
        assert orchestrator.accept_task(other, task.id).task.freelancer_id == "freelancer-2"

    def test_cannot_release_after_submission(self, orchestrator, actors, delivered):
        _, _, freelancer = actors
        with pytest.raises(InvalidStateTransition):
            orchestrator.release_task(freelancer, delivered.id)


# ── Client decisions ─────────────────────────────────────────────────────

class TestApproveDelivery:
    def test_completes_and_escrows_payment(self, orchestrator, actors, delivered, stores):
        _, client, freelancer = actors
        result = orchestrator.approve_delivery(client, delivered.id, "Great work")

        assert result.task.status == TaskStatus.COMPLETED
        assert result.task.freelancer_id == freelancer.id
        payment = result.payment
        assert payment.status == PaymentStatus.ESCROWED
        assert payment.platform_fee == Decimal("15.00")
        assert payment.freelancer_payout == Decimal("85.00")
        assert payment.platform_fee + payment.freelancer_payout == payment.task_budget
        assert payment.platform_commission_pct == Decimal("15")
        assert _workload(stores, freelancer.id) == 0
        assert orchestrator.submissions_for(delivered.id)[-1].client_review_status == ClientReviewStatus.APPROVED

    def test_completed_task_is_final(self, orchestrator, actors, delivered):
        _, client, _ = actors
        completed = orchestrator.approve_delivery(client, delivered.id).task
        assert state_machine.allowed_transitions(completed.status) == frozenset()
        with pytest.raises(InvalidStateTransition):
            orchestrator.approve_delivery(client, delivered.id)
        with pytest.raises(InvalidStateTransition):
            orchestrator.cancel_task(client, delivered.id)

    def test_one_payment_per_task(self, orchestrator, actors, delivered, stores):
        _, client, _ = actors
        orchestrator.approve_delivery(client, delivered.id)
        with pytest.raises(InvalidStateTransition):
            orchestrator.approve_delivery(client, delivered.id)
        assert len(stores.payments.find_many(task_id=delivered.id)) == 1

    def test_commission_comes_from_settings(self, stores, sink, clock, actors, delivered):
        _, client, _ = actors
        orchestrator = WorkflowOrchestrator(
            stores, settings=PlatformSettings(platform_commission_pct=Decimal("12.5")),
            dispatcher=EffectDispatcher(sink, sink, sink), clock=clock,
        )
        payment = orchestrator.approve_delivery(client, delivered.id).payment
        assert payment.platform_fee == Decimal("12.50")
        assert payment.freelancer_payout == Decimal("87.50")

    def test_other_client_cannot_approve(self, orchestrator, delivered, stores):
        intruder = stores.users.create(User(id="client-2", role=UserRole.CLIENT)).as_actor()
        with pytest.raises(AuthorizationError):
            orchestrator.approve_delivery(intruder, delivered.id)

    def test_release_payment(self, orchestrator, actors, delivered, sink):
        admin, client, freelancer = actors
        payment = orchestrator.approve_delivery(client, delivered.id).payment

        result = orchestrator.release_payment(admin, payment.id)

        assert result.payment.status == PaymentStatus.RELEASED
        assert result.payment.released_at is not None
        assert sink.notifications[-1].type == NotificationType.PAYMENT_RELEASED
        assert sink.notifications[-1].recipient_id == freelancer.id
        with pytest.raises(ValidationError):
            orchestrator.release_payment(admin, payment.id)


class TestRequestRevision:
    def test_uses_revision_and_extends_deadline(self, orchestrator, actors, delivered):
        _, client, _ = actors
        result = orchestrator.request_revision(client, delivered.id, "Make the logo bigger")

        assert result.task.status == TaskStatus.IN_PROGRESS
        assert result.task.revisions_used == 1
        assert result.task.deadline == delivered.deadline + timedelta(hours=48)
        latest = orchestrator.submissions_for(delivered.id)[-1]
        assert latest.client_review_status == ClientReviewStatus.REVISION_REQUESTED
        assert latest.feedback == "Make the logo bigger"

    def test_limit_reached(self, orchestrator, actors, make_task, stores):
        admin, client, freelancer = actors
        task = make_task(revision_limit=1)
        orchestrator.accept_task(freelancer, task.id)
        orchestrator.start_task(freelancer, task.id)
        for round_ in range(2):
            orchestrator.submit_work(freelancer, task.id, [f"v{round_}"])
            orchestrator.qa_review(admin, task.id, approve=True)
            if round_ == 0:
                orchestrator.request_revision(client, task.id)

        before = stores.tasks.get(task.id)
        with pytest.raises(RevisionLimitExceeded):
            orchestrator.request_revision(client, task.id)
        after = stores.tasks.get(task.id)
        assert after.status == TaskStatus.DELIVERED
        assert (after.revisions_used, after.deadline) == (before.revisions_used, before.deadline)


class TestDisputes:
    def test_dispute_then_rework(self, orchestrator, actors, delivered, sink):
        admin, client, _ = actors
        disputed = orchestrator.raise_dispute(client, delivered.id, "Wrong format").task
        assert disputed.status == TaskStatus.DISPUTED
        assert disputed.admin_notes[-1] == "Dispute: Wrong format"

        result = orchestrator.resolve_dispute(admin, delivered.id, rework=True)
        assert result.task.status == TaskStatus.QA_REVIEW

    def test_dispute_then_cancel_frees_freelancer(self, orchestrator, actors, delivered, stores):
        admin, client, freelancer = actors
        orchestrator.raise_dispute(client, delivered.id, "Not delivered as agreed")
        result = orchestrator.resolve_dispute(admin, delivered.id, rework=False, notes="Refund client")

        assert result.task.status == TaskStatus.CANCELLED
        assert result.task.freelancer_id is None
        assert _workload(stores, freelancer.id) == 0

    def test_dispute_needs_reason(self, orchestrator, actors, delivered):
        _, client, _ = actors
        with pytest.raises(ValidationError):
            orchestrator.raise_dispute(client, delivered.id, "   ")


class TestCancel:
    def test_client_cancels_open_task(self, orchestrator, actors, make_task):
        _, client, _ = actors
        result = orchestrator.cancel_task(client, make_task().id, "No longer needed")
        assert result.task.status == TaskStatus.CANCELLED
        assert result.task.workflow_timestamps["cancelledAt"]

    def test_cancel_assigned_task_releases_workload(self, orchestrator, actors, make_task, stores, sink):
        admin, _, freelancer = actors
        task = make_task()
        orchestrator.accept_task(freelancer, task.id)
        result = orchestrator.cancel_task(admin, task.id)

        assert result.task.freelancer_id is None
        assert _workload(stores, freelancer.id) == 0
        recipients = {n.recipient_id for n in sink.notifications if n.type == NotificationType.TASK_CANCELLED}
        assert recipients == {"client-1", freelancer.id}

    def test_freelancer_cannot_cancel(self, orchestrator, actors, make_task):
        _, _, freelancer = actors
        with pytest.raises(AuthorizationError):
            orchestrator.cancel_task(freelancer, make_task().id)

    def test_unknown_task(self, orchestrator, actors):
        _, client, _ = actors
        with pytest.raises(NotFound):
            orchestrator.cancel_task(client, "TASK-MISSING")


# ── Concurrency and side effects ─────────────────────────────────────────

class TestConcurrency:
    def test_stale_write_is_rejected(self, orchestrator, actors, make_task, stores):
        _, client, freelancer = actors
        task = make_task()
        orchestrator.accept_task(freelancer, task.id)
        stale = stores.tasks.get(task.id)
        orchestrator.start_task(freelancer, task.id)

        # Commit computed from an outdated read
        with pytest.raises(ConcurrentModification):
            orchestrator._commit(stale, state_machine.transition(stale, TaskStatus.CANCELLED))
        assert stores.tasks.get(task.id).status == TaskStatus.IN_PROGRESS

    def test_version_increases_on_every_write(self, orchestrator, actors, make_task):
        _, _, freelancer = actors
        task = make_task()
        v1 = orchestrator.accept_task(freelancer, task.id).task.version
        v2 = orchestrator.start_task(freelancer, task.id).task.version
        assert task.version < v1 < v2


class ExplodingNotifier:
    def send(self, request):
        raise ConnectionError("notification service down")


class TestSideEffects:
    def test_failed_notification_does_not_fail_operation(self, stores, clock, actors, make_task, caplog):
        _, _, freelancer = actors
        audit = RecordingSink()
        orchestrator = WorkflowOrchestrator(
            stores, dispatcher=EffectDispatcher(ExplodingNotifier(), audit, audit), clock=clock,
        )
        task = make_task()

        result = orchestrator.accept_task(freelancer, task.id)

        assert result.task.status == TaskStatus.ASSIGNED
        assert stores.tasks.get(task.id).status == TaskStatus.ASSIGNED
        assert not result.effects_ok
        failed = [o for o in result.effects if not o.ok]
        assert failed[0].kind == "notification"
        assert "notification service down" in failed[0].error
        assert len(audit.audit) == 1
        assert "Failed to deliver notification" in caplog.text

    def test_audit_records_status_change(self, orchestrator, actors, make_task, sink):
        _, _, freelancer = actors
        task = make_task()
        orchestrator.accept_task(freelancer, task.id)
        entry = sink.audit[-1]
        assert entry.actor_id == freelancer.id
        assert entry.changes["status"] == {"from": "under_review", "to": "assigned"}
        assert entry.changes["freelancer_id"] == {"from": None, "to": freelancer.id}


class TestStatistics:
    def test_counts_by_status_and_money(self, orchestrator, actors, delivered, make_task, clock):
        _, client, _ = actors
        make_task()
        make_task()
        clock.advance(hours=10)
        orchestrator.approve_delivery(client, delivered.id)

        stats = orchestrator.task_statistics()

        assert stats["total_tasks"] == 3
        assert stats["by_status"] == {"completed": 1, "under_review": 2}
        assert stats["by_category"] == {"web-development": 3}
        assert stats["escrowed_total"] == "100.00"
        assert stats["platform_fees_total"] == "15.00"
        assert stats["avg_completion_time_hours"] == pytest.approx(10.0)
