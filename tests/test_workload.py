"""Tests for per-freelancer workload counters."""

import threading

import pytest

from marketplace_platform.errors import NotFound, WorkloadExceeded
from marketplace_platform.models.user import UserStatus
from marketplace_platform.workflows.workload import WorkloadTracker


@pytest.fixture
def tracker(stores):
    return WorkloadTracker(stores.users)


class TestAcquireRelease:
    def test_acquire_increments(self, tracker, freelancer, stores):
        tracker.acquire(freelancer.id)
        assert stores.users.get(freelancer.id).current_active_tasks == 1

    def test_release_decrements(self, tracker, freelancer, stores):
        tracker.acquire(freelancer.id)
        tracker.release(freelancer.id)
        assert stores.users.get(freelancer.id).current_active_tasks == 0

    def test_release_never_goes_negative(self, tracker, freelancer, stores):
        tracker.release(freelancer.id)
        assert stores.users.get(freelancer.id).current_active_tasks == 0

    def test_acquire_at_capacity_fails(self, tracker, make_freelancer, stores):
        busy = make_freelancer("busy", current_active_tasks=2, max_active_tasks=2)
        with pytest.raises(WorkloadExceeded) as excinfo:
            tracker.acquire(busy.id)
        assert excinfo.value.context["current"] == 2
        assert stores.users.get(busy.id).current_active_tasks == 2

    @pytest.mark.parametrize("status", [UserStatus.SUSPENDED, UserStatus.BLOCKED])
    def test_inactive_freelancer_cannot_acquire(self, tracker, make_freelancer, status):
        inactive = make_freelancer("inactive", status=status)
        with pytest.raises(WorkloadExceeded, match=status.value):
            tracker.acquire(inactive.id)

    def test_unknown_freelancer(self, tracker):
        with pytest.raises(NotFound):
            tracker.acquire("nobody")

    def test_client_is_not_a_freelancer(self, tracker, client):
        with pytest.raises(NotFound):
            tracker.acquire(client.id)


class TestReserve:
    def test_body_failure_gives_slot_back(self, tracker, freelancer, stores):
        with pytest.raises(RuntimeError):
            with tracker.reserve(freelancer.id):
                assert stores.users.get(freelancer.id).current_active_tasks == 1
                raise RuntimeError("commit failed")
        assert stores.users.get(freelancer.id).current_active_tasks == 0

    def test_success_keeps_slot(self, tracker, freelancer, stores):
        with tracker.reserve(freelancer.id) as reserved:
            assert reserved.current_active_tasks == 1
        assert stores.users.get(freelancer.id).current_active_tasks == 1


def test_concurrent_acquires_respect_capacity(tracker, make_freelancer, stores):
    limited = make_freelancer("limited", max_active_tasks=3)
    results = []
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        try:
            tracker.acquire(limited.id)
            results.append("ok")
        except WorkloadExceeded:
            results.append("full")

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count("ok") == 3
    assert stores.users.get(limited.id).current_active_tasks == 3
