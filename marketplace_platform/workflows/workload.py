"""Per-freelancer active task counters."""

import logging
from contextlib import contextmanager
from threading import Lock

from ..errors import NotFound, WorkloadExceeded
from ..models.user import User
from ..models.task import utcnow
from ..storage.base import RecordStore

logger = logging.getLogger(__name__)


class WorkloadTracker:
    """Maintains each freelancer's count of concurrently active tasks.

    Counters are independent per freelancer. Every change is a
    check-and-set on the user record while holding that freelancer's lock.
    """

    def __init__(self, users: RecordStore):
        self.users = users
        self._locks: dict[str, Lock] = {}
        self._locks_guard = Lock()

    def _lock_for(self, freelancer_id: str) -> Lock:
        with self._locks_guard:
            return self._locks.setdefault(freelancer_id, Lock())

    def get_freelancer(self, freelancer_id: str) -> User:
        """Load a freelancer or raise NotFound."""
        user = self.users.find_by_id(freelancer_id)
        if user is None or not user.is_freelancer:
            raise NotFound("freelancer", freelancer_id)
        return user

    @staticmethod
    def check_capacity(freelancer: User) -> None:
        """Raise WorkloadExceeded unless the freelancer can take a task."""
        if not freelancer.is_active:
            raise WorkloadExceeded(
                freelancer.id,
                freelancer.current_active_tasks,
                freelancer.max_active_tasks,
                reason=f"Freelancer {freelancer.id} is {freelancer.status.value}",
            )
        if not freelancer.has_capacity:
            raise WorkloadExceeded(
                freelancer.id, freelancer.current_active_tasks, freelancer.max_active_tasks
            )

    def acquire(self, freelancer_id: str) -> User:
        """Take one slot of the freelancer's capacity."""
        with self._lock_for(freelancer_id):
            freelancer = self.get_freelancer(freelancer_id)
            self.check_capacity(freelancer)
            updated = self.users.update(
                freelancer_id,
                {"current_active_tasks": freelancer.current_active_tasks + 1, "updated_at": utcnow()},
                expected={"current_active_tasks": freelancer.current_active_tasks},
            )
            if updated is None:
                # Counter moved outside this tracker between read and write
                raise WorkloadExceeded(
                    freelancer_id,
                    freelancer.current_active_tasks,
                    freelancer.max_active_tasks,
                    reason=f"Workload of freelancer {freelancer_id} changed during assignment",
                )

        logger.debug(
            "Freelancer %s workload %d/%d",
            freelancer_id,
            updated.current_active_tasks,
            updated.max_active_tasks,
        )
        return updated

    def release(self, freelancer_id: str) -> User:
        """Give back one slot; never drops below zero."""
        with self._lock_for(freelancer_id):
            freelancer = self.get_freelancer(freelancer_id)
            if freelancer.current_active_tasks == 0:
                logger.warning("Freelancer %s released with no active tasks", freelancer_id)
                return freelancer
            updated = self.users.update(
                freelancer_id,
                {"current_active_tasks": freelancer.current_active_tasks - 1, "updated_at": utcnow()},
            )

        logger.debug(
            "Freelancer %s workload %d/%d",
            freelancer_id,
            updated.current_active_tasks,
            updated.max_active_tasks,
        )
        return updated

    @contextmanager
    def reserve(self, freelancer_id: str):
        """Acquire a slot that is given back if the body raises."""
        freelancer = self.acquire(freelancer_id)
        try:
            yield freelancer
        except BaseException:
            self.release(freelancer_id)
            raise
