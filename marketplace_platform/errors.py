"""Error taxonomy for the task workflow engine.

Every error carries a stable ``code`` and the structured context needed to
render a user-facing message (current value, attempted value). None of them
are retried inside the engine.
"""

from typing import Any


class WorkflowError(Exception):
    """Base class for all workflow engine errors."""

    code = "WORKFLOW_ERROR"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        """Serialize error for the calling layer."""
        return {
            "code": self.code,
            "message": self.message,
            "details": {key: _plain(value) for key, value in self.context.items()},
        }


def _plain(value: Any) -> Any:
    """Reduce enums and decimals to JSON-friendly values."""
    if hasattr(value, "value"):
        return value.value
    if isinstance(value, (int, float, str, bool)) or value is None:
        return value
    return str(value)


class InvalidStateTransition(WorkflowError):
    """Requested status is not a legal successor of the current status."""

    code = "INVALID_STATE_TRANSITION"

    def __init__(self, current, requested):
        super().__init__(
            f"Invalid state transition from {_plain(current)} to {_plain(requested)}",
            current=current,
            requested=requested,
        )
        self.current = current
        self.requested = requested


class AssignmentConflict(WorkflowError):
    """Another caller claimed the task between read and commit."""

    code = "ASSIGNMENT_CONFLICT"

    def __init__(self, task_id: str, expected_status, expected_freelancer_id=None):
        super().__init__(
            f"Task {task_id} is no longer available or already assigned",
            task_id=task_id,
            expected_status=expected_status,
            expected_freelancer_id=expected_freelancer_id,
        )
        self.task_id = task_id


class ConcurrentModification(WorkflowError):
    """A non-assignment write lost its compare-and-set."""

    code = "CONCURRENT_MODIFICATION"

    def __init__(self, task_id: str, expected_version: int):
        super().__init__(
            f"Task {task_id} was modified concurrently; reload and retry",
            task_id=task_id,
            expected_version=expected_version,
        )
        self.task_id = task_id


class NoEligibleCandidate(WorkflowError):
    """No active freelancer has the skill and spare capacity for the task."""

    code = "NO_ELIGIBLE_CANDIDATE"

    def __init__(self, task_id: str, category: str):
        super().__init__(
            f"No available freelancer found for task {task_id} ({category})",
            task_id=task_id,
            category=category,
        )


class WorkloadExceeded(WorkflowError):
    """Freelancer cannot take on another task."""

    code = "WORKLOAD_EXCEEDED"

    def __init__(self, freelancer_id: str, current: int, maximum: int, reason: str = ""):
        message = reason or (
            f"Freelancer {freelancer_id} cannot accept more tasks ({current}/{maximum})"
        )
        super().__init__(message, freelancer_id=freelancer_id, current=current, maximum=maximum)
        self.freelancer_id = freelancer_id


class RevisionLimitExceeded(WorkflowError):
    """All allowed revisions for a task have been used."""

    code = "REVISION_LIMIT_EXCEEDED"

    def __init__(self, task_id: str, used: int, limit: int):
        super().__init__(
            f"Revision limit reached for task {task_id} ({used}/{limit})",
            task_id=task_id,
            used=used,
            limit=limit,
        )


class ValidationError(WorkflowError):
    """Malformed numeric, date or payload input."""

    code = "VALIDATION_ERROR"

    def __init__(self, field: str, value: Any, reason: str):
        super().__init__(f"Invalid {field}: {reason}", field=field, value=value)
        self.field = field


class NotFound(WorkflowError):
    """Referenced record does not exist."""

    code = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            f"{resource.capitalize()} not found: {resource_id}",
            resource=resource,
            resource_id=resource_id,
        )


class AuthorizationError(WorkflowError):
    """Actor lacks the role or ownership required for an action."""

    code = "AUTHORIZATION_ERROR"

    def __init__(self, actor_id: str, action: str, reason: str):
        super().__init__(reason, actor_id=actor_id, action=action)
