"""Task model for client-posted work."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
import uuid

from ..errors import ValidationError


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def normalize_category(value: str) -> str:
    """Canonical spelling of a category or skill name: ``Web_Development`` -> ``web-development``."""
    return value.strip().lower().replace("_", "-")


class TaskCategory(Enum):
    """Types of work a client can post."""

    VIDEO_EDITING = "video-editing"
    WEB_DEVELOPMENT = "web-development"
    DESIGN = "design"
    WRITING = "writing"
    OTHER = "other"

    @classmethod
    def parse(cls, value: str) -> "TaskCategory":
        """Accept both ``web_development`` and ``web-development``."""
        return cls(normalize_category(value))


class TaskStatus(Enum):
    """Task lifecycle status."""

    SUBMITTED = "submitted"                    # Posted by client, awaiting admin review
    UNDER_REVIEW = "under_review"              # Approved by admin, open for assignment
    ASSIGNED = "assigned"                      # Freelancer selected
    IN_PROGRESS = "in_progress"                # Work has started
    SUBMITTED_WORK = "submitted_work"          # Freelancer handed in work
    QA_REVIEW = "qa_review"                    # Internal quality check
    REVISION_REQUESTED = "revision_requested"  # QA sent it back
    DELIVERED = "delivered"                    # Delivered to client
    CLIENT_REVISION = "client_revision"        # Client asked for changes
    DISPUTED = "disputed"                      # Client disputes delivery
    COMPLETED = "completed"                    # Client approved, payment escrowed
    CANCELLED = "cancelled"                    # Terminal, never deleted

    @property
    def implies_assignment(self) -> bool:
        """Whether a task in this status must have a freelancer."""
        return self in ASSIGNED_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.CANCELLED)

    @property
    def milestone(self) -> Optional[str]:
        """Workflow timestamp recorded on entry into this status."""
        return MILESTONES.get(self)


ASSIGNED_STATUSES = frozenset({
    TaskStatus.ASSIGNED,
    TaskStatus.IN_PROGRESS,
    TaskStatus.SUBMITTED_WORK,
    TaskStatus.QA_REVIEW,
    TaskStatus.REVISION_REQUESTED,
    TaskStatus.DELIVERED,
    TaskStatus.CLIENT_REVISION,
    TaskStatus.COMPLETED,
    TaskStatus.DISPUTED,
})

# Statuses that occupy a slot in the freelancer's workload
ACTIVE_STATUSES = ASSIGNED_STATUSES - {TaskStatus.COMPLETED}

MILESTONES = {
    TaskStatus.UNDER_REVIEW: "reviewedAt",
    TaskStatus.ASSIGNED: "assignedAt",
    TaskStatus.IN_PROGRESS: "startedAt",
    TaskStatus.SUBMITTED_WORK: "submittedWorkAt",
    TaskStatus.DELIVERED: "deliveredAt",
    TaskStatus.COMPLETED: "completedAt",
    TaskStatus.CANCELLED: "cancelledAt",
}


class TaskPriority(Enum):
    """Task priority levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def notification_priority(self) -> str:
        """Priority used for notifications about this task."""
        return "high" if self == TaskPriority.URGENT else "medium"


def to_money(value, field_name: str = "budget") -> Decimal:
    """Convert user input to a Decimal with at most two decimal places."""
    if isinstance(value, bool):
        raise ValidationError(field_name, value, "must be a number")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (ArithmeticError, ValueError, TypeError):
        raise ValidationError(field_name, value, "must be a number") from None
    if not amount.is_finite():
        raise ValidationError(field_name, value, "must be a finite number")
    if amount.as_tuple().exponent < -2:
        raise ValidationError(field_name, value, "must have at most 2 decimal places")
    return amount


@dataclass
class Task:
    """A piece of work posted by a client."""

    # Identity
    id: str = field(default_factory=lambda: f"TASK-{uuid.uuid4().hex[:8].upper()}")
    title: str = ""
    description: str = ""

    # Classification
    category: TaskCategory = TaskCategory.OTHER
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.SUBMITTED

    # Ownership
    client_id: str = ""
    freelancer_id: Optional[str] = None
    assigned_by: Optional[str] = None

    # Terms
    budget: Decimal = Decimal("0")
    deadline: Optional[datetime] = None

    # Revisions
    revision_limit: int = 2
    revisions_used: int = 0

    # Metrics
    reassignment_count: int = 0
    admin_notes: list[str] = field(default_factory=list)

    # Workflow
    workflow_timestamps: dict[str, datetime] = field(default_factory=dict)
    version: int = 0

    # Metadata
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_overdue(self) -> bool:
        """Check if task is past deadline."""
        if self.deadline is None or self.status.is_terminal:
            return False
        return utcnow() > self.deadline

    def evolve(self, **changes) -> "Task":
        """Copy of this task with ``changes`` applied."""
        changes.setdefault("workflow_timestamps", dict(self.workflow_timestamps))
        changes.setdefault("admin_notes", list(self.admin_notes))
        return replace(self, **changes)

    def validate(self) -> None:
        """Raise ValidationError if the record breaks a task invariant."""
        if self.budget <= 0:
            raise ValidationError("budget", str(self.budget), "must be positive")
        if self.revision_limit < 0:
            raise ValidationError("revision_limit", self.revision_limit, "must be non-negative")
        if not 0 <= self.revisions_used <= self.revision_limit:
            raise ValidationError(
                "revisions_used",
                self.revisions_used,
                f"must be between 0 and revision_limit ({self.revision_limit})",
            )
        if self.status.implies_assignment and self.freelancer_id is None:
            raise ValidationError(
                "freelancer_id", None, f"required while task is {self.status.value}"
            )
        if not self.status.implies_assignment and self.freelancer_id is not None:
            raise ValidationError(
                "freelancer_id",
                self.freelancer_id,
                f"must be empty while task is {self.status.value}",
            )

    def to_dict(self) -> dict:
        """Serialize task to dictionary."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category.value,
            "priority": self.priority.value,
            "status": self.status.value,
            "client_id": self.client_id,
            "freelancer_id": self.freelancer_id,
            "assigned_by": self.assigned_by,
            "budget": str(self.budget),
            "deadline": self.deadline.isoformat() if self.deadline else None,
            "revision_limit": self.revision_limit,
            "revisions_used": self.revisions_used,
            "reassignment_count": self.reassignment_count,
            "admin_notes": list(self.admin_notes),
            "workflow_timestamps": {
                name: stamp.isoformat() for name, stamp in self.workflow_timestamps.items()
            },
            "version": self.version,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Task":
        """Deserialize task from dictionary."""
        task = cls(
            id=data.get("id", f"TASK-{uuid.uuid4().hex[:8].upper()}"),
            title=data.get("title", ""),
            description=data.get("description", ""),
            category=TaskCategory.parse(data.get("category", "other")),
            priority=TaskPriority(data.get("priority", "medium")),
            status=TaskStatus(data.get("status", "submitted")),
            client_id=data.get("client_id", ""),
            freelancer_id=data.get("freelancer_id"),
            assigned_by=data.get("assigned_by"),
            budget=Decimal(str(data.get("budget", "0"))),
            revision_limit=data.get("revision_limit", 2),
            revisions_used=data.get("revisions_used", 0),
            reassignment_count=data.get("reassignment_count", 0),
            admin_notes=list(data.get("admin_notes", [])),
            workflow_timestamps={
                name: datetime.fromisoformat(stamp)
                for name, stamp in data.get("workflow_timestamps", {}).items()
            },
            version=data.get("version", 0),
        )

        # Parse datetime fields
        for field_name in ["deadline", "created_at", "updated_at"]:
            if data.get(field_name):
                setattr(task, field_name, datetime.fromisoformat(data[field_name]))

        return task
