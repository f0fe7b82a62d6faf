"""User model for clients, freelancers and platform admins."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional
import uuid

from ..errors import ValidationError
from .task import normalize_category, utcnow


class UserRole(Enum):
    """Platform roles."""

    CLIENT = "client"
    FREELANCER = "freelancer"
    ADMIN = "admin"


class UserStatus(Enum):
    """Account standing."""

    ACTIVE = "active"
    SUSPENDED = "suspended"
    BLOCKED = "blocked"


@dataclass(frozen=True)
class Actor:
    """The authenticated caller of a workflow action."""

    id: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


@dataclass
class User:
    """A platform account; freelancer fields are unused for other roles."""

    # Identity
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    email: str = ""
    name: str = ""
    role: UserRole = UserRole.FREELANCER
    status: UserStatus = UserStatus.ACTIVE

    # Freelancer Profile
    skills: set[str] = field(default_factory=set)
    performance_score: float = 50.0
    on_time_completion_rate: Optional[float] = None

    # Workload
    current_active_tasks: int = 0
    max_active_tasks: int = 10

    # Timestamps
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        self.skills = {normalize_category(s) for s in self.skills}

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    @property
    def is_freelancer(self) -> bool:
        return self.role == UserRole.FREELANCER

    @property
    def has_capacity(self) -> bool:
        """Check if the freelancer can take on another task."""
        return self.current_active_tasks < self.max_active_tasks

    def can_accept_task(self) -> bool:
        """Active freelancer with spare capacity."""
        return self.is_freelancer and self.is_active and self.has_capacity

    def has_skill(self, skill: str) -> bool:
        return normalize_category(skill) in self.skills

    def validate(self) -> None:
        """Raise ValidationError if a rating or workload field is out of range."""
        for name in ("performance_score", "on_time_completion_rate"):
            value = getattr(self, name)
            if value is not None and not 0 <= value <= 100:
                raise ValidationError(name, value, "must be between 0 and 100")
        if self.max_active_tasks < 1:
            raise ValidationError("max_active_tasks", self.max_active_tasks, "must be at least 1")
        if self.current_active_tasks < 0:
            raise ValidationError(
                "current_active_tasks", self.current_active_tasks, "must be non-negative"
            )

    def as_actor(self) -> Actor:
        return Actor(id=self.id, role=self.role)

    def to_dict(self) -> dict:
        """Serialize user to dictionary."""
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role.value,
            "status": self.status.value,
            "skills": sorted(self.skills),
            "performance_score": self.performance_score,
            "on_time_completion_rate": self.on_time_completion_rate,
            "current_active_tasks": self.current_active_tasks,
            "max_active_tasks": self.max_active_tasks,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "User":
        """Deserialize user from dictionary."""
        user = cls(
            id=data.get("id", str(uuid.uuid4())),
            email=data.get("email", ""),
            name=data.get("name", ""),
            role=UserRole(data.get("role", "freelancer")),
            status=UserStatus(data.get("status", "active")),
            skills=set(data.get("skills", [])),
            performance_score=data.get("performance_score", 50.0),
            on_time_completion_rate=data.get("on_time_completion_rate"),
            current_active_tasks=data.get("current_active_tasks", 0),
            max_active_tasks=data.get("max_active_tasks", 10),
        )

        if data.get("created_at"):
            user.created_at = datetime.fromisoformat(data["created_at"])
        if data.get("updated_at"):
            user.updated_at = datetime.fromisoformat(data["updated_at"])

        return user
