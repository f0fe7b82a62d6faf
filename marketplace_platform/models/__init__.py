"""Platform data models for tasks, users, submissions, payments and effects."""

from .task import Task, TaskCategory, TaskStatus, TaskPriority, ASSIGNED_STATUSES, ACTIVE_STATUSES
from .user import User, UserRole, UserStatus, Actor
from .submission import Submission, SubmissionType, QAStatus, ClientReviewStatus
from .payment import Payment, PaymentStatus
from .effects import (
    NotificationRequest,
    NotificationType,
    NotificationPriority,
    RealtimeEvent,
    AuditEntry,
)

__all__ = [
    # Tasks
    "Task",
    "TaskCategory",
    "TaskStatus",
    "TaskPriority",
    "ASSIGNED_STATUSES",
    "ACTIVE_STATUSES",
    # Users
    "User",
    "UserRole",
    "UserStatus",
    "Actor",
    # Submissions
    "Submission",
    "SubmissionType",
    "QAStatus",
    "ClientReviewStatus",
    # Payments
    "Payment",
    "PaymentStatus",
    # Side effects
    "NotificationRequest",
    "NotificationType",
    "NotificationPriority",
    "RealtimeEvent",
    "AuditEntry",
]
