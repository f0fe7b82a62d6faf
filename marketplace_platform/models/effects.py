"""Pydantic schemas for side-effect requests sent to external collaborators.

These are produced after a task change commits and are delivered
fire-and-forget: notification service, realtime hub and audit log.
"""
from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, model_validator


# -------------------------------------------------------------------
# Enums
# -------------------------------------------------------------------

class NotificationType(StrEnum):
    TASK_ASSIGNED = "task_assigned"
    TASK_ACCEPTED = "task_accepted"
    TASK_SUBMITTED = "task_submitted"
    TASK_APPROVED = "task_approved"
    TASK_REJECTED = "task_rejected"
    QA_FEEDBACK = "qa_feedback"
    CLIENT_APPROVAL = "client_approval"
    REVISION_REQUESTED = "revision_requested"
    PAYMENT_RELEASED = "payment_released"
    TASK_CANCELLED = "task_cancelled"
    TASK_RELEASED = "task_released"
    DISPUTE_RAISED = "dispute_raised"
    DISPUTE_RESOLVED = "dispute_resolved"


class NotificationPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# -------------------------------------------------------------------
# Requests
# -------------------------------------------------------------------

class NotificationRequest(BaseModel):
    """A message for one recipient about one task."""

    recipient_id: str
    type: NotificationType
    title: str
    message: str
    related_task_id: str | None = None
    priority: NotificationPriority = NotificationPriority.MEDIUM


class RealtimeEvent(BaseModel):
    """A push event addressed to users or to every holder of a role."""

    target_users: list[str] = Field(default_factory=list)
    target_role: str | None = None
    event_name: str
    payload: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _has_target(self) -> RealtimeEvent:
        if not self.target_users and not self.target_role:
            raise ValueError("realtime event needs target_users or target_role")
        return self


class AuditEntry(BaseModel):
    """One audit-log line describing who changed what."""

    actor_id: str
    action: str
    resource: str = "task"
    resource_id: str
    changes: dict[str, Any] = Field(default_factory=dict)
    request_metadata: dict[str, Any] = Field(default_factory=dict)
