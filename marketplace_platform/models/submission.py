"""Submission model for delivered work."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional
import uuid

from .task import utcnow


class SubmissionType(Enum):
    """Whether a submission is the first delivery or a rework."""

    INITIAL = "initial"
    REVISION = "revision"


class QAStatus(Enum):
    """Internal quality check outcome."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ClientReviewStatus(Enum):
    """Client's verdict on a delivery."""

    PENDING = "pending"
    APPROVED = "approved"
    REVISION_REQUESTED = "revision_requested"


@dataclass
class Submission:
    """A piece of work delivered by the assigned freelancer."""

    # Identity
    id: str = field(default_factory=lambda: f"SUB-{uuid.uuid4().hex[:8].upper()}")
    task_id: str = ""
    freelancer_id: str = ""

    # Classification
    submission_type: SubmissionType = SubmissionType.INITIAL

    # Content
    deliverables: list[str] = field(default_factory=list)  # URLs or file references
    comments: str = ""

    # Review
    qa_status: QAStatus = QAStatus.PENDING
    client_review_status: ClientReviewStatus = ClientReviewStatus.PENDING
    feedback: str = ""

    # Timestamps
    submitted_at: datetime = field(default_factory=utcnow)
    reviewed_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        """Serialize submission to dictionary."""
        return {
            "id": self.id,
            "task_id": self.task_id,
            "freelancer_id": self.freelancer_id,
            "submission_type": self.submission_type.value,
            "deliverables": list(self.deliverables),
            "comments": self.comments,
            "qa_status": self.qa_status.value,
            "client_review_status": self.client_review_status.value,
            "feedback": self.feedback,
            "submitted_at": self.submitted_at.isoformat(),
            "reviewed_at": self.reviewed_at.isoformat() if self.reviewed_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Submission":
        """Deserialize submission from dictionary."""
        submission = cls(
            id=data.get("id", f"SUB-{uuid.uuid4().hex[:8].upper()}"),
            task_id=data.get("task_id", ""),
            freelancer_id=data.get("freelancer_id", ""),
            submission_type=SubmissionType(data.get("submission_type", "initial")),
            deliverables=list(data.get("deliverables", [])),
            comments=data.get("comments", ""),
            qa_status=QAStatus(data.get("qa_status", "pending")),
            client_review_status=ClientReviewStatus(data.get("client_review_status", "pending")),
            feedback=data.get("feedback", ""),
        )

        if data.get("submitted_at"):
            submission.submitted_at = datetime.fromisoformat(data["submitted_at"])
        if data.get("reviewed_at"):
            submission.reviewed_at = datetime.fromisoformat(data["reviewed_at"])

        return submission
