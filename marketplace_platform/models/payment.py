"""Payment record created when a task completes."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
import uuid

from .task import utcnow


class PaymentStatus(Enum):
    """Escrow state of a payment."""

    ESCROWED = "escrowed"    # Held by the platform
    RELEASED = "released"    # Paid out to the freelancer


@dataclass
class Payment:
    """Fee split for one completed task.

    ``platform_fee + freelancer_payout == task_budget`` holds exactly; the
    record is immutable apart from the escrow release.
    """

    # Identity
    id: str = field(default_factory=lambda: f"PAY-{uuid.uuid4().hex[:8].upper()}")
    task_id: str = ""
    client_id: str = ""
    freelancer_id: str = ""

    # Amount
    task_budget: Decimal = Decimal("0")
    platform_commission_pct: Decimal = Decimal("0")
    platform_fee: Decimal = Decimal("0")
    freelancer_payout: Decimal = Decimal("0")
    currency: str = "USD"

    # Status
    status: PaymentStatus = PaymentStatus.ESCROWED

    # Dates
    created_at: datetime = field(default_factory=utcnow)
    released_at: Optional[datetime] = None

    @property
    def is_balanced(self) -> bool:
        return self.platform_fee + self.freelancer_payout == self.task_budget

    def release(self, now: Optional[datetime] = None) -> bool:
        """Release escrowed funds to the freelancer."""
        if self.status != PaymentStatus.ESCROWED:
            return False

        self.status = PaymentStatus.RELEASED
        self.released_at = now or utcnow()
        return True

    def to_dict(self) -> dict:
        """Serialize payment to dictionary."""
        return {
            "id": self.id,
            "task_id": self.task_id,
            "client_id": self.client_id,
            "freelancer_id": self.freelancer_id,
            "task_budget": str(self.task_budget),
            "platform_commission_pct": str(self.platform_commission_pct),
            "platform_fee": str(self.platform_fee),
            "freelancer_payout": str(self.freelancer_payout),
            "currency": self.currency,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "released_at": self.released_at.isoformat() if self.released_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Payment":
        """Deserialize payment from dictionary."""
        payment = cls(
            id=data.get("id", f"PAY-{uuid.uuid4().hex[:8].upper()}"),
            task_id=data.get("task_id", ""),
            client_id=data.get("client_id", ""),
            freelancer_id=data.get("freelancer_id", ""),
            task_budget=Decimal(data.get("task_budget", "0")),
            platform_commission_pct=Decimal(data.get("platform_commission_pct", "0")),
            platform_fee=Decimal(data.get("platform_fee", "0")),
            freelancer_payout=Decimal(data.get("freelancer_payout", "0")),
            currency=data.get("currency", "USD"),
            status=PaymentStatus(data.get("status", "escrowed")),
        )

        for field_name in ["created_at", "released_at"]:
            if data.get(field_name):
                setattr(payment, field_name, datetime.fromisoformat(data[field_name]))

        return payment
