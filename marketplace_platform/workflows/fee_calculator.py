"""Escrow fee splitting for completed tasks."""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from ..errors import ValidationError
from ..models.task import to_money

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class FeeSplit:
    """Platform fee and freelancer payout for one budget."""

    budget: Decimal
    commission_pct: Decimal
    fee: Decimal
    payout: Decimal

    def to_dict(self) -> dict:
        return {
            "budget": str(self.budget),
            "commission_pct": str(self.commission_pct),
            "fee": str(self.fee),
            "payout": str(self.payout),
        }


def round2(amount: Decimal) -> Decimal:
    """Round half-up at the cent boundary."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def _commission(value) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError("commission_pct", value, "must be a number")
    try:
        pct = value if isinstance(value, Decimal) else Decimal(str(value))
    except (ArithmeticError, ValueError, TypeError):
        raise ValidationError("commission_pct", value, "must be a number") from None
    if not pct.is_finite() or not 0 <= pct <= HUNDRED:
        raise ValidationError("commission_pct", str(value), "must be between 0 and 100")
    return pct


def compute_fees(budget, commission_pct) -> FeeSplit:
    """Split ``budget`` into platform fee and freelancer payout.

    The fee is rounded to the cent; the payout is whatever remains, so the
    two always sum back to the budget exactly.

    Args:
        budget: Task budget, at most two decimal places
        commission_pct: Platform commission percentage in [0, 100]

    Returns:
        FeeSplit with ``fee + payout == budget``
    """
    amount = to_money(budget)
    if amount < 0:
        raise ValidationError("budget", str(budget), "must not be negative")
    pct = _commission(commission_pct)

    fee = round2(amount * pct / HUNDRED)
    payout = amount - fee
    return FeeSplit(budget=amount, commission_pct=pct, fee=fee, payout=payout)
