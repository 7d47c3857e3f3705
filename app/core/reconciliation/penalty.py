"""Late-payment penalty arithmetic. Pure functions, no storage access."""

from datetime import date
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import Optional

from app.core.enums import PenaltyType
from app.core.exceptions import InvalidRule

from .types import FeeItemState, PenaltyRuleSpec

PENALTY_PERIOD_DAYS = Decimal("30")
_HUNDRED = Decimal("100")
_CENT = Decimal("0.01")


def validate_rule(rule: PenaltyRuleSpec) -> None:
    try:
        penalty_type = PenaltyType(rule.penalty_type)
    except ValueError as e:
        raise InvalidRule(f"Unknown penalty type {rule.penalty_type!r}") from e
    if rule.grace_period_days is None or rule.grace_period_days < 0:
        raise InvalidRule("grace_period_days must be a non-negative integer")
    if penalty_type == PenaltyType.late_fee:
        if rule.penalty_amount is None and rule.penalty_percentage is None:
            raise InvalidRule("late_fee rule needs penalty_amount or penalty_percentage")
    elif rule.penalty_percentage is None:
        raise InvalidRule("interest rule needs penalty_percentage")


def days_overdue(due_date: date, as_of: date, grace_period_days: int = 0) -> int:
    """Whole days past due_date beyond the grace period, never negative."""
    return max(0, (as_of - due_date).days - grace_period_days)


def compute_penalty(
    fee_item: FeeItemState,
    rule: PenaltyRuleSpec,
    as_of: Optional[date] = None,
) -> Decimal:
    """
    Penalty owed on fee_item under rule at as_of (today by default).

    - late_fee: flat penalty_amount, else owed_amount * penalty_percentage / 100.
    - interest: owed_amount * penalty_percentage / 100 prorated per 30 days overdue.
    - is_compound multiplies the result by (days overdue / 30) once more.
    - max_penalty_amount caps the result.
    """
    validate_rule(rule)
    as_of = as_of or date.today()
    overdue = days_overdue(fee_item.due_date, as_of, rule.grace_period_days)
    if overdue == 0:
        return Decimal("0.00")

    periods = Decimal(overdue) / PENALTY_PERIOD_DAYS
    owed = fee_item.owed_amount
    if PenaltyType(rule.penalty_type) == PenaltyType.late_fee:
        if rule.penalty_amount is not None:
            penalty = Decimal(rule.penalty_amount)
        else:
            penalty = owed * Decimal(rule.penalty_percentage) / _HUNDRED
    else:
        penalty = owed * Decimal(rule.penalty_percentage) / _HUNDRED * periods

    # Layered on top of the base formula; for interest rules growth is quadratic in days overdue.
    if rule.is_compound:
        penalty = penalty * periods

    penalty = max(penalty, Decimal("0")).quantize(_CENT, rounding=ROUND_HALF_UP)
    if rule.max_penalty_amount is not None:
        # Floor the cap to whole cents so the rounded result never exceeds it
        cap = Decimal(rule.max_penalty_amount).quantize(_CENT, rounding=ROUND_FLOOR)
        penalty = min(penalty, cap)
    return penalty
