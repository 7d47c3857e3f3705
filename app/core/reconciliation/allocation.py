"""
Proportional split of one tender across several fee items.

Every item except the last (in iteration order) gets its share floored to the
minor unit. The residual lost to flooring goes to the last item; whatever the
last item cannot absorb spills backwards onto earlier items up to their
remaining outstanding balance. The result always sums to the tender exactly.
"""

from decimal import ROUND_FLOOR, Decimal
from typing import List, Sequence

from app.core.enums import FeeItemStatus
from app.core.exceptions import AllocationMismatch

from .types import AllocationLine, FeeItemState

MINOR_UNIT = Decimal("0.01")
ZERO = Decimal("0")


def to_minor_unit(amount: Decimal) -> Decimal:
    return amount.quantize(MINOR_UNIT, rounding=ROUND_FLOOR)


def iteration_order(items: Sequence[FeeItemState]) -> List[FeeItemState]:
    """Oldest due date first; id breaks ties so the order never depends on the request."""
    return sorted(items, key=lambda i: (i.due_date, str(i.id)))


def allocate_proportionally(items: Sequence[FeeItemState], tendered_amount: Decimal) -> List[AllocationLine]:
    """
    Split tendered_amount across items in proportion to their outstanding balances.

    Items are taken in the order given. Caller guarantees
    0 < tendered_amount <= sum of outstanding amounts.
    """
    if not items:
        return []
    outstanding = [i.outstanding_amount for i in items]
    total = sum(outstanding, ZERO)

    allocated: List[Decimal] = []
    for idx, owed in enumerate(outstanding):
        if idx == len(outstanding) - 1:
            allocated.append(ZERO)
            break
        if tendered_amount == total:
            share = owed
        else:
            share = to_minor_unit(tendered_amount * owed / total)
        allocated.append(min(owed, share))

    residual = tendered_amount - sum(allocated, ZERO)
    for idx in range(len(allocated) - 1, -1, -1):
        if residual <= ZERO:
            break
        headroom = outstanding[idx] - allocated[idx]
        take = min(residual, headroom)
        allocated[idx] += take
        residual -= take

    lines = [
        AllocationLine(fee_item_id=item.id, outstanding_before=owed, allocated_amount=amount)
        for item, owed, amount in zip(items, outstanding, allocated)
    ]
    check_conservation(lines, tendered_amount)
    return lines


def check_conservation(lines: Sequence[AllocationLine], tendered_amount: Decimal) -> None:
    total = sum((line.allocated_amount for line in lines), ZERO)
    if total != tendered_amount:
        raise AllocationMismatch(
            f"Allocated {total} does not match tendered amount {tendered_amount}"
        )
    for line in lines:
        if line.allocated_amount < ZERO or line.allocated_amount > line.outstanding_before:
            raise AllocationMismatch(
                f"Allocation {line.allocated_amount} for fee item {line.fee_item_id} "
                f"is outside 0..{line.outstanding_before}"
            )


def derive_status(owed_amount: Decimal, paid_amount: Decimal, previous: FeeItemStatus) -> FeeItemStatus:
    if paid_amount >= owed_amount:
        return FeeItemStatus.paid
    if paid_amount > ZERO:
        return FeeItemStatus.partial
    return previous
