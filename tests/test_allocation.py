"""Unit tests for proportional allocation of a tender across fee items."""

import uuid
from datetime import date, timedelta
from decimal import Decimal

import pytest

from app.core.enums import FeeItemStatus
from app.core.exceptions import AllocationMismatch
from app.core.reconciliation.allocation import (
    allocate_proportionally,
    check_conservation,
    derive_status,
    iteration_order,
)
from app.core.reconciliation.types import AllocationLine, FeeItemState


def _items(*outstanding: str):
    base = date(2026, 1, 1)
    return [
        FeeItemState(
            id=uuid.uuid4(),
            owed_amount=Decimal(o),
            paid_amount=Decimal("0"),
            due_date=base + timedelta(days=i),
        )
        for i, o in enumerate(outstanding)
    ]


def _amounts(lines):
    return [line.allocated_amount for line in lines]


def test_single_item_takes_whole_tender() -> None:
    lines = allocate_proportionally(_items("1000"), Decimal("1000"))
    assert _amounts(lines) == [Decimal("1000")]


def test_proportional_shares_two_items() -> None:
    lines = allocate_proportionally(_items("600", "400"), Decimal("500"))
    assert _amounts(lines) == [Decimal("300"), Decimal("200")]


def test_residual_goes_to_last_item() -> None:
    """100 over three equal items: floors give 33.33 twice, the last item absorbs the extra cent."""
    lines = allocate_proportionally(_items("100.00", "100.00", "100.00"), Decimal("100.00"))
    assert _amounts(lines) == [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")]


def test_full_tender_settles_every_item() -> None:
    items = _items("333.33", "0.01", "1200.50")
    lines = allocate_proportionally(items, Decimal("1533.84"))
    assert _amounts(lines) == [i.outstanding_amount for i in items]


def test_residual_beyond_last_item_spills_backwards() -> None:
    """Floors leave 0.02 for a last item that only owes 0.01; the other cent lands on the item before it."""
    items = _items("0.03", "0.03", "0.01")
    lines = allocate_proportionally(items, Decimal("0.06"))
    assert _amounts(lines) == [Decimal("0.02"), Decimal("0.03"), Decimal("0.01")]


@pytest.mark.parametrize(
    "outstanding,tendered",
    [
        (("10.00", "20.00", "30.00"), "0.01"),
        (("0.07", "0.07", "0.07", "0.07"), "0.27"),
        (("99.99", "0.01", "45.45", "12.34"), "157.78"),
        (("1000.00", "1.00"), "1000.99"),
        (("3.33", "3.33", "3.34"), "7.77"),
    ],
)
def test_conservation_and_non_exceedance(outstanding, tendered) -> None:
    items = _items(*outstanding)
    lines = allocate_proportionally(items, Decimal(tendered))
    assert sum(_amounts(lines), Decimal("0")) == Decimal(tendered)
    for item, line in zip(items, lines):
        assert Decimal("0") <= line.allocated_amount <= item.outstanding_amount
        assert line.allocated_amount == line.allocated_amount.quantize(Decimal("0.01"))


def test_iteration_order_is_by_due_date_then_id() -> None:
    items = _items("1", "2", "3")
    assert iteration_order(list(reversed(items))) == items


def test_check_conservation_rejects_mismatch() -> None:
    line = AllocationLine(fee_item_id=uuid.uuid4(), outstanding_before=Decimal("10"), allocated_amount=Decimal("4.99"))
    with pytest.raises(AllocationMismatch):
        check_conservation([line], Decimal("5.00"))


def test_check_conservation_rejects_over_allocation() -> None:
    line = AllocationLine(fee_item_id=uuid.uuid4(), outstanding_before=Decimal("4"), allocated_amount=Decimal("5"))
    with pytest.raises(AllocationMismatch):
        check_conservation([line], Decimal("5"))


def test_derive_status() -> None:
    assert derive_status(Decimal("100"), Decimal("100"), FeeItemStatus.partial) == FeeItemStatus.paid
    assert derive_status(Decimal("100"), Decimal("40"), FeeItemStatus.pending) == FeeItemStatus.partial
    assert derive_status(Decimal("100"), Decimal("0"), FeeItemStatus.overdue) == FeeItemStatus.overdue
