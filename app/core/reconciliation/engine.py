"""Fee reconciliation engine: validates a tender, splits it across fee items and records the payment."""

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from app.core.config import settings
from app.core.enums import PaymentMethod, PaymentStatus
from app.core.exceptions import (
    AmountExceedsOutstanding,
    ConcurrentModification,
    IdempotencyKeyReused,
    InvalidFeeItems,
    ServiceError,
    StorageFailure,
    ValidationError,
)

from .allocation import MINOR_UNIT, ZERO, allocate_proportionally, derive_status, iteration_order
from .penalty import compute_penalty, days_overdue
from .receipts import format_receipt_number
from .store import FeeStore
from .types import (
    AllocationOutcome,
    InstitutionRef,
    ItemUpdate,
    PaymentDraft,
    PenaltyAssessment,
    ReconciliationResult,
)

logger = logging.getLogger(__name__)


def _validate_tender(fee_item_ids: Sequence[UUID], tendered_amount) -> Decimal:
    if not fee_item_ids:
        raise ValidationError("At least one fee item is required")
    if len(set(fee_item_ids)) != len(fee_item_ids):
        raise ValidationError("Fee item ids must be unique")
    if not isinstance(tendered_amount, Decimal):
        try:
            tendered_amount = Decimal(str(tendered_amount))
        except ArithmeticError as e:
            raise ValidationError("Tendered amount must be a decimal number") from e
    if not tendered_amount.is_finite() or tendered_amount <= ZERO:
        raise ValidationError("Tendered amount must be positive")
    if tendered_amount != tendered_amount.quantize(MINOR_UNIT):
        raise ValidationError("Tendered amount cannot have more than two decimal places")
    return tendered_amount


class ReconciliationEngine:
    """Stateless apart from the injected store; build one per request."""

    def __init__(self, store: FeeStore, receipt_width: Optional[int] = None) -> None:
        self.store = store
        self.receipt_width = receipt_width or settings.receipt_sequence_width

    async def allocate_payment(
        self,
        institution: InstitutionRef,
        student_id: UUID,
        fee_item_ids: Sequence[UUID],
        tendered_amount: Decimal,
        payment_method: PaymentMethod,
        payment_status: PaymentStatus = PaymentStatus.pending,
        notes: Optional[str] = None,
        collected_by: Optional[UUID] = None,
        idempotency_key: Optional[str] = None,
        paid_at: Optional[datetime] = None,
    ) -> ReconciliationResult:
        tendered = _validate_tender(fee_item_ids, tendered_amount)

        if idempotency_key:
            existing = await self.store.find_payment_by_idempotency_key(institution.id, idempotency_key)
            if existing is not None:
                if existing.student_id != student_id or existing.tendered_amount != tendered:
                    logger.warning(
                        "Idempotency key %s already used by payment %s", idempotency_key, existing.receipt_number
                    )
                    raise IdempotencyKeyReused(
                        f"Idempotency key {idempotency_key} already used for a different payment"
                    )
                logger.info("Replaying payment %s for idempotency key %s", existing.receipt_number, idempotency_key)
                return ReconciliationResult(payment=existing, replayed=True)

        items = await self.store.get_outstanding_fee_items(student_id, list(fee_item_ids))
        found = {item.id for item in items}
        missing = [str(i) for i in fee_item_ids if i not in found]
        if missing:
            raise InvalidFeeItems(
                "Fee items not found, not owned by the student or already paid: " + ", ".join(missing)
            )

        ordered = iteration_order(items)
        total_outstanding = sum((item.outstanding_amount for item in ordered), ZERO)
        if tendered > total_outstanding:
            logger.warning(
                "Rejected tender %s for student %s: outstanding is %s", tendered, student_id, total_outstanding
            )
            raise AmountExceedsOutstanding(
                f"Tendered amount {tendered} exceeds total outstanding {total_outstanding}"
            )

        lines = allocate_proportionally(ordered, tendered)

        by_id = {item.id: item for item in ordered}
        updates: List[ItemUpdate] = []
        outcomes: List[AllocationOutcome] = []
        for line in lines:
            item = by_id[line.fee_item_id]
            new_paid = item.paid_amount + line.allocated_amount
            new_status = derive_status(item.owed_amount, new_paid, item.status)
            outcomes.append(AllocationOutcome(line.fee_item_id, line.allocated_amount, new_status))
            if line.allocated_amount > ZERO:
                updates.append(
                    ItemUpdate(
                        fee_item_id=item.id,
                        expected_paid_amount=item.paid_amount,
                        new_paid_amount=new_paid,
                        old_status=item.status,
                        new_status=new_status,
                    )
                )
        written_lines = [line for line in lines if line.allocated_amount > ZERO]

        paid_at = paid_at or datetime.now(timezone.utc)
        try:
            sequence = await self.store.next_receipt_sequence(institution.id, paid_at.year)
            draft = PaymentDraft(
                institution_id=institution.id,
                student_id=student_id,
                receipt_number=format_receipt_number(institution.code, paid_at.year, sequence, self.receipt_width),
                total_outstanding_at_time=total_outstanding,
                tendered_amount=tendered,
                payment_method=PaymentMethod(payment_method),
                payment_status=PaymentStatus(payment_status),
                paid_at=paid_at,
                notes=notes,
                collected_by=collected_by,
                idempotency_key=idempotency_key,
            )
            payment = await self.store.write_payment_atomic(draft, written_lines, updates)
        except ConcurrentModification:
            logger.warning("Concurrent modification while paying fee items of student %s", student_id)
            await self.store.discard()
            raise
        except ServiceError:
            await self.store.discard()
            raise
        except Exception as e:
            logger.exception("Unexpected failure while recording payment for student %s", student_id)
            await self.store.discard()
            raise StorageFailure("Failed to record payment") from e

        logger.info(
            "Recorded payment %s: %s across %d fee item(s)", payment.receipt_number, tendered, len(written_lines)
        )
        return ReconciliationResult(payment=payment, allocations=outcomes)

    async def assess_penalties(
        self,
        institution_id: UUID,
        student_id: UUID,
        as_of: Optional[date] = None,
    ) -> List[PenaltyAssessment]:
        """Penalty per outstanding item summed over the institution's active rules."""
        as_of = as_of or date.today()
        rules = await self.store.get_penalty_rules(institution_id)
        items = iteration_order(await self.store.get_outstanding_fee_items(student_id))
        totals: Dict[UUID, Decimal] = {}
        for item in items:
            totals[item.id] = sum((compute_penalty(item, rule, as_of) for rule in rules), Decimal("0.00"))
        return [
            PenaltyAssessment(
                fee_item_id=item.id,
                days_past_due=days_overdue(item.due_date, as_of),
                penalty_amount=totals[item.id],
            )
            for item in items
        ]
