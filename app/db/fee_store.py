"""SQLAlchemy implementation of the reconciliation FeeStore, scoped to one institution and one session."""

import logging
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.enums import FeeItemStatus, PaymentMethod, PaymentStatus, PenaltyType
from app.core.exceptions import ConcurrentModification, StorageFailure
from app.core.models import Payment, PaymentAllocation, PenaltyRule, ReceiptSequence, StudentFeeItem
from app.core.reconciliation.types import (
    AllocationLine,
    FeeItemState,
    ItemUpdate,
    PaymentDraft,
    PaymentRecord,
    PenaltyRuleSpec,
)
from app.core.services import log_fee_audit, to_decimal, to_optional_decimal, to_uuid

logger = logging.getLogger(__name__)


def fee_item_state(item: StudentFeeItem) -> FeeItemState:
    return FeeItemState(
        id=to_uuid(item.id),
        owed_amount=to_decimal(item.owed_amount),
        paid_amount=to_decimal(item.paid_amount),
        due_date=item.due_date,
        status=FeeItemStatus(item.status),
        name=item.name,
    )


def penalty_rule_spec(rule: PenaltyRule) -> PenaltyRuleSpec:
    return PenaltyRuleSpec(
        id=to_uuid(rule.id),
        name=rule.name,
        penalty_type=PenaltyType(rule.penalty_type),
        grace_period_days=rule.grace_period_days or 0,
        penalty_amount=to_optional_decimal(rule.penalty_amount),
        penalty_percentage=to_optional_decimal(rule.penalty_percentage),
        is_compound=bool(rule.is_compound),
        max_penalty_amount=to_optional_decimal(rule.max_penalty_amount),
    )


def payment_record(payment: Payment) -> PaymentRecord:
    return PaymentRecord(
        id=to_uuid(payment.id),
        institution_id=to_uuid(payment.institution_id),
        student_id=to_uuid(payment.student_id),
        receipt_number=payment.receipt_number,
        total_outstanding_at_time=to_decimal(payment.total_outstanding_at_time),
        tendered_amount=to_decimal(payment.tendered_amount),
        payment_method=PaymentMethod(payment.payment_method),
        payment_status=PaymentStatus(payment.payment_status),
        paid_at=payment.paid_at,
        created_at=payment.created_at,
        notes=payment.notes,
        collected_by=to_uuid(payment.collected_by),
        idempotency_key=payment.idempotency_key,
    )


class SqlAlchemyFeeStore:
    """
    Every write of one payment happens inside the session's current transaction:
    the receipt counter bump, the fee item updates, the payment and its allocations
    are committed together or rolled back together.
    """

    def __init__(self, db: AsyncSession, institution_id: UUID, changed_by: Optional[UUID] = None) -> None:
        self.db = db
        self.institution_id = institution_id
        self.changed_by = changed_by

    async def get_outstanding_fee_items(
        self, student_id: UUID, item_ids: Optional[Sequence[UUID]] = None
    ) -> List[FeeItemState]:
        stmt = select(StudentFeeItem).where(
            StudentFeeItem.institution_id == self.institution_id,
            StudentFeeItem.student_id == student_id,
            StudentFeeItem.paid_amount < StudentFeeItem.owed_amount,
        )
        if item_ids is not None:
            stmt = stmt.where(StudentFeeItem.id.in_(list(item_ids)))
        stmt = stmt.order_by(StudentFeeItem.due_date, StudentFeeItem.created_at)
        result = await self.db.execute(stmt)
        return [fee_item_state(item) for item in result.scalars().all()]

    async def get_penalty_rules(self, institution_id: UUID) -> List[PenaltyRuleSpec]:
        result = await self.db.execute(
            select(PenaltyRule)
            .where(
                PenaltyRule.institution_id == institution_id,
                PenaltyRule.is_active.is_(True),
            )
            .order_by(PenaltyRule.created_at)
        )
        return [penalty_rule_spec(rule) for rule in result.scalars().all()]

    async def find_payment_by_idempotency_key(
        self, institution_id: UUID, idempotency_key: str
    ) -> Optional[PaymentRecord]:
        payment = (
            await self.db.execute(
                select(Payment).where(
                    Payment.institution_id == institution_id,
                    Payment.idempotency_key == idempotency_key,
                )
            )
        ).scalar_one_or_none()
        return payment_record(payment) if payment else None

    async def next_receipt_sequence(self, institution_id: UUID, year: int) -> int:
        for _ in range(max(1, settings.receipt_sequence_max_retries)):
            counter = (
                await self.db.execute(
                    select(ReceiptSequence)
                    .where(
                        ReceiptSequence.institution_id == institution_id,
                        ReceiptSequence.year == year,
                    )
                    .with_for_update()
                    .execution_options(populate_existing=True)
                )
            ).scalar_one_or_none()
            if counter is None:
                counter = ReceiptSequence(institution_id=institution_id, year=year, last_value=0)
                try:
                    # SAVEPOINT: a lost race only undoes the counter insert, not the request's session
                    async with self.db.begin_nested():
                        self.db.add(counter)
                        await self.db.flush()
                except IntegrityError:
                    logger.info("Receipt counter for %s/%s created concurrently, retrying", institution_id, year)
                    continue
            counter.last_value = (counter.last_value or 0) + 1
            await self.db.flush()
            return counter.last_value
        raise ConcurrentModification("Could not reserve a receipt number, please retry")

    async def write_payment_atomic(
        self,
        payment: PaymentDraft,
        allocations: Sequence[AllocationLine],
        item_updates: Sequence[ItemUpdate],
    ) -> PaymentRecord:
        try:
            for update in item_updates:
                item = (
                    await self.db.execute(
                        select(StudentFeeItem)
                        .where(
                            StudentFeeItem.id == update.fee_item_id,
                            StudentFeeItem.institution_id == self.institution_id,
                        )
                        .with_for_update()
                        .execution_options(populate_existing=True)
                    )
                ).scalar_one_or_none()
                if item is None or to_decimal(item.paid_amount) != update.expected_paid_amount:
                    raise ConcurrentModification(
                        f"Fee item {update.fee_item_id} changed while the payment was being recorded"
                    )
                item.paid_amount = update.new_paid_amount
                item.status = update.new_status.value

            pay = Payment(
                institution_id=payment.institution_id,
                student_id=payment.student_id,
                receipt_number=payment.receipt_number,
                total_outstanding_at_time=payment.total_outstanding_at_time,
                tendered_amount=payment.tendered_amount,
                payment_method=payment.payment_method.value,
                payment_status=payment.payment_status.value,
                notes=payment.notes,
                collected_by=payment.collected_by,
                idempotency_key=payment.idempotency_key,
                paid_at=payment.paid_at,
            )
            self.db.add(pay)
            await self.db.flush()
            for line in allocations:
                self.db.add(
                    PaymentAllocation(
                        payment_id=pay.id,
                        student_fee_item_id=line.fee_item_id,
                        allocated_amount=line.allocated_amount,
                    )
                )
            await log_fee_audit(
                self.db, self.institution_id, "payments", pay.id,
                "CREATE",
                None,
                {
                    "receipt_number": pay.receipt_number,
                    "tendered_amount": str(payment.tendered_amount),
                    "payment_method": pay.payment_method,
                    "allocations": {str(line.fee_item_id): str(line.allocated_amount) for line in allocations},
                },
                self.changed_by,
            )
            for update in item_updates:
                await log_fee_audit(
                    self.db, self.institution_id, "student_fee_items", update.fee_item_id,
                    "UPDATE",
                    {"paid_amount": str(update.expected_paid_amount), "status": update.old_status.value},
                    {"paid_amount": str(update.new_paid_amount), "status": update.new_status.value},
                    self.changed_by,
                )
            await self.db.commit()
        except ConcurrentModification:
            await self.db.rollback()
            raise
        except IntegrityError as e:
            await self.db.rollback()
            raise ConcurrentModification("Receipt number or idempotency key already used, please retry") from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.exception("Storage failure while writing payment %s", payment.receipt_number)
            raise StorageFailure("Failed to record payment") from e
        await self.db.refresh(pay)
        return payment_record(pay)

    async def discard(self) -> None:
        await self.db.rollback()
