"""Payments service: record a tender through the reconciliation engine, read payments, move payment status."""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.enums import PAYMENT_STATUS_TRANSITIONS, PaymentStatus
from app.core.exceptions import ServiceError, ValidationError
from app.core.models import Institution, Payment, PaymentAllocation
from app.core.reconciliation import InstitutionRef, ReconciliationEngine
from app.core.services import get_student_or_404, log_fee_audit, to_decimal, to_uuid
from app.db.fee_store import SqlAlchemyFeeStore

from .schemas import (
    AllocatedFeeItem,
    PaymentAllocationResponse,
    PaymentCreate,
    PaymentCreateResponse,
    PaymentResponse,
    PaymentStatusUpdate,
)

logger = logging.getLogger(__name__)

INITIAL_PAYMENT_STATUSES = (PaymentStatus.pending, PaymentStatus.completed)


def _payment_to_response(payment: Payment) -> PaymentResponse:
    return PaymentResponse(
        id=to_uuid(payment.id),
        institution_id=to_uuid(payment.institution_id),
        student_id=to_uuid(payment.student_id),
        receipt_number=payment.receipt_number,
        total_outstanding_at_time=to_decimal(payment.total_outstanding_at_time),
        tendered_amount=to_decimal(payment.tendered_amount),
        payment_method=payment.payment_method,
        payment_status=payment.payment_status,
        notes=payment.notes,
        collected_by=to_uuid(payment.collected_by),
        idempotency_key=payment.idempotency_key,
        paid_at=payment.paid_at,
        created_at=payment.created_at,
        allocations=[
            PaymentAllocationResponse(
                fee_item_id=to_uuid(a.student_fee_item_id),
                fee_item_name=a.fee_item.name if a.fee_item else None,
                allocated_amount=to_decimal(a.allocated_amount),
            )
            for a in payment.allocations
        ],
    )


async def _load_payment(db: AsyncSession, institution_id: UUID, payment_id: UUID) -> Optional[Payment]:
    return (
        await db.execute(
            select(Payment)
            .options(selectinload(Payment.allocations).selectinload(PaymentAllocation.fee_item))
            .where(Payment.id == payment_id, Payment.institution_id == institution_id)
            .execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()


async def create_payment(
    db: AsyncSession,
    institution: Institution,
    payload: PaymentCreate,
    collected_by: Optional[UUID],
) -> PaymentCreateResponse:
    # Plain values: a failed write rolls the session back and expires loaded ORM objects
    tenant = InstitutionRef(id=to_uuid(institution.id), code=institution.code)
    if payload.payment_status not in INITIAL_PAYMENT_STATUSES:
        raise ValidationError("A new payment can only be pending or completed")
    await get_student_or_404(db, tenant.id, payload.student_id)

    engine = ReconciliationEngine(SqlAlchemyFeeStore(db, tenant.id, changed_by=collected_by))
    result = await engine.allocate_payment(
        tenant,
        student_id=payload.student_id,
        fee_item_ids=payload.fee_item_ids,
        tendered_amount=payload.tendered_amount,
        payment_method=payload.payment_method,
        payment_status=payload.payment_status,
        notes=(payload.notes or "").strip() or None,
        collected_by=collected_by,
        idempotency_key=(payload.idempotency_key or "").strip() or None,
        paid_at=payload.paid_at,
    )
    payment = await _load_payment(db, tenant.id, result.payment.id)
    return PaymentCreateResponse(
        payment=_payment_to_response(payment),
        receipt_number=result.receipt_number,
        fee_items=[
            AllocatedFeeItem(
                fee_item_id=o.fee_item_id,
                allocated_amount=o.allocated_amount,
                new_status=o.new_status,
            )
            for o in result.allocations
        ],
        replayed=result.replayed,
    )


async def get_payment(db: AsyncSession, institution_id: UUID, payment_id: UUID) -> Optional[PaymentResponse]:
    payment = await _load_payment(db, institution_id, payment_id)
    return _payment_to_response(payment) if payment else None


async def list_payments(
    db: AsyncSession,
    institution_id: UUID,
    student_id: Optional[UUID] = None,
    payment_status: Optional[PaymentStatus] = None,
) -> List[PaymentResponse]:
    stmt = (
        select(Payment)
        .options(selectinload(Payment.allocations).selectinload(PaymentAllocation.fee_item))
        .where(Payment.institution_id == institution_id)
    )
    if student_id is not None:
        stmt = stmt.where(Payment.student_id == student_id)
    if payment_status is not None:
        stmt = stmt.where(Payment.payment_status == payment_status.value)
    stmt = stmt.order_by(Payment.paid_at.desc(), Payment.receipt_number.desc()).execution_options(
        populate_existing=True
    )
    result = await db.execute(stmt)
    return [_payment_to_response(p) for p in result.scalars().all()]


async def update_payment_status(
    db: AsyncSession,
    institution_id: UUID,
    payment_id: UUID,
    payload: PaymentStatusUpdate,
    changed_by: Optional[UUID],
) -> PaymentResponse:
    payment = await _load_payment(db, institution_id, payment_id)
    if not payment:
        raise ServiceError("Payment not found", status.HTTP_404_NOT_FOUND)
    old_status = PaymentStatus(payment.payment_status)
    new_status = payload.payment_status
    if new_status not in PAYMENT_STATUS_TRANSITIONS[old_status]:
        raise ServiceError(
            f"Cannot move payment from {old_status.value} to {new_status.value}",
            status.HTTP_409_CONFLICT,
        )
    payment.payment_status = new_status.value
    if payload.notes is not None:
        payment.notes = payload.notes.strip() or None
    await log_fee_audit(
        db, institution_id, "payments", payment.id,
        "STATUS_CHANGE",
        {"payment_status": old_status.value},
        {"payment_status": new_status.value},
        changed_by,
    )
    await db.commit()
    logger.info("Payment %s moved from %s to %s", payment.receipt_number, old_status.value, new_status.value)
    payment = await _load_payment(db, institution_id, payment_id)
    return _payment_to_response(payment)
