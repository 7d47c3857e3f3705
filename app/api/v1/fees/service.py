"""Fees service: student fee items, penalty rules, penalty preview and application. Financial changes are audited."""

import logging
from datetime import date
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import FeeItemStatus
from app.core.models import PenaltyRule, StudentFeeItem
from app.core.reconciliation import ReconciliationEngine
from app.core.services import get_student_or_404, log_fee_audit, to_decimal, to_optional_decimal, to_uuid
from app.db.fee_store import SqlAlchemyFeeStore

from .schemas import (
    FeeItemCreate,
    FeeItemResponse,
    OutstandingFeesResponse,
    PenaltyItem,
    PenaltyReport,
    PenaltyRuleCreate,
    PenaltyRuleResponse,
)

logger = logging.getLogger(__name__)


# --- Student Fee Items ---
def _item_to_response(item: StudentFeeItem) -> FeeItemResponse:
    return FeeItemResponse(
        id=to_uuid(item.id),
        institution_id=to_uuid(item.institution_id),
        student_id=to_uuid(item.student_id),
        name=item.name,
        owed_amount=to_decimal(item.owed_amount),
        paid_amount=to_decimal(item.paid_amount),
        outstanding_amount=item.outstanding_amount,
        penalty_amount=to_decimal(item.penalty_amount),
        due_date=item.due_date,
        status=item.status,
        created_at=item.created_at,
        updated_at=item.updated_at,
    )


async def add_fee_item(
    db: AsyncSession,
    institution_id: UUID,
    student_id: UUID,
    payload: FeeItemCreate,
    changed_by: Optional[UUID],
) -> FeeItemResponse:
    await get_student_or_404(db, institution_id, student_id)
    item = StudentFeeItem(
        institution_id=institution_id,
        student_id=student_id,
        name=payload.name.strip(),
        owed_amount=payload.owed_amount,
        paid_amount=Decimal("0"),
        penalty_amount=Decimal("0"),
        due_date=payload.due_date,
        # Nothing owed means nothing outstanding
        status=FeeItemStatus.paid.value if payload.owed_amount == 0 else FeeItemStatus.pending.value,
    )
    db.add(item)
    await db.flush()
    await log_fee_audit(
        db, institution_id, "student_fee_items", item.id,
        "CREATE",
        None,
        {"name": item.name, "owed_amount": str(payload.owed_amount), "due_date": payload.due_date.isoformat()},
        changed_by,
    )
    await db.commit()
    await db.refresh(item)
    return _item_to_response(item)


async def _outstanding_items(db: AsyncSession, institution_id: UUID, student_id: UUID) -> List[StudentFeeItem]:
    result = await db.execute(
        select(StudentFeeItem)
        .where(
            StudentFeeItem.institution_id == institution_id,
            StudentFeeItem.student_id == student_id,
            StudentFeeItem.paid_amount < StudentFeeItem.owed_amount,
        )
        .order_by(StudentFeeItem.due_date, StudentFeeItem.created_at)
    )
    return list(result.scalars().all())


async def get_outstanding_fees(
    db: AsyncSession,
    institution_id: UUID,
    student_id: UUID,
) -> OutstandingFeesResponse:
    await get_student_or_404(db, institution_id, student_id)
    items = [_item_to_response(i) for i in await _outstanding_items(db, institution_id, student_id)]
    return OutstandingFeesResponse(
        student_id=student_id,
        total_outstanding=sum((i.outstanding_amount for i in items), Decimal("0")),
        items=items,
    )


# --- Penalty Rules ---
def _rule_to_response(rule: PenaltyRule) -> PenaltyRuleResponse:
    return PenaltyRuleResponse(
        id=to_uuid(rule.id),
        institution_id=to_uuid(rule.institution_id),
        name=rule.name,
        penalty_type=rule.penalty_type,
        penalty_amount=to_optional_decimal(rule.penalty_amount),
        penalty_percentage=to_optional_decimal(rule.penalty_percentage),
        grace_period_days=rule.grace_period_days,
        is_compound=rule.is_compound,
        max_penalty_amount=to_optional_decimal(rule.max_penalty_amount),
        is_active=rule.is_active,
        created_at=rule.created_at,
    )


async def create_penalty_rule(
    db: AsyncSession,
    institution_id: UUID,
    payload: PenaltyRuleCreate,
) -> PenaltyRuleResponse:
    rule = PenaltyRule(
        institution_id=institution_id,
        name=payload.name.strip(),
        penalty_type=payload.penalty_type.value,
        penalty_amount=payload.penalty_amount,
        penalty_percentage=payload.penalty_percentage,
        grace_period_days=payload.grace_period_days,
        is_compound=payload.is_compound,
        max_penalty_amount=payload.max_penalty_amount,
        is_active=True,
    )
    db.add(rule)
    await db.commit()
    await db.refresh(rule)
    return _rule_to_response(rule)


async def list_penalty_rules(
    db: AsyncSession,
    institution_id: UUID,
    active_only: bool = True,
) -> List[PenaltyRuleResponse]:
    stmt = select(PenaltyRule).where(PenaltyRule.institution_id == institution_id)
    if active_only:
        stmt = stmt.where(PenaltyRule.is_active.is_(True))
    stmt = stmt.order_by(PenaltyRule.created_at)
    result = await db.execute(stmt)
    return [_rule_to_response(r) for r in result.scalars().all()]


# --- Penalties ---
async def get_penalty_report(
    db: AsyncSession,
    institution_id: UUID,
    student_id: UUID,
    as_of: Optional[date] = None,
) -> PenaltyReport:
    await get_student_or_404(db, institution_id, student_id)
    as_of = as_of or date.today()
    engine = ReconciliationEngine(SqlAlchemyFeeStore(db, institution_id))
    assessments = await engine.assess_penalties(institution_id, student_id, as_of)
    items_by_id = {to_uuid(i.id): i for i in await _outstanding_items(db, institution_id, student_id)}
    out = []
    for a in assessments:
        item = items_by_id[a.fee_item_id]
        out.append(
            PenaltyItem(
                fee_item_id=a.fee_item_id,
                fee_item_name=item.name,
                due_date=item.due_date,
                days_past_due=a.days_past_due,
                outstanding_amount=item.outstanding_amount,
                penalty_amount=a.penalty_amount,
            )
        )
    return PenaltyReport(
        student_id=student_id,
        as_of=as_of,
        total_penalty=sum((i.penalty_amount for i in out), Decimal("0.00")),
        items=out,
    )


async def apply_penalties(
    db: AsyncSession,
    institution_id: UUID,
    student_id: UUID,
    as_of: Optional[date] = None,
    changed_by: Optional[UUID] = None,
) -> PenaltyReport:
    """Store each outstanding item's assessed penalty; pending items with a penalty become overdue."""
    report = await get_penalty_report(db, institution_id, student_id, as_of)
    for line in report.items:
        item = await db.get(StudentFeeItem, line.fee_item_id)
        old_penalty = to_decimal(item.penalty_amount)
        old_status = item.status
        new_status = old_status
        if line.penalty_amount > 0 and old_status == FeeItemStatus.pending.value:
            new_status = FeeItemStatus.overdue.value
        if old_penalty == line.penalty_amount and old_status == new_status:
            continue
        item.penalty_amount = line.penalty_amount
        item.status = new_status
        await log_fee_audit(
            db, institution_id, "student_fee_items", item.id,
            "PENALTY",
            {"penalty_amount": str(old_penalty), "status": old_status},
            {"penalty_amount": str(line.penalty_amount), "status": new_status, "as_of": report.as_of.isoformat()},
            changed_by,
        )
    await db.commit()
    logger.info(
        "Applied penalties for student %s as of %s: total %s", student_id, report.as_of, report.total_penalty
    )
    return report
