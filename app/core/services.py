"""Helpers shared by the fee services and the SQL fee store."""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ServiceError
from app.core.models import FeeAuditLog, Student


def to_uuid(val):
    if val is None:
        return None
    return val if isinstance(val, UUID) else UUID(str(val))


def to_decimal(val) -> Decimal:
    if val is None:
        return Decimal("0")
    return val if isinstance(val, Decimal) else Decimal(str(val))


def to_optional_decimal(val) -> Optional[Decimal]:
    return None if val is None else to_decimal(val)


async def log_fee_audit(
    db: AsyncSession,
    institution_id: UUID,
    reference_table: str,
    reference_id: UUID,
    action_type: str,
    old_value: Optional[dict],
    new_value: Optional[dict],
    changed_by: Optional[UUID],
) -> None:
    log = FeeAuditLog(
        institution_id=institution_id,
        reference_table=reference_table,
        reference_id=reference_id,
        action_type=action_type,
        old_value=old_value,
        new_value=new_value,
        changed_by=changed_by,
    )
    db.add(log)


async def get_student_or_404(db: AsyncSession, institution_id: UUID, student_id: UUID) -> Student:
    student = (
        await db.execute(
            select(Student).where(
                Student.id == student_id,
                Student.institution_id == institution_id,
                Student.is_active.is_(True),
            )
        )
    ).scalar_one_or_none()
    if not student:
        raise ServiceError("Student not found", status.HTTP_404_NOT_FOUND)
    return student
