"""Student fee item: one charge line owed by a student. paid_amount/status change only through reconciliation."""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Numeric, String, Uuid
from sqlalchemy.orm import relationship

from app.core.enums import FeeItemStatus
from app.db.session import Base


class StudentFeeItem(Base):
    """
    Charge owed by one student, derived from a fee plan.
    outstanding_amount = owed_amount - paid_amount and is never stored.
    """

    __tablename__ = "student_fee_items"
    __table_args__ = (
        CheckConstraint("owed_amount >= 0", name="chk_student_fee_item_owed_non_negative"),
        CheckConstraint("paid_amount >= 0", name="chk_student_fee_item_paid_non_negative"),
        CheckConstraint("paid_amount <= owed_amount", name="chk_student_fee_item_paid_le_owed"),
        CheckConstraint(
            "status IN ('pending','partial','paid','overdue')",
            name="chk_student_fee_item_status",
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    institution_id = Column(Uuid, ForeignKey("institutions.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(Uuid, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    owed_amount = Column(Numeric(12, 2), nullable=False)
    paid_amount = Column(Numeric(12, 2), nullable=False, default=0)
    # Last assessed late penalty; kept apart from owed_amount
    penalty_amount = Column(Numeric(12, 2), nullable=False, default=0)
    due_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default=FeeItemStatus.pending.value)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    student = relationship("Student", back_populates="fee_items")

    @property
    def outstanding_amount(self) -> Decimal:
        return Decimal(str(self.owed_amount or 0)) - Decimal(str(self.paid_amount or 0))
