"""Payment: one tender by a student, split across fee items through payment_allocations."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from app.core.enums import PaymentStatus
from app.db.session import Base


class Payment(Base):
    """Immutable after creation except payment_status."""

    __tablename__ = "payments"
    __table_args__ = (
        UniqueConstraint("institution_id", "receipt_number", name="uq_payment_receipt_number"),
        UniqueConstraint("institution_id", "idempotency_key", name="uq_payment_idempotency_key"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    institution_id = Column(Uuid, ForeignKey("institutions.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(Uuid, ForeignKey("students.id", ondelete="RESTRICT"), nullable=False, index=True)
    receipt_number = Column(String(50), nullable=False)
    total_outstanding_at_time = Column(Numeric(12, 2), nullable=False)
    tendered_amount = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(String(30), nullable=False)  # cash, card, upi, net_banking, cheque, bank_transfer
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.pending.value)
    notes = Column(Text, nullable=True)
    collected_by = Column(Uuid, nullable=True)
    idempotency_key = Column(String(100), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    student = relationship("Student")
    allocations = relationship(
        "PaymentAllocation",
        back_populates="payment",
        cascade="all, delete-orphan",
        order_by="PaymentAllocation.created_at",
    )


class PaymentAllocation(Base):
    """How much of a payment went to one fee item."""

    __tablename__ = "payment_allocations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    payment_id = Column(Uuid, ForeignKey("payments.id", ondelete="CASCADE"), nullable=False, index=True)
    # RESTRICT: a fee item referenced by a payment is never deleted
    student_fee_item_id = Column(
        Uuid,
        ForeignKey("student_fee_items.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    allocated_amount = Column(Numeric(12, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    payment = relationship("Payment", back_populates="allocations")
    fee_item = relationship("StudentFeeItem")
