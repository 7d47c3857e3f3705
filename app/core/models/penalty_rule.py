"""Institution-configured late-fee policy."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String, Uuid

from app.core.enums import PenaltyType
from app.db.session import Base


class PenaltyRule(Base):
    __tablename__ = "penalty_rules"
    __table_args__ = (
        CheckConstraint("penalty_type IN ('late_fee','interest')", name="chk_penalty_rule_type"),
        CheckConstraint("grace_period_days >= 0", name="chk_penalty_rule_grace_non_negative"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    institution_id = Column(Uuid, ForeignKey("institutions.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    penalty_type = Column(String(20), nullable=False, default=PenaltyType.late_fee.value)
    penalty_amount = Column(Numeric(12, 2), nullable=True)  # fixed late fee
    penalty_percentage = Column(Numeric(5, 2), nullable=True)
    grace_period_days = Column(Integer, nullable=False, default=0)
    is_compound = Column(Boolean, nullable=False, default=False)
    max_penalty_amount = Column(Numeric(12, 2), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
