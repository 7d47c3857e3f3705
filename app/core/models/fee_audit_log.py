"""Fee audit log: immutable financial change tracking for audit safety."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, Uuid

from app.db.session import Base


class FeeAuditLog(Base):
    """Immutable audit trail for payments, status transitions and penalty assessments."""

    __tablename__ = "fee_audit_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    institution_id = Column(Uuid, ForeignKey("institutions.id", ondelete="CASCADE"), nullable=False, index=True)
    reference_table = Column(String(50), nullable=False)
    reference_id = Column(Uuid, nullable=False)
    action_type = Column(String(30), nullable=False)  # CREATE, UPDATE, STATUS_CHANGE, PENALTY
    old_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)
    changed_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
