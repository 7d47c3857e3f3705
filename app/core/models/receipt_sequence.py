"""Per-institution, per-year receipt counter. Row is locked while a payment is inserted."""

from sqlalchemy import Column, ForeignKey, Integer, Uuid

from app.db.session import Base


class ReceiptSequence(Base):
    __tablename__ = "receipt_sequences"

    institution_id = Column(Uuid, ForeignKey("institutions.id", ondelete="CASCADE"), primary_key=True)
    year = Column(Integer, primary_key=True)
    last_value = Column(Integer, nullable=False, default=0)
