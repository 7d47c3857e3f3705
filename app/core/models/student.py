import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from app.db.session import Base


class Student(Base):
    __tablename__ = "students"
    __table_args__ = (
        UniqueConstraint("institution_id", "admission_number", name="uq_student_admission_number"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    institution_id = Column(Uuid, ForeignKey("institutions.id", ondelete="CASCADE"), nullable=False, index=True)
    admission_number = Column(String(50), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    institution = relationship("Institution", back_populates="students")
    fee_items = relationship("StudentFeeItem", back_populates="student")

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)
