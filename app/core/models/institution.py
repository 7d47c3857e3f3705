import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, String, Uuid
from sqlalchemy.orm import relationship

from app.db.session import Base


class Institution(Base):
    """
    Institution (tenant) in the multi-tenant platform.

    - id: Internal primary key. Used for all FKs and tenant scoping.
    - code: Short public code (e.g. GVS). Prefix of every receipt number the institution issues.
    """

    __tablename__ = "institutions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    code = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)

    students = relationship("Student", back_populates="institution", cascade="all, delete-orphan")
