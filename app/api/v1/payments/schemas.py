"""Payments schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.core.enums import FeeItemStatus, PaymentMethod, PaymentStatus


class PaymentCreate(BaseModel):
    student_id: UUID
    fee_item_ids: List[UUID] = Field(..., min_length=1)
    tendered_amount: Decimal = Field(..., gt=0, decimal_places=2)
    payment_method: PaymentMethod
    payment_status: PaymentStatus = Field(
        PaymentStatus.pending, description="pending or completed at creation"
    )
    notes: Optional[str] = None
    idempotency_key: Optional[str] = Field(None, max_length=100)
    paid_at: Optional[datetime] = None


class PaymentStatusUpdate(BaseModel):
    payment_status: PaymentStatus
    notes: Optional[str] = None


class PaymentAllocationResponse(BaseModel):
    fee_item_id: UUID
    fee_item_name: Optional[str] = None
    allocated_amount: Decimal


class AllocatedFeeItem(BaseModel):
    """Per-item outcome of the payment that was just recorded."""

    fee_item_id: UUID
    allocated_amount: Decimal
    new_status: FeeItemStatus


class PaymentResponse(BaseModel):
    id: UUID
    institution_id: UUID
    student_id: UUID
    receipt_number: str
    total_outstanding_at_time: Decimal
    tendered_amount: Decimal
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    notes: Optional[str] = None
    collected_by: Optional[UUID] = None
    idempotency_key: Optional[str] = None
    paid_at: datetime
    created_at: datetime
    allocations: List[PaymentAllocationResponse] = Field(default_factory=list)


class PaymentCreateResponse(BaseModel):
    payment: PaymentResponse
    receipt_number: str
    fee_items: List[AllocatedFeeItem] = Field(default_factory=list)
    replayed: bool = False
