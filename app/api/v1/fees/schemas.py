"""Fees schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from app.core.enums import FeeItemStatus, PenaltyType


# --- Student Fee Items ---
class FeeItemCreate(BaseModel):
    name: str = Field(..., max_length=255)
    owed_amount: Decimal = Field(..., ge=0, decimal_places=2)
    due_date: date


class FeeItemResponse(BaseModel):
    id: UUID
    institution_id: UUID
    student_id: UUID
    name: str
    owed_amount: Decimal
    paid_amount: Decimal
    outstanding_amount: Decimal
    penalty_amount: Decimal
    due_date: date
    status: FeeItemStatus
    created_at: datetime
    updated_at: datetime


class OutstandingFeesResponse(BaseModel):
    student_id: UUID
    total_outstanding: Decimal
    items: List[FeeItemResponse]


# --- Penalty Rules ---
class PenaltyRuleCreate(BaseModel):
    name: str = Field(..., max_length=255)
    penalty_type: PenaltyType
    penalty_amount: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    penalty_percentage: Optional[Decimal] = Field(None, ge=0, le=100, decimal_places=2)
    grace_period_days: int = Field(0, ge=0)
    is_compound: bool = False
    max_penalty_amount: Optional[Decimal] = Field(None, ge=0, decimal_places=2)

    @model_validator(mode="after")
    def validate_rate(self) -> "PenaltyRuleCreate":
        if self.penalty_type == PenaltyType.late_fee:
            if self.penalty_amount is None and self.penalty_percentage is None:
                raise ValueError("late_fee rule needs penalty_amount or penalty_percentage")
        elif self.penalty_percentage is None:
            raise ValueError("interest rule needs penalty_percentage")
        return self


class PenaltyRuleResponse(BaseModel):
    id: UUID
    institution_id: UUID
    name: str
    penalty_type: PenaltyType
    penalty_amount: Optional[Decimal] = None
    penalty_percentage: Optional[Decimal] = None
    grace_period_days: int
    is_compound: bool
    max_penalty_amount: Optional[Decimal] = None
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


# --- Penalties ---
class PenaltyItem(BaseModel):
    fee_item_id: UUID
    fee_item_name: Optional[str] = None
    due_date: date
    days_past_due: int
    outstanding_amount: Decimal
    penalty_amount: Decimal


class PenaltyReport(BaseModel):
    student_id: UUID
    as_of: date
    total_penalty: Decimal
    items: List[PenaltyItem]
