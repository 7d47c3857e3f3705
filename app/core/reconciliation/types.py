"""Value objects passed between the reconciliation engine and its storage collaborator."""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from app.core.enums import FeeItemStatus, PaymentMethod, PaymentStatus, PenaltyType


@dataclass(frozen=True)
class FeeItemState:
    """Snapshot of one fee item as read from storage."""

    id: UUID
    owed_amount: Decimal
    paid_amount: Decimal
    due_date: date
    status: FeeItemStatus = FeeItemStatus.pending
    name: Optional[str] = None

    @property
    def outstanding_amount(self) -> Decimal:
        return self.owed_amount - self.paid_amount


@dataclass(frozen=True)
class PenaltyRuleSpec:
    penalty_type: PenaltyType
    grace_period_days: int = 0
    penalty_amount: Optional[Decimal] = None
    penalty_percentage: Optional[Decimal] = None
    is_compound: bool = False
    max_penalty_amount: Optional[Decimal] = None
    id: Optional[UUID] = None
    name: Optional[str] = None


@dataclass(frozen=True)
class InstitutionRef:
    id: UUID
    code: str


@dataclass(frozen=True)
class AllocationLine:
    fee_item_id: UUID
    outstanding_before: Decimal
    allocated_amount: Decimal


@dataclass(frozen=True)
class ItemUpdate:
    """New paid amount/status for one item. expected_paid_amount is what validation read."""

    fee_item_id: UUID
    expected_paid_amount: Decimal
    new_paid_amount: Decimal
    old_status: FeeItemStatus
    new_status: FeeItemStatus


@dataclass(frozen=True)
class PaymentDraft:
    institution_id: UUID
    student_id: UUID
    receipt_number: str
    total_outstanding_at_time: Decimal
    tendered_amount: Decimal
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    paid_at: datetime
    notes: Optional[str] = None
    collected_by: Optional[UUID] = None
    idempotency_key: Optional[str] = None


@dataclass(frozen=True)
class PaymentRecord:
    """A persisted payment as returned by the store."""

    id: UUID
    institution_id: UUID
    student_id: UUID
    receipt_number: str
    total_outstanding_at_time: Decimal
    tendered_amount: Decimal
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    paid_at: datetime
    created_at: datetime
    notes: Optional[str] = None
    collected_by: Optional[UUID] = None
    idempotency_key: Optional[str] = None


@dataclass(frozen=True)
class AllocationOutcome:
    fee_item_id: UUID
    allocated_amount: Decimal
    new_status: FeeItemStatus


@dataclass(frozen=True)
class ReconciliationResult:
    payment: PaymentRecord
    allocations: List[AllocationOutcome] = field(default_factory=list)
    replayed: bool = False

    @property
    def receipt_number(self) -> str:
        return self.payment.receipt_number


@dataclass(frozen=True)
class PenaltyAssessment:
    fee_item_id: UUID
    days_past_due: int
    penalty_amount: Decimal
