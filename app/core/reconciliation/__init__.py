"""Fee reconciliation: payment allocation across fee items and late-penalty computation."""

from .allocation import allocate_proportionally, derive_status
from .engine import ReconciliationEngine
from .penalty import compute_penalty, days_overdue
from .receipts import format_receipt_number
from .store import FeeStore
from .types import (
    AllocationLine,
    AllocationOutcome,
    FeeItemState,
    InstitutionRef,
    ItemUpdate,
    PaymentDraft,
    PaymentRecord,
    PenaltyAssessment,
    PenaltyRuleSpec,
    ReconciliationResult,
)

__all__ = [
    "AllocationLine",
    "AllocationOutcome",
    "FeeItemState",
    "FeeStore",
    "InstitutionRef",
    "ItemUpdate",
    "PaymentDraft",
    "PaymentRecord",
    "PenaltyAssessment",
    "PenaltyRuleSpec",
    "ReconciliationEngine",
    "ReconciliationResult",
    "allocate_proportionally",
    "compute_penalty",
    "days_overdue",
    "derive_status",
    "format_receipt_number",
]
