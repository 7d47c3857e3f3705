from app.core.models.institution import Institution
from app.core.models.student import Student
from app.core.models.student_fee_item import StudentFeeItem
from app.core.models.penalty_rule import PenaltyRule
from app.core.models.payment import Payment, PaymentAllocation
from app.core.models.receipt_sequence import ReceiptSequence
from app.core.models.fee_audit_log import FeeAuditLog

__all__ = [
    "Institution",
    "Student",
    "StudentFeeItem",
    "PenaltyRule",
    "Payment",
    "PaymentAllocation",
    "ReceiptSequence",
    "FeeAuditLog",
]
