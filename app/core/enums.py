from enum import Enum


class FeeItemStatus(str, Enum):
    pending = "pending"
    partial = "partial"
    paid = "paid"
    overdue = "overdue"


class PenaltyType(str, Enum):
    late_fee = "late_fee"
    interest = "interest"


class PaymentStatus(str, Enum):
    pending = "pending"
    completed = "completed"
    failed = "failed"
    refunded = "refunded"


class PaymentMethod(str, Enum):
    cash = "cash"
    card = "card"
    upi = "upi"
    net_banking = "net_banking"
    cheque = "cheque"
    bank_transfer = "bank_transfer"


PAYMENT_STATUS_TRANSITIONS = {
    PaymentStatus.pending: {PaymentStatus.completed, PaymentStatus.failed, PaymentStatus.refunded},
    PaymentStatus.completed: {PaymentStatus.refunded},
    PaymentStatus.failed: set(),
    PaymentStatus.refunded: set(),
}
