from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class _ReconciliationError(ServiceError):
    default_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    retryable = False

    def __init__(self, message: str, status_code: int = None) -> None:
        super().__init__(message, status_code or self.default_status)


class ValidationError(_ReconciliationError):
    """Bad input shape, detected before any storage access."""

    default_status = status.HTTP_400_BAD_REQUEST


class InvalidFeeItems(_ReconciliationError):
    """Selected fee items are missing, not owned by the student, or already settled."""

    default_status = status.HTTP_400_BAD_REQUEST


class AmountExceedsOutstanding(_ReconciliationError):
    default_status = status.HTTP_400_BAD_REQUEST


class InvalidRule(_ReconciliationError):
    """Penalty rule lacks the amount or percentage its type needs."""

    default_status = status.HTTP_400_BAD_REQUEST


class ConcurrentModification(_ReconciliationError):
    """Outstanding amounts changed between validation and write. Callers retry the whole operation."""

    default_status = status.HTTP_409_CONFLICT
    retryable = True


class IdempotencyKeyReused(_ReconciliationError):
    """Idempotency key already belongs to a payment for another student or amount."""

    default_status = status.HTTP_409_CONFLICT


class AllocationMismatch(_ReconciliationError):
    """Allocated lines do not add up to the tendered amount. Always a defect."""

    default_status = status.HTTP_500_INTERNAL_SERVER_ERROR


class StorageFailure(_ReconciliationError):
    default_status = status.HTTP_500_INTERNAL_SERVER_ERROR
