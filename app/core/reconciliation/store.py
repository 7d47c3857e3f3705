"""Storage contract the reconciliation engine is written against."""

from typing import List, Optional, Protocol, Sequence
from uuid import UUID

from .types import AllocationLine, FeeItemState, ItemUpdate, PaymentDraft, PaymentRecord, PenaltyRuleSpec


class FeeStore(Protocol):
    async def get_outstanding_fee_items(
        self, student_id: UUID, item_ids: Optional[Sequence[UUID]] = None
    ) -> List[FeeItemState]:
        """Items owned by student_id with outstanding_amount > 0, restricted to item_ids when given."""
        ...

    async def get_penalty_rules(self, institution_id: UUID) -> List[PenaltyRuleSpec]:
        """Active penalty rules of the institution."""
        ...

    async def find_payment_by_idempotency_key(
        self, institution_id: UUID, idempotency_key: str
    ) -> Optional[PaymentRecord]:
        ...

    async def next_receipt_sequence(self, institution_id: UUID, year: int) -> int:
        """Atomically reserve the next receipt number for institution/year."""
        ...

    async def write_payment_atomic(
        self,
        payment: PaymentDraft,
        allocations: Sequence[AllocationLine],
        item_updates: Sequence[ItemUpdate],
    ) -> PaymentRecord:
        """
        Persist item updates, payment and allocations as one unit.
        Raises ConcurrentModification if any item's paid amount moved since it was read.
        Leaves nothing behind on failure.
        """
        ...

    async def discard(self) -> None:
        """Drop anything reserved in the current unit of work (e.g. a receipt sequence)."""
        ...
