from __future__ import annotations

import logging
import math
from typing import List, Optional

from src.unicore.db.repository import DocumentRepository, Page, PageCursor
from src.unicore.errors import ConflictError, InvalidInputError, NotFoundError
from src.unicore.schemas.common import utc_now
from src.unicore.schemas.payouts import PAYOUT_TRANSITIONS, Payout, PayoutStatus

logger = logging.getLogger(__name__)


def _payout_status(value: PayoutStatus | str) -> PayoutStatus:
    try:
        return PayoutStatus(value)
    except ValueError:
        raise InvalidInputError(f"unknown status {value!r}") from None


def _positive_amount(value: float) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        raise InvalidInputError("amount must be a number") from None
    if not math.isfinite(v) or v <= 0:
        raise InvalidInputError("amount must be a positive finite number")
    return v


class PayoutStore:
    """Payouts keyed by store-generated ids. Amount is immutable; status only moves forward."""

    def __init__(self, repository: DocumentRepository[Payout]):
        self._repository = repository

    @property
    def repository(self) -> DocumentRepository[Payout]:
        return self._repository

    # PUBLIC_INTERFACE
    def get_by_id(self, payout_id: str) -> Optional[Payout]:
        return self._repository.get(payout_id)

    # PUBLIC_INTERFACE
    def list_all(self) -> List[Payout]:
        return self._repository.list()

    # PUBLIC_INTERFACE
    def get_by_status(self, status: PayoutStatus | str) -> List[Payout]:
        return self._repository.where_equal("status", _payout_status(status))

    # PUBLIC_INTERFACE
    def page(self, page_size: int, cursor: Optional[PageCursor] = None) -> Page:
        return self._repository.page(page_size, cursor)

    # PUBLIC_INTERFACE
    def create(self, amount: float, method: str) -> Payout:
        """Record a new Pending payout dated now."""
        amount = _positive_amount(amount)
        if not (method or "").strip():
            raise InvalidInputError("method is required")

        payout = Payout(date=utc_now(), amount=amount, method=method.strip(), status=PayoutStatus.pending)
        payout.id = self._repository.create(payout)
        logger.info("Created payout id=%s amount=%s method=%s", payout.id, payout.amount, payout.method)
        return payout

    # PUBLIC_INTERFACE
    def update_status(self, payout_id: str, status: PayoutStatus | str) -> Payout:
        """
        Move a payout to `status`.

        NotFoundError if the payout is missing. ConflictError for a backward or terminal transition,
        or when another writer moved the payout after it was read (the write is conditional on the
        status that was checked).
        Re-applying the current status is a no-op.
        """
        target = _payout_status(status)
        payout = self._repository.get(payout_id)
        if payout is None:
            raise NotFoundError("Payout", payout_id)

        current = PayoutStatus(payout.status)
        if current == target:
            return payout
        if target not in PAYOUT_TRANSITIONS[current]:
            raise ConflictError(f"payout {payout_id} cannot move from {current.value} to {target.value}")

        if not self._repository.update_if(payout_id, {"status": current}, {"status": target}):
            raise ConflictError(f"payout {payout_id} changed concurrently; it is no longer {current.value}")
        payout.status = target
        logger.info("Payout id=%s status %s -> %s", payout_id, current.value, target.value)
        return payout

    # PUBLIC_INTERFACE
    def delete(self, payout_id: str) -> None:
        """Delete a payout; missing ids are ignored."""
        self._repository.delete(payout_id)
