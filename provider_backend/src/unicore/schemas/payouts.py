from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.unicore.schemas.common import utc_now


class PayoutStatus(str, Enum):
    """Payout lifecycle; only forward transitions are allowed."""

    pending = "Pending"
    processing = "Processing"
    completed = "Completed"
    failed = "Failed"


# Allowed next states for each status. Completed and Failed are terminal.
PAYOUT_TRANSITIONS: Dict[PayoutStatus, FrozenSet[PayoutStatus]] = {
    PayoutStatus.pending: frozenset({PayoutStatus.processing, PayoutStatus.completed, PayoutStatus.failed}),
    PayoutStatus.processing: frozenset({PayoutStatus.completed, PayoutStatus.failed}),
    PayoutStatus.completed: frozenset(),
    PayoutStatus.failed: frozenset(),
}


class Payout(BaseModel):
    """A payout to the provider; amount is fixed at creation."""

    model_config = ConfigDict(use_enum_values=True, validate_assignment=True)

    id: str = Field("", description="Payout id (document key, generated by the store).")
    date: datetime = Field(default_factory=utc_now, description="UTC timestamp the payout was requested.")
    amount: float = Field(0.0, ge=0, allow_inf_nan=False, description="Payout amount.")
    method: str = Field("", description="Payment method (e.g. 'bank_transfer').")
    status: PayoutStatus = Field(PayoutStatus.pending, description="Payout status.")


class PayoutCreate(BaseModel):
    """Request body for requesting a payout."""

    amount: float = Field(..., allow_inf_nan=False, description="Payout amount; must be positive.")
    method: str = Field(..., description="Payment method.")


class PayoutStatusUpdate(BaseModel):
    """Request body for moving a payout to a new status."""

    status: PayoutStatus = Field(..., description="Target status.")


class PayoutPage(BaseModel):
    """Envelope for listing payouts."""

    items: List[Payout] = Field(..., description="Payouts on this page.")
    total: int = Field(..., ge=0, description="Number of payouts returned.")
    next_cursor: Optional[str] = Field(
        default=None, description="Opaque token for the next page; absent when nothing was returned."
    )
