from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, Request, status

from src.unicore.dependencies import cursor_token, parse_cursor, require_identity, resolve_page_size
from src.unicore.errors import NotFoundError
from src.unicore.schemas.common import ErrorResponse
from src.unicore.schemas.payouts import Payout, PayoutCreate, PayoutPage, PayoutStatus, PayoutStatusUpdate
from src.unicore.state import get_state

router = APIRouter(
    prefix="/api/payouts",
    tags=["Payouts"],
    dependencies=[Depends(require_identity)],
    responses={401: {"model": ErrorResponse}},
)


@router.get(
    "",
    response_model=PayoutPage,
    responses={400: {"model": ErrorResponse}},
    summary="List payouts",
    description="List payouts by `status`, or page through all payouts with `limit` and `cursor`.",
    operation_id="list_payouts",
)
def list_payouts(
    request: Request,
    status_filter: Optional[PayoutStatus] = Query(default=None, alias="status", description="Only payouts in this status."),
    limit: Optional[int] = Query(default=None, ge=1, description="Page size."),
    cursor: Optional[str] = Query(default=None, description="Opaque cursor from a previous page."),
) -> PayoutPage:
    """List payouts."""
    store = get_state(request.app).payouts
    if status_filter is not None:
        items = store.get_by_status(status_filter)
        return PayoutPage(items=items, total=len(items), next_cursor=None)

    page = store.page(resolve_page_size(request, limit), parse_cursor(request, cursor))
    return PayoutPage(
        items=page.items,
        total=len(page.items),
        next_cursor=cursor_token(request, page.next_cursor),
    )


@router.post(
    "",
    response_model=Payout,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
    summary="Request payout",
    description="Create a Pending payout dated now.",
    operation_id="create_payout",
)
def create_payout(request: Request, payload: PayoutCreate) -> Payout:
    """Create a payout."""
    return get_state(request.app).payouts.create(payload.amount, payload.method)


@router.get(
    "/{payout_id}",
    response_model=Payout,
    responses={404: {"model": ErrorResponse}},
    summary="Get payout",
    description="Fetch a single payout by id.",
    operation_id="get_payout",
)
def get_payout(request: Request, payout_id: str = Path(..., description="Payout identifier")) -> Payout:
    """Fetch a payout by id."""
    payout = get_state(request.app).payouts.get_by_id(payout_id)
    if payout is None:
        raise NotFoundError("Payout", payout_id)
    return payout


@router.patch(
    "/{payout_id}/status",
    response_model=Payout,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Update payout status",
    description="Move a payout forward (Pending -> Processing -> Completed/Failed).",
    operation_id="update_payout_status",
)
def update_payout_status(
    request: Request,
    payload: PayoutStatusUpdate,
    payout_id: str = Path(..., description="Payout identifier"),
) -> Payout:
    """Update a payout's status."""
    return get_state(request.app).payouts.update_status(payout_id, payload.status)


@router.delete(
    "/{payout_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete payout",
    description="Delete a payout by id. Deleting an unknown id succeeds.",
    operation_id="delete_payout",
)
def delete_payout(request: Request, payout_id: str = Path(..., description="Payout identifier")) -> None:
    """Delete a payout."""
    get_state(request.app).payouts.delete(payout_id)
    return None
