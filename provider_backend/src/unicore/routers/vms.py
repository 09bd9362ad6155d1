from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, Request, status

from src.unicore.dependencies import cursor_token, parse_cursor, require_identity, resolve_page_size
from src.unicore.errors import NotFoundError
from src.unicore.schemas.common import ErrorResponse
from src.unicore.schemas.vms import (
    MetricsUpdate,
    VirtualMachine,
    VirtualMachineCreate,
    VirtualMachinePage,
    VirtualMachineUpdate,
    VmStatus,
)
from src.unicore.state import get_state

router = APIRouter(
    prefix="/api/vms",
    tags=["Virtual Machines"],
    dependencies=[Depends(require_identity)],
    responses={401: {"model": ErrorResponse}},
)


@router.get(
    "",
    response_model=VirtualMachinePage,
    responses={400: {"model": ErrorResponse}},
    summary="List virtual machines",
    description=(
        "List machines. With `status` every matching machine is returned in one response; "
        "otherwise results are paginated with `limit` and the opaque `cursor` from the previous page."
    ),
    operation_id="list_vms",
)
def list_vms(
    request: Request,
    status_filter: Optional[VmStatus] = Query(default=None, alias="status", description="Only machines in this status."),
    limit: Optional[int] = Query(default=None, ge=1, description="Page size."),
    cursor: Optional[str] = Query(default=None, description="Opaque cursor from a previous page."),
) -> VirtualMachinePage:
    """List machines by status, or one page of all machines."""
    store = get_state(request.app).vms
    if status_filter is not None:
        items = store.get_by_status(status_filter)
        return VirtualMachinePage(items=items, total=len(items), next_cursor=None)

    page = store.page(resolve_page_size(request, limit), parse_cursor(request, cursor))
    return VirtualMachinePage(
        items=page.items,
        total=len(page.items),
        next_cursor=cursor_token(request, page.next_cursor),
    )


@router.post(
    "",
    response_model=VirtualMachine,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Create virtual machine",
    description="Register a machine; an id is generated when `vm_id` is omitted or empty. An existing `vm_id` is a conflict.",
    operation_id="create_vm",
)
def create_vm(request: Request, payload: VirtualMachineCreate) -> VirtualMachine:
    """Create a machine record."""
    vm = VirtualMachine(
        vm_id=(payload.vm_id or "").strip(),
        name=payload.name,
        client=payload.client,
        status=payload.status,
        cpu_cores=payload.cpu_cores,
        ram_gb=payload.ram_gb,
        cost_per_hour=payload.cost_per_hour,
    )
    return get_state(request.app).vms.create(vm)


@router.get(
    "/{vm_id}",
    response_model=VirtualMachine,
    responses={404: {"model": ErrorResponse}},
    summary="Get virtual machine",
    description="Fetch a single machine by id.",
    operation_id="get_vm",
)
def get_vm(request: Request, vm_id: str = Path(..., description="Machine identifier")) -> VirtualMachine:
    """Fetch a machine by id."""
    vm = get_state(request.app).vms.get_by_id(vm_id)
    if vm is None:
        raise NotFoundError("VirtualMachine", vm_id)
    return vm


@router.patch(
    "/{vm_id}",
    response_model=VirtualMachine,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Update virtual machine",
    description="Partially update the mutable fields of a machine. Hardware spec and id cannot change.",
    operation_id="update_vm",
)
def update_vm(
    request: Request,
    payload: VirtualMachineUpdate,
    vm_id: str = Path(..., description="Machine identifier"),
) -> VirtualMachine:
    """Update a machine."""
    return get_state(request.app).vms.update(vm_id, payload)


@router.post(
    "/{vm_id}/metrics",
    response_model=VirtualMachine,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Record metrics",
    description="Set the live cpu/gpu/ram gauges and append them to the bounded histories.",
    operation_id="record_vm_metrics",
)
def record_metrics(
    request: Request,
    payload: MetricsUpdate,
    vm_id: str = Path(..., description="Machine identifier"),
) -> VirtualMachine:
    """Record one utilization sample."""
    return get_state(request.app).vms.update_metrics(vm_id, payload.cpu, payload.gpu, payload.ram)


@router.delete(
    "/{vm_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete virtual machine",
    description="Delete a machine by id. Deleting an unknown id succeeds.",
    operation_id="delete_vm",
)
def delete_vm(request: Request, vm_id: str = Path(..., description="Machine identifier")) -> None:
    """Delete a machine."""
    get_state(request.app).vms.delete(vm_id)
    return None
