from __future__ import annotations

import logging
from typing import List, Optional
from uuid import uuid4

from src.unicore.db.repository import DocumentRepository, Page, PageCursor
from src.unicore.errors import ConflictError, InvalidInputError, NotFoundError
from src.unicore.schemas.vms import GAUGE_MAX, GAUGE_MIN, VirtualMachine, VirtualMachineUpdate, VmStatus
from src.unicore.services.metric_history import DEFAULT_WINDOW, MetricHistory

logger = logging.getLogger(__name__)


def _vm_status(value: VmStatus | str) -> VmStatus:
    try:
        return VmStatus(value)
    except ValueError:
        raise InvalidInputError(f"unknown status {value!r}") from None


def _check_gauge(channel: str, value: float) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        raise InvalidInputError(f"{channel} must be a number") from None
    if not GAUGE_MIN <= v <= GAUGE_MAX:
        raise InvalidInputError(f"{channel} must be between {GAUGE_MIN:g} and {GAUGE_MAX:g}")
    return v


class VirtualMachineStore:
    """Virtual machines keyed by machine id, with live metrics and bounded history."""

    def __init__(self, repository: DocumentRepository[VirtualMachine], history_window: int = DEFAULT_WINDOW):
        self._repository = repository
        self._window = max(1, int(history_window))

    @property
    def history_window(self) -> int:
        return self._window

    # PUBLIC_INTERFACE
    def get_by_id(self, vm_id: str) -> Optional[VirtualMachine]:
        return self._repository.get(vm_id)

    # PUBLIC_INTERFACE
    def list_all(self) -> List[VirtualMachine]:
        return self._repository.list()

    # PUBLIC_INTERFACE
    def get_by_status(self, status: VmStatus | str) -> List[VirtualMachine]:
        return self._repository.where_equal("status", _vm_status(status))

    # PUBLIC_INTERFACE
    def page(self, page_size: int, cursor: Optional[PageCursor] = None) -> Page:
        return self._repository.page(page_size, cursor)

    # PUBLIC_INTERFACE
    def create(self, vm: VirtualMachine) -> VirtualMachine:
        """
        Persist a new machine, generating its id when none was supplied.

        ConflictError when a machine with the supplied id already exists; hardware spec and
        history of an existing machine are never replaced through create.
        """
        if not vm.name.strip():
            raise InvalidInputError("name is required")
        if not vm.vm_id.strip():
            vm.vm_id = str(uuid4())
        elif self._repository.get(vm.vm_id) is not None:
            logger.info("Create rejected: vm_id=%s already exists", vm.vm_id)
            raise ConflictError(f"virtual machine {vm.vm_id} already exists")

        self._repository.create(vm)
        logger.info("Created virtual machine vm_id=%s cores=%s ram_gb=%s", vm.vm_id, vm.cpu_cores, vm.ram_gb)
        return vm

    # PUBLIC_INTERFACE
    def update(self, vm_id: str, changes: VirtualMachineUpdate) -> VirtualMachine:
        """Merge the given mutable fields onto an existing machine; NotFoundError if it is missing."""
        vm = self._require(vm_id)
        fields = changes.model_dump(exclude_unset=True)
        if "name" in fields and not (fields["name"] or "").strip():
            raise InvalidInputError("name must not be empty")
        fields = {k: v for k, v in fields.items() if v is not None}

        for attr, value in fields.items():
            setattr(vm, attr, value)
        self._repository.update(vm_id, fields)
        return vm

    # PUBLIC_INTERFACE
    def update_metrics(self, vm_id: str, cpu: float, gpu: float, ram: float) -> VirtualMachine:
        """Overwrite the live gauges and push the samples onto the three bounded histories."""
        cpu = _check_gauge("cpu", cpu)
        gpu = _check_gauge("gpu", gpu)
        ram = _check_gauge("ram", ram)
        vm = self._require(vm_id)

        history = MetricHistory(cpu=vm.cpu_history, gpu=vm.gpu_history, ram=vm.ram_history).record(
            cpu, gpu, ram, self._window
        )
        vm.current_cpu_usage = cpu
        vm.current_gpu_usage = gpu
        vm.current_ram_usage = ram
        vm.cpu_history = history.cpu
        vm.gpu_history = history.gpu
        vm.ram_history = history.ram

        self._repository.update(
            vm_id,
            {
                "current_cpu_usage": cpu,
                "current_gpu_usage": gpu,
                "current_ram_usage": ram,
                "cpu_history": history.cpu,
                "gpu_history": history.gpu,
                "ram_history": history.ram,
            },
        )
        return vm

    # PUBLIC_INTERFACE
    def delete(self, vm_id: str) -> None:
        """Delete a machine; missing ids are ignored."""
        self._repository.delete(vm_id)

    def _require(self, vm_id: str) -> VirtualMachine:
        vm = self._repository.get(vm_id)
        if vm is None:
            raise NotFoundError("VirtualMachine", vm_id)
        return vm
