from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

GAUGE_MIN = 0.0
GAUGE_MAX = 100.0


class VmStatus(str, Enum):
    """Lifecycle status of a rented virtual machine."""

    stopped = "Stopped"
    starting = "Starting"
    running = "Running"
    paused = "Paused"
    stopping = "Stopping"


class VirtualMachine(BaseModel):
    """A rented virtual machine with its live utilization gauges and recent history."""

    model_config = ConfigDict(use_enum_values=True, validate_assignment=True)

    vm_id: str = Field("", description="Machine id (document key); generated when empty at creation.")
    name: str = Field("", description="Display name.")
    client: str = Field("Unknown", description="Label of the client renting the machine.")
    status: VmStatus = Field(VmStatus.stopped, description="Lifecycle status.")
    uptime_seconds: float = Field(0.0, ge=0, allow_inf_nan=False, description="Uptime of the current session in seconds.")

    # Hardware spec, fixed at creation.
    cpu_cores: int = Field(0, ge=0, description="Number of vCPU cores.")
    ram_gb: int = Field(0, ge=0, description="RAM size in GB.")

    cost_per_hour: float = Field(0.0, ge=0, allow_inf_nan=False, description="Hourly cost rate.")
    current_session_cost: float = Field(0.0, ge=0, allow_inf_nan=False, description="Cost accumulated in the current session.")

    current_cpu_usage: float = Field(0.0, ge=GAUGE_MIN, le=GAUGE_MAX, description="Live CPU utilization (%).")
    current_gpu_usage: float = Field(0.0, ge=GAUGE_MIN, le=GAUGE_MAX, description="Live GPU utilization (%).")
    current_ram_usage: float = Field(0.0, ge=GAUGE_MIN, le=GAUGE_MAX, description="Live RAM utilization (%).")

    cpu_history: List[float] = Field(default_factory=list, description="Recent CPU samples, oldest first.")
    gpu_history: List[float] = Field(default_factory=list, description="Recent GPU samples, oldest first.")
    ram_history: List[float] = Field(default_factory=list, description="Recent RAM samples, oldest first.")


class VirtualMachineCreate(BaseModel):
    """Request body for registering a virtual machine."""

    vm_id: Optional[str] = Field(default=None, description="Optional caller-supplied machine id.")
    name: str = Field(..., description="Display name.")
    client: str = Field("Unknown", description="Label of the client renting the machine.")
    status: VmStatus = Field(VmStatus.stopped, description="Initial lifecycle status.")
    cpu_cores: int = Field(..., ge=1, description="Number of vCPU cores.")
    ram_gb: int = Field(..., ge=1, description="RAM size in GB.")
    cost_per_hour: float = Field(0.0, ge=0, allow_inf_nan=False, description="Hourly cost rate.")


class VirtualMachineUpdate(BaseModel):
    """Request body for a partial update of the mutable machine fields."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, description="Display name.")
    client: Optional[str] = Field(default=None, description="Label of the client renting the machine.")
    status: Optional[VmStatus] = Field(default=None, description="Lifecycle status.")
    uptime_seconds: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False, description="Uptime of the current session.")
    cost_per_hour: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False, description="Hourly cost rate.")
    current_session_cost: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False, description="Accumulated session cost.")


class MetricsUpdate(BaseModel):
    """Request body carrying one utilization sample per channel."""

    cpu: float = Field(..., description="CPU utilization (%).")
    gpu: float = Field(..., description="GPU utilization (%).")
    ram: float = Field(..., description="RAM utilization (%).")


class VirtualMachinePage(BaseModel):
    """Envelope for listing virtual machines."""

    items: List[VirtualMachine] = Field(..., description="Machines on this page.")
    total: int = Field(..., ge=0, description="Number of machines returned.")
    next_cursor: Optional[str] = Field(
        default=None, description="Opaque token for the next page; absent when nothing was returned."
    )
