"""Stored field names for each entity. These are the persisted layout; renaming an attribute must not change them."""

from __future__ import annotations

from src.unicore.db.documents import DocumentCodec
from src.unicore.schemas.payouts import Payout
from src.unicore.schemas.providers import Provider
from src.unicore.schemas.vms import VirtualMachine

PROVIDER_CODEC: DocumentCodec[Provider] = DocumentCodec(
    model=Provider,
    key_attr="subject_id",
    fields={
        "id": "provider_id",
        "name": "name",
        "email": "email",
        "created_at": "created_at",
        "last_login": "last_login",
    },
)

VIRTUAL_MACHINE_CODEC: DocumentCodec[VirtualMachine] = DocumentCodec(
    model=VirtualMachine,
    key_attr="vm_id",
    fields={
        "name": "name",
        "client": "client",
        "status": "status",
        "uptime_seconds": "uptime_seconds",
        "cpu_cores": "cpu_cores",
        "ram_gb": "ram_gb",
        "cost_per_hour": "cost_per_hour",
        "current_session_cost": "current_session_cost",
        "current_cpu_usage": "cpu_usage",
        "current_gpu_usage": "gpu_usage",
        "current_ram_usage": "ram_usage",
        "cpu_history": "cpu_history",
        "gpu_history": "gpu_history",
        "ram_history": "ram_history",
    },
)

PAYOUT_CODEC: DocumentCodec[Payout] = DocumentCodec(
    model=Payout,
    key_attr="id",
    fields={
        "date": "date",
        "amount": "amount",
        "method": "payment_method",
        "status": "status",
    },
)
