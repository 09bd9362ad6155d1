from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from src.unicore.config import sanitize_mongo_uri
from src.unicore.schemas.common import HealthResponse, utc_now
from src.unicore.state import get_state

router = APIRouter(tags=["Health"])


class MongoConnectivityResponse(BaseModel):
    """Response model for backend↔Mongo connectivity diagnostics."""

    ok: bool = Field(..., description="Whether the backend can successfully ping MongoDB.")
    mongo_uri_source: str = Field(..., description="Which source provided the effective MongoDB URI.")
    mongo_uri_sanitized: str = Field(..., description="MongoDB URI with credentials masked.")
    database: str = Field(..., description="Name of the database holding the app collections.")
    timestamp: str = Field(..., description="UTC timestamp when the check was performed (ISO string).")
    meta: Dict[str, Any] = Field(default_factory=dict, description="Optional debug metadata.")


class StorageDiagnosticsResponse(BaseModel):
    """Diagnostics model describing the collection layout and window/pagination settings."""

    collections: Dict[str, str] = Field(..., description="Entity type -> collection name.")
    metric_history_window: int = Field(..., description="Number of samples kept per utilization history.")
    page_size_default: int = Field(..., description="Page size used when a list request gives no limit.")
    page_size_max: int = Field(..., description="Largest page size a list request may ask for.")
    auth_configured: bool = Field(..., description="Whether credential verification is configured.")
    timestamp: str = Field(..., description="UTC timestamp when the diagnostics were produced (ISO string).")


@router.get(
    "/",
    response_model=HealthResponse,
    summary="Health check",
    description="Basic service liveness check used by deployment and the frontend.",
    operation_id="health_check",
)
def health_check() -> HealthResponse:
    """Return service liveness status."""
    return HealthResponse(status="ok", message="Healthy", timestamp=utc_now())


@router.get(
    "/api/health/mongo",
    response_model=MongoConnectivityResponse,
    summary="Mongo connectivity check",
    description="Pings the backend's configured MongoDB and reports how the URI was resolved. Credentials are masked.",
    operation_id="mongo_connectivity_check",
)
def mongo_connectivity_check(request: Request) -> MongoConnectivityResponse:
    """Connectivity check endpoint to validate backend↔Mongo and report which URI source is being used."""
    state = get_state(request.app)
    ok = state.mongo.ping()

    return MongoConnectivityResponse(
        ok=ok,
        mongo_uri_source=state.config.mongo_uri_source,
        mongo_uri_sanitized=sanitize_mongo_uri(state.config.mongo_uri),
        database=state.mongo.db_name,
        timestamp=utc_now().isoformat(),
        meta={},
    )


@router.get(
    "/api/health/storage",
    response_model=StorageDiagnosticsResponse,
    summary="Storage diagnostics",
    description="Reports collection bindings and history/pagination settings (no secrets).",
    operation_id="storage_diagnostics",
)
def storage_diagnostics(request: Request) -> StorageDiagnosticsResponse:
    """Return storage layout diagnostics."""
    state = get_state(request.app)
    cfg = state.config
    return StorageDiagnosticsResponse(
        collections=state.registry.collection_names(),
        metric_history_window=int(state.vms.history_window),
        page_size_default=int(cfg.page_size_default),
        page_size_max=int(cfg.page_size_max),
        auth_configured=state.auth is not None,
        timestamp=utc_now().isoformat(),
    )
