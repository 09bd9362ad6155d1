from __future__ import annotations

import logging
import os
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.unicore.config import BackendConfig, load_config
from src.unicore.db.mongo import MongoManager
from src.unicore.errors import (
    AuthError,
    ConflictError,
    InvalidInputError,
    NotFoundError,
    StorageError,
    UnicoreError,
)
from src.unicore.routers import auth, health, payouts, vms
from src.unicore.schemas.common import ErrorResponse
from src.unicore.state import get_state, init_state

openapi_tags = [
    {"name": "Health", "description": "Service health and liveness."},
    {"name": "Auth", "description": "Provider registration and login with identity-provider credentials."},
    {"name": "Virtual Machines", "description": "Rented machines, live utilization and bounded metric history."},
    {"name": "Payouts", "description": "Provider payouts and their status transitions."},
]

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = {
    InvalidInputError: 400,
    AuthError: 401,
    NotFoundError: 404,
    ConflictError: 409,
    StorageError: 503,
}


def _status_for(exc: UnicoreError) -> int:
    for kind, code in _STATUS_BY_ERROR.items():
        if isinstance(exc, kind):
            return code
    return 500


async def _unicore_error_handler(request: Request, exc: UnicoreError) -> JSONResponse:
    status_code = _status_for(exc)
    # StorageError messages stay generic; the driver error is logged where it was translated.
    body = ErrorResponse(detail=str(exc), code=exc.code)
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


def _env_frontend_url() -> str | None:
    return os.getenv("FRONTEND_URL")


def _env_cors_extra_origins() -> List[str]:
    # Comma-separated list for preview deployments, etc.
    raw = os.getenv("CORS_ALLOW_ORIGINS") or ""
    parts = [p.strip() for p in raw.split(",") if p.strip()]
    return parts


def _allowed_origins() -> List[str]:
    # Local frontend by default, plus explicit frontend URL and optional extra origins.
    origins: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]
    frontend_url = _env_frontend_url()
    if frontend_url:
        origins.append(frontend_url)
    origins.extend(_env_cors_extra_origins())

    # De-dupe while preserving order
    seen = set()
    return [o for o in origins if not (o in seen or seen.add(o))]


# PUBLIC_INTERFACE
def create_app(config: Optional[BackendConfig] = None, mongo: Optional[MongoManager] = None) -> FastAPI:
    """Build the FastAPI app; tests pass their own config and Mongo manager."""
    config = config or load_config()
    logging.getLogger().setLevel(config.log_level)

    app = FastAPI(
        title="Unicore Provider API",
        description=(
            "Backend API for providers renting out virtual machines. "
            "Stores providers, virtual machines (with live utilization and bounded metric history) "
            "and payouts in MongoDB; routes are guarded by identity-provider bearer credentials."
        ),
        version="0.1.0",
        openapi_tags=openapi_tags,
    )

    # Initialize typed app state (config + Mongo manager + stores)
    init_state(app, config, mongo)

    @app.on_event("startup")
    async def _on_startup() -> None:
        """Startup hook: connect to Mongo, validate connectivity and ensure indexes."""
        state = get_state(app)

        # Connect + verify early so a misconfigured Mongo fails the deploy instead of every request.
        state.mongo.connect_app()
        if not state.mongo.ping():
            raise RuntimeError("Mongo connectivity check failed during startup. Verify BACKEND_MONGO_URI.")

        state.mongo.init_indexes()
        logger.info("Startup complete db=%s collections=%s", state.mongo.db_name, state.registry.collection_names())

    @app.on_event("shutdown")
    async def _on_shutdown() -> None:
        """Shutdown hook: close Mongo connections."""
        get_state(app).mongo.close()

    app.add_exception_handler(UnicoreError, _unicore_error_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_allowed_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(vms.router)
    app.include_router(payouts.router)
    return app


app = create_app()
