from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI

from src.unicore.config import BackendConfig
from src.unicore.db.mongo import MongoManager
from src.unicore.db.registry import RepositoryRegistry, build_default_registry
from src.unicore.schemas.payouts import Payout
from src.unicore.schemas.providers import Provider
from src.unicore.schemas.vms import VirtualMachine
from src.unicore.services.auth_service import AuthService
from src.unicore.services.identity import IdentityVerifier
from src.unicore.services.payout_store import PayoutStore
from src.unicore.services.provider_store import ProviderStore
from src.unicore.services.vm_store import VirtualMachineStore


@dataclass
class AppState:
    """Typed app.state container for shared singletons."""

    config: BackendConfig
    mongo: MongoManager
    registry: RepositoryRegistry
    providers: ProviderStore
    vms: VirtualMachineStore
    payouts: PayoutStore
    auth: Optional[AuthService] = None  # None when no credential verification is configured
    cursor_key: bytes = b""


def _build_verifier(config: BackendConfig) -> Optional[IdentityVerifier]:
    if not config.auth_jwt_secret and not config.auth_jwks_url:
        return None
    return IdentityVerifier(
        secret=config.auth_jwt_secret,
        jwks_url=config.auth_jwks_url,
        algorithms=config.auth_algorithms,
        audience=config.auth_audience,
        issuer=config.auth_issuer,
    )


# PUBLIC_INTERFACE
def init_state(app: FastAPI, config: BackendConfig, mongo: Optional[MongoManager] = None) -> AppState:
    """Initialize app.state with the Mongo manager, repositories and store services."""
    mongo = mongo or MongoManager(config.mongo_uri, config.mongo_db_name)
    registry = build_default_registry(mongo.app_db())

    providers = ProviderStore(registry.repository(Provider))
    verifier = _build_verifier(config)

    state = AppState(
        config=config,
        mongo=mongo,
        registry=registry,
        providers=providers,
        vms=VirtualMachineStore(registry.repository(VirtualMachine), config.metric_history_window),
        payouts=PayoutStore(registry.repository(Payout)),
        auth=AuthService(verifier, providers) if verifier is not None else None,
        cursor_key=(config.cursor_secret or secrets.token_urlsafe(32)).encode("utf-8"),
    )
    app.state.state = state
    return state


# PUBLIC_INTERFACE
def get_state(app: FastAPI) -> AppState:
    """Fetch typed AppState from a FastAPI app."""
    return app.state.state  # type: ignore[attr-defined]
