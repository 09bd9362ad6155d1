from __future__ import annotations

import os
from collections.abc import AsyncIterator, Callable, Iterator
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import httpx
import jwt
import mongomock
import pytest
from pymongo import MongoClient

from src.unicore.config import BackendConfig
from src.unicore.db.mongo import MongoManager
from src.unicore.db.registry import RepositoryRegistry, build_default_registry
from src.unicore.main import create_app

TEST_DB_NAME = "unicore_test"
TEST_JWT_SECRET = "unicore-test-secret-0123456789-abcdefghijklmnop"

APP_COLLECTIONS = ("providers", "virtual_machines", "payouts")


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(scope="session")
def mongo_client() -> Iterator[MongoClient]:
    """
    Client used by the app under test and for direct DB inspection.

    A real server is used when BACKEND_MONGO_URI is set; otherwise an in-memory
    pymongo-compatible client.
    """
    uri = os.getenv("BACKEND_MONGO_URI")
    client = MongoClient(uri, tz_aware=True) if uri else mongomock.MongoClient(tz_aware=True)
    try:
        yield client
    finally:
        client.close()


@pytest.fixture
def mongo_db(mongo_client: MongoClient):
    """Test database handle, emptied before each test (indexes are kept)."""
    db = mongo_client[TEST_DB_NAME]
    for name in APP_COLLECTIONS:
        db[name].delete_many({})
    return db


@pytest.fixture
def registry(mongo_db) -> RepositoryRegistry:
    return build_default_registry(mongo_db)


@pytest.fixture
def test_config() -> BackendConfig:
    return BackendConfig(
        mongo_uri="mongodb://localhost:27017",
        mongo_db_name=TEST_DB_NAME,
        metric_history_window=20,
        page_size_default=25,
        page_size_max=100,
        auth_jwt_secret=TEST_JWT_SECRET,
        auth_jwks_url=None,
        auth_algorithms=("HS256",),
        auth_audience=None,
        auth_issuer=None,
        log_level="INFO",
        mongo_uri_source="default",
    )


@pytest.fixture
def app(test_config: BackendConfig, mongo_client: MongoClient, mongo_db):
    """FastAPI app wired to the test database."""
    return create_app(test_config, MongoManager(test_config.mongo_uri, TEST_DB_NAME, client=mongo_client))


@pytest.fixture
async def async_client(app) -> AsyncIterator[httpx.AsyncClient]:
    """Async HTTP client bound to the FastAPI ASGI app."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Mint a credential the test app accepts (or, with expires_in < 0, an expired one)."""

    def _make(
        subject: str = "uid-provider-1",
        email: Optional[str] = "provider@example.com",
        expires_in: int = 3600,
        secret: str = TEST_JWT_SECRET,
    ) -> str:
        now = datetime.now(timezone.utc)
        claims: Dict[str, object] = {"sub": subject, "iat": now, "exp": now + timedelta(seconds=expires_in)}
        if email:
            claims["email"] = email
        return jwt.encode(claims, secret, algorithm="HS256")

    return _make


@pytest.fixture
def auth_headers(make_token) -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token()}"}
