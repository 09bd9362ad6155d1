from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import RLock
from typing import Optional

from pymongo import ASCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import PyMongoError

logger = logging.getLogger(__name__)


APP_DB_NAME = "unicore"


@dataclass(frozen=True)
class MongoCollections:
    """Convenience wrapper for app collections."""

    providers: Collection
    virtual_machines: Collection
    payouts: Collection


class MongoManager:
    """
    MongoDB connection manager.

    Maintains one MongoClient for the app's storage DB. A pre-built client can be injected
    (tests pass an in-memory pymongo-compatible client); otherwise one is created from the URI.
    """

    def __init__(self, app_mongo_uri: str, db_name: str = APP_DB_NAME, client: Optional[MongoClient] = None):
        self._app_mongo_uri = app_mongo_uri
        self._db_name = db_name
        self._app_client: Optional[MongoClient] = client
        self._lock = RLock()

    @property
    def db_name(self) -> str:
        return self._db_name

    def connect_app(self) -> None:
        """Initialize app Mongo client if needed."""
        with self._lock:
            if self._app_client is not None:
                return
            # MongoClient is thread-safe and manages internal pooling; the first operation connects.
            self._app_client = MongoClient(self._app_mongo_uri, connect=False, tz_aware=True)

    # PUBLIC_INTERFACE
    def ping(self, timeout_ms: int = 1500) -> bool:
        """
        Ping the configured MongoDB to validate connectivity.

        This is used by startup validation and the connectivity-check endpoint.
        """
        try:
            if self._app_client is None:
                # Ensure client exists before pinging
                self.connect_app()
            assert self._app_client is not None
            self._app_client.admin.command("ping", maxTimeMS=int(max(250, timeout_ms)))
            return True
        except PyMongoError:
            logger.exception("Mongo ping failed (PyMongoError)")
            return False

    def close(self) -> None:
        """Close the app Mongo client."""
        with self._lock:
            if self._app_client is not None:
                try:
                    self._app_client.close()
                except PyMongoError:
                    logger.exception("Error closing app MongoClient")
                self._app_client = None

    def app_db(self) -> Database:
        """Return the app database handle."""
        if self._app_client is None:
            self.connect_app()
        assert self._app_client is not None
        return self._app_client[self._db_name]

    def collections(self) -> MongoCollections:
        """Return app collections."""
        db = self.app_db()
        return MongoCollections(
            providers=db["providers"],
            virtual_machines=db["virtual_machines"],
            payouts=db["payouts"],
        )

    def init_indexes(self) -> None:
        """Create required indexes (idempotent). Documents are keyed by _id, which is always indexed."""
        cols = self.collections()

        # ---- Providers ----
        # Internal id lookups (subject id is the document key).
        cols.providers.create_index([("provider_id", ASCENDING)], unique=True, name="idx_providers_provider_id")

        # ---- Virtual machines ----
        cols.virtual_machines.create_index([("status", ASCENDING)], name="idx_vms_status")
        cols.virtual_machines.create_index([("client", ASCENDING)], name="idx_vms_client")

        # ---- Payouts ----
        cols.payouts.create_index([("status", ASCENDING)], name="idx_payouts_status")
        cols.payouts.create_index([("date", ASCENDING)], name="idx_payouts_date")
