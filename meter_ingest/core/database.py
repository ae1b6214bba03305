# meter_ingest/core/database.py

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorCollection,
    AsyncIOMotorDatabase,
)
from pymongo import monitoring

from meter_ingest.core.config import Settings

logger = logging.getLogger(__name__)


class ConnectionStatus(str, Enum):
    DISCONNECTED = "Disconnected"
    CONNECTED = "Connected"
    FAILED = "Failed"
    ERROR = "Error"


class DatabaseNotReady(RuntimeError):
    pass


class MongoStatus:
    """Advisory view of the link to MongoDB, shown on the health route.

    Written by the connector and by pymongo's monitor threads; readers only
    ever see a complete status/error pair or the one before it.
    """

    def __init__(self, configured: bool = False):
        self.configured = configured
        self.status: ConnectionStatus = ConnectionStatus.DISCONNECTED
        self.error: Optional[str] = None

    def mark_connected(self) -> None:
        self.status = ConnectionStatus.CONNECTED
        self.error = None

    def mark_disconnected(self) -> None:
        self.status = ConnectionStatus.DISCONNECTED

    def mark_failed(self, error: Any) -> None:
        self.status = ConnectionStatus.FAILED
        self.error = str(error)

    def mark_error(self, error: Any) -> None:
        # A failed initial connect stays "Failed" until the driver reconnects.
        if self.status != ConnectionStatus.FAILED:
            self.status = ConnectionStatus.ERROR
        self.error = str(error)

    def snapshot(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "status": self.status.value,
            "database": "Configured" if self.configured else "Not Configured",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if self.error:
            out["error"] = self.error
        return out


class MongoStatusListener(monitoring.TopologyListener, monitoring.ServerHeartbeatListener):
    """Feeds driver lifecycle notifications into a MongoStatus."""

    def __init__(self, status: MongoStatus):
        self._status = status

    # topology events
    def opened(self, event):
        logger.debug(f"MongoDB topology opened ({event.topology_id})")

    def description_changed(self, event):
        was_up = event.previous_description.has_readable_server()
        is_up = event.new_description.has_readable_server()
        if is_up and not was_up:
            self._status.mark_connected()
            logger.info("MongoDB connected")
        elif was_up and not is_up:
            self._status.mark_disconnected()
            logger.warning("MongoDB disconnected")

    def closed(self, event):
        logger.debug(f"MongoDB topology closed ({event.topology_id})")

    # heartbeat events
    def started(self, event):
        pass

    def succeeded(self, event):
        pass

    def failed(self, event):
        self._status.mark_error(event.reply)
        logger.error(f"MongoDB error: {event.reply}")


class MongoConnector:
    """Owns the motor client, the database handle and the status holder."""

    def __init__(self, settings: Settings, status: Optional[MongoStatus] = None):
        self.settings = settings
        self.status = status or MongoStatus(configured=settings.is_database_configured)
        self._client: Optional[AsyncIOMotorClient] = None
        self._db: Optional[AsyncIOMotorDatabase] = None

    @property
    def db(self) -> Optional[AsyncIOMotorDatabase]:
        return self._db

    def _make_client(self, uri: str) -> AsyncIOMotorClient:
        return AsyncIOMotorClient(
            uri,
            serverSelectionTimeoutMS=self.settings.MONGODB_SERVER_SELECTION_TIMEOUT_MS,
            tz_aware=True,
            event_listeners=[MongoStatusListener(self.status)],
        )

    async def connect(self) -> bool:
        """Open the client and ping once. Never raises, never retries."""
        if self._client is not None and self._db is not None:
            return self.status.status == ConnectionStatus.CONNECTED

        try:
            uri = self.settings.get_mongo_uri()
            self._client = self._make_client(uri)
            # a db name in the URI path wins over MONGODB_DB
            self._db = self._client.get_default_database(default=self.settings.MONGODB_DB)
            logger.info(f"Connecting to MongoDB (db={self._db.name})")

            await self._db.command("ping")
        except Exception as e:
            self.status.mark_failed(e)
            logger.error(f"MongoDB connection failed: {e}")
            return False

        self.status.mark_connected()
        logger.info("Connected to MongoDB successfully")
        return True

    async def close(self) -> None:
        if self._client is not None:
            self._client.close()
        self._client = None
        self._db = None
        self.status.mark_disconnected()
        logger.info("MongoDB connection closed")

    def get_collection(self) -> AsyncIOMotorCollection:
        if self._db is None:
            raise DatabaseNotReady("Database not initialized. Call connect() at startup.")
        return self._db[self.settings.MONGODB_COLLECTION]
