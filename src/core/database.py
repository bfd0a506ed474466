"""MongoDB connection management with motor.

The ``ConnectionManager`` is owned by the application (created in the app
factory, closed in the lifespan shutdown) and handed to services. It connects
lazily: the first repository call pays the connection cost, not startup.
"""

import asyncio
import logging
from typing import Any, Callable, Optional

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import ConfigurationError as MongoConfigurationError
from pymongo.errors import PyMongoError

from .config import CONNECTION_STRING_ENV_VARS, Settings, get_cached_settings
from .exceptions import ConfigurationError, DatabaseConnectionError

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Lazily established, memoized connection to the marketplace database."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client_factory: Optional[Callable[..., Any]] = None,
    ):
        self.settings = settings or get_cached_settings()
        self._client_factory = client_factory or AsyncIOMotorClient
        self._client = None
        self._db = None
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._db is not None

    @property
    def database_name(self) -> Optional[str]:
        return self._db.name if self._db is not None else None

    async def connect(self) -> None:
        """Connect to MongoDB. A no-op when already connected."""
        if self.is_connected:
            logger.debug("Already connected to MongoDB")
            return

        # Concurrent first callers wait here and find the connection made.
        async with self._lock:
            if self.is_connected:
                return

            connection_string = self.settings.MONGODB_URI
            if not connection_string:
                raise ConfigurationError(
                    "MongoDB connection string not configured. "
                    f"Set one of {', '.join(CONNECTION_STRING_ENV_VARS)} in your environment or .env file."
                )

            client = None
            try:
                logger.info("Connecting to MongoDB...")
                client = self._client_factory(
                    connection_string,
                    serverSelectionTimeoutMS=self.settings.MONGO_TIMEOUT_MS,
                )
                await client.admin.command("ping")
                db = self._select_database(client)
                await self._ensure_indexes(db)
            except MongoConfigurationError as exc:
                self._close_quietly(client)
                raise ConfigurationError(f"Invalid MongoDB configuration: {exc}") from exc
            except PyMongoError as exc:
                self._close_quietly(client)
                logger.error(f"Failed to connect to MongoDB: {exc}")
                raise DatabaseConnectionError(f"MongoDB connection failed: {exc}") from exc

            self._client = client
            self._db = db
            logger.info(
                f"Successfully connected to MongoDB (database={db.name}, "
                f"collection={self.settings.SERVERS_COLLECTION})"
            )

    async def disconnect(self) -> None:
        """Close the client and reset state. Safe to call when not connected."""
        if self._client is None:
            return
        self._client.close()
        self._client = None
        self._db = None
        logger.info("Disconnected from MongoDB")

    async def ensure_connection(self) -> None:
        if not self.is_connected:
            await self.connect()

    async def collection(self, name: str):
        """Return a collection handle, connecting first if needed."""
        await self.ensure_connection()
        return self._db[name]

    async def ping(self) -> bool:
        """Report whether the datastore answers. Never raises."""
        try:
            await self.ensure_connection()
            await self._client.admin.command("ping")
            return True
        except (ConfigurationError, DatabaseConnectionError, PyMongoError) as exc:
            logger.warning(f"MongoDB ping failed: {exc}")
            return False

    def _select_database(self, client):
        # MARKETPLACE_DB wins over the database named in the connection string.
        if self.settings.MARKETPLACE_DB:
            return client[self.settings.MARKETPLACE_DB]
        return client.get_default_database(default=self.settings.DEFAULT_DB_NAME)

    async def _ensure_indexes(self, db) -> None:
        # A missing index degrades queries but must not block the connection
        indexes = [
            (self.settings.SERVERS_COLLECTION, [("ownerId", ASCENDING)], False),
            (self.settings.SERVERS_COLLECTION, [("createdAt", DESCENDING)], False),
            (self.settings.REVIEWS_COLLECTION, [("serverId", ASCENDING), ("userId", ASCENDING)], True),
        ]
        for collection_name, keys, unique in indexes:
            try:
                await db[collection_name].create_index(keys, unique=unique)
            except PyMongoError as exc:
                logger.warning(f"Could not create index {keys} on {collection_name}: {exc}")

    @staticmethod
    def _close_quietly(client) -> None:
        if client is not None:
            client.close()
