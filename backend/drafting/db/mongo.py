"""Motor client for the drafting store.

Connection settings are read when the client is first built, not at import,
so the worker script can load ``.env`` after its imports.

Environment variables:
    - MONGODB_URL: Connection string (default: mongodb://localhost:27017)
    - DATABASE_NAME: Database holding transcripts, draft jobs and documents
      (default: ghostwriter)
"""

import logging
import os

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

logger = logging.getLogger(__name__)

DEFAULT_MONGODB_URL = "mongodb://localhost:27017"
DEFAULT_DATABASE_NAME = "ghostwriter"

_client: AsyncIOMotorClient | None = None


def _database_name() -> str:
    return os.getenv("DATABASE_NAME", DEFAULT_DATABASE_NAME)


async def get_database() -> AsyncIOMotorDatabase:
    """Return the drafting database, connecting on first use."""
    global _client
    if _client is None:
        # Fail fast so a request or worker tick surfaces DATABASE_UNAVAILABLE
        _client = AsyncIOMotorClient(
            os.getenv("MONGODB_URL", DEFAULT_MONGODB_URL),
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=5000,
            tz_aware=True,
        )
        logger.info(f"MongoDB client created for database {_database_name()}")
    return _client[_database_name()]


async def close_database() -> None:
    """Close the client if one was opened."""
    global _client
    if _client is not None:
        _client.close()
        _client = None


def set_client(client: AsyncIOMotorClient | None) -> None:
    """Install a client directly (tests pass a mongomock client)."""
    global _client
    _client = client
