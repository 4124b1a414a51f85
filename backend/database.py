"""
Database connection management for MongoDB.
"""

import logging
from functools import lru_cache
from typing import Optional

import certifi
from pymongo import MongoClient
from pymongo.database import Database

from env import MONGODB_URI, MONGODB_DATABASE_NAME

logger = logging.getLogger(__name__)


class DatabaseManager:
    """
    Singleton database connection manager.

    Constructed once at process start and torn down on shutdown; the cache
    store and audit log repositories receive the Database explicitly.
    """

    _instance: Optional["DatabaseManager"] = None
    _client: Optional[MongoClient] = None
    _database: Optional[Database] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def connect(self, uri: Optional[str] = None, database_name: Optional[str] = None) -> None:
        """
        Establish connection to MongoDB.

        Args:
            uri: MongoDB connection URI. Uses MONGODB_URI from env if not provided.
            database_name: Database name. Uses MONGODB_DATABASE_NAME from env if not provided.
        """
        if self._client is not None:
            return

        connection_uri = uri or MONGODB_URI
        if not connection_uri:
            raise ValueError("MongoDB URI not provided and MONGODB_URI not set")

        db_name = database_name or MONGODB_DATABASE_NAME
        if not db_name:
            raise ValueError("Database name not provided and MONGODB_DATABASE_NAME not set")

        client_options = {
            "serverSelectionTimeoutMS": 30000,
            "connectTimeoutMS": 30000,
            "socketTimeoutMS": 30000,
        }
        # mongodb+srv:// implies TLS
        if "mongodb+srv://" in connection_uri:
            client_options["tlsCAFile"] = certifi.where()
            if "retryWrites" not in connection_uri:
                separator = "&" if "?" in connection_uri else "?"
                connection_uri = f"{connection_uri}{separator}retryWrites=true&w=majority"

        self._client = MongoClient(connection_uri, **client_options)
        self._database = self._client[db_name]
        logger.info("Connected to MongoDB database '%s'", db_name)

    def disconnect(self) -> None:
        """Close MongoDB connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._database = None
            logger.info("MongoDB connection closed")

    def ping(self) -> bool:
        """Return True when the server answers a ping."""
        if self._client is None:
            return False
        self._client.admin.command("ping")
        return True

    @property
    def database(self) -> Database:
        """Get database instance."""
        if self._database is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._database


@lru_cache
def get_database_manager() -> DatabaseManager:
    """
    Get singleton DatabaseManager instance.
    Cached for dependency injection.
    """
    return DatabaseManager()
