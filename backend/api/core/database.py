"""Process-wide database manager for the API."""

import logging

from shared.database import DatabaseManager, PoolConfig

logger = logging.getLogger(__name__)

_db_manager: DatabaseManager | None = None


def get_database_manager() -> DatabaseManager:
    """Get the global database manager instance"""
    if _db_manager is None:
        raise RuntimeError("Database manager not initialized")
    return _db_manager


def init_database_manager(database_url: str, max_size: int = 10) -> DatabaseManager:
    """Initialize the global database manager"""
    global _db_manager
    _db_manager = DatabaseManager(database_url, PoolConfig(max_size=max_size))
    return _db_manager
