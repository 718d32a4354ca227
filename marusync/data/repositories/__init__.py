"""
Concrete repository implementations.

This module provides the repository factory used throughout the application.
"""

from typing import Optional

from ..base import AccountRepository, FileRecordRepository
from ..sqlite import SQLiteConnection, SQLiteAccountRepository, SQLiteFileRecordRepository


class RepositoryFactory:
    """Factory for creating repository instances."""

    def __init__(self, backend: str = "sqlite", **config):
        """
        Initialize repository factory.

        Args:
            backend: Database backend to use (only 'sqlite' is supported)
            **config: Backend-specific configuration options
        """
        self.backend = backend
        self.config = config
        self._connection: Optional[SQLiteConnection] = None

    async def get_connection(self) -> SQLiteConnection:
        """Get or create database connection."""
        if self._connection is None:
            if self.backend == "sqlite":
                db_path = self.config.get("db_path", "data/marusync.db")
                pool_size = self.config.get("pool_size", 5)
                self._connection = SQLiteConnection(db_path, pool_size)
                await self._connection.connect()
            else:
                raise ValueError(f"Unsupported backend: {self.backend}")

        return self._connection

    async def get_account_repository(self) -> AccountRepository:
        """Create and return an account repository instance."""
        connection = await self.get_connection()
        return SQLiteAccountRepository(connection)

    async def get_file_record_repository(self) -> FileRecordRepository:
        """Create and return a file record repository instance."""
        connection = await self.get_connection()
        return SQLiteFileRecordRepository(connection)

    async def close(self) -> None:
        """Close database connections."""
        if self._connection:
            await self._connection.disconnect()
            self._connection = None


# Singleton instance for easy access
_default_factory: Optional[RepositoryFactory] = None


def initialize_repositories(backend: str = "sqlite", **config) -> RepositoryFactory:
    """
    Initialize the default repository factory.

    Args:
        backend: Database backend to use
        **config: Backend-specific configuration

    Returns:
        Initialized repository factory
    """
    global _default_factory
    _default_factory = RepositoryFactory(backend, **config)
    return _default_factory


def get_repository_factory() -> RepositoryFactory:
    """
    Get the default repository factory instance.

    Raises:
        RuntimeError: If repositories have not been initialized
    """
    if _default_factory is None:
        raise RuntimeError(
            "Repositories not initialized. Call initialize_repositories() first."
        )
    return _default_factory


async def get_account_repository() -> AccountRepository:
    """Get the default account repository instance."""
    return await get_repository_factory().get_account_repository()


async def get_file_record_repository() -> FileRecordRepository:
    """Get the default file record repository instance."""
    return await get_repository_factory().get_file_record_repository()
