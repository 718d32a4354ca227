"""
Data access layer for MaruSync.

Example Usage:
    ```python
    from marusync.data import initialize_repositories, get_account_repository
    from marusync.data.migrations import run_migrations

    await run_migrations("data/marusync.db")
    initialize_repositories(backend="sqlite", db_path="data/marusync.db")

    accounts = await get_account_repository()
    default = await accounts.get_default_account()
    ```
"""

from .base import (
    AccountRepository,
    FileRecordRepository,
    DatabaseConnection,
    Transaction
)
from .sqlite import (
    SQLiteConnection,
    SQLiteAccountRepository,
    SQLiteFileRecordRepository,
    SQLiteTransaction
)
from .repositories import (
    RepositoryFactory,
    initialize_repositories,
    get_repository_factory,
    get_account_repository,
    get_file_record_repository
)
from .migrations import (
    MigrationRunner,
    run_migrations,
    reset_database
)

__all__ = [
    "AccountRepository",
    "FileRecordRepository",
    "DatabaseConnection",
    "Transaction",
    "SQLiteConnection",
    "SQLiteAccountRepository",
    "SQLiteFileRecordRepository",
    "SQLiteTransaction",
    "RepositoryFactory",
    "initialize_repositories",
    "get_repository_factory",
    "get_account_repository",
    "get_file_record_repository",
    "MigrationRunner",
    "run_migrations",
    "reset_database",
]
