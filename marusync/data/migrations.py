"""
Database schema migrations for MaruSync.

Migrations are applied in version order and recorded in the
``schema_migrations`` table, so running them again is a no-op.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List

import aiosqlite

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Migration:
    """A single schema migration."""
    version: int
    name: str
    statements: List[str]


MIGRATIONS: List[Migration] = [
    Migration(
        version=1,
        name="create_accounts",
        statements=[
            """
            CREATE TABLE IF NOT EXISTS accounts (
                id TEXT PRIMARY KEY,
                account_name TEXT NOT NULL,
                email TEXT NOT NULL UNIQUE COLLATE NOCASE,
                access_token TEXT NOT NULL,
                refresh_token TEXT,
                token_expires_at TEXT,
                is_active INTEGER NOT NULL DEFAULT 1,
                is_default INTEGER NOT NULL DEFAULT 0,
                needs_reauth INTEGER NOT NULL DEFAULT 0,
                profile_picture TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """,
            # At most one default account
            """
            CREATE UNIQUE INDEX IF NOT EXISTS idx_accounts_single_default
            ON accounts(is_default) WHERE is_default = 1
            """,
        ],
    ),
    Migration(
        version=2,
        name="create_file_records",
        statements=[
            """
            CREATE TABLE IF NOT EXISTS file_records (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                description TEXT,
                version TEXT,
                category TEXT NOT NULL DEFAULT 'other',
                file_name TEXT NOT NULL,
                file_size INTEGER NOT NULL DEFAULT 0,
                mime_type TEXT NOT NULL,
                download_count INTEGER NOT NULL DEFAULT 0,
                sort_order INTEGER NOT NULL DEFAULT 0,
                remote_file_id TEXT,
                remote_account_id TEXT REFERENCES accounts(id),
                local_path TEXT,
                is_active INTEGER NOT NULL DEFAULT 1,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                CHECK (remote_file_id IS NULL OR remote_account_id IS NOT NULL)
            )
            """,
            """
            CREATE INDEX IF NOT EXISTS idx_file_records_account
            ON file_records(remote_account_id)
            """,
            """
            CREATE INDEX IF NOT EXISTS idx_file_records_order
            ON file_records(sort_order, created_at)
            """,
        ],
    ),
]


class MigrationRunner:
    """Applies pending migrations to a SQLite database."""

    def __init__(self, db_path: str, migrations: List[Migration] = None):
        self.db_path = db_path
        self.migrations = sorted(migrations or MIGRATIONS, key=lambda m: m.version)

    async def run(self) -> int:
        """Apply all pending migrations.

        Returns:
            Number of migrations applied
        """
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        applied = 0

        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("PRAGMA foreign_keys=ON")
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version INTEGER PRIMARY KEY,
                    name TEXT NOT NULL,
                    applied_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            await db.commit()

            cursor = await db.execute("SELECT version FROM schema_migrations")
            done = {row[0] for row in await cursor.fetchall()}

            for migration in self.migrations:
                if migration.version in done:
                    continue

                logger.info(f"Applying migration {migration.version}: {migration.name}")
                try:
                    for statement in migration.statements:
                        await db.execute(statement)
                    await db.execute(
                        "INSERT INTO schema_migrations (version, name) VALUES (?, ?)",
                        (migration.version, migration.name)
                    )
                    await db.commit()
                except Exception:
                    await db.rollback()
                    logger.error(f"Migration {migration.version} ({migration.name}) failed")
                    raise
                applied += 1

        if applied:
            logger.info(f"Applied {applied} migration(s) to {self.db_path}")
        return applied


async def run_migrations(db_path: str) -> int:
    """Apply pending migrations to the database at ``db_path``."""
    return await MigrationRunner(db_path).run()


async def reset_database(db_path: str) -> None:
    """Drop all MaruSync tables and re-run migrations. Used by tests and local setup."""
    async with aiosqlite.connect(db_path) as db:
        await db.execute("DROP TABLE IF EXISTS file_records")
        await db.execute("DROP TABLE IF EXISTS accounts")
        await db.execute("DROP TABLE IF EXISTS schema_migrations")
        await db.commit()
    await run_migrations(db_path)
