"""
SQLite implementation of data repositories using aiosqlite.

This module provides SQLite support with connection pooling,
transactions, and async database operations.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Dict, Any, Callable

import aiosqlite

from .base import (
    AccountRepository,
    FileRecordRepository,
    DatabaseConnection,
    Transaction
)
from ..models.account import Account
from ..models.base import parse_datetime, utc_now
from ..models.file_record import FileRecord, Category


class SQLiteTransaction(Transaction):
    """SQLite transaction bound to one pooled connection."""

    def __init__(self, connection: aiosqlite.Connection, release: Callable[[aiosqlite.Connection], None]):
        self.connection = connection
        self._release = release
        self._active = False

    async def execute(self, query: str, params: Optional[tuple] = None) -> Any:
        return await self.connection.execute(query, params or ())

    async def commit(self) -> None:
        """Commit the transaction."""
        if self._active:
            await self.connection.commit()
            self._active = False

    async def rollback(self) -> None:
        """Rollback the transaction."""
        if self._active:
            await self.connection.rollback()
            self._active = False

    async def __aenter__(self) -> 'SQLiteTransaction':
        """Enter transaction context."""
        await self.connection.execute("BEGIN")
        self._active = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit transaction context, returning the connection to the pool."""
        try:
            if exc_type is not None:
                await self.rollback()
            else:
                await self.commit()
        finally:
            self._release(self.connection)


class SQLiteConnection(DatabaseConnection):
    """SQLite database connection with connection pooling."""

    def __init__(self, db_path: str, pool_size: int = 5):
        self.db_path = db_path
        self.pool_size = pool_size
        self._connections: List[aiosqlite.Connection] = []
        self._available: asyncio.Queue = asyncio.Queue(maxsize=pool_size)
        self._lock = asyncio.Lock()
        self._initialized = False

    async def connect(self) -> None:
        """Establish database connection pool."""
        async with self._lock:
            if self._initialized:
                return

            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

            for _ in range(self.pool_size):
                conn = await aiosqlite.connect(self.db_path)
                conn.row_factory = aiosqlite.Row
                await conn.execute("PRAGMA journal_mode=WAL")
                await conn.execute("PRAGMA foreign_keys=ON")
                self._connections.append(conn)
                await self._available.put(conn)

            self._initialized = True

    async def disconnect(self) -> None:
        """Close all database connections."""
        async with self._lock:
            if not self._initialized:
                return

            for conn in self._connections:
                await conn.close()

            self._connections.clear()
            self._available = asyncio.Queue(maxsize=self.pool_size)
            self._initialized = False

    @asynccontextmanager
    async def _get_connection(self):
        """Get a connection from the pool."""
        if not self._initialized:
            await self.connect()

        conn = await self._available.get()
        try:
            yield conn
        finally:
            self._available.put_nowait(conn)

    async def execute(self, query: str, params: Optional[tuple] = None) -> Any:
        """Execute a database query."""
        async with self._get_connection() as conn:
            cursor = await conn.execute(query, params or ())
            await conn.commit()
            return cursor

    async def fetch_one(self, query: str, params: Optional[tuple] = None) -> Optional[Dict[str, Any]]:
        """Fetch a single row from the database."""
        async with self._get_connection() as conn:
            cursor = await conn.execute(query, params or ())
            row = await cursor.fetchone()
            if row:
                return dict(row)
            return None

    async def fetch_all(self, query: str, params: Optional[tuple] = None) -> List[Dict[str, Any]]:
        """Fetch all rows from the database."""
        async with self._get_connection() as conn:
            cursor = await conn.execute(query, params or ())
            rows = await cursor.fetchall()
            return [dict(row) for row in rows]

    async def begin_transaction(self) -> Transaction:
        """Begin a new database transaction on a dedicated pooled connection."""
        if not self._initialized:
            await self.connect()
        conn = await self._available.get()
        return SQLiteTransaction(conn, self._available.put_nowait)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class SQLiteAccountRepository(AccountRepository):
    """SQLite implementation of account repository."""

    def __init__(self, connection: SQLiteConnection):
        self.connection = connection

    async def save_account(self, account: Account) -> str:
        """Insert or update an account without disturbing rows that reference it."""
        query = """
        INSERT INTO accounts (
            id, account_name, email, access_token, refresh_token, token_expires_at,
            is_active, is_default, needs_reauth, profile_picture, created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            account_name = excluded.account_name,
            email = excluded.email,
            access_token = excluded.access_token,
            refresh_token = excluded.refresh_token,
            token_expires_at = excluded.token_expires_at,
            is_active = excluded.is_active,
            is_default = excluded.is_default,
            needs_reauth = excluded.needs_reauth,
            profile_picture = excluded.profile_picture,
            updated_at = excluded.updated_at
        """
        account.updated_at = utc_now()
        params = (
            account.id,
            account.account_name,
            account.email,
            account.access_token,
            account.refresh_token,
            _iso(account.token_expires_at),
            int(account.is_active),
            int(account.is_default),
            int(account.needs_reauth),
            account.profile_picture,
            account.created_at.isoformat(),
            account.updated_at.isoformat(),
        )
        await self.connection.execute(query, params)
        return account.id

    async def get_account(self, account_id: str) -> Optional[Account]:
        row = await self.connection.fetch_one("SELECT * FROM accounts WHERE id = ?", (account_id,))
        return self._row_to_account(row) if row else None

    async def get_account_by_email(self, email: str) -> Optional[Account]:
        row = await self.connection.fetch_one(
            "SELECT * FROM accounts WHERE email = ? COLLATE NOCASE", (email,)
        )
        return self._row_to_account(row) if row else None

    async def get_default_account(self) -> Optional[Account]:
        row = await self.connection.fetch_one("SELECT * FROM accounts WHERE is_default = 1")
        return self._row_to_account(row) if row else None

    async def list_accounts(self, active_only: bool = False) -> List[Account]:
        where_clause = "WHERE is_active = 1" if active_only else ""
        rows = await self.connection.fetch_all(
            f"SELECT * FROM accounts {where_clause} ORDER BY created_at ASC"
        )
        return [self._row_to_account(row) for row in rows]

    async def update_credentials(
        self,
        account_id: str,
        access_token: str,
        token_expires_at: Optional[datetime],
        refresh_token: Optional[str] = None
    ) -> None:
        query = """
        UPDATE accounts SET
            access_token = ?,
            token_expires_at = ?,
            refresh_token = COALESCE(?, refresh_token),
            needs_reauth = 0,
            updated_at = ?
        WHERE id = ?
        """
        await self.connection.execute(query, (
            access_token,
            _iso(token_expires_at),
            refresh_token,
            utc_now().isoformat(),
            account_id,
        ))

    async def mark_needs_reauth(self, account_id: str, needs_reauth: bool = True) -> None:
        await self.connection.execute(
            "UPDATE accounts SET needs_reauth = ?, updated_at = ? WHERE id = ?",
            (int(needs_reauth), utc_now().isoformat(), account_id)
        )

    async def set_active(self, account_id: str, is_active: bool) -> None:
        await self.connection.execute(
            "UPDATE accounts SET is_active = ?, updated_at = ? WHERE id = ?",
            (int(is_active), utc_now().isoformat(), account_id)
        )

    async def set_default_account(self, account_id: str) -> None:
        now = utc_now().isoformat()
        async with await self.connection.begin_transaction() as tx:
            await tx.execute(
                "UPDATE accounts SET is_default = 0, updated_at = ? WHERE is_default = 1 AND id != ?",
                (now, account_id)
            )
            await tx.execute(
                "UPDATE accounts SET is_default = 1, updated_at = ? WHERE id = ?",
                (now, account_id)
            )

    async def delete_account(self, account_id: str) -> bool:
        cursor = await self.connection.execute("DELETE FROM accounts WHERE id = ?", (account_id,))
        return cursor.rowcount > 0

    def _row_to_account(self, row: Dict[str, Any]) -> Account:
        return Account(
            id=row['id'],
            account_name=row['account_name'],
            email=row['email'],
            access_token=row['access_token'],
            refresh_token=row['refresh_token'],
            token_expires_at=parse_datetime(row['token_expires_at']),
            is_active=bool(row['is_active']),
            is_default=bool(row['is_default']),
            needs_reauth=bool(row['needs_reauth']),
            profile_picture=row['profile_picture'],
            created_at=parse_datetime(row['created_at']),
            updated_at=parse_datetime(row['updated_at']),
        )


class SQLiteFileRecordRepository(FileRecordRepository):
    """SQLite implementation of file record repository."""

    def __init__(self, connection: SQLiteConnection):
        self.connection = connection

    async def save_file_record(self, record: FileRecord) -> str:
        query = """
        INSERT INTO file_records (
            id, title, description, version, category, file_name, file_size, mime_type,
            download_count, sort_order, remote_file_id, remote_account_id, local_path,
            is_active, created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            title = excluded.title,
            description = excluded.description,
            version = excluded.version,
            category = excluded.category,
            file_name = excluded.file_name,
            file_size = excluded.file_size,
            mime_type = excluded.mime_type,
            sort_order = excluded.sort_order,
            remote_file_id = excluded.remote_file_id,
            remote_account_id = excluded.remote_account_id,
            local_path = excluded.local_path,
            is_active = excluded.is_active,
            updated_at = excluded.updated_at
        """
        record.updated_at = utc_now()
        params = (
            record.id,
            record.title,
            record.description,
            record.version,
            Category.parse(record.category).value,
            record.file_name,
            record.file_size,
            record.mime_type,
            record.download_count,
            record.sort_order,
            record.remote_file_id,
            record.remote_account_id,
            record.local_path,
            int(record.is_active),
            record.created_at.isoformat(),
            record.updated_at.isoformat(),
        )
        await self.connection.execute(query, params)
        return record.id

    async def get_file_record(self, record_id: str) -> Optional[FileRecord]:
        row = await self.connection.fetch_one("SELECT * FROM file_records WHERE id = ?", (record_id,))
        return self._row_to_record(row) if row else None

    async def list_file_records(self, active_only: bool = False) -> List[FileRecord]:
        where_clause = "WHERE is_active = 1" if active_only else ""
        rows = await self.connection.fetch_all(
            f"SELECT * FROM file_records {where_clause} ORDER BY sort_order ASC, created_at DESC"
        )
        return [self._row_to_record(row) for row in rows]

    async def list_by_account(self, account_id: str, remote_only: bool = True) -> List[FileRecord]:
        conditions = ["remote_account_id = ?"]
        if remote_only:
            conditions.append("remote_file_id IS NOT NULL")
        rows = await self.connection.fetch_all(
            f"SELECT * FROM file_records WHERE {' AND '.join(conditions)} "
            f"ORDER BY sort_order ASC, created_at DESC",
            (account_id,)
        )
        return [self._row_to_record(row) for row in rows]

    async def count_by_account(self, account_id: str) -> int:
        row = await self.connection.fetch_one(
            "SELECT COUNT(*) AS count FROM file_records WHERE remote_account_id = ?",
            (account_id,)
        )
        return row['count'] if row else 0

    async def delete_file_record(self, record_id: str) -> bool:
        cursor = await self.connection.execute("DELETE FROM file_records WHERE id = ?", (record_id,))
        return cursor.rowcount > 0

    async def increment_download_count(self, record_id: str) -> None:
        await self.connection.execute(
            "UPDATE file_records SET download_count = download_count + 1 WHERE id = ?",
            (record_id,)
        )

    async def next_sort_order(self) -> int:
        row = await self.connection.fetch_one(
            "SELECT COALESCE(MAX(sort_order), -1) + 1 AS next_order FROM file_records"
        )
        return row['next_order'] if row else 0

    def _row_to_record(self, row: Dict[str, Any]) -> FileRecord:
        return FileRecord(
            id=row['id'],
            title=row['title'],
            description=row['description'],
            version=row['version'],
            category=Category.parse(row['category']),
            file_name=row['file_name'],
            file_size=row['file_size'] or 0,
            mime_type=row['mime_type'],
            download_count=row['download_count'] or 0,
            sort_order=row['sort_order'] or 0,
            remote_file_id=row['remote_file_id'],
            remote_account_id=row['remote_account_id'],
            local_path=row['local_path'],
            is_active=bool(row['is_active']),
            created_at=parse_datetime(row['created_at']),
            updated_at=parse_datetime(row['updated_at']),
        )
