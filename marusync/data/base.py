"""
Abstract base classes for data access layer.

This module defines the repository interfaces the sync core depends on,
allowing the storage backend to be swapped without touching the core.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Dict, Any

from ..models.account import Account
from ..models.file_record import FileRecord


class AccountRepository(ABC):
    """Abstract repository for linked Drive accounts."""

    @abstractmethod
    async def save_account(self, account: Account) -> str:
        """
        Insert or update an account.

        Args:
            account: The account to save

        Returns:
            The ID of the saved account
        """
        pass

    @abstractmethod
    async def get_account(self, account_id: str) -> Optional[Account]:
        """
        Retrieve an account by its ID.

        Args:
            account_id: The unique identifier of the account

        Returns:
            The account if found, None otherwise
        """
        pass

    @abstractmethod
    async def get_account_by_email(self, email: str) -> Optional[Account]:
        """Retrieve the account linked to a provider-verified email."""
        pass

    @abstractmethod
    async def get_default_account(self) -> Optional[Account]:
        """Retrieve the single default account, if one is set."""
        pass

    @abstractmethod
    async def list_accounts(self, active_only: bool = False) -> List[Account]:
        """
        List accounts ordered by creation time.

        Args:
            active_only: Only return accounts with ``is_active`` set

        Returns:
            List of accounts
        """
        pass

    @abstractmethod
    async def update_credentials(
        self,
        account_id: str,
        access_token: str,
        token_expires_at: Optional[datetime],
        refresh_token: Optional[str] = None
    ) -> None:
        """
        Atomically replace the credential fields of an account.

        Clears the needs-reauthorization mark. The refresh token is only
        replaced when a new one is given.
        """
        pass

    @abstractmethod
    async def mark_needs_reauth(self, account_id: str, needs_reauth: bool = True) -> None:
        """Set or clear the needs-reauthorization mark."""
        pass

    @abstractmethod
    async def set_active(self, account_id: str, is_active: bool) -> None:
        """Activate or deactivate an account."""
        pass

    @abstractmethod
    async def set_default_account(self, account_id: str) -> None:
        """Make an account the only default account in one transaction."""
        pass

    @abstractmethod
    async def delete_account(self, account_id: str) -> bool:
        """
        Delete an account.

        Returns:
            True if a row was deleted
        """
        pass


class FileRecordRepository(ABC):
    """Abstract repository for downloadable file records."""

    @abstractmethod
    async def save_file_record(self, record: FileRecord) -> str:
        """
        Insert or update a file record.

        Args:
            record: The file record to save

        Returns:
            The ID of the saved record
        """
        pass

    @abstractmethod
    async def get_file_record(self, record_id: str) -> Optional[FileRecord]:
        """Retrieve a file record by its ID."""
        pass

    @abstractmethod
    async def list_file_records(self, active_only: bool = False) -> List[FileRecord]:
        """List records by sort order ascending, then newest first."""
        pass

    @abstractmethod
    async def list_by_account(self, account_id: str, remote_only: bool = True) -> List[FileRecord]:
        """
        List records uploaded through an account.

        Args:
            account_id: The owning account
            remote_only: Only return records with a remote file id

        Returns:
            List of file records
        """
        pass

    @abstractmethod
    async def count_by_account(self, account_id: str) -> int:
        """Count records whose remote copy lives on an account."""
        pass

    @abstractmethod
    async def delete_file_record(self, record_id: str) -> bool:
        """Delete a file record. Returns True if a row was deleted."""
        pass

    @abstractmethod
    async def increment_download_count(self, record_id: str) -> None:
        """Add one to the download counter."""
        pass

    @abstractmethod
    async def next_sort_order(self) -> int:
        """Sort position for a newly created record (current maximum plus one)."""
        pass


class DatabaseConnection(ABC):
    """Abstract database connection interface."""

    @abstractmethod
    async def connect(self) -> None:
        """Establish database connection."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close database connection."""
        pass

    @abstractmethod
    async def execute(self, query: str, params: Optional[tuple] = None) -> Any:
        """
        Execute a database query.

        Args:
            query: SQL query to execute
            params: Query parameters

        Returns:
            Query result
        """
        pass

    @abstractmethod
    async def fetch_one(self, query: str, params: Optional[tuple] = None) -> Optional[Dict[str, Any]]:
        """Fetch a single row as a dictionary, or None if no results."""
        pass

    @abstractmethod
    async def fetch_all(self, query: str, params: Optional[tuple] = None) -> List[Dict[str, Any]]:
        """Fetch all rows as dictionaries."""
        pass

    @abstractmethod
    async def begin_transaction(self) -> 'Transaction':
        """
        Begin a new database transaction.

        Returns:
            Transaction context manager
        """
        pass


class Transaction(ABC):
    """Abstract database transaction interface."""

    @abstractmethod
    async def execute(self, query: str, params: Optional[tuple] = None) -> Any:
        """Execute a query inside the transaction."""
        pass

    @abstractmethod
    async def commit(self) -> None:
        """Commit the transaction."""
        pass

    @abstractmethod
    async def rollback(self) -> None:
        """Rollback the transaction."""
        pass

    @abstractmethod
    async def __aenter__(self) -> 'Transaction':
        """Enter transaction context."""
        pass

    @abstractmethod
    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit transaction context."""
        pass
