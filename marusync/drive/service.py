"""
Drive sync service.

Entry point used by the HTTP layer: uploads files to the default account,
starts background replication, runs reconciliation and folder
organization, refreshes tokens and resolves downloads.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ..data.base import AccountRepository, FileRecordRepository
from ..exceptions import (
    AccountNotFound, AccountStateError, CredentialRefreshFailed, FileRecordNotFound,
    NoDefaultAccount, RemoteOperationFailed, ValidationError,
    create_error_context, handle_unexpected_error
)
from ..models.account import Account
from ..models.file_record import Category, FileRecord
from ..models.remote import RemoteObject
from .base import OrganizeResult, ReconcileReport, ReplicationReport, SyncStatus
from .client import DriveClient
from .reconciler import SyncReconciler
from .replication import ReplicationEngine
from .resolver import DownloadResolver, DownloadResult
from .taxonomy import FolderTaxonomyResolver
from .tokens import AccountCredentials, TokenRefreshOutcome

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("title", "description", "version", "category", "sort_order", "is_active")


class DriveSyncService:
    """
    Service for distributing downloadable files across linked Drive accounts.

    Handles:
    - Upload to the default account and background replication
    - On-demand reconciliation and folder organization
    - Download resolution with fallback
    - File record administration and legacy migration
    """

    def __init__(
        self,
        accounts: AccountRepository,
        files: FileRecordRepository,
        credentials: AccountCredentials,
        client: DriveClient,
        taxonomy: FolderTaxonomyResolver,
        replication: ReplicationEngine,
        reconciler: SyncReconciler,
        resolver: DownloadResolver,
        make_public: bool = True
    ):
        self.accounts = accounts
        self.files = files
        self.credentials = credentials
        self.client = client
        self.taxonomy = taxonomy
        self.replication = replication
        self.reconciler = reconciler
        self.resolver = resolver
        self.make_public = make_public

    # =========================================================================
    # Upload
    # =========================================================================

    async def _upload_account(self, account_id: Optional[str]) -> Account:
        if account_id:
            account = await self.accounts.get_account(account_id)
            if account is None:
                raise AccountNotFound(account_id, context=create_error_context(operation="upload"))
            if not account.is_active:
                raise AccountStateError(
                    f"Account {account.email} is inactive",
                    error_code="ACCOUNT_INACTIVE",
                    context=create_error_context(operation="upload", account_id=account.id),
                    user_message="Uploads need an active account."
                )
            return account

        account = await self.accounts.get_default_account()
        if account is None:
            raise NoDefaultAccount(context=create_error_context(operation="upload"))
        return account

    async def _push(self, account: Account, source: Path, file_name: str, mime_type: str, category: Category) -> RemoteObject:
        # Uploads always start from a freshly refreshed token
        account, _ = await self.credentials.usable_token(account, force=True)

        async def push(access_token: str) -> RemoteObject:
            hierarchy = await self.taxonomy.ensure_hierarchy(access_token, account.id)
            return await self.client.upload(
                access_token, source, file_name, mime_type, hierarchy.folder_for(category)
            )

        remote = await self.credentials.call_with_retry(account, push)

        if self.make_public:
            try:
                await self.credentials.call_with_retry(
                    account, lambda token: self.client.make_public(token, remote.id)
                )
            except (CredentialRefreshFailed, RemoteOperationFailed) as e:
                logger.warning(f"Could not make {remote.id} public: {e.message}")

        return remote

    async def _discard_remote(self, account: Account, remote_id: str) -> None:
        """Delete a remote copy, logging instead of raising on failure."""
        try:
            await self.credentials.call_with_retry(
                account, lambda token: self.client.delete(token, remote_id)
            )
        except (CredentialRefreshFailed, RemoteOperationFailed) as e:
            logger.warning(f"Could not delete remote copy {remote_id} on {account.email}: {e.message}")

    async def upload_file(
        self,
        source: Path,
        file_name: str,
        title: str,
        category: Any = Category.OTHER,
        mime_type: Optional[str] = None,
        description: Optional[str] = None,
        version: Optional[str] = None,
        account_id: Optional[str] = None,
        cleanup: bool = True
    ) -> Tuple[FileRecord, RemoteObject]:
        """
        Upload a file and start replicating it to the other accounts.

        Returns as soon as the upload account holds the file and the record is
        saved; replication continues in the background.

        Args:
            source: Local file holding the content
            file_name: Original file name, used as the remote name
            title: Display title
            category: Category value; unknown values become ``other``
            mime_type: MIME type of the content
            description: Optional description
            version: Optional version label
            account_id: Upload account; the default account if omitted
            cleanup: Delete ``source`` once replication has settled

        Returns:
            Tuple of (created file record, remote metadata on the upload account)
        """
        if not file_name:
            raise ValidationError("A file name is required", context=create_error_context(operation="upload"))

        category = Category.parse(category)
        mime_type = mime_type or "application/octet-stream"

        try:
            account = await self._upload_account(account_id)
            remote = await self._push(account, source, file_name, mime_type, category)
        except Exception:
            if cleanup:
                source.unlink(missing_ok=True)
            raise

        try:
            record = FileRecord(
                title=title or file_name,
                file_name=file_name,
                file_size=remote.size if remote.size is not None else source.stat().st_size,
                mime_type=mime_type,
                category=category,
                description=description,
                version=version,
                sort_order=await self.files.next_sort_order(),
                remote_file_id=remote.id,
                remote_account_id=account.id,
            )
            await self.files.save_file_record(record)
        except Exception:
            if cleanup:
                source.unlink(missing_ok=True)
            await self._discard_remote(account, remote.id)
            raise

        logger.info(f"Uploaded {file_name} to {account.email} as {remote.id}")

        self.replication.schedule(record, source, account.id, cleanup_path=source if cleanup else None)
        return record, remote

    # =========================================================================
    # Batch operations
    # =========================================================================

    async def reconcile(self) -> ReconcileReport:
        """Run a reconciliation pass to completion."""
        return await self.reconciler.reconcile()

    async def refresh_all_tokens(self) -> List[TokenRefreshOutcome]:
        """Refresh every active account whose token is near expiry."""
        return await self.credentials.refresh_all()

    def recent_replications(self) -> List[ReplicationReport]:
        return self.replication.recent_reports()

    async def organize_folders(self) -> List[OrganizeResult]:
        """Ensure the folder hierarchy on every active account and file each
        account's own tracked files into their category folders."""
        accounts = await self.accounts.list_accounts(active_only=True)
        if not accounts:
            logger.warning("No active accounts to organize")
            return []

        results = await asyncio.gather(
            *[self._organize_account(account) for account in accounts],
            return_exceptions=True
        )

        organized = []
        for account, result in zip(accounts, results):
            if isinstance(result, BaseException):
                error = handle_unexpected_error(result)
                logger.error(f"Organizing {account.email} crashed: {error.to_log_string()}")
                result = OrganizeResult(account.id, account.email, SyncStatus.FAILED, errors=[str(result)])
            organized.append(result)
        return organized

    async def _organize_account(self, account: Account) -> OrganizeResult:
        result = OrganizeResult(account_id=account.id, email=account.email)

        try:
            hierarchy, listing = await self.credentials.call_with_retry(
                account, lambda token: self.taxonomy.survey(token, account.id)
            )
        except CredentialRefreshFailed as e:
            result.status = SyncStatus.SKIPPED
            result.errors.append(e.user_message)
            return result
        except RemoteOperationFailed as e:
            result.status = SyncStatus.FAILED
            result.errors.append(e.message)
            return result

        result.folders_created = hierarchy.folders_created
        by_id = {obj.id: obj for obj in listing}

        for record in await self.files.list_by_account(account.id, remote_only=True):
            remote = by_id.get(record.remote_file_id)
            if remote is None:
                result.missing += 1
                continue

            folder_id = hierarchy.folder_for(record.category)
            if folder_id in remote.parents:
                result.already_organized += 1
                continue

            try:
                await self.credentials.call_with_retry(
                    account, lambda token: self.client.move_to_folder(token, remote.id, folder_id)
                )
                result.moved += 1
            except (CredentialRefreshFailed, RemoteOperationFailed) as e:
                result.errors.append(f"{record.file_name}: {e.message}")
                logger.error(f"Moving {record.file_name} on {account.email} failed: {e.to_log_string()}")

        if result.errors:
            result.status = SyncStatus.PARTIAL
        logger.info(
            f"Organized {account.email}: {result.moved} moved, "
            f"{result.already_organized} in place, {result.missing} missing"
        )
        return result

    # =========================================================================
    # Inspection
    # =========================================================================

    async def _get_account(self, account_id: str, operation: str) -> Account:
        account = await self.accounts.get_account(account_id)
        if account is None:
            raise AccountNotFound(account_id, context=create_error_context(operation=operation))
        return account

    async def inspect_account(self, account_id: str) -> Dict[str, Any]:
        """
        List what sits under the sync root of one account.

        Nothing is created: an account that was never organized reports
        ``root_exists`` False.

        Returns:
            Dictionary with the account, the root folder's files and each
            subfolder with its files
        """
        account = await self._get_account(account_id, "inspect_account")
        inspection = await self.credentials.call_with_retry(account, self.taxonomy.inspect)
        logger.debug(
            f"Inspected {account.email}: {len(inspection.root_files)} root file(s), "
            f"{len(inspection.subfolders)} subfolder(s)"
        )
        return {"account_id": account.id, "email": account.email, **inspection.to_dict()}

    async def check_file(self, account_id: str, remote_id: str) -> Dict[str, Any]:
        """Look up one Drive file on an account; a 404 reports ``exists`` False."""
        account = await self._get_account(account_id, "check_file")
        try:
            remote = await self.credentials.call_with_retry(
                account, lambda token: self.client.get_metadata(token, remote_id)
            )
        except RemoteOperationFailed as e:
            if e.http_status != 404:
                raise
            return {"account_id": account.id, "email": account.email, "exists": False, "file": None}
        return {"account_id": account.id, "email": account.email, "exists": True, "file": remote.to_dict()}

    # =========================================================================
    # Downloads
    # =========================================================================

    async def get_file_record(self, record_id: str) -> FileRecord:
        record = await self.files.get_file_record(record_id)
        if record is None:
            raise FileRecordNotFound(record_id, context=create_error_context(operation="get_file_record"))
        return record

    async def open_download(self, record_id: str) -> DownloadResult:
        """Count the download attempt and resolve where the bytes come from."""
        record = await self.get_file_record(record_id)
        await self.files.increment_download_count(record.id)
        return await self.resolver.resolve(record)

    async def increment_download_count(self, record_id: str) -> None:
        await self.get_file_record(record_id)
        await self.files.increment_download_count(record_id)

    # =========================================================================
    # File record administration
    # =========================================================================

    async def list_file_records(self, active_only: bool = False) -> List[FileRecord]:
        return await self.files.list_file_records(active_only=active_only)

    async def update_file_record(self, record_id: str, changes: Dict[str, Any]) -> FileRecord:
        """Apply metadata edits. Storage fields cannot be changed here."""
        record = await self.get_file_record(record_id)

        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(
                f"Fields cannot be edited: {', '.join(sorted(unknown))}",
                context=create_error_context(operation="update_file_record", file_record_id=record_id)
            )

        for key, value in changes.items():
            if key == "category":
                value = Category.parse(value)
            setattr(record, key, value)

        await self.files.save_file_record(record)
        return record

    async def set_sort_order(self, record_id: str, sort_order: int) -> FileRecord:
        return await self.update_file_record(record_id, {"sort_order": sort_order})

    async def delete_file_record(self, record_id: str, delete_remote: bool = True) -> FileRecord:
        """
        Delete a record, and optionally its tracked remote copy.

        Copies on other accounts are left in place.
        """
        record = await self.get_file_record(record_id)

        if delete_remote and record.remote_file_id and record.remote_account_id:
            account = await self.accounts.get_account(record.remote_account_id)
            if account is not None:
                await self._discard_remote(account, record.remote_file_id)

        await self.files.delete_file_record(record.id)
        logger.info(f"Deleted file record {record.id} ({record.file_name})")
        return record

    async def migrate_to_drive(self, record_id: str, account_id: Optional[str] = None) -> Tuple[FileRecord, RemoteObject]:
        """
        Move a legacy local file into Drive storage.

        Raises:
            ValidationError: The record already lives in Drive
            LocalFileMissing: The local file is gone
        """
        record = await self.get_file_record(record_id)
        if record.remote_file_id:
            raise ValidationError(
                f"File record {record.id} is already stored in Drive",
                error_code="ALREADY_REMOTE",
                context=create_error_context(operation="migrate", file_record_id=record.id)
            )

        local = self.resolver.resolve_local_path(record)
        account = await self._upload_account(account_id)
        remote = await self._push(account, local, record.file_name, record.mime_type, Category.parse(record.category))

        record.remote_file_id = remote.id
        record.remote_account_id = account.id
        if remote.size is not None:
            record.file_size = remote.size
        await self.files.save_file_record(record)

        logger.info(f"Migrated {record.file_name} to {account.email} as {remote.id}")
        return record, remote


# Singleton instance
_sync_service: Optional[DriveSyncService] = None


def set_sync_service(service: Optional[DriveSyncService]) -> None:
    global _sync_service
    _sync_service = service


def get_sync_service() -> DriveSyncService:
    """Get the sync service instance."""
    if _sync_service is None:
        raise RuntimeError("Drive sync service not initialized")
    return _sync_service
