"""
On-demand repair pass that brings every active account in line with the
default account's file set.

The authoritative file list comes from the persisted file records of the
default account, not from a walk of its drive. Targets run concurrently;
files within one target run one at a time so that at most one file's
bytes are held in memory per target. A second run over an unchanged state
performs no writes.
"""

import asyncio
import logging
from datetime import datetime
from typing import List

from ..data.base import AccountRepository, FileRecordRepository
from ..exceptions import (
    CredentialRefreshFailed, NoDefaultAccount, NoSyncTargets, RemoteOperationFailed,
    create_error_context, handle_unexpected_error
)
from ..models.account import Account
from ..models.file_record import Category, FileRecord
from .base import ReconcileReport, ReconcileTargetResult, SyncStatus
from .client import DriveClient
from .taxonomy import FolderHierarchy, FolderTaxonomyResolver, TaxonomyIndex
from .tokens import AccountCredentials

logger = logging.getLogger(__name__)


class SyncReconciler:
    """Creates missing folders, files misplaced files and uploads missing ones."""

    def __init__(
        self,
        accounts: AccountRepository,
        files: FileRecordRepository,
        credentials: AccountCredentials,
        client: DriveClient,
        taxonomy: FolderTaxonomyResolver,
        make_public: bool = True
    ):
        self.accounts = accounts
        self.files = files
        self.credentials = credentials
        self.client = client
        self.taxonomy = taxonomy
        self.make_public = make_public

    async def reconcile(self) -> ReconcileReport:
        """
        Reconcile every active non-default account against the default account.

        Returns:
            Per-target counts of moved, uploaded and already present files

        Raises:
            NoDefaultAccount: If no default account is set
            NoSyncTargets: If there is no other active account
        """
        default = await self.accounts.get_default_account()
        if default is None:
            raise NoDefaultAccount(context=create_error_context(operation="reconcile"))

        targets = [
            account for account in await self.accounts.list_accounts(active_only=True)
            if account.id != default.id
        ]
        if not targets:
            raise NoSyncTargets(context=create_error_context(operation="reconcile", account_id=default.id))

        report = ReconcileReport(default_account_id=default.id)

        try:
            await self.credentials.call_with_retry(
                default, lambda token: self.taxonomy.ensure_hierarchy(token, default.id)
            )
        except (CredentialRefreshFailed, RemoteOperationFailed) as e:
            logger.error(f"Could not ensure folders on default account {default.email}: {e.to_log_string()}")

        records = await self.files.list_by_account(default.id, remote_only=True)
        report.file_count = len(records)

        logger.info(
            f"Reconciling {len(records)} file(s) from {default.email} to {len(targets)} account(s)"
        )

        results = await asyncio.gather(
            *[self._reconcile_target(default, target, records) for target in targets],
            return_exceptions=True
        )

        for target, result in zip(targets, results):
            if isinstance(result, BaseException):
                error = handle_unexpected_error(result)
                logger.error(f"Reconciliation of {target.email} crashed: {error.to_log_string()}")
                result = ReconcileTargetResult(
                    account_id=target.id,
                    email=target.email,
                    status=SyncStatus.FAILED,
                    errors=[str(result)],
                )
            report.targets.append(result)

        report.completed_at = datetime.utcnow()
        logger.info(
            f"Reconciliation finished: {report.total_reconciled} reconciled, "
            f"{report.total_failed} failed across {len(report.targets)} account(s)"
        )
        return report

    async def _reconcile_target(
        self,
        default: Account,
        target: Account,
        records: List[FileRecord]
    ) -> ReconcileTargetResult:
        result = ReconcileTargetResult(account_id=target.id, email=target.email)

        try:
            hierarchy, index = await self.credentials.call_with_retry(
                target, lambda token: self.taxonomy.snapshot(token, target.id)
            )
        except CredentialRefreshFailed as e:
            logger.warning(f"Skipping reconciliation of {target.email}: {e.message}")
            result.status = SyncStatus.SKIPPED
            result.errors.append(e.user_message)
            return result
        except RemoteOperationFailed as e:
            logger.error(f"Could not read folders on {target.email}: {e.to_log_string()}")
            result.status = SyncStatus.FAILED
            result.errors.append(e.message)
            return result

        result.folders_created = hierarchy.folders_created

        for record in records:
            try:
                await self._reconcile_file(default, target, record, hierarchy, index, result)
            except (CredentialRefreshFailed, RemoteOperationFailed) as e:
                result.failed += 1
                result.errors.append(f"{record.file_name}: {e.message}")
                logger.error(f"Reconciling {record.file_name} on {target.email} failed: {e.to_log_string()}")

        result.finish()
        logger.info(
            f"Reconciled {target.email}: {result.moved} moved, {result.uploaded} uploaded, "
            f"{result.already_present} present, {result.failed} failed"
        )
        return result

    async def _reconcile_file(
        self,
        default: Account,
        target: Account,
        record: FileRecord,
        hierarchy: FolderHierarchy,
        index: TaxonomyIndex,
        result: ReconcileTargetResult
    ) -> None:
        category = Category.parse(record.category)
        folder_id = hierarchy.folder_for(category)
        entry = index.find(record.file_name)

        # Placement inside a category folder is not re-validated
        if entry is not None and not entry.in_root:
            result.already_present += 1
            return

        if entry is not None:
            await self.credentials.call_with_retry(
                target,
                lambda token: self.client.move_to_folder(token, entry.remote.id, folder_id)
            )
            entry.category = category
            result.moved += 1
            logger.info(f"Moved {record.file_name} into {category.folder_name} on {target.email}")
            return

        content = await self.credentials.call_with_retry(
            default,
            lambda token: self.client.download_bytes(token, record.remote_file_id)
        )
        remote = await self.credentials.call_with_retry(
            target,
            lambda token: self.client.upload(token, content, record.file_name, record.mime_type, folder_id)
        )
        index.add(remote, category)
        result.uploaded += 1
        logger.info(f"Uploaded missing {record.file_name} to {target.email} ({remote.id})")

        if self.make_public:
            try:
                await self.credentials.call_with_retry(
                    target,
                    lambda token: self.client.make_public(token, remote.id)
                )
            except (CredentialRefreshFailed, RemoteOperationFailed) as e:
                logger.warning(f"Could not make {remote.id} public on {target.email}: {e.message}")
