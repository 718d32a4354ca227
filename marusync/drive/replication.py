"""
Background replication of newly uploaded files to every other account.

Each replication job fans out one task per target account and joins them
into a ``ReplicationReport``. A failing target never affects the others
and nothing is retried automatically; reconciliation repairs gaps later.
"""

import asyncio
import logging
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Deque, List, Optional, Set

from ..data.base import AccountRepository
from ..exceptions import (
    CredentialRefreshFailed, RemoteOperationFailed, handle_unexpected_error
)
from ..models.account import Account
from ..models.file_record import FileRecord
from ..models.remote import RemoteObject
from .base import ReplicationReport, ReplicationStatus, TargetOutcome
from .client import DriveClient, UploadContent
from .taxonomy import FolderTaxonomyResolver
from .tokens import AccountCredentials

logger = logging.getLogger(__name__)


class ReplicationEngine:
    """Pushes a file from its source account to all other active accounts."""

    def __init__(
        self,
        accounts: AccountRepository,
        credentials: AccountCredentials,
        client: DriveClient,
        taxonomy: FolderTaxonomyResolver,
        make_public: bool = True,
        report_limit: int = 50
    ):
        """
        Initialize the engine.

        Args:
            accounts: Account repository
            credentials: Credential provider that persists refreshes
            client: Drive API client
            taxonomy: Folder taxonomy resolver
            make_public: Grant anonymous read access on every replica
            report_limit: Number of finished job reports kept for admins
        """
        self.accounts = accounts
        self.credentials = credentials
        self.client = client
        self.taxonomy = taxonomy
        self.make_public = make_public
        self._jobs: Set[asyncio.Task] = set()
        self._reports: Deque[ReplicationReport] = deque(maxlen=report_limit)

    async def replicate(
        self,
        record: FileRecord,
        content: UploadContent,
        source_account_id: str
    ) -> ReplicationReport:
        """
        Replicate a file to every account except its source, concurrently.

        Inactive accounts are reported as skipped without any remote call.
        This method does not raise for per-account failures.

        Args:
            record: The file record that was just uploaded
            content: File bytes or path of a local copy of the file
            source_account_id: Account that already holds the file

        Returns:
            Report with one outcome per target account
        """
        targets = [a for a in await self.accounts.list_accounts() if a.id != source_account_id]
        report = ReplicationReport(
            file_record_id=record.id,
            file_name=record.file_name,
            source_account_id=source_account_id,
        )

        logger.info(f"Replicating {record.file_name} to {len(targets)} account(s)")

        results = await asyncio.gather(
            *[self._replicate_to(account, record, content) for account in targets],
            return_exceptions=True
        )

        for account, result in zip(targets, results):
            if isinstance(result, BaseException):
                error = handle_unexpected_error(result)
                logger.error(f"Replication to {account.email} crashed: {error.to_log_string()}")
                result = TargetOutcome(
                    account_id=account.id,
                    email=account.email,
                    status=ReplicationStatus.FAILED,
                    error=str(result),
                )
            report.outcomes.append(result)

        report.completed_at = datetime.utcnow()
        self._reports.appendleft(report)
        logger.info(f"Replication finished: {report.summary()}")
        return report

    async def _replicate_to(self, account: Account, record: FileRecord, content: UploadContent) -> TargetOutcome:
        if not account.is_active:
            logger.info(f"Skipping inactive account {account.email} for {record.file_name}")
            return TargetOutcome(account.id, account.email, ReplicationStatus.SKIPPED_INACTIVE)

        try:
            account, _ = await self.credentials.usable_token(account)
        except (CredentialRefreshFailed, RemoteOperationFailed) as e:
            logger.warning(f"Skipping {account.email} for {record.file_name}: token refresh failed ({e.message})")
            return TargetOutcome(
                account.id,
                account.email,
                ReplicationStatus.SKIPPED_TOKEN_EXPIRED,
                error=e.user_message,
            )

        async def push(access_token: str) -> RemoteObject:
            hierarchy = await self.taxonomy.ensure_hierarchy(access_token, account.id)
            remote = await self.client.upload(
                access_token,
                content,
                record.file_name,
                record.mime_type,
                hierarchy.folder_for(record.category),
            )
            if self.make_public:
                try:
                    await self.client.make_public(access_token, remote.id)
                except RemoteOperationFailed as e:
                    logger.warning(f"Could not make {remote.id} public on {account.email}: {e.message}")
            return remote

        try:
            remote = await self.credentials.call_with_retry(account, push)
        except (CredentialRefreshFailed, RemoteOperationFailed) as e:
            logger.error(f"Replication of {record.file_name} to {account.email} failed: {e.to_log_string()}")
            return TargetOutcome(account.id, account.email, ReplicationStatus.FAILED, error=e.message)

        logger.info(f"Replicated {record.file_name} to {account.email} as {remote.id}")
        return TargetOutcome(account.id, account.email, ReplicationStatus.REPLICATED, remote_file_id=remote.id)

    def schedule(
        self,
        record: FileRecord,
        content: UploadContent,
        source_account_id: str,
        cleanup_path: Optional[Path] = None
    ) -> asyncio.Task:
        """
        Start a replication job in the background and return its task.

        Args:
            record: The file record that was just uploaded
            content: File bytes or path of a local copy of the file
            source_account_id: Account that already holds the file
            cleanup_path: Temporary file to delete once the job settles

        Returns:
            The job's task; awaiting it yields the report (or None if the job crashed)
        """
        task = asyncio.create_task(
            self._run_job(record, content, source_account_id, cleanup_path),
            name=f"replicate-{record.id}"
        )
        self._jobs.add(task)
        task.add_done_callback(self._jobs.discard)
        return task

    async def _run_job(
        self,
        record: FileRecord,
        content: UploadContent,
        source_account_id: str,
        cleanup_path: Optional[Path]
    ) -> Optional[ReplicationReport]:
        try:
            return await self.replicate(record, content, source_account_id)
        except Exception as e:
            error = handle_unexpected_error(e)
            logger.error(f"Replication job for {record.file_name} failed: {error.to_log_string()}")
            return None
        finally:
            if cleanup_path is not None:
                cleanup_path.unlink(missing_ok=True)

    @property
    def pending_jobs(self) -> int:
        return len(self._jobs)

    async def drain(self) -> None:
        """Wait for every in-flight replication job to settle."""
        if self._jobs:
            await asyncio.gather(*list(self._jobs), return_exceptions=True)

    def recent_reports(self) -> List[ReplicationReport]:
        """Finished job reports, newest first."""
        return list(self._reports)
