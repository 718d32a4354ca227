"""
Download resolution with cross-account fallback.

Order of attempts: the tracked copy on the owning account, then a
same-named copy on any other active account, then a redirect to the
public Drive URL of the tracked copy. The end user cannot tell which
path served the file.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, List, Optional, Tuple

from ..data.base import AccountRepository
from ..exceptions import (
    CredentialRefreshFailed, LocalFileMissing, RemoteOperationFailed,
    create_error_context, handle_unexpected_error
)
from ..models.account import Account
from ..models.file_record import FileRecord
from ..models.remote import RemoteObject
from .client import DriveClient, RemoteDownload
from .tokens import AccountCredentials

logger = logging.getLogger(__name__)

PUBLIC_DOWNLOAD_URL = "https://drive.google.com/uc?export=download&id={file_id}&confirm=t"


def public_download_url(remote_id: str) -> str:
    """Unauthenticated download URL of a public Drive file."""
    return PUBLIC_DOWNLOAD_URL.format(file_id=remote_id)


class DownloadKind(Enum):
    """How a download is served."""
    STREAM = "stream"
    LOCAL = "local"
    REDIRECT = "redirect"


@dataclass
class DownloadResult:
    """A resolved download, ready to be turned into an HTTP response."""
    kind: DownloadKind
    file_name: str
    mime_type: str
    stream: Optional[AsyncIterator[bytes]] = None
    content_length: Optional[int] = None
    local_path: Optional[Path] = None
    redirect_url: Optional[str] = None
    served_from_account_id: Optional[str] = None
    fallback_used: bool = False


class DownloadResolver:
    """Finds a readable copy of a file record's content. Never writes."""

    def __init__(
        self,
        accounts: AccountRepository,
        credentials: AccountCredentials,
        client: DriveClient,
        local_root: Path,
        page_size: int = 200
    ):
        self.accounts = accounts
        self.credentials = credentials
        self.client = client
        self.local_root = Path(local_root)
        self.page_size = page_size

    async def resolve(self, record: FileRecord) -> DownloadResult:
        """
        Resolve a download for a file record.

        Raises:
            LocalFileMissing: If a legacy record's local file is gone
        """
        if not record.remote_file_id:
            return self._local(record)

        owner = None
        if record.remote_account_id:
            owner = await self.accounts.get_account(record.remote_account_id)

        if owner is not None:
            try:
                download = await self.credentials.call_with_retry(
                    owner,
                    lambda token: self.client.open_download(token, record.remote_file_id)
                )
                return self._stream(record, download, owner.id, fallback_used=False)
            except (CredentialRefreshFailed, RemoteOperationFailed) as e:
                logger.warning(
                    f"Primary copy of {record.file_name} on {owner.email} unavailable: {e.message}"
                )
        else:
            logger.warning(f"Owning account of {record.file_name} no longer exists")

        fallback = await self._from_sibling(record)
        if fallback is not None:
            return fallback

        logger.warning(f"No readable copy of {record.file_name}; redirecting to public URL")
        return DownloadResult(
            kind=DownloadKind.REDIRECT,
            file_name=record.file_name,
            mime_type=record.mime_type,
            redirect_url=public_download_url(record.remote_file_id),
            served_from_account_id=record.remote_account_id,
            fallback_used=True,
        )

    def resolve_local_path(self, record: FileRecord) -> Path:
        """Absolute path of a legacy record's local file.

        Raises:
            LocalFileMissing: If the record has no local path or the file is gone
        """
        if not record.local_path:
            raise LocalFileMissing(
                "<none>",
                context=create_error_context(operation="download", file_record_id=record.id)
            )

        path = Path(record.local_path)
        if not path.is_absolute():
            path = self.local_root / record.local_path.lstrip("/")
        if not path.is_file():
            raise LocalFileMissing(
                str(path),
                context=create_error_context(operation="download", file_record_id=record.id)
            )
        return path

    def _local(self, record: FileRecord) -> DownloadResult:
        path = self.resolve_local_path(record)
        return DownloadResult(
            kind=DownloadKind.LOCAL,
            file_name=record.file_name,
            mime_type=record.mime_type,
            local_path=path,
            content_length=path.stat().st_size,
        )

    def _stream(
        self,
        record: FileRecord,
        download: RemoteDownload,
        account_id: str,
        fallback_used: bool
    ) -> DownloadResult:
        return DownloadResult(
            kind=DownloadKind.STREAM,
            file_name=record.file_name,
            mime_type=record.mime_type,
            stream=download.iter_bytes(),
            content_length=download.content_length,
            served_from_account_id=account_id,
            fallback_used=fallback_used,
        )

    async def _list_sibling(self, account: Account) -> List[RemoteObject]:
        return await self.credentials.call_with_retry(
            account,
            lambda token: self.client.list_all(token, self.page_size)
        )

    async def _from_sibling(self, record: FileRecord) -> Optional[DownloadResult]:
        siblings = [
            account for account in await self.accounts.list_accounts(active_only=True)
            if account.id != record.remote_account_id
        ]
        if not siblings:
            return None

        listings = await asyncio.gather(
            *[self._list_sibling(account) for account in siblings],
            return_exceptions=True
        )

        available: List[Tuple[Account, List[RemoteObject]]] = []
        for account, listing in zip(siblings, listings):
            if isinstance(listing, BaseException):
                error = handle_unexpected_error(listing)
                logger.warning(f"Could not list {account.email} for fallback: {error.to_log_string()}")
                continue
            available.append((account, listing))

        expected_size = record.file_size or None
        stem = record.file_name.split(".")[0]

        def exact(obj: RemoteObject) -> bool:
            return obj.name == record.file_name

        def prefixed(obj: RemoteObject) -> bool:
            # Loose name matches need a confirmed size
            if expected_size is None or obj.size != expected_size:
                return False
            return bool(stem) and obj.name != record.file_name and obj.name.startswith(stem)

        for matcher in (exact, prefixed):
            for account, listing in available:
                for candidate in listing:
                    if candidate.is_folder or not matcher(candidate):
                        continue
                    if not candidate.matches_content(size=expected_size):
                        logger.info(
                            f"Ignoring {candidate.name} on {account.email}: size "
                            f"{candidate.size} != {expected_size}"
                        )
                        continue
                    try:
                        download = await self.credentials.call_with_retry(
                            account,
                            lambda token: self.client.open_download(token, candidate.id)
                        )
                    except (CredentialRefreshFailed, RemoteOperationFailed) as e:
                        logger.warning(f"Fallback copy {candidate.id} on {account.email} failed: {e.message}")
                        continue

                    logger.info(f"Serving {record.file_name} from fallback account {account.email}")
                    return self._stream(record, download, account.id, fallback_used=True)

        return None
