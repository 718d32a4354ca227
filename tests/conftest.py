"""
Shared fixtures: in-memory repositories, a fake Drive and a fake OAuth flow.
"""

import dataclasses
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Set

import pytest

from marusync.data.base import AccountRepository, FileRecordRepository
from marusync.drive import (
    AccountCredentials,
    AccountService,
    DownloadResolver,
    DriveSyncService,
    FolderTaxonomyResolver,
    ReplicationEngine,
    SyncReconciler,
    TokenCipher,
    TokenManager,
)
from marusync.drive.oauth import GoogleUserInfo, OAuthState, OAuthTokens
from marusync.exceptions import (
    CredentialRefreshFailed, OAuthStateInvalid, RemoteAuthExpired, RemoteOperationFailed
)
from marusync.models import Account, FileRecord, RemoteObject, FOLDER_MIME_TYPE, utc_now


# ============================================================================
# Repositories
# ============================================================================

class InMemoryAccountRepository(AccountRepository):
    """Account repository backed by a dict; hands out copies like a database would."""

    def __init__(self):
        self.rows: Dict[str, Account] = {}

    async def save_account(self, account: Account) -> str:
        self.rows[account.id] = dataclasses.replace(account)
        return account.id

    async def get_account(self, account_id: str) -> Optional[Account]:
        row = self.rows.get(account_id)
        return dataclasses.replace(row) if row else None

    async def get_account_by_email(self, email: str) -> Optional[Account]:
        for row in self.rows.values():
            if row.email.lower() == email.lower():
                return dataclasses.replace(row)
        return None

    async def get_default_account(self) -> Optional[Account]:
        for row in self.rows.values():
            if row.is_default:
                return dataclasses.replace(row)
        return None

    async def list_accounts(self, active_only: bool = False) -> List[Account]:
        rows = sorted(self.rows.values(), key=lambda a: a.created_at)
        return [dataclasses.replace(a) for a in rows if a.is_active or not active_only]

    async def update_credentials(self, account_id, access_token, token_expires_at, refresh_token=None) -> None:
        row = self.rows[account_id]
        row.access_token = access_token
        row.token_expires_at = token_expires_at
        if refresh_token:
            row.refresh_token = refresh_token
        row.needs_reauth = False

    async def mark_needs_reauth(self, account_id: str, needs_reauth: bool = True) -> None:
        self.rows[account_id].needs_reauth = needs_reauth

    async def set_active(self, account_id: str, is_active: bool) -> None:
        self.rows[account_id].is_active = is_active

    async def set_default_account(self, account_id: str) -> None:
        for row in self.rows.values():
            row.is_default = row.id == account_id

    async def delete_account(self, account_id: str) -> bool:
        return self.rows.pop(account_id, None) is not None


class InMemoryFileRecordRepository(FileRecordRepository):
    """File record repository backed by a dict."""

    def __init__(self):
        self.rows: Dict[str, FileRecord] = {}

    async def save_file_record(self, record: FileRecord) -> str:
        self.rows[record.id] = dataclasses.replace(record)
        return record.id

    async def get_file_record(self, record_id: str) -> Optional[FileRecord]:
        row = self.rows.get(record_id)
        return dataclasses.replace(row) if row else None

    async def list_file_records(self, active_only: bool = False) -> List[FileRecord]:
        rows = sorted(self.rows.values(), key=lambda r: r.created_at, reverse=True)
        rows = sorted(rows, key=lambda r: r.sort_order)
        return [dataclasses.replace(r) for r in rows if r.is_active or not active_only]

    async def list_by_account(self, account_id: str, remote_only: bool = True) -> List[FileRecord]:
        return [
            dataclasses.replace(r) for r in self.rows.values()
            if r.remote_account_id == account_id and (r.remote_file_id or not remote_only)
        ]

    async def count_by_account(self, account_id: str) -> int:
        return sum(1 for r in self.rows.values() if r.remote_account_id == account_id)

    async def delete_file_record(self, record_id: str) -> bool:
        return self.rows.pop(record_id, None) is not None

    async def increment_download_count(self, record_id: str) -> None:
        if record_id in self.rows:
            self.rows[record_id].download_count += 1

    async def next_sort_order(self) -> int:
        return max((r.sort_order for r in self.rows.values()), default=-1) + 1


# ============================================================================
# Remote collaborators
# ============================================================================

class FakeDownload:
    """Stands in for RemoteDownload."""

    def __init__(self, content: bytes):
        self.content = content
        self.content_length = len(content)
        self.mime_type = "application/octet-stream"

    async def iter_bytes(self):
        yield self.content

    async def read(self) -> bytes:
        return self.content

    async def aclose(self) -> None:
        pass


class FakeDrive:
    """In-memory Drive with one file space per account, addressed by access token.

    Exposes the same coroutine methods as DriveClient. ``mutations`` records
    every call that changes remote state.
    """

    def __init__(self):
        self.spaces: Dict[str, Dict[str, RemoteObject]] = {}
        self.tokens: Dict[str, str] = {}
        self.content: Dict[str, bytes] = {}
        self.public: Set[str] = set()
        self.mutations: List[tuple] = []
        self.expired_tokens: Set[str] = set()
        self.failing_spaces: Set[str] = set()
        self.failing_downloads: Set[str] = set()
        self._counter = 0

    def add_space(self, email: str, access_token: str) -> None:
        self.spaces.setdefault(email, {})
        self.tokens[access_token] = email

    def _space(self, access_token: str, operation: str) -> str:
        if access_token in self.expired_tokens:
            raise RemoteAuthExpired(f"{operation}: token rejected")
        email = self.tokens.get(access_token)
        if email is None:
            raise RemoteAuthExpired(f"{operation}: unknown token")
        if email in self.failing_spaces:
            raise RemoteOperationFailed(f"{operation}: quota exceeded", http_status=403)
        return email

    def _new_id(self) -> str:
        self._counter += 1
        return f"obj{self._counter}"

    def add_object(
        self,
        email: str,
        name: str,
        parents: Optional[List[str]] = None,
        content: bytes = b"",
        folder: bool = False
    ) -> RemoteObject:
        """Place an object directly, bypassing mutation tracking."""
        obj = RemoteObject(
            id=self._new_id(),
            name=name,
            mime_type=FOLDER_MIME_TYPE if folder else "application/octet-stream",
            size=None if folder else len(content),
            parents=list(parents or []),
            created_time=datetime(2024, 1, 1) + timedelta(seconds=self._counter),
        )
        self.spaces[email][obj.id] = obj
        if not folder:
            self.content[obj.id] = content
        return obj

    def files_in(self, email: str, name: Optional[str] = None) -> List[RemoteObject]:
        return [
            obj for obj in self.spaces[email].values()
            if not obj.is_folder and (name is None or obj.name == name)
        ]

    def folders_in(self, email: str, name: Optional[str] = None) -> List[RemoteObject]:
        return [
            obj for obj in self.spaces[email].values()
            if obj.is_folder and (name is None or obj.name == name)
        ]

    def mutations_on(self, email: str) -> List[tuple]:
        return [m for m in self.mutations if m[1] == email]

    # DriveClient surface

    async def upload(self, access_token, content, name, mime_type, parent_id=None) -> RemoteObject:
        email = self._space(access_token, "upload")
        data = content.read_bytes() if isinstance(content, Path) else content
        obj = self.add_object(email, name, [parent_id] if parent_id else [], data)
        obj.mime_type = mime_type
        self.mutations.append(("upload", email, name))
        return dataclasses.replace(obj, parents=list(obj.parents))

    async def open_download(self, access_token, remote_id) -> FakeDownload:
        email = self._space(access_token, "download")
        if remote_id in self.failing_downloads or remote_id not in self.spaces[email]:
            raise RemoteOperationFailed(f"download: {remote_id} not found", http_status=404)
        return FakeDownload(self.content[remote_id])

    async def download_bytes(self, access_token, remote_id) -> bytes:
        download = await self.open_download(access_token, remote_id)
        return await download.read()

    async def delete(self, access_token, remote_id) -> None:
        email = self._space(access_token, "delete")
        if self.spaces[email].pop(remote_id, None) is None:
            raise RemoteOperationFailed(f"delete: {remote_id} not found", http_status=404)
        self.mutations.append(("delete", email, remote_id))

    async def make_public(self, access_token, remote_id) -> None:
        email = self._space(access_token, "make_public")
        self.public.add(remote_id)
        self.mutations.append(("make_public", email, remote_id))

    async def get_metadata(self, access_token, remote_id) -> RemoteObject:
        email = self._space(access_token, "get_metadata")
        if remote_id not in self.spaces[email]:
            raise RemoteOperationFailed(f"get_metadata: {remote_id} not found", http_status=404)
        return dataclasses.replace(self.spaces[email][remote_id])

    async def list_all(self, access_token, page_size=200, query=None) -> List[RemoteObject]:
        email = self._space(access_token, "list_files")
        return [dataclasses.replace(obj, parents=list(obj.parents)) for obj in self.spaces[email].values()]

    async def list_children(self, access_token, folder_id, page_size=200) -> List[RemoteObject]:
        return [obj for obj in await self.list_all(access_token) if folder_id in obj.parents]

    async def create_folder(self, access_token, name, parent_id=None) -> RemoteObject:
        email = self._space(access_token, "create_folder")
        obj = self.add_object(email, name, [parent_id] if parent_id else [], folder=True)
        self.mutations.append(("create_folder", email, name))
        return dataclasses.replace(obj, parents=list(obj.parents))

    async def move_to_folder(self, access_token, remote_id, new_parent_id) -> RemoteObject:
        email = self._space(access_token, "move_to_folder")
        obj = self.spaces[email][remote_id]
        obj.parents = [new_parent_id]
        self.mutations.append(("move", email, obj.name))
        return dataclasses.replace(obj, parents=list(obj.parents))

    async def get_about_user(self, access_token) -> dict:
        email = self._space(access_token, "about")
        return {"emailAddress": email, "displayName": email.split("@")[0]}


class FakeOAuth:
    """Stands in for GoogleOAuthFlow. Refreshing issues a new token the FakeDrive accepts."""

    def __init__(self, drive: FakeDrive):
        self.drive = drive
        self.refresh_tokens: Dict[str, str] = {}
        self.rejected: Set[str] = set()
        self.refresh_calls: List[str] = []
        self.revoked: List[str] = []
        self.states: Dict[str, OAuthState] = {}
        self.codes: Dict[str, str] = {}
        self._issued = 0

    def register(self, refresh_token: str, email: str) -> None:
        self.refresh_tokens[refresh_token] = email

    async def refresh_access_token(self, refresh_token) -> OAuthTokens:
        self.refresh_calls.append(refresh_token)
        if not refresh_token or refresh_token in self.rejected or refresh_token not in self.refresh_tokens:
            raise CredentialRefreshFailed("invalid_grant")
        self._issued += 1
        email = self.refresh_tokens[refresh_token]
        access_token = f"access-{email}-{self._issued}"
        self.drive.tokens[access_token] = email
        return OAuthTokens(access_token=access_token, expires_at=utc_now() + timedelta(hours=1))

    async def validate_access_token(self, access_token: str) -> bool:
        return access_token in self.drive.tokens

    async def revoke_token(self, token: str) -> bool:
        self.revoked.append(token)
        return True

    def generate_auth_url(self, account_name: str):
        state = f"state-{account_name}"
        self.states[state] = OAuthState(state_token=state, account_name=account_name)
        return f"https://accounts.example/auth?name={account_name}", state

    def validate_state(self, state_token: str) -> OAuthState:
        state = self.states.pop(state_token, None)
        if state is None:
            raise OAuthStateInvalid()
        return state

    async def exchange_code(self, code: str) -> OAuthTokens:
        """Codes registered in ``codes`` map to the email they authorize."""
        email = self.codes.get(code)
        if email is None:
            raise RemoteOperationFailed("token exchange: invalid_grant", http_status=400)
        access_token = f"access-{email}-linked"
        self.drive.add_space(email, access_token)
        self.register(f"refresh-{email}", email)
        return OAuthTokens(
            access_token=access_token,
            refresh_token=f"refresh-{email}",
            expires_at=utc_now() + timedelta(hours=1),
        )

    async def get_user_info(self, access_token: str) -> GoogleUserInfo:
        return GoogleUserInfo(email=self.drive.tokens[access_token])


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def cipher():
    return TokenCipher("test-encryption-secret")


@pytest.fixture
def drive():
    return FakeDrive()


@pytest.fixture
def oauth(drive):
    return FakeOAuth(drive)


@pytest.fixture
def account_repo():
    return InMemoryAccountRepository()


@pytest.fixture
def file_repo():
    return InMemoryFileRecordRepository()


@pytest.fixture
def credentials(oauth, cipher, account_repo):
    return AccountCredentials(TokenManager(oauth, cipher), account_repo)


@pytest.fixture
def taxonomy(drive):
    return FolderTaxonomyResolver(drive)


@pytest.fixture
def make_account(account_repo, cipher, drive, oauth):
    """Factory linking an account with a fresh token and a registered refresh token."""
    created = []

    async def _make(
        email: str,
        is_default: bool = False,
        is_active: bool = True,
        expires_in: Optional[timedelta] = timedelta(hours=1),
        refreshable: bool = True,
    ) -> Account:
        access_token = f"access-{email}"
        refresh_token = f"refresh-{email}"
        drive.add_space(email, access_token)
        oauth.register(refresh_token, email)
        if not refreshable:
            oauth.rejected.add(refresh_token)

        account = Account(
            account_name=email.split("@")[0],
            email=email,
            access_token=cipher.encrypt(access_token),
            refresh_token=cipher.encrypt(refresh_token),
            token_expires_at=utc_now() + expires_in if expires_in is not None else None,
            is_active=is_active,
            is_default=is_default,
            created_at=utc_now() + timedelta(microseconds=len(created)),
        )
        created.append(account)
        await account_repo.save_account(account)
        return account

    return _make


@pytest.fixture
def replication(account_repo, credentials, drive, taxonomy):
    return ReplicationEngine(account_repo, credentials, drive, taxonomy)


@pytest.fixture
def reconciler(account_repo, file_repo, credentials, drive, taxonomy):
    return SyncReconciler(account_repo, file_repo, credentials, drive, taxonomy)


@pytest.fixture
def resolver(account_repo, credentials, drive, tmp_path):
    return DownloadResolver(account_repo, credentials, drive, local_root=tmp_path)


@pytest.fixture
def sync_service(account_repo, file_repo, credentials, drive, taxonomy, replication, reconciler, resolver):
    return DriveSyncService(
        account_repo,
        file_repo,
        credentials,
        drive,
        taxonomy,
        replication,
        reconciler,
        resolver,
    )


@pytest.fixture
def account_service(account_repo, file_repo, oauth, cipher, credentials, drive):
    return AccountService(account_repo, file_repo, oauth, cipher, credentials, drive)
