"""
Admin API request and response schemas.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


# ============================================================================
# Errors
# ============================================================================

class ErrorResponse(BaseModel):
    """Error response."""
    error: str
    error_code: str
    message: str


class DefaultChangeConflictResponse(ErrorResponse):
    """Returned when another default account exists and force is not set."""
    current_default_email: str
    file_count: int


# ============================================================================
# Auth
# ============================================================================

class LoginRequest(BaseModel):
    """Admin login request."""
    password: str


class LoginResponse(BaseModel):
    """Admin bearer token."""
    token: str
    token_type: str = "bearer"
    expires_in: int


# ============================================================================
# Accounts
# ============================================================================

class AccountResponse(BaseModel):
    """Linked account status, credentials omitted."""
    id: str
    account_name: str
    email: str
    is_active: bool
    is_default: bool
    profile_picture: Optional[str] = None
    token_expires_at: Optional[str] = None
    token_expired: bool
    needs_reauth: bool
    created_at: str


class AuthorizeRequest(BaseModel):
    """Request to link a new account."""
    account_name: str = Field(..., min_length=1, max_length=100)


class AuthorizeResponse(BaseModel):
    """Google consent URL to send the admin to."""
    auth_url: str


class TokenRefreshItem(BaseModel):
    """Per-account token refresh outcome."""
    account_id: str
    email: str
    status: str
    message: str = ""
    token_expires_at: Optional[str] = None


class TokenRefreshResponse(BaseModel):
    """Outcome of refreshing every account."""
    results: List[TokenRefreshItem]
    refreshed: int
    failed: int


class VerifyResponse(BaseModel):
    """Identity check of a stored credential."""
    account_id: str
    email: str
    token_valid: bool
    reported_email: Optional[str] = None
    matches: bool


# ============================================================================
# Files
# ============================================================================

class FileRecordResponse(BaseModel):
    """Downloadable file."""
    id: str
    title: str
    file_name: str
    file_size: int
    mime_type: str
    category: str
    description: Optional[str] = None
    version: Optional[str] = None
    download_count: int
    sort_order: int
    remote_file_id: Optional[str] = None
    remote_account_id: Optional[str] = None
    local_path: Optional[str] = None
    is_active: bool
    created_at: str
    updated_at: str


class RemoteObjectResponse(BaseModel):
    """Drive metadata of an uploaded object."""
    id: str
    name: str
    mime_type: Optional[str] = None
    size: Optional[int] = None
    md5_checksum: Optional[str] = None
    parents: List[str] = Field(default_factory=list)
    web_view_link: Optional[str] = None
    web_content_link: Optional[str] = None


class UploadResponse(BaseModel):
    """Upload result. Replication to the other accounts runs in the background."""
    record: FileRecordResponse
    remote: RemoteObjectResponse
    replication: str = "scheduled"


class FileRecordUpdateRequest(BaseModel):
    """Metadata edits; omitted fields are left unchanged."""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    version: Optional[str] = None
    category: Optional[str] = None
    sort_order: Optional[int] = None
    is_active: Optional[bool] = None


class SortOrderRequest(BaseModel):
    """New position of a file in the listing."""
    sort_order: int


class MigrateRequest(BaseModel):
    """Target account for a legacy file; the default account if omitted."""
    account_id: Optional[str] = None


class MigrateResponse(BaseModel):
    """Migrated record and its new Drive copy."""
    record: FileRecordResponse
    remote: RemoteObjectResponse


class DownloadCountResponse(BaseModel):
    """Acknowledgement of a counted download."""
    id: str
    success: bool = True


# ============================================================================
# Sync
# ============================================================================

class ReconcileTargetResponse(BaseModel):
    """Per-target reconciliation counts."""
    account_id: str
    email: str
    status: str
    folders_created: int
    moved: int
    uploaded: int
    already_present: int
    reconciled: int
    failed: int
    errors: List[str] = Field(default_factory=list)


class ReconcileResponse(BaseModel):
    """Reconciliation run result."""
    default_account_id: str
    file_count: int
    total_reconciled: int
    total_failed: int
    targets: List[ReconcileTargetResponse]
    started_at: str
    completed_at: Optional[str] = None


class OrganizeAccountResponse(BaseModel):
    """Folder organization counts for one account."""
    account_id: str
    email: str
    status: str
    folders_created: int
    moved: int
    already_organized: int
    missing: int
    errors: List[str] = Field(default_factory=list)


class OrganizeResponse(BaseModel):
    """Folder organization across all active accounts."""
    results: List[OrganizeAccountResponse]


class TargetOutcomeResponse(BaseModel):
    """Replication outcome on one account."""
    account_id: str
    email: str
    status: str
    remote_file_id: Optional[str] = None
    error: Optional[str] = None


class ReplicationReportResponse(BaseModel):
    """Joined outcome of one replication job."""
    file_record_id: str
    file_name: str
    source_account_id: str
    replicated: int
    failed: int
    outcomes: List[TargetOutcomeResponse]
    started_at: str
    completed_at: Optional[str] = None


class ReplicationReportsResponse(BaseModel):
    """Recent replication jobs, newest first."""
    pending_jobs: int
    reports: List[ReplicationReportResponse]


# ============================================================================
# Inspection
# ============================================================================

class SubfolderResponse(BaseModel):
    """A folder under the sync root. ``category`` is None for folders outside the taxonomy."""
    id: str
    name: str
    category: Optional[str] = None
    files: List[RemoteObjectResponse]


class AccountFilesResponse(BaseModel):
    """What sits under the sync root of one account."""
    account_id: str
    email: str
    root_exists: bool
    root_id: Optional[str] = None
    root_files: List[RemoteObjectResponse]
    subfolders: List[SubfolderResponse]


class FileCheckResponse(BaseModel):
    """Whether a Drive file id exists on an account."""
    account_id: str
    email: str
    exists: bool
    file: Optional[RemoteObjectResponse] = None
