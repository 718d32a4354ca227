"""
Google Drive synchronization core.

Covers credential handling, the Drive REST client, the category folder
taxonomy, replication of new uploads, reconciliation of existing files
and download resolution.
"""

from .crypto import TokenCipher
from .oauth import GoogleOAuthFlow, GoogleUserInfo, OAuthState, OAuthTokens
from .tokens import (
    AccountCredentials,
    TokenManager,
    TokenRefreshOutcome,
    TokenRefreshStatus,
)
from .client import DriveClient, RemoteDownload
from .taxonomy import FolderHierarchy, FolderTaxonomyResolver, TaxonomyIndex
from .base import (
    OrganizeResult,
    ReconcileReport,
    ReconcileTargetResult,
    ReplicationReport,
    ReplicationStatus,
    SyncStatus,
    TargetOutcome,
)
from .replication import ReplicationEngine
from .reconciler import SyncReconciler
from .resolver import DownloadKind, DownloadResolver, DownloadResult, public_download_url
from .accounts import AccountService, LinkResult
from .service import DriveSyncService, get_sync_service, set_sync_service

__all__ = [
    "TokenCipher",
    "GoogleOAuthFlow",
    "GoogleUserInfo",
    "OAuthState",
    "OAuthTokens",
    "AccountCredentials",
    "TokenManager",
    "TokenRefreshOutcome",
    "TokenRefreshStatus",
    "DriveClient",
    "RemoteDownload",
    "FolderHierarchy",
    "FolderTaxonomyResolver",
    "TaxonomyIndex",
    "OrganizeResult",
    "ReconcileReport",
    "ReconcileTargetResult",
    "ReplicationReport",
    "ReplicationStatus",
    "SyncStatus",
    "TargetOutcome",
    "ReplicationEngine",
    "SyncReconciler",
    "DownloadKind",
    "DownloadResolver",
    "DownloadResult",
    "public_download_url",
    "AccountService",
    "LinkResult",
    "DriveSyncService",
    "get_sync_service",
    "set_sync_service",
]
