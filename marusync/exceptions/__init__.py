"""
Exception hierarchy for MaruSync.
"""

from .base import (
    ErrorContext,
    MaruSyncException,
    ConfigurationError,
    ValidationError,
    UnexpectedError,
    create_error_context,
    handle_unexpected_error,
)
from .sync import (
    CredentialRefreshFailed,
    RemoteOperationFailed,
    RemoteAuthExpired,
    NoDefaultAccount,
    NoSyncTargets,
    AccountNotFound,
    FileRecordNotFound,
    AccountStateError,
    DefaultChangeRequiresSync,
    LocalFileMissing,
    OAuthStateInvalid,
    TokenDecryptionFailed,
)

__all__ = [
    "ErrorContext",
    "MaruSyncException",
    "ConfigurationError",
    "ValidationError",
    "UnexpectedError",
    "create_error_context",
    "handle_unexpected_error",
    "CredentialRefreshFailed",
    "RemoteOperationFailed",
    "RemoteAuthExpired",
    "NoDefaultAccount",
    "NoSyncTargets",
    "AccountNotFound",
    "FileRecordNotFound",
    "AccountStateError",
    "DefaultChangeRequiresSync",
    "LocalFileMissing",
    "OAuthStateInvalid",
    "TokenDecryptionFailed",
]
