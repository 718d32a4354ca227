"""
Exceptions raised by the Drive synchronization core.
"""

from typing import Optional

from .base import MaruSyncException, ErrorContext


class CredentialRefreshFailed(MaruSyncException):
    """The refresh credential is missing or was rejected by the provider.

    The account needs a human to re-authorize it. Callers must not retry
    this in a loop.
    """

    status_code = 401

    def __init__(self, message: str, error_code: str = "CREDENTIAL_REFRESH_FAILED", **kwargs):
        kwargs.setdefault(
            "user_message",
            "The account's Google authorization expired. Please re-authorize it."
        )
        super().__init__(message, error_code, **kwargs)


class RemoteOperationFailed(MaruSyncException):
    """A Drive API call failed for a reason other than an expired credential."""

    status_code = 502

    def __init__(
        self,
        message: str,
        error_code: str = "REMOTE_OPERATION_FAILED",
        http_status: Optional[int] = None,
        **kwargs
    ):
        kwargs.setdefault("retryable", http_status is None or http_status >= 500 or http_status == 429)
        super().__init__(message, error_code, **kwargs)
        self.http_status = http_status


class RemoteAuthExpired(RemoteOperationFailed):
    """The provider rejected the access credential (HTTP 401).

    Callers refresh the credential and retry the operation exactly once.
    """

    def __init__(self, message: str, error_code: str = "REMOTE_AUTH_EXPIRED", **kwargs):
        kwargs.setdefault("http_status", 401)
        kwargs.setdefault("retryable", True)
        super().__init__(message, error_code, **kwargs)


class NoDefaultAccount(MaruSyncException):
    """No account is marked as the default account."""

    status_code = 400

    def __init__(self, message: str = "No default account is configured", **kwargs):
        kwargs.setdefault("user_message", "Set a default Google Drive account first.")
        super().__init__(message, "NO_DEFAULT_ACCOUNT", **kwargs)


class NoSyncTargets(MaruSyncException):
    """There are no active accounts besides the default account."""

    status_code = 400

    def __init__(self, message: str = "No active accounts to synchronize to", **kwargs):
        kwargs.setdefault("user_message", "Link and activate at least one more Google Drive account.")
        super().__init__(message, "NO_SYNC_TARGETS", **kwargs)


class AccountNotFound(MaruSyncException):
    """The requested account does not exist."""

    status_code = 404

    def __init__(self, account_id: str, **kwargs):
        super().__init__(f"Account {account_id} not found", "ACCOUNT_NOT_FOUND", **kwargs)
        self.account_id = account_id


class FileRecordNotFound(MaruSyncException):
    """The requested file record does not exist."""

    status_code = 404

    def __init__(self, record_id: str, **kwargs):
        super().__init__(f"File record {record_id} not found", "FILE_RECORD_NOT_FOUND", **kwargs)
        self.record_id = record_id


class AccountStateError(MaruSyncException):
    """The requested account change would break an account invariant."""

    status_code = 400

    def __init__(self, message: str, error_code: str = "ACCOUNT_STATE_ERROR", **kwargs):
        super().__init__(message, error_code, **kwargs)


class DefaultChangeRequiresSync(MaruSyncException):
    """Changing the default account while another default holds files."""

    status_code = 409

    def __init__(self, current_default_email: str, file_count: int, context: Optional[ErrorContext] = None):
        super().__init__(
            message=(
                f"Default account is {current_default_email} with {file_count} files; "
                f"pass force to change it"
            ),
            error_code="DEFAULT_CHANGE_REQUIRES_SYNC",
            context=context,
            user_message=(
                f"{current_default_email} is currently the default account and holds "
                f"{file_count} files. Run a sync first or force the change."
            ),
        )
        self.current_default_email = current_default_email
        self.file_count = file_count

    def to_dict(self):
        data = super().to_dict()
        data["current_default_email"] = self.current_default_email
        data["file_count"] = self.file_count
        return data


class LocalFileMissing(MaruSyncException):
    """A legacy file record points at a local file that no longer exists."""

    status_code = 404

    def __init__(self, path: str, **kwargs):
        super().__init__(f"Local file {path} does not exist", "LOCAL_FILE_MISSING", **kwargs)
        self.path = path


class OAuthStateInvalid(MaruSyncException):
    """The OAuth callback carried an unknown or expired state value."""

    status_code = 400

    def __init__(self, message: str = "Invalid or expired OAuth state", **kwargs):
        kwargs.setdefault("user_message", "The authorization link expired. Please start again.")
        super().__init__(message, "OAUTH_STATE_INVALID", **kwargs)


class TokenDecryptionFailed(MaruSyncException):
    """A stored credential could not be decrypted with the configured key."""

    status_code = 500

    def __init__(self, message: str = "Stored credential could not be decrypted", **kwargs):
        kwargs.setdefault(
            "user_message",
            "A stored credential is unreadable. Check ENCRYPTION_KEY or re-authorize the account."
        )
        super().__init__(message, "TOKEN_DECRYPTION_FAILED", **kwargs)
