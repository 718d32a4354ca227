"""
Base exception types and error context helpers for MaruSync.
"""

import logging
import traceback
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class ErrorContext:
    """Contextual information attached to an error."""
    operation: Optional[str] = None
    account_id: Optional[str] = None
    file_record_id: Optional[str] = None
    remote_id: Optional[str] = None
    additional_context: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "operation": self.operation,
            "account_id": self.account_id,
            "file_record_id": self.file_record_id,
            "remote_id": self.remote_id,
            "timestamp": self.timestamp.isoformat(),
        }
        data.update(self.additional_context)
        return {k: v for k, v in data.items() if v is not None}


def create_error_context(
    operation: Optional[str] = None,
    account_id: Optional[str] = None,
    file_record_id: Optional[str] = None,
    remote_id: Optional[str] = None,
    **kwargs: Any
) -> ErrorContext:
    """Create an error context, collecting unknown keywords as extra context."""
    return ErrorContext(
        operation=operation,
        account_id=account_id,
        file_record_id=file_record_id,
        remote_id=remote_id,
        additional_context=kwargs,
    )


class MaruSyncException(Exception):
    """Base exception for all MaruSync errors.

    Attributes:
        message: Technical message for logs
        error_code: Stable machine-readable code
        context: Where the error happened
        user_message: Message safe to show to an administrator
        retryable: Whether retrying the same call may succeed
    """

    status_code = 500

    def __init__(
        self,
        message: str,
        error_code: str = "MARUSYNC_ERROR",
        context: Optional[ErrorContext] = None,
        user_message: Optional[str] = None,
        retryable: bool = False,
        cause: Optional[BaseException] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or ErrorContext()
        self.user_message = user_message or message
        self.retryable = retryable
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.error_code,
            "error_code": self.error_code,
            "message": self.user_message,
            "context": self.context.to_dict(),
            "retryable": self.retryable,
        }

    def to_log_string(self) -> str:
        parts = [f"[{self.error_code}] {self.message}"]
        context = self.context.to_dict()
        context.pop("timestamp", None)
        if context:
            parts.append(" ".join(f"{k}={v}" for k, v in context.items()))
        if self.cause is not None:
            parts.append(f"caused by {type(self.cause).__name__}: {self.cause}")
        return " | ".join(parts)


class ConfigurationError(MaruSyncException):
    """Invalid or missing configuration."""

    status_code = 500

    def __init__(self, message: str, error_code: str = "CONFIGURATION_ERROR", **kwargs):
        super().__init__(message, error_code, **kwargs)


class ValidationError(MaruSyncException):
    """Invalid input supplied by a caller."""

    status_code = 400

    def __init__(self, message: str, error_code: str = "VALIDATION_ERROR", **kwargs):
        super().__init__(message, error_code, **kwargs)


class UnexpectedError(MaruSyncException):
    """Wrapper for exceptions that are not part of the MaruSync taxonomy."""

    status_code = 500


def handle_unexpected_error(error: BaseException) -> MaruSyncException:
    """Convert any exception into a MaruSyncException for logging.

    Args:
        error: The caught exception

    Returns:
        The original error if already a MaruSyncException, otherwise a wrapper
    """
    if isinstance(error, MaruSyncException):
        return error

    logger.debug("Unexpected error traceback:\n" + "".join(
        traceback.format_exception(type(error), error, error.__traceback__)
    ))
    return UnexpectedError(
        message=f"{type(error).__name__}: {error}",
        error_code="UNEXPECTED_ERROR",
        user_message="An unexpected error occurred.",
        cause=error,
    )
