"""
Admin and download API route modules.
"""

from fastapi import HTTPException

# Service references (set by router.py)
_account_service = None
_sync_service = None
_token_scheduler = None


def set_services(
    account_service=None,
    sync_service=None,
    token_scheduler=None,
):
    """Set service references for route handlers."""
    global _account_service, _sync_service, _token_scheduler
    _account_service = account_service
    _sync_service = sync_service
    _token_scheduler = token_scheduler


def _unavailable(name: str) -> HTTPException:
    return HTTPException(
        status_code=503,
        detail={"code": "SERVICE_UNAVAILABLE", "message": f"{name} not available"},
    )


def get_account_service():
    """Get account service."""
    if _account_service is None:
        raise _unavailable("Account service")
    return _account_service


def get_sync_service():
    """Get Drive sync service."""
    if _sync_service is None:
        raise _unavailable("Sync service")
    return _sync_service


def get_token_scheduler():
    """Get token refresh scheduler (may be None when not running)."""
    return _token_scheduler


# Import routers
from .auth import router as auth_router
from .accounts import router as accounts_router
from .files import router as files_router
from .sync import router as sync_router

__all__ = [
    "auth_router",
    "accounts_router",
    "files_router",
    "sync_router",
    "set_services",
    "get_account_service",
    "get_sync_service",
    "get_token_scheduler",
]
