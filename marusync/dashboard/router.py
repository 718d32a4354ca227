"""
Main API router.
"""

import logging
from fastapi import APIRouter

from .auth import AdminAuth, set_auth_instance
from .routes import auth_router, accounts_router, files_router, sync_router

logger = logging.getLogger(__name__)


def create_api_router(
    auth: AdminAuth,
    account_service=None,
    sync_service=None,
    token_scheduler=None,
) -> APIRouter:
    """Create the API router.

    Args:
        auth: Admin authentication
        account_service: Account administration service
        sync_service: Drive sync service
        token_scheduler: Token refresh scheduler, if running

    Returns:
        FastAPI router with all endpoints
    """
    if not auth.password:
        logger.warning("ADMIN_PASSWORD not set. Admin login is disabled.")
    set_auth_instance(auth)

    # Store service references for routes
    from . import routes
    routes.set_services(
        account_service=account_service,
        sync_service=sync_service,
        token_scheduler=token_scheduler,
    )

    router = APIRouter(prefix="/api")
    router.include_router(auth_router, prefix="/admin", tags=["Authentication"])
    router.include_router(accounts_router, tags=["Accounts"])
    router.include_router(files_router, tags=["Files"])
    router.include_router(sync_router, tags=["Sync"])

    return router


def bind_services(
    account_service=None,
    sync_service=None,
    token_scheduler=None,
) -> None:
    """Point already-mounted routes at a new set of services."""
    from . import routes
    routes.set_services(
        account_service=account_service,
        sync_service=sync_service,
        token_scheduler=token_scheduler,
    )
