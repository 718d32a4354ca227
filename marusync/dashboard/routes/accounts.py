"""
Linked Drive account routes.
"""

import logging
from typing import List, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse

from ...exceptions import MaruSyncException
from ...drive.tokens import TokenRefreshStatus
from ..auth import get_current_admin
from ..models import (
    AccountFilesResponse,
    AccountResponse,
    AuthorizeRequest,
    AuthorizeResponse,
    DefaultChangeConflictResponse,
    ErrorResponse,
    FileCheckResponse,
    TokenRefreshItem,
    TokenRefreshResponse,
    VerifyResponse,
)
from . import get_account_service, get_sync_service

logger = logging.getLogger(__name__)

router = APIRouter()

ADMIN_PAGE = "/admin"


def _account_response(account) -> AccountResponse:
    return AccountResponse(**account.to_public_dict())


def _admin_redirect(**params) -> RedirectResponse:
    return RedirectResponse(url=f"{ADMIN_PAGE}?{urlencode(params)}", status_code=302)


@router.get(
    "/drive/accounts",
    response_model=List[AccountResponse],
    summary="List linked accounts",
    dependencies=[Depends(get_current_admin)],
)
async def list_accounts():
    """List every linked account with its token status."""
    service = get_account_service()
    accounts = await service.list_accounts()
    return [_account_response(account) for account in accounts]


@router.post(
    "/drive/accounts/authorize",
    response_model=AuthorizeResponse,
    summary="Start linking an account",
    dependencies=[Depends(get_current_admin)],
)
async def authorize_account(body: AuthorizeRequest):
    """Get the Google consent URL for linking a new account."""
    service = get_account_service()
    return AuthorizeResponse(auth_url=service.authorization_url(body.account_name.strip()))


@router.get(
    "/drive/oauth/callback",
    summary="OAuth callback",
    description="Google redirects here after consent; the browser is sent back to the admin page.",
    include_in_schema=False,
)
async def oauth_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
):
    """Complete account linking."""
    if error:
        logger.warning(f"OAuth consent was not granted: {error}")
        return _admin_redirect(error=error)
    if not code or not state:
        return _admin_redirect(error="missing_code")

    service = get_account_service()
    try:
        result = await service.complete_authorization(code, state)
    except MaruSyncException as e:
        logger.error(f"OAuth callback failed: {e.to_log_string()}")
        return _admin_redirect(error=e.user_message)

    verb = "linked" if result.created else "updated"
    return _admin_redirect(success=f"Account {verb}: {result.account.email}")


@router.post(
    "/drive/accounts/refresh-tokens",
    response_model=TokenRefreshResponse,
    summary="Refresh all tokens",
    dependencies=[Depends(get_current_admin)],
)
async def refresh_tokens():
    """Refresh every active account whose token is near expiry."""
    outcomes = await get_sync_service().refresh_all_tokens()
    return TokenRefreshResponse(
        results=[TokenRefreshItem(**outcome.to_dict()) for outcome in outcomes],
        refreshed=sum(1 for o in outcomes if o.status == TokenRefreshStatus.REFRESHED),
        failed=sum(1 for o in outcomes if o.status in (TokenRefreshStatus.FAILED, TokenRefreshStatus.ERROR)),
    )


@router.post(
    "/drive/accounts/{account_id}/reauth",
    response_model=AuthorizeResponse,
    summary="Re-authorize an account",
    dependencies=[Depends(get_current_admin)],
    responses={404: {"model": ErrorResponse}},
)
async def reauthorize_account(account_id: str):
    """Get a consent URL that renews an existing account's credentials."""
    service = get_account_service()
    return AuthorizeResponse(auth_url=await service.reauthorization_url(account_id))


@router.put(
    "/drive/accounts/{account_id}/default",
    response_model=AccountResponse,
    summary="Set default account",
    dependencies=[Depends(get_current_admin)],
    responses={
        404: {"model": ErrorResponse},
        409: {"model": DefaultChangeConflictResponse, "description": "Another default exists"},
    },
)
async def set_default_account(account_id: str, force: bool = Query(False)):
    """Make an account the upload and reconciliation source."""
    account = await get_account_service().set_default(account_id, force=force)
    return _account_response(account)


@router.put(
    "/drive/accounts/{account_id}/activate",
    response_model=AccountResponse,
    summary="Activate account",
    dependencies=[Depends(get_current_admin)],
)
async def activate_account(account_id: str):
    account = await get_account_service().activate(account_id)
    return _account_response(account)


@router.put(
    "/drive/accounts/{account_id}/deactivate",
    response_model=AccountResponse,
    summary="Deactivate account",
    dependencies=[Depends(get_current_admin)],
)
async def deactivate_account(account_id: str):
    account = await get_account_service().deactivate(account_id)
    return _account_response(account)


@router.delete(
    "/drive/accounts/{account_id}",
    summary="Delete account",
    dependencies=[Depends(get_current_admin)],
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def delete_account(account_id: str):
    """Unlink a non-default account that owns no files."""
    account = await get_account_service().delete(account_id)
    return {"success": True, "id": account.id}


@router.get(
    "/drive/accounts/{account_id}/verify",
    response_model=VerifyResponse,
    summary="Verify account identity",
    dependencies=[Depends(get_current_admin)],
)
async def verify_account(account_id: str):
    """Check the stored credential against the stored email."""
    return VerifyResponse(**await get_account_service().verify(account_id))


@router.get(
    "/drive/accounts/{account_id}/files",
    response_model=AccountFilesResponse,
    summary="List an account's synced files",
    description="Read-only listing of the sync root and its subfolders; nothing is created.",
    dependencies=[Depends(get_current_admin)],
    responses={404: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def list_account_files(account_id: str):
    return AccountFilesResponse(**await get_sync_service().inspect_account(account_id))


@router.get(
    "/drive/accounts/{account_id}/files/{remote_id}",
    response_model=FileCheckResponse,
    summary="Check a Drive file",
    dependencies=[Depends(get_current_admin)],
    responses={404: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def check_account_file(account_id: str, remote_id: str):
    """Report whether a file id still exists on the account."""
    return FileCheckResponse(**await get_sync_service().check_file(account_id, remote_id))
