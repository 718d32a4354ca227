"""
Reconciliation, folder organization and replication status routes.
"""

import logging

from fastapi import APIRouter, Depends

from ..auth import get_current_admin
from ..models import (
    ErrorResponse,
    OrganizeAccountResponse,
    OrganizeResponse,
    ReconcileResponse,
    ReplicationReportResponse,
    ReplicationReportsResponse,
)
from . import get_sync_service, get_token_scheduler

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(get_current_admin)])


@router.post(
    "/drive/sync/reconcile",
    response_model=ReconcileResponse,
    summary="Reconcile accounts",
    description="Copies and refiles the default account's files on every other active account. Runs to completion.",
    responses={400: {"model": ErrorResponse, "description": "No default account or no targets"}},
)
async def reconcile():
    report = await get_sync_service().reconcile()
    return ReconcileResponse(**report.to_dict())


@router.post(
    "/drive/sync/organize",
    response_model=OrganizeResponse,
    summary="Organize folders",
    description="Ensures the category folders on every active account and files each account's own files into them.",
)
async def organize():
    results = await get_sync_service().organize_folders()
    return OrganizeResponse(results=[OrganizeAccountResponse(**result.to_dict()) for result in results])


@router.get(
    "/drive/sync/replications",
    response_model=ReplicationReportsResponse,
    summary="Recent replication jobs",
)
async def recent_replications():
    service = get_sync_service()
    return ReplicationReportsResponse(
        pending_jobs=service.replication.pending_jobs,
        reports=[ReplicationReportResponse(**report.to_dict()) for report in service.recent_replications()],
    )


@router.get(
    "/drive/sync/token-refresh",
    summary="Token refresh sweep status",
)
async def token_refresh_status():
    scheduler = get_token_scheduler()
    if scheduler is None:
        return {"running": False}
    return scheduler.get_status()
