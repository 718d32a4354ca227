"""
Downloadable file routes: public listing and downloads, admin management.
"""

import asyncio
import logging
import tempfile
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import FileResponse, RedirectResponse, StreamingResponse

from ...drive.resolver import DownloadKind
from ..auth import get_current_admin
from ..models import (
    DownloadCountResponse,
    ErrorResponse,
    FileRecordResponse,
    FileRecordUpdateRequest,
    MigrateRequest,
    MigrateResponse,
    RemoteObjectResponse,
    SortOrderRequest,
    UploadResponse,
)
from . import get_sync_service

logger = logging.getLogger(__name__)

router = APIRouter()

SPOOL_CHUNK_SIZE = 1024 * 1024


def _record_response(record) -> FileRecordResponse:
    return FileRecordResponse(**record.to_dict())


def _remote_response(remote) -> RemoteObjectResponse:
    return RemoteObjectResponse(**remote.to_dict())


async def _spool(upload: UploadFile) -> Path:
    """Copy an uploaded body to a temporary file without holding it in memory."""
    suffix = Path(upload.filename or "").suffix
    with tempfile.NamedTemporaryFile(delete=False, prefix="marusync-", suffix=suffix) as tmp:
        tmp_path = Path(tmp.name)
        try:
            while True:
                chunk = await upload.read(SPOOL_CHUNK_SIZE)
                if not chunk:
                    break
                await asyncio.to_thread(tmp.write, chunk)
        except Exception:
            tmp.close()
            tmp_path.unlink(missing_ok=True)
            raise
    return tmp_path


def _attachment_header(file_name: str) -> str:
    return f"attachment; filename*=UTF-8''{quote(file_name)}"


# ============================================================================
# Public
# ============================================================================

@router.get(
    "/downloads",
    response_model=List[FileRecordResponse],
    summary="List downloadable files",
)
async def list_downloads():
    """Active files in display order."""
    records = await get_sync_service().list_file_records(active_only=True)
    return [_record_response(record) for record in records]


@router.get(
    "/downloads/{record_id}/download",
    summary="Download a file",
    description="Streams the file from Drive, serves a legacy local file, or redirects to the public Drive URL.",
    responses={404: {"model": ErrorResponse}},
)
async def download_file(record_id: str):
    """Serve a file's bytes through the cross-account fallback chain."""
    result = await get_sync_service().open_download(record_id)

    if result.kind == DownloadKind.REDIRECT:
        return RedirectResponse(url=result.redirect_url, status_code=302)

    if result.kind == DownloadKind.LOCAL:
        return FileResponse(
            str(result.local_path),
            media_type=result.mime_type,
            filename=result.file_name,
        )

    headers = {"Content-Disposition": _attachment_header(result.file_name)}
    if result.content_length is not None:
        headers["Content-Length"] = str(result.content_length)
    return StreamingResponse(result.stream, media_type=result.mime_type, headers=headers)


@router.post(
    "/downloads/{record_id}/increment",
    response_model=DownloadCountResponse,
    summary="Count a download",
)
async def increment_download(record_id: str):
    """Count a download that was served outside this API."""
    await get_sync_service().increment_download_count(record_id)
    return DownloadCountResponse(id=record_id)


# ============================================================================
# Admin
# ============================================================================

@router.get(
    "/admin/downloads",
    response_model=List[FileRecordResponse],
    summary="List all files",
    dependencies=[Depends(get_current_admin)],
)
async def list_all_downloads():
    """All files, including inactive ones."""
    records = await get_sync_service().list_file_records(active_only=False)
    return [_record_response(record) for record in records]


@router.post(
    "/downloads",
    response_model=UploadResponse,
    status_code=201,
    summary="Upload a file",
    description="Uploads to the default (or given) account and replicates to the others in the background.",
    dependencies=[Depends(get_current_admin)],
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def upload_file(
    file: UploadFile = File(...),
    title: str = Form(""),
    category: str = Form("other"),
    description: Optional[str] = Form(None),
    version: Optional[str] = Form(None),
    account_id: Optional[str] = Form(None),
):
    """Upload a new downloadable file."""
    tmp_path = await _spool(file)
    # The service owns tmp_path from here and deletes it once replication settles
    record, remote = await get_sync_service().upload_file(
        tmp_path,
        file_name=file.filename or tmp_path.name,
        title=title,
        category=category,
        mime_type=file.content_type,
        description=description,
        version=version,
        account_id=account_id or None,
    )
    return UploadResponse(record=_record_response(record), remote=_remote_response(remote))


@router.put(
    "/downloads/{record_id}",
    response_model=FileRecordResponse,
    summary="Update file metadata",
    dependencies=[Depends(get_current_admin)],
)
async def update_download(record_id: str, body: FileRecordUpdateRequest):
    changes = body.model_dump(exclude_unset=True)
    record = await get_sync_service().update_file_record(record_id, changes)
    return _record_response(record)


@router.put(
    "/downloads/{record_id}/sort",
    response_model=FileRecordResponse,
    summary="Reorder a file",
    dependencies=[Depends(get_current_admin)],
)
async def sort_download(record_id: str, body: SortOrderRequest):
    record = await get_sync_service().set_sort_order(record_id, body.sort_order)
    return _record_response(record)


@router.delete(
    "/downloads/{record_id}",
    summary="Delete a file",
    dependencies=[Depends(get_current_admin)],
    responses={404: {"model": ErrorResponse}},
)
async def delete_download(record_id: str, delete_remote: bool = Query(True)):
    """Delete a file record and, unless told otherwise, its tracked Drive copy."""
    record = await get_sync_service().delete_file_record(record_id, delete_remote=delete_remote)
    return {"success": True, "id": record.id}


@router.post(
    "/downloads/{record_id}/migrate",
    response_model=MigrateResponse,
    summary="Move a legacy local file to Drive",
    dependencies=[Depends(get_current_admin)],
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def migrate_download(record_id: str, body: Optional[MigrateRequest] = None):
    account_id = body.account_id if body else None
    record, remote = await get_sync_service().migrate_to_drive(record_id, account_id=account_id)
    return MigrateResponse(record=_record_response(record), remote=_remote_response(remote))
