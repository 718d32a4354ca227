"""
Stateless async client for the Google Drive v3 API.

Every call takes a plaintext access token and builds a Drive service for
it; the blocking ``googleapiclient`` requests run in a worker thread. A
rejected token raises ``RemoteAuthExpired`` so the caller can refresh and
retry; every other failure raises ``RemoteOperationFailed``.
"""

import asyncio
import io
import logging
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, TypeVar, Union

import httplib2
from google.auth.exceptions import RefreshError
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaFileUpload, MediaIoBaseDownload, MediaIoBaseUpload

from ..exceptions import RemoteAuthExpired, RemoteOperationFailed, create_error_context
from ..models.remote import RemoteObject, FOLDER_MIME_TYPE

logger = logging.getLogger(__name__)

FILE_FIELDS = "id,name,mimeType,size,md5Checksum,parents,createdTime,modifiedTime,webViewLink,webContentLink"
UPLOAD_CHUNK_SIZE = 8 * 1024 * 1024
DOWNLOAD_CHUNK_SIZE = 4 * 1024 * 1024

UploadContent = Union[bytes, Path]
T = TypeVar("T")


class RemoteDownload:
    """An open download. The first chunk is already fetched, the rest follow on demand."""

    def __init__(
        self,
        metadata: RemoteObject,
        downloader: MediaIoBaseDownload,
        buffer: io.BytesIO,
        run: Callable[[Callable[[], Any]], Any]
    ):
        self.metadata = metadata
        self.remote_id = metadata.id
        self._downloader = downloader
        self._buffer = buffer
        self._run = run
        self._done = False

    @property
    def content_length(self) -> Optional[int]:
        return self.metadata.size

    @property
    def mime_type(self) -> Optional[str]:
        return self.metadata.mime_type

    async def prefetch(self) -> None:
        """Fetch the first chunk into the buffer."""
        _, self._done = await self._run(self._downloader.next_chunk)

    def _take_buffer(self) -> bytes:
        chunk = self._buffer.getvalue()
        self._buffer.seek(0)
        self._buffer.truncate()
        return chunk

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        """Yield the body chunk by chunk."""
        try:
            while True:
                chunk = self._take_buffer()
                if chunk:
                    yield chunk
                if self._done:
                    break
                _, self._done = await self._run(self._downloader.next_chunk)
        finally:
            await self.aclose()

    async def read(self) -> bytes:
        """Read the whole body into memory."""
        chunks = []
        async for chunk in self.iter_bytes():
            chunks.append(chunk)
        return b"".join(chunks)

    async def aclose(self) -> None:
        self._done = True
        self._take_buffer()


class DriveClient:
    """Thin wrapper over the Drive v3 resources used by the sync core."""

    def __init__(self, http_factory: Optional[Callable[[str], Any]] = None):
        """
        Initialize the client.

        Args:
            http_factory: Builds the HTTP transport for an access token.
                When omitted the token is wrapped in OAuth credentials.
        """
        self._http_factory = http_factory

    def _service(self, access_token: str):
        if self._http_factory is not None:
            return build("drive", "v3", http=self._http_factory(access_token), cache_discovery=False)
        credentials = Credentials(token=access_token)
        return build("drive", "v3", credentials=credentials, cache_discovery=False)

    @staticmethod
    def _translate(error: Exception, operation: str, remote_id: Optional[str]) -> RemoteOperationFailed:
        context = create_error_context(operation=operation, remote_id=remote_id)

        if isinstance(error, RefreshError):
            # A bare access token cannot refresh itself; Drive rejected it
            return RemoteAuthExpired(
                f"Drive rejected the access token during {operation}",
                context=context,
                cause=error
            )

        if isinstance(error, HttpError):
            status = error.resp.status
            if status == 401:
                return RemoteAuthExpired(
                    f"Drive rejected the access token during {operation}",
                    context=context,
                    cause=error
                )
            return RemoteOperationFailed(
                f"Drive API error {status} during {operation}: {error}",
                http_status=status,
                context=context,
                cause=error
            )

        return RemoteOperationFailed(
            f"HTTP error during {operation}: {error}",
            context=context,
            cause=error
        )

    async def _run(self, operation: str, func: Callable[[], T], remote_id: Optional[str] = None) -> T:
        try:
            return await asyncio.to_thread(func)
        except (HttpError, RefreshError, httplib2.HttpLib2Error, OSError) as e:
            raise self._translate(e, operation, remote_id)

    async def _execute(
        self,
        access_token: str,
        operation: str,
        make_request: Callable[[Any], Any],
        remote_id: Optional[str] = None
    ) -> Any:
        """Build a request against a fresh service and execute it in a thread."""
        def run():
            return make_request(self._service(access_token)).execute()

        return await self._run(operation, run, remote_id)

    # =========================================================================
    # Files
    # =========================================================================

    async def upload(
        self,
        access_token: str,
        content: UploadContent,
        name: str,
        mime_type: str,
        parent_id: Optional[str] = None
    ) -> RemoteObject:
        """
        Create a file.

        In-memory content goes up as a single multipart request. A path is
        sent through a resumable upload session in chunks, so the file is
        never held in memory.

        Args:
            access_token: Plaintext access token
            content: File bytes or the path of a file on disk
            name: Remote file name
            mime_type: MIME type of the content
            parent_id: Folder to create the file in

        Returns:
            Metadata of the created file
        """
        metadata: Dict[str, Any] = {"name": name, "mimeType": mime_type}
        if parent_id:
            metadata["parents"] = [parent_id]

        def make_request(service):
            if isinstance(content, Path):
                media = MediaFileUpload(
                    str(content), mimetype=mime_type, chunksize=UPLOAD_CHUNK_SIZE, resumable=True
                )
            else:
                media = MediaIoBaseUpload(io.BytesIO(content), mimetype=mime_type, resumable=False)
            return service.files().create(body=metadata, media_body=media, fields=FILE_FIELDS)

        data = await self._execute(access_token, "upload", make_request)
        return RemoteObject.from_api(data)

    async def open_download(self, access_token: str, remote_id: str) -> RemoteDownload:
        """
        Start downloading a file's content.

        Fetches the metadata and the first chunk before returning, so an
        unreachable file fails here rather than mid-stream. Sets
        ``acknowledgeAbuse`` so Drive's malware-scan interstitial does not
        block executables.
        """
        service = await self._run("download", lambda: self._service(access_token), remote_id)
        data = await self._run(
            "download",
            lambda: service.files().get(fileId=remote_id, fields=FILE_FIELDS).execute(),
            remote_id
        )

        buffer = io.BytesIO()
        request = service.files().get_media(fileId=remote_id, acknowledgeAbuse=True)
        downloader = MediaIoBaseDownload(buffer, request, chunksize=DOWNLOAD_CHUNK_SIZE)

        async def run(func):
            return await self._run("download", func, remote_id)

        download = RemoteDownload(RemoteObject.from_api(data), downloader, buffer, run)
        await download.prefetch()
        return download

    async def download_bytes(self, access_token: str, remote_id: str) -> bytes:
        """Download a file's whole content into memory."""
        download = await self.open_download(access_token, remote_id)
        return await download.read()

    async def delete(self, access_token: str, remote_id: str) -> None:
        """Delete a file permanently."""
        await self._execute(
            access_token,
            "delete",
            lambda service: service.files().delete(fileId=remote_id),
            remote_id
        )

    async def make_public(self, access_token: str, remote_id: str) -> None:
        """Grant anyone-with-the-link read access."""
        await self._execute(
            access_token,
            "make_public",
            lambda service: service.permissions().create(
                fileId=remote_id, body={"role": "reader", "type": "anyone"}
            ),
            remote_id
        )

    async def get_metadata(self, access_token: str, remote_id: str) -> RemoteObject:
        """Fetch a file's metadata."""
        data = await self._execute(
            access_token,
            "get_metadata",
            lambda service: service.files().get(fileId=remote_id, fields=FILE_FIELDS),
            remote_id
        )
        return RemoteObject.from_api(data)

    async def list_all(
        self,
        access_token: str,
        page_size: int = 200,
        query: Optional[str] = None
    ) -> List[RemoteObject]:
        """
        List every non-trashed object visible to the token.

        Args:
            access_token: Plaintext access token
            page_size: Objects requested per page
            query: Extra Drive query clause ANDed with ``trashed = false``

        Returns:
            All matching objects, newest first
        """
        q = "trashed = false"
        if query:
            q = f"{q} and ({query})"

        def run() -> List[RemoteObject]:
            files = self._service(access_token).files()
            request = files.list(
                q=q,
                pageSize=page_size,
                fields=f"nextPageToken,files({FILE_FIELDS})",
                orderBy="createdTime desc",
            )
            objects: List[RemoteObject] = []
            while request is not None:
                response = request.execute()
                objects.extend(RemoteObject.from_api(item) for item in response.get("files", []))
                request = files.list_next(request, response)
            return objects

        return await self._run("list_files", run)

    async def list_children(self, access_token: str, folder_id: str, page_size: int = 200) -> List[RemoteObject]:
        """List the direct children of a folder."""
        return await self.list_all(access_token, page_size, query=f"'{folder_id}' in parents")

    async def create_folder(self, access_token: str, name: str, parent_id: Optional[str] = None) -> RemoteObject:
        """
        Create a folder.

        Drive allows duplicate names, so callers check for an existing
        folder under the same parent first.
        """
        metadata: Dict[str, Any] = {"name": name, "mimeType": FOLDER_MIME_TYPE}
        if parent_id:
            metadata["parents"] = [parent_id]

        data = await self._execute(
            access_token,
            "create_folder",
            lambda service: service.files().create(body=metadata, fields=FILE_FIELDS)
        )
        folder = RemoteObject.from_api(data)
        logger.info(f"Created folder '{name}' ({folder.id})")
        return folder

    async def move_to_folder(self, access_token: str, remote_id: str, new_parent_id: str) -> RemoteObject:
        """Move a file so that ``new_parent_id`` is its only parent."""
        def run() -> Dict[str, Any]:
            files = self._service(access_token).files()
            current = files.get(fileId=remote_id, fields="parents").execute()
            old_parents = [p for p in current.get("parents", []) if p != new_parent_id]

            options = {}
            if old_parents:
                options["removeParents"] = ",".join(old_parents)
            return files.update(
                fileId=remote_id,
                addParents=new_parent_id,
                fields=FILE_FIELDS,
                **options
            ).execute()

        data = await self._run("move_to_folder", run, remote_id)
        return RemoteObject.from_api(data)

    async def get_about_user(self, access_token: str) -> Dict[str, Any]:
        """Return the ``user`` block of ``about.get`` (email, display name, photo)."""
        data = await self._execute(
            access_token,
            "about",
            lambda service: service.about().get(fields="user")
        )
        return data.get("user", {})

