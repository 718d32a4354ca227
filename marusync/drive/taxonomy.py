"""
Category folder hierarchy kept on every linked account.

Each account holds one root sync folder with one subfolder per category.
Folder lookups are always scoped to the expected parent so a same-named
folder elsewhere in the drive is never mistaken for ours.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..models.file_record import Category
from ..models.remote import RemoteObject, FOLDER_MIME_TYPE
from .client import DriveClient

logger = logging.getLogger(__name__)

DEFAULT_ROOT_FOLDER_NAME = "MaruCS-Sync"


@dataclass
class FolderHierarchy:
    """Folder ids of the sync taxonomy on one account."""
    root_id: str
    category_folders: Dict[Category, str]
    folders_created: int = 0

    def folder_for(self, category: Category) -> str:
        return self.category_folders[Category.parse(category)]

    def category_of(self, folder_id: str) -> Optional[Category]:
        for category, category_folder_id in self.category_folders.items():
            if category_folder_id == folder_id:
                return category
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "root_id": self.root_id,
            "category_folders": {c.value: fid for c, fid in self.category_folders.items()},
            "folders_created": self.folders_created,
        }


@dataclass
class TaxonomyEntry:
    """A file inside the taxonomy. ``category`` is None for files sitting directly in the root."""
    remote: RemoteObject
    category: Optional[Category] = None

    @property
    def in_root(self) -> bool:
        return self.category is None


@dataclass
class TaxonomyIndex:
    """Name lookup over the files in the root folder and every category folder."""
    hierarchy: FolderHierarchy
    entries: Dict[str, List[TaxonomyEntry]] = field(default_factory=dict)

    @classmethod
    def build(cls, hierarchy: FolderHierarchy, objects: Iterable[RemoteObject]) -> "TaxonomyIndex":
        index = cls(hierarchy)
        for obj in objects:
            if obj.is_folder:
                continue
            for parent in obj.parents:
                if parent == hierarchy.root_id:
                    index.add(obj, None)
                    break
                category = hierarchy.category_of(parent)
                if category is not None:
                    index.add(obj, category)
                    break
        return index

    def add(self, remote: RemoteObject, category: Optional[Category]) -> None:
        self.entries.setdefault(remote.name, []).append(TaxonomyEntry(remote, category))

    def find(self, name: str) -> Optional[TaxonomyEntry]:
        """Find a file by exact name, preferring one already in a category folder."""
        matches = self.entries.get(name)
        if not matches:
            return None
        for entry in matches:
            if not entry.in_root:
                return entry
        return matches[0]


@dataclass
class SubfolderListing:
    """A folder under the sync root and the files directly inside it."""
    folder: RemoteObject
    files: List[RemoteObject] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        category = Category.from_folder_name(self.folder.name)
        return {
            "id": self.folder.id,
            "name": self.folder.name,
            "category": category.value if category else None,
            "files": [remote.to_dict() for remote in self.files],
        }


@dataclass
class AccountInspection:
    """Read-only view of the sync root on one account."""
    root_id: Optional[str] = None
    root_files: List[RemoteObject] = field(default_factory=list)
    subfolders: List[SubfolderListing] = field(default_factory=list)

    @property
    def root_exists(self) -> bool:
        return self.root_id is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "root_exists": self.root_exists,
            "root_id": self.root_id,
            "root_files": [remote.to_dict() for remote in self.root_files],
            "subfolders": [subfolder.to_dict() for subfolder in self.subfolders],
        }


def _oldest_first(candidates: List[RemoteObject]) -> List[RemoteObject]:
    return sorted(candidates, key=lambda obj: (obj.created_time or datetime.max, obj.id))


class FolderTaxonomyResolver:
    """Finds or creates the root sync folder and its category subfolders.

    Find-or-create runs under one lock per account, so concurrent jobs on
    the same account never create a second root.
    """

    def __init__(
        self,
        client: DriveClient,
        root_folder_name: str = DEFAULT_ROOT_FOLDER_NAME,
        page_size: int = 200
    ):
        self.client = client
        self.root_folder_name = root_folder_name
        self.page_size = page_size
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, account_key: str) -> asyncio.Lock:
        lock = self._locks.get(account_key)
        if lock is None:
            lock = self._locks[account_key] = asyncio.Lock()
        return lock

    async def list_objects(self, access_token: str) -> List[RemoteObject]:
        """List every object the token can see."""
        return await self.client.list_all(access_token, self.page_size)

    async def ensure_hierarchy(self, access_token: str, account_key: Optional[str] = None) -> FolderHierarchy:
        """
        Make sure the root folder and every category subfolder exist.

        Args:
            access_token: Plaintext access token of the account
            account_key: Stable id of the account, used to serialize folder
                creation; the token itself if omitted

        Returns:
            The hierarchy, with ``folders_created`` counting new folders.
            A second call on the same account creates nothing.
        """
        hierarchy, _ = await self.survey(access_token, account_key)
        return hierarchy

    async def survey(
        self,
        access_token: str,
        account_key: Optional[str] = None
    ) -> Tuple[FolderHierarchy, List[RemoteObject]]:
        """List the account and ensure its hierarchy while holding the account's lock.

        Returns:
            Tuple of (hierarchy, objects listed before any folder was created)
        """
        async with self._lock_for(account_key or access_token):
            listing = await self.list_objects(access_token)
            hierarchy = await self._ensure(access_token, listing)
        return hierarchy, listing

    def _find_root(self, folders: List[RemoteObject]) -> Optional[RemoteObject]:
        """The oldest top-level folder named like the sync root, i.e. one whose parent we cannot see."""
        folder_ids = {folder.id for folder in folders}
        roots = _oldest_first([
            folder for folder in folders
            if folder.name == self.root_folder_name
            and not any(parent in folder_ids for parent in folder.parents)
        ])
        if len(roots) > 1:
            logger.warning(
                f"Found {len(roots)} top-level '{self.root_folder_name}' folders, using {roots[0].id}"
            )
        return roots[0] if roots else None

    async def _ensure(self, access_token: str, listing: List[RemoteObject]) -> FolderHierarchy:
        folders = [obj for obj in listing if obj.is_folder]
        created = 0

        root = self._find_root(folders)
        if root is None:
            root = await self.client.create_folder(access_token, self.root_folder_name)
            folders.append(root)
            created += 1

        category_folders: Dict[Category, str] = {}
        for category in Category:
            candidates = _oldest_first([
                folder for folder in folders
                if folder.name == category.folder_name and root.id in folder.parents
            ])
            if candidates:
                category_folders[category] = candidates[0].id
            else:
                folder = await self.client.create_folder(access_token, category.folder_name, root.id)
                folders.append(folder)
                category_folders[category] = folder.id
                created += 1

        if created:
            logger.info(f"Created {created} taxonomy folder(s) under '{self.root_folder_name}' ({root.id})")

        return FolderHierarchy(
            root_id=root.id,
            category_folders=category_folders,
            folders_created=created,
        )

    async def inspect(self, access_token: str) -> AccountInspection:
        """
        Describe the sync root of an account without creating anything.

        Lists only folders to find the root, then the direct children of the
        root and of each of its subfolders.
        """
        listing = await self.client.list_all(
            access_token, self.page_size, query=f"mimeType = '{FOLDER_MIME_TYPE}'"
        )
        root = self._find_root([obj for obj in listing if obj.is_folder])
        if root is None:
            return AccountInspection()

        children = await self.client.list_children(access_token, root.id, self.page_size)
        inspection = AccountInspection(
            root_id=root.id,
            root_files=[obj for obj in children if not obj.is_folder],
        )
        for folder in _oldest_first([obj for obj in children if obj.is_folder]):
            contents = await self.client.list_children(access_token, folder.id, self.page_size)
            inspection.subfolders.append(
                SubfolderListing(folder, [obj for obj in contents if not obj.is_folder])
            )
        return inspection

    async def snapshot(
        self,
        access_token: str,
        account_key: Optional[str] = None
    ) -> Tuple[FolderHierarchy, TaxonomyIndex]:
        """List the account once, ensure the hierarchy and index its files."""
        hierarchy, listing = await self.survey(access_token, account_key)
        return hierarchy, TaxonomyIndex.build(hierarchy, listing)
