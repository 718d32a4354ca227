"""
File record model and the fixed category taxonomy.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from .base import BaseModel, generate_id, utc_now


class Category(str, Enum):
    """Service line a file belongs to. Each maps to one Drive subfolder."""
    STREAMPLAYER = "streamplayer"
    OTT_PLUS = "ott-plus"
    NOHARD = "nohard"
    MANUAL = "manual"
    OTHER = "other"

    @property
    def folder_name(self) -> str:
        return CATEGORY_FOLDER_NAMES[self]

    @classmethod
    def parse(cls, value: Optional[str]) -> "Category":
        """Map a stored or submitted category to a member; unknown values map to OTHER."""
        if isinstance(value, Category):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.OTHER

    @classmethod
    def from_folder_name(cls, folder_name: str) -> Optional["Category"]:
        for category, name in CATEGORY_FOLDER_NAMES.items():
            if name == folder_name:
                return category
        return None


CATEGORY_FOLDER_NAMES = {
    Category.STREAMPLAYER: "StreamPlayer",
    Category.OTT_PLUS: "OTT PLUS",
    Category.NOHARD: "NoHard System",
    Category.MANUAL: "Manual",
    Category.OTHER: "Other",
}


@dataclass
class FileRecord(BaseModel):
    """One downloadable file offered to end users.

    ``remote_file_id`` names the copy on ``remote_account_id`` only. Copies
    placed on other accounts by replication are found by name. A record
    without ``remote_file_id`` is a legacy file served from ``local_path``.
    """
    title: str
    file_name: str
    file_size: int = 0
    mime_type: str = "application/octet-stream"
    category: Category = Category.OTHER
    description: Optional[str] = None
    version: Optional[str] = None
    download_count: int = 0
    sort_order: int = 0
    remote_file_id: Optional[str] = None
    remote_account_id: Optional[str] = None
    local_path: Optional[str] = None
    is_active: bool = True
    id: str = field(default_factory=generate_id)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
