"""
Transient view of a Google Drive object.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .base import parse_datetime

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"


@dataclass
class RemoteObject:
    """A file or folder as reported by the Drive API. Never persisted."""
    id: str
    name: str
    mime_type: str = "application/octet-stream"
    size: Optional[int] = None
    md5_checksum: Optional[str] = None
    parents: List[str] = field(default_factory=list)
    created_time: Optional[datetime] = None
    modified_time: Optional[datetime] = None
    web_view_link: Optional[str] = None
    web_content_link: Optional[str] = None

    @property
    def is_folder(self) -> bool:
        return self.mime_type == FOLDER_MIME_TYPE

    def matches_content(self, size: Optional[int] = None, md5_checksum: Optional[str] = None) -> bool:
        """Compare size and hash where both sides know them."""
        if size is not None and self.size is not None and size != self.size:
            return False
        if md5_checksum and self.md5_checksum and md5_checksum != self.md5_checksum:
            return False
        return True

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "RemoteObject":
        """Build from a Drive v3 ``files`` resource."""
        size = data.get("size")
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            mime_type=data.get("mimeType", "application/octet-stream"),
            size=int(size) if size is not None else None,
            md5_checksum=data.get("md5Checksum"),
            parents=list(data.get("parents") or []),
            created_time=parse_datetime(data.get("createdTime")),
            modified_time=parse_datetime(data.get("modifiedTime")),
            web_view_link=data.get("webViewLink"),
            web_content_link=data.get("webContentLink"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "mime_type": self.mime_type,
            "size": self.size,
            "md5_checksum": self.md5_checksum,
            "parents": self.parents,
            "created_time": self.created_time.isoformat() if self.created_time else None,
            "modified_time": self.modified_time.isoformat() if self.modified_time else None,
            "web_view_link": self.web_view_link,
            "web_content_link": self.web_content_link,
        }
