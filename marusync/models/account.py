"""
Linked Google Drive account model.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from .base import BaseModel, generate_id, utc_now


@dataclass
class Account(BaseModel):
    """One linked Google Drive identity.

    ``access_token`` and ``refresh_token`` hold the encrypted form produced by
    :class:`marusync.drive.crypto.TokenCipher`. A missing refresh token means
    the account cannot renew itself once the access token expires.
    """
    account_name: str
    email: str
    access_token: str
    refresh_token: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    is_active: bool = True
    is_default: bool = False
    needs_reauth: bool = False
    profile_picture: Optional[str] = None
    id: str = field(default_factory=generate_id)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def token_expired(self, now: Optional[datetime] = None) -> bool:
        """Whether the stored access token is past its expiry (or has none)."""
        if self.token_expires_at is None:
            return True
        return self.token_expires_at < (now or utc_now())

    def to_public_dict(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Account status with credentials omitted."""
        return {
            "id": self.id,
            "account_name": self.account_name,
            "email": self.email,
            "is_active": self.is_active,
            "is_default": self.is_default,
            "profile_picture": self.profile_picture,
            "token_expires_at": self.token_expires_at.isoformat() if self.token_expires_at else None,
            "token_expired": self.token_expired(now),
            "needs_reauth": self.needs_reauth,
            "created_at": self.created_at.isoformat(),
        }

    def __repr__(self) -> str:
        return (
            f"Account(id={self.id!r}, email={self.email!r}, "
            f"active={self.is_active}, default={self.is_default})"
        )
