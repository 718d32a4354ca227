"""
Configuration dataclasses for MaruSync.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

DEFAULT_ENCRYPTION_KEY = "default-key-change-in-production-32bytes"
DEFAULT_ROOT_FOLDER_NAME = "MaruCS-Sync"


class LogLevel(Enum):
    """Supported logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class DatabaseConfig:
    """SQLite database settings."""
    path: str = "data/marusync.db"
    pool_size: int = 5


@dataclass
class OAuthConfig:
    """Google OAuth client settings."""
    client_id: str = ""
    client_secret: str = ""
    redirect_uri: str = "http://localhost:5000/api/drive/oauth/callback"

    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


@dataclass
class SyncConfig:
    """Replication, reconciliation and token upkeep settings."""
    root_folder_name: str = DEFAULT_ROOT_FOLDER_NAME
    token_refresh_margin_minutes: int = 15
    token_refresh_interval_minutes: int = 30
    list_page_size: int = 200
    make_public: bool = True
    recent_report_limit: int = 50


@dataclass
class WebConfig:
    """HTTP server settings."""
    host: str = "0.0.0.0"
    port: int = 5000
    cors_origins: List[str] = field(default_factory=list)


@dataclass
class AdminConfig:
    """Admin console authentication settings."""
    password: Optional[str] = None
    jwt_secret: str = "change-in-production"
    jwt_expiration_hours: int = 24


@dataclass
class AppConfig:
    """Top-level application configuration."""
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    oauth: OAuthConfig = field(default_factory=OAuthConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    web: WebConfig = field(default_factory=WebConfig)
    admin: AdminConfig = field(default_factory=AdminConfig)
    encryption_key: str = DEFAULT_ENCRYPTION_KEY
    local_upload_dir: str = "uploads"
    log_level: LogLevel = LogLevel.INFO
