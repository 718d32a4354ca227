"""
Environment variable handling for MaruSync configuration.
"""

import os
from typing import List

from dotenv import find_dotenv, load_dotenv

from .settings import (
    AppConfig, DatabaseConfig, OAuthConfig, SyncConfig, WebConfig, AdminConfig,
    LogLevel, DEFAULT_ENCRYPTION_KEY, DEFAULT_ROOT_FOLDER_NAME
)


class EnvironmentLoader:
    """Loads configuration from environment variables."""

    @staticmethod
    def load_config() -> AppConfig:
        """Load configuration from environment variables and an optional .env file."""
        load_dotenv(find_dotenv(usecwd=True))

        database_config = DatabaseConfig(
            path=os.getenv('DATABASE_PATH', 'data/marusync.db'),
            pool_size=int(os.getenv('DB_POOL_SIZE', '5'))
        )

        oauth_config = OAuthConfig(
            client_id=os.getenv('GOOGLE_CLIENT_ID', ''),
            client_secret=os.getenv('GOOGLE_CLIENT_SECRET', ''),
            redirect_uri=os.getenv(
                'GOOGLE_REDIRECT_URI',
                'http://localhost:5000/api/drive/oauth/callback'
            )
        )

        sync_config = SyncConfig(
            root_folder_name=os.getenv('SYNC_ROOT_FOLDER_NAME', DEFAULT_ROOT_FOLDER_NAME),
            token_refresh_margin_minutes=int(os.getenv('TOKEN_REFRESH_MARGIN_MINUTES', '15')),
            token_refresh_interval_minutes=int(os.getenv('TOKEN_REFRESH_INTERVAL_MINUTES', '30')),
            list_page_size=int(os.getenv('DRIVE_LIST_PAGE_SIZE', '200')),
            make_public=EnvironmentLoader._parse_bool(os.getenv('REPLICATION_MAKE_PUBLIC', 'true')),
            recent_report_limit=int(os.getenv('REPLICATION_REPORT_LIMIT', '50'))
        )

        web_config = WebConfig(
            host=os.getenv('WEB_HOST', '0.0.0.0'),
            port=int(os.getenv('WEB_PORT', '5000')),
            cors_origins=EnvironmentLoader._parse_list(os.getenv('CORS_ORIGINS', ''))
        )

        admin_config = AdminConfig(
            password=os.getenv('ADMIN_PASSWORD') or None,
            jwt_secret=os.getenv('ADMIN_JWT_SECRET', 'change-in-production'),
            jwt_expiration_hours=int(os.getenv('ADMIN_JWT_EXPIRATION_HOURS', '24'))
        )

        log_level = LogLevel.INFO
        try:
            log_level = LogLevel(os.getenv('LOG_LEVEL', 'INFO').upper())
        except ValueError:
            pass

        return AppConfig(
            database=database_config,
            oauth=oauth_config,
            sync=sync_config,
            web=web_config,
            admin=admin_config,
            encryption_key=os.getenv('ENCRYPTION_KEY', DEFAULT_ENCRYPTION_KEY),
            local_upload_dir=os.getenv('LOCAL_UPLOAD_DIR', 'uploads'),
            log_level=log_level
        )

    @staticmethod
    def _parse_bool(value: str) -> bool:
        return value.strip().lower() in ('1', 'true', 'yes', 'on')

    @staticmethod
    def _parse_list(value: str, delimiter: str = ',') -> List[str]:
        """Parse a comma-separated string into a list."""
        if not value:
            return []
        return [item.strip() for item in value.split(delimiter) if item.strip()]
