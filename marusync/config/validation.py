"""
Configuration validation for MaruSync.
"""

from typing import List

from .settings import AppConfig, DEFAULT_ENCRYPTION_KEY

FATAL_PREFIX = "FATAL: "


class ConfigValidator:
    """Validates configuration settings."""

    @staticmethod
    def validate_config(config: AppConfig) -> List[str]:
        """Validate the application configuration.

        Returns:
            Human-readable problems. Entries starting with ``FATAL: `` mean the
            application cannot run with this configuration.
        """
        errors = []

        errors.extend(ConfigValidator._validate_oauth(config))
        errors.extend(ConfigValidator._validate_secrets(config))
        errors.extend(ConfigValidator._validate_numeric_ranges(config))

        return errors

    @staticmethod
    def is_fatal(errors: List[str]) -> bool:
        return any(error.startswith(FATAL_PREFIX) for error in errors)

    @staticmethod
    def _validate_oauth(config: AppConfig) -> List[str]:
        errors = []

        if not config.oauth.is_configured():
            errors.append(
                "GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET are not set; accounts cannot be linked"
            )

        if config.oauth.redirect_uri and not config.oauth.redirect_uri.startswith(("http://", "https://")):
            errors.append("GOOGLE_REDIRECT_URI must be an http(s) URL")

        return errors

    @staticmethod
    def _validate_secrets(config: AppConfig) -> List[str]:
        errors = []

        if config.encryption_key == DEFAULT_ENCRYPTION_KEY:
            errors.append("ENCRYPTION_KEY is the built-in default; stored tokens are not protected")

        if not config.admin.password:
            errors.append("ADMIN_PASSWORD is not set; admin login is disabled")

        if config.admin.jwt_secret == "change-in-production":
            errors.append("ADMIN_JWT_SECRET is the built-in default")

        return errors

    @staticmethod
    def _validate_numeric_ranges(config: AppConfig) -> List[str]:
        errors = []

        if config.sync.token_refresh_interval_minutes <= 0:
            errors.append(f"{FATAL_PREFIX}TOKEN_REFRESH_INTERVAL_MINUTES must be positive")

        if config.sync.token_refresh_margin_minutes < 0:
            errors.append(f"{FATAL_PREFIX}TOKEN_REFRESH_MARGIN_MINUTES must not be negative")

        if not 1 <= config.sync.list_page_size <= 1000:
            errors.append(f"{FATAL_PREFIX}DRIVE_LIST_PAGE_SIZE must be between 1 and 1000")

        if config.database.pool_size <= 0:
            errors.append(f"{FATAL_PREFIX}DB_POOL_SIZE must be positive")

        if not 0 < config.web.port < 65536:
            errors.append(f"{FATAL_PREFIX}WEB_PORT must be a valid port number")

        return errors
