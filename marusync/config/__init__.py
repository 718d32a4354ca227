"""
Configuration management for MaruSync.
"""

from .settings import (
    AppConfig, DatabaseConfig, OAuthConfig, SyncConfig, WebConfig, AdminConfig, LogLevel
)
from .environment import EnvironmentLoader
from .validation import ConfigValidator

__all__ = [
    "AppConfig",
    "DatabaseConfig",
    "OAuthConfig",
    "SyncConfig",
    "WebConfig",
    "AdminConfig",
    "LogLevel",
    "EnvironmentLoader",
    "ConfigValidator",
]
