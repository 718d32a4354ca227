"""
Main application entry point for MaruSync.

This module wires all components together:
- SQLite persistence with migrations
- Google OAuth and the Drive REST client
- Replication, reconciliation and download resolution
- Periodic token refresh
- HTTP API server
"""

import logging
import sys
from datetime import timedelta
from pathlib import Path
from typing import Optional

import httpx
from fastapi import FastAPI

from .config import AppConfig, ConfigValidator, EnvironmentLoader
from .data import initialize_repositories, run_migrations
from .data.repositories import RepositoryFactory
from .drive import (
    AccountCredentials,
    AccountService,
    DownloadResolver,
    DriveClient,
    DriveSyncService,
    FolderTaxonomyResolver,
    GoogleOAuthFlow,
    ReplicationEngine,
    SyncReconciler,
    TokenCipher,
    TokenManager,
    set_sync_service,
)
from .exceptions import ConfigurationError, create_error_context, handle_unexpected_error
from .scheduling import TokenRefreshScheduler
from .web import WebServer

HTTP_TIMEOUT = httpx.Timeout(120.0, connect=15.0)


def configure_logging(level: str = "INFO", log_file: Optional[str] = "data/marusync.log") -> None:
    """Configure root logging: stdout plus an optional file under data/."""
    log_handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        try:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            log_handlers.append(logging.FileHandler(str(log_path)))
        except (OSError, PermissionError):
            # File logging not available, use stdout only
            pass

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=log_handlers
    )


class MaruSyncApp:
    """Owns every long-lived component and their startup/shutdown order."""

    def __init__(self, config: Optional[AppConfig] = None):
        self.config = config
        self.logger = logging.getLogger(__name__)

        self.repository_factory: Optional[RepositoryFactory] = None
        self.http_client: Optional[httpx.AsyncClient] = None
        self.credentials: Optional[AccountCredentials] = None
        self.account_service: Optional[AccountService] = None
        self.sync_service: Optional[DriveSyncService] = None
        self.token_scheduler: Optional[TokenRefreshScheduler] = None
        self.running = False

    async def initialize(self) -> None:
        """Initialize all application components."""
        try:
            self.logger.info("Initializing MaruSync...")

            if self.config is None:
                self.config = EnvironmentLoader.load_config()
            self._validate_config()

            await self._initialize_database()
            await self._initialize_services()

            self.logger.info("All components initialized successfully")

        except Exception as e:
            error = handle_unexpected_error(e)
            self.logger.error(f"Failed to initialize application: {error.to_log_string()}")
            raise

    def _validate_config(self) -> None:
        problems = ConfigValidator.validate_config(self.config)
        for problem in problems:
            self.logger.warning(f"Configuration: {problem}")

        if ConfigValidator.is_fatal(problems):
            raise ConfigurationError(
                message="Invalid configuration: " + "; ".join(problems),
                error_code="INVALID_CONFIGURATION",
                context=create_error_context(operation="initialize"),
                user_message="MaruSync cannot start with the current configuration."
            )

    async def _initialize_database(self) -> None:
        """Initialize database with migrations."""
        db_path = self.config.database.path
        self.logger.info(f"Initializing database at {db_path}...")

        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        await run_migrations(db_path)

        self.repository_factory = initialize_repositories(
            backend="sqlite",
            db_path=db_path,
            pool_size=self.config.database.pool_size
        )
        self.logger.info("Database initialized successfully")

    async def _initialize_services(self) -> None:
        """Build the Drive sync components. OAuth calls share one HTTP client."""
        sync_config = self.config.sync

        accounts = await self.repository_factory.get_account_repository()
        files = await self.repository_factory.get_file_record_repository()

        self.http_client = httpx.AsyncClient(timeout=HTTP_TIMEOUT, follow_redirects=True)
        oauth = GoogleOAuthFlow(self.config.oauth, http_client=self.http_client)
        client = DriveClient()
        cipher = TokenCipher(self.config.encryption_key)

        tokens = TokenManager(
            oauth,
            cipher,
            refresh_margin=timedelta(minutes=sync_config.token_refresh_margin_minutes)
        )
        self.credentials = AccountCredentials(tokens, accounts)

        taxonomy = FolderTaxonomyResolver(
            client,
            root_folder_name=sync_config.root_folder_name,
            page_size=sync_config.list_page_size
        )
        replication = ReplicationEngine(
            accounts,
            self.credentials,
            client,
            taxonomy,
            make_public=sync_config.make_public,
            report_limit=sync_config.recent_report_limit
        )
        reconciler = SyncReconciler(
            accounts,
            files,
            self.credentials,
            client,
            taxonomy,
            make_public=sync_config.make_public
        )
        resolver = DownloadResolver(
            accounts,
            self.credentials,
            client,
            local_root=Path(self.config.local_upload_dir),
            page_size=sync_config.list_page_size
        )

        self.sync_service = DriveSyncService(
            accounts,
            files,
            self.credentials,
            client,
            taxonomy,
            replication,
            reconciler,
            resolver,
            make_public=sync_config.make_public
        )
        set_sync_service(self.sync_service)

        self.account_service = AccountService(accounts, files, oauth, cipher, self.credentials, client)

        self.token_scheduler = TokenRefreshScheduler(
            self.credentials,
            interval_minutes=sync_config.token_refresh_interval_minutes
        )

        if not self.config.oauth.is_configured():
            self.logger.warning("Google OAuth client is not configured; accounts cannot be linked or refreshed")

    async def start(self) -> None:
        """Start background services."""
        if self.sync_service is None:
            raise RuntimeError("Application not initialized. Call initialize() first.")

        await self.token_scheduler.start()
        self.running = True
        self.logger.info("MaruSync is now online")

    async def stop(self) -> None:
        """Stop the application gracefully, shutting down all services."""
        self.logger.info("Initiating graceful shutdown...")
        self.running = False

        if self.sync_service and self.sync_service.replication.pending_jobs:
            self.logger.info(
                f"Waiting for {self.sync_service.replication.pending_jobs} replication job(s)..."
            )
            await self.sync_service.replication.drain()

        if self.token_scheduler and self.token_scheduler.is_running:
            self.logger.info("Stopping token refresh scheduler...")
            await self.token_scheduler.stop()

        if self.http_client:
            await self.http_client.aclose()
            self.http_client = None

        if self.repository_factory:
            await self.repository_factory.close()

        set_sync_service(None)
        self.logger.info("MaruSync stopped cleanly")


def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    """Build the FastAPI application; its lifespan starts and stops MaruSync.

    Usable as ``uvicorn --factory marusync.main:create_app``.
    """
    if config is None:
        config = EnvironmentLoader.load_config()
    return WebServer(config, runtime=MaruSyncApp(config)).app


async def main():
    """Main entry point for MaruSync.

    Runs the HTTP server until it receives SIGINT or SIGTERM; uvicorn turns
    the signal into a lifespan shutdown which stops every component.
    """
    config = EnvironmentLoader.load_config()
    configure_logging(config.log_level.value)
    logger = logging.getLogger(__name__)

    server = WebServer(config, runtime=MaruSyncApp(config))

    try:
        await server.start_server()
        await server.wait_closed()
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)

    logger.info("Server exited")
