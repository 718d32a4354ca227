"""
FastAPI web server for MaruSync.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from ..config.settings import AppConfig
from ..dashboard import AdminAuth, bind_services, create_api_router
from ..exceptions import MaruSyncException

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


class WebServer:
    """FastAPI server for the admin API and public downloads."""

    def __init__(self, config: AppConfig, runtime=None):
        """Initialize web server.

        Args:
            config: Application configuration
            runtime: Object with ``initialize``/``start``/``stop`` coroutines and
                the ``account_service``, ``sync_service`` and ``token_scheduler``
                it builds; started and stopped by the app lifespan
        """
        self.config = config
        self.runtime = runtime
        self.server: Optional[uvicorn.Server] = None
        self._server_task: Optional[asyncio.Task] = None

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            # Startup
            logger.info("Web server starting up")
            if self.runtime is not None:
                await self.runtime.initialize()
                await self.runtime.start()
                bind_services(
                    account_service=self.runtime.account_service,
                    sync_service=self.runtime.sync_service,
                    token_scheduler=self.runtime.token_scheduler,
                )

            yield

            # Shutdown
            logger.info("Web server shutting down")
            if self.runtime is not None:
                bind_services()
                await self.runtime.stop()

        self.app = FastAPI(
            title="MaruSync API",
            description="Multi-account Google Drive file distribution",
            version=API_VERSION,
            docs_url="/docs",
            redoc_url="/redoc",
            openapi_url="/openapi.json",
            lifespan=lifespan
        )

        # Configure middleware
        self._setup_middleware()

        # Configure routes
        self._setup_routes()

        # Configure error handlers
        self._setup_error_handlers()

    def _setup_middleware(self) -> None:
        """Configure FastAPI middleware."""
        cors_origins = list(self.config.web.cors_origins or [])

        # Add localhost for development if not already present
        for domain in ("http://localhost:5000", "http://localhost:5173"):
            if domain not in cors_origins:
                cors_origins.append(domain)

        logger.info(f"CORS allowed origins: {cors_origins}")

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
            allow_headers=["*"],
        )

    def _setup_routes(self) -> None:
        """Configure API routes."""

        @self.app.get("/health", tags=["Health"])
        async def health_check():
            """Check API health status."""
            scheduler = getattr(self.runtime, "token_scheduler", None)
            sync_service = getattr(self.runtime, "sync_service", None)
            return JSONResponse(
                status_code=200,
                content={
                    "status": "healthy",
                    "version": API_VERSION,
                    "server_time": datetime.utcnow().strftime("%Y-%m-%dT%H:%M:%SZ"),
                    "services": {
                        "token_refresh": bool(scheduler and scheduler.is_running),
                        "pending_replications": sync_service.replication.pending_jobs if sync_service else 0,
                    }
                }
            )

        auth = AdminAuth(
            password=self.config.admin.password,
            jwt_secret=self.config.admin.jwt_secret,
            jwt_expiration_hours=self.config.admin.jwt_expiration_hours,
        )
        self.app.include_router(create_api_router(auth))

    def _setup_error_handlers(self) -> None:
        """Configure global error handlers."""

        @self.app.exception_handler(MaruSyncException)
        async def marusync_error_handler(request: Request, exc: MaruSyncException):
            """Render domain errors with the status their class carries."""
            if exc.status_code >= 500:
                logger.error(f"Request failed: {exc.to_log_string()}")
            else:
                logger.info(f"Request rejected: {exc.to_log_string()}")
            return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

        @self.app.exception_handler(Exception)
        async def general_error_handler(request: Request, exc: Exception):
            """Handle unexpected errors."""
            logger.error(f"Unhandled error in {request.url.path}: {exc}", exc_info=True)
            return JSONResponse(
                status_code=500,
                content={
                    "error": "INTERNAL_SERVER_ERROR",
                    "error_code": "INTERNAL_SERVER_ERROR",
                    "message": "An unexpected error occurred",
                }
            )

    async def start_server(self) -> None:
        """Start the web server.

        Starts the server in the background without blocking.
        """
        if self._server_task is not None:
            logger.warning("Web server already running")
            return

        host = self.config.web.host
        port = self.config.web.port

        logger.info(f"Starting web server on {host}:{port}")

        server_config = uvicorn.Config(
            app=self.app,
            host=host,
            port=port,
            log_level="info",
            access_log=True,
            loop="asyncio"
        )

        self.server = uvicorn.Server(server_config)

        # Start server in background task
        self._server_task = asyncio.create_task(self.server.serve())

        logger.info(f"Web server started on http://{host}:{port}")
        logger.info(f"API docs available at http://{host}:{port}/docs")

    async def wait_closed(self) -> None:
        """Wait until the server task finishes."""
        if self._server_task is not None:
            await self._server_task
