"""
Tests for application startup and shutdown.
"""

import pytest
import httpx

from marusync.config import AppConfig
from marusync.config.settings import DatabaseConfig
from marusync.drive import get_sync_service
from marusync.exceptions import ConfigurationError
from marusync.main import MaruSyncApp
from marusync.web import WebServer


@pytest.fixture
def config(tmp_path):
    return AppConfig(
        database=DatabaseConfig(path=str(tmp_path / "db" / "marusync.db")),
        local_upload_dir=str(tmp_path / "uploads"),
    )


class TestMaruSyncApp:
    """Tests for MaruSyncApp."""

    @pytest.mark.asyncio
    async def test_lifecycle(self, config, tmp_path):
        app = MaruSyncApp(config)

        await app.initialize()
        assert (tmp_path / "db" / "marusync.db").exists()
        assert get_sync_service() is app.sync_service

        await app.start()
        assert app.running
        assert app.token_scheduler.is_running

        await app.stop()
        assert not app.running
        assert not app.token_scheduler.is_running
        assert app.http_client is None
        with pytest.raises(RuntimeError):
            get_sync_service()

    @pytest.mark.asyncio
    async def test_start_before_initialize(self, config):
        with pytest.raises(RuntimeError):
            await MaruSyncApp(config).start()

    @pytest.mark.asyncio
    async def test_fatal_configuration(self, config):
        config.sync.token_refresh_interval_minutes = -1

        with pytest.raises(ConfigurationError) as exc_info:
            await MaruSyncApp(config).initialize()
        assert exc_info.value.error_code == "INVALID_CONFIGURATION"

    @pytest.mark.asyncio
    async def test_server_lifespan_binds_services(self, config):
        server = WebServer(config, runtime=MaruSyncApp(config))

        async with server.app.router.lifespan_context(server.app):
            transport = httpx.ASGITransport(app=server.app)
            async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
                downloads = await http.get("/api/downloads")
                health = await http.get("/health")

        assert downloads.status_code == 200
        assert downloads.json() == []
        assert health.json()["services"]["token_refresh"] is True
