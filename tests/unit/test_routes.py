"""
Tests for the HTTP API.
"""

import pytest
import pytest_asyncio
import httpx
from urllib.parse import parse_qs, urlparse

from marusync.config import AdminConfig, AppConfig
from marusync.dashboard import bind_services
from marusync.drive import public_download_url
from marusync.models import Category, FileRecord
from marusync.web import WebServer


@pytest.fixture
def server():
    config = AppConfig(admin=AdminConfig(password="admin-pw", jwt_secret="test-jwt-secret"))
    return WebServer(config)


@pytest_asyncio.fixture
async def client(server, account_service, sync_service):
    bind_services(account_service=account_service, sync_service=sync_service)
    transport = httpx.ASGITransport(app=server.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
    await sync_service.replication.drain()
    bind_services()


@pytest_asyncio.fixture
async def admin_headers(client):
    response = await client.post("/api/admin/login", json={"password": "admin-pw"})
    return {"Authorization": f"Bearer {response.json()['token']}"}


async def _owned_record(drive, file_repo, account, name="player.apk", content=b"payload"):
    obj = drive.add_object(account.email, name, [], content)
    record = FileRecord(
        title="Player",
        file_name=name,
        file_size=len(content),
        category=Category.STREAMPLAYER,
        remote_file_id=obj.id,
        remote_account_id=account.id,
    )
    await file_repo.save_file_record(record)
    return record, obj


class TestAuthentication:
    """Tests for admin login and protected routes."""

    @pytest.mark.asyncio
    async def test_login(self, client):
        response = await client.post("/api/admin/login", json={"password": "admin-pw"})

        assert response.status_code == 200
        body = response.json()
        assert body["token"]
        assert body["expires_in"] == 24 * 3600

    @pytest.mark.asyncio
    async def test_wrong_password(self, client):
        response = await client.post("/api/admin/login", json={"password": "nope"})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_admin_route_requires_token(self, client):
        response = await client.get("/api/drive/accounts")

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_garbage_token_rejected(self, client):
        response = await client.get("/api/drive/accounts", headers={"Authorization": "Bearer garbage"})

        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "INVALID_TOKEN"


class TestAccountRoutes:
    """Tests for account administration routes."""

    @pytest.mark.asyncio
    async def test_list_hides_credentials(self, client, admin_headers, make_account):
        await make_account("a@example.com", is_default=True)

        response = await client.get("/api/drive/accounts", headers=admin_headers)

        assert response.status_code == 200
        accounts = response.json()
        assert accounts[0]["email"] == "a@example.com"
        assert accounts[0]["is_default"]
        assert "access_token" not in accounts[0]
        assert "refresh_token" not in accounts[0]

    @pytest.mark.asyncio
    async def test_default_change_conflict(self, client, admin_headers, make_account, drive, file_repo):
        current = await make_account("current@example.com", is_default=True)
        other = await make_account("other@example.com")
        await _owned_record(drive, file_repo, current)

        response = await client.put(f"/api/drive/accounts/{other.id}/default", headers=admin_headers)

        assert response.status_code == 409
        body = response.json()
        assert body["error_code"] == "DEFAULT_CHANGE_REQUIRES_SYNC"
        assert body["current_default_email"] == "current@example.com"
        assert body["file_count"] == 1

    @pytest.mark.asyncio
    async def test_forced_default_change(self, client, admin_headers, make_account):
        await make_account("current@example.com", is_default=True)
        other = await make_account("other@example.com")

        response = await client.put(
            f"/api/drive/accounts/{other.id}/default",
            params={"force": "true"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["is_default"]

    @pytest.mark.asyncio
    async def test_unknown_account(self, client, admin_headers):
        response = await client.put("/api/drive/accounts/missing/activate", headers=admin_headers)

        assert response.status_code == 404
        assert response.json()["error_code"] == "ACCOUNT_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_list_account_files(self, client, admin_headers, make_account, drive, file_repo):
        owner = await make_account("owner@example.com", is_default=True)
        await _owned_record(drive, file_repo, owner)
        await client.post("/api/drive/sync/organize", headers=admin_headers)

        response = await client.get(f"/api/drive/accounts/{owner.id}/files", headers=admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["root_exists"]
        assert body["root_files"] == []
        streamplayer = next(s for s in body["subfolders"] if s["category"] == "streamplayer")
        assert [f["name"] for f in streamplayer["files"]] == ["player.apk"]

    @pytest.mark.asyncio
    async def test_check_account_file(self, client, admin_headers, make_account, drive, file_repo):
        owner = await make_account("owner@example.com", is_default=True)
        _, obj = await _owned_record(drive, file_repo, owner)

        found = await client.get(f"/api/drive/accounts/{owner.id}/files/{obj.id}", headers=admin_headers)
        missing = await client.get(f"/api/drive/accounts/{owner.id}/files/gone", headers=admin_headers)

        assert found.status_code == 200
        assert found.json()["exists"]
        assert found.json()["file"]["name"] == "player.apk"
        assert missing.status_code == 200
        assert not missing.json()["exists"]

    @pytest.mark.asyncio
    async def test_account_files_require_admin(self, client, make_account):
        owner = await make_account("owner@example.com", is_default=True)

        response = await client.get(f"/api/drive/accounts/{owner.id}/files")

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_oauth_callback_links_account(self, client, admin_headers, oauth, account_repo):
        authorize = await client.post(
            "/api/drive/accounts/authorize", json={"account_name": "Backup"}, headers=admin_headers
        )
        assert authorize.status_code == 200
        oauth.codes["code-1"] = "backup@example.com"

        response = await client.get(
            "/api/drive/oauth/callback", params={"code": "code-1", "state": "state-Backup"}
        )

        assert response.status_code == 302
        query = parse_qs(urlparse(response.headers["location"]).query)
        assert query["success"] == ["Account linked: backup@example.com"]
        linked = await account_repo.get_account_by_email("backup@example.com")
        assert linked.account_name == "Backup"

    @pytest.mark.asyncio
    async def test_oauth_callback_with_consent_error(self, client):
        response = await client.get("/api/drive/oauth/callback", params={"error": "access_denied"})

        assert response.status_code == 302
        assert parse_qs(urlparse(response.headers["location"]).query)["error"] == ["access_denied"]

    @pytest.mark.asyncio
    async def test_oauth_callback_with_unknown_state(self, client):
        response = await client.get(
            "/api/drive/oauth/callback", params={"code": "code-1", "state": "forged"}
        )

        assert response.status_code == 302
        assert "error" in parse_qs(urlparse(response.headers["location"]).query)


class TestDownloadRoutes:
    """Tests for public downloads and file administration."""

    @pytest.mark.asyncio
    async def test_public_listing(self, client, make_account, drive, file_repo):
        owner = await make_account("owner@example.com", is_default=True)
        record, _ = await _owned_record(drive, file_repo, owner)
        hidden, _ = await _owned_record(drive, file_repo, owner, name="old.apk")
        file_repo.rows[hidden.id].is_active = False

        response = await client.get("/api/downloads")

        assert response.status_code == 200
        assert [item["id"] for item in response.json()] == [record.id]
        assert response.json()[0]["category"] == "streamplayer"

    @pytest.mark.asyncio
    async def test_download_streams_and_counts(self, client, make_account, drive, file_repo):
        owner = await make_account("owner@example.com", is_default=True)
        record, _ = await _owned_record(drive, file_repo, owner)

        response = await client.get(f"/api/downloads/{record.id}/download")

        assert response.status_code == 200
        assert response.content == b"payload"
        assert response.headers["content-disposition"] == "attachment; filename*=UTF-8''player.apk"
        assert (await file_repo.get_file_record(record.id)).download_count == 1

    @pytest.mark.asyncio
    async def test_download_redirects_as_last_resort(self, client, make_account, drive, file_repo):
        owner = await make_account("owner@example.com", is_default=True)
        record, obj = await _owned_record(drive, file_repo, owner)
        drive.failing_downloads.add(obj.id)

        response = await client.get(f"/api/downloads/{record.id}/download")

        assert response.status_code == 302
        assert response.headers["location"] == public_download_url(obj.id)

    @pytest.mark.asyncio
    async def test_legacy_local_download(self, client, file_repo, tmp_path):
        (tmp_path / "old.zip").write_bytes(b"zipdata")
        record = FileRecord(title="Old", file_name="old.zip", local_path="old.zip")
        await file_repo.save_file_record(record)

        response = await client.get(f"/api/downloads/{record.id}/download")

        assert response.status_code == 200
        assert response.content == b"zipdata"

    @pytest.mark.asyncio
    async def test_unknown_download(self, client):
        response = await client.get("/api/downloads/missing/download")

        assert response.status_code == 404
        assert response.json()["error_code"] == "FILE_RECORD_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_upload(self, client, admin_headers, make_account, drive, file_repo):
        await make_account("owner@example.com", is_default=True)

        response = await client.post(
            "/api/downloads",
            headers=admin_headers,
            data={"title": "Manual", "category": "manual", "version": "1.2"},
            files={"file": ("manual.pdf", b"%PDF-1.4", "application/pdf")},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["record"]["title"] == "Manual"
        assert body["record"]["category"] == "manual"
        assert body["record"]["file_size"] == 8
        assert body["replication"] == "scheduled"
        assert [f.name for f in drive.files_in("owner@example.com")] == ["manual.pdf"]
        assert await file_repo.get_file_record(body["record"]["id"]) is not None

    @pytest.mark.asyncio
    async def test_upload_spooled_in_chunks(self, client, admin_headers, make_account, drive):
        await make_account("owner@example.com", is_default=True)
        payload = bytes(range(256)) * 10240

        response = await client.post(
            "/api/downloads",
            headers=admin_headers,
            files={"file": ("firmware.bin", payload, "application/octet-stream")},
        )

        assert response.status_code == 201
        assert response.json()["record"]["file_size"] == len(payload)
        uploaded = drive.files_in("owner@example.com", "firmware.bin")[0]
        assert drive.content[uploaded.id] == payload

    @pytest.mark.asyncio
    async def test_upload_requires_admin(self, client, make_account):
        await make_account("owner@example.com", is_default=True)

        response = await client.post(
            "/api/downloads",
            files={"file": ("manual.pdf", b"%PDF-1.4", "application/pdf")},
        )

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_upload_without_default_account(self, client, admin_headers):
        response = await client.post(
            "/api/downloads",
            headers=admin_headers,
            files={"file": ("manual.pdf", b"%PDF-1.4", "application/pdf")},
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "NO_DEFAULT_ACCOUNT"

    @pytest.mark.asyncio
    async def test_update_metadata(self, client, admin_headers, make_account, drive, file_repo):
        owner = await make_account("owner@example.com", is_default=True)
        record, _ = await _owned_record(drive, file_repo, owner)

        response = await client.put(
            f"/api/downloads/{record.id}", json={"title": "New title"}, headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json()["title"] == "New title"
        assert response.json()["category"] == "streamplayer"


class TestSyncRoutes:
    """Tests for reconciliation routes."""

    @pytest.mark.asyncio
    async def test_reconcile_without_targets(self, client, admin_headers, make_account):
        await make_account("owner@example.com", is_default=True)

        response = await client.post("/api/drive/sync/reconcile", headers=admin_headers)

        assert response.status_code == 400
        assert response.json()["error_code"] == "NO_SYNC_TARGETS"

    @pytest.mark.asyncio
    async def test_reconcile(self, client, admin_headers, make_account, drive, file_repo):
        owner = await make_account("owner@example.com", is_default=True)
        await make_account("backup@example.com")
        await _owned_record(drive, file_repo, owner)

        response = await client.post("/api/drive/sync/reconcile", headers=admin_headers)

        assert response.status_code == 200
        assert [f.name for f in drive.files_in("backup@example.com")] == ["player.apk"]

    @pytest.mark.asyncio
    async def test_token_refresh_status_without_scheduler(self, client, admin_headers):
        response = await client.get("/api/drive/sync/token-refresh", headers=admin_headers)

        assert response.json() == {"running": False}


class TestServiceAvailability:
    """Tests for the server before services are bound."""

    @pytest.mark.asyncio
    async def test_health(self, server):
        transport = httpx.ASGITransport(app=server.app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
            response = await http.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_unbound_services(self, server):
        bind_services()
        transport = httpx.ASGITransport(app=server.app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
            response = await http.get("/api/downloads")

        assert response.status_code == 503
