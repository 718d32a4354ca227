"""
Tests for folder organization and file record administration.
"""

import pytest
from datetime import timedelta

from marusync.drive import SyncStatus
from marusync.exceptions import (
    AccountNotFound, CredentialRefreshFailed, FileRecordNotFound, LocalFileMissing,
    RemoteOperationFailed, ValidationError
)
from marusync.models import Category, FileRecord


async def _tracked(drive, file_repo, account, name, category=Category.STREAMPLAYER, content=b"data"):
    obj = drive.add_object(account.email, name, [], content)
    record = FileRecord(
        title=name,
        file_name=name,
        file_size=len(content),
        category=category,
        remote_file_id=obj.id,
        remote_account_id=account.id,
    )
    await file_repo.save_file_record(record)
    return record, obj


class TestOrganizeFolders:
    """Tests for filing tracked files into category folders."""

    @pytest.mark.asyncio
    async def test_moves_flat_files_and_counts_missing(self, make_account, drive, file_repo, sync_service):
        owner = await make_account("owner@example.com", is_default=True)
        await make_account("other@example.com")
        _, obj = await _tracked(drive, file_repo, owner, "player.apk")
        gone, gone_obj = await _tracked(drive, file_repo, owner, "old.apk")
        del drive.spaces["owner@example.com"][gone_obj.id]

        results = {r.email: r for r in await sync_service.organize_folders()}

        owner_result = results["owner@example.com"]
        assert owner_result.status == SyncStatus.SUCCESS
        assert owner_result.folders_created == 6
        assert owner_result.moved == 1
        assert owner_result.missing == 1

        folder = drive.folders_in("owner@example.com", "StreamPlayer")[0]
        assert drive.spaces["owner@example.com"][obj.id].parents == [folder.id]

        other_result = results["other@example.com"]
        assert other_result.folders_created == 6
        assert other_result.moved == 0

    @pytest.mark.asyncio
    async def test_second_run_changes_nothing(self, make_account, drive, file_repo, sync_service):
        owner = await make_account("owner@example.com", is_default=True)
        await _tracked(drive, file_repo, owner, "player.apk")
        await sync_service.organize_folders()
        before = list(drive.mutations)

        results = await sync_service.organize_folders()

        assert drive.mutations == before
        assert results[0].already_organized == 1
        assert results[0].folders_created == 0

    @pytest.mark.asyncio
    async def test_unrefreshable_account_skipped(self, make_account, drive, sync_service):
        await make_account("broken@example.com", expires_in=timedelta(minutes=-5), refreshable=False)

        results = await sync_service.organize_folders()

        assert results[0].status == SyncStatus.SKIPPED
        assert drive.mutations_on("broken@example.com") == []

    @pytest.mark.asyncio
    async def test_no_accounts(self, sync_service):
        assert await sync_service.organize_folders() == []


class TestInspection:
    """Tests for read-only account listings and file checks."""

    @pytest.mark.asyncio
    async def test_account_never_organized(self, make_account, drive, sync_service):
        account = await make_account("owner@example.com", is_default=True)

        listing = await sync_service.inspect_account(account.id)

        assert listing["email"] == "owner@example.com"
        assert not listing["root_exists"]
        assert listing["root_files"] == []
        assert listing["subfolders"] == []
        assert drive.mutations == []

    @pytest.mark.asyncio
    async def test_lists_root_and_subfolders(self, make_account, drive, file_repo, sync_service):
        owner = await make_account("owner@example.com", is_default=True)
        await _tracked(drive, file_repo, owner, "player.apk")
        await sync_service.organize_folders()
        root = drive.folders_in("owner@example.com", "MaruCS-Sync")[0]
        drive.add_object("owner@example.com", "flat.zip", [root.id], b"z")
        archive = drive.add_object("owner@example.com", "Archive", [root.id], folder=True)
        drive.add_object("owner@example.com", "old.zip", [archive.id], b"o")
        before = list(drive.mutations)

        listing = await sync_service.inspect_account(owner.id)

        assert drive.mutations == before
        assert listing["root_id"] == root.id
        assert [f["name"] for f in listing["root_files"]] == ["flat.zip"]
        subfolders = {s["name"]: s for s in listing["subfolders"]}
        assert [s["name"] for s in listing["subfolders"]] == [
            "StreamPlayer", "OTT PLUS", "NoHard System", "Manual", "Other", "Archive"
        ]
        assert subfolders["StreamPlayer"]["category"] == "streamplayer"
        assert [f["name"] for f in subfolders["StreamPlayer"]["files"]] == ["player.apk"]
        assert subfolders["Manual"]["files"] == []
        assert subfolders["Archive"]["category"] is None
        assert [f["name"] for f in subfolders["Archive"]["files"]] == ["old.zip"]

    @pytest.mark.asyncio
    async def test_unknown_account(self, sync_service):
        with pytest.raises(AccountNotFound):
            await sync_service.inspect_account("missing")

    @pytest.mark.asyncio
    async def test_check_existing_file(self, make_account, drive, file_repo, sync_service):
        owner = await make_account("owner@example.com", is_default=True)
        _, obj = await _tracked(drive, file_repo, owner, "player.apk", content=b"12345")

        result = await sync_service.check_file(owner.id, obj.id)

        assert result["exists"]
        assert result["file"]["id"] == obj.id
        assert result["file"]["size"] == 5

    @pytest.mark.asyncio
    async def test_check_missing_file(self, make_account, sync_service):
        owner = await make_account("owner@example.com", is_default=True)

        result = await sync_service.check_file(owner.id, "gone")

        assert not result["exists"]
        assert result["file"] is None

    @pytest.mark.asyncio
    async def test_check_file_other_failures_raise(self, make_account, drive, sync_service):
        owner = await make_account("owner@example.com", is_default=True)
        drive.failing_spaces.add("owner@example.com")

        with pytest.raises(RemoteOperationFailed) as exc_info:
            await sync_service.check_file(owner.id, "anything")
        assert exc_info.value.http_status == 403


class TestFileRecordAdmin:
    """Tests for editing, deleting and migrating file records."""

    @pytest.mark.asyncio
    async def test_update_metadata(self, make_account, drive, file_repo, sync_service):
        owner = await make_account("owner@example.com", is_default=True)
        record, _ = await _tracked(drive, file_repo, owner, "player.apk")

        updated = await sync_service.update_file_record(
            record.id, {"title": "Player 2", "category": "manual", "version": "2.0"}
        )

        assert updated.title == "Player 2"
        assert updated.category == Category.MANUAL
        stored = await file_repo.get_file_record(record.id)
        assert stored.version == "2.0"

    @pytest.mark.asyncio
    async def test_storage_fields_not_editable(self, make_account, drive, file_repo, sync_service):
        owner = await make_account("owner@example.com", is_default=True)
        record, _ = await _tracked(drive, file_repo, owner, "player.apk")

        with pytest.raises(ValidationError):
            await sync_service.update_file_record(record.id, {"remote_file_id": "elsewhere"})

        stored = await file_repo.get_file_record(record.id)
        assert stored.remote_file_id == record.remote_file_id

    @pytest.mark.asyncio
    async def test_sort_order(self, make_account, drive, file_repo, sync_service):
        owner = await make_account("owner@example.com", is_default=True)
        record, _ = await _tracked(drive, file_repo, owner, "player.apk")

        await sync_service.set_sort_order(record.id, 7)

        assert (await file_repo.get_file_record(record.id)).sort_order == 7

    @pytest.mark.asyncio
    async def test_delete_removes_tracked_copy(self, make_account, drive, file_repo, sync_service):
        owner = await make_account("owner@example.com", is_default=True)
        record, obj = await _tracked(drive, file_repo, owner, "player.apk")

        await sync_service.delete_file_record(record.id)

        assert await file_repo.get_file_record(record.id) is None
        assert obj.id not in drive.spaces["owner@example.com"]

    @pytest.mark.asyncio
    async def test_delete_keeps_remote_when_asked(self, make_account, drive, file_repo, sync_service):
        owner = await make_account("owner@example.com", is_default=True)
        record, obj = await _tracked(drive, file_repo, owner, "player.apk")

        await sync_service.delete_file_record(record.id, delete_remote=False)

        assert await file_repo.get_file_record(record.id) is None
        assert obj.id in drive.spaces["owner@example.com"]

    @pytest.mark.asyncio
    async def test_delete_survives_remote_failure(self, make_account, drive, file_repo, sync_service):
        owner = await make_account("owner@example.com", is_default=True)
        record, _ = await _tracked(drive, file_repo, owner, "player.apk")
        drive.failing_spaces.add("owner@example.com")

        await sync_service.delete_file_record(record.id)

        assert await file_repo.get_file_record(record.id) is None

    @pytest.mark.asyncio
    async def test_unknown_record(self, sync_service):
        with pytest.raises(FileRecordNotFound):
            await sync_service.delete_file_record("missing")

    @pytest.mark.asyncio
    async def test_increment_download_count(self, make_account, drive, file_repo, sync_service):
        owner = await make_account("owner@example.com", is_default=True)
        record, _ = await _tracked(drive, file_repo, owner, "player.apk")

        await sync_service.increment_download_count(record.id)

        assert (await file_repo.get_file_record(record.id)).download_count == 1


class TestMigrateToDrive:
    """Tests for moving legacy local files into Drive."""

    @pytest.mark.asyncio
    async def test_migrates_to_default_account(self, make_account, drive, file_repo, sync_service, tmp_path):
        owner = await make_account("owner@example.com", is_default=True)
        (tmp_path / "files").mkdir()
        (tmp_path / "files" / "manual.pdf").write_bytes(b"%PDF")
        record = FileRecord(
            title="Manual",
            file_name="manual.pdf",
            category=Category.MANUAL,
            local_path="files/manual.pdf",
        )
        await file_repo.save_file_record(record)

        migrated, remote = await sync_service.migrate_to_drive(record.id)

        assert migrated.remote_account_id == owner.id
        assert migrated.remote_file_id == remote.id
        assert migrated.file_size == 4
        folder = drive.folders_in("owner@example.com", "Manual")[0]
        assert remote.parents == [folder.id]
        assert remote.id in drive.public

    @pytest.mark.asyncio
    async def test_already_remote(self, make_account, drive, file_repo, sync_service):
        owner = await make_account("owner@example.com", is_default=True)
        record, _ = await _tracked(drive, file_repo, owner, "player.apk")

        with pytest.raises(ValidationError) as exc_info:
            await sync_service.migrate_to_drive(record.id)
        assert exc_info.value.error_code == "ALREADY_REMOTE"

    @pytest.mark.asyncio
    async def test_missing_local_file(self, make_account, file_repo, sync_service):
        await make_account("owner@example.com", is_default=True)
        record = FileRecord(title="Gone", file_name="gone.zip", local_path="files/gone.zip")
        await file_repo.save_file_record(record)

        with pytest.raises(LocalFileMissing):
            await sync_service.migrate_to_drive(record.id)

    @pytest.mark.asyncio
    async def test_unrefreshable_default(self, make_account, file_repo, sync_service, tmp_path):
        await make_account(
            "owner@example.com", is_default=True, expires_in=timedelta(minutes=-5), refreshable=False
        )
        (tmp_path / "legacy.bin").write_bytes(b"x")
        record = FileRecord(title="Legacy", file_name="legacy.bin", local_path="legacy.bin")
        await file_repo.save_file_record(record)

        with pytest.raises(CredentialRefreshFailed):
            await sync_service.migrate_to_drive(record.id)
