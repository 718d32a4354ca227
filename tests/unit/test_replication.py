"""
Tests for uploads and the replication fan-out.
"""

import asyncio
import pytest
from datetime import timedelta

from marusync.drive import ReplicationStatus
from marusync.exceptions import AccountStateError, NoDefaultAccount
from marusync.models import Category, FileRecord


def _record(source, name="guide.pdf", category=Category.MANUAL, size=4):
    return FileRecord(
        title="Guide",
        file_name=name,
        file_size=size,
        category=category,
        remote_file_id="source-copy",
        remote_account_id=source.id,
    )


def _filed_copies(drive, email, name, category):
    folders = {f.id for f in drive.folders_in(email, category.folder_name)}
    return [f for f in drive.files_in(email, name) if set(f.parents) & folders]


class TestReplicationEngine:
    """Tests for replicating one file to every other account."""

    @pytest.mark.asyncio
    async def test_isolates_unrefreshable_target(self, make_account, replication, drive):
        source = await make_account("source@example.com", is_default=True)
        good = await make_account("good@example.com")
        other_good = await make_account("other@example.com")
        broken = await make_account(
            "broken@example.com", expires_in=timedelta(minutes=-10), refreshable=False
        )

        report = await replication.replicate(_record(source), b"data", source.id)

        statuses = {o.account_id: o.status for o in report.outcomes}
        assert statuses == {
            good.id: ReplicationStatus.REPLICATED,
            other_good.id: ReplicationStatus.REPLICATED,
            broken.id: ReplicationStatus.SKIPPED_TOKEN_EXPIRED,
        }
        assert len(_filed_copies(drive, "good@example.com", "guide.pdf", Category.MANUAL)) == 1
        assert len(_filed_copies(drive, "other@example.com", "guide.pdf", Category.MANUAL)) == 1
        assert drive.files_in("broken@example.com") == []
        assert drive.mutations_on("broken@example.com") == []

    @pytest.mark.asyncio
    async def test_inactive_account_skipped_without_remote_calls(self, make_account, replication, drive):
        source = await make_account("source@example.com", is_default=True)
        inactive = await make_account("inactive@example.com", is_active=False)

        report = await replication.replicate(_record(source), b"data", source.id)

        assert [o.status for o in report.outcomes] == [ReplicationStatus.SKIPPED_INACTIVE]
        assert report.outcomes[0].account_id == inactive.id
        assert drive.mutations_on("inactive@example.com") == []

    @pytest.mark.asyncio
    async def test_remote_failure_recorded_not_raised(self, make_account, replication, drive):
        source = await make_account("source@example.com", is_default=True)
        full = await make_account("full@example.com")
        good = await make_account("good@example.com")
        drive.failing_spaces.add("full@example.com")

        report = await replication.replicate(_record(source), b"data", source.id)

        outcomes = {o.account_id: o for o in report.outcomes}
        assert outcomes[full.id].status == ReplicationStatus.FAILED
        assert "quota" in outcomes[full.id].error
        assert outcomes[good.id].status == ReplicationStatus.REPLICATED
        assert report.replicated == 1
        assert report.failed == 1

    @pytest.mark.asyncio
    async def test_replicas_are_made_public(self, make_account, replication, drive):
        source = await make_account("source@example.com", is_default=True)
        await make_account("good@example.com")

        report = await replication.replicate(_record(source), b"data", source.id)

        assert report.outcomes[0].remote_file_id in drive.public

    @pytest.mark.asyncio
    async def test_reports_kept_newest_first(self, make_account, replication):
        source = await make_account("source@example.com", is_default=True)
        await make_account("good@example.com")

        await replication.replicate(_record(source, name="first.bin"), b"1", source.id)
        await replication.replicate(_record(source, name="second.bin"), b"2", source.id)

        names = [r.file_name for r in replication.recent_reports()]
        assert names == ["second.bin", "first.bin"]

    @pytest.mark.asyncio
    async def test_concurrent_jobs_share_one_folder_tree(self, make_account, replication, drive, monkeypatch):
        source = await make_account("source@example.com", is_default=True)
        await make_account("fresh@example.com")
        list_all = drive.list_all

        async def yielding_list_all(*args, **kwargs):
            await asyncio.sleep(0)
            return await list_all(*args, **kwargs)

        monkeypatch.setattr(drive, "list_all", yielding_list_all)

        await asyncio.gather(
            replication.replicate(_record(source, name="one.pdf"), b"1", source.id),
            replication.replicate(_record(source, name="two.pdf"), b"2", source.id),
        )

        assert len(drive.folders_in("fresh@example.com", "MaruCS-Sync")) == 1
        assert len(drive.folders_in("fresh@example.com", Category.MANUAL.folder_name)) == 1
        assert len(_filed_copies(drive, "fresh@example.com", "one.pdf", Category.MANUAL)) == 1
        assert len(_filed_copies(drive, "fresh@example.com", "two.pdf", Category.MANUAL)) == 1


class TestUpload:
    """Tests for the upload entry point."""

    @pytest.mark.asyncio
    async def test_manual_upload_reaches_every_account(self, make_account, sync_service, file_repo, drive, tmp_path):
        default = await make_account("default@example.com", is_default=True)
        await make_account("second@example.com")
        await make_account("third@example.com")
        source = tmp_path / "upload.tmp"
        source.write_bytes(b"\0" * (10 * 1024 * 1024))

        record, remote = await sync_service.upload_file(
            source, file_name="manual.pdf", title="Manual", category="manual",
            mime_type="application/pdf"
        )

        assert record.remote_account_id == default.id
        assert record.remote_file_id == remote.id
        assert record.file_size == 10 * 1024 * 1024
        assert record.category == Category.MANUAL
        assert await file_repo.get_file_record(record.id) is not None
        assert len(_filed_copies(drive, "default@example.com", "manual.pdf", Category.MANUAL)) == 1

        await sync_service.replication.drain()

        for email in ("second@example.com", "third@example.com"):
            copies = _filed_copies(drive, email, "manual.pdf", Category.MANUAL)
            assert len(copies) == 1
            assert copies[0].size == 10 * 1024 * 1024
        assert not source.exists()
        assert sync_service.recent_replications()[0].replicated == 2

    @pytest.mark.asyncio
    async def test_upload_assigns_next_sort_order(self, make_account, sync_service, tmp_path):
        await make_account("default@example.com", is_default=True)
        first_path = tmp_path / "a.tmp"
        first_path.write_bytes(b"a")
        second_path = tmp_path / "b.tmp"
        second_path.write_bytes(b"b")

        first, _ = await sync_service.upload_file(first_path, file_name="a.bin", title="A")
        second, _ = await sync_service.upload_file(second_path, file_name="b.bin", title="B")
        await sync_service.replication.drain()

        assert second.sort_order == first.sort_order + 1

    @pytest.mark.asyncio
    async def test_upload_without_default_account(self, sync_service, tmp_path):
        source = tmp_path / "upload.tmp"
        source.write_bytes(b"data")

        with pytest.raises(NoDefaultAccount):
            await sync_service.upload_file(source, file_name="a.bin", title="A")
        assert not source.exists()

    @pytest.mark.asyncio
    async def test_upload_to_inactive_account_rejected(self, make_account, sync_service, tmp_path):
        await make_account("default@example.com", is_default=True)
        inactive = await make_account("inactive@example.com", is_active=False)
        source = tmp_path / "upload.tmp"
        source.write_bytes(b"data")

        with pytest.raises(AccountStateError):
            await sync_service.upload_file(source, file_name="a.bin", title="A", account_id=inactive.id)

    @pytest.mark.asyncio
    async def test_upload_always_refreshes_first(self, make_account, sync_service, oauth, tmp_path):
        await make_account("default@example.com", is_default=True)
        source = tmp_path / "upload.tmp"
        source.write_bytes(b"data")

        await sync_service.upload_file(source, file_name="a.bin", title="A")
        await sync_service.replication.drain()

        assert oauth.refresh_calls == ["refresh-default@example.com"]

    @pytest.mark.asyncio
    async def test_failed_record_save_cleans_up(self, make_account, sync_service, file_repo, drive, tmp_path, monkeypatch):
        await make_account("default@example.com", is_default=True)
        await make_account("second@example.com")
        source = tmp_path / "upload.tmp"
        source.write_bytes(b"data")

        async def broken_save(record):
            raise RuntimeError("database is locked")

        monkeypatch.setattr(file_repo, "save_file_record", broken_save)

        with pytest.raises(RuntimeError):
            await sync_service.upload_file(source, file_name="a.bin", title="A")

        assert not source.exists()
        assert drive.files_in("default@example.com", "a.bin") == []
        assert ("delete", "default@example.com") in [m[:2] for m in drive.mutations]
        assert sync_service.replication.pending_jobs == 0
        assert drive.files_in("second@example.com") == []
