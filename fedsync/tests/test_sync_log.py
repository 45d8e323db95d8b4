"""Sync log persistence tests"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from fedsync.datasets.base import SyncResult
from fedsync.models.sync_log import STATUS_FAILED, STATUS_RUNNING, STATUS_SUCCEEDED, SyncRun
from fedsync.services.sync_log import SyncLog, SyncLogError


class TestSyncLog:
    """Start/complete/fail transitions and last-success lookup"""

    @pytest.mark.asyncio
    async def test_never_synced(self, sync_log):
        assert await sync_log.last_success("cbp") is None

    @pytest.mark.asyncio
    async def test_start_creates_running_entry(self, sync_log):
        run_id = await sync_log.start("cbp")

        entries = await sync_log.list_entries(dataset="cbp")
        assert len(entries) == 1
        assert entries[0].id == run_id
        assert entries[0].status == STATUS_RUNNING
        assert entries[0].completed_at is None

    @pytest.mark.asyncio
    async def test_complete_records_rows_and_metadata(self, sync_log):
        run_id = await sync_log.start("cbp")
        await sync_log.complete(run_id, SyncResult(rows_synced=42, metadata={"end_year": 2023}))

        entry = (await sync_log.list_entries(dataset="cbp"))[0]
        assert entry.status == STATUS_SUCCEEDED
        assert entry.rows_synced == 42
        assert entry.metadata == {"end_year": 2023}
        assert entry.completed_at is not None
        assert entry.duration_seconds >= 0

    @pytest.mark.asyncio
    async def test_complete_without_result(self, sync_log):
        run_id = await sync_log.start("fred")
        await sync_log.complete(run_id, None)

        entry = (await sync_log.list_entries(dataset="fred"))[0]
        assert entry.rows_synced == 0
        assert entry.metadata is None

    @pytest.mark.asyncio
    async def test_fail_records_error(self, sync_log):
        run_id = await sync_log.start("cbp")
        await sync_log.fail(run_id, "status 503")

        entry = (await sync_log.list_entries(dataset="cbp"))[0]
        assert entry.status == STATUS_FAILED
        assert entry.error == "status 503"

    @pytest.mark.asyncio
    async def test_last_success_returns_aware_utc(self, sync_log):
        run_id = await sync_log.start("cbp")
        await sync_log.complete(run_id, SyncResult(rows_synced=1))

        last = await sync_log.last_success("cbp")
        assert last is not None
        assert last.tzinfo is not None
        assert abs(datetime.now(timezone.utc) - last) < timedelta(minutes=1)

    @pytest.mark.asyncio
    async def test_failed_and_running_runs_do_not_mask_success(self, sync_log, session_factory):
        base = datetime(2024, 3, 1, tzinfo=timezone.utc)
        with session_factory() as db:
            db.add_all(
                [
                    SyncRun(dataset="cbp", status=STATUS_SUCCEEDED, started_at=base),
                    SyncRun(dataset="cbp", status=STATUS_FAILED, started_at=base + timedelta(days=1)),
                    SyncRun(dataset="cbp", status=STATUS_RUNNING, started_at=base + timedelta(days=2)),
                    SyncRun(dataset="fred", status=STATUS_SUCCEEDED, started_at=base + timedelta(days=3)),
                ]
            )
            db.commit()

        assert await sync_log.last_success("cbp") == base

    @pytest.mark.asyncio
    async def test_last_success_picks_newest(self, sync_log, session_factory):
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        with session_factory() as db:
            for days in (0, 30, 10):
                db.add(SyncRun(dataset="fred", status=STATUS_SUCCEEDED, started_at=base + timedelta(days=days)))
            db.commit()

        assert await sync_log.last_success("fred") == base + timedelta(days=30)

    @pytest.mark.asyncio
    async def test_list_entries_filters_and_orders(self, sync_log):
        first = await sync_log.start("cbp")
        await sync_log.fail(first, "boom")
        second = await sync_log.start("cbp")
        await sync_log.complete(second, SyncResult(rows_synced=5))
        await sync_log.start("fred")

        entries = await sync_log.list_entries(dataset="cbp")
        assert [e.id for e in entries] == [second, first]
        failed = await sync_log.list_entries(status=STATUS_FAILED)
        assert [e.id for e in failed] == [first]
        assert len(await sync_log.list_entries(limit=1)) == 1

    @pytest.mark.asyncio
    async def test_finish_unknown_run(self, sync_log):
        with pytest.raises(SyncLogError):
            await sync_log.fail(999, "boom")

    @pytest.mark.asyncio
    async def test_database_errors_are_wrapped(self, tmp_path):
        # No tables created
        engine = create_engine(f"sqlite:///{tmp_path / 'empty.db'}")
        log = SyncLog(sessionmaker(bind=engine))

        with pytest.raises(SyncLogError, match="synclog: start sync for cbp"):
            await log.start("cbp")
        with pytest.raises(SyncLogError, match="synclog: last success for cbp"):
            await log.last_success("cbp")
