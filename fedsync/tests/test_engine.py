"""Sync engine orchestration tests"""

import asyncio
import threading
import time

import pytest

from fedsync.datasets.base import Phase
from fedsync.datasets.engine import MAX_CONCURRENT_SYNCS, Engine, RunOpts
from fedsync.datasets.registry import Registry, UnknownDatasetError
from fedsync.models.sync_log import STATUS_FAILED, STATUS_SUCCEEDED
from fedsync.services.sync_log import SyncLog
from fedsync.tests.conftest import FakeDataset, RecordingSyncLog, utc

NOW = utc(2024, 3, 15, 14)


def make_engine(datasets, sync_log, **kwargs):
    return Engine(
        pool=None,
        fetcher=None,
        sync_log=sync_log,
        registry=Registry(datasets),
        temp_dir="/tmp/fedsync-engine-tests",
        clock=lambda: NOW,
        **kwargs,
    )


class TestEngineRun:
    """Per-dataset flow and summary counts"""

    @pytest.mark.asyncio
    async def test_due_skipped_and_failing_datasets(self):
        """One success, one skip, one failure in the same batch"""
        a = FakeDataset("a", due=True, rows=100)
        b = FakeDataset("b", due=False)
        c = FakeDataset("c", due=True, error=RuntimeError("download failed"))
        log = RecordingSyncLog()

        summary = await make_engine([a, b, c], log).run(RunOpts())

        assert (summary.synced, summary.skipped, summary.failed) == (1, 1, 1)
        assert log.calls_for("a") == ["last_success", "start", "complete"]
        assert log.calls_for("b") == ["last_success"]
        assert log.calls_for("c") == ["last_success", "start", "fail"]
        assert ("fail", "c", "download failed") in log.calls
        assert ("complete", "a", 100) in log.calls
        assert b.sync_calls == 0

    @pytest.mark.asyncio
    async def test_end_to_end_with_sqlite_sync_log(self, sync_log):
        a = FakeDataset("a", due=True, rows=7)
        b = FakeDataset("b", due=False)
        c = FakeDataset("c", due=True, error=ValueError("bad zip"))

        summary = await make_engine([a, b, c], sync_log).run()

        assert (summary.synced, summary.skipped, summary.failed) == (1, 1, 1)
        entries = await sync_log.list_entries()
        by_dataset = {e.dataset: e for e in entries}
        assert len(entries) == 2
        assert by_dataset["a"].status == STATUS_SUCCEEDED
        assert by_dataset["a"].rows_synced == 7
        assert by_dataset["a"].metadata == {"source": "a"}
        assert by_dataset["c"].status == STATUS_FAILED
        assert by_dataset["c"].error == "bad zip"
        assert "b" not in by_dataset

    @pytest.mark.asyncio
    async def test_last_success_is_passed_to_should_run(self):
        last = utc(2024, 3, 1)
        ds = FakeDataset("a", due=False)
        await make_engine([ds], RecordingSyncLog({"a": last})).run()
        assert ds.seen_last_sync == [last]

    @pytest.mark.asyncio
    async def test_force_bypasses_schedule(self):
        ds = FakeDataset("a", due=False, rows=3)
        log = RecordingSyncLog()

        summary = await make_engine([ds], log).run(RunOpts(force=True))

        assert summary.synced == 1
        assert ds.sync_calls == 1
        assert ds.seen_last_sync == []
        assert log.calls_for("a") == ["start", "complete"]

    @pytest.mark.asyncio
    async def test_full_flag_passed_to_dataset(self):
        ds = FakeDataset("a")
        await make_engine([ds], RecordingSyncLog()).run(RunOpts(full=True))
        assert ds.seen_full == [True]

    @pytest.mark.asyncio
    async def test_no_datasets_selected(self):
        ds = FakeDataset("a", phase=Phase.PHASE_1)
        log = RecordingSyncLog()

        summary = await make_engine([ds], log).run(RunOpts(phase=Phase.PHASE_3))

        assert summary.total == 0
        assert log.calls == []

    @pytest.mark.asyncio
    async def test_unknown_dataset_aborts_before_any_work(self):
        ds = FakeDataset("a")
        log = RecordingSyncLog()

        with pytest.raises(UnknownDatasetError):
            await make_engine([ds], log).run(RunOpts(datasets=["a", "typo"]))

        assert log.calls == []
        assert ds.sync_calls == 0

    @pytest.mark.asyncio
    async def test_phase_filter(self):
        a = FakeDataset("a", phase=Phase.PHASE_1B)
        b = FakeDataset("b", phase=Phase.PHASE_2)

        summary = await make_engine([a, b], RecordingSyncLog()).run(RunOpts(phase=Phase.PHASE_1B))

        assert summary.synced == 1
        assert (a.sync_calls, b.sync_calls) == (1, 0)


class BrokenSyncLog(RecordingSyncLog):
    """Sync log whose selected operations raise."""

    def __init__(self, broken=()):
        super().__init__()
        self.broken = set(broken)

    async def last_success(self, dataset):
        if "last_success" in self.broken:
            raise RuntimeError("db down")
        return await super().last_success(dataset)

    async def start(self, dataset):
        if "start" in self.broken and dataset == "a":
            raise RuntimeError("insert failed")
        return await super().start(dataset)

    async def complete(self, run_id, result):
        if "complete" in self.broken:
            raise RuntimeError("update failed")
        await super().complete(run_id, result)

    async def fail(self, run_id, message):
        if "fail" in self.broken:
            raise RuntimeError("update failed")
        await super().fail(run_id, message)


class TestBookkeepingFailures:
    """Sync log errors never abort the batch"""

    @pytest.mark.asyncio
    async def test_start_failure_counts_dataset_as_failed(self):
        a, b = FakeDataset("a"), FakeDataset("b")

        summary = await make_engine([a, b], BrokenSyncLog({"start"})).run()

        assert (summary.synced, summary.failed) == (1, 1)
        assert a.sync_calls == 0
        assert b.sync_calls == 1

    @pytest.mark.asyncio
    async def test_complete_failure_still_counts_success(self):
        summary = await make_engine([FakeDataset("a")], BrokenSyncLog({"complete"})).run()
        assert (summary.synced, summary.failed) == (1, 0)

    @pytest.mark.asyncio
    async def test_fail_write_failure_still_counts_failure(self):
        ds = FakeDataset("a", error=RuntimeError("boom"))
        summary = await make_engine([ds], BrokenSyncLog({"fail"})).run()
        assert (summary.synced, summary.failed) == (0, 1)

    @pytest.mark.asyncio
    async def test_last_success_failure_isolated(self):
        a, b = FakeDataset("a"), FakeDataset("b")

        summary = await make_engine([a, b], BrokenSyncLog({"last_success"})).run()

        assert summary.failed == 2
        assert a.sync_calls == b.sync_calls == 0

    @pytest.mark.asyncio
    async def test_last_success_failure_irrelevant_when_forced(self):
        summary = await make_engine([FakeDataset("a")], BrokenSyncLog({"last_success"})).run(RunOpts(force=True))
        assert summary.synced == 1


class TestConcurrency:
    """Concurrency cap and cancellation"""

    @pytest.mark.asyncio
    async def test_at_most_five_syncs_in_flight(self):
        active = 0
        peak = 0

        class TrackingDataset(FakeDataset):
            async def sync(self, pool, fetcher, temp_dir, *, full=False, log):
                nonlocal active, peak
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.01)
                active -= 1
                return await super().sync(pool, fetcher, temp_dir, full=full, log=log)

        datasets = [TrackingDataset(f"ds{i}") for i in range(12)]
        summary = await make_engine(datasets, RecordingSyncLog()).run()

        assert MAX_CONCURRENT_SYNCS == 5
        assert peak == 5
        assert summary.synced == 12

    @pytest.mark.asyncio
    async def test_failure_does_not_cancel_slow_siblings(self):
        slow = FakeDataset("slow", delay=0.05, rows=1)
        broken = FakeDataset("broken", error=RuntimeError("boom"))

        summary = await make_engine([slow, broken], RecordingSyncLog()).run()

        assert (summary.synced, summary.failed) == (1, 1)

    @pytest.mark.asyncio
    async def test_cancel_stops_new_units_and_closes_running_ones(self):
        started = asyncio.Event()

        class BlockingDataset(FakeDataset):
            async def sync(self, pool, fetcher, temp_dir, *, full=False, log):
                self.sync_calls += 1
                started.set()
                await asyncio.Event().wait()

        blocking = BlockingDataset("blocking")
        waiting = FakeDataset("waiting")
        log = RecordingSyncLog()
        engine = make_engine([blocking, waiting], log, max_concurrency=1)

        task = asyncio.create_task(engine.run())
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert waiting.sync_calls == 0
        assert log.calls_for("blocking") == ["last_success", "start", "fail"]
        assert ("fail", "blocking", "cancelled") in log.calls
        assert log.calls_for("waiting") == []

    @pytest.mark.asyncio
    async def test_cancel_during_start_marks_row_failed(self, session_factory):
        entered = threading.Event()

        class SlowStartSyncLog(SyncLog):
            def _start(self, dataset):
                entered.set()
                time.sleep(0.2)
                return super()._start(dataset)

        sync_log = SlowStartSyncLog(session_factory)
        ds = FakeDataset("a")
        task = asyncio.create_task(make_engine([ds], sync_log, max_concurrency=1).run(RunOpts(force=True)))
        while not entered.is_set():
            await asyncio.sleep(0.005)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        entries = await sync_log.list_entries()
        assert [(e.dataset, e.status, e.error) for e in entries] == [("a", STATUS_FAILED, "cancelled")]
        assert ds.sync_calls == 0
