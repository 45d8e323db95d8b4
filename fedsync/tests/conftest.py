"""Shared fixtures: SQLite-backed sync log and in-memory test doubles."""

import os
import tempfile

# Settings are read at import time; point them at a throwaway database first.
os.environ.setdefault("DATABASE_URL", f"sqlite:///{tempfile.gettempdir()}/fedsync-tests.db")
os.environ.setdefault("SYNC_ENABLED", "false")
os.environ.setdefault("TEMP_DIR", os.path.join(tempfile.gettempdir(), "fedsync-tests"))

import asyncio
from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from fedsync.datasets.base import Cadence, Dataset, Phase, SyncResult
from fedsync.models import Base
from fedsync.services.sync_log import SyncLog


@pytest.fixture
def session_factory(tmp_path):
    """File-backed SQLite so worker threads share one database."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'sync.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine)
    engine.dispose()


@pytest.fixture
def sync_log(session_factory):
    return SyncLog(session_factory)


class FakeDataset(Dataset):
    """Dataset whose due-ness and outcome are fixed by the test."""

    table = "test_table"
    cadence = Cadence.DAILY

    def __init__(
        self,
        name: str,
        phase: Phase = Phase.PHASE_1,
        due: bool = True,
        rows: int = 0,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        self.name = name
        self.phase = phase
        self.due = due
        self.rows = rows
        self.error = error
        self.delay = delay
        self.sync_calls = 0
        self.seen_last_sync: List[Optional[datetime]] = []
        self.seen_full: List[bool] = []

    def should_run(self, now, last_sync):
        self.seen_last_sync.append(last_sync)
        return self.due

    async def sync(self, pool, fetcher, temp_dir, *, full=False, log):
        self.sync_calls += 1
        self.seen_full.append(full)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return SyncResult(rows_synced=self.rows, metadata={"source": self.name})


class RecordingSyncLog:
    """In-memory stand-in for SyncLog that records every call in order."""

    def __init__(self, last: Optional[Dict[str, datetime]] = None):
        self.last = last or {}
        self.calls: List[tuple] = []
        self.runs: Dict[int, str] = {}

    async def last_success(self, dataset):
        self.calls.append(("last_success", dataset))
        return self.last.get(dataset)

    async def start(self, dataset):
        run_id = len(self.runs) + 1
        self.runs[run_id] = dataset
        self.calls.append(("start", dataset))
        return run_id

    async def complete(self, run_id, result):
        self.calls.append(("complete", self.runs[run_id], result.rows_synced if result else 0))

    async def fail(self, run_id, message):
        self.calls.append(("fail", self.runs[run_id], message))

    def calls_for(self, dataset: str) -> List[str]:
        return [call[0] for call in self.calls if call[1] == dataset]


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)
