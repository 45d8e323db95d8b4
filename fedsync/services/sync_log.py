"""Read/write access to the sync_log table.

Each call opens its own short-lived session in a worker thread so the
engine's concurrent dataset tasks never share a session.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from fedsync.datasets.base import SyncResult
from fedsync.models.sync_log import STATUS_FAILED, STATUS_RUNNING, STATUS_SUCCEEDED, SyncRun


class SyncLogError(RuntimeError):
    """Raised when a sync_log read or write fails."""


class SyncEntry(BaseModel):
    """One sync attempt as stored in the sync log."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    dataset: str
    status: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    rows_synced: int = 0
    error: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_entry(run: SyncRun) -> SyncEntry:
    return SyncEntry(
        id=run.id,
        dataset=run.dataset,
        status=run.status,
        started_at=_as_utc(run.started_at),
        completed_at=_as_utc(run.completed_at),
        rows_synced=run.rows_synced or 0,
        error=run.error,
        metadata=run.meta,
    )


class SyncLog:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    async def last_success(self, dataset: str) -> Optional[datetime]:
        """started_at of the newest succeeded run, or None if there is none.

        Failed and running rows are ignored so they never advance the schedule.
        """
        return await asyncio.to_thread(self._last_success, dataset)

    async def start(self, dataset: str) -> int:
        """Insert a running row and return its id."""
        return await asyncio.to_thread(self._start, dataset)

    async def complete(self, run_id: int, result: Optional[SyncResult]) -> None:
        await asyncio.to_thread(self._complete, run_id, result)

    async def fail(self, run_id: int, message: str) -> None:
        await asyncio.to_thread(self._fail, run_id, message)

    async def list_entries(
        self,
        dataset: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
    ) -> List[SyncEntry]:
        """Most recent entries first."""
        return await asyncio.to_thread(self._list_entries, dataset, status, limit)

    # -------------------------------------------------------------------------
    # Blocking implementations
    # -------------------------------------------------------------------------
    def _last_success(self, dataset: str) -> Optional[datetime]:
        stmt = (
            select(SyncRun.started_at)
            .where(SyncRun.dataset == dataset, SyncRun.status == STATUS_SUCCEEDED)
            .order_by(SyncRun.started_at.desc())
            .limit(1)
        )
        try:
            with self.session_factory() as db:
                started_at = db.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise SyncLogError(f"synclog: last success for {dataset}: {exc}") from exc
        return _as_utc(started_at)

    def _start(self, dataset: str) -> int:
        run = SyncRun(
            dataset=dataset,
            status=STATUS_RUNNING,
            started_at=datetime.now(timezone.utc),
            rows_synced=0,
        )
        try:
            with self.session_factory() as db:
                db.add(run)
                db.commit()
                return run.id
        except SQLAlchemyError as exc:
            raise SyncLogError(f"synclog: start sync for {dataset}: {exc}") from exc

    def _complete(self, run_id: int, result: Optional[SyncResult]) -> None:
        rows = result.rows_synced if result else 0
        meta = result.metadata if result and result.metadata else None
        self._finish(run_id, STATUS_SUCCEEDED, rows_synced=rows, meta=meta)

    def _fail(self, run_id: int, message: str) -> None:
        self._finish(run_id, STATUS_FAILED, error=message)

    def _finish(self, run_id: int, status: str, **fields: Any) -> None:
        try:
            with self.session_factory() as db:
                run = db.get(SyncRun, run_id)
                if run is None:
                    raise SyncLogError(f"synclog: {status} sync {run_id}: no such run")
                run.status = status
                run.completed_at = datetime.now(timezone.utc)
                for key, value in fields.items():
                    setattr(run, key, value)
                db.commit()
        except SQLAlchemyError as exc:
            raise SyncLogError(f"synclog: {status} sync {run_id}: {exc}") from exc

    def _list_entries(self, dataset: Optional[str], status: Optional[str], limit: int) -> List[SyncEntry]:
        stmt = select(SyncRun)
        if dataset:
            stmt = stmt.where(SyncRun.dataset == dataset)
        if status:
            stmt = stmt.where(SyncRun.status == status)
        stmt = stmt.order_by(SyncRun.started_at.desc(), SyncRun.id.desc()).limit(limit)
        try:
            with self.session_factory() as db:
                runs = db.execute(stmt).scalars().all()
                return [_to_entry(run) for run in runs]
        except SQLAlchemyError as exc:
            raise SyncLogError(f"synclog: list entries: {exc}") from exc
