"""FRED (Federal Reserve Economic Data) series source."""

from __future__ import annotations

import asyncio
import json
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import sessionmaker

from fedsync.core.fetcher import FetchError, HTTPFetcher
from fedsync.core.upsert import bulk_upsert
from fedsync.datasets.base import Cadence, Dataset, Phase, SyncResult
from fedsync.datasets.schedule import monthly_schedule
from fedsync.models.fred import FredObservation

FRED_URL = (
    "https://api.stlouisfed.org/fred/series/observations"
    "?series_id={series_id}&api_key={api_key}&file_type=json&sort_order=desc&limit={limit}"
)

# Series fetched in parallel within one FRED sync
SERIES_CONCURRENCY = 5

TARGET_SERIES = [
    "GDP",  # Gross Domestic Product
    "UNRATE",  # Unemployment Rate
    "CPIAUCSL",  # Consumer Price Index
    "FEDFUNDS",  # Federal Funds Rate
    "GS10",  # 10-Year Treasury
    "GS2",  # 2-Year Treasury
    "T10Y2Y",  # 10Y-2Y Spread
    "SP500",  # S&P 500
    "VIXCLS",  # VIX Volatility
    "M2SL",  # M2 Money Supply
    "DTWEXBGS",  # Trade Weighted US Dollar
    "HOUST",  # Housing Starts
    "RSAFS",  # Retail Sales
    "INDPRO",  # Industrial Production
    "PAYEMS",  # Nonfarm Payrolls
]


def parse_observations(series_id: str, payload: bytes) -> List[Dict[str, Any]]:
    """Turn a FRED observations response into fred_series rows.

    FRED reports missing values as "."; those observations are dropped.
    """
    data = json.loads(payload)
    rows: List[Dict[str, Any]] = []
    for obs in data.get("observations", []):
        raw_value = obs.get("value")
        if raw_value in (None, "", "."):
            continue
        try:
            obs_date = date.fromisoformat(obs["date"])
            value = float(raw_value)
        except (KeyError, TypeError, ValueError):
            continue
        rows.append({"series_id": series_id, "obs_date": obs_date, "value": value})
    return rows


class FRED(Dataset):
    """Monthly refresh of key macro series."""

    name = "fred"
    table = "fred_series"
    phase = Phase.PHASE_3
    cadence = Cadence.MONTHLY

    def __init__(self, api_key: Optional[str] = None, series: Optional[List[str]] = None):
        self.api_key = api_key
        self.series = series or TARGET_SERIES

    def should_run(self, now: datetime, last_sync: Optional[datetime]) -> bool:
        return monthly_schedule(now, last_sync)

    async def sync(
        self,
        pool: sessionmaker,
        fetcher: HTTPFetcher,
        temp_dir: Path,
        *,
        full: bool = False,
        log,
    ) -> SyncResult:
        if not self.api_key:
            raise ValueError("fred: FRED_API_KEY is not configured")

        # Incremental runs only need recent observations.
        limit = 100000 if full else 120
        semaphore = asyncio.Semaphore(SERIES_CONCURRENCY)
        skipped: List[str] = []

        async def fetch_series(series_id: str) -> List[Dict[str, Any]]:
            url = FRED_URL.format(series_id=series_id, api_key=self.api_key, limit=limit)
            async with semaphore:
                try:
                    payload = await fetcher.download(url)
                    return parse_observations(series_id, payload)
                except (FetchError, ValueError) as exc:
                    log.warning(f"Skipping FRED series {series_id}: {exc}")
                    skipped.append(series_id)
                    return []

        results = await asyncio.gather(*(fetch_series(s) for s in self.series))
        rows = [row for series_rows in results for row in series_rows]

        written = await asyncio.to_thread(self._write, pool, rows)

        log.info(f"FRED sync complete rows={written} series={len(self.series)} skipped={len(skipped)}")
        return SyncResult(
            rows_synced=written,
            metadata={"series": len(self.series), "skipped_series": sorted(skipped)},
        )

    @staticmethod
    def _write(pool: sessionmaker, rows: List[Dict[str, Any]]) -> int:
        with pool() as db:
            written = bulk_upsert(db, FredObservation, rows, conflict_keys=["series_id", "obs_date"])
            db.commit()
        return written
