"""Census County Business Patterns source (annual ZIP/CSV files)."""

from __future__ import annotations

import asyncio
import csv
import io
import zipfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import sessionmaker

from fedsync.core.fetcher import FetchError, HTTPFetcher
from fedsync.core.upsert import bulk_upsert
from fedsync.datasets.base import Cadence, Dataset, Phase, SyncResult
from fedsync.datasets.schedule import annual_after
from fedsync.models.cbp import CBPRecord

CBP_URL = "https://www2.census.gov/programs-surveys/cbp/datasets/{year}/cbp{yy}{level}.zip"
CBP_START_YEAR = 2019
CBP_RELEASE_MONTH = 3

# Files downloaded in parallel within one CBP sync
FILE_CONCURRENCY = 3

CONFLICT_KEYS = ["year", "fips_state", "fips_county", "naics"]


def _clean(value: Optional[str]) -> str:
    return (value or "").strip().strip('"').strip()


def _to_int(value: Optional[str]) -> int:
    try:
        return int(_clean(value))
    except ValueError:
        return 0


def _flag(value: Optional[str]) -> Optional[str]:
    value = _clean(value)
    return value[:1] if value else None


def normalize_naics(code: str) -> Optional[str]:
    """Strip Census placeholder characters ("54----", "5411//"); "------" is the all-industry total."""
    code = _clean(code).rstrip("-/")
    if not code:
        return "000000"
    if not code.isdigit():
        return None
    return code


def parse_rows(lines: Iterable[str], year: int) -> List[Dict[str, Any]]:
    """Parse a CBP county or state CSV into cbp_data rows.

    Column names are matched case-insensitively. State files carry an ``lfo``
    (legal form of organization) breakdown; only the total row (``-``) is kept.
    County files have no ``fipscty`` on state rows, which map to county "000".
    """
    reader = csv.DictReader(lines)
    rows: Dict[tuple, Dict[str, Any]] = {}
    for record in reader:
        record = {(k or "").strip().lower(): v for k, v in record.items()}

        lfo = _clean(record.get("lfo"))
        if lfo and lfo != "-":
            continue

        naics = normalize_naics(record.get("naics", ""))
        if naics is None:
            continue

        fips_state = _clean(record.get("fipstate")).zfill(2)
        fips_county = (_clean(record.get("fipscty")) or "0").zfill(3)
        if not fips_state.isdigit():
            continue

        row = {
            "year": year,
            "fips_state": fips_state,
            "fips_county": fips_county,
            "naics": naics,
            "emp": _to_int(record.get("emp")),
            "emp_nf": _flag(record.get("emp_nf")),
            "qp1": _to_int(record.get("qp1")),
            "qp1_nf": _flag(record.get("qp1_nf")),
            "ap": _to_int(record.get("ap")),
            "ap_nf": _flag(record.get("ap_nf")),
            "est": _to_int(record.get("est")),
        }
        # ON CONFLICT cannot touch the same key twice in one statement
        rows[(year, fips_state, fips_county, naics)] = row
    return list(rows.values())


def read_zip(zip_path: Path, year: int) -> List[Dict[str, Any]]:
    with zipfile.ZipFile(zip_path) as archive:
        for member in archive.namelist():
            if member.lower().endswith((".csv", ".txt")):
                with archive.open(member) as raw:
                    text = io.TextIOWrapper(raw, encoding="latin-1", newline="")
                    return parse_rows(text, year)
    raise ValueError(f"cbp: no CSV found in {zip_path.name}")


class CBP(Dataset):
    """County and state business patterns from 2019 through last year."""

    name = "cbp"
    table = "cbp_data"
    phase = Phase.PHASE_1
    cadence = Cadence.ANNUAL

    def should_run(self, now: datetime, last_sync: Optional[datetime]) -> bool:
        return annual_after(now, last_sync, CBP_RELEASE_MONTH)

    async def sync(
        self,
        pool: sessionmaker,
        fetcher: HTTPFetcher,
        temp_dir: Path,
        *,
        full: bool = False,
        log,
    ) -> SyncResult:
        # Every run reloads all years, so ``full`` changes nothing here.
        end_year = datetime.now(timezone.utc).year - 1  # CBP lags by about a year
        semaphore = asyncio.Semaphore(FILE_CONCURRENCY)
        unpublished: List[str] = []

        async def load_file(year: int, level: str) -> int:
            yy = f"{year % 100:02d}"
            url = CBP_URL.format(year=year, yy=yy, level=level)
            zip_path = Path(temp_dir) / f"cbp{yy}{level}.zip"
            async with semaphore:
                log.info(f"Downloading CBP {level} data year={year}")
                try:
                    await fetcher.download_to_file(url, zip_path)
                except FetchError as exc:
                    if exc.not_found:
                        log.info(f"CBP {level} data for {year} not yet published, skipping")
                        unpublished.append(f"{year}{level}")
                        return 0
                    raise
                try:
                    rows = await asyncio.to_thread(read_zip, zip_path, year)
                    written = await asyncio.to_thread(self._write, pool, rows)
                finally:
                    zip_path.unlink(missing_ok=True)
            log.info(f"Processed CBP {level} year={year} rows={written}")
            return written

        tasks = [
            asyncio.ensure_future(load_file(year, level))
            for year in range(CBP_START_YEAR, end_year + 1)
            for level in ("co", "st")
        ]
        try:
            totals = await asyncio.gather(*tasks)
        except BaseException:
            # One failed file fails the sync; nothing may keep writing after it.
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        return SyncResult(
            rows_synced=sum(totals),
            metadata={
                "start_year": CBP_START_YEAR,
                "end_year": end_year,
                "unpublished": sorted(unpublished),
            },
        )

    @staticmethod
    def _write(pool: sessionmaker, rows: List[Dict[str, Any]]) -> int:
        with pool() as db:
            written = bulk_upsert(db, CBPRecord, rows, conflict_keys=CONFLICT_KEYS)
            db.commit()
        return written
