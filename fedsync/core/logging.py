"""Loguru setup for sync runs.

Every line carries the component name; lines emitted while a dataset is being
synced also carry the dataset and its phase, so one grep follows a dataset
through skip, start, complete and fail.
"""

import logging
import sys
from pathlib import Path
from typing import Any, Dict

import httpx
from loguru import logger

from fedsync.core.config import settings

LOG_DIR = Path("logs")
LOG_FILE = LOG_DIR / "fedsync.log"

BASE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[name]}"
DATASET_TAG = " [{extra[dataset]} phase={extra[phase]}]"

# Chatty third-party loggers and the level they are capped at
QUIET_LOGGERS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
}

_configured = False


def format_record(record: Dict[str, Any]) -> str:
    extra = record["extra"]
    tag = DATASET_TAG if "dataset" in extra else ""
    return BASE_FORMAT + tag + " | {message}\n{exception}"


class InterceptHandler(logging.Handler):
    """Send stdlib records (uvicorn, alembic, sqlalchemy) through loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_name == "emit":
            frame = frame.f_back
            depth += 1

        logger.bind(name=record.name).opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def slack_text(record: Dict[str, Any]) -> str:
    extra = record["extra"]
    if "dataset" in extra:
        header = f"fedsync {record['level'].name}: dataset {extra['dataset']} (phase {extra['phase']})"
    else:
        header = f"fedsync {record['level'].name}: {extra.get('name', 'fedsync')}"
    return f"{header}\n{record['message']}"


def _slack_sink(message: Any) -> None:
    try:
        httpx.post(settings.SLACK_WEBHOOK_URL, json={"text": slack_text(message.record)}, timeout=5.0)
    except httpx.HTTPError as exc:
        # Logging here would feed the failure back into this sink
        sys.stderr.write(f"slack notification failed: {exc}\n")


def configure_logging() -> None:
    global _configured
    if _configured:
        return
    _configured = True

    level = settings.effective_log_level
    LOG_DIR.mkdir(exist_ok=True)

    logger.remove()
    logger.configure(extra={"name": "fedsync"})
    logger.add(sys.stdout, level=level, format=format_record, backtrace=False, diagnose=False)
    logger.add(
        LOG_FILE,
        level=level,
        format=format_record,
        rotation="10 MB",
        retention="14 days",
        enqueue=True,
        backtrace=False,
        diagnose=False,
    )
    if settings.SLACK_WEBHOOK_URL:
        logger.add(_slack_sink, level="ERROR", enqueue=True)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).handlers = [InterceptHandler()]
        logging.getLogger(name).propagate = False
    for name, cap in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(cap)


def get_logger(name: str):
    return logger.bind(name=name)


def bind_dataset(log, dataset: str, phase: str):
    """Tag ``log`` with the dataset being synced."""
    return log.bind(dataset=dataset, phase=phase)


configure_logging()
