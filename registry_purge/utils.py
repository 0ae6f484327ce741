import json
import logging
from datetime import datetime, timezone
from enum import StrEnum
from logging import LogRecord
from pathlib import Path

from registry_purge.config import LOG_FORMAT
from registry_purge.models import RunStatistics


class Colors(StrEnum):
    RED = "\033[31m"
    CRED = "\033[91m"
    YELLOW = "\033[33m"
    RESET = "\033[0m"


class ColoredFormatter(logging.Formatter):
    def __init__(self, fmt: str | None = None, *args, **kwargs) -> None:
        self.format_ = fmt
        self.FORMATS = {
            logging.WARNING: f"{Colors.YELLOW}{self.format_}{Colors.RESET}",
            logging.ERROR: f"{Colors.RED}{self.format_}{Colors.RESET}",
            logging.CRITICAL: f"{Colors.CRED}{self.format_}{Colors.RESET}",
        }
        super().__init__(fmt, *args, **kwargs)

    def format(self, record: LogRecord) -> str:
        log_fmt = self.FORMATS.get(record.levelno, self.format_)
        formatter = logging.Formatter(log_fmt)
        return formatter.format(record)


def init_logger(level: int = logging.INFO, http_logs: bool = False, path: Path | None = None) -> None:
    logging.getLogger("httpx").disabled = not http_logs
    logging.getLogger("httpcore").disabled = not http_logs

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(ColoredFormatter(LOG_FORMAT))
    handlers: list[logging.Handler] = [stream_handler]
    if path:
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)


def true_utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def log_summary(stats: RunStatistics) -> None:
    prefix = "[DRY RUN] " if stats.dry_run else ""
    logging.info(
        f"{prefix}Purge summary: {stats.deleted_tags} tags deleted, "
        f"{stats.skipped_tags} tags skipped, {stats.preserved_tags} tags preserved, "
        f"{stats.error_tags} errors"
    )
    logging.info(f"{prefix}Purge summary: {stats.error_images} images errors")
    if stats.errors:
        logging.warning(f"Run finished with {len(stats.errors)} errors")


def write_report(stats: RunStatistics, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(stats.model_dump(), f, indent=4, default=str)
