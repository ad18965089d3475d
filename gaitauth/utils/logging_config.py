import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from pythonjsonlogger import jsonlogger

LOG_FILE_PREFIX = "gaitauth_"
LOG_FORMATS = ("json", "text")

# Marks handlers installed here so a second call replaces only those.
_MANAGED_ATTR = "_gaitauth_managed"


def _build_formatter(log_format: str, service: str) -> logging.Formatter:
    if log_format == "json":
        return jsonlogger.JsonFormatter(
            "%(asctime)s %(name)s %(levelname)s %(threadName)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            static_fields={"service": service},
        )
    return logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - [%(threadName)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _purge_expired_logs(log_path: Path, retention_days: int) -> List[Path]:
    """Delete this service's daily log files older than ``retention_days``."""
    removed: List[Path] = []
    if retention_days <= 0:
        return removed
    cutoff = time.time() - retention_days * 86400
    for entry in log_path.glob(f"{LOG_FILE_PREFIX}*.log"):
        try:
            if entry.is_file() and entry.stat().st_mtime < cutoff:
                entry.unlink()
                removed.append(entry)
        except FileNotFoundError:
            continue
    return removed


def managed_handlers(logger: Optional[logging.Logger] = None) -> List[logging.Handler]:
    logger = logger or logging.getLogger()
    return [h for h in logger.handlers if getattr(h, _MANAGED_ATTR, False)]


def setup_logging(
    log_level: str = "INFO",
    log_path: Optional[Path] = Path("./logs"),
    log_format: str = "json",
    retention_days: int = 30,
    service: str = "gaitauth",
) -> Optional[Path]:
    """Install console and daily-file handlers on the root logger.

    Handlers added by an earlier call are replaced; handlers owned by
    someone else (test capture, an embedding host) are left alone. With
    ``log_path=None`` only the console handler is installed. Returns the
    log file path, if any.
    """
    if log_format not in LOG_FORMATS:
        raise ValueError(f"log_format must be one of {LOG_FORMATS}, got {log_format!r}")

    level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in managed_handlers(root_logger):
        root_logger.removeHandler(handler)
        handler.close()

    formatter = _build_formatter(log_format, service)
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    log_file: Optional[Path] = None
    if log_path is not None:
        log_path = Path(log_path)
        log_path.mkdir(parents=True, exist_ok=True)
        log_file = log_path / f"{LOG_FILE_PREFIX}{datetime.now().strftime('%Y%m%d')}.log"
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        setattr(handler, _MANAGED_ATTR, True)
        root_logger.addHandler(handler)

    logging.info(f"Logging initialized - Level: {log_level}, Format: {log_format}, File: {log_file}")
    if log_path is not None:
        removed = _purge_expired_logs(log_path, retention_days)
        if removed:
            logging.info(f"Removed {len(removed)} log file(s) older than {retention_days} days")
    return log_file
