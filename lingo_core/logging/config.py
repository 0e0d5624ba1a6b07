# =============================================================================
# lingo_core/logging/config.py
# Logging Configuration for LingoQuest
# =============================================================================

import logging
import os
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union


LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_DIR = Path("logs")
LOG_LEVEL_ENV_VAR = "LINGOQUEST_LOG_LEVEL"

# HTTP and file-watcher chatter drowns out queue replay messages
NOISY_LOGGERS = ("urllib3", "requests", "charset_normalizer", "watchdog")


def _resolve_level(level: Union[int, str, None]) -> int:
    """Accept a level number or name; fall back to $LINGOQUEST_LOG_LEVEL, then INFO."""
    if level is None:
        level = os.getenv(LOG_LEVEL_ENV_VAR, "INFO")
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(
    level: Union[int, str, None] = None,
    log_to_file: bool = True,
    log_filename: Optional[str] = None,
    log_dir: Optional[Path] = None,
) -> Path:
    """
    Configure logging for the offline core and the Streamlit app.

    Args:
        level: Level number or name (default: $LINGOQUEST_LOG_LEVEL or INFO)
        log_to_file: Also write a daily log file
        log_filename: File name (default: lingoquest_YYYY-MM-DD.log)
        log_dir: Directory for the log file (default: ./logs)

    Returns:
        Path of the log file (written only when log_to_file is set)
    """
    directory = Path(log_dir) if log_dir is not None else LOG_DIR
    log_path = directory / (log_filename or f"lingoquest_{datetime.now():%Y-%m-%d}.log")

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_to_file:
        directory.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    # force=True so Streamlit reruns do not stack handlers
    logging.basicConfig(
        level=_resolve_level(level),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("lingo_core").info(
        f"Logging initialized ({logging.getLevelName(logging.getLogger().level)})"
    )
    return log_path


def get_logger(name: str) -> logging.Logger:
    """
    Usage:
        from lingo_core.logging import get_logger
        logger = get_logger(__name__)
        logger.info("Replaying offline queue")
    """
    return logging.getLogger(name)


class LogContext:
    """
    Logs the start, end and duration of an operation.

    Usage:
        with LogContext(logger, "Replaying 3 queued requests") as op:
            client.process_queue()
        op.elapsed   # seconds
    """

    def __init__(self, logger: logging.Logger, operation: str, level: int = logging.INFO):
        self.logger = logger
        self.operation = operation
        self.level = level
        self.elapsed: Optional[float] = None
        self._started: Optional[float] = None

    def __enter__(self):
        self._started = time.perf_counter()
        self.logger.log(self.level, f"{self.operation}... started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed = time.perf_counter() - self._started

        if exc_type is not None:
            self.logger.error(
                f"{self.operation}... failed after {self.elapsed:.2f}s: {exc_val}",
                exc_info=(exc_type, exc_val, exc_tb),
            )
        else:
            self.logger.log(self.level, f"{self.operation}... completed in {self.elapsed:.2f}s")

        # Exceptions propagate
        return False
