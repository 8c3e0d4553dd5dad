"""Centralized logging configuration for the filewarden agent"""

import os
import logging
import logging.handlers
from pathlib import Path

DETAILED_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
CONSOLE_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'

MAX_LOG_BYTES = 10 * 1024 * 1024  # 10MB

# Third-party loggers capped at WARNING
QUIET_LOGGERS = ('watchdog', 'aiosqlite', 'asyncio')


def default_log_dir() -> Path:
    return Path(os.getenv("LOG_DIR") or Path.home() / ".filewarden" / "logs")


def _rotating_handler(path: Path, level: int, backups: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=MAX_LOG_BYTES, backupCount=backups, encoding='utf-8'
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(DETAILED_FORMAT))
    return handler


def setup_logging(service_name: str = "filewarden") -> None:
    """
    Configure the root logger for the agent.

    Console output honours LOG_LEVEL. Everything goes to <service>.log and
    errors additionally to <service>_errors.log, both rotated under LOG_DIR.
    """
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    log_dir = default_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)

    console = logging.StreamHandler()
    console.setLevel(getattr(logging, log_level, logging.INFO))
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))

    main_log = log_dir / f"{service_name}.log"
    error_log = log_dir / f"{service_name}_errors.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)  # handlers do the filtering
    root.handlers.clear()
    for handler in (
        console,
        _rotating_handler(main_log, logging.DEBUG, backups=5),
        _rotating_handler(error_log, logging.ERROR, backups=3),
    ):
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging to {main_log} (console level {log_level})")
