import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

import colorlog

from giggityflix_catalog.config import AppConfig, config as default_config

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_NAME = "catalog.log"

LEVEL_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}

# Chatty libraries only report warnings and above
QUIET_LOGGERS = ("asyncio", "aiohttp", "aiosqlite")


def log_file_path(app_config: AppConfig) -> Path:
    """Location of the rotating log file, under the data directory unless absolute."""
    return app_config.resolve(app_config.logging.log_dir) / LOG_FILE_NAME


def _console_handler(use_color: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    if use_color:
        handler.setFormatter(colorlog.ColoredFormatter(
            "%(log_color)s" + LOG_FORMAT, datefmt=DATE_FORMAT, log_colors=LEVEL_COLORS
        ))
    else:
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def _file_handler(path: Path, max_size_mb: int, backup_count: int) -> logging.Handler:
    os.makedirs(path.parent, exist_ok=True)
    handler = RotatingFileHandler(
        path, maxBytes=max_size_mb * 1024 * 1024, backupCount=backup_count
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def setup_logging(app_config: Optional[AppConfig] = None) -> None:
    """Send catalog logs to stdout and to a rotating file in the data directory."""
    cfg = app_config or default_config
    settings = cfg.logging

    root_logger = logging.getLogger()
    root_logger.setLevel(settings.level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    root_logger.addHandler(_console_handler(settings.use_color))
    root_logger.addHandler(
        _file_handler(log_file_path(cfg), settings.max_size_mb, settings.backup_count)
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
