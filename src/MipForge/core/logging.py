"""Logging setup for hosts that embed the texture core.

The library itself only emits records on the ``mipforge`` logger tree and
installs a ``NullHandler``.  :func:`setup_logging` is the entry point a host
application (or :meth:`TexturePipeline.configure_logging`) calls to route
those records somewhere.
"""

import logging
import logging.handlers
import os
import threading
from typing import Optional, Union

logger = logging.getLogger("mipforge")

# 10 MB max per log file, keep 3 rotated backups
_LOG_MAX_BYTES = 10 * 1024 * 1024
_LOG_BACKUP_COUNT = 3
_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s [T%(thread)d]: %(message)s"
_setup_lock = threading.Lock()


def _resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int) and not isinstance(level, bool):
        return level
    numeric_level = getattr(logging, str(level).upper(), None)
    if not isinstance(numeric_level, int):
        logger.warning("Invalid log level '%s', defaulting to INFO", level)
        return logging.INFO
    return numeric_level


def setup_logging(level: Union[int, str] = "INFO", log_file: Optional[str] = None,
                  force: bool = False) -> int:
    """Route ``mipforge`` records to stderr and, optionally, a rotating file.

    When the host already configured the root logger, only the ``mipforge``
    hierarchy is touched unless ``force`` is set.  Returns the level applied.
    """
    with _setup_lock:
        return _setup_logging_impl(level, log_file, force)


def _setup_logging_impl(level, log_file, force) -> int:
    numeric_level = _resolve_level(level)
    root = logging.getLogger()
    if force or not root.handlers:
        handlers = [logging.StreamHandler()]
        if log_file:
            handlers.append(_file_handler(log_file))
        logging.basicConfig(
            level=numeric_level, format=_LOG_FORMAT, handlers=handlers, force=force,
        )
        return numeric_level

    # Embedded mode: leave the host's root handlers alone.
    lib_logger = logging.getLogger("mipforge")
    lib_logger.setLevel(numeric_level)
    if log_file:
        target = os.path.abspath(log_file)
        existing = {
            getattr(h, "baseFilename", None)
            for h in lib_logger.handlers
            if isinstance(h, logging.FileHandler)
        }
        if target not in existing:
            handler = _file_handler(log_file)
            handler.setFormatter(logging.Formatter(_LOG_FORMAT))
            lib_logger.addHandler(handler)
            logger.info("Adding file handler: %s", handler.baseFilename)
    return numeric_level


def _file_handler(log_file: str) -> logging.Handler:
    os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
    return logging.handlers.RotatingFileHandler(
        log_file, maxBytes=_LOG_MAX_BYTES, backupCount=_LOG_BACKUP_COUNT, encoding="utf-8",
    )
