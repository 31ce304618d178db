"""
MCP-safe file-based logging for IntelliCode.

MCP servers talk to the client over stdio, so nothing here writes to
stdout/stderr. Log records go to a rotating file instead:
- Rotates at 5MB, keeps 3 backups
- Timestamped, levelled lines
- Log directory from configure_logging() or INTELLICODE_LOG_DIR
"""

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

DEFAULT_LOG_DIR = Path.home() / ".intellicode" / "logs"
LOG_FILE_NAME = "mcp_server.log"

# Module-level logger
_logger: Optional[logging.Logger] = None
_log_dir: Optional[Path] = None
_level = logging.DEBUG


def _resolve_log_dir() -> Path:
    if _log_dir is not None:
        return _log_dir
    env_dir = os.environ.get("INTELLICODE_LOG_DIR")
    return Path(env_dir) if env_dir else DEFAULT_LOG_DIR


def configure_logging(log_dir: Optional[str] = None, level: str = "DEBUG") -> logging.Logger:
    """
    (Re)build the file logger.

    Called once at startup with values from the loaded config; anything
    logged before that goes to the default location.
    """
    global _logger, _log_dir, _level
    _log_dir = Path(log_dir) if log_dir else None
    _level = getattr(logging, level.upper(), logging.DEBUG)
    _logger = None
    return get_logger()


def get_logger() -> logging.Logger:
    """
    Get the MCP-safe file logger.

    Lazy-initializes on first call.
    """
    global _logger

    if _logger is not None:
        return _logger

    log_dir = _resolve_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger("intellicode_mcp")
    logger.setLevel(_level)
    logger.propagate = False

    # Remove any existing handlers (prevents duplicates on reconfigure)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)

    file_handler = RotatingFileHandler(
        log_dir / LOG_FILE_NAME,
        maxBytes=5 * 1024 * 1024,  # 5MB
        backupCount=3,
        encoding="utf-8"
    )
    file_handler.setLevel(_level)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    ))

    logger.addHandler(file_handler)
    _logger = logger
    return logger


def log_info(msg: str):
    """Log info message to file."""
    get_logger().info(msg)


def log_warn(msg: str):
    """Log warning message to file."""
    get_logger().warning(msg)


def log_error(msg: str, details: Any = None):
    """Log error message to file, with optional structured details."""
    if details is not None:
        msg = f"{msg} | {details}"
    get_logger().error(msg)


def log_debug(msg: str):
    """Log debug message to file."""
    get_logger().debug(msg)
