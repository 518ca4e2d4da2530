"""Logging configuration for neovim-mcp."""

import sys
from pathlib import Path

from loguru import logger


def configure_logging(
    *,
    verbose: bool = False,
    level: str = "INFO",
    log_file: Path | None = None,
    disabled: bool = False,
) -> None:
    """Configure loguru sinks.

    Logs go to stderr (stdout carries the MCP stdio stream) and, optionally,
    to ``log_file``.
    """
    logger.remove()
    if disabled:
        return

    level = "DEBUG" if verbose else level
    logger.add(sys.stderr, level=level, format="{level.icon} {message}")
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            level=level,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{line} - {message}",
        )
