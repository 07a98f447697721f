"""Loguru sinks for the bridge: console, optional log file and stats file."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from hybrid_bridge.config.models import LoggingConfig

# Records bound with this extra key are periodic statistics summaries
STATS_KEY = "stats"

STATS_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {message}"


def stats_logger():
    """Logger whose records are routed to the stats sink."""
    return logger.bind(**{STATS_KEY: True})


def _is_stats(record: dict) -> bool:
    return bool(record["extra"].get(STATS_KEY))


def setup_logging(config: LoggingConfig) -> None:
    """
    Replace loguru's default sink with the configured ones.

    Safe to call more than once; the CLI configures logging before the
    runner does it again inside the event loop. Statistics summaries also go
    to ``stats_file`` when set, at INFO regardless of ``level``, so they are
    kept even when the console only shows warnings.

    Args:
        config: Logging configuration object.
    """
    logger.remove()

    logger.add(
        sys.stderr,
        level=config.level,
        format=config.format,
        colorize=True,
    )

    if config.file:
        logger.add(
            config.file,
            level=config.level,
            format=config.format,
            rotation=config.rotation,
            retention=config.retention,
            compression="zip",
            encoding="utf-8",
        )

    if config.stats_file:
        logger.add(
            config.stats_file,
            level="INFO",
            format=STATS_FORMAT,
            filter=_is_stats,
            rotation=config.rotation,
            retention=config.retention,
            encoding="utf-8",
        )

    logger.debug(
        f"Logging configured: level={config.level}, file={config.file}, stats_file={config.stats_file}"
    )
