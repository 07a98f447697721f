"""Shared utility functions for the bridge module."""

from __future__ import annotations

import asyncio
import secrets
from typing import Any, Coroutine

from loguru import logger

from hybrid_bridge.bridge.constants import IDENTITY_TOKEN_BYTES, MAX_BACKGROUND_ERROR_LENGTH


def spawn(coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
    """
    Create a named task that logs its exception instead of dropping it.

    Args:
        coro: Coroutine to run as a task.
        name: Task name used in log lines.

    Returns:
        The created task.
    """
    task = asyncio.create_task(coro, name=name)

    def _handle_exception(t: asyncio.Task) -> None:
        if t.cancelled():
            return
        exc = t.exception()
        if exc:
            exc_str = str(exc)
            if len(exc_str) > MAX_BACKGROUND_ERROR_LENGTH:
                exc_str = exc_str[:MAX_BACKGROUND_ERROR_LENGTH] + "... (truncated)"
            logger.error(f"{name} failed: {type(exc).__name__}: {exc_str}")

    task.add_done_callback(_handle_exception)
    return task


def generate_identity() -> str:
    """Random 0x-prefixed hex token identifying this client to a pool."""
    return "0x" + secrets.token_hex(IDENTITY_TOKEN_BYTES)
