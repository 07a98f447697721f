"""Lifecycle hooks invoked by the bridge client."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from loguru import logger

if TYPE_CHECKING:
    from hybrid_bridge.bridge.connection import PoolConnection
    from hybrid_bridge.bridge.work import WorkRecord


class ClientHandler:
    """
    Default set of lifecycle hooks; every hook just logs.

    Subclass and pass an instance to ``BridgeClient`` to react to pool
    events. Hooks run on the event loop inside the connection's read loop,
    so they must not block. Exceptions raised by a hook are logged by the
    client and do not close the connection.
    """

    def on_connect(self, connection: PoolConnection) -> None:
        logger.info(f"[{connection.name}] Connected to {connection.server.address}")

    def on_close(self, connection: PoolConnection) -> None:
        logger.info(f"[{connection.name}] Connection closed")

    def on_error(self, connection: PoolConnection, error: BaseException) -> None:
        logger.warning(f"[{connection.name}] Error: {error}")

    def on_authorize(self, connection: PoolConnection) -> None:
        logger.info(f"[{connection.name}] Worker authorized")

    def on_new_difficulty(self, connection: PoolConnection, difficulty: Any) -> None:
        logger.info(f"[{connection.name}] New difficulty {difficulty}")

    def on_subscribe(self, connection: PoolConnection, payload: dict) -> None:
        logger.debug(f"[{connection.name}] Subscribed with {payload.get('method')}")

    def on_new_mining_work(self, connection: PoolConnection, work: WorkRecord) -> None:
        logger.debug(f"[{connection.name}] New work {work.header_hash}")


def call_hook(handler: ClientHandler, hook: str, *args: Any) -> None:
    """Invoke a handler hook, logging anything it raises."""
    try:
        getattr(handler, hook)(*args)
    except Exception as e:
        logger.exception(f"Handler hook {hook} failed: {e}")
