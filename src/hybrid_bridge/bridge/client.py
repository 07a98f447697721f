"""Bridge client: owns the pool connections and the shared work state."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from loguru import logger

from hybrid_bridge.bridge.aggregator import PendingQueue, VirtualBlockAggregator
from hybrid_bridge.bridge.broadcaster import SubmissionBroadcaster
from hybrid_bridge.bridge.connection import PoolConnection
from hybrid_bridge.bridge.handlers import ClientHandler, call_hook
from hybrid_bridge.bridge.stats import BridgeStats
from hybrid_bridge.bridge.utils import generate_identity
from hybrid_bridge.bridge.work import WorkStateStore
from hybrid_bridge.derivation import LambdaDerivation
from hybrid_bridge.stratum.messages import StratumResponse
from hybrid_bridge.stratum.protocol import StratumProtocol, StratumProtocolError, has_valid_id

if TYPE_CHECKING:
    from hybrid_bridge.config.models import Config


class BridgeClient:
    """
    Connects to every configured pool and turns their work into broadcasts.

    Handles:
    - One ``PoolConnection`` per server with id >= 0
    - A per-peer identity token, generated once and kept across reconnects
    - Classifying inbound messages and updating the current work
    - Deriving virtual blocks and broadcasting them to all pools

    All state lives on one event loop. Handlers run to completion between
    awaits, so the work store and pending queue need no locks.
    """

    def __init__(
        self,
        config: Config,
        handler: Optional[ClientHandler] = None,
        derivation: Optional[LambdaDerivation] = None,
    ):
        """
        Initialize the client.

        Args:
            config: Application configuration.
            handler: Lifecycle hooks (default: logging only).
            derivation: Lambda derivation (default: built from config).
        """
        self.config = config
        self.handler = handler or ClientHandler()
        self.derivation = derivation or LambdaDerivation(config.derivation.virtual_block_count)
        self.stats = BridgeStats()

        self.work = WorkStateStore()
        self.queue = PendingQueue()
        self._connections: Dict[int, PoolConnection] = {}
        self.broadcaster = SubmissionBroadcaster(self.queue, self._connections, self.stats)
        self.aggregator = VirtualBlockAggregator(self.queue, self.broadcaster)
        self._protocol = StratumProtocol()

        self.identities: Dict[int, str] = {
            server.id: generate_identity() for server in config.active_servers
        }

    @property
    def connections(self) -> Dict[int, PoolConnection]:
        """Tracked connections keyed by peer id (a copy)."""
        return dict(self._connections)

    async def start(self) -> None:
        """Open a connection to every active server."""
        servers = self.config.active_servers
        if not servers:
            logger.warning("No servers with id >= 0 configured, nothing to connect to")
            return

        for server in servers:
            if server.id in self._connections:
                continue
            conn = PoolConnection(
                server,
                self.identities[server.id],
                self.handle_message,
                handler=self.handler,
                client_config=self.config.client,
                stats=self.stats,
            )
            self._connections[server.id] = conn
            conn.start()

        logger.info(f"Bridge client started with {len(self._connections)} peers")

    async def shutdown(self) -> None:
        """Close every connection and stop reconnecting."""
        connections = list(self._connections.values())
        self._connections.clear()
        for conn in connections:
            await conn.stop()
        logger.info("Bridge client stopped")

    async def handle_message(self, connection: PoolConnection, obj: dict) -> None:
        """
        Route one decoded inbound object.

        Nothing raised here escapes to the connection's read loop.
        """
        try:
            await self._handle_message(connection, obj)
        except Exception as e:
            logger.exception(f"[{connection.name}] Error handling message: {e}")

    async def _handle_message(self, connection: PoolConnection, obj: dict) -> None:
        if not has_valid_id(obj):
            self.stats.record_dropped()
            logger.debug(f"[{connection.name}] Dropping message without a valid id: {obj}")
            return

        try:
            msg = self._protocol.parse_object(obj)
        except StratumProtocolError as e:
            self.stats.record_dropped()
            logger.debug(f"[{connection.name}] {e}")
            return

        if not isinstance(msg, StratumResponse):
            logger.debug(f"[{connection.name}] Ignoring {msg.method} from pool")
            return

        if msg.is_error:
            logger.warning(f"[{connection.name}] Pool returned error for id={msg.id}: {msg.error}")
            return

        if msg.result is True:
            call_hook(self.handler, "on_authorize", connection)
            return

        if not msg.is_work:
            if isinstance(msg.result, (list, dict)):
                logger.debug(f"[{connection.name}] Ignoring non-work result: {msg.result}")
            return

        await self._handle_work(connection, obj, msg)

    async def _handle_work(self, connection: PoolConnection, obj: dict, msg: StratumResponse) -> None:
        """Store the work, derive virtual blocks and broadcast them."""
        previous_target = self.work.get_current_difficulty()
        record = self.work.set_current_work(obj, peer_id=connection.peer_id)
        self.stats.record_work(connection.peer_id)

        if record.share_target != previous_target:
            call_hook(self.handler, "on_new_difficulty", connection, record.share_target)
        call_hook(self.handler, "on_new_mining_work", connection, record)

        blocks = self.derivation.derive_virtual_blocks(record.raw)
        await self.aggregator.submit_virtual_blocks(blocks, msg.result)

    def get_current_work(self) -> Optional[str]:
        return self.work.get_current_work()

    def get_current_work_id(self) -> Any:
        return self.work.get_current_work_id()

    def get_current_difficulty(self) -> Optional[str]:
        return self.work.get_current_difficulty()
