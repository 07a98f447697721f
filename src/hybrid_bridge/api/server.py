"""Local query API server answering eth_getWork with the lambda seed."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Dict, Optional, Set

from loguru import logger

from hybrid_bridge.bridge.constants import SOCKET_READ_BUFFER_SIZE
from hybrid_bridge.stratum.messages import StratumErrors, StratumMethods, StratumRequest
from hybrid_bridge.stratum.protocol import StratumProtocol, StratumProtocolError, StreamReframer

if TYPE_CHECKING:
    from hybrid_bridge.bridge.work import WorkStateStore
    from hybrid_bridge.config.models import ApiServerConfig
    from hybrid_bridge.derivation import LambdaDerivation


class QueryApiServer:
    """
    Read-only JSON-RPC API over newline-delimited TCP.

    Methods:
    - eth_getWork: ``{"lambda", "puzzle", "workId"}`` for the current work
    - eth_getWorkId: id of the current work message
    - eth_getDifficulty: current share target

    Requests that are not JSON objects with a method are ignored.
    """

    def __init__(self, work: WorkStateStore, derivation: LambdaDerivation, config: ApiServerConfig):
        """
        Initialize the API server.

        Args:
            work: Current-work store shared with the bridge client.
            derivation: Lambda derivation used to build responses.
            config: Bind address configuration.
        """
        self.work = work
        self.derivation = derivation
        self.config = config
        self._protocol = StratumProtocol()
        self._server: Optional[asyncio.Server] = None
        self._clients: Set[asyncio.StreamWriter] = set()

    @property
    def port(self) -> Optional[int]:
        """Bound port (useful when configured with port 0)."""
        if not self._server or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    async def start(self) -> None:
        """Start listening."""
        self._server = await asyncio.start_server(
            self._handle_connection,
            self.config.host,
            self.config.port,
        )
        logger.info(f"Query API server started on {self.config.host} at port {self.port}")

    async def stop(self) -> None:
        """Stop listening and close client connections."""
        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
        for writer in list(self._clients):
            writer.close()
        self._clients.clear()
        logger.info("Query API server stopped")

    async def _handle_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        peer = writer.get_extra_info("peername")
        reframer = StreamReframer()
        self._clients.add(writer)
        logger.debug(f"API client connected: {peer}")
        try:
            while True:
                data = await reader.read(SOCKET_READ_BUFFER_SIZE)
                if not data:
                    break
                try:
                    objects = reframer.feed_data(data)
                except StratumProtocolError as e:
                    logger.warning(f"API client {peer}: {e}")
                    continue
                for obj in objects:
                    response = self._dispatch(obj)
                    if response is not None:
                        writer.write(response)
                await writer.drain()
        except OSError as e:
            logger.debug(f"API client {peer} error: {e}")
        finally:
            self._clients.discard(writer)
            writer.close()
            logger.debug(f"API client disconnected: {peer}")

    def _dispatch(self, obj: dict) -> Optional[bytes]:
        """Answer one request, or return None if it is not a request."""
        try:
            msg = self._protocol.parse_object(obj)
        except StratumProtocolError:
            return None
        if not isinstance(msg, StratumRequest):
            return None

        handlers = {
            StratumMethods.ETH_GET_WORK: self._get_work,
            StratumMethods.ETH_GET_WORK_ID: self.work.get_current_work_id,
            StratumMethods.ETH_GET_DIFFICULTY: self.work.get_current_difficulty,
        }
        handler = handlers.get(msg.method) if isinstance(msg.method, str) else None
        if handler is None:
            return self._protocol.build_response(
                msg.id, None, StratumErrors.as_dict(StratumErrors.METHOD_NOT_FOUND)
            )

        if self.work.current is None:
            return self._protocol.build_response(msg.id, None, StratumErrors.as_dict(StratumErrors.NO_WORK))
        return self._protocol.build_response(msg.id, handler())

    def _get_work(self) -> Dict[str, object]:
        work = self.work.current
        return {
            "lambda": self.derivation.compute_lambda(work),
            "puzzle": self.derivation.build_puzzle(work),
            "workId": work.work_id,
        }
