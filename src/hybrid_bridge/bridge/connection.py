"""Connection to a single upstream pool server."""

from __future__ import annotations

import asyncio
import errno
from enum import Enum, auto
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from loguru import logger

from hybrid_bridge.bridge.constants import (
    DEFAULT_POLL_INTERVAL,
    DEFAULT_SEND_TIMEOUT,
    POOL_DISCONNECT_TIMEOUT,
    SOCKET_READ_BUFFER_SIZE,
)
from hybrid_bridge.bridge.handlers import ClientHandler, call_hook
from hybrid_bridge.bridge.keepalive import enable_tcp_keepalive
from hybrid_bridge.bridge.utils import spawn
from hybrid_bridge.stratum.messages import build_get_work, build_subscribe
from hybrid_bridge.stratum.protocol import StratumProtocol, StratumProtocolError, StreamReframer

if TYPE_CHECKING:
    from hybrid_bridge.bridge.stats import BridgeStats
    from hybrid_bridge.config.models import ClientConfig, StratumServerConfig

MessageCallback = Callable[["PoolConnection", dict], Awaitable[None]]


class PoolConnectionError(Exception):
    """Error connecting to a pool server."""

    pass


class ConnectionState(Enum):
    """Lifecycle of a pool connection."""

    IDLE = auto()
    CONNECTING = auto()
    SUBSCRIBED = auto()
    ACTIVE = auto()
    CLOSED = auto()


class PoolConnection:
    """
    Manages the connection to one pool server.

    Handles:
    - Opening the socket and sending the subscribe handshake
    - Polling eth_getWork on a fixed interval
    - Reframing inbound bytes and routing each message to the client
    - Writing outbound submissions
    - Reconnecting with exponential backoff when enabled

    The identity token is assigned by the client and stays the same across
    reconnects.
    """

    def __init__(
        self,
        server: StratumServerConfig,
        identity: str,
        on_message: MessageCallback,
        handler: Optional[ClientHandler] = None,
        client_config: Optional[ClientConfig] = None,
        stats: Optional[BridgeStats] = None,
    ):
        """
        Initialize the pool connection.

        Args:
            server: Pool server configuration.
            identity: Token stamped on submissions sent through this connection.
            on_message: Coroutine called with every decoded inbound object.
            handler: Lifecycle hooks.
            client_config: Client configuration (poll, reconnect, keepalive settings).
            stats: Optional counters.
        """
        self.server = server
        self.identity = identity
        self.name = f"peer:{server.id}"
        self.client_config = client_config
        self.state = ConnectionState.IDLE

        self._on_message = on_message
        self._handler = handler or ClientHandler()
        self._stats = stats

        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._reframer = StreamReframer()
        self._protocol = StratumProtocol()

        self._poll_task: Optional[asyncio.Task] = None
        self._drain_task: Optional[asyncio.Task] = None
        self._run_task: Optional[asyncio.Task] = None
        self._stopping = False
        self._connect_count = 0

    @property
    def peer_id(self) -> int:
        """Id of the configured peer."""
        return self.server.id

    @property
    def is_open(self) -> bool:
        """Check if the connection is subscribed and writable."""
        return (
            self.state in (ConnectionState.SUBSCRIBED, ConnectionState.ACTIVE)
            and self._writer is not None
            and not self._writer.is_closing()
        )

    @property
    def poll_interval(self) -> float:
        return self.client_config.poll_interval if self.client_config else DEFAULT_POLL_INTERVAL

    @property
    def send_timeout(self) -> float:
        return self.client_config.send_timeout if self.client_config else DEFAULT_SEND_TIMEOUT

    def start(self) -> asyncio.Task:
        """Start connecting in the background and return the task."""
        self._stopping = False
        self._run_task = spawn(self.run(), name=f"{self.name} connection")
        return self._run_task

    async def run(self) -> None:
        """
        Connect and serve until stopped.

        With ``auto_reconnect_on_error`` enabled, a failed connect or a
        closed connection is retried after a delay that doubles on every
        attempt up to ``reconnect_max_delay``. Otherwise the connection stays
        closed after the first failure.
        """
        config = self.client_config
        reconnect = config.auto_reconnect_on_error if config else False
        initial_delay = config.reconnect_initial_delay if config else 1.0
        max_delay = config.reconnect_max_delay if config else 60.0
        delay = initial_delay

        while not self._stopping:
            if await self.connect():
                delay = initial_delay
                await self._read_loop()

            if self._stopping or not reconnect:
                break

            logger.info(f"[{self.name}] Reconnecting in {delay:.1f}s")
            await asyncio.sleep(delay)
            delay = min(delay * 2, max_delay)

    async def connect(self) -> bool:
        """
        Open the socket, send the subscribe payload and start polling.

        Returns:
            True if the connection is subscribed.
        """
        self.state = ConnectionState.CONNECTING
        self._reframer.reset_buffer()
        logger.info(f"[{self.name}] Connecting to {self.server.address}")

        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self.server.host, self.server.port),
                timeout=self.server.timeout,
            )
        except asyncio.TimeoutError:
            self.state = ConnectionState.CLOSED
            logger.warning(f"[{self.name}] Connection to {self.server.address} timed out")
            call_hook(self._handler, "on_error", self, PoolConnectionError("Connection timed out"))
            return False
        except OSError as e:
            self.state = ConnectionState.CLOSED
            error_msg = str(e)
            if e.errno == errno.ECONNREFUSED:
                error_msg = "connection refused (is the pool server running?)"
            elif e.errno in (errno.EHOSTUNREACH, errno.ENETUNREACH):
                error_msg = "host unreachable (check network connectivity)"
            logger.warning(f"[{self.name}] Connection to {self.server.address} failed: {error_msg}")
            call_hook(self._handler, "on_error", self, e)
            return False

        if self.client_config:
            enable_tcp_keepalive(self._writer, self.client_config, self.name)

        self._connect_count += 1
        if self._stats:
            self._stats.record_connect(self.peer_id, reconnect=self._connect_count > 1)
        call_hook(self._handler, "on_connect", self)

        payload = build_subscribe(
            self.server.protocol,
            login=self.server.login,
            worker=self.server.worker,
            password=self.server.password,
        )
        if not await self.send(self._protocol.encode(payload)):
            await self._close()
            return False

        self.state = ConnectionState.SUBSCRIBED
        call_hook(self._handler, "on_subscribe", self, payload)
        self._poll_task = spawn(self._poll_loop(), name=f"{self.name} poll")
        return True

    async def _poll_loop(self) -> None:
        """Request fresh work every poll interval."""
        request = self._protocol.encode(build_get_work())
        while True:
            await asyncio.sleep(self.poll_interval)
            if not self.is_open:
                return
            await self.send(request)

    async def _read_loop(self) -> None:
        """Read until the pool closes the socket or an error occurs."""
        self.state = ConnectionState.ACTIVE
        try:
            while True:
                data = await self._reader.read(SOCKET_READ_BUFFER_SIZE)
                if not data:
                    if not self._stopping:
                        logger.warning(f"[{self.name}] Connection closed by pool")
                    return

                dropped = self._reframer.dropped
                try:
                    objects = self._reframer.feed_data(data)
                except StratumProtocolError as e:
                    logger.warning(f"[{self.name}] {e}")
                    continue
                finally:
                    if self._stats and self._reframer.dropped > dropped:
                        self._stats.record_dropped(self._reframer.dropped - dropped)

                # Messages from one pool are handled strictly in arrival order
                for obj in objects:
                    await self._on_message(self, obj)
        except OSError as e:
            if not self._stopping:
                logger.error(f"[{self.name}] Read error: {e}")
                call_hook(self._handler, "on_error", self, e)
        finally:
            await self._close()

    def write(self, data: bytes) -> bool:
        """
        Queue raw bytes on the transport without waiting for them to drain.

        Draining happens in a background task, so a slow pool never holds up
        the caller. A pool that stops reading for longer than the send
        timeout is disconnected.

        Args:
            data: Encoded message including the newline delimiter.

        Returns:
            True if the transport accepted the write.
        """
        writer = self._writer
        if writer is None or writer.is_closing():
            logger.debug(f"[{self.name}] Not connected, dropping {len(data)} bytes")
            return False

        try:
            writer.write(data)
        except (OSError, RuntimeError) as e:
            logger.error(f"[{self.name}] Send error: {e}")
            call_hook(self._handler, "on_error", self, e)
            return False

        logger.trace(f"[{self.name}] Sent: {data.decode(errors='replace').strip()}")
        # One pending drain covers everything buffered so far
        if self._drain_task is None or self._drain_task.done():
            self._drain_task = spawn(self._drain(writer), name=f"{self.name} drain")
        return True

    async def _drain(self, writer: asyncio.StreamWriter) -> bool:
        try:
            await asyncio.wait_for(writer.drain(), timeout=self.send_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"[{self.name}] Send timeout, closing connection")
            writer.close()
            return False
        except (OSError, RuntimeError) as e:
            logger.error(f"[{self.name}] Send error: {e}")
            call_hook(self._handler, "on_error", self, e)
            return False
        return True

    async def send(self, data: bytes) -> bool:
        """
        Write raw bytes to the pool and wait for the buffer to drain.

        Args:
            data: Encoded message including the newline delimiter.

        Returns:
            True if the data was written and drained.
        """
        if not self.write(data):
            return False
        return await asyncio.shield(self._drain_task)

    async def _close(self) -> None:
        """Release the socket and poll task; fire on_close once per connection."""
        if self._poll_task and not self._poll_task.done():
            self._poll_task.cancel()
        self._poll_task = None
        if self._drain_task and not self._drain_task.done():
            self._drain_task.cancel()
        self._drain_task = None

        writer = self._writer
        self._reader = None
        self._writer = None
        was_connected = writer is not None

        if writer is not None:
            try:
                writer.close()
                await asyncio.wait_for(writer.wait_closed(), timeout=POOL_DISCONNECT_TIMEOUT)
            except asyncio.TimeoutError:
                logger.debug(f"[{self.name}] Timeout waiting for socket to close")
            except OSError as e:
                logger.debug(f"[{self.name}] Error closing socket: {e}")

        self.state = ConnectionState.CLOSED
        if was_connected:
            if self._stats:
                self._stats.record_disconnect(self.peer_id)
            call_hook(self._handler, "on_close", self)

    async def stop(self) -> None:
        """Close the connection and stop reconnecting."""
        self._stopping = True
        task = self._run_task
        self._run_task = None
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._close()
