"""Foreground runner: PID file, signal handling and the main loop."""

from __future__ import annotations

import asyncio
import os
import signal
import sys
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from loguru import logger

if TYPE_CHECKING:
    from hybrid_bridge.config.models import Config


class DaemonError(Exception):
    """Runner management error."""

    pass


class PidFile:
    """PID file management."""

    def __init__(self, path: str):
        self.path = Path(path)

    def write(self, pid: Optional[int] = None) -> None:
        """
        Write the process ID atomically (temp file + rename).

        Args:
            pid: Process ID to write (defaults to current process).
        """
        pid = pid or os.getpid()
        self.path.parent.mkdir(parents=True, exist_ok=True)

        fd, temp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".pid_", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                f.write(str(pid))
            os.replace(temp_path, self.path)
        except OSError as e:
            Path(temp_path).unlink(missing_ok=True)
            raise DaemonError(f"Cannot write PID file {self.path}: {e}") from e
        logger.debug(f"Wrote PID {pid} to {self.path}")

    def read(self) -> Optional[int]:
        """Read the PID, or None if the file is missing or unreadable."""
        try:
            return int(self.path.read_text().strip())
        except (ValueError, OSError):
            return None

    def remove(self) -> None:
        """Remove the PID file."""
        if self.path.exists():
            self.path.unlink()
            logger.debug(f"Removed PID file {self.path}")

    def is_running(self) -> bool:
        """Check if the process in the PID file is alive (Unix only)."""
        pid = self.read()
        if pid is None or sys.platform == "win32":
            return False
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            # Process exists but belongs to another user
            return True
        return True


class DaemonManager:
    """
    Runs the bridge client and query API in the foreground.

    Handles:
    - Optional PID file
    - SIGINT/SIGTERM for graceful shutdown
    - Starting and stopping the client, API server and stats logger
    """

    def __init__(self, config: Config, pid_file_path: Optional[str] = None):
        """
        Initialize the runner.

        Args:
            config: Application configuration.
            pid_file_path: Optional PID file path.
        """
        self.config = config
        self._pid_file = PidFile(pid_file_path) if pid_file_path else None
        self._stop_event: Optional[asyncio.Event] = None

    def run_foreground(self) -> None:
        """Run until a shutdown signal arrives (blocking)."""
        if self._pid_file:
            if self._pid_file.is_running():
                raise DaemonError(f"Bridge already running with PID {self._pid_file.read()}")
            self._pid_file.write()

        try:
            asyncio.run(self._run_main_loop())
        finally:
            if self._pid_file:
                self._pid_file.remove()

    def _setup_signals(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        if sys.platform != "win32":
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, self._stop_event.set)
            return

        # Windows has no add_signal_handler; hop back onto the loop from the sync handler
        def sync_signal_handler(signum: int, frame: Any) -> None:
            loop.call_soon_threadsafe(self._stop_event.set)

        signal.signal(signal.SIGINT, sync_signal_handler)
        signal.signal(signal.SIGTERM, sync_signal_handler)

    async def _run_main_loop(self) -> None:
        """Main application loop."""
        from hybrid_bridge.api.server import QueryApiServer
        from hybrid_bridge.bridge.client import BridgeClient
        from hybrid_bridge.bridge.stats import run_stats_logger
        from hybrid_bridge.bridge.utils import spawn
        from hybrid_bridge.logging.setup import setup_logging

        self._stop_event = asyncio.Event()
        self._setup_signals()
        setup_logging(self.config.logging)

        logger.info("Starting hybrid bridge")
        logger.info(
            "Configured peers: "
            + ", ".join(f"{s.id}={s.address}" for s in self.config.active_servers)
        )

        client = BridgeClient(self.config)
        api_server = None
        if self.config.api_server.enabled:
            api_server = QueryApiServer(client.work, client.derivation, self.config.api_server)
            await api_server.start()

        await client.start()
        stats_task = spawn(
            run_stats_logger(client.stats, self._stop_event, self.config.client.stats_interval),
            name="Stats logger",
        )

        try:
            await self._stop_event.wait()
            logger.info("Received shutdown signal")
        finally:
            self._stop_event.set()
            await client.shutdown()
            if api_server:
                await api_server.stop()
            await stats_task
            client.stats.log_stats()

        logger.info("Bridge shutdown complete")
