"""Local stand-in for an ethproxy pool server used by the tests."""

from __future__ import annotations

import asyncio
import json
import time

from hybrid_bridge.config.models import Config

WORK_PAYLOAD = b'{"id":1,"jsonrpc":"2.0","result":["0xAA","0xBB","0xCC"]}\n'


class FakePool:
    """Accepts bridge connections, records every line and can push data back."""

    def __init__(self):
        self.lines: list[dict] = []
        self.connections = 0
        self.port = None
        self._server = None
        self._writers: list[asyncio.StreamWriter] = []

    async def start(self) -> "FakePool":
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]
        return self

    async def _handle(self, reader, writer):
        self.connections += 1
        self._writers.append(writer)
        try:
            while True:
                line = await reader.readline()
                if not line:
                    break
                self.lines.append(json.loads(line))
        except ConnectionError:
            pass
        finally:
            writer.close()

    def of(self, method: str) -> list[dict]:
        return [line for line in self.lines if line.get("method") == method]

    async def push(self, data: bytes) -> None:
        for writer in self._writers:
            if not writer.is_closing():
                writer.write(data)
                await writer.drain()

    async def drop_clients(self) -> None:
        for writer in self._writers:
            writer.close()
        self._writers = []

    async def stop(self) -> None:
        await self.drop_clients()
        self._server.close()
        await self._server.wait_closed()


async def wait_until(predicate, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


def make_config(*ports: int, **client) -> Config:
    client_config = {
        "poll_interval": 60,
        "auto_reconnect_on_error": False,
        "tcp_keepalive": False,
    }
    client_config.update(client)
    return Config.model_validate(
        {
            "servers": [
                {"id": index, "host": "127.0.0.1", "port": port, "timeout": 2}
                for index, port in enumerate(ports)
            ],
            "client": client_config,
            "api_server": {"enabled": False},
        }
    )
