import asyncio
import json

from hybrid_bridge.api.server import QueryApiServer
from hybrid_bridge.bridge.work import WorkStateStore
from hybrid_bridge.config.models import ApiServerConfig
from hybrid_bridge.derivation import LambdaDerivation


async def query(server, *requests):
    reader, writer = await asyncio.open_connection("127.0.0.1", server.port)
    try:
        responses = []
        for request in requests:
            writer.write(json.dumps(request).encode() + b"\n")
            await writer.drain()
            responses.append(json.loads(await asyncio.wait_for(reader.readline(), 5)))
        return responses
    finally:
        writer.close()


def with_server(work, coro):
    async def run():
        server = QueryApiServer(work, LambdaDerivation(), ApiServerConfig(port=0))
        await server.start()
        try:
            return await coro(server)
        finally:
            await server.stop()

    return asyncio.run(run())


def test_no_work_yet():
    (response,) = with_server(
        WorkStateStore(),
        lambda server: query(server, {"id": 1, "method": "eth_getWork", "params": []}),
    )
    assert response["id"] == 1
    assert response["result"] is None
    assert response["error"]["code"] == -32000


def test_get_work_returns_lambda_and_puzzle():
    work = WorkStateStore()
    work.set_current_work({"id": 5, "jsonrpc": "2.0", "result": ["0xAA", "0xBB", "0xCC"]})
    derivation = LambdaDerivation()

    get_work, work_id, difficulty = with_server(
        work,
        lambda server: query(
            server,
            {"id": 1, "method": "eth_getWork", "params": []},
            {"id": 2, "method": "eth_getWorkId", "params": []},
            {"id": 3, "method": "eth_getDifficulty", "params": []},
        ),
    )
    assert get_work["result"]["lambda"] == derivation.compute_lambda(work.current)
    assert get_work["result"]["workId"] == 5
    assert get_work["result"]["puzzle"]["shareTarget"] == "0xCC"
    assert work_id["result"] == 5
    assert difficulty["result"] == "0xCC"


def test_unknown_method():
    (response,) = with_server(
        WorkStateStore(),
        lambda server: query(server, {"id": 9, "method": "eth_submitHashrate", "params": []}),
    )
    assert response["error"]["code"] == -32601


def test_non_string_method_keeps_session_open():
    work = WorkStateStore()
    work.set_current_work({"id": 5, "result": ["0xAA", "0xBB", "0xCC"]})
    bad, good = with_server(
        work,
        lambda server: query(
            server,
            {"id": 1, "method": [1]},
            {"id": 2, "method": "eth_getWorkId", "params": []},
        ),
    )
    assert bad["error"]["code"] == -32601
    assert good["result"] == 5
