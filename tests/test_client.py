import asyncio

from fake_pool import WORK_PAYLOAD, FakePool, make_config, wait_until

from hybrid_bridge.bridge.client import BridgeClient
from hybrid_bridge.bridge.connection import ConnectionState
from hybrid_bridge.bridge.handlers import ClientHandler


class RecordingHandler(ClientHandler):
    def __init__(self):
        self.events = []

    def on_connect(self, connection):
        self.events.append(("connect", connection.peer_id))

    def on_close(self, connection):
        self.events.append(("close", connection.peer_id))

    def on_authorize(self, connection):
        self.events.append(("authorize", connection.peer_id))

    def on_new_difficulty(self, connection, difficulty):
        self.events.append(("difficulty", difficulty))

    def on_new_mining_work(self, connection, work):
        raise RuntimeError("hook failures must not reach the read loop")


async def started(*pools, handler=None, **options):
    config = make_config(*(pool.port for pool in pools), **options)
    client = BridgeClient(config, handler=handler)
    await client.start()
    await wait_until(lambda: all(conn.is_open for conn in client.connections.values()))
    await wait_until(lambda: all(pool.of("eth_submitLogin") for pool in pools))
    return client


def test_work_is_broadcast_to_every_pool():
    async def run():
        pool_a = await FakePool().start()
        pool_b = await FakePool().start()
        client = await started(pool_a, pool_b)
        try:
            await pool_a.push(WORK_PAYLOAD)
            await wait_until(lambda: pool_a.of("eth_submitWork") and pool_b.of("eth_submitWork"))

            assert client.get_current_work_id() == 1
            assert client.get_current_difficulty() == "0xCC"
            assert client.work.get_current_work_peer_id() == 0

            (sub_a,) = pool_a.of("eth_submitWork")
            (sub_b,) = pool_b.of("eth_submitWork")
            for sub in (sub_a, sub_b):
                assert sub["params"] == ["0xAA", "0xBB", "0xCC"]
                assert len(sub["virtualBlocks"]) == 4
                assert sub["txs"] == [sub["virtualBlocks"]]
            assert sub_a["miner"] == client.identities[0]
            assert sub_b["miner"] == client.identities[1]
            assert sub_a["miner"] != sub_b["miner"]
            assert len(client.queue) == 0
        finally:
            await client.shutdown()
            await pool_a.stop()
            await pool_b.stop()

    asyncio.run(run())


def test_subscribe_payload():
    async def run():
        pool = await FakePool().start()
        client = await started(pool)
        try:
            (login,) = pool.of("eth_submitLogin")
            assert login["id"] == 1
            assert login["jsonrpc"] == "2.0"
            assert login["worker"] == "hybrid"
        finally:
            await client.shutdown()
            await pool.stop()

    asyncio.run(run())


def test_malformed_data_does_not_change_state():
    async def run():
        pool = await FakePool().start()
        client = await started(pool)
        try:
            await pool.push(b"not json\n")
            await asyncio.sleep(0.05)
            assert client.get_current_work() is None
            assert client.connections[0].is_open

            await pool.push(WORK_PAYLOAD)
            await wait_until(lambda: client.get_current_work_id() == 1)
        finally:
            await client.shutdown()
            await pool.stop()

    asyncio.run(run())


def test_message_without_id_is_dropped():
    async def run():
        pool = await FakePool().start()
        client = await started(pool)
        try:
            await pool.push(b'{"jsonrpc":"2.0","result":["0x01","0x02","0x03"]}\n')
            await wait_until(lambda: client.stats.dropped_messages == 1)
            assert client.get_current_work() is None
            assert pool.of("eth_submitWork") == []
        finally:
            await client.shutdown()
            await pool.stop()

    asyncio.run(run())


def test_handler_hooks():
    async def run():
        pool = await FakePool().start()
        handler = RecordingHandler()
        client = await started(pool, handler=handler)
        try:
            await pool.push(b'{"id":1,"jsonrpc":"2.0","result":true}\n')
            await pool.push(WORK_PAYLOAD)
            await wait_until(lambda: pool.of("eth_submitWork"))
            assert ("connect", 0) in handler.events
            assert ("authorize", 0) in handler.events
            assert ("difficulty", "0xCC") in handler.events

            await pool.drop_clients()
            await wait_until(lambda: ("close", 0) in handler.events)
            assert client.connections[0].state == ConnectionState.CLOSED
            assert not client.connections[0].is_open
        finally:
            await client.shutdown()
            await pool.stop()

    asyncio.run(run())


def test_polls_for_work():
    async def run():
        pool = await FakePool().start()
        client = await started(pool, poll_interval=0.05)
        try:
            await wait_until(lambda: len(pool.of("eth_getWork")) >= 2)
            assert pool.of("eth_getWork")[0]["params"] == []
        finally:
            await client.shutdown()
            await pool.stop()

    asyncio.run(run())


def test_reconnect_keeps_identity():
    async def run():
        pool = await FakePool().start()
        client = await started(
            pool,
            auto_reconnect_on_error=True,
            reconnect_initial_delay=0.05,
            reconnect_max_delay=0.1,
        )
        try:
            identity = client.identities[0]
            await pool.drop_clients()
            await wait_until(lambda: pool.connections == 2)
            await wait_until(lambda: len(pool.of("eth_submitLogin")) == 2)
            await wait_until(lambda: client.connections[0].is_open)
            assert client.stats.peer(0).reconnections == 1

            await pool.push(WORK_PAYLOAD)
            await wait_until(lambda: pool.of("eth_submitWork"))
            assert pool.of("eth_submitWork")[0]["miner"] == identity
        finally:
            await client.shutdown()
            await pool.stop()

    asyncio.run(run())


def test_disabled_servers_are_not_connected():
    config = make_config(1, 2)
    config = config.model_copy(
        update={"servers": [config.servers[0], config.servers[1].model_copy(update={"id": -1})]}
    )
    client = BridgeClient(config)
    assert list(client.identities) == [0]
    assert client.identities[0].startswith("0x")
    assert len(client.identities[0]) == 66


def test_unbalanced_input_does_not_block_later_work():
    async def run():
        pool = await FakePool().start()
        client = await started(pool)
        try:
            await pool.push(b"{\n")
            for _ in range(5):
                await pool.push(WORK_PAYLOAD)
            await wait_until(lambda: len(pool.of("eth_submitWork")) == 5)
            assert client.get_current_work_id() == 1
            assert client.stats.dropped_messages == 1
        finally:
            await client.shutdown()
            await pool.stop()

    asyncio.run(run())


def test_stalled_peer_does_not_hold_up_other_pools():
    async def run():
        pool_a = await FakePool().start()
        pool_b = await FakePool().start()
        client = await started(pool_a, pool_b, send_timeout=30)
        stalled = asyncio.Event()

        async def never_drains():
            await stalled.wait()

        client.connections[1]._writer.drain = never_drains
        try:
            loop = asyncio.get_running_loop()
            began = loop.time()
            for _ in range(3):
                await pool_a.push(WORK_PAYLOAD)
            await wait_until(lambda: len(pool_a.of("eth_submitWork")) == 3, timeout=2.0)
            assert loop.time() - began < 2.0
            await wait_until(lambda: len(pool_b.of("eth_submitWork")) == 3, timeout=2.0)
            assert client.connections[1].is_open
        finally:
            await client.shutdown()
            await pool_a.stop()
            await pool_b.stop()

    asyncio.run(run())
