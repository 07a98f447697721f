import json

from hybrid_bridge.bridge.work import WorkStateStore


def test_empty_store_returns_none():
    store = WorkStateStore()
    assert store.current is None
    assert store.get_current_work() is None
    assert store.get_current_work_id() is None
    assert store.get_current_difficulty() is None
    assert store.get_current_work_peer_id() is None


def test_set_dict_is_serialized():
    store = WorkStateStore()
    msg = {"id": 1, "jsonrpc": "2.0", "result": ["0xAA", "0xBB", "0xCC"]}
    store.set_current_work(msg, peer_id=0)
    assert json.loads(store.get_current_work()) == msg
    assert store.get_current_work_id() == 1
    assert store.get_current_difficulty() == "0xCC"
    assert store.get_current_work_peer_id() == 0
    assert store.current.params == ["0xAA", "0xBB", "0xCC"]


def test_set_serialized_string_is_kept_verbatim():
    store = WorkStateStore()
    raw = '{"id": 7, "result": ["0x01", "0x02", "0x03"]}'
    store.set_current_work(raw)
    assert store.get_current_work() == raw
    assert store.get_current_work_id() == 7
    assert store.get_current_difficulty() == "0x03"


def test_overwrite_never_merges():
    store = WorkStateStore()
    store.set_current_work({"id": 1, "result": ["0xA1", "0xB1", "0xC1"], "extra": "a"}, peer_id=0)
    store.set_current_work({"id": 2, "result": ["0xA2", "0xB2", "0xC2"]}, peer_id=1)
    assert store.get_current_work_id() == 2
    assert store.get_current_difficulty() == "0xC2"
    assert store.get_current_work_peer_id() == 1
    assert "extra" not in json.loads(store.get_current_work())


def test_short_result_leaves_missing_fields_empty():
    store = WorkStateStore()
    record = store.set_current_work({"id": 3, "result": ["0xAA"]})
    assert record.header_hash == "0xAA"
    assert record.share_target is None
