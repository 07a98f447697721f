import pytest

from hybrid_bridge.stratum.messages import (
    StratumNotification,
    StratumRequest,
    StratumResponse,
    build_get_work,
    build_subscribe,
)
from hybrid_bridge.stratum.protocol import (
    StratumProtocol,
    StratumProtocolError,
    StreamReframer,
    deserialize,
    has_valid_id,
)

WORK = {"id": 1, "jsonrpc": "2.0", "result": ["0xAA", "0xBB", "0xCC"]}
ACK = {"id": 2, "jsonrpc": "2.0", "result": True}


def test_single_object_yields_itself():
    reframer = StreamReframer()
    assert reframer.feed_data(b'{"id":1,"jsonrpc":"2.0","result":["0xAA","0xBB","0xCC"]}') == [WORK]
    assert reframer.buffered == 0


def test_concatenated_objects_yield_both_in_order():
    reframer = StreamReframer()
    data = b'{"id":1,"jsonrpc":"2.0","result":["0xAA","0xBB","0xCC"]}{"id":2,"jsonrpc":"2.0","result":true}'
    assert reframer.feed_data(data) == [WORK, ACK]


def test_newline_and_indentation_between_objects():
    reframer = StreamReframer()
    data = b'{"id":1,\n   "jsonrpc":"2.0","result":["0xAA","0xBB","0xCC"]}\n\n  {"id":2,"jsonrpc":"2.0","result":true}\n'
    assert reframer.feed_data(data) == [WORK, ACK]


def test_split_object_is_completed_by_next_read():
    reframer = StreamReframer()
    assert reframer.feed_data(b'{"id":1,"jsonrpc":"2.0","res') == []
    assert reframer.buffered > 0
    assert reframer.feed_data(b'ult":["0xAA","0xBB","0xCC"]}{"id":2,') == [WORK]
    assert reframer.feed_data(b'"jsonrpc":"2.0","result":true}') == [ACK]
    assert reframer.buffered == 0


def test_braces_inside_strings_do_not_split():
    reframer = StreamReframer()
    obj = {"id": 3, "result": "}{ \" [", "error": None}
    data = b'{"id":3,"result":"}{ \\" [","error":null}'
    assert reframer.feed_data(data) == [obj]


def test_garbage_is_discarded():
    reframer = StreamReframer()
    assert reframer.feed_data(b"not json") == []
    assert reframer.buffered == 0


def test_malformed_value_is_dropped_and_scanning_continues():
    reframer = StreamReframer()
    data = b'{"id":1,"result":[1,2,]}{"id":2,"jsonrpc":"2.0","result":true}'
    assert reframer.feed_data(data) == [ACK]
    assert reframer.dropped == 1


def test_unbalanced_opener_is_dropped_at_next_line():
    reframer = StreamReframer()
    assert reframer.feed_data(b"{garbled\n") == []
    assert reframer.feed_data(b'{"id":1,"jsonrpc":"2.0","result":["0xAA","0xBB","0xCC"]}\n') == [WORK]
    assert reframer.dropped == 1
    assert reframer.buffered == 0


def test_unterminated_string_does_not_swallow_later_lines():
    reframer = StreamReframer()
    assert reframer.feed_data(b'{"id":1,"result":"trunc\n') == []
    line = b'{"id":1,"jsonrpc":"2.0","result":["0xAA","0xBB","0xCC"]}\n'
    assert [reframer.feed_data(line) for _ in range(3)] == [[WORK], [WORK], [WORK]]
    assert reframer.dropped == 1


def test_resync_within_one_read():
    reframer = StreamReframer()
    data = b'[1,\n{"id":2,"jsonrpc":"2.0","result":true}\n'
    assert reframer.feed_data(data) == [ACK]
    assert reframer.dropped == 1


def test_top_level_array_yields_objects():
    reframer = StreamReframer()
    assert reframer.feed_data(b'[{"id":1,"jsonrpc":"2.0","result":["0xAA","0xBB","0xCC"]},{"id":2,"jsonrpc":"2.0","result":true}]') == [WORK, ACK]


def test_buffer_cap_raises_and_resets():
    reframer = StreamReframer()
    reframer.MAX_BUFFER_SIZE = 16
    reframer.feed_data(b'{"id":1,')
    with pytest.raises(StratumProtocolError):
        reframer.feed_data(b'"result":["0xAA"]}')
    assert reframer.buffered == 0


def test_multibyte_utf8_split_across_reads():
    reframer = StreamReframer()
    data = '{"id":1,"result":"héllo"}'.encode("utf-8")
    split = data.index(b"\xc3") + 1
    assert reframer.feed_data(data[:split]) == []
    assert reframer.feed_data(data[split:]) == [{"id": 1, "result": "héllo"}]


@pytest.mark.parametrize(
    "obj, expected",
    [
        ({"id": 1}, True),
        ({"id": 0}, True),
        ({"id": "abc"}, True),
        ({"id": None}, True),
        ({}, False),
        ({"id": True}, False),
        ({"id": [1]}, False),
        ({"id": {"a": 1}}, False),
        ({"id": 1.5}, False),
    ],
)
def test_has_valid_id(obj, expected):
    assert has_valid_id(obj) is expected


def test_parse_object_types():
    protocol = StratumProtocol()
    assert isinstance(protocol.parse_object(WORK), StratumResponse)
    assert protocol.parse_object(WORK).is_work
    assert not protocol.parse_object(ACK).is_work
    assert isinstance(protocol.parse_object({"id": 4, "method": "eth_getWork"}), StratumRequest)
    assert isinstance(protocol.parse_object({"id": None, "method": "mining.notify", "params": []}), StratumNotification)
    with pytest.raises(StratumProtocolError):
        protocol.parse_object({"id": 5})


def test_error_response_is_not_work():
    msg = StratumProtocol().parse_object({"id": 1, "result": None, "error": [21, "Job not found", None]})
    assert msg.is_error
    assert not msg.is_work


def test_encode_is_compact_and_newline_terminated():
    assert StratumProtocol().encode(build_get_work()) == b'{"id":1,"jsonrpc":"2.0","method":"eth_getWork","params":[]}\n'


def test_build_subscribe_ethproxy():
    payload = build_subscribe("ethproxy", login="0xwallet", worker="rig1", password="x")
    assert payload["method"] == "eth_submitLogin"
    assert payload["params"] == ["0xwallet", "x"]
    assert payload["worker"] == "rig1"
    # Template must not be mutated
    assert build_subscribe("ethproxy")["params"] == []


def test_build_subscribe_stratum():
    assert build_subscribe("stratum")["method"] == "mining.subscribe"


def test_deserialize():
    assert deserialize('{"id":1}') == {"id": 1}
    assert deserialize(b'{"id":1}') == {"id": 1}
    assert deserialize("[1,2]") is None
    assert deserialize("not json") is None
