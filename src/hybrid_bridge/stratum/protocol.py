"""Stratum JSON-RPC stream reframing, parsing and building."""

from __future__ import annotations

import json
import re
from typing import Any, Optional, Tuple, Union

from loguru import logger

from hybrid_bridge.stratum.messages import (
    JSONRPC_VERSION,
    MessageId,
    StratumMessage,
    StratumNotification,
    StratumRequest,
    StratumResponse,
)

_OPENERS = b"{["
_CLOSERS = b"}]"
_QUOTE = ord('"')
_BACKSLASH = ord("\\")
_NEWLINE = ord("\n")
_OPENER_RE = re.compile(rb"[{\[]")


class StratumProtocolError(Exception):
    """Error in stratum protocol handling."""

    pass


def has_valid_id(obj: dict) -> bool:
    """
    Check that a decoded message carries a usable JSON-RPC id.

    The key must be present; its value must be an int, a string or null.
    Booleans are rejected even though they are ints in Python.
    """
    if "id" not in obj:
        return False
    msg_id = obj["id"]
    if msg_id is None or isinstance(msg_id, str):
        return True
    return isinstance(msg_id, int) and not isinstance(msg_id, bool)


class StreamReframer:
    """
    Turns a raw byte stream into JSON objects.

    Pools are supposed to send newline-delimited JSON, but in practice
    several objects can arrive concatenated in one read with no separator,
    and one object can be split across reads. The reframer scans for
    balanced top-level braces (ignoring braces inside strings), emits every
    complete value in order and keeps an unterminated tail for the next
    read. Bytes outside any top-level value are discarded, and a value left
    open when the next line starts a new one is dropped.
    """

    ENCODING = "utf-8"
    MAX_BUFFER_SIZE = 1024 * 1024  # 1MB max carry-over buffer

    def __init__(self):
        """Initialize the reframer."""
        self._buffer = b""
        self.dropped = 0

    @property
    def buffered(self) -> int:
        """Number of bytes waiting for the rest of a value."""
        return len(self._buffer)

    def feed_data(self, data: Union[bytes, str]) -> list[dict]:
        """
        Feed raw data and extract every complete JSON object.

        Args:
            data: Bytes (or text) received from the socket.

        Returns:
            Decoded objects in arrival order. Top-level arrays contribute
            their object elements.

        Raises:
            StratumProtocolError: If the carry-over buffer would exceed its cap.
        """
        if isinstance(data, str):
            data = data.encode(self.ENCODING)

        if len(self._buffer) + len(data) > self.MAX_BUFFER_SIZE:
            self._buffer = b""
            raise StratumProtocolError(
                f"Buffer would exceed max size ({self.MAX_BUFFER_SIZE} bytes), dropping data"
            )

        buf = self._buffer + data
        objects: list[dict] = []
        pos = 0

        while pos < len(buf):
            match = _OPENER_RE.search(buf, pos)
            if match is None:
                pos = len(buf)
                break
            start = match.start()
            end, complete = self._scan_value(buf, start)
            if complete:
                self._decode_value(buf[start:end], objects)
            elif end >= 0:
                # A fresh line opened a new value before this one closed
                self.dropped += 1
                logger.debug(f"Dropping unterminated JSON ({end - start} bytes)")
            else:
                # Incomplete value, wait for more data
                pos = start
                break
            pos = end

        self._buffer = buf[pos:]
        return objects

    @staticmethod
    def _scan_value(buf: bytes, start: int) -> Tuple[int, bool]:
        """
        Scan the value opened at ``start``.

        Pools write one message per line, so a newline immediately followed
        by an opener starts a new message even if the current one never
        closed. JSON strings cannot hold a raw newline, so this also
        recovers from an unterminated string.

        Returns:
            ``(end, True)`` just past a balanced value, ``(restart, False)``
            when a new line opens a value first, or ``(-1, False)`` when more
            data is needed.
        """
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(buf)):
            c = buf[i]
            if c == _NEWLINE and i + 1 < len(buf) and buf[i + 1] in _OPENERS:
                return i + 1, False
            if in_string:
                if escaped:
                    escaped = False
                elif c == _BACKSLASH:
                    escaped = True
                elif c == _QUOTE:
                    in_string = False
            elif c == _QUOTE:
                in_string = True
            elif c in _OPENERS:
                depth += 1
            elif c in _CLOSERS:
                depth -= 1
                if depth == 0:
                    return i + 1, True
        return -1, False

    def _decode_value(self, chunk: bytes, out: list[dict]) -> None:
        """Decode one balanced value, appending the objects it holds."""
        try:
            value = json.loads(chunk.decode(self.ENCODING))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            self.dropped += 1
            logger.debug(f"Dropping malformed JSON ({len(chunk)} bytes): {e}")
            return

        if isinstance(value, dict):
            out.append(value)
        elif isinstance(value, list):
            for item in value:
                if isinstance(item, dict):
                    out.append(item)
                else:
                    self.dropped += 1

    def reset_buffer(self) -> None:
        """Clear the carry-over buffer."""
        self._buffer = b""


class StratumProtocol:
    """
    Parses decoded JSON objects into typed messages and encodes outbound ones.

    Outbound messages are compact JSON terminated by a newline.
    """

    ENCODING = "utf-8"
    DELIMITER = b"\n"
    MAX_RESULT_LIST_SIZE = 1000  # Max size for result arrays
    MAX_RESULT_STRING_SIZE = 65536  # Max size for result strings (64KB)

    def parse_object(self, obj: dict) -> StratumMessage:
        """
        Parse a decoded JSON object into a stratum message.

        Args:
            obj: Decoded JSON dictionary.

        Returns:
            Typed stratum message.

        Raises:
            StratumProtocolError: If the object is not a recognizable message.
        """
        if not isinstance(obj, dict):
            raise StratumProtocolError(f"Expected JSON object, got {type(obj).__name__}")

        msg_id = obj.get("id")
        method = obj.get("method")
        params = obj.get("params", [])
        result = self._limit_result_size(obj.get("result"))
        error = obj.get("error")
        jsonrpc = obj.get("jsonrpc")

        if not isinstance(params, list):
            params = [params] if params is not None else []

        # Response (has result or error, no method); ethproxy pools push work with id 0
        if method is None and ("result" in obj or error is not None):
            return StratumResponse(id=msg_id, result=result, error=error, jsonrpc=jsonrpc)

        if method is not None and msg_id is not None:
            return StratumRequest(id=msg_id, method=method, params=params, jsonrpc=jsonrpc)

        if method is not None:
            return StratumNotification(method=method, params=params)

        raise StratumProtocolError(f"Cannot determine message type: {obj}")

    def _limit_result_size(self, result: Any) -> Any:
        """
        Limit the size of result fields.

        Args:
            result: The result value from a response.

        Returns:
            Size-limited result value.
        """
        if isinstance(result, list):
            if len(result) > self.MAX_RESULT_LIST_SIZE:
                logger.warning(
                    f"Result list size {len(result)} exceeds limit "
                    f"{self.MAX_RESULT_LIST_SIZE}, truncating"
                )
                return result[:self.MAX_RESULT_LIST_SIZE]
        elif isinstance(result, str):
            if len(result) > self.MAX_RESULT_STRING_SIZE:
                logger.warning(
                    f"Result string size {len(result)} exceeds limit "
                    f"{self.MAX_RESULT_STRING_SIZE}, truncating"
                )
                return result[:self.MAX_RESULT_STRING_SIZE]
        return result

    def build_response(self, id: MessageId, result: Any, error: Optional[dict] = None) -> bytes:
        """
        Build a JSON-RPC 2.0 response.

        Args:
            id: Request ID being responded to.
            result: Result value.
            error: JSON-RPC error object or None.

        Returns:
            Encoded message bytes with newline delimiter.
        """
        msg = StratumResponse(id=id, result=result, error=error, jsonrpc=JSONRPC_VERSION)
        return self.encode(msg.to_dict())

    def encode(self, obj: dict) -> bytes:
        """
        Encode a dictionary to JSON bytes with newline.

        Args:
            obj: Dictionary to encode.

        Returns:
            JSON bytes with newline delimiter.

        Raises:
            StratumProtocolError: If encoding fails.
        """
        try:
            return json.dumps(obj, separators=(",", ":")).encode(self.ENCODING) + self.DELIMITER
        except (TypeError, ValueError) as e:
            raise StratumProtocolError(f"Failed to encode message: {e}") from e


def serialize(obj: dict) -> str:
    """Serialize a message dict to compact JSON text (no delimiter)."""
    return json.dumps(obj, separators=(",", ":"))


def deserialize(data: Union[str, bytes, dict]) -> Optional[dict]:
    """
    Deserialize one JSON object, returning None when it is not one.

    Dicts are returned unchanged.
    """
    if isinstance(data, dict):
        return data
    try:
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        obj = json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError, TypeError):
        return None
    return obj if isinstance(obj, dict) else None
