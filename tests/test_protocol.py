"""Test the wire models and framing helpers."""
from pydantic import ValidationError
import pytest

from remote_calculator.common.errors import ProtocolError
from remote_calculator.common.protocol import (
    LineReader,
    MAX_DATAGRAM_SIZE,
    OperationRequest,
    OperationResult,
    decode_request,
    decode_result,
    encode_datagram,
    encode_line,
)
from remote_calculator.common.validator import MAX_EXPRESSION_LENGTH


class ChunkedSocket:
    """Fake stream socket returning pre-cut chunks, then end of stream."""

    def __init__(self, chunks: list[bytes]):
        self.chunks = list(chunks)

    def recv(self, bufsize: int) -> bytes:
        if not self.chunks:
            return b""
        return self.chunks.pop(0)[:bufsize]


def test_operation_request_valid() -> None:
    """Test that a valid OperationRequest can be created."""
    req = OperationRequest(request_id=1, expression="2 + 2 * 3")
    assert req.expression == "2 + 2 * 3"
    assert req.request_id == 1


def test_operation_request_invalid_type() -> None:
    """Test that non-string expressions raise a validation error."""
    with pytest.raises(ValidationError):
        # int instead of str
        OperationRequest(request_id=1, expression=123)


def test_operation_request_negative_id() -> None:
    with pytest.raises(ValidationError):
        OperationRequest(request_id=-1, expression="1")


def test_operation_result_invalid_response_type() -> None:
    """Test that invalid response type raises a validation error."""
    with pytest.raises(ValidationError):
        OperationResult(request_id=1, response=8)


def test_datagram_decoding() -> None:
    """Datagrams are JSON documents; NUL padding is tolerated."""
    payload = encode_datagram(OperationRequest(request_id=7, expression="1 + 1"))
    assert decode_request(payload + b"\x00") == OperationRequest(request_id=7, expression="1 + 1")

    reply = encode_datagram(OperationResult(request_id=7, response="2"))
    assert decode_result(reply).response == "2"


@pytest.mark.parametrize("payload", [b"1 + 1", b"{}", b'{"request_id": "x", "expression": "1"}', b"\xff"])
def test_decode_request_rejects_garbage(payload) -> None:
    with pytest.raises(ProtocolError):
        decode_request(payload)


def test_decode_result_rejects_request() -> None:
    """A request is not a valid reply."""
    with pytest.raises(ProtocolError):
        decode_result(encode_datagram(OperationRequest(request_id=1, expression="1")))


def test_encode_line() -> None:
    assert encode_line("2 + 3") == b"2 + 3\n"
    with pytest.raises(ProtocolError):
        encode_line("1\n2")


def test_line_reader_reassembles_chunks() -> None:
    """Lines split across chunks, and several lines in one chunk, are both handled."""
    reader = LineReader(ChunkedSocket([b"2 +", b" 3\n4 * 5\n", b"7\r\n"]))
    assert reader.read_line() == "2 + 3"
    assert reader.read_line() == "4 * 5"
    assert reader.read_line() == "7"
    assert reader.read_line() is None


def test_line_reader_accepts_nul_terminator() -> None:
    reader = LineReader(ChunkedSocket([b"1 + 1\x002 * 2\x00"]))
    assert reader.read_line() == "1 + 1"
    assert reader.read_line() == "2 * 2"
    assert reader.read_line() is None


def test_line_reader_returns_unterminated_tail() -> None:
    reader = LineReader(ChunkedSocket([b"9 - 1"]))
    assert reader.read_line() == "9 - 1"
    assert reader.read_line() is None


def test_line_reader_empty_line() -> None:
    reader = LineReader(ChunkedSocket([b"\n"]))
    assert reader.read_line() == ""


def test_line_reader_limits_line_length() -> None:
    reader = LineReader(ChunkedSocket([b"1" * 100] * 3), max_line_length=150)
    with pytest.raises(ProtocolError):
        reader.read_line()


def test_longest_request_fits_client_buffer() -> None:
    """A maximum-length request, even when every character needs escaping, fits 1024 bytes."""
    request = OperationRequest(request_id=2 ** 63, expression="\t" * MAX_EXPRESSION_LENGTH)
    assert len(encode_datagram(request)) <= 1024
    assert MAX_DATAGRAM_SIZE >= 1024


def test_reply_does_not_echo_expression() -> None:
    """Replies carry the request id and the response only, so their size does not grow with the request."""
    reply = encode_datagram(OperationResult(request_id=2 ** 63, response="-1.2345678901234567e+300"))
    assert b"expression" not in reply
    assert len(reply) < 100
