"""Wire framing for both transports.

TCP carries newline-delimited UTF-8 lines, one request or response per line.
A NUL byte is accepted as a terminator too, for peers that send C strings.
UDP carries one JSON document per datagram, tagged with a request id so the
client can match a reply to the request that elicited it.
"""
import socket
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from remote_calculator.common.errors import ProtocolError


ENCODING: str = "utf-8"
LINE_END: bytes = b"\n"
# A NUL byte also ends a message on the stream transport
TERMINATORS: bytes = b"\n\x00"
# Characters stripped from the end of every received message (NUL-terminated peers)
TRAILING_JUNK: str = "\r\n\x00"
# Largest UDP payload; the server never truncates a request
MAX_DATAGRAM_SIZE: int = 65535


class OperationRequest(BaseModel):
    """Represents a single arithmetic operation request sent to the server."""

    model_config = ConfigDict(frozen=True)

    request_id: int = Field(..., ge=0, description="Client-side request counter")
    expression: str = Field(..., description="Arithmetic expression as a string")


class OperationResult(BaseModel):
    """Represents the server's answer to an OperationRequest."""

    model_config = ConfigDict(frozen=True)

    request_id: int = Field(..., ge=0, description="Request id echoed from the request")
    response: str = Field(..., description="Formatted result or error message")


def clean(text: str) -> str:
    """Strip line terminators and NUL padding from a received message."""
    return text.rstrip(TRAILING_JUNK)


def encode_line(text: str) -> bytes:
    """
    Frame a message for a stream transport.

    :param str text: Message without line terminator

    :return: Encoded line
    :rtype: bytes
    :raises ProtocolError: If the message itself contains a newline
    """
    if "\n" in text:
        raise ProtocolError(f"message spans several lines: {text!r}")
    return text.encode(ENCODING) + LINE_END


def encode_datagram(message: BaseModel) -> bytes:
    return message.model_dump_json().encode(ENCODING)


def decode_request(payload: bytes) -> OperationRequest:
    """
    Decode a request datagram.

    :param bytes payload: Raw datagram

    :return: Decoded request
    :rtype: OperationRequest
    :raises ProtocolError: If the datagram is not a valid request
    """
    try:
        return OperationRequest.model_validate_json(payload.rstrip(b"\x00"))
    except ValueError as exc:  # ValidationError is a ValueError
        raise ProtocolError(f"invalid request datagram: {payload[:64]!r}") from exc


def decode_result(payload: bytes) -> OperationResult:
    """
    Decode a reply datagram.

    :param bytes payload: Raw datagram

    :return: Decoded result
    :rtype: OperationResult
    :raises ProtocolError: If the datagram is not a valid reply
    """
    try:
        return OperationResult.model_validate_json(payload.rstrip(b"\x00"))
    except ValueError as exc:
        raise ProtocolError(f"invalid reply datagram: {payload[:64]!r}") from exc


class LineReader:
    """
    Read newline-delimited messages from a stream socket.

    Data arrives in chunks that do not line up with messages, so a
    partial line is kept in ``buffer`` until its terminator arrives.
    """

    def __init__(self, conn: socket.socket, chunk_size: int = 1024, max_line_length: int = 4096) -> None:
        self.conn = conn
        self.chunk_size = chunk_size
        self.max_line_length = max_line_length
        self.buffer = bytearray()

    def read_line(self) -> Optional[str]:
        """
        Return the next message, or None once the peer has closed the stream.

        A final unterminated message before the close is still returned.

        :return: Decoded message without terminator, or None at end of stream
        :rtype: Optional[str]
        :raises ProtocolError: If a line exceeds ``max_line_length`` or is not valid UTF-8
        """
        while True:
            n = self._find_terminator()
            if n != -1:
                line = bytes(self.buffer[:n])
                del self.buffer[: n + 1]
                return self._decode(line)

            if len(self.buffer) > self.max_line_length:
                raise ProtocolError(f"line exceeds {self.max_line_length} bytes")

            chunk: bytes = self.conn.recv(self.chunk_size)
            if not chunk:
                if self.buffer:
                    line = bytes(self.buffer)
                    self.buffer.clear()
                    return self._decode(line)
                return None
            self.buffer += chunk

    def _find_terminator(self) -> int:
        positions = [p for p in (self.buffer.find(t) for t in TERMINATORS) if p != -1]
        return min(positions, default=-1)

    @staticmethod
    def _decode(line: bytes) -> str:
        try:
            return clean(line.decode(ENCODING))
        except UnicodeDecodeError as exc:
            raise ProtocolError("message is not valid UTF-8") from exc
