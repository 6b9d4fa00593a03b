"""Transport sessions: one TCP conversation, or the UDP request handler."""
from enum import Enum
import socket
from typing import Optional

from remote_calculator.common.errors import EmptyExpressionError, ProtocolError
from remote_calculator.common.logger import logger
from remote_calculator.common.protocol import (
    LineReader,
    OperationResult,
    decode_request,
    encode_datagram,
    encode_line,
)
from remote_calculator.server.worker import compute_response


class ConversationState(str, Enum):
    ACCEPTED = "accepted"
    SERVING = "serving"
    CLOSED = "closed"


class TcpConversation:
    """
    One served TCP connection, from accept to close.

    The loop reads one line, answers it and waits for the next one.
    It ends when the peer closes the stream or sends an empty line
    (no response is sent then), or when a response cannot be delivered.
    Evaluation errors are answered and do not end the conversation.
    """

    def __init__(self, conn: socket.socket, peer: str = "-", buffer_size: int = 1024, max_line_length: int = 4096):
        self.conn = conn
        self.peer = peer
        self.reader = LineReader(conn, chunk_size=buffer_size, max_line_length=max_line_length)
        self.state = ConversationState.ACCEPTED
        self.answered = 0

    def serve(self) -> int:
        """
        Serve the conversation until it closes, then release the connection.

        :return: Number of responses sent
        :rtype: int
        """
        logger.info(f"🔌✅ New client connected: {self.peer}")
        self.state = ConversationState.SERVING
        try:
            while self.state is ConversationState.SERVING:
                self._serve_one()
        finally:
            self.state = ConversationState.CLOSED
            self.conn.close()
            logger.info(f"🔌 Conversation with {self.peer} closed after {self.answered} response(s)")
        return self.answered

    def _serve_one(self) -> None:
        try:
            expression: Optional[str] = self.reader.read_line()
        except ProtocolError as exc:
            logger.error(f"🔌❌ Protocol error from {self.peer}: {exc}")
            self.state = ConversationState.CLOSED
            return
        except OSError as exc:
            logger.error(f"🔌❌ Receive from {self.peer} failed: {exc}")
            self.state = ConversationState.CLOSED
            return

        if not expression:
            logger.info(f"🔌 Client {self.peer} disconnected or sent empty input")
            self.state = ConversationState.CLOSED
            return

        response = compute_response(expression, peer=self.peer)
        try:
            self.conn.sendall(encode_line(response))
        except OSError as exc:
            logger.error(f"🔌❌ Client {self.peer} disconnected before receiving the result: {exc}")
            self.state = ConversationState.CLOSED
            return
        self.answered += 1


class DatagramHandler:
    """
    Answer UDP requests, one datagram at a time.

    Every datagram is an independent request. The handler keeps no state,
    so a retransmitted request simply gets the same answer again.
    """

    def handle(self, payload: bytes, peer: str = "-") -> Optional[bytes]:
        """
        Compute the reply to one request datagram.

        :param bytes payload: Raw datagram
        :param str peer: Sender address, for logging only

        :return: Reply datagram, or None if the datagram is not a request
        :rtype: Optional[bytes]
        """
        try:
            request = decode_request(payload)
        except ProtocolError as exc:
            logger.warning(f"📨❌ Dropping datagram from {peer}: {exc}")
            return None

        if not request.expression.strip():
            logger.warning(f"📨 Empty input from {peer} (request {request.request_id})")
            response = EmptyExpressionError.message
        else:
            response = compute_response(request.expression, peer=peer)

        result = OperationResult(
            request_id=request.request_id,
            response=response,
        )
        return encode_datagram(result)
