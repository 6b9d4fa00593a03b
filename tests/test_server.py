"""Test the server sessions and class ArithmeticServer."""
import errno
import json
import socket
import threading

import pytest

from remote_calculator.client.client import ArithmeticClient
from remote_calculator.client.driver import DatagramRequestDriver
from remote_calculator.common.config import DeliveryConfig, Transport
from remote_calculator.common.errors import ServerSetupError
from remote_calculator.common.protocol import OperationRequest, decode_result, encode_datagram
from remote_calculator.common.validator import MAX_EXPRESSION_LENGTH
from remote_calculator.server import server as server_module
from remote_calculator.server.server import ArithmeticServer
from remote_calculator.server.session import ConversationState, DatagramHandler, TcpConversation


class FakeConnection:
    """Mock stream socket to simulate one client conversation."""

    def __init__(self, chunks: list[bytes], fail_send: bool = False):
        self.chunks = list(chunks)
        self.sent_data = b""
        self.fail_send = fail_send
        self.closed = False

    def recv(self, bufsize: int) -> bytes:
        if not self.chunks:
            return b""
        return self.chunks.pop(0)

    def sendall(self, data: bytes) -> None:
        if self.fail_send:
            raise BrokenPipeError("peer went away")
        self.sent_data += data

    def close(self) -> None:
        self.closed = True


class FakeListener:
    """Mock listening socket handing out prepared connections."""

    def __init__(self, connections: list):
        self.connections = list(connections)

    def accept(self):
        conn = self.connections.pop(0)
        if isinstance(conn, Exception):
            raise conn
        return conn, ("127.0.0.1", 50000)


class FakeDatagramSocket:
    """Mock datagram socket with queued inbound datagrams."""

    def __init__(self, datagrams: list):
        self.datagrams = list(datagrams)
        self.sent: list[tuple[bytes, tuple]] = []

    def recvfrom(self, bufsize: int):
        item = self.datagrams.pop(0)
        if isinstance(item, Exception):
            raise item
        return item, ("127.0.0.1", 40000)

    def sendto(self, data: bytes, address) -> None:
        self.sent.append((data, address))


def request(request_id: int, expression: str) -> bytes:
    return encode_datagram(OperationRequest(request_id=request_id, expression=expression))


def test_conversation_answers_each_line() -> None:
    """Results and error messages are sent back, one line per request."""
    conn = FakeConnection([b"2 + 3 * 4\n", b"10 / 0\n7 / 2\n", b"1 $ 2\n"])
    conversation = TcpConversation(conn)

    answered = conversation.serve()

    assert answered == 4
    assert conn.sent_data == b"14\nDivision by zero\n3.5\nInvalid expression\n"
    assert conversation.state is ConversationState.CLOSED
    assert conn.closed


def test_conversation_empty_read_sends_nothing() -> None:
    """An empty read ends the conversation without a response."""
    conn = FakeConnection([])
    assert TcpConversation(conn).serve() == 0
    assert conn.sent_data == b""
    assert conn.closed


def test_conversation_empty_line_closes() -> None:
    conn = FakeConnection([b"1 + 1\n\n2 + 2\n"])
    assert TcpConversation(conn).serve() == 1
    assert conn.sent_data == b"2\n"


def test_conversation_send_failure_closes() -> None:
    """A failed send is fatal to the conversation only."""
    conn = FakeConnection([b"1 + 1\n", b"2 + 2\n"], fail_send=True)
    conversation = TcpConversation(conn)
    assert conversation.serve() == 0
    assert conversation.state is ConversationState.CLOSED
    assert conn.closed


def test_conversation_over_real_socket() -> None:
    """Serve a conversation over a connected socket pair."""
    server_side, client_side = socket.socketpair()
    thread = threading.Thread(target=TcpConversation(server_side).serve)
    thread.start()
    try:
        client_side.sendall(b"(2 + 3) * 4\n")
        assert client_side.recv(1024) == b"20\n"
        # C-string style request, NUL terminated
        client_side.sendall(b"9 - 10\x00")
        assert client_side.recv(1024) == b"-1\n"
        client_side.shutdown(socket.SHUT_WR)
        assert client_side.recv(1024) == b""
    finally:
        thread.join(timeout=5)
        client_side.close()
    assert not thread.is_alive()


def test_datagram_handler_replies_with_request_id() -> None:
    reply = DatagramHandler().handle(request(5, "4 + 6"))
    result = decode_result(reply)
    assert result.request_id == 5
    assert result.response == "10"


@pytest.mark.parametrize("expression,response", [
    ("", "Empty expression"),
    ("   ", "Empty expression"),
    ("10 / 0", "Division by zero"),
    ("a + b", "Invalid expression"),
])
def test_datagram_handler_error_replies(expression, response) -> None:
    reply = DatagramHandler().handle(request(1, expression))
    assert decode_result(reply).response == response


def test_datagram_handler_drops_garbage() -> None:
    assert DatagramHandler().handle(b"2 + 2") is None


def test_datagram_handler_is_idempotent() -> None:
    handler = DatagramHandler()
    assert handler.handle(request(3, "7 / 2")) == handler.handle(request(3, "7 / 2"))


def test_server_config_validation() -> None:
    server = ArithmeticServer(host="127.0.0.1", port=9000, transport="UDP")
    assert server.transport is Transport.UDP
    with pytest.raises(ValueError):
        ArithmeticServer(port=70000)


def test_serve_tcp_continues_after_failures() -> None:
    """A failed accept or a broken conversation does not stop the listener."""
    broken = FakeConnection([b"1 + 1\n"], fail_send=True)
    healthy = FakeConnection([b"3 * 3\n"])
    listener = FakeListener([ConnectionAbortedError("aborted"), broken, healthy])

    served = ArithmeticServer(retry_delay=0).serve_tcp(listener, max_conversations=2)

    assert served == 2
    assert broken.closed and healthy.closed
    assert healthy.sent_data == b"9\n"


def test_serve_udp_answers_in_order() -> None:
    sock = FakeDatagramSocket([
        request(1, "1 + 1"),
        b"not json",
        OSError("transient"),
        request(2, "2 * 3"),
    ])

    received = ArithmeticServer(transport=Transport.UDP, retry_delay=0).serve_udp(sock, max_datagrams=3)

    assert received == 3
    responses = [json.loads(data)["response"] for data, _ in sock.sent]
    assert responses == ["2", "6"]
    assert all(address == ("127.0.0.1", 40000) for _, address in sock.sent)


def test_bind_failure_raises_setup_error() -> None:
    """Binding an address already in use is a setup error."""
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as taken:
        taken.bind(("127.0.0.1", 0))
        port = taken.getsockname()[1]
        server = ArithmeticServer(host="127.0.0.1", port=port, transport=Transport.UDP)
        with pytest.raises(ServerSetupError):
            server.bind()


def test_bind_any_free_port() -> None:
    with ArithmeticServer(port=0, transport=Transport.TCP).bind() as sock:
        assert sock.getsockname()[1] > 0


def longest_sum() -> str:
    """Valid expression of exactly the maximum accepted length, summing to 128."""
    return " " + "+".join(["1"] * 128)


def test_conversation_whitespace_line_is_answered() -> None:
    """A whitespace-only line is not an empty read: it is answered and the conversation goes on."""
    conn = FakeConnection([b"   \n", b"1 + 1\n"])
    assert TcpConversation(conn).serve() == 2
    assert conn.sent_data == b"Empty expression\n2\n"


def test_datagram_handler_rejects_long_expression() -> None:
    reply = DatagramHandler().handle(request(1, "1+" * 600 + "1"))
    assert decode_result(reply).response == "Expression too long"


def test_serve_tcp_stops_on_closed_listener() -> None:
    """A listener that is no longer usable ends the loop instead of spinning."""
    listener = FakeListener([OSError(errno.EBADF, "Bad file descriptor")])
    assert ArithmeticServer().serve_tcp(listener) == 0


def test_serve_udp_stops_on_closed_socket() -> None:
    sock = FakeDatagramSocket([request(1, "1 + 1"), OSError(errno.EBADF, "Bad file descriptor")])
    assert ArithmeticServer(transport=Transport.UDP).serve_udp(sock) == 1
    assert len(sock.sent) == 1


def test_transient_failures_back_off(monkeypatch) -> None:
    """Transient accept failures are retried after the configured delay."""
    delays = []
    monkeypatch.setattr(server_module.time, "sleep", delays.append)
    listener = FakeListener([OSError(errno.EMFILE, "Too many open files")] * 2 + [FakeConnection([])])

    assert ArithmeticServer(retry_delay=0.25).serve_tcp(listener, max_conversations=1) == 1
    assert delays == [0.25, 0.25]


def test_udp_round_trip_over_loopback() -> None:
    """A real server thread answers a real driver, up to the maximum expression length."""
    server = ArithmeticServer(port=0, transport=Transport.UDP)
    server_sock = server.bind()
    thread = threading.Thread(target=server.serve_udp, args=(server_sock,), kwargs={"max_datagrams": 3})
    thread.start()
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as client_sock:
            driver = DatagramRequestDriver(
                client_sock,
                server_sock.getsockname(),
                delivery=DeliveryConfig(retry_limit=1, timeout_sec=5.0),
            )
            assert driver.send_with_confirmation("2 + 3 * 4") == "14"
            assert len(longest_sum()) == MAX_EXPRESSION_LENGTH
            assert driver.send_with_confirmation(longest_sum()) == "128"
            # Longer than the client buffer: still received whole and answered
            assert driver.send_with_confirmation("+".join(["1"] * 600)) == "Expression too long"
    finally:
        thread.join(timeout=5)
        server_sock.close()
    assert not thread.is_alive()


def test_tcp_round_trip_over_loopback() -> None:
    """A real server thread serves a real client session."""
    server = ArithmeticServer(port=0, transport=Transport.TCP)
    listener = server.bind()
    thread = threading.Thread(target=server.serve_tcp, args=(listener,), kwargs={"max_conversations": 1})
    thread.start()
    try:
        client = ArithmeticClient(port=listener.getsockname()[1])
        with client.session() as session:
            assert session.request("(2 + 3) * 4") == "20"
            assert session.request(longest_sum()) == "128"
            assert session.request("1+" * 600 + "1") == "Expression too long"
    finally:
        thread.join(timeout=5)
        listener.close()
    assert not thread.is_alive()
