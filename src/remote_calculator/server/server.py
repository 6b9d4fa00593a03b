"""TCP/UDP server evaluating arithmetic expressions sent by clients."""
import errno
import socket
import time
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, IPvAnyAddress

from remote_calculator.common.config import DEFAULT_HOST, DEFAULT_PORT, Transport
from remote_calculator.common.errors import ServerSetupError
from remote_calculator.common.logger import logger
from remote_calculator.common.protocol import MAX_DATAGRAM_SIZE
from remote_calculator.server.session import DatagramHandler, TcpConversation


# Errors meaning the server socket itself is gone, retrying cannot help
CLOSED_SOCKET_ERRNOS = frozenset({errno.EBADF, errno.ENOTSOCK, errno.EINVAL})


class ArithmeticServer(BaseModel):
    """
    Socket server answering arithmetic expressions from clients.

    Features:
        - TCP: serves one conversation at a time, then accepts the next one.
        - UDP: answers datagrams one at a time, in receive order.
        - Setup failures (socket, bind, listen) raise ServerSetupError.
        - A failing conversation never stops the listener.
        - Transient accept or receive failures are retried after a short delay,
          a closed server socket ends the loop.
    """

    model_config = ConfigDict(frozen=True)

    host: IPvAnyAddress = Field(default=DEFAULT_HOST, description="Server bind address")
    port: int = Field(default=DEFAULT_PORT, ge=0, le=65535, description="Server port, 0 for any free port")
    transport: Transport = Field(default=Transport.TCP, description="TCP or UDP")
    buffer_size: int = Field(default=1024, ge=64, description="TCP receive chunk size in bytes")
    backlog: int = Field(default=3, ge=1, description="TCP listen backlog")
    retry_delay: float = Field(default=0.1, ge=0, description="Seconds to wait after a failed accept or receive")

    def bind(self) -> socket.socket:
        """
        Create and bind the server socket, and listen when using TCP.

        :return: Bound socket, owned by the caller
        :rtype: socket.socket
        :raises ServerSetupError: If the socket cannot be created, bound or put in listening mode
        """
        kind = socket.SOCK_DGRAM if self.transport is Transport.UDP else socket.SOCK_STREAM
        try:
            sock = socket.socket(socket.AF_INET, kind)
        except OSError as exc:
            raise ServerSetupError(f"socket creation failed: {exc}") from exc

        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((str(self.host), self.port))
            if self.transport is Transport.TCP:
                sock.listen(self.backlog)
        except OSError as exc:
            sock.close()
            raise ServerSetupError(f"cannot serve on {self.host}:{self.port}: {exc}") from exc
        return sock

    def start(self) -> None:
        """
        Bind the server and serve until the process is stopped.

        :return: None
        :raises ServerSetupError: If the server cannot be set up
        """
        logger.info(f"🖥️ Starting {self.transport.value} server on {self.host}:{self.port}")
        with self.bind() as sock:
            logger.info(f"🖥️ Server listening on {sock.getsockname()[0]}:{sock.getsockname()[1]}")
            if self.transport is Transport.UDP:
                self.serve_udp(sock)
            else:
                self.serve_tcp(sock)

    def serve_tcp(self, listener: socket.socket, max_conversations: Optional[int] = None) -> int:
        """
        Accept and serve TCP conversations, one after the other.

        :param socket.socket listener: Listening socket
        :param Optional[int] max_conversations: Stop after this many conversations, never if None

        :return: Number of conversations served
        :rtype: int
        """
        served = 0
        while max_conversations is None or served < max_conversations:
            try:
                conn, address = listener.accept()
            except OSError as exc:
                logger.error(f"🖥️❌ Accept failed: {exc}")
                if self._socket_unusable(exc):
                    break
                time.sleep(self.retry_delay)
                continue
            conversation = TcpConversation(conn, peer=_peer(address), buffer_size=self.buffer_size)
            conversation.serve()
            served += 1
        return served

    def serve_udp(self, sock: socket.socket, max_datagrams: Optional[int] = None) -> int:
        """
        Answer UDP datagrams one at a time.

        :param socket.socket sock: Bound datagram socket
        :param Optional[int] max_datagrams: Stop after this many datagrams, never if None

        :return: Number of datagrams received
        :rtype: int
        """
        handler = DatagramHandler()
        received = 0
        while max_datagrams is None or received < max_datagrams:
            try:
                payload, address = sock.recvfrom(MAX_DATAGRAM_SIZE)
            except OSError as exc:
                logger.error(f"📨❌ Error receiving data: {exc}")
                if self._socket_unusable(exc):
                    break
                time.sleep(self.retry_delay)
                continue
            received += 1

            reply = handler.handle(payload, peer=_peer(address))
            if reply is None:
                continue
            try:
                sock.sendto(reply, address)
            except OSError as exc:
                logger.error(f"📨❌ Reply to {_peer(address)} failed: {exc}")
        return received

    @staticmethod
    def _socket_unusable(exc: OSError) -> bool:
        """Tell a closed or invalid socket from a transient failure."""
        if exc.errno in CLOSED_SOCKET_ERRNOS:
            logger.error("🖥️❌ Server socket is no longer usable, stopping")
            return True
        return False


def _peer(address) -> str:
    try:
        host, port = address[:2]
    except (TypeError, ValueError):
        return str(address)
    return f"{host}:{port}"
