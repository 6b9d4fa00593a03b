"""Reliable request/response on top of an unreliable datagram socket."""
import itertools
import socket
import time
from typing import Iterator, Optional, Tuple

from remote_calculator.common.config import DeliveryConfig
from remote_calculator.common.errors import LostConnectivityError, ProtocolError
from remote_calculator.common.logger import logger
from remote_calculator.common.protocol import (
    OperationRequest,
    decode_result,
    encode_datagram,
)


class DatagramRequestDriver:
    """
    Send a request over UDP and wait for its reply, retrying on timeout.

    Each request gets a new, increasing ``request_id``. A reply is accepted
    only if it carries the id of the request being sent, so a late reply to
    an earlier request is ignored instead of being taken for the current one.

    Once every attempt of a request has timed out the driver is closed:
    the server is considered unreachable and no further datagram is sent.
    """

    def __init__(
        self,
        sock: socket.socket,
        server_address: Tuple[str, int],
        delivery: Optional[DeliveryConfig] = None,
        buffer_size: int = 1024,
    ) -> None:
        self.sock = sock
        self.server_address = server_address
        self.delivery = delivery or DeliveryConfig()
        self.buffer_size = buffer_size
        self.closed = False
        self.attempts = 0
        self._ids: Iterator[int] = itertools.count(1)
        # Replies are polled, the socket must never block
        self.sock.setblocking(False)

    def send_with_confirmation(self, expression: str) -> str:
        """
        Send an expression and return the server's response.

        :param str expression: Expression to evaluate remotely

        :return: Formatted result or error message sent by the server
        :rtype: str
        :raises LostConnectivityError: If no reply arrived after every attempt, or the driver is closed
        """
        if self.closed:
            raise LostConnectivityError("driver closed after a previous delivery failure")

        request = OperationRequest(request_id=next(self._ids), expression=expression)
        payload = encode_datagram(request)

        for attempt in range(1, self.delivery.retry_limit + 1):
            self.sock.sendto(payload, self.server_address)
            self.attempts += 1
            logger.info(f"📤 Sent request {request.request_id} (attempt {attempt}): {expression!r}")

            response = self._wait_for_reply(request.request_id)
            if response is not None:
                return response
            logger.warning(f"⏱️ Timeout: no response to request {request.request_id}, retrying...")

        self.closed = True
        logger.error(f"📡❌ Lost connection to server after {self.delivery.retry_limit} attempt(s)")
        raise LostConnectivityError(f"no reply from {self.server_address[0]}:{self.server_address[1]}")

    def _wait_for_reply(self, request_id: int) -> Optional[str]:
        """
        Poll the socket until the matching reply arrives or the attempt times out.

        :param int request_id: Id of the request being waited on

        :return: Response text, or None on timeout
        :rtype: Optional[str]
        """
        deadline = time.monotonic() + self.delivery.timeout_sec
        while time.monotonic() < deadline:
            try:
                payload, _ = self.sock.recvfrom(self.buffer_size)
            except (BlockingIOError, InterruptedError):
                time.sleep(self.delivery.poll_interval)
                continue
            except ConnectionRefusedError:
                # ICMP port unreachable from a previous send, keep waiting
                time.sleep(self.delivery.poll_interval)
                continue

            try:
                result = decode_result(payload)
            except ProtocolError as exc:
                logger.warning(f"📥 Ignoring malformed reply: {exc}")
                continue
            if result.request_id != request_id:
                logger.warning(f"📥 Ignoring stale reply to request {result.request_id}")
                continue
            return result.response
        return None
