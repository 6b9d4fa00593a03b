"""TCP/UDP client."""
from contextlib import contextmanager
from pathlib import Path
import socket
from typing import Callable, Iterator, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, IPvAnyAddress

from remote_calculator.client.driver import DatagramRequestDriver
from remote_calculator.common.config import DEFAULT_HOST, DEFAULT_PORT, DeliveryConfig, Transport
from remote_calculator.common.errors import LostConnectivityError, ProtocolError, TransportError
from remote_calculator.common.logger import logger
from remote_calculator.common.protocol import LineReader, encode_line
from remote_calculator.common.sources import load_expressions
from remote_calculator.common.validator import ExpressionValidator


EXIT_COMMAND: str = "exit"
PROMPT: str = "Enter an expression (or type 'exit' to quit): "


class TcpClientSession:
    """Request/response over a connected stream socket, one line each way."""

    def __init__(self, sock: socket.socket, buffer_size: int = 1024) -> None:
        self.sock = sock
        self.reader = LineReader(sock, chunk_size=buffer_size)

    def request(self, expression: str) -> str:
        """
        Send one expression and wait for its response.

        :param str expression: Validated expression

        :return: Server response
        :rtype: str
        :raises TransportError: If the server closed the connection or the send failed
        """
        try:
            self.sock.sendall(encode_line(expression))
            response = self.reader.read_line()
        except ProtocolError:
            raise
        except OSError as exc:
            raise TransportError(f"error talking to server: {exc}") from exc
        if response is None:
            raise TransportError("server closed the connection")
        return response


class UdpClientSession:
    """Request/response over UDP, with retries handled by the driver."""

    def __init__(self, driver: DatagramRequestDriver) -> None:
        self.driver = driver

    def request(self, expression: str) -> str:
        return self.driver.send_with_confirmation(expression)


ClientSession = Union[TcpClientSession, UdpClientSession]


class ArithmeticClient(BaseModel):
    """
    Client sending arithmetic expressions to the server and reading the results.

    The client:
    - validates every expression locally before sending it
    - talks to the server over TCP, or over UDP with retries and timeout
    - runs an interactive prompt, or a batch of expressions read from a file or an archive
    """

    # Make the Pydantic instance immutable (read-only), to prevent errors
    # that could be caused by changes to the network configuration during execution.
    model_config = ConfigDict(frozen=True)

    host: IPvAnyAddress = Field(default=DEFAULT_HOST, description="Server host address")
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535, description="Server port")
    transport: Transport = Field(default=Transport.TCP, description="TCP or UDP")
    delivery: DeliveryConfig = Field(default_factory=DeliveryConfig, description="UDP retry policy")
    buffer_size: int = Field(default=1024, ge=64, description="Receive buffer size in bytes")

    @property
    def address(self) -> tuple:
        return str(self.host), self.port

    @contextmanager
    def session(self) -> Iterator[ClientSession]:
        """
        Open a session with the server; the socket is closed on every exit path.

        :return: Context manager yielding the session
        :raises OSError: If the TCP connection cannot be established
        """
        kind = socket.SOCK_DGRAM if self.transport is Transport.UDP else socket.SOCK_STREAM
        with socket.socket(socket.AF_INET, kind) as s:
            if self.transport is Transport.UDP:
                driver = DatagramRequestDriver(s, self.address, delivery=self.delivery, buffer_size=self.buffer_size)
                yield UdpClientSession(driver)
            else:
                s.connect(self.address)
                logger.info(f"🔌✅ Connected to {self.host}:{self.port}")
                yield TcpClientSession(s, buffer_size=self.buffer_size)

    def run_interactive(
        self,
        read_line: Callable[[str], str] = input,
        write_line: Callable[[str], None] = print,
    ) -> int:
        """
        Prompt for expressions until ``exit`` and print the server's answers.

        :param read_line: Function reading a line, given the prompt
        :param write_line: Function printing a line

        :return: Process exit code, 0 on ``exit``, 1 when the server became unreachable
        :rtype: int
        """
        with self.session() as session:
            while True:
                try:
                    expression = read_line(PROMPT)
                except EOFError:
                    expression = EXIT_COMMAND

                if expression.strip() == EXIT_COMMAND:
                    write_line("Exiting...")
                    return 0

                result = ExpressionValidator.validate(expression)
                if not result.ok:
                    write_line(result.message)
                    continue

                try:
                    response = session.request(expression)
                except LostConnectivityError:
                    write_line("Lost connection to server.")
                    return 1
                except TransportError as exc:
                    write_line(f"Error receiving data from server: {exc}")
                    return 1
                write_line(f"Received from server: {response}")

    def send_file(self, input_file: Path, output_file: Path) -> int:
        """
        Send the expressions of a file or archive and write the results to an output file.

        Each output line is either ``<expression> = <result>`` or
        ``<expression> -> ERROR: <message>``. Expressions rejected by the local
        validator are reported without being sent.

        :param Path input_file: Path to the input file or archive
        :param Path output_file: Path where results will be written

        :return: Number of expressions answered by the server
        :rtype: int
        :raises ValueError: If the archive format is unsupported or contains no .txt file
        :raises TransportError: If the server becomes unreachable
        """
        expressions = load_expressions(input_file)
        logger.info(f"📄 Loaded {len(expressions)} expression(s) from {input_file}")

        answered = 0
        with self.session() as session, output_file.open("w", encoding="utf-8") as f_out:
            for expression in expressions:
                error: Optional[str] = ExpressionValidator.validate(expression).message
                if error is None:
                    response = session.request(expression)
                    answered += 1
                    error = None if _is_number(response) else response
                line = f"{expression} -> ERROR: {error}" if error else f"{expression} = {response}"
                # Flushing keeps the progress on disk if the run is interrupted
                f_out.write(line + "\n")
                f_out.flush()

        logger.info(f"📄✅ Results written to {output_file}")
        return answered


def _is_number(response: str) -> bool:
    """Tell a formatted result from an error message sent by the server."""
    try:
        float(response)
        return True
    except ValueError:
        return False
