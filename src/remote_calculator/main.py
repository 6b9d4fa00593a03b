"""
Command-line entry points.

- ``remote-calculator-server <TCP|UDP>``: serve expressions on a fixed address
- ``remote-calculator-client <TCP|UDP> <IP> <PORT>``: interactive prompt, or batch with ``--file``
- ``remote-calculator-run <TCP|UDP> <file>``: integration runner used by CI

The integration runner starts the server process, launches a client against
it and executes an operations file, to validate socket communication, the
process lifecycle and end-to-end correctness.
"""
import argparse
from multiprocessing import Process
from pathlib import Path
import sys
import time
from typing import List, Optional

from pydantic import BaseModel, Field, FilePath, IPvAnyAddress, ValidationError

from remote_calculator.client.client import ArithmeticClient
from remote_calculator.common.config import DEFAULT_HOST, DEFAULT_PORT, DeliveryConfig, Transport
from remote_calculator.common.errors import ServerSetupError, TransportError
from remote_calculator.common.logger import logger
from remote_calculator.server.server import ArithmeticServer


EXIT_SETUP_FAILURE: int = 1


class ServerArgs(BaseModel):
    """Validated server arguments."""

    transport: Transport
    host: IPvAnyAddress = DEFAULT_HOST
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)


class ClientArgs(BaseModel):
    """Validated client arguments."""

    transport: Transport
    host: IPvAnyAddress
    port: int = Field(..., ge=1, le=65535)
    file_path: Optional[FilePath] = None
    retries: int = Field(default=3, ge=1)
    timeout: float = Field(default=3.0, gt=0)


class RunnerArgs(BaseModel):
    """
    Validated integration runner arguments.

    Attributes
    ----------
    transport : Transport
        Transport shared by the server and the client.
    file_path : FilePath
        Path to the file containing arithmetic operations.
    """

    transport: Transport
    file_path: FilePath


def _transport(value: str) -> str:
    return value.upper()


def _validate(parser: argparse.ArgumentParser, model: type, **fields) -> BaseModel:
    try:
        return model(**fields)
    except ValidationError as exc:
        parser.error(str(exc))


def parse_server_args(argv: Optional[List[str]] = None) -> ServerArgs:
    """
    Parse and validate the server command line.

    :param argv: Arguments, ``sys.argv[1:]`` if None

    :return: Validated arguments
    :rtype: ServerArgs
    """
    parser = argparse.ArgumentParser(description="Arithmetic expression server")
    parser.add_argument("transport", type=_transport, help="TCP or UDP")
    parser.add_argument("--host", default=DEFAULT_HOST, help="Bind address")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Bind port")
    args = parser.parse_args(argv)
    return _validate(parser, ServerArgs, transport=args.transport, host=args.host, port=args.port)


def parse_client_args(argv: Optional[List[str]] = None) -> ClientArgs:
    """
    Parse and validate the client command line.

    :param argv: Arguments, ``sys.argv[1:]`` if None

    :return: Validated arguments
    :rtype: ClientArgs
    """
    parser = argparse.ArgumentParser(description="Arithmetic expression client")
    parser.add_argument("transport", type=_transport, help="TCP or UDP")
    parser.add_argument("host", help="Server IP address")
    parser.add_argument("port", help="Server port")
    parser.add_argument("--file", dest="file_path", help="Send the expressions of this file or archive")
    parser.add_argument("--retries", type=int, default=3, help="UDP attempts per request")
    parser.add_argument("--timeout", type=float, default=3.0, help="UDP seconds to wait per attempt")
    args = parser.parse_args(argv)
    return _validate(
        parser,
        ClientArgs,
        transport=args.transport,
        host=args.host,
        port=args.port,
        file_path=args.file_path,
        retries=args.retries,
        timeout=args.timeout,
    )


def parse_runner_args(argv: Optional[List[str]] = None) -> RunnerArgs:
    """
    Parse and validate the integration runner command line.

    :param argv: Arguments, ``sys.argv[1:]`` if None

    :return: Validated arguments
    :rtype: RunnerArgs
    """
    parser = argparse.ArgumentParser(description="Arithmetic client/server integration runner")
    parser.add_argument("transport", type=_transport, help="TCP or UDP")
    parser.add_argument("file_path", help="Path to the file containing arithmetic operations")
    args = parser.parse_args(argv)
    return _validate(parser, RunnerArgs, transport=args.transport, file_path=args.file_path)


def build_output_path(input_path: Path) -> Path:
    """
    Construct a safe output file path based on the input file.

    - Preserves the original folder
    - Replaces dots in extensions with underscores
    - Appends '_results.txt' at the end

    Examples
    --------
    input: resources/operations_short.7z
    output: resources/operations_short_7z_results.txt

    :param input_path: Path to the input file
    :return: Path to the output file
    """
    stem = input_path.name[: len(input_path.name) - len("".join(input_path.suffixes))] or input_path.name
    suffix_safe = "".join(input_path.suffixes).replace(".", "_")
    return input_path.with_name(f"{stem}{suffix_safe}_results.txt")


def run_server(transport: Transport, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> int:
    """
    Run a server until the process is stopped.

    :return: Exit code, nonzero if the server could not be set up
    :rtype: int
    """
    server = ArithmeticServer(host=host, port=port, transport=transport)
    try:
        server.start()
    except ServerSetupError as exc:
        logger.error(f"🖥️❌ {exc}")
        return EXIT_SETUP_FAILURE
    except KeyboardInterrupt:
        logger.info("🖥️ Server stopped")
    return 0


def server_main(argv: Optional[List[str]] = None) -> int:
    args = parse_server_args(argv)
    return run_server(args.transport, str(args.host), args.port)


def client_main(argv: Optional[List[str]] = None) -> int:
    """
    Run the client, interactively or over a batch file.

    :return: Exit code, 0 on a clean exit
    :rtype: int
    """
    args = parse_client_args(argv)
    client = ArithmeticClient(
        host=args.host,
        port=args.port,
        transport=args.transport,
        delivery=DeliveryConfig(retry_limit=args.retries, timeout_sec=args.timeout),
    )
    try:
        if args.file_path is not None:
            client.send_file(Path(args.file_path), build_output_path(Path(args.file_path)))
            return 0
        return client.run_interactive()
    except TransportError as exc:
        logger.error(f"📡❌ {exc}")
        return EXIT_SETUP_FAILURE
    except OSError as exc:
        logger.error(f"🔌❌ Connection failed: {exc}")
        return EXIT_SETUP_FAILURE


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main function executed by CI or Docker.
    """
    args = parse_runner_args(argv)
    input_path: Path = Path(args.file_path)
    output_path: Path = build_output_path(input_path)

    server_process = Process(target=run_server, args=(args.transport,))
    server_process.start()

    # Give the server time to start listening
    time.sleep(1)

    try:
        client = ArithmeticClient(transport=args.transport)
        client.send_file(input_path, output_path)
    finally:
        # Ensure the server is always stopped
        server_process.terminate()
        server_process.join()
    return 0


if __name__ == "__main__":
    sys.exit(main())
