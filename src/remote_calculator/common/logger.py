"""Project-wide logger."""
import logging
import os
import sys


LOG_LEVEL: str = os.environ.get("REMOTE_CALCULATOR_LOG_LEVEL", "INFO").upper()
LOG_FORMAT: str = "%(asctime)s %(levelname)-8s %(processName)s %(message)s"


def _build_logger() -> logging.Logger:
    """
    Build the shared logger used by the server, the client and the workers.

    The handler is attached only once, even if the module is reloaded.

    :return: Configured logger
    :rtype: logging.Logger
    """
    log = logging.getLogger("remote_calculator")
    if not log.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log.addHandler(handler)
    log.setLevel(LOG_LEVEL)
    return log


logger: logging.Logger = _build_logger()
