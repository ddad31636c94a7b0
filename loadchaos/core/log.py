"""Logger collaborators for the load testing engine.

Every component takes a ``Logger`` in its constructor and defaults to
``NullLogger``. The CLI wires in ``StdLogger``, whose ``error`` ends the
process, so callers must treat ``error`` as non-returning.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from .exceptions import FatalError

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
REQUEST_LOGGER_NAME = "loadchaos.requests"


def setup_logging(level: int = logging.INFO) -> None:
    """Configure root logging for CLI runs."""
    logging.basicConfig(level=level, format=LOG_FORMAT)


def configure_request_log(path: str) -> logging.Handler:
    """Send per-request log lines to ``path`` in addition to the console."""
    handler = logging.FileHandler(path)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    request_logger = logging.getLogger(REQUEST_LOGGER_NAME)
    request_logger.addHandler(handler)
    request_logger.setLevel(logging.INFO)
    return handler


class Logger(ABC):
    """User-facing message sink."""

    @abstractmethod
    def log(self, message: str) -> None:
        pass

    @abstractmethod
    def success(self, message: str) -> None:
        pass

    @abstractmethod
    def warning(self, message: str) -> None:
        pass

    @abstractmethod
    def error(self, message: str) -> None:
        """Report a fatal problem. Implementations must not return normally."""

    @abstractmethod
    def debug(self, message: str) -> None:
        pass


class StdLogger(Logger):
    """Logger backed by the standard ``logging`` module."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("loadchaos")

    def log(self, message: str) -> None:
        self.logger.info(message)

    def success(self, message: str) -> None:
        self.logger.info(f"✓ {message}")

    def warning(self, message: str) -> None:
        self.logger.warning(message)

    def error(self, message: str) -> None:
        self.logger.error(message)
        raise SystemExit(1)

    def debug(self, message: str) -> None:
        self.logger.debug(message)


class NullLogger(Logger):
    """Logger that keeps messages in memory.

    ``error`` raises ``FatalError`` so a fatal path still stops the caller.
    """

    def __init__(self, throw_on_error: bool = True):
        self.throw_on_error = throw_on_error
        self.messages: List[Tuple[str, str]] = []

    def log(self, message: str) -> None:
        self.messages.append(("log", message))

    def success(self, message: str) -> None:
        self.messages.append(("success", message))

    def warning(self, message: str) -> None:
        self.messages.append(("warning", message))

    def error(self, message: str) -> None:
        self.messages.append(("error", message))
        if self.throw_on_error:
            raise FatalError(message)

    def debug(self, message: str) -> None:
        self.messages.append(("debug", message))

    def messages_of(self, level: str) -> List[str]:
        return [message for lvl, message in self.messages if lvl == level]

    def clear(self) -> None:
        self.messages = []
