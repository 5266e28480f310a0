"""User-facing notification sinks."""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from enum import Enum
from typing import Dict, Iterator, List, Tuple

logger = logging.getLogger(__name__)

# id of the client whose request is being handled; "" outside of a request
current_client: ContextVar[str] = ContextVar("notification_client", default="")


class Severity(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.SUCCESS: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.INFO,  # user input rejections
}


class LogNotifier:
    def notify(self, message: str, severity: Severity = Severity.INFO) -> None:
        logger.log(_LOG_LEVELS[severity], "[%s] %s", severity.value, message)


@contextmanager
def client_scope(client_id: str) -> Iterator[None]:
    """Route notifications raised inside the block to one client's board."""
    token = current_client.set(client_id)
    try:
        yield
    finally:
        current_client.reset(token)


class MessageBoard(LogNotifier):
    """
    Keeps notifications until the web layer renders them.

    Messages are filed under the client that was current when notify() ran,
    so each browser only drains its own.
    """

    def __init__(self):
        self._boards: Dict[str, List[Tuple[Severity, str]]] = {}
        self._lock = threading.Lock()

    @property
    def messages(self) -> List[Tuple[Severity, str]]:
        with self._lock:
            return list(self._boards.get(current_client.get(), []))

    def notify(self, message: str, severity: Severity = Severity.INFO) -> None:
        super().notify(message, severity)
        with self._lock:
            self._boards.setdefault(current_client.get(), []).append((severity, message))

    def drain(self) -> List[Tuple[Severity, str]]:
        with self._lock:
            return self._boards.pop(current_client.get(), [])
