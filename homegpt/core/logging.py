"""Gateway logging: one stderr stream, every line tagged with the request it serves.

The request ID set by the service middleware travels in a context variable,
so records from ``OllamaClient`` calls made while handling a request carry
the same ID as the access log lines, and the client forwards it to the
backend in the ``X-Request-ID`` header.
"""

import logging
import re
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

REQUEST_ID_HEADER = "X-Request-ID"
NO_REQUEST_ID = "-"

LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(request_id)s] %(name)s - %(message)s"

# HTTP stack underneath OllamaClient; its per-request lines duplicate ours
TRANSPORT_LOGGERS = ("httpx", "httpcore")

_INCOMING_ID = re.compile(r"[A-Za-z0-9._-]{1,64}")

request_id_var: ContextVar[str] = ContextVar("request_id", default=NO_REQUEST_ID)


class RequestIDFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()  # type: ignore[attr-defined]
        return True


def new_request_id(incoming: str | None = None) -> str:
    """Adopt a caller-supplied ID when it is a plain token, otherwise mint one."""
    if incoming and _INCOMING_ID.fullmatch(incoming):
        return incoming
    return uuid.uuid4().hex[:12]


def current_request_id() -> str | None:
    """ID of the request being served, or None outside a request."""
    rid = request_id_var.get()
    return None if rid == NO_REQUEST_ID else rid


@contextmanager
def request_context(request_id: str) -> Iterator[str]:
    """Bind ``request_id`` to log records and backend calls made inside the block."""
    token = request_id_var.set(request_id)
    try:
        yield request_id
    finally:
        request_id_var.reset(token)


def setup_logging(level: str = "INFO") -> None:
    """Route all logging to stderr in the gateway format.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            Transport loggers stay at WARNING or above unless DEBUG is asked for.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(RequestIDFilter())

    root = logging.getLogger()
    root.setLevel(numeric_level)
    root.handlers.clear()
    root.addHandler(handler)

    transport_level = logging.DEBUG if numeric_level <= logging.DEBUG else logging.WARNING
    for name in TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(transport_level)
