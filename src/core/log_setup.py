"""Logging setup for the ledger gateway.

Every module logs through ``logging.getLogger(__name__)``.  This module
installs a single console handler whose records carry the id of the HTTP
request that triggered them, so a ledger retry can be traced back to the
caller that submitted it.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

_LOG_FORMAT = "%(asctime)s [%(levelname)s]%(request_tag)s %(name)s: %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class RequestIdFilter(logging.Filter):
    """Attach ``request_id`` and a short ``request_tag`` to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        request_id = request_id_var.get()
        record.request_id = request_id
        record.request_tag = f" [{request_id[:8]}]" if request_id else ""
        return True


def configure_logging(level: str = "INFO") -> None:
    """Install the console handler on the root logger.

    Safe to call more than once; the handler is only added the first time.
    """
    root = logging.getLogger()
    root.setLevel(level.upper())
    for handler in root.handlers:
        if getattr(handler, "_ledger_gateway", False):
            return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_DATE_FORMAT))
    handler.addFilter(RequestIdFilter())
    handler._ledger_gateway = True  # type: ignore[attr-defined]
    root.addHandler(handler)
