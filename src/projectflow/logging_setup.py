"""Console logging with Rich, plus per-request correlation ids.

The correlation id lives in a context variable set by the HTTP middleware in
``projectflow.api.handlers``; ``CorrelationIdFilter`` copies it onto every log
record so a single failing request can be traced across modules.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar

from rich.logging import RichHandler

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="-")


class CorrelationIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get()
        return True


def setup_logging(level: str = "INFO") -> None:
    """Install a Rich console handler on the root logger.

    Safe to call more than once; an existing Rich handler is replaced.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, RichHandler):
            root.removeHandler(handler)

    handler = RichHandler(rich_tracebacks=True, show_path=False, markup=False)
    handler.setFormatter(logging.Formatter("[%(correlation_id)s] %(name)s: %(message)s"))
    handler.addFilter(CorrelationIdFilter())

    root.addHandler(handler)
    root.setLevel(level.upper())

    # uvicorn's access log duplicates the request line we already correlate
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
