"""
Facebook Ads Gateway - Structured Logging
JSON-line logs on stderr with the current trace id attached to every record.
"""

import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

LOG_FORMAT = '{"timestamp":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s","trace_id":"%(trace_id)s"}'

current_trace_id: ContextVar[str] = ContextVar("current_trace_id", default="-")

_old_factory = logging.getLogRecordFactory()


def _record_factory(*args, **kwargs):
    record = _old_factory(*args, **kwargs)
    record.trace_id = current_trace_id.get()
    return record


def configure_logging(level: str = "INFO"):
    """Install the trace-aware record factory and the JSON formatter"""
    logging.setLogRecordFactory(_record_factory)
    # stdout carries the stdio transport, so logs always go to stderr
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True
    )


@contextmanager
def trace_scope(trace_id: Optional[str] = None) -> Iterator[str]:
    """Bind a trace id to the log records emitted inside the block"""
    value = trace_id or str(uuid.uuid4())
    token = current_trace_id.set(value)
    try:
        yield value
    finally:
        current_trace_id.reset(token)
