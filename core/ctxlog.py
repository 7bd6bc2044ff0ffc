"""
core/ctxlog.py -- Request-scoped diagnostic context.

A Context collects key/value pairs while a request is being served; the HTTP
logging middleware opens one per request and writes a single log line with
everything collected when the response is ready. Service code adds to the
current context with log(**keyvals) and never needs a handle to it.

The active Context lives in a ContextVar. asyncio tasks and
asyncio.to_thread() workers copy the variable, and since the Context object
itself is shared (not copied), pairs added in a worker thread show up in the
request's line. Outside a request, log() writes into a throwaway context.

Layer rule: core/ is the kernel. No imports from api/, auth/, or dna/.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar


class Context:
    """An ordered, thread-safe bag of key/value pairs."""

    def __init__(self, **keyvals: object) -> None:
        self._lock = threading.Lock()
        self._keyvals: list[tuple[str, object]] = list(keyvals.items())

    def log(self, **keyvals: object) -> None:
        with self._lock:
            self._keyvals.extend(keyvals.items())

    def keyvals(self) -> list[tuple[str, object]]:
        with self._lock:
            return list(self._keyvals)

    def logfmt(self) -> str:
        """Render as logfmt: key=value pairs separated by spaces, values quoted when needed."""
        return " ".join(f"{k}={_format_value(v)}" for k, v in self.keyvals())


_current: ContextVar[Context | None] = ContextVar("sessions_ctxlog", default=None)


@contextmanager
def new(**keyvals: object) -> Iterator[Context]:
    """Open a fresh Context for the duration of the with-block."""
    ctx = Context(**keyvals)
    token = _current.set(ctx)
    try:
        yield ctx
    finally:
        _current.reset(token)


def current() -> Context:
    """Return the active Context, or a detached one if none is open."""
    ctx = _current.get()
    return ctx if ctx is not None else Context()


def log(**keyvals: object) -> None:
    """Add pairs to the active Context (no-op outside a request)."""
    current().log(**keyvals)


def _format_value(value: object) -> str:
    if value is None:
        return "null"
    s = str(value)
    if s == "" or any(c in s for c in ' "=\t\n'):
        return '"' + s.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n") + '"'
    return s
