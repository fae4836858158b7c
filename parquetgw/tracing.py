"""A small in-process tracer with context-local span nesting."""

from __future__ import annotations

import functools
import time
from contextvars import ContextVar, Token
from typing import Any

TRACER_NAME = "parquet-gateway"


class Span:
    """A named, timed unit of work carrying attributes."""

    def __init__(self, name: str, parent: Span | None = None, *, recording: bool = True) -> None:
        self.name = name
        self.parent = parent
        self.recording = recording
        self.attributes: dict[str, Any] = {}
        self.start_time = time.time()
        self.end_time: float | None = None
        self._token: Token[Span | None] | None = None

    @property
    def ended(self) -> bool:
        return self.end_time is not None

    def set_attribute(self, key: str, value: Any) -> Span:
        """Record an attribute; ignored once the span has ended or if it does not record."""
        if self.recording and self.end_time is None:
            self.attributes[key] = value
        return self

    def end(self) -> None:
        """Finish the span and restore the previously active span."""
        if self.end_time is not None:
            return
        self.end_time = time.time()
        if self._token is not None:
            try:
                _current_span.reset(self._token)
            except ValueError:
                pass
            self._token = None

    def _activate(self) -> None:
        self._token = _current_span.set(self)

    def __enter__(self) -> Span:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.end()

    def __repr__(self) -> str:
        return f"Span({self.name!r}, attributes={self.attributes!r}, ended={self.ended})"


_current_span: ContextVar[Span | None] = ContextVar("parquetgw_current_span", default=None)
_NOOP_SPAN = Span("", recording=False)


class Tracer:
    """Creates spans nested under whatever span is active in the current context."""

    def __init__(self, name: str) -> None:
        self.name = name

    def start(self, name: str) -> Span:
        span = Span(name, parent=_current_span.get())
        span._activate()
        return span


@functools.lru_cache(maxsize=None)
def tracer() -> Tracer:
    """The process-wide tracer."""
    return Tracer(TRACER_NAME)


def current_span() -> Span:
    """The active span, or a non-recording span when none is active."""
    span = _current_span.get()
    return span if span is not None else _NOOP_SPAN