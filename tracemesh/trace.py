"""Trace data model: resource spans, instrumentation library spans and spans."""

from __future__ import annotations

import enum
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any, Optional

_UINT64_LIMIT = 1 << 64


class SpanKind(enum.IntEnum):
    """The role a span plays in a trace."""

    UNSPECIFIED = 0
    INTERNAL = 1
    SERVER = 2
    CLIENT = 3
    PRODUCER = 4
    CONSUMER = 5


@dataclass
class Span:
    """A single operation within a trace."""

    trace_id: bytes = b""
    span_id: bytes = b""
    parent_span_id: bytes = b""
    name: str = ""
    kind: SpanKind = SpanKind.UNSPECIFIED
    start_time_unix_nano: int = 0
    end_time_unix_nano: int = 0
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass
class InstrumentationLibrary:
    """The library that produced a group of spans."""

    name: str = ""
    version: str = ""


@dataclass
class Resource:
    """The entity that produced a batch of spans."""

    attributes: dict[str, Any] = field(default_factory=dict)
    dropped_attributes_count: int = 0


@dataclass
class InstrumentationLibrarySpans:
    """Spans produced by one instrumentation library."""

    instrumentation_library: Optional[InstrumentationLibrary] = None
    spans: list[Span] = field(default_factory=list)


@dataclass
class ResourceSpans:
    """A batch of spans sharing one resource."""

    resource: Optional[Resource] = None
    instrumentation_library_spans: list[InstrumentationLibrarySpans] = field(
        default_factory=list
    )


@dataclass
class Trace:
    """A collection of batches that make up one trace."""

    batches: list[ResourceSpans] = field(default_factory=list)

    def all_spans(self) -> Iterator[Span]:
        """Yield every span in the trace, in batch order."""
        for batch in self.batches:
            for ils in batch.instrumentation_library_spans:
                yield from ils.spans


def has_missing_spans(trace: Trace) -> bool:
    """Return True if some span names a parent that is not in the trace."""
    span_ids = {span.span_id for span in trace.all_spans()}
    return any(
        span.parent_span_id and span.parent_span_id not in span_ids
        for span in trace.all_spans()
    )


def format_trace_id(high: int, low: int) -> str:
    """Render the two 64-bit halves of a trace ID as 32 hex digits."""
    for half in (high, low):
        if not 0 <= half < _UINT64_LIMIT:
            raise ValueError(f"trace id half out of range: {half}")
    return f"{high:016x}{low:016x}"