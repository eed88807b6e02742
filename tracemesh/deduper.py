"""Span ID deduplication for traces where client and server spans share an ID."""

from __future__ import annotations

from tracemesh.trace import Span, SpanKind, Trace

WARNING_TOO_MANY_SPANS = "cannot assign unique span ID, too many spans in the trace"
MAX_SPAN_ID = 0xFFFFFFFFFFFFFFFF

_ID_WIDTH = 8


class TooManySpansError(Exception):
    """No unused 64-bit span ID is left to assign."""


def _read_id(raw: bytes) -> int:
    if len(raw) < _ID_WIDTH:
        raise ValueError(f"span id must be at least {_ID_WIDTH} bytes, got {len(raw)}")
    return int.from_bytes(raw[:_ID_WIDTH], "big")


def _write_id(raw: bytes, value: int) -> bytes:
    if len(raw) < _ID_WIDTH:
        raise ValueError(f"span id must be at least {_ID_WIDTH} bytes, got {len(raw)}")
    return value.to_bytes(_ID_WIDTH, "big") + raw[_ID_WIDTH:]


class SpanIDDeduper:
    """Gives server spans that reuse a client span's ID a fresh, unique ID.

    The previously shared ID becomes the server span's parent, and children of
    the server span are re-pointed at its new ID.
    """

    def __init__(self, trace: Trace) -> None:
        self.trace = trace
        self.max_used_id = 0
        self._spans_by_id: dict[int, list[Span]] = {}

    def dedupe(self) -> Trace:
        """Rewrite duplicated span IDs in place and return the trace."""
        self._group_spans_by_id()
        self._dedupe_span_ids()
        return self.trace

    def _group_spans_by_id(self) -> None:
        spans_by_id: dict[int, list[Span]] = {}
        for span in self.trace.all_spans():
            spans_by_id.setdefault(_read_id(span.span_id), []).append(span)
        self._spans_by_id = spans_by_id

    def _is_shared_with_client_span(self, span_id: int) -> bool:
        return any(
            span.kind == SpanKind.CLIENT for span in self._spans_by_id.get(span_id, ())
        )

    def _dedupe_span_ids(self) -> None:
        old_to_new: dict[int, int] = {}
        for span in self.trace.all_spans():
            span_id = _read_id(span.span_id)
            if span.kind != SpanKind.SERVER or not self._is_shared_with_client_span(span_id):
                continue
            try:
                new_id = self._make_unique_span_id()
            except TooManySpansError:
                continue
            old_to_new[span_id] = new_id
            parent = span.parent_span_id or bytes(_ID_WIDTH)
            # The previously shared ID becomes the parent.
            span.parent_span_id = _write_id(parent, span_id)
            span.span_id = _write_id(span.span_id, new_id)
        self._swap_parent_ids(old_to_new)

    def _swap_parent_ids(self, old_to_new: dict[int, int]) -> None:
        if not old_to_new:
            return
        for span in self.trace.all_spans():
            if not span.parent_span_id:
                continue
            new_parent = old_to_new.get(_read_id(span.parent_span_id))
            if new_parent is not None and _read_id(span.span_id) != new_parent:
                span.parent_span_id = _write_id(span.parent_span_id, new_parent)

    def _make_unique_span_id(self) -> int:
        candidate = self.max_used_id + 1
        while candidate < MAX_SPAN_ID:
            if candidate not in self._spans_by_id:
                self.max_used_id = candidate
                return candidate
            candidate += 1
        raise TooManySpansError(WARNING_TOO_MANY_SPANS)


def dedupe_span_ids(trace: Trace) -> Trace:
    """Deduplicate shared client/server span IDs in a trace, in place."""
    return SpanIDDeduper(trace).dedupe()