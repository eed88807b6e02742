"""Distributor: splits incoming span batches by trace and forwards them to ingesters."""

from __future__ import annotations

import enum
import logging
import math
import time
from collections import Counter
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Optional, Protocol

from tracemesh.distributor_config import DistributorConfig
from tracemesh.trace import InstrumentationLibrarySpans, ResourceSpans, Trace

logger = logging.getLogger(__name__)

ERROR_PREFIX_LIVE_TRACES_EXCEEDED = "LIVE_TRACES_EXCEEDED:"
ERROR_PREFIX_TRACE_TOO_LARGE = "TRACE_TOO_LARGE:"
ERROR_PREFIX_RATE_LIMITED = "RATE_LIMITED:"

TRACE_ID_LENGTH = 16
DEFAULT_RECHECK_PERIOD = 10.0

_FNV32_OFFSET = 2166136261
_FNV32_PRIME = 16777619
_MASK32 = 0xFFFFFFFF


class DiscardReason(str, enum.Enum):
    """Why spans were dropped by the distributor."""

    RATE_LIMITED = "rate_limited"
    TRACE_TOO_LARGE = "trace_too_large"
    LIVE_TRACES_EXCEEDED = "live_traces_exceeded"
    INTERNAL_ERROR = "internal_error"


class InvalidTraceIDError(ValueError):
    """A span carried a trace ID that is not 128 bits long."""


class RateLimitedError(Exception):
    """The tenant exceeded its ingestion rate limit."""


class RateStrategy(Protocol):
    """Supplies a tenant's rate limit and burst size."""

    def limit(self, user_id: str) -> float: ...

    def burst(self, user_id: str) -> int: ...


class Sender(Protocol):
    """Delivers per-trace payloads to the ingesters."""

    def __call__(
        self,
        user_id: str,
        keys: list[int],
        traces: list[Trace],
        ids: list[bytes],
    ) -> None: ...


@dataclass
class _Bucket:
    limit: float
    burst: int
    tokens: float
    last: float
    recheck_at: float


class RateLimiter:
    """Per-tenant token bucket whose limits are re-read from a strategy periodically."""

    def __init__(
        self, strategy: RateStrategy, recheck_period: float = DEFAULT_RECHECK_PERIOD
    ) -> None:
        self.strategy = strategy
        self.recheck_period = recheck_period
        self._buckets: dict[str, _Bucket] = {}

    def _bucket(self, now: float, user_id: str) -> _Bucket:
        bucket = self._buckets.get(user_id)
        if bucket is None:
            burst = self.strategy.burst(user_id)
            bucket = _Bucket(
                limit=self.strategy.limit(user_id),
                burst=burst,
                tokens=float(burst),
                last=now,
                recheck_at=now + self.recheck_period,
            )
            self._buckets[user_id] = bucket
        elif now >= bucket.recheck_at:
            self._refill(bucket, now)
            bucket.limit = self.strategy.limit(user_id)
            bucket.burst = self.strategy.burst(user_id)
            bucket.tokens = min(bucket.tokens, float(bucket.burst))
            bucket.recheck_at = now + self.recheck_period
        return bucket

    @staticmethod
    def _refill(bucket: _Bucket, now: float) -> None:
        if now <= bucket.last:
            return
        if math.isinf(bucket.limit):
            bucket.tokens = float(bucket.burst)
        else:
            elapsed = now - bucket.last
            bucket.tokens = min(float(bucket.burst), bucket.tokens + elapsed * bucket.limit)
        bucket.last = now

    def allow_n(self, now: float, user_id: str, n: int) -> bool:
        """Take n tokens from the tenant's bucket at time now, if available."""
        bucket = self._bucket(now, user_id)
        if math.isinf(bucket.limit):
            return True
        self._refill(bucket, now)
        if n > bucket.burst or bucket.tokens < n:
            return False
        bucket.tokens -= n
        return True

    def limit(self, now: float, user_id: str) -> float:
        """Return the rate limit currently in force for the tenant."""
        return self._bucket(now, user_id).limit


def valid_trace_id(trace_id: bytes) -> bool:
    """Return True if the trace ID is 128 bits long."""
    return len(trace_id) == TRACE_ID_LENGTH


def _fnv1_update(h: int, data: bytes) -> int:
    for byte in data:
        h = (h * _FNV32_PRIME) & _MASK32
        h ^= byte
    return h


def _fnv1a_add(h: int, text: str) -> int:
    for byte in text.encode("utf-8"):
        h ^= byte
        h = (h * _FNV32_PRIME) & _MASK32
    return h


def token_for(user_id: str, trace_id: bytes) -> int:
    """Return the 32-bit ring token for a tenant's trace (FNV-1 of tenant then ID)."""
    h = _fnv1_update(_FNV32_OFFSET, user_id.encode("utf-8"))
    return _fnv1_update(h, trace_id)


def count_spans(batch: ResourceSpans) -> int:
    """Return the number of spans in a batch."""
    return sum(len(ils.spans) for ils in batch.instrumentation_library_spans)


def requests_by_trace_id(
    batch: ResourceSpans, user_id: str, span_count: int
) -> tuple[list[int], list[Trace], list[bytes]]:
    """Split a batch into one trace per trace ID, with its ring key and ID.

    span_count is a sizing hint only. Raises InvalidTraceIDError when a span
    has a trace ID that is not 128 bits.
    """
    traces_by_key: dict[int, tuple[bytes, Trace]] = {}
    spans_by_ils: dict[int, InstrumentationLibrarySpans] = {}

    for ils in batch.instrumentation_library_spans:
        for span in ils.spans:
            trace_id = span.trace_id
            if not valid_trace_id(trace_id):
                raise InvalidTraceIDError("trace ids must be 128 bit")

            trace_key = token_for(user_id, trace_id)
            ils_key = trace_key
            library = ils.instrumentation_library
            if library is not None:
                ils_key = _fnv1a_add(ils_key, library.name)
                ils_key = _fnv1a_add(ils_key, library.version)

            existing_ils = spans_by_ils.get(ils_key)
            if existing_ils is not None:
                # Already attached to a trace; just extend it.
                existing_ils.spans.append(span)
                continue

            existing_ils = InstrumentationLibrarySpans(
                instrumentation_library=library, spans=[span]
            )
            spans_by_ils[ils_key] = existing_ils

            entry = traces_by_key.get(trace_key)
            if entry is None:
                entry = (trace_id, Trace())
                traces_by_key[trace_key] = entry
            entry[1].batches.append(
                ResourceSpans(
                    resource=batch.resource,
                    instrumentation_library_spans=[existing_ils],
                )
            )

    keys = list(traces_by_key)
    traces = [trace for _, trace in traces_by_key.values()]
    ids = [trace_id for trace_id, _ in traces_by_key.values()]
    return keys, traces, ids


def discard_reason(message: str) -> DiscardReason:
    """Classify an ingester error message into a discard reason."""
    if message.startswith(ERROR_PREFIX_LIVE_TRACES_EXCEEDED):
        return DiscardReason.LIVE_TRACES_EXCEEDED
    if message.startswith(ERROR_PREFIX_TRACE_TOO_LARGE):
        return DiscardReason.TRACE_TOO_LARGE
    return DiscardReason.INTERNAL_ERROR


def _estimate_size(batch: Optional[ResourceSpans]) -> int:
    """Approximate encoded size of a batch in bytes."""
    if batch is None:
        return 0
    size = 0
    for ils in batch.instrumentation_library_spans:
        library = ils.instrumentation_library
        if library is not None:
            size += len(library.name.encode()) + len(library.version.encode())
        for span in ils.spans:
            size += len(span.trace_id) + len(span.span_id) + len(span.parent_span_id)
            size += len(span.name.encode()) + 16
    return size


class Distributor:
    """Accepts span batches, enforces tenant rate limits and forwards traces."""

    def __init__(
        self,
        strategy: RateStrategy,
        sender: Sender,
        config: Optional[DistributorConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        sizer: Callable[[Optional[ResourceSpans]], int] = _estimate_size,
        recheck_period: float = DEFAULT_RECHECK_PERIOD,
    ) -> None:
        self.config = config if config is not None else DistributorConfig()
        self.sender = sender
        self.clock = clock
        self.sizer = sizer
        self.rate_limiter = RateLimiter(strategy, recheck_period)
        self.bytes_received: Counter[str] = Counter()
        self.spans_received: Counter[str] = Counter()
        self.discarded_spans: Counter[tuple[DiscardReason, str]] = Counter()
        self.traces_per_batch: list[int] = []

    def push(self, user_id: str, batch: Optional[ResourceSpans]) -> None:
        """Split a batch by trace and send it on; raises on any rejection."""
        if not user_id:
            raise ValueError("no org id")

        if self.config.log_received_traces and batch is not None:
            _log_traces(batch)

        size = self.sizer(batch)
        self.bytes_received[user_id] += size

        if batch is None:
            return
        span_count = count_spans(batch)
        if span_count == 0:
            return
        self.spans_received[user_id] += span_count

        now = self.clock()
        if not self.rate_limiter.allow_n(now, user_id, size):
            self.discarded_spans[(DiscardReason.RATE_LIMITED, user_id)] += span_count
            limit = int(self.rate_limiter.limit(now, user_id))
            raise RateLimitedError(
                f"{ERROR_PREFIX_RATE_LIMITED} ingestion rate limit ({limit} bytes) "
                f"exceeded while adding {size} bytes"
            )

        try:
            keys, traces, ids = requests_by_trace_id(batch, user_id, span_count)
        except InvalidTraceIDError:
            self.discarded_spans[(DiscardReason.INTERNAL_ERROR, user_id)] += span_count
            raise
        self.traces_per_batch.append(len(keys))

        try:
            self.sender(user_id, keys, traces, ids)
        except Exception as exc:
            self.discarded_spans[(discard_reason(str(exc)), user_id)] += span_count
            raise


def _log_traces(batch: ResourceSpans) -> None:
    for ils in batch.instrumentation_library_spans:
        for span in ils.spans:
            logger.info(
                "received spanid=%s traceid=%s", span.span_id.hex(), span.trace_id.hex()
            )


__all__: Sequence[str] = (
    "DiscardReason",
    "InvalidTraceIDError",
    "RateLimitedError",
    "RateLimiter",
    "Distributor",
    "valid_trace_id",
    "token_for",
    "count_spans",
    "requests_by_trace_id",
    "discard_reason",
)