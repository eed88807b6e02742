"""Trace checker: generates deterministic traces and verifies them on read."""

from __future__ import annotations

import argparse
import logging
import random
import re
import string
from collections import Counter
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional

from tracemesh.trace import Trace, format_trace_id, has_missing_spans

NAMESPACE = "tempo_vulture"

_LETTERS = string.ascii_lowercase + string.ascii_uppercase

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TraceMetrics:
    """Counts of what was found while inspecting traces."""

    requested: int = 0
    request_failed: int = 0
    not_found: int = 0
    missing_spans: int = 0

    def add(self, other: TraceMetrics) -> TraceMetrics:
        """Return the field-wise sum of two metric sets."""
        return TraceMetrics(
            requested=self.requested + other.requested,
            request_failed=self.request_failed + other.request_failed,
            not_found=self.not_found + other.not_found,
            missing_spans=self.missing_spans + other.missing_spans,
        )


@dataclass
class VultureConfig:
    """Command-line settings."""

    prometheus_path: str = "/metrics"
    prometheus_listen_address: str = ":80"
    tempo_query_url: str = ""
    tempo_push_url: str = ""
    tempo_org_id: str = ""
    tempo_write_backoff_duration: timedelta = timedelta(seconds=15)
    tempo_read_backoff_duration: timedelta = timedelta(seconds=30)
    tempo_retention_duration: timedelta = timedelta(hours=336)


class TraceNotFoundError(Exception):
    """The queried trace does not exist."""


def generate_random_int(rng: random.Random, low: int, high: int) -> int:
    """Return a random integer in (low, high)."""
    if high - low < 2:
        raise ValueError(f"empty range ({low}, {high})")
    while True:
        number = low + rng.randrange(high - low)
        if number != low:
            return number


def generate_random_string(rng: random.Random) -> str:
    """Return a random string of ASCII letters, 6 to 19 long."""
    length = generate_random_int(rng, 5, 20)
    return "".join(rng.choice(_LETTERS) for _ in range(length))


def generate_random_tags(rng: random.Random) -> list[tuple[str, str]]:
    """Return 2 to 4 random (key, value) string tags."""
    count = generate_random_int(rng, 1, 5)
    tags = []
    for _ in range(count):
        value = generate_random_string(rng)
        tags.append((generate_random_string(rng), value))
    return tags


def seed_for_time(timestamp: float, interval: int) -> int:
    """Round a unix timestamp down to a multiple of interval."""
    if interval <= 0:
        raise ValueError("interval must be positive")
    return (int(timestamp) // interval) * interval


def _trace_id_halves(seed: int) -> tuple[int, int]:
    rng = random.Random(seed)
    return rng.getrandbits(63), rng.getrandbits(63)


def trace_id_for_seed(seed: int) -> str:
    """Return the hex trace ID that a given seed always produces."""
    high, low = _trace_id_halves(seed)
    return format_trace_id(high, low)


def analyze_trace(trace: Trace) -> TraceMetrics:
    """Inspect a retrieved trace for emptiness and broken parent links."""
    not_found = 0
    missing = 0
    if not trace.batches:
        logger.error("trace contains 0 batches")
        not_found = 1
    if has_missing_spans(trace):
        logger.error("trace has missing spans")
        missing = 1
    return TraceMetrics(requested=1, not_found=not_found, missing_spans=missing)


def _query(
    fetch: Callable[[str], Trace], trace_id: str
) -> tuple[TraceMetrics, Optional[Exception]]:
    logger.info("querying Tempo trace_id=%s", trace_id)
    try:
        trace = fetch(trace_id)
    except TraceNotFoundError as exc:
        logger.error("error querying Tempo: %s", exc)
        return TraceMetrics(requested=1, not_found=1), exc
    except Exception as exc:  # any transport or decoding failure counts
        logger.error("error querying Tempo: %s", exc)
        return TraceMetrics(requested=1, request_failed=1), exc
    return analyze_trace(trace), None


def query_and_analyze(fetch: Callable[[str], Trace], trace_id: str) -> TraceMetrics:
    """Fetch a trace with the given callable and count what went wrong."""
    metrics, _ = _query(fetch, trace_id)
    return metrics


@dataclass
class _VultureMetrics:
    error_total: int = 0
    traces_inspected: int = 0
    trace_errors: Counter = field(default_factory=Counter)

    def observe(self, metrics: TraceMetrics, failed: bool) -> None:
        if failed:
            self.error_total += 1
        self.traces_inspected += metrics.requested
        self.trace_errors["requestfailed"] += metrics.request_failed
        self.trace_errors["notfound"] += metrics.not_found
        self.trace_errors["missingspans"] += metrics.missing_spans

    def exposition(self) -> str:
        lines = [
            f"# HELP {NAMESPACE}_error_total tempo vulture errors",
            f"# TYPE {NAMESPACE}_error_total counter",
            f"{NAMESPACE}_error_total {self.error_total}",
            f"# HELP {NAMESPACE}_trace_total total number of traces inspected by tempo vulture",
            f"# TYPE {NAMESPACE}_trace_total counter",
            f"{NAMESPACE}_trace_total {self.traces_inspected}",
            f"# HELP {NAMESPACE}_trace_error_total total number of issues with traces",
            f"# TYPE {NAMESPACE}_trace_error_total counter",
        ]
        lines.extend(
            f'{NAMESPACE}_trace_error_total{{error="{name}"}} {count}'
            for name, count in sorted(self.trace_errors.items())
        )
        return "\n".join(lines) + "\n"


_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def _parse_duration(text: str) -> timedelta:
    body = text
    sign = 1
    if body[:1] in "+-" and body:
        sign = -1 if body[0] == "-" else 1
        body = body[1:]
    if body == "0":
        return timedelta(0)
    if not body:
        raise argparse.ArgumentTypeError(f"invalid duration {text!r}")
    total = 0.0
    pos = 0
    while pos < len(body):
        match = _DURATION_PART.match(body, pos)
        if match is None:
            raise argparse.ArgumentTypeError(f"invalid duration {text!r}")
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()
    return timedelta(seconds=sign * total)


def parse_args(argv: Optional[Sequence[str]] = None) -> VultureConfig:
    """Parse command-line flags into a VultureConfig."""
    defaults = VultureConfig()
    parser = argparse.ArgumentParser(prog="tempo-vulture")

    def add(name: str, help_text: str, default, kind=str) -> None:
        parser.add_argument(
            f"-{name}",
            f"--{name}",
            dest=name.replace("-", "_"),
            default=default,
            type=kind,
            help=help_text,
        )

    add("prometheus-path", "The path to publish Prometheus metrics to.", defaults.prometheus_path)
    add(
        "prometheus-listen-address",
        "The address to listen on for Prometheus scrapes.",
        defaults.prometheus_listen_address,
    )
    add("tempo-query-url", "The URL (scheme://hostname) at which to query Tempo.", "")
    add("tempo-push-url", "The URL (scheme://hostname:port) at which to push traces to Tempo.", "")
    add("tempo-org-id", "The orgID to query in Tempo", "")
    add(
        "tempo-write-backoff-duration",
        "The amount of time to pause between write Tempo calls",
        defaults.tempo_write_backoff_duration,
        _parse_duration,
    )
    add(
        "tempo-read-backoff-duration",
        "The amount of time to pause between read Tempo calls",
        defaults.tempo_read_backoff_duration,
        _parse_duration,
    )
    add(
        "tempo-retention-duration",
        "The block retention that Tempo is using",
        defaults.tempo_retention_duration,
        _parse_duration,
    )
    ns = parser.parse_args(argv)
    return VultureConfig(**vars(ns))