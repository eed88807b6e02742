"""Distributor configuration and its default receivers."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

DISTRIBUTOR_RING_KEY = "distributor"

_DEFAULT_RECEIVERS: dict[str, Any] = {
    "jaeger": {
        "protocols": {
            "grpc": None,
            "thrift_http": None,
        },
    },
    "otlp": {
        "protocols": {
            "grpc": None,
        },
    },
}


def default_receivers() -> dict[str, Any]:
    """Return a fresh copy of the receivers used when none are configured."""
    return copy.deepcopy(_DEFAULT_RECEIVERS)


@dataclass
class DistributorConfig:
    """Settings for a distributor."""

    receivers: dict[str, Any] = field(default_factory=dict)
    override_ring_key: str = DISTRIBUTOR_RING_KEY
    log_received_traces: bool = False
    extend_writes: bool = True
    ring_kv_store: str = "memberlist"
    ring_heartbeat_timeout: timedelta = timedelta(minutes=5)

    def receivers_or_default(self) -> dict[str, Any]:
        """Return the configured receivers, or the defaults if none are set."""
        return self.receivers if self.receivers else default_receivers()