"""Root application configuration, compactor settings and readiness reporting."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sized
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

import yaml

from tracemesh.blocks import format_duration
from tracemesh.distributor_config import DistributorConfig
from tracemesh.querysharding import FrontendConfig

logger = logging.getLogger(__name__)

ALL_TARGET = "all"
COMPACTOR_RING_KEY = "compactor"
RUNNING_STATE = "Running"

DEFAULT_FLUSH_SIZE_BYTES = 30 * 1024 * 1024
DEFAULT_RETENTION_CONCURRENCY = 10
DEFAULT_ITERATOR_BUFFER_SIZE = 1000
DEFAULT_BLOCKLIST_POLL_CONCURRENCY = 50

S3_MIN_FLUSH_SIZE_BYTES = 5242880

WARN_COMPLETE_BLOCK_TIMEOUT = "ingester.complete_block_timeout < storage.trace.blocklist_poll"
WARN_BLOCK_RETENTION = "compactor.compaction.compacted_block_timeout < storage.trace.blocklist_poll"
WARN_RETENTION_CONCURRENCY = (
    "c.Compactor.Compactor.RetentionConcurrency must be greater than zero. Using default."
)
WARN_S3_FLUSH_SIZE = "c.Compactor.Compactor.FlushSizeBytes < 5242880"
WARN_POLL_CONCURRENCY = (
    "c.StorageConfig.Trace.BlocklistPollConcurrency must be greater than zero. Using default."
)


@dataclass
class CompactorConfig:
    """Compaction and retention settings."""

    chunk_size_bytes: int = 10 * 1024 * 1024
    flush_size_bytes: int = DEFAULT_FLUSH_SIZE_BYTES
    compacted_block_retention: timedelta = timedelta(hours=1)
    retention_concurrency: int = DEFAULT_RETENTION_CONCURRENCY
    iterator_buffer_size: int = DEFAULT_ITERATOR_BUFFER_SIZE
    block_retention: timedelta = timedelta(days=14)
    max_compaction_objects: int = 6_000_000
    max_block_bytes: int = 100 * 1024 * 1024 * 1024
    max_compaction_range: timedelta = timedelta(hours=4)
    ring_kv_store: str = ""  # empty means the compactor is not sharded
    override_ring_key: str = COMPACTOR_RING_KEY

    @property
    def is_sharded(self) -> bool:
        return self.ring_kv_store != ""

    def _as_dict(self) -> dict[str, Any]:
        return {
            "ring": {"kvstore": {"store": self.ring_kv_store}},
            "compaction": {
                "chunk_size_bytes": self.chunk_size_bytes,
                "flush_size_bytes": self.flush_size_bytes,
                "compacted_block_retention": format_duration(
                    self.compacted_block_retention.total_seconds()
                ),
                "retention_concurrency": self.retention_concurrency,
                "iterator_buffer_size": self.iterator_buffer_size,
                "block_retention": format_duration(self.block_retention.total_seconds()),
                "max_compaction_objects": self.max_compaction_objects,
                "max_block_bytes": self.max_block_bytes,
                "compaction_window": format_duration(
                    self.max_compaction_range.total_seconds()
                ),
            },
            "override_ring_key": self.override_ring_key,
        }


@dataclass
class AppConfig:
    """Root configuration for the whole application."""

    target: str = ALL_TARGET
    auth_enabled: bool = False
    multitenancy_enabled: bool = False
    http_api_prefix: str = ""
    http_listen_port: int = 80
    grpc_listen_port: int = 9095
    distributor: DistributorConfig = field(default_factory=DistributorConfig)
    frontend: FrontendConfig = field(default_factory=FrontendConfig)
    compactor: CompactorConfig = field(default_factory=CompactorConfig)
    ingester_complete_block_timeout: timedelta = timedelta(minutes=15)
    storage_backend: str = ""
    blocklist_poll: timedelta = timedelta(minutes=5)
    blocklist_poll_concurrency: int = DEFAULT_BLOCKLIST_POLL_CONCURRENCY

    def multitenancy_is_enabled(self) -> bool:
        """Return True if either multitenancy or the deprecated auth flag is on."""
        return self.multitenancy_enabled or self.auth_enabled

    def check_config(self) -> list[str]:
        """Log and return a warning for every suspect combination of settings."""
        warnings: list[str] = []

        def warn(message: str, detail: str) -> None:
            logger.warning("%s: %s", message, detail)
            warnings.append(message)

        if self.ingester_complete_block_timeout < self.blocklist_poll:
            warn(
                WARN_COMPLETE_BLOCK_TIMEOUT,
                "You may receive 404s between the time the ingesters have flushed a "
                "trace and the querier is aware of the new block",
            )
        if self.compactor.block_retention < self.blocklist_poll:
            warn(
                WARN_BLOCK_RETENTION,
                "Queriers and Compactors may attempt to read a block that no longer exists",
            )
        if self.compactor.retention_concurrency == 0:
            warn(WARN_RETENTION_CONCURRENCY, f"default={DEFAULT_RETENTION_CONCURRENCY}")
        if (
            self.storage_backend == "s3"
            and self.compactor.flush_size_bytes < S3_MIN_FLUSH_SIZE_BYTES
        ):
            warn(
                WARN_S3_FLUSH_SIZE,
                "Compaction flush size should be 5MB or higher for S3 backend",
            )
        if self.blocklist_poll_concurrency == 0:
            warn(WARN_POLL_CONCURRENCY, f"default={DEFAULT_BLOCKLIST_POLL_CONCURRENCY}")
        return warnings

    def to_yaml(self) -> str:
        """Serialise the configuration as YAML, as served on the config endpoint."""
        data: dict[str, Any] = {}
        if self.target:
            data["target"] = self.target
        if self.auth_enabled:
            data["auth_enabled"] = True
        if self.multitenancy_enabled:
            data["multitenancy_enabled"] = True
        data["http_api_prefix"] = self.http_api_prefix
        data["server"] = {
            "http_listen_port": self.http_listen_port,
            "grpc_listen_port": self.grpc_listen_port,
        }
        data["distributor"] = {
            "ring": {
                "kvstore": {"store": self.distributor.ring_kv_store},
                "heartbeat_timeout": format_duration(
                    self.distributor.ring_heartbeat_timeout.total_seconds()
                ),
            },
            "receivers": self.distributor.receivers,
            "override_ring_key": self.distributor.override_ring_key,
            "log_received_traces": self.distributor.log_received_traces,
            "extend_writes": self.distributor.extend_writes,
        }
        data["query_frontend"] = {
            "compress_responses": self.frontend.compress_responses,
            "downstream_url": self.frontend.downstream_url,
            "log_queries_longer_than": format_duration(self.frontend.log_queries_longer_than),
            "max_outstanding_per_tenant": self.frontend.max_outstanding_per_tenant,
            "query_shards": self.frontend.query_shards,
        }
        data["compactor"] = self.compactor._as_dict()
        data["ingester"] = {
            "complete_block_timeout": format_duration(
                self.ingester_complete_block_timeout.total_seconds()
            )
        }
        data["storage"] = {
            "trace": {
                "backend": self.storage_backend,
                "blocklist_poll": format_duration(self.blocklist_poll.total_seconds()),
                "blocklist_poll_concurrency": self.blocklist_poll_concurrency,
            }
        }
        return yaml.safe_dump(data, sort_keys=False)


def ready_message(states: Mapping[str, Sized]) -> str:
    """Return "ready" if every service is running, else a per-state count report.

    states maps a service state name to the services in that state.
    """
    healthy = all(state == RUNNING_STATE or len(members) == 0 for state, members in states.items())
    if healthy:
        return "ready"
    lines = ["Some services are not Running:\n"]
    lines.extend(f"{state}: {len(members)}\n" for state, members in states.items())
    return "".join(lines)