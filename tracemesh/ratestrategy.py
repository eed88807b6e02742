"""Ingestion rate limit strategies, local or shared across distributors."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

LOCAL_STRATEGY = "local"
GLOBAL_STRATEGY = "global"


@dataclass
class Limits:
    """Per-tenant ingestion limits."""

    ingestion_rate_limit_bytes: float
    ingestion_burst_size_bytes: int
    ingestion_rate_strategy: str = LOCAL_STRATEGY

    def __post_init__(self) -> None:
        if self.ingestion_rate_strategy not in (LOCAL_STRATEGY, GLOBAL_STRATEGY):
            raise ValueError(
                f"unknown ingestion rate strategy {self.ingestion_rate_strategy!r}"
            )


class ReadLifecycler(Protocol):
    """Read access to the distributor ring membership."""

    def healthy_instances_count(self) -> int: ...


class LocalStrategy:
    """Applies the configured limits to this distributor alone."""

    def __init__(self, limits: Limits) -> None:
        self.limits = limits

    def limit(self, user_id: str) -> float:
        return float(self.limits.ingestion_rate_limit_bytes)

    def burst(self, user_id: str) -> int:
        return self.limits.ingestion_burst_size_bytes


class GlobalStrategy:
    """Shares the configured rate limit evenly across healthy distributors."""

    def __init__(self, limits: Limits, ring: ReadLifecycler) -> None:
        self.limits = limits
        self.ring = ring

    def limit(self, user_id: str) -> float:
        count = self.ring.healthy_instances_count()
        rate = float(self.limits.ingestion_rate_limit_bytes)
        return rate if count == 0 else rate / count

    def burst(self, user_id: str) -> int:
        # Burst keeps its meaning under the global strategy.
        return self.limits.ingestion_burst_size_bytes