import pytest

from tracemesh.ratestrategy import (
    GLOBAL_STRATEGY,
    LOCAL_STRATEGY,
    GlobalStrategy,
    Limits,
    LocalStrategy,
)


class _Ring:
    def __init__(self, count):
        self.count = count

    def healthy_instances_count(self):
        return self.count


def test_local_returns_configured_limits():
    limits = Limits(
        ingestion_rate_limit_bytes=5,
        ingestion_burst_size_bytes=2,
        ingestion_rate_strategy=LOCAL_STRATEGY,
    )
    strategy = LocalStrategy(limits)
    assert strategy.limit("test") == 5
    assert strategy.burst("test") == 2


def test_global_shares_limit_across_distributors():
    limits = Limits(
        ingestion_rate_limit_bytes=5,
        ingestion_burst_size_bytes=2,
        ingestion_rate_strategy=GLOBAL_STRATEGY,
    )
    strategy = GlobalStrategy(limits, _Ring(2))
    assert strategy.limit("test") == 2.5
    assert strategy.burst("test") == 2


def test_global_with_no_healthy_distributors():
    limits = Limits(5, 2, GLOBAL_STRATEGY)
    assert GlobalStrategy(limits, _Ring(0)).limit("test") == 5


def test_unknown_strategy_rejected():
    with pytest.raises(ValueError):
        Limits(5, 2, "sideways")