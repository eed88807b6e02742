import uuid
from datetime import datetime, timedelta, timezone

import pytest

from tracemesh.blockmeta import BlockMeta, get_meta, sort_by_end_time

HOUR = timedelta(hours=1)


def _at(seconds):
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def test_get_meta_prefers_live_meta():
    live = BlockMeta(block_id=uuid.uuid4(), end_time=_at(3600 * 5))
    compacted = BlockMeta(block_id=uuid.uuid4(), end_time=_at(3600 * 9))
    unified = get_meta(live, compacted, HOUR)
    assert unified.meta is live
    assert unified.compacted is False
    assert unified.window == 5


def test_get_meta_uses_compacted_meta():
    compacted = BlockMeta(
        block_id=uuid.uuid4(), end_time=_at(3600 * 9), compacted_time=_at(3600 * 10)
    )
    unified = get_meta(None, compacted, HOUR)
    assert unified.meta is compacted
    assert unified.compacted is True
    assert unified.compacted_time == compacted.compacted_time


def test_get_meta_placeholder():
    unified = get_meta(None, None, HOUR)
    assert unified.window == -1
    assert unified.meta.total_objects == -1
    assert unified.meta.block_id == uuid.UUID(int=0)
    assert unified.compacted is False


def test_window_within_one_range_is_constant():
    a = get_meta(BlockMeta(end_time=_at(3600 * 5)), None, HOUR)
    b = get_meta(BlockMeta(end_time=_at(3600 * 5 + 3599)), None, HOUR)
    c = get_meta(BlockMeta(end_time=_at(3600 * 6)), None, HOUR)
    assert a.window == b.window
    assert c.window == a.window + 1


def test_zero_window_range_rejected():
    with pytest.raises(ValueError):
        get_meta(BlockMeta(end_time=_at(10)), None, timedelta(0))


def test_sort_by_end_time():
    items = [
        get_meta(BlockMeta(end_time=_at(t)), None, HOUR) for t in (300, 100, 200)
    ]
    ordered = sort_by_end_time(items)
    ends = [r.meta.end_time for r in ordered]
    assert ends == sorted(ends)
    assert len(ordered) == len(items)
    assert ordered[0] is items[1]