import pytest

from tracemesh.querysharding import (
    BLOCK_END_KEY,
    BLOCK_START_KEY,
    QUERY_MODE_BLOCKS,
    QUERY_MODE_INGESTERS,
    QUERY_MODE_KEY,
    Response,
    create_block_boundaries,
    merge_responses,
    shard_query_params,
    validate_query_shards,
)


def test_create_block_boundaries_single_shard():
    assert create_block_boundaries(1) == [bytes(16), b"\xff" * 16]


def test_create_block_boundaries_multiple_shards():
    assert create_block_boundaries(4) == [
        bytes(16),
        bytes([0x3F]) + bytes(15),
        bytes([0x7E]) + bytes(15),
        bytes([0xBD]) + bytes(15),
        b"\xff" * 16,
    ]


def test_create_block_boundaries_zero_and_negative():
    assert create_block_boundaries(0) == []
    with pytest.raises(ValueError):
        create_block_boundaries(-1)


def test_shard_query_params():
    shards = shard_query_params([("a", "b")], 2)
    assert shards[0] == [
        ("a", "b"),
        (BLOCK_START_KEY, "00" * 16),
        (BLOCK_END_KEY, "ff" * 16),
        (QUERY_MODE_KEY, QUERY_MODE_BLOCKS),
    ]
    assert shards[1] == [("a", "b"), (QUERY_MODE_KEY, QUERY_MODE_INGESTERS)]


def test_shard_query_params_count_and_mode():
    shards = shard_query_params([], 5)
    assert len(shards) == 5
    modes = [dict(s)[QUERY_MODE_KEY] for s in shards]
    assert modes == [QUERY_MODE_BLOCKS] * 4 + [QUERY_MODE_INGESTERS]


@pytest.mark.parametrize("shards", [2, 100, 256])
def test_validate_query_shards_ok(shards):
    assert validate_query_shards(shards) == shards


@pytest.mark.parametrize("shards", [0, 1, 257])
def test_validate_query_shards_bad(shards):
    with pytest.raises(ValueError, match="between 2 and 256"):
        validate_query_shards(shards)


def _combine(a, b):
    return a + b"|" + b


def test_merge_ok_responses():
    merged = merge_responses(
        [Response(200, b"t1"), Response(200, b"t2"), Response(404, b"foo")], _combine
    )
    assert merged.status_code == 200
    assert merged.body == _combine(b"t1", b"t2")
    assert merged.content_length == len(merged.body)


def test_merge_5xx_with_hit():
    merged = merge_responses([Response(200, b"t1"), Response(500, b"bar")], _combine)
    assert merged.status_code == 500
    assert merged.body == b"bar"


def test_merge_5xx_with_no_hit():
    merged = merge_responses([Response(404, b"foo"), Response(500, b"bar")], _combine)
    assert merged.status_code == 500
    assert merged.body == b"bar"


def test_merge_translates_4xx_to_500():
    merged = merge_responses([Response(200, b"t1"), Response(403, b"foo")], _combine)
    assert merged.status_code == 500
    assert merged.body == b"foo"


def test_merge_all_missing():
    merged = merge_responses([Response(404, b"a"), Response(404, b"b")], _combine)
    assert merged.status_code == 404
    assert merged.body == b"trace not found in Tempo"


def test_merge_combine_failure():
    def bad(a, b):
        raise ValueError("broken")

    with pytest.raises(RuntimeError, match="combining traces"):
        merge_responses([Response(200, b"t1"), Response(200, b"t2")], bad)