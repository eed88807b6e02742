"""Query sharding: splitting trace lookups over block ID ranges and merging results."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

MIN_QUERY_SHARDS = 2
MAX_QUERY_SHARDS = 256

QUERIER_PREFIX = "/querier"
QUERY_DELIMITER = "?"

BLOCK_START_KEY = "blockStart"
BLOCK_END_KEY = "blockEnd"
QUERY_MODE_KEY = "mode"
QUERY_MODE_INGESTERS = "ingesters"
QUERY_MODE_BLOCKS = "blocks"

STATUS_OK = 200
STATUS_NOT_FOUND = 404
STATUS_INTERNAL_SERVER_ERROR = 500

_BOUNDARY_STEP_BASE = 0xFF
_MAX_UINT64 = 0xFFFFFFFFFFFFFFFF


@dataclass
class FrontendConfig:
    """Query frontend settings."""

    compress_responses: bool = True
    downstream_url: str = ""
    log_queries_longer_than: float = 0.0
    max_outstanding_per_tenant: int = 100
    query_shards: int = 2


@dataclass
class Response:
    """An HTTP-like response from a querier shard or the frontend."""

    status_code: int
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)
    content_length: int = 0


def create_block_boundaries(query_shards: int) -> list[bytes]:
    """Split the block ID space into query_shards ranges; return the 16-byte edges."""
    if query_shards < 0:
        raise ValueError(f"query shards must not be negative: {query_shards}")
    if query_shards == 0:
        return []
    step = _BOUNDARY_STEP_BASE // query_shards
    boundaries = [
        (step * i).to_bytes(8, "little") + bytes(8) for i in range(query_shards)
    ]
    boundaries.append(_MAX_UINT64.to_bytes(8, "little") * 2)
    return boundaries


def shard_query_params(
    params: Sequence[tuple[str, str]], query_shards: int
) -> list[list[tuple[str, str]]]:
    """Return the query parameters for each shard; the last shard queries ingesters."""
    if query_shards < 1:
        raise ValueError(f"query shards must be positive: {query_shards}")
    boundaries = create_block_boundaries(query_shards - 1)
    shards = []
    for i in range(query_shards):
        shard = list(params)
        if i == query_shards - 1:
            shard.append((QUERY_MODE_KEY, QUERY_MODE_INGESTERS))
        else:
            shard.append((BLOCK_START_KEY, boundaries[i].hex()))
            shard.append((BLOCK_END_KEY, boundaries[i + 1].hex()))
            shard.append((QUERY_MODE_KEY, QUERY_MODE_BLOCKS))
        shards.append(shard)
    return shards


def validate_query_shards(query_shards: int) -> int:
    """Return query_shards if it lies in the allowed range, else raise ValueError."""
    if not MIN_QUERY_SHARDS <= query_shards <= MAX_QUERY_SHARDS:
        raise ValueError(
            f"frontend query shards should be between {MIN_QUERY_SHARDS} "
            f"and {MAX_QUERY_SHARDS} (both inclusive)"
        )
    return query_shards


def merge_responses(
    responses: Sequence[Response], combine: Callable[[bytes, bytes], bytes]
) -> Response:
    """Combine shard responses into one.

    Successful bodies are merged with combine. If every shard missed, the
    result is 404; any other failing shard makes the result a 500 carrying
    that shard's body.
    """
    err_code = STATUS_OK
    err_body = b""
    combined = b""
    misses = 0
    for response in responses:
        if response.status_code == STATUS_OK:
            if not combined:
                combined = response.body
            else:
                try:
                    combined = combine(combined, response.body)
                except Exception as exc:
                    raise RuntimeError("error combining traces at query frontend") from exc
        elif response.status_code != STATUS_NOT_FOUND:
            err_code = response.status_code
            err_body = response.body
        else:
            misses += 1

    if misses == len(responses):
        return Response(status_code=STATUS_NOT_FOUND, body=b"trace not found in Tempo")

    if err_code == STATUS_OK:
        return Response(
            status_code=STATUS_OK, body=combined, content_length=len(combined)
        )

    return Response(status_code=STATUS_INTERNAL_SERVER_ERROR, body=err_body)