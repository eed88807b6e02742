"""The modules that make up the application and how they depend on each other."""

from __future__ import annotations

import enum
import posixpath
from typing import Union

from tracemesh.querysharding import validate_query_shards

API_PATH_TRACES = "/api/traces/{traceID}"
API_PATH_ECHO = "/api/echo"
QUERIER_PATH_PREFIX = "/querier"


class Target(str, enum.Enum):
    """A module that can be started, alone or as a dependency of another."""

    RING = "ring"
    OVERRIDES = "overrides"
    SERVER = "server"
    DISTRIBUTOR = "distributor"
    INGESTER = "ingester"
    QUERIER = "querier"
    QUERY_FRONTEND = "query-frontend"
    COMPACTOR = "compactor"
    STORE = "store"
    MEMBERLIST_KV = "memberlist-kv"
    ALL = "all"


_INVISIBLE = frozenset(
    {Target.SERVER, Target.MEMBERLIST_KV, Target.RING, Target.OVERRIDES, Target.STORE}
)

_DEPENDENCIES: dict[Target, tuple[Target, ...]] = {
    Target.SERVER: (),
    Target.OVERRIDES: (),
    Target.STORE: (),
    Target.MEMBERLIST_KV: (Target.SERVER,),
    Target.QUERY_FRONTEND: (Target.SERVER,),
    Target.RING: (Target.SERVER, Target.MEMBERLIST_KV),
    Target.DISTRIBUTOR: (Target.RING, Target.SERVER, Target.OVERRIDES),
    Target.INGESTER: (Target.STORE, Target.SERVER, Target.OVERRIDES, Target.MEMBERLIST_KV),
    Target.QUERIER: (Target.STORE, Target.RING),
    Target.COMPACTOR: (Target.STORE, Target.SERVER, Target.OVERRIDES, Target.MEMBERLIST_KV),
    Target.ALL: (
        Target.COMPACTOR,
        Target.QUERY_FRONTEND,
        Target.QUERIER,
        Target.INGESTER,
        Target.DISTRIBUTOR,
    ),
}


def _as_target(module: Union[str, Target]) -> Target:
    if isinstance(module, Target):
        return module
    try:
        return Target(module)
    except ValueError:
        raise ValueError(f"unrecognised module name: {module}") from None


def module_dependencies() -> dict[Target, tuple[Target, ...]]:
    """Return every module mapped to the modules it directly depends on."""
    return dict(_DEPENDENCIES)


def is_user_visible(module: Union[str, Target]) -> bool:
    """Return False for internal modules that are not meant to be targeted directly."""
    return _as_target(module) not in _INVISIBLE


def resolve_order(target: Union[str, Target]) -> list[Target]:
    """Return the modules needed for target, each after its dependencies, target last."""
    order: list[Target] = []
    seen: set[Target] = set()

    def visit(module: Target) -> None:
        if module in seen:
            return
        seen.add(module)
        for dependency in _DEPENDENCIES[module]:
            visit(dependency)
        order.append(module)

    visit(_as_target(target))
    return order


def add_http_api_prefix(prefix: str, api_path: str) -> str:
    """Join the configured API prefix and an API path into a clean URL path."""
    parts = [part for part in (prefix, api_path) if part]
    if not parts:
        return ""
    cleaned = posixpath.normpath("/".join(parts))
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


def validate_query_frontend(query_shards: int) -> int:
    """Check the query frontend's shard count; raise ValueError if out of range."""
    return validate_query_shards(query_shards)