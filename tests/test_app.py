import pytest

from tracemesh.app import (
    API_PATH_ECHO,
    API_PATH_TRACES,
    Target,
    add_http_api_prefix,
    is_user_visible,
    module_dependencies,
    resolve_order,
    validate_query_frontend,
)


def test_all_depends_on_every_user_facing_module():
    deps = module_dependencies()
    assert set(deps[Target.ALL]) == {
        Target.COMPACTOR,
        Target.QUERY_FRONTEND,
        Target.QUERIER,
        Target.INGESTER,
        Target.DISTRIBUTOR,
    }
    assert deps[Target.RING] == (Target.SERVER, Target.MEMBERLIST_KV)


def test_module_dependencies_returns_a_copy():
    first = module_dependencies()
    first[Target.SERVER] = (Target.ALL,)
    assert module_dependencies()[Target.SERVER] == ()


@pytest.mark.parametrize("target", list(Target))
def test_resolve_order_places_dependencies_first(target):
    order = resolve_order(target)
    deps = module_dependencies()
    assert order[-1] == target
    assert len(order) == len(set(order))
    for position, module in enumerate(order):
        for dependency in deps[module]:
            assert dependency in order[:position]


def test_resolve_all_covers_every_module():
    assert set(resolve_order("all")) == set(Target)


def test_resolve_module_without_dependencies():
    assert resolve_order("server") == [Target.SERVER]


def test_resolve_unknown_module_raises():
    with pytest.raises(ValueError, match="unrecognised module"):
        resolve_order("bogus")


@pytest.mark.parametrize(
    "module,visible",
    [
        ("server", False),
        ("memberlist-kv", False),
        ("ring", False),
        ("overrides", False),
        ("store", False),
        ("distributor", True),
        ("query-frontend", True),
        (Target.ALL, True),
    ],
)
def test_is_user_visible(module, visible):
    assert is_user_visible(module) is visible


def test_is_user_visible_unknown_raises():
    with pytest.raises(ValueError):
        is_user_visible("nope")


def test_api_prefix_empty_leaves_path():
    assert add_http_api_prefix("", API_PATH_TRACES) == "/api/traces/{traceID}"


def test_api_prefix_joined_and_cleaned():
    joined = add_http_api_prefix("/tempo", API_PATH_ECHO)
    assert joined == "/tempo/api/echo"
    assert add_http_api_prefix("/tempo/", API_PATH_ECHO) == joined
    assert add_http_api_prefix("//tempo//", API_PATH_ECHO) == joined


@pytest.mark.parametrize("shards", [2, 256])
def test_validate_query_frontend_accepts_bounds(shards):
    assert validate_query_frontend(shards) == shards


@pytest.mark.parametrize("shards", [0, 1, 257])
def test_validate_query_frontend_rejects_out_of_range(shards):
    with pytest.raises(ValueError, match="between 2 and 256"):
        validate_query_frontend(shards)