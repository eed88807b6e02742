"""Command line entry point: loads configuration and checks what would be started."""

from __future__ import annotations

import argparse
import logging
import platform
import re
import sys
from collections.abc import Callable, Sequence
from datetime import timedelta
from typing import Any, Optional

import yaml

from tracemesh.app import (
    Target,
    is_user_visible,
    resolve_order,
    validate_query_frontend,
)
from tracemesh.config import AppConfig

APP_NAME = "tempo"
CONFIG_FILE_OPTION = "config.file"

VERSION = ""
BRANCH = ""
REVISION = ""

logger = logging.getLogger(__name__)

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
_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}


def _parse_duration(text: str) -> timedelta:
    body = text
    sign = 1
    if body and body[0] in "+-":
        sign = -1 if body[0] == "-" else 1
        body = body[1:]
    if body == "0":
        return timedelta(0)
    if not body:
        raise ValueError(f"invalid duration {text!r}")
    total = 0.0
    pos = 0
    while pos < len(body):
        match = _DURATION_PART.match(body, pos)
        if match is None:
            raise ValueError(f"invalid duration {text!r}")
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()
    return timedelta(seconds=sign * total)


def _parse_bool(text: str) -> bool:
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"invalid boolean {text!r}")


def _parse_uint(text: str) -> int:
    value = int(text)
    if value < 0:
        raise ValueError(f"value must not be negative: {text}")
    return value


# YAML value converters


def _yaml_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        raise ValueError(f"expected a string, got {value!r}")
    return str(value)


def _yaml_bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"expected a boolean, got {value!r}")
    return value


def _yaml_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"expected an integer, got {value!r}")
    return value


def _yaml_uint(value: Any) -> int:
    number = _yaml_int(value)
    if number < 0:
        raise ValueError(f"expected a non-negative integer, got {value!r}")
    return number


def _yaml_duration(value: Any) -> timedelta:
    if isinstance(value, str):
        return _parse_duration(value)
    # Plain integers are read as nanoseconds.
    return timedelta(microseconds=_yaml_int(value) / 1000)


def _yaml_seconds(value: Any) -> float:
    return _yaml_duration(value).total_seconds()


def _yaml_mapping(value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"expected a mapping, got {value!r}")
    return value


_Leaf = tuple[tuple[str, ...], Callable[[Any], Any]]

_SCHEMA: dict[str, Any] = {
    "target": (("target",), _yaml_str),
    "auth_enabled": (("auth_enabled",), _yaml_bool),
    "multitenancy_enabled": (("multitenancy_enabled",), _yaml_bool),
    "http_api_prefix": (("http_api_prefix",), _yaml_str),
    "server": {
        "http_listen_port": (("http_listen_port",), _yaml_int),
        "grpc_listen_port": (("grpc_listen_port",), _yaml_int),
    },
    "distributor": {
        "ring": {
            "kvstore": {"store": (("distributor", "ring_kv_store"), _yaml_str)},
            "heartbeat_timeout": (("distributor", "ring_heartbeat_timeout"), _yaml_duration),
        },
        "receivers": (("distributor", "receivers"), _yaml_mapping),
        "override_ring_key": (("distributor", "override_ring_key"), _yaml_str),
        "log_received_traces": (("distributor", "log_received_traces"), _yaml_bool),
        "extend_writes": (("distributor", "extend_writes"), _yaml_bool),
    },
    "query_frontend": {
        "compress_responses": (("frontend", "compress_responses"), _yaml_bool),
        "downstream_url": (("frontend", "downstream_url"), _yaml_str),
        "log_queries_longer_than": (("frontend", "log_queries_longer_than"), _yaml_seconds),
        "max_outstanding_per_tenant": (("frontend", "max_outstanding_per_tenant"), _yaml_int),
        "query_shards": (("frontend", "query_shards"), _yaml_int),
    },
    "compactor": {
        "ring": {"kvstore": {"store": (("compactor", "ring_kv_store"), _yaml_str)}},
        "compaction": {
            "chunk_size_bytes": (("compactor", "chunk_size_bytes"), _yaml_uint),
            "flush_size_bytes": (("compactor", "flush_size_bytes"), _yaml_uint),
            "compacted_block_retention": (
                ("compactor", "compacted_block_retention"),
                _yaml_duration,
            ),
            "retention_concurrency": (("compactor", "retention_concurrency"), _yaml_uint),
            "iterator_buffer_size": (("compactor", "iterator_buffer_size"), _yaml_int),
            "block_retention": (("compactor", "block_retention"), _yaml_duration),
            "max_compaction_objects": (("compactor", "max_compaction_objects"), _yaml_int),
            "max_block_bytes": (("compactor", "max_block_bytes"), _yaml_uint),
            "compaction_window": (("compactor", "max_compaction_range"), _yaml_duration),
        },
        "override_ring_key": (("compactor", "override_ring_key"), _yaml_str),
    },
    "ingester": {
        "complete_block_timeout": (("ingester_complete_block_timeout",), _yaml_duration),
    },
    "storage": {
        "trace": {
            "backend": (("storage_backend",), _yaml_str),
            "blocklist_poll": (("blocklist_poll",), _yaml_duration),
            "blocklist_poll_concurrency": (("blocklist_poll_concurrency",), _yaml_uint),
        },
    },
}


def _set(config: AppConfig, path: tuple[str, ...], value: Any) -> None:
    owner: Any = config
    for name in path[:-1]:
        owner = getattr(owner, name)
    setattr(owner, path[-1], value)


def _apply_yaml(config: AppConfig, node: Any, schema: dict[str, Any], where: str) -> None:
    if not isinstance(node, dict):
        raise ValueError(f"{where or 'document'}: expected a mapping")
    for key, value in node.items():
        location = f"{where}.{key}" if where else str(key)
        entry = schema.get(key)
        if entry is None:
            raise ValueError(f"field {key} not found in {where or 'config'}")
        if isinstance(entry, dict):
            if value is not None:
                _apply_yaml(config, value, entry, location)
            continue
        path, convert = entry
        try:
            converted = convert(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"{location}: {exc}") from exc
        _set(config, path, converted)


def _overlay_file(config: AppConfig, path: str) -> None:
    try:
        with open(path, encoding="utf-8") as handle:
            text = handle.read()
    except OSError as exc:
        raise OSError(f"failed to read configFile {path}: {exc}") from exc
    try:
        document = yaml.safe_load(text)
        if document is not None:
            _apply_yaml(config, document, _SCHEMA, "")
    except (yaml.YAMLError, ValueError) as exc:
        raise ValueError(f"failed to parse configFile {path}: {exc}") from exc


# (flag name, converter, config attribute path, help)
_CONFIG_FLAGS: tuple[tuple[str, Callable[[str], Any], tuple[str, ...], str], ...] = (
    ("target", str, ("target",), "target module"),
    (
        "auth.enabled",
        _parse_bool,
        ("auth_enabled",),
        "Set to true to enable auth (deprecated: use multitenancy.enabled)",
    ),
    (
        "multitenancy.enabled",
        _parse_bool,
        ("multitenancy_enabled",),
        "Set to true to enable multitenancy.",
    ),
    ("http-api-prefix", str, ("http_api_prefix",), "String prefix for all http api endpoints."),
    ("server.http-listen-port", int, ("http_listen_port",), "HTTP server listen port."),
    ("server.grpc-listen-port", int, ("grpc_listen_port",), "gRPC server listen port."),
    (
        "distributor.log-received-traces",
        _parse_bool,
        ("distributor", "log_received_traces"),
        "Enable to log every received trace id to help debug ingestion.",
    ),
    (
        "compactor.compaction.block-retention",
        _parse_duration,
        ("compactor", "block_retention"),
        "Duration to keep blocks/traces.",
    ),
    (
        "compactor.compaction.max-objects-per-block",
        int,
        ("compactor", "max_compaction_objects"),
        "Maximum number of traces in a compacted block.",
    ),
    (
        "compactor.compaction.max-block-bytes",
        _parse_uint,
        ("compactor", "max_block_bytes"),
        "Maximum size of a compacted block.",
    ),
    (
        "compactor.compaction.compaction-window",
        _parse_duration,
        ("compactor", "max_compaction_range"),
        "Maximum time window across which to compact blocks.",
    ),
)


def _dest(name: str) -> str:
    return name.replace(".", "_").replace("-", "_")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME, allow_abbrev=False, argument_default=argparse.SUPPRESS
    )

    def add(name: str, kind: Callable[[str], Any], help_text: str) -> None:
        options: dict[str, Any] = {"dest": _dest(name), "type": kind, "help": help_text}
        if kind is _parse_bool:
            options.update(nargs="?", const=True)
        parser.add_argument(f"-{name}", f"--{name}", **options)

    add(CONFIG_FILE_OPTION, str, "Configuration file to load")
    add("version", _parse_bool, "Print this builds version information")
    add("mem-ballast-size-mbs", int, "Size of memory ballast to allocate in MBs.")
    add("mutex-profile-fraction", int, "Enable mutex profiling.")
    for name, kind, _, help_text in _CONFIG_FLAGS:
        add(name, kind, help_text)
    return parser


def find_config_file(args: Sequence[str]) -> str:
    """Return the value of the config file flag anywhere in args, or ""."""
    found = ""
    names = (f"-{CONFIG_FILE_OPTION}", f"--{CONFIG_FILE_OPTION}")
    for position, arg in enumerate(args):
        if arg in names:
            if position + 1 < len(args):
                found = args[position + 1]
            continue
        for name in names:
            if arg.startswith(name + "="):
                found = arg[len(name) + 1 :]
    return found


def _parse(args: Sequence[str]) -> tuple[AppConfig, argparse.Namespace]:
    args = list(args)
    config = AppConfig()

    config_file = find_config_file(args)
    if config_file:
        _overlay_file(config, config_file)

    options = _build_parser().parse_args(args)
    for name, _, path, _ in _CONFIG_FLAGS:
        dest = _dest(name)
        if hasattr(options, dest):
            _set(config, path, getattr(options, dest))
    return config, options


def load_config(args: Sequence[str]) -> AppConfig:
    """Build the configuration from defaults, then the config file, then flags."""
    config, _ = _parse(args)
    return config


def _version_info() -> str:
    return (
        f"{APP_NAME}, version {VERSION} (branch: {BRANCH}, revision: {REVISION})\n"
        f"  python version:   {platform.python_version()}"
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Load and check the configuration and the modules the target needs."""
    args = list(sys.argv[1:] if argv is None else argv)
    try:
        config, options = _parse(args)
    except (OSError, ValueError) as exc:
        print(f"failed parsing config: {exc}", file=sys.stderr)
        return 1

    if getattr(options, "version", False):
        print(_version_info())
        return 0

    logging.basicConfig(level=logging.INFO, format="level=%(levelname)s msg=%(message)s")

    config.check_config()

    try:
        order = resolve_order(config.target)
        if Target.QUERY_FRONTEND in order:
            validate_query_frontend(config.frontend.query_shards)
    except ValueError as exc:
        logger.error("error initialising Tempo: %s", exc)
        return 1

    if not is_user_visible(config.target):
        logger.warning(
            "selected target is an internal module, is this intended? target=%s",
            config.target,
        )

    logger.info(
        "Starting Tempo version=%s modules=%s",
        VERSION,
        ",".join(module.value for module in order),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())