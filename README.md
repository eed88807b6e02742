# tracemesh

tracemesh holds the core logic of a distributed tracing backend. Traces are
modelled as resource spans that are grouped by instrumentation library. The
package covers the steps between receiving spans and answering trace queries:
splitting batches by trace, rate limiting, query sharding, span ID
deduplication, block reports and configuration checks.

## Modules

- **`tracemesh.trace`**: the data model, made of `Trace`, `ResourceSpans`,
  `InstrumentationLibrarySpans`, `InstrumentationLibrary`, `Resource`, `Span`
  and `SpanKind`.
  - `Trace.all_spans()` yields every span in batch order.
  - `has_missing_spans(trace)` reports whether any span names a parent that is
    not in the trace.
  - `format_trace_id(high, low)` renders two 64-bit halves as 32 hex digits.
- **`tracemesh.distributor`**: the `Distributor` class.
  - `Distributor.push(user_id, batch)` counts the bytes and spans received for
    each tenant. It enforces the tenant's rate limit through a `RateLimiter`,
    which is a per-tenant token bucket whose limits are re-read from a
    strategy.
  - It splits the batch with `requests_by_trace_id` and passes the keys,
    traces and IDs to a sender callable that you supply.
  - Rejections raise an error: `ValueError` for an empty tenant,
    `RateLimitedError` when the limit is exceeded, and `InvalidTraceIDError`
    when a trace ID is not 128 bits. Errors raised by the sender pass through.
  - Discarded spans are counted by `DiscardReason`.
  - The helpers `valid_trace_id`, `token_for` (a 32-bit FNV-1 ring token),
    `count_spans` and `discard_reason` are also available.
- **`tracemesh.ratestrategy`**: rate limit strategies built on `Limits`.
  `LocalStrategy` applies the limits as they are configured. `GlobalStrategy`
  divides the rate limit by the number of healthy distributors and leaves the
  burst size unchanged.
- **`tracemesh.distributor_config`**: `DistributorConfig` and
  `default_receivers()`, which returns Jaeger gRPC/thrift-HTTP and OTLP gRPC.
  `receivers_or_default()` falls back to these defaults when no receivers are
  configured.
- **`tracemesh.querysharding`**: the query sharding functions.
  - `create_block_boundaries(n)` returns `n + 1` boundaries of 16 bytes each.
  - `shard_query_params(params, n)` builds the query for each shard. The last
    shard queries the ingesters.
  - `validate_query_shards(n)` accepts values from 2 to 256.
  - `merge_responses(responses, combine)` merges the shard replies. If every
    shard returned 404, the result is 404. Any other failure gives a 500 with
    the body of the failing shard. Otherwise the bodies are merged with
    `combine`.
  - `FrontendConfig` and `Response` are the types these functions use.
- **`tracemesh.deduper`**: `dedupe_span_ids(trace)` and `SpanIDDeduper`. A
  server span that shares its ID with a client span gets a fresh unique ID,
  and its old ID becomes its parent. Children of that server span are then
  re-pointed at the new ID. `TooManySpansError` is raised internally when no
  free ID is left.
- **`tracemesh.frontend`**: `merge_middlewares(*middlewares)` chains
  middlewares so that the first one given runs outermost. `RoundTripper` runs a
  request through the middlewares and then the next round trip.
- **`tracemesh.blockmeta`**: `BlockMeta` and `UnifiedBlockMeta`.
  - `get_meta(meta, compacted_meta, window_range)` prefers live metadata over
    compacted metadata and computes the compaction window.
  - `sort_by_end_time(results)` orders results by end time.
- **`tracemesh.blocks`**: text reports.
  - `blocks_table(...)` lists the blocks and adds a footer with the totals.
  - `compaction_summary_table(...)` gives one row per compaction level.
  - `block_details(...)` describes a single block.
  - `scan_objects(objects)` returns `ScanStats` with the object count, adjacent
    duplicate IDs and the smallest and largest object sizes.
  - `format_duration(seconds)` formats a duration such as `1h2m3s`.
- **`tracemesh.vulture`**: helpers for checking stored traces.
  - `seed_for_time` derives a seed from a timestamp, and `trace_id_for_seed`
    turns a seed into a deterministic trace ID.
  - The random test data generators are `generate_random_int`,
    `generate_random_string` and `generate_random_tags`.
  - `analyze_trace` and `query_and_analyze(fetch, trace_id)` produce
    `TraceMetrics`. Here `fetch` is a callable that you supply; it may raise
    `TraceNotFoundError`.
  - `parse_args` reads the checker's flags into a `VultureConfig`.
- **`tracemesh.config`**: `AppConfig` and `CompactorConfig`, which hold the
  defaults.
  - `check_config()` logs and returns a warning for each suspect combination
    of settings.
  - `to_yaml()` serialises the configuration.
  - `multitenancy_is_enabled()` reports whether multitenancy is on.
  - `ready_message(states)` builds the readiness report.
- **`tracemesh.app`**: the module graph.
  - `Target` names the modules, and `module_dependencies()` maps each one to
    the modules it depends on.
  - `resolve_order(target)` returns the start-up order for a target.
  - `is_user_visible` reports whether a module is meant to be targeted
    directly.
  - `add_http_api_prefix` joins the API prefix and a path, and
    `validate_query_frontend` checks the frontend's shard count.

## Installation

```
pip install .
```

To run the tests, install the `test` extra and run pytest:

```
pip install ".[test]"
pytest
```

## Command line

The `tracemesh` command builds a configuration in three steps: it starts from
the defaults, overlays the YAML config file, and then applies the command-line
flags.

```
tracemesh -config.file=config.yaml
```

The config file is read strictly, so unknown keys are an error. These flags are
understood:

- `-target`
- `-auth.enabled`
- `-multitenancy.enabled`
- `-http-api-prefix`
- `-server.http-listen-port`
- `-server.grpc-listen-port`
- `-distributor.log-received-traces`
- `-compactor.compaction.block-retention`
- `-compactor.compaction.max-objects-per-block`
- `-compactor.compaction.max-block-bytes`
- `-compactor.compaction.compaction-window`

`-version` prints the version information. `-mem-ballast-size-mbs` and
`-mutex-profile-fraction` are accepted but have no effect.

The command logs the warnings from `check_config()`. It then resolves the
modules that the target needs, validates the query frontend's shard count when
the frontend is among them, and logs the start-up order. It exits with 1 if the
configuration fails to load or is invalid.

## What it does not do

tracemesh contains the logic only. It runs no servers and opens no network
connections.

- The `tracemesh` command checks the configuration but does not start any
  services.
- There are no span receivers, gRPC or HTTP endpoints, or metrics server.
- There are no storage backends, so block metadata and objects must be
  supplied by the caller.
- There is no client for querying or pushing traces. The distributor's sender
  and the checker's fetch function are callables that you provide.