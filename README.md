# graviola

Building blocks for a proxy that sits in front of several
Prometheus-compatible storages: its configuration, time parsing, the
in-memory shape of time series, a concurrent-query limit, JSON logging,
Prometheus-style metrics and a small WSGI HTTP front end.

## Modules

- `graviola.config` – the YAML configuration (`GraviolaConfig` with
  `APIConfig`, `LogConfig`, `QueryConfig` and `StoragesConfig`, which
  holds `MergeStrategyConfig` and a list of `RemoteGroupsConfig`, each
  with its `RemoteConfig` entries and a `TimeWindowConfig`). `parse`
  loads YAML text or bytes; every section has `fill_defaults()`, which
  returns a copy with defaults applied, and `validate()`, which raises
  `ConfigError` on an unacceptable value and otherwise returns the
  section.
- `graviola.timeparsing` – `parse_duration` and `parse_date`; bad input
  raises `TimeParsingError`.
- `graviola.domain` – `GraviolaSeries` (labels and `SamplePair`
  datapoints), its `GraviolaIterator` and `GraviolaSeriesSet`.
- `graviola.querytracker` – `GraviolaQueryTracker`, a cap on how many
  queries run at once.
- `graviola.graviolalog` – `new_logger` writes one JSON object per line
  at the configured level; `new_noop_logger` writes nothing.
- `graviola.metrics` – `Registry`, `CounterVec` and `HistogramVec`,
  rendered in the Prometheus text exposition format.
- `graviola.o11y` – `QuerierO11y`, a querier wrapper that counts and
  times `select` calls.
- `graviola.httpmiddleware` – `LoggingMiddleware` and
  `MetricsMiddleware` for WSGI applications.
- `graviola.api` – `GraviolaAPI`, a WSGI application with `/metrics`,
  `/healthy` and `/ready`, and a threaded server to run it.

## Configuration

```yaml
api:
  port: 9197

log:
  level: info                 # debug, info, warn or error (any case)

query:
  max_samples: 100000
  lookback_delta: 5m
  max_concurrent_queries: 20
  timeout: 1m

storages:
  merge_strategy:
    type: keep_biggest        # or always_merge
  groups:
    - name: "main"
      on_query_fail: fail_all # or partial_response
      remotes:
        - name: "server 1"
          address: "http://localhost:9090"
          path_prefix: ""
```

`parse` applies neither defaults nor validation. `fill_defaults()` sets
the port to 9197, the log level to `info`, the merge strategy to
`keep_biggest`, each group's `on_query_fail` to `fail_all`, and the
query limits to the values shown above. Validation requires at least one
group, unique group names, at least one remote per group with unique
names, remote addresses starting with `http://` or `https://`, positive
`max_samples` and `max_concurrent_queries`, a non-zero `lookback_delta`
and well-formed durations.

```python
from graviola.config import ConfigError, parse

with open("config.yaml", "rb") as handle:
    conf = parse(handle.read())

conf = conf.fill_defaults()
try:
    conf.validate()
except ConfigError as exc:
    print(f"invalid configuration: {exc}")

print(conf.query.lookback_delta_duration())   # 0:05:00
print(conf.to_dict()["api"])                  # {'port': 9197}
```

## Durations and dates

```python
from datetime import datetime, timezone

from graviola.timeparsing import parse_date, parse_duration

lookback = parse_duration("5m")                        # timedelta(minutes=5)
now = datetime.now(timezone.utc)
six_hours_ago = parse_date("now-6h", now)
from_epoch = parse_date("1704157075", now)             # UTC datetime
exact = parse_date("1996-12-19T16:39:57-08:00", now)   # keeps its offset
```

Duration units are `ms`, `s`, `m`, `h` and `d`, lower case only; a
number without a unit, a negative value or any other unit is rejected.
Dates are tried as RFC 3339, then `now` or `now-<duration>`, then Unix
seconds.

## Series

```python
from graviola.domain import GraviolaSeries, GraviolaSeriesSet, SamplePair, ValueType

series = GraviolaSeries(
    lbs={"__name__": "up", "instance": "a"},
    datapoints=[SamplePair(123, 4.56), SamplePair(456, 7.89)],
)
it = series.iterator()
while it.next() is ValueType.FLOAT:
    print(it.at())              # (123, 4.56), then (456, 7.89)

for s in GraviolaSeriesSet(series=[series]):
    print(s.labels())
```

Only float samples exist; `at_histogram()` and `at_float_histogram()`
raise `UnsupportedSampleError`, as does `at()` when the iterator is not
on a sample. `seek(t)` moves to the first sample at or after `t`.

## Limiting concurrent queries

```python
import threading

from graviola.querytracker import GraviolaQueryTracker

tracker = GraviolaQueryTracker(2)
cancel = threading.Event()
index = tracker.insert("up", cancel)   # blocks while two queries hold slots
try:
    ...  # run the query
finally:
    tracker.delete(index)
```

`insert` raises `QueryTrackerError` if `cancel` is set while it waits;
with no event it waits indefinitely. A limit below 1 raises
`ValueError`.

## Metrics and the HTTP API

```python
import threading

from graviola.api import GraviolaAPI
from graviola.config import APIConfig, LogConfig
from graviola.graviolalog import new_logger
from graviola.metrics import Registry

registry = Registry()
api = GraviolaAPI(APIConfig(port=9197), new_logger(LogConfig(level="info")), registry)
threading.Thread(target=api.start, daemon=True).start()
# ...
api.stop()
```

Every request is logged as `HTTP response` with method, path, status,
size, client address and latency, and counted in
`graviola_http_requests_total` (by code, method and path) and
`graviola_http_request_duration_seconds` (by path). `/metrics` serves
`registry.expose()`. `handle(path, handler)` adds a WSGI handler for an
exact path; an unknown path answers 404 and a handler that raises is
answered with status 500. An object passed as the fourth argument has
its `register(router)` called with a router whose `handle` adds routes
under `/api/v1`.

`QuerierO11y(registry, name, type_of_querier, wrapped)` forwards
`select`, `close`, `label_values` and `label_names` to `wrapped`, and
records `graviola_querier_query_total` and
`graviola_querier_query_latency_seconds` for each `select`.

## What this package does not do

It has no command-line program and no PromQL query engine. It contains
no clients for remote storages, no merging of results across groups
and no `/api/v1` query endpoints of its own: those routes exist only if
an object registering them is handed to `GraviolaAPI`.