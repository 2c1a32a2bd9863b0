# vise

Declarative metrics for Python applications and libraries. You define groups of
related metrics as classes, register them in a `Registry`, and encode them as
text in the OpenMetrics or Prometheus exposition format.

The package has no runtime dependencies.

## Modules

- `vise.wrappers`: metric types `Counter`, `Gauge`, `Histogram`, `Family` and
  `LabeledFamily`, plus `GaugeGuard`, `LatencyObserver`, `HistogramSnapshot`
  and the `MetricType` enum.
- `vise.metrics`: the `Metrics` base class, the `metric()` field declaration,
  the `Unit` enum, descriptors (`MetricDescriptor`, `MetricGroupDescriptor`,
  `FullMetricDescriptor`) and the lazily created `Global` instance.
- `vise.registry`: `Registry`, `Format`, `MetricsCollection`, `register()`,
  `RegisteredDescriptors`, `MetricsVisitor` and `MetricRedefinitionError`.
- `vise.traits`: encoding of gauge values, histogram values and labels,
  including the `LabelSet` base class.
- `vise.validation`: name checks raising `NameValidationError`.

## Metric types

- `Counter`: a monotonically increasing integer (`inc()`, `inc_by()`, `get()`).
  Both increments return the previous value; negative increments raise
  `ValueError`.
- `Gauge`: an int, float or `timedelta` that can go up or down (`set()`,
  `inc_by()`, `dec_by()`, `get()`; each change returns the previous value).
  `inc_guard(value)` increases the gauge and returns a `GaugeGuard` that
  decreases it again on `release()` or when its `with` block exits; releasing
  twice has no further effect.
- `Histogram(buckets)`: observations counted in buckets given as strictly
  increasing upper bounds. `observe()` takes numbers or `timedelta`s (recorded
  in seconds); `snapshot()` returns sum, count and cumulative bucket counts;
  `start()` returns a `LatencyObserver` whose `observe()` records and returns
  the elapsed time.
- `Family(factory, label_names=None)` / `LabeledFamily(factory, label_names)`:
  metrics keyed by labels. Indexing creates a metric on first access;
  `contains()`, `get()` and `to_entries()` inspect existing members.

```python
from datetime import timedelta
from vise.wrappers import Gauge, Histogram, LabeledFamily

gauge = Gauge()
with gauge.inc_guard(5):
    assert gauge.get() == 5
assert gauge.get() == 0

latencies = LabeledFamily(lambda: Histogram([0.01, 0.1, 1.0]), ["method", "code"])
latencies[("call", 200)].observe(timedelta(milliseconds=25))
```

## Defining metrics

A group is a subclass of `Metrics`; its fields are declared with `metric()`.
An optional `prefix` class keyword prepends `<prefix>_` to every metric name.
Histograms (and families of them) require `buckets`; `LabeledFamily` requires
`labels`. Help text is joined into one line and a trailing full stop is
dropped; on encoding, a full stop is added back.

```python
from vise.metrics import Metrics, Unit, metric
from vise.wrappers import Counter, Family, Gauge, Histogram, LabeledFamily


class AppMetrics(Metrics, prefix="my_app"):
    requests = metric(Counter, help="Requests served.")
    cache_size = metric(Gauge, help="Cache size.", unit=Unit.BYTES)
    latency = metric(
        Histogram,
        help="Request latency.",
        unit=Unit.SECONDS,
        buckets=[0.001, 0.01, 0.1, 1.0],
    )
    calls = metric(LabeledFamily[Counter], help="Calls by method.", labels=["method"])
    errors = metric(Family[Counter], help="Errors by label set.")
```

Instantiating `AppMetrics()` creates fresh metrics. `AppMetrics.descriptor()`
returns its `MetricGroupDescriptor`. A unit adds the matching suffix to the
reported name, e.g. `my_app_cache_size_bytes`.

Metric names, label names and prefixes must match `[_a-z][_a-z0-9]*`; invalid
ones raise `NameValidationError` when the class is defined.

## Labels

Keys of a `LabeledFamily` are a single value or a tuple of values matching the
label names. Keys of a plain `Family` are label sets: tuples of
`(name, value)` pairs, or instances of a `LabelSet` subclass. A frozen
dataclass subclass yields one label per field; fields that are `None`, or whose
`metadata["skip"]` predicate returns true, are left out. A subclass declared
with a `label` keyword is a single label:

```python
import enum
from dataclasses import dataclass, field
from vise.traits import LabelSet


@dataclass(frozen=True)
class Labels(LabelSet):
    name: str = field(metadata={"skip": lambda value: value == ""})
    num: int | None = None


class Method(LabelSet, enum.Enum, label="method"):
    CALL = "call"
    SEND_TRANSACTION = "send_transaction"
```

Enum members are encoded by their values, booleans as `true`/`false`, and
other values with `str()`.

## Registering and encoding

```python
from vise.registry import Format, Registry

app_metrics = AppMetrics()
registry = Registry.empty()
registry.register_metrics(app_metrics)

app_metrics.requests.inc()
app_metrics.cache_size.set(42)

text = registry.encode(Format.OPEN_METRICS)
```

`Registry.encode()` returns a string. Formats:

- `Format.OPEN_METRICS` (the default): `# HELP`, `# TYPE` and `# UNIT` lines,
  terminated with `# EOF`.
- `Format.PROMETHEUS`: no `# UNIT` lines, counters declared under their
  `_total` name, no `# EOF`.
- `Format.OPEN_METRICS_FOR_PROMETHEUS`: like `PROMETHEUS`, but terminated
  with `# EOF`.

Counter samples are reported as `<name>_total`; histograms as `_sum`, `_count`
and `_bucket{le="..."}` samples including a `+Inf` bucket.

`registry.descriptors()` returns `RegisteredDescriptors` with `groups()`,
`metric(full_name)` and `metric_count()`. Registering two metrics with the
same full name raises `MetricRedefinitionError`.

## Global metrics and collections

A `Global` wraps a metrics class, creates its instance on first use and
forwards attribute access to it. `register()` adds it to the items that
`MetricsCollection.collect()` puts into a new registry:

```python
from vise.metrics import Global
from vise.registry import MetricsCollection, register

APP_METRICS = register(Global(AppMetrics))
APP_METRICS.requests.inc()

registry = MetricsCollection().collect()
lazy_registry = (
    MetricsCollection.lazy()
    .filter(lambda group: group.name == "AppMetrics")
    .collect()
)
```

In a lazy collection a `Global` is exported only once its instance exists;
until then only its descriptors are registered.

## What this package does not do

It only produces the exposition text. There is no HTTP endpoint or exporter
server and no command-line program; serving `Registry.encode()` output to a
scraper is left to the application.

## Running the tests

```
pip install -e ".[test]"
pytest
```