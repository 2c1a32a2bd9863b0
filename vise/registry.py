"""Metrics registry, collection of registered metrics and text exposition."""

from __future__ import annotations

import enum
import math
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any

from vise.metrics import (
    FullMetricDescriptor,
    Global,
    MetricGroupDescriptor,
    Metrics,
    Unit,
)
from vise.traits import LabelPairs, encode_gauge_value
from vise.validation import assert_metric_name
from vise.wrappers import Counter, Family, Gauge, Histogram, MetricType

FilterFn = Callable[[MetricGroupDescriptor], bool]


class Format(enum.Enum):
    """Text format used to encode metrics."""

    PROMETHEUS = "prometheus"
    """Prometheus text format: no `# UNIT` lines, counters declared with `_total`, no `# EOF`."""
    OPEN_METRICS = "open_metrics"
    """OpenMetrics text format."""
    OPEN_METRICS_FOR_PROMETHEUS = "open_metrics_for_prometheus"
    """Prometheus-compatible declarations, terminated with `# EOF`."""


class MetricRedefinitionError(ValueError):
    """Raised when two registered metrics share the same full name."""


def _describe_location(descriptor: FullMetricDescriptor) -> str:
    group = descriptor.group
    return (
        f"{group.module_path}::{group.name}.{descriptor.metric.field_name} "
        f"(line {group.line})"
    )


class RegisteredDescriptors:
    """Descriptors of all metrics in a registry."""

    def __init__(self) -> None:
        self._groups: list[MetricGroupDescriptor] = []
        self._metrics_by_name: dict[str, FullMetricDescriptor] = {}

    def groups(self) -> tuple[MetricGroupDescriptor, ...]:
        """Return descriptors of all registered groups, in registration order."""
        return tuple(self._groups)

    def metric(self, full_name: str) -> FullMetricDescriptor | None:
        """Return the descriptor of a metric by the name reported to the exporter."""
        return self._metrics_by_name.get(full_name)

    def metric_count(self) -> int:
        """Return the total number of registered metrics."""
        return sum(len(group.metrics) for group in self._groups)

    def _push(self, group: MetricGroupDescriptor) -> None:
        new_entries: dict[str, FullMetricDescriptor] = {}
        for field in group.metrics:
            descriptor = FullMetricDescriptor(group=group, metric=field)
            metric_name = field.full_name()
            previous = self._metrics_by_name.get(metric_name) or new_entries.get(metric_name)
            if previous is not None:
                raise MetricRedefinitionError(
                    f"Metric `{metric_name}` is redefined. New definition is at "
                    f"{_describe_location(descriptor)}, previous definition was at "
                    f"{_describe_location(previous)}"
                )
            new_entries[metric_name] = descriptor
        self._metrics_by_name.update(new_entries)
        self._groups.append(group)


@dataclass(frozen=True)
class _MetricEntry:
    name: str
    help: str
    unit: Unit | None
    metric: Any


class MetricsVisitor:
    """Receives metrics of a group and records them for encoding."""

    def __init__(self, sink: list[_MetricEntry]) -> None:
        self._sink = sink

    def push_metric(self, name: str, help: str, unit: Unit | None, metric: Any) -> None:
        """Record a metric or a family of metrics under `name` (without the unit suffix)."""
        assert_metric_name(name)
        self._sink.append(_MetricEntry(name=name, help=help, unit=unit, metric=metric))


class Registry:
    """Collection of metric groups that can be encoded in a text format."""

    def __init__(self) -> None:
        self._descriptors = RegisteredDescriptors()
        self._metrics: list[_MetricEntry] = []
        self._lazy_globals: list[Global[Any]] = []
        self._is_lazy = False

    @classmethod
    def empty(cls) -> Registry:
        """Create an empty registry."""
        return cls()

    def descriptors(self) -> RegisteredDescriptors:
        """Return descriptors of all registered metrics."""
        return self._descriptors

    def register_metrics(self, metrics: Metrics | Global[Any]) -> None:
        """Register a group of metrics (a `Metrics` instance or a `Global`)."""
        if isinstance(metrics, Global):
            metrics = metrics.instance()
        if not isinstance(metrics, Metrics):
            raise TypeError(f"expected a `Metrics` instance, got {metrics!r}")
        self._descriptors._push(type(metrics).descriptor())
        metrics.visit_metrics(MetricsVisitor(self._metrics))

    def register_global_metrics(self, metrics: Global[Any]) -> None:
        """Register a `Global`; in a lazy registry it is exported only once initialized."""
        if not isinstance(metrics, Global):
            raise TypeError(f"expected a `Global`, got {metrics!r}")
        if self._is_lazy:
            self._descriptors._push(metrics.metrics_cls.descriptor())
            self._lazy_globals.append(metrics)
        else:
            self.register_metrics(metrics.instance())

    def _entries(self) -> Iterator[_MetricEntry]:
        yield from self._metrics
        for global_metrics in self._lazy_globals:
            if global_metrics.is_initialized():
                collected: list[_MetricEntry] = []
                global_metrics.instance().visit_metrics(MetricsVisitor(collected))
                yield from collected

    def encode(self, format: Format = Format.OPEN_METRICS) -> str:
        """Encode all metrics in this registry to text in the given format."""
        for_prometheus = format is not Format.OPEN_METRICS
        lines: list[str] = []
        for entry in self._entries():
            lines.extend(_encode_entry(entry, for_prometheus))
        if format is not Format.PROMETHEUS:
            lines.append("# EOF")
        return "".join(f"{line}\n" for line in lines)


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    text = repr(value)
    if "e" in text:
        mantissa, exponent = text.split("e")
        text = f"{mantissa}e{int(exponent)}"
    return text


def _format_number(value: int | float) -> str:
    if isinstance(value, int):
        return str(value)
    return _format_float(value)


def _escape_label_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


def _format_labels(pairs: LabelPairs) -> str:
    if not pairs:
        return ""
    inner = ",".join(f'{name}="{_escape_label_value(value)}"' for name, value in pairs)
    return f"{{{inner}}}"


def _members(metric: Any) -> list[tuple[LabelPairs, Any]]:
    if isinstance(metric, Family):
        return metric.encoded_entries()
    return [([], metric)]


def _encode_samples(full_name: str, pairs: LabelPairs, member: Any) -> Iterator[str]:
    if isinstance(member, Counter):
        yield f"{full_name}_total{_format_labels(pairs)} {member.get()}"
    elif isinstance(member, Gauge):
        value = encode_gauge_value(member.get())
        yield f"{full_name}{_format_labels(pairs)} {_format_number(value)}"
    elif isinstance(member, Histogram):
        snapshot = member.snapshot()
        labels = _format_labels(pairs)
        yield f"{full_name}_sum{labels} {_format_float(snapshot.sum)}"
        yield f"{full_name}_count{labels} {snapshot.count}"
        for bound, count in snapshot.buckets:
            bucket_labels = _format_labels([("le", _format_float(bound)), *pairs])
            yield f"{full_name}_bucket{bucket_labels} {count}"
    else:
        raise TypeError(f"unsupported metric: {member!r}")


def _encode_entry(entry: _MetricEntry, for_prometheus: bool) -> Iterator[str]:
    full_name = entry.name if entry.unit is None else f"{entry.name}_{entry.unit.value}"
    kind: MetricType = entry.metric.metric_type
    declared = full_name
    if for_prometheus and kind is MetricType.COUNTER:
        declared = f"{full_name}_total"
    yield f"# HELP {declared} {_escape_help(entry.help)}."
    yield f"# TYPE {declared} {kind.value}"
    if entry.unit is not None and not for_prometheus:
        yield f"# UNIT {declared} {entry.unit.value}"
    for pairs, member in _members(entry.metric):
        yield from _encode_samples(full_name, pairs, member)


METRICS_REGISTRATIONS: list[Any] = []
"""Items registered with `register()`, collected by `MetricsCollection.collect()`."""


def _item_descriptor(item: Any) -> MetricGroupDescriptor:
    if isinstance(item, Global):
        return item.metrics_cls.descriptor()
    return item.descriptor()


def _collect_item(item: Any, registry: Registry) -> None:
    if isinstance(item, Global):
        registry.register_global_metrics(item)
    else:
        item.collect_to_registry(registry)


def register(item: Any) -> Any:
    """Register a `Global` (or an object with `descriptor()` and `collect_to_registry()`).

    Returns the item, so it can be used as ``METRICS = register(Global(MyMetrics))``.
    """
    if not isinstance(item, Global) and not (
        callable(getattr(item, "descriptor", None))
        and callable(getattr(item, "collect_to_registry", None))
    ):
        raise TypeError(f"cannot register {item!r}")
    METRICS_REGISTRATIONS.append(item)
    return item


class MetricsCollection:
    """Configures collection of registered metrics into a `Registry`."""

    def __init__(self, is_lazy: bool = False, filter_fn: FilterFn | None = None) -> None:
        self._is_lazy = is_lazy
        self._filter_fn: FilterFn = filter_fn if filter_fn is not None else (lambda _: True)

    @classmethod
    def lazy(cls) -> MetricsCollection:
        """Collection in which `Global` metrics are exported only after first use."""
        return cls(is_lazy=True)

    def filter(self, filter_fn: FilterFn) -> MetricsCollection:
        """Return a collection that only collects groups satisfying `filter_fn`."""
        return MetricsCollection(self._is_lazy, filter_fn)

    def collect(self) -> Registry:
        """Create a registry with all registered items that pass the filter."""
        registry = Registry.empty()
        registry._is_lazy = self._is_lazy
        for item in METRICS_REGISTRATIONS:
            if self._filter_fn(_item_descriptor(item)):
                _collect_item(item, registry)
        return registry