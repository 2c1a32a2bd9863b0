"""Metric groups: declarative metric definitions, descriptors and global instances."""

from __future__ import annotations

import enum
import inspect
import threading
import typing
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any, ClassVar, Generic, TypeVar

from vise.validation import assert_label_names, assert_metric_name, assert_metric_prefix
from vise.wrappers import Counter, Family, Gauge, Histogram, LabeledFamily, MetricType

M = TypeVar("M", bound="Metrics")


class Unit(enum.Enum):
    """Unit of measurement for a metric; it is appended to the metric name as a suffix."""

    AMPERES = "amperes"
    BYTES = "bytes"
    CELSIUS = "celsius"
    GRAMS = "grams"
    JOULES = "joules"
    METERS = "meters"
    RATIOS = "ratios"
    SECONDS = "seconds"
    VOLTS = "volts"


@dataclass(frozen=True)
class MetricDescriptor:
    """Description of a single metric (or a family of metrics) in a group.

    `name` is the prefixed metric name without the unit suffix.
    """

    name: str
    field_name: str
    metric_type: MetricType
    help: str
    unit: Unit | None = None
    buckets: tuple[float, ...] | None = None
    labels: tuple[str, ...] | None = None

    def full_name(self) -> str:
        """Return the name reported to the exporter, including the unit suffix."""
        if self.unit is None:
            return self.name
        return f"{self.name}_{self.unit.value}"


@dataclass(frozen=True)
class MetricGroupDescriptor:
    """Description of a `Metrics` subclass and all metrics it defines."""

    module_path: str
    name: str
    line: int
    metrics: tuple[MetricDescriptor, ...]


@dataclass(frozen=True)
class FullMetricDescriptor:
    """Metric descriptor together with the group it belongs to."""

    group: MetricGroupDescriptor
    metric: MetricDescriptor


def _normalize_help(text: str) -> str:
    lines = (line.strip() for line in text.splitlines())
    joined = " ".join(line for line in lines if line)
    return joined.removesuffix(".")


_SIMPLE_KINDS = (Counter, Gauge, Histogram)


@dataclass(frozen=True)
class _MetricField:
    family: type | None
    inner: type
    help: str
    unit: Unit | None
    buckets: tuple[float, ...] | None
    labels: tuple[str, ...] | None

    @property
    def metric_type(self) -> MetricType:
        return self.inner.metric_type  # type: ignore[attr-defined]

    def _build_inner(self) -> Any:
        if issubclass(self.inner, Histogram):
            return self.inner(self.buckets)
        return self.inner()

    def build(self) -> Any:
        if self.family is None:
            return self._build_inner()
        if self.family is LabeledFamily:
            return LabeledFamily(self._build_inner, self.labels)
        return Family(self._build_inner)

    def describe(self, prefix: str | None, field_name: str) -> MetricDescriptor:
        name = f"{prefix}_{field_name}" if prefix else field_name
        return MetricDescriptor(
            name=name,
            field_name=field_name,
            metric_type=self.metric_type,
            help=self.help,
            unit=self.unit,
            buckets=self.buckets,
            labels=self.labels,
        )


def _split_kind(kind: Any) -> tuple[type | None, type]:
    origin = typing.get_origin(kind)
    if origin is not None:
        if origin not in (Family, LabeledFamily):
            raise TypeError(f"unsupported metric kind: {kind!r}")
        args = typing.get_args(kind)
        if len(args) != 1:
            raise TypeError(f"family kind must have exactly one metric type: {kind!r}")
        inner = args[0]
        family: type | None = origin
    else:
        if kind in (Family, LabeledFamily):
            raise TypeError(
                f"{kind.__name__} must be parameterized with a metric type, "
                f"e.g. {kind.__name__}[Gauge]"
            )
        inner = kind
        family = None
    if not (isinstance(inner, type) and issubclass(inner, _SIMPLE_KINDS)):
        raise TypeError(f"unsupported metric type: {inner!r}")
    return family, inner


def metric(
    kind: Any,
    help: str = "",
    unit: Unit | None = None,
    buckets: Iterable[float] | None = None,
    labels: Sequence[str] | None = None,
) -> Any:
    """Declare a metric field of a `Metrics` subclass.

    `kind` is `Counter`, `Gauge`, `Histogram`, or a family of them such as
    `Family[Histogram]` or `LabeledFamily[Gauge]`. Histograms require `buckets`;
    labeled families require `labels`. Help text is joined into one line, and a
    trailing full stop is dropped.
    """
    family, inner = _split_kind(kind)

    if unit is not None and not isinstance(unit, Unit):
        raise TypeError(f"unit must be a `Unit`, got {unit!r}")

    bucket_bounds: tuple[float, ...] | None = None
    if issubclass(inner, Histogram):
        if buckets is None:
            raise TypeError("histogram metrics require `buckets`")
        bucket_bounds = tuple(float(bound) for bound in buckets)
        Histogram(bucket_bounds)  # validates the bounds
    elif buckets is not None:
        raise TypeError("`buckets` can only be specified for histograms")

    label_names: tuple[str, ...] | None = None
    if family is LabeledFamily:
        if labels is None:
            raise TypeError("`LabeledFamily` metrics require `labels`")
        label_names = tuple(labels)
        if not label_names:
            raise ValueError("label names cannot be empty")
        assert_label_names(label_names)
    elif labels is not None:
        raise TypeError("`labels` can only be specified for `LabeledFamily` metrics")

    return _MetricField(
        family=family,
        inner=inner,
        help=_normalize_help(help),
        unit=unit,
        buckets=bucket_bounds,
        labels=label_names,
    )


def _definition_line(cls: type) -> int:
    line = getattr(cls, "__firstlineno__", None)
    if isinstance(line, int):
        return line
    try:
        return inspect.getsourcelines(cls)[1]
    except (OSError, TypeError):
        return 0


class Metrics:
    """Base for groups of related metrics.

    Fields are declared with `metric()`; a subclass may pass `prefix=...` to prepend
    ``<prefix>_`` to every metric name. Instantiating the class creates fresh metrics.
    """

    _fields: ClassVar[tuple[tuple[str, _MetricField], ...]] = ()
    _descriptor: ClassVar[MetricGroupDescriptor | None] = None

    def __init_subclass__(cls, *, prefix: str | None = None, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if prefix is not None:
            assert_metric_prefix(prefix)

        fields = dict(cls._fields)
        for name, value in vars(cls).items():
            if isinstance(value, _MetricField):
                assert_metric_name(name)
                fields[name] = value
        cls._fields = tuple(fields.items())

        cls._descriptor = MetricGroupDescriptor(
            module_path=cls.__module__,
            name=cls.__name__,
            line=_definition_line(cls),
            metrics=tuple(spec.describe(prefix, name) for name, spec in cls._fields),
        )

    def __init__(self) -> None:
        for name, spec in self._fields:
            setattr(self, name, spec.build())

    @classmethod
    def descriptor(cls) -> MetricGroupDescriptor:
        """Return the descriptor of this metrics group."""
        if cls._descriptor is None:
            raise TypeError(f"{cls.__name__} does not define a metrics group")
        return cls._descriptor

    def visit_metrics(self, visitor: Any) -> None:
        """Push every metric to `visitor.push_metric(name, help, unit, metric)`.

        The name passed is the prefixed name without the unit suffix.
        """
        for (field_name, _), descriptor in zip(self._fields, self.descriptor().metrics):
            visitor.push_metric(
                descriptor.name,
                descriptor.help,
                descriptor.unit,
                getattr(self, field_name),
            )

    def __repr__(self) -> str:
        fields = ", ".join(f"{name}={getattr(self, name)!r}" for name, _ in self._fields)
        return f"{type(self).__name__}({fields})"


class Global(Generic[M]):
    """Lazily created, shared instance of a `Metrics` subclass.

    Attribute access is forwarded to the instance, creating it on first use.
    """

    def __init__(self, metrics_cls: type[M]) -> None:
        self.metrics_cls = metrics_cls
        self._instance: M | None = None
        self._lock = threading.Lock()

    def instance(self) -> M:
        """Return the metrics instance, creating it if necessary."""
        instance = self._instance
        if instance is None:
            with self._lock:
                instance = self._instance
                if instance is None:
                    instance = self.metrics_cls()
                    self._instance = instance
        return instance

    def is_initialized(self) -> bool:
        """Check whether the metrics instance has been created."""
        return self._instance is not None

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        return getattr(self.instance(), name)

    def __repr__(self) -> str:
        state = repr(self._instance) if self._instance is not None else "<uninitialized>"
        return f"Global({self.metrics_cls.__name__}, {state})"