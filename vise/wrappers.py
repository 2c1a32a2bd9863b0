"""Metric types: counters, gauges, histograms and families of them."""

from __future__ import annotations

import bisect
import enum
import math
import threading
import time
from collections.abc import Callable, Hashable, Iterable, Sequence
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, ClassVar, Generic, TypeVar

from vise.traits import LabelPairs, encode_histogram_value, map_labels
from vise.validation import assert_label_names

M = TypeVar("M")


class MetricType(enum.Enum):
    """Kind of a metric as reported to the exporter."""

    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"


class Counter:
    """Monotonically increasing integer counter."""

    metric_type: ClassVar[MetricType] = MetricType.COUNTER

    def __init__(self) -> None:
        self._value = 0
        self._lock = threading.Lock()

    def inc(self) -> int:
        """Increase the counter by 1, returning the previous value."""
        return self.inc_by(1)

    def inc_by(self, value: int) -> int:
        """Increase the counter by `value`, returning the previous value."""
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"counter increment must be an int, got {value!r}")
        if value < 0:
            raise ValueError(f"counter cannot be decreased (increment {value})")
        with self._lock:
            previous = self._value
            self._value += value
        return previous

    def get(self) -> int:
        """Return the current value of the counter."""
        return self._value

    def __repr__(self) -> str:
        return f"Counter({self._value})"


class Gauge:
    """Value that can go up or down: an int, a float or a `timedelta`."""

    metric_type: ClassVar[MetricType] = MetricType.GAUGE

    def __init__(self, initial: Any = 0) -> None:
        self._value = initial
        self._lock = threading.Lock()

    def inc_by(self, value: Any) -> Any:
        """Increase the gauge by `value`, returning the previous value."""
        with self._lock:
            previous = self._value
            self._value = previous + value
        return previous

    def dec_by(self, value: Any) -> Any:
        """Decrease the gauge by `value`, returning the previous value."""
        with self._lock:
            previous = self._value
            self._value = previous - value
        return previous

    def set(self, value: Any) -> Any:
        """Set the gauge to `value`, returning the previous value."""
        with self._lock:
            previous = self._value
            self._value = value
        return previous

    def get(self) -> Any:
        """Return the current value of the gauge."""
        return self._value

    def inc_guard(self, value: Any) -> GaugeGuard:
        """Increase the gauge by `value` and return a guard that reverts the increase on release."""
        guard = GaugeGuard(self, value)
        self.inc_by(value)
        return guard

    def __repr__(self) -> str:
        return f"Gauge({self._value!r})"


class GaugeGuard:
    """Decrements a gauge by the increment it was created with when released.

    Usable as a context manager; releasing more than once has no further effect.
    """

    def __init__(self, gauge: Gauge, increment: Any) -> None:
        self._gauge = gauge
        self._increment = increment
        self._released = False
        self._lock = threading.Lock()

    def release(self) -> None:
        """Revert the gauge increase, once."""
        with self._lock:
            if self._released:
                return
            self._released = True
        self._gauge.dec_by(self._increment)

    def __enter__(self) -> GaugeGuard:
        return self

    def __exit__(self, *args: Any) -> None:
        self.release()


@dataclass(frozen=True)
class HistogramSnapshot:
    """Point-in-time state of a histogram.

    `buckets` holds `(upper_bound, cumulative_count)` pairs, the last bound being infinity.
    """

    sum: float
    count: int
    buckets: tuple[tuple[float, int], ...]


def _validate_buckets(buckets: Iterable[float]) -> tuple[float, ...]:
    bounds = tuple(float(bound) for bound in buckets)
    for bound in bounds:
        if math.isnan(bound):
            raise ValueError("histogram buckets cannot contain NaN")
    for lower, upper in zip(bounds, bounds[1:]):
        if upper <= lower:
            raise ValueError(
                f"histogram buckets must be strictly increasing; {upper} follows {lower}"
            )
    if bounds and math.isinf(bounds[-1]) and bounds[-1] > 0:
        bounds = bounds[:-1]
    return bounds


class Histogram:
    """Distribution of observed values counted in configurable buckets."""

    metric_type: ClassVar[MetricType] = MetricType.HISTOGRAM

    def __init__(self, buckets: Iterable[float]) -> None:
        self._bounds = _validate_buckets(buckets)
        self._counts = [0] * (len(self._bounds) + 1)
        self._sum = 0.0
        self._count = 0
        self._lock = threading.Lock()

    @property
    def bounds(self) -> tuple[float, ...]:
        """Finite upper bounds of the buckets."""
        return self._bounds

    def observe(self, value: Any) -> None:
        """Record an observation; durations are recorded in seconds."""
        encoded = encode_histogram_value(value)
        index = bisect.bisect_left(self._bounds, encoded)
        with self._lock:
            self._counts[index] += 1
            self._sum += encoded
            self._count += 1

    def start(self) -> LatencyObserver:
        """Start a latency measurement to be recorded with `LatencyObserver.observe()`."""
        return LatencyObserver(self)

    def snapshot(self) -> HistogramSnapshot:
        """Return the current sum, count and cumulative bucket counts."""
        with self._lock:
            counts = list(self._counts)
            total = self._sum
            count = self._count
        cumulative = []
        running = 0
        for bound, bucket_count in zip((*self._bounds, math.inf), counts):
            running += bucket_count
            cumulative.append((bound, running))
        return HistogramSnapshot(sum=total, count=count, buckets=tuple(cumulative))

    def __repr__(self) -> str:
        return f"Histogram(bounds={self._bounds!r}, count={self._count})"


class LatencyObserver:
    """Measures time elapsed since creation and records it in a histogram."""

    def __init__(self, histogram: Histogram) -> None:
        self._histogram = histogram
        self._start = time.perf_counter()

    def observe(self) -> timedelta:
        """Record and return the time elapsed since this observer was created."""
        elapsed = timedelta(seconds=time.perf_counter() - self._start)
        self._histogram.observe(elapsed)
        return elapsed


class Family(Generic[M]):
    """Metrics keyed by label values; missing members are created on indexing.

    Without `label_names`, keys are label sets (a `LabelSet`, a mapping or pairs).
    With `label_names`, a key is a single label value or a tuple of values.
    """

    def __init__(
        self,
        factory: Callable[[], M],
        label_names: Sequence[str] | None = None,
    ) -> None:
        if label_names is not None:
            label_names = tuple(label_names)
            if not label_names:
                raise ValueError("label names cannot be empty")
            assert_label_names(label_names)
        self._factory = factory
        self._label_names = label_names
        self._metrics: dict[Hashable, M] = {}
        self._lock = threading.Lock()
        self._metric_type: MetricType | None = None

    @property
    def label_names(self) -> tuple[str, ...] | None:
        """Label names given for this family, if any."""
        return self._label_names

    @property
    def metric_type(self) -> MetricType:
        """Kind of the metrics in this family."""
        if self._metric_type is None:
            self._metric_type = self._factory().metric_type  # type: ignore[attr-defined]
        return self._metric_type

    def __getitem__(self, labels: Hashable) -> M:
        metric = self._metrics.get(labels)
        if metric is not None:
            return metric
        with self._lock:
            metric = self._metrics.get(labels)
            if metric is None:
                metric = self._factory()
                self._metrics[labels] = metric
        return metric

    def contains(self, labels: Hashable) -> bool:
        """Check whether a metric with these labels exists."""
        return labels in self._metrics

    def __contains__(self, labels: object) -> bool:
        return labels in self._metrics

    def get(self, labels: Hashable) -> M | None:
        """Return the metric with these labels if it was created, else `None`."""
        return self._metrics.get(labels)

    def to_entries(self) -> dict[Hashable, M]:
        """Return a copy of all labels and their metrics."""
        with self._lock:
            return dict(self._metrics)

    def encoded_entries(self) -> list[tuple[LabelPairs, M]]:
        """Return `(label pairs, metric)` for every member, in creation order."""
        return [
            (map_labels(self._label_names, labels), metric)
            for labels, metric in self.to_entries().items()
        ]

    def __len__(self) -> int:
        return len(self._metrics)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._metrics!r})"


class LabeledFamily(Family[M]):
    """Family whose label names are given explicitly and whose keys are plain values."""

    def __init__(self, factory: Callable[[], M], label_names: Sequence[str]) -> None:
        if label_names is None:
            raise ValueError("LabeledFamily requires label names")
        super().__init__(factory, label_names)