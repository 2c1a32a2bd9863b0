from datetime import timedelta

import pytest

from vise.metrics import (
    FullMetricDescriptor,
    Global,
    MetricDescriptor,
    Metrics,
    Unit,
    metric,
)
from vise.validation import NameValidationError
from vise.wrappers import Counter, Family, Gauge, Histogram, LabeledFamily, MetricType

LATENCY_BUCKETS = [0.001, 0.005, 0.025, 0.1, 0.25, 1.0, 5.0, 30.0, 120.0]


class SampleMetrics(Metrics, prefix="test"):
    counter = metric(Counter, help="Test counter.")
    gauge = metric(Gauge, unit=Unit.BYTES)
    family_of_gauges = metric(
        LabeledFamily[Gauge], help="Test family of gauges.", labels=["method"]
    )
    histogram = metric(
        Histogram,
        help="Histogram with inline bucket specification.",
        buckets=[0.001, 0.002, 0.005, 0.01, 0.1],
    )
    family_of_histograms = metric(
        Family[Histogram],
        help="""A family of histograms with a multiline description.
        Note that we use a type alias to properly propagate bucket configuration.""",
        unit=Unit.SECONDS,
        buckets=LATENCY_BUCKETS,
    )


class _RecordingVisitor:
    def __init__(self):
        self.pushed = []

    def push_metric(self, name, help, unit, metric):
        self.pushed.append((name, help, unit, metric))


def test_descriptor_names_and_units():
    descriptor = SampleMetrics.descriptor()
    assert descriptor.name == "SampleMetrics"
    assert descriptor.module_path == __name__
    assert descriptor.line > 0
    full_names = [MetricDescriptor.full_name(m) for m in descriptor.metrics]
    assert full_names == [
        "test_counter",
        "test_gauge_bytes",
        "test_family_of_gauges",
        "test_histogram",
        "test_family_of_histograms_seconds",
    ]


def test_help_is_normalized():
    visitor = _RecordingVisitor()
    Global(SampleMetrics).visit_metrics(visitor)
    helps = {name: help_text for name, help_text, _, _ in visitor.pushed}
    assert helps["test_counter"] == "Test counter"
    assert helps["test_family_of_histograms"] == (
        "A family of histograms with a multiline description. Note that we use "
        "a type alias to properly propagate bucket configuration"
    )
    assert helps["test_gauge"] == ""


def test_descriptor_metadata():
    group = SampleMetrics.descriptor()
    full = {m.field_name: FullMetricDescriptor(group, m) for m in group.metrics}
    assert full["counter"].group is group
    assert full["counter"].metric.metric_type is MetricType.COUNTER
    assert full["family_of_gauges"].metric.metric_type is MetricType.GAUGE
    assert full["family_of_gauges"].metric.labels == ("method",)
    assert full["family_of_histograms"].metric.metric_type is MetricType.HISTOGRAM
    assert full["family_of_histograms"].metric.buckets == tuple(LATENCY_BUCKETS)
    assert full["counter"].metric.buckets is None


def test_full_name_without_unit():
    descriptor = MetricDescriptor(
        name="test_counter",
        field_name="counter",
        metric_type=MetricType.COUNTER,
        help="Test counter",
    )
    assert descriptor.full_name() == "test_counter"
    with_unit = MetricDescriptor(
        name="dynamic_gauge",
        field_name="gauge",
        metric_type=MetricType.GAUGE,
        help="",
        unit=Unit.BYTES,
    )
    assert with_unit.full_name() == "dynamic_gauge_bytes"


def test_full_metric_descriptor_holds_group():
    group = SampleMetrics.descriptor()
    full = FullMetricDescriptor(group, group.metrics[0])
    assert full.group.name == "SampleMetrics"
    assert full.metric.field_name == "counter"


def test_instances_hold_independent_metrics():
    first = Global(SampleMetrics).instance()
    second = Global(SampleMetrics).instance()
    first.counter.inc()
    first.gauge.set(42)
    assert first.counter.get() == 1
    assert second.counter.get() == 0
    assert first.gauge.get() == 42
    assert second.gauge.get() == 0


def test_instance_metrics_work():
    metrics = Global(SampleMetrics).instance()
    metrics.family_of_gauges["call"].set(0.4)
    assert metrics.family_of_gauges.contains("call")
    assert metrics.family_of_gauges.label_names == ("method",)

    metrics.histogram.observe(timedelta(milliseconds=1))
    metrics.histogram.observe(timedelta(milliseconds=4))
    snapshot = metrics.histogram.snapshot()
    assert snapshot.count == 2
    assert snapshot.buckets[0] == (0.001, 1)

    metrics.family_of_histograms["call"].observe(timedelta(milliseconds=20))
    assert metrics.family_of_histograms["call"].snapshot().count == 1
    assert metrics.family_of_histograms.label_names is None


def test_visit_metrics_pushes_all_fields():
    metrics = Global(SampleMetrics).instance()
    visitor = _RecordingVisitor()
    metrics.visit_metrics(visitor)
    names = [name for name, _, _, _ in visitor.pushed]
    assert names == [
        "test_counter",
        "test_gauge",
        "test_family_of_gauges",
        "test_histogram",
        "test_family_of_histograms",
    ]
    assert visitor.pushed[0][1] == "Test counter"
    assert visitor.pushed[1][2] is Unit.BYTES
    assert visitor.pushed[0][3] is metrics.counter


def test_group_without_prefix():
    class Unprefixed(Metrics):
        counters = metric(LabeledFamily[Counter], labels=["method", "code"])

    descriptor = Unprefixed.descriptor()
    assert [m.full_name() for m in descriptor.metrics] == ["counters"]
    instance = Global(Unprefixed).instance()
    instance.counters[("call", 200)].inc_by(10)
    assert instance.counters.get(("call", 200)).get() == 10


def test_subclass_inherits_fields():
    class Extended(SampleMetrics, prefix="test"):
        extra = metric(Gauge)

    names = [m.field_name for m in Extended.descriptor().metrics]
    assert names[0] == "counter"
    assert names[-1] == "extra"
    assert len(names) == len(SampleMetrics.descriptor().metrics) + 1

    holder = Global(Extended)
    holder.extra.set(5)
    holder.counter.inc()
    assert holder.extra.get() == 5
    assert holder.counter.get() == 1


def test_base_class_has_no_descriptor():
    with pytest.raises(TypeError):
        Metrics.descriptor()


def test_missing_buckets_rejected():
    with pytest.raises(TypeError):
        metric(Histogram)


def test_unnecessary_buckets_rejected():
    with pytest.raises(TypeError):
        metric(Counter, buckets=[1.0, 2.0])


def test_non_monotonic_buckets_rejected():
    with pytest.raises(ValueError):
        metric(Histogram, buckets=[0.1, 0.2, 0.1, 0.5])


def test_string_unit_rejected():
    with pytest.raises(TypeError):
        metric(Counter, unit="seconds")


def test_labels_required_for_labeled_family():
    with pytest.raises(TypeError):
        metric(LabeledFamily[Counter])


def test_labels_rejected_for_other_kinds():
    with pytest.raises(TypeError):
        metric(Counter, labels=["method"])


def test_bogus_label_name_rejected():
    with pytest.raises(NameValidationError):
        metric(LabeledFamily[Counter], labels=["methoD"])


def test_unparameterized_family_rejected():
    with pytest.raises(TypeError):
        metric(Family)


def test_unsupported_kind_rejected():
    with pytest.raises(TypeError):
        metric(int)


def test_bogus_prefix_rejected():
    with pytest.raises(NameValidationError):

        class BogusPrefix(Metrics, prefix="what?"):
            counter = metric(Counter)


def test_bogus_metric_name_rejected():
    with pytest.raises(NameValidationError):
        type("BogusName", (Metrics,), {"счетчик": metric(Counter)})


def test_global_is_lazy():
    holder = Global(SampleMetrics)
    assert not holder.is_initialized()
    assert holder.metrics_cls is SampleMetrics
    holder.counter.inc_by(3)
    assert holder.is_initialized()
    assert holder.counter.get() == 3
    assert holder.instance() is holder.instance()


def test_global_forwards_missing_attributes():
    holder = Global(SampleMetrics)
    with pytest.raises(AttributeError):
        holder.no_such_metric
    with pytest.raises(AttributeError):
        holder._private
    holder.counter.inc_by(2)
    assert holder.counter.get() == 2
    assert holder.instance().counter is holder.counter


def test_global_visits_instance_metrics():
    holder = Global(SampleMetrics)
    holder.gauge.set(7)
    visitor = _RecordingVisitor()
    holder.visit_metrics(visitor)
    gauge = next(m for name, _, _, m in visitor.pushed if name == "test_gauge")
    assert gauge.get() == 7