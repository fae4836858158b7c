import pytest

from parquetgw.metrics import (
    QUERYABLE_OPERATIONS_DURATION,
    QUERYABLE_OPERATIONS_TOTAL,
    TYPE_LABEL_NAMES,
    TYPE_LABEL_VALUES,
    TYPE_SELECT,
    WHERE_SHARD,
    GaugeVec,
    HistogramVec,
    Registry,
    exponential_buckets_range,
    register_metrics,
)


def test_exponential_buckets_range_shape():
    buckets = exponential_buckets_range(0.1, 30, 20)
    assert len(buckets) == 20
    assert buckets[0] == pytest.approx(0.1)
    assert buckets[-1] == pytest.approx(30)
    assert all(a < b for a, b in zip(buckets, buckets[1:]))


def test_exponential_buckets_range_constant_ratio():
    buckets = exponential_buckets_range(1, 1000, 4)
    ratios = [b / a for a, b in zip(buckets, buckets[1:])]
    assert ratios == pytest.approx([ratios[0]] * len(ratios))


def test_exponential_buckets_range_single():
    assert exponential_buckets_range(0.5, 30, 1) == [0.5]


@pytest.mark.parametrize("minimum, count", [(0.1, 0), (0, 5), (-1, 5)])
def test_exponential_buckets_range_invalid(minimum, count):
    with pytest.raises(ValueError):
        exponential_buckets_range(minimum, 30, count)


def test_gauge_vec_children():
    vec = GaugeVec("g", "help", ["type", "where"])
    child = vec.labels("select", "shard")
    assert vec.labels("select", "shard") is child
    child.inc()
    assert child.value == 1
    child.set(7)
    assert vec.labels("select", "shard").value == 7
    assert vec.labels("other", "shard") is not child


def test_wrong_label_arity_rejected():
    vec = GaugeVec("g", "help", ["type", "where"])
    with pytest.raises(ValueError):
        vec.labels("select")
    hist = HistogramVec("h", "help", ["type"], [1.0])
    with pytest.raises(ValueError):
        hist.labels("a", "b")


def test_histogram_observe():
    hist = HistogramVec("h", "help", ["type"], [1.0, 2.0])
    child = hist.labels("select")
    child.observe(0.5)
    assert child.count == 1
    assert child.sum == 0.5
    assert child.cumulative_counts == [1, 1, 1]


def test_histogram_rejects_unsorted_buckets():
    with pytest.raises(ValueError):
        HistogramVec("h", "help", ["type"], [2.0, 1.0])


def test_registry_rejects_duplicates():
    registry = Registry()
    vec = GaugeVec("dup", "help", [])
    registry.register(vec)
    assert "dup" in registry
    assert registry.get("dup") is vec
    with pytest.raises(ValueError):
        registry.register(GaugeVec("dup", "other", []))


def test_register_metrics_initialises_and_registers():
    registry = Registry()
    register_metrics(registry)
    assert "queryable_operations_total" in registry
    assert "queryable_operations_seconds" in registry
    for op_type in (TYPE_SELECT, TYPE_LABEL_NAMES, TYPE_LABEL_VALUES):
        assert QUERYABLE_OPERATIONS_TOTAL.labels(op_type, WHERE_SHARD).value == 0
        assert QUERYABLE_OPERATIONS_DURATION.labels(op_type, WHERE_SHARD).count >= 1


def test_register_metrics_twice_fails():
    registry = Registry()
    register_metrics(registry)
    with pytest.raises(ValueError):
        register_metrics(registry)