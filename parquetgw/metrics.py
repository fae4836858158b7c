"""In-process metric collectors for queryable operations."""

from __future__ import annotations

import bisect
import itertools
import threading
from collections.abc import Iterable, Sequence

TYPE_SELECT = "select"
TYPE_LABEL_VALUES = "label_values"
TYPE_LABEL_NAMES = "label_names"

# to avoid too high cardinality, we only measure on shard level
WHERE_SHARD = "shard"


class _Gauge:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.value = 0.0

    def set(self, value: float) -> None:
        with self._lock:
            self.value = float(value)

    def inc(self, amount: float = 1.0) -> None:
        with self._lock:
            self.value += amount

    def dec(self, amount: float = 1.0) -> None:
        with self._lock:
            self.value -= amount


class _Histogram:
    def __init__(self, bounds: Sequence[float]) -> None:
        self._lock = threading.Lock()
        self.bounds = tuple(bounds)
        self._counts = [0] * (len(self.bounds) + 1)
        self.count = 0
        self.sum = 0.0

    def observe(self, value: float) -> None:
        with self._lock:
            self._counts[bisect.bisect_left(self.bounds, value)] += 1
            self.count += 1
            self.sum += value

    @property
    def cumulative_counts(self) -> list[int]:
        """Counts per upper bound, the last entry being the +Inf bucket."""
        with self._lock:
            return list(itertools.accumulate(self._counts))


class _MetricVec:
    def __init__(self, name: str, help: str, label_names: Iterable[str]) -> None:
        self.name = name
        self.help = help
        self.label_names = tuple(label_names)
        self._children: dict[tuple[str, ...], object] = {}
        self._lock = threading.Lock()

    def _child(self, values: tuple[str, ...]):
        if len(values) != len(self.label_names):
            raise ValueError(
                f"{self.name}: expected {len(self.label_names)} label values, got {len(values)}"
            )
        with self._lock:
            child = self._children.get(values)
            if child is None:
                child = self._children[values] = self._new_child()
            return child

    def _new_child(self):
        raise NotImplementedError


class GaugeVec(_MetricVec):
    """A gauge partitioned by label values."""

    def _new_child(self) -> _Gauge:
        return _Gauge()

    def labels(self, *args: str) -> _Gauge:
        return self._child(args)


class HistogramVec(_MetricVec):
    """A histogram partitioned by label values."""

    def __init__(
        self, name: str, help: str, label_names: Iterable[str], buckets: Sequence[float]
    ) -> None:
        super().__init__(name, help, label_names)
        bounds = tuple(buckets)
        if any(a >= b for a, b in zip(bounds, bounds[1:])):
            raise ValueError(f"{name}: histogram buckets must be strictly increasing")
        self.buckets = bounds

    def _new_child(self) -> _Histogram:
        return _Histogram(self.buckets)

    def labels(self, *args: str) -> _Histogram:
        return self._child(args)


class Registry:
    """Holds collectors by name and refuses duplicates."""

    def __init__(self) -> None:
        self._collectors: dict[str, _MetricVec] = {}
        self._lock = threading.Lock()

    def register(self, collector: _MetricVec) -> None:
        with self._lock:
            if collector.name in self._collectors:
                raise ValueError(
                    f"duplicate metrics collector registration attempted: {collector.name}"
                )
            self._collectors[collector.name] = collector

    def get(self, name: str) -> _MetricVec | None:
        return self._collectors.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._collectors


def exponential_buckets_range(minimum: float, maximum: float, count: int) -> list[float]:
    """``count`` bucket bounds growing geometrically from ``minimum`` to ``maximum``."""
    if count < 1:
        raise ValueError("ExponentialBucketsRange count needs a positive count")
    if minimum <= 0:
        raise ValueError("ExponentialBucketsRange min needs to be greater than 0")
    if count == 1:
        return [float(minimum)]
    growth = (maximum / minimum) ** (1.0 / (count - 1))
    return [minimum * growth**exponent for exponent in range(count)]


QUERYABLE_OPERATIONS_TOTAL = GaugeVec(
    "queryable_operations_total",
    "The total amount of query operations we evaluated",
    ("type", "where"),
)
QUERYABLE_OPERATIONS_DURATION = HistogramVec(
    "queryable_operations_seconds",
    "Histogram of durations for queryable operations",
    ("type", "where"),
    exponential_buckets_range(0.1, 30, 20),
)


def register_metrics(registry: Registry) -> None:
    """Initialise every label combination and register the collectors."""
    for op_type, where in itertools.product(
        (TYPE_SELECT, TYPE_LABEL_NAMES, TYPE_LABEL_VALUES), (WHERE_SHARD,)
    ):
        QUERYABLE_OPERATIONS_TOTAL.labels(op_type, where).set(0)
        QUERYABLE_OPERATIONS_DURATION.labels(op_type, where).observe(0)

    errors = []
    for collector in (QUERYABLE_OPERATIONS_TOTAL, QUERYABLE_OPERATIONS_DURATION):
        try:
            registry.register(collector)
        except ValueError as err:
            errors.append(str(err))
    if errors:
        raise ValueError("\n".join(errors))