"""Series sets: lazy, concatenated, annotated and merged collections of series."""

from __future__ import annotations

import contextvars
import heapq
import itertools
import threading
from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass
from typing import Any

from .iterators import SampleChunk, SampleChunkIterator, StorageChunkSeries, ValueType
from .model import Labels, Matcher, SelectHints
from .notices import Annotations

SelectFn = Callable[..., Any]


class LazySeriesSet:
    """Runs a select function in the background and waits for it on first use."""

    def __init__(
        self,
        select_fn: SelectFn,
        sorted_: bool,
        hints: SelectHints,
        matchers: Iterable[Matcher] = (),
    ) -> None:
        self._select_fn = select_fn
        self._sorted = sorted_
        # The caller may reuse the hints for another select, so keep a copy.
        self._hints = hints.copy()
        self._matchers = tuple(matchers)
        self._set: Any = None
        self._error: BaseException | None = None
        self._done = threading.Event()
        context = contextvars.copy_context()
        threading.Thread(target=context.run, args=(self._run,), daemon=True).start()

    def _run(self) -> None:
        try:
            self._set = self._select_fn(self._sorted, self._hints, *self._matchers)
        except Exception as err:  # noqa: BLE001 - surfaced on use of the set
            self._error = err
        finally:
            self._done.set()

    def __iter__(self) -> Iterator[Any]:
        self._done.wait()
        if self._error is not None:
            raise self._error
        yield from self._set

    def warnings(self) -> Annotations:
        self._done.wait()
        if self._set is None:
            return Annotations()
        return self._set.warnings()

    def error(self) -> BaseException | None:
        """The error of the select, if it failed."""
        self._done.wait()
        if self._error is not None:
            return self._error
        if isinstance(self._set, ErrorSeriesSet):
            return self._set.err
        return None


class ConcatSeriesSet:
    """A fixed sequence of series."""

    def __init__(self, *series: Any) -> None:
        self._series = series

    def __iter__(self) -> Iterator[Any]:
        return iter(self._series)

    def warnings(self) -> Annotations:
        return Annotations()


class WarningsSeriesSet:
    """Adds warnings to those of another set."""

    def __init__(self, inner: Any, warns: Annotations | None) -> None:
        self._inner = inner
        self._warns = warns

    def __iter__(self) -> Iterator[Any]:
        return iter(self._inner)

    def warnings(self) -> Annotations:
        return Annotations().merge(self._inner.warnings()).merge(self._warns)


class ChunkSeriesSet:
    """A fixed sequence of chunk series with warnings."""

    def __init__(self, series: Sequence[Any], warns: Annotations | None = None) -> None:
        self._series = list(series)
        self._warns = warns if warns is not None else Annotations()

    def __iter__(self) -> Iterator[Any]:
        return iter(self._series)

    def warnings(self) -> Annotations:
        return self._warns


class ErrorSeriesSet:
    """A set that fails with ``err`` as soon as it is iterated."""

    def __init__(self, err: BaseException) -> None:
        self.err = err

    def __iter__(self) -> Iterator[Any]:
        raise self.err
        yield  # pragma: no cover

    def warnings(self) -> Annotations:
        return Annotations()


@dataclass
class _MergedSeries:
    labels: Labels
    samples: tuple[tuple[int, float], ...]

    def iterator(self) -> SampleChunkIterator:
        return SampleChunk(self.samples).iterator()


def _samples_of(series: Any) -> list[tuple[int, float]]:
    it = series.iterator()
    out = []
    while it.next() is not ValueType.NONE:
        out.append(it.at())
    if it.error is not None:
        raise it.error
    return out


def _chain_series(labels: Labels, group: list[Any]) -> Any:
    if len(group) == 1:
        return group[0]
    merged: list[tuple[int, float]] = []
    for sample in heapq.merge(*(_samples_of(s) for s in group), key=lambda s: s[0]):
        if not merged or merged[-1][0] != sample[0]:
            merged.append(sample)
    return _MergedSeries(labels, tuple(merged))


def _concat_chunk_series(labels: Labels, group: list[Any]) -> StorageChunkSeries:
    return StorageChunkSeries(labels, [meta for s in group for meta in s.iterator()])


class _MergeSeriesSet:
    def __init__(
        self, sets: Sequence[Any], limit: int, merge: Callable[[Labels, list[Any]], Any]
    ) -> None:
        self._sets = list(sets)
        self._limit = limit
        self._merge = merge

    def __iter__(self) -> Iterator[Any]:
        merged = heapq.merge(*(iter(s) for s in self._sets), key=lambda s: s.labels)
        for count, (labels, group) in enumerate(itertools.groupby(merged, key=lambda s: s.labels)):
            if self._limit > 0 and count >= self._limit:
                return
            yield self._merge(labels, list(group))

    def warnings(self) -> Annotations:
        result = Annotations()
        for s in self._sets:
            result.merge(s.warnings())
        return result


def merge_series_sets(sets: Sequence[Any], limit: int = 0) -> Any:
    """Merge sorted series sets; series with equal labels have their samples chained."""
    if len(sets) == 1:
        return sets[0]
    return _MergeSeriesSet(sets, limit, _chain_series)


def merge_chunk_series_sets(sets: Sequence[Any], limit: int = 0) -> Any:
    """Merge sorted chunk series sets; series with equal labels have their chunks concatenated."""
    if len(sets) == 1:
        return sets[0]
    return _MergeSeriesSet(sets, limit, _concat_chunk_series)