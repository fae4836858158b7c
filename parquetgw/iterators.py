"""Sample iterators over chunks and the series types built on them."""

from __future__ import annotations

import enum
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any

from .model import Labels


class ValueType(enum.IntEnum):
    NONE = 0
    FLOAT = 1
    HISTOGRAM = 2
    FLOAT_HISTOGRAM = 3


@dataclass(frozen=True)
class SampleChunk:
    """A chunk of float samples with strictly increasing timestamps."""

    samples: tuple[tuple[int, float], ...] = ()

    def __post_init__(self) -> None:
        samples = tuple((int(t), float(v)) for t, v in self.samples)
        for (prev, _), (cur, _) in zip(samples, samples[1:]):
            if cur <= prev:
                raise ValueError(f"sample timestamps must increase, got {prev} then {cur}")
        object.__setattr__(self, "samples", samples)

    def iterator(self) -> SampleChunkIterator:
        return SampleChunkIterator(self.samples)


class SampleChunkIterator:
    """Walks the samples of one chunk."""

    def __init__(self, samples: Sequence[tuple[int, float]]) -> None:
        self._it = iter(samples)
        self._t = 0
        self._v = 0.0
        self._read = False
        self.error: BaseException | None = None

    def next(self) -> ValueType:
        try:
            self._t, self._v = next(self._it)
        except StopIteration:
            return ValueType.NONE
        self._read = True
        return ValueType.FLOAT

    def seek(self, t: int) -> ValueType:
        while not self._read or t > self._t:
            if self.next() is ValueType.NONE:
                return ValueType.NONE
        return ValueType.FLOAT

    def at(self) -> tuple[int, float]:
        return self._t, self._v

    def at_t(self) -> int:
        return self._t


@dataclass(frozen=True)
class ChunkMeta:
    """A chunk together with the time range it covers."""

    chunk: SampleChunk
    min_time: int | None = None
    max_time: int | None = None

    def __post_init__(self) -> None:
        samples = self.chunk.samples
        if self.min_time is None:
            object.__setattr__(self, "min_time", samples[0][0] if samples else 0)
        if self.max_time is None:
            object.__setattr__(self, "max_time", samples[-1][0] if samples else 0)


class NopIterator:
    """An iterator without samples."""

    error: BaseException | None = None

    def next(self) -> ValueType:
        return ValueType.NONE

    def seek(self, t: int) -> ValueType:
        return ValueType.NONE

    def at(self) -> tuple[int, float]:
        return 0, 0.0

    def at_t(self) -> int:
        return 0


class ErrSeriesIterator(NopIterator):
    """An iterator without samples that reports an error."""

    def __init__(self, err: BaseException) -> None:
        self.error = err


class ChunkSeriesIterator:
    """Chains ordered, possibly overlapping chunk iterators, skipping overlaps."""

    def __init__(self, iterators: Sequence[Any]) -> None:
        if not iterators:
            raise ValueError("got empty chunks")
        self._chunks = list(iterators)
        self._i = 0
        self._cur = self._chunks[0]
        self._last_val = ValueType.NONE

    @property
    def error(self) -> BaseException | None:
        return self._chunks[self._i].error

    def seek(self, t: int) -> ValueType:
        # Chunks are expected to be cut to the queried range already, so
        # stepping forward sample by sample is good enough.
        while True:
            if self.at_t() >= t:
                return self._last_val
            self._last_val = self.next()
            if self._last_val is ValueType.NONE:
                return ValueType.NONE

    def at(self) -> tuple[int, float]:
        return self._cur.at()

    def at_t(self) -> int:
        return self._cur.at_t()

    def next(self) -> ValueType:
        last_t = self.at_t()
        value_type = self._chunks[self._i].next()
        if value_type is not ValueType.NONE:
            self._last_val = value_type
            return value_type
        if self.error is not None:
            return ValueType.NONE
        if self._i >= len(self._chunks) - 1:
            return ValueType.NONE
        # Adjacent chunks are ordered but may overlap; skip the overlap.
        self._i += 1
        self._cur = self._chunks[self._i]
        return self.seek(last_t + 1)


def new_chunk_series_iterator(iterators: Sequence[Any]) -> ChunkSeriesIterator | ErrSeriesIterator:
    if not iterators:
        return ErrSeriesIterator(ValueError("got empty chunks"))
    return ChunkSeriesIterator(iterators)


class BoundedSeriesIterator:
    """Restricts an iterator to samples within [mint, maxt]."""

    def __init__(self, it: Any, mint: int, maxt: int) -> None:
        self._it = it
        self.mint = mint
        self.maxt = maxt

    @property
    def error(self) -> BaseException | None:
        return self._it.error

    def seek(self, t: int) -> ValueType:
        if t > self.maxt:
            return ValueType.NONE
        return self._it.seek(max(t, self.mint))

    def at(self) -> tuple[int, float]:
        return self._it.at()

    def at_t(self) -> int:
        return self._it.at_t()

    def next(self) -> ValueType:
        value_type = self._it.next()
        if value_type is ValueType.NONE:
            return ValueType.NONE
        t = self._it.at_t()
        if t < self.mint:
            if self.seek(self.mint) is ValueType.NONE:
                return ValueType.NONE
            t = self._it.at_t()
        # Once past the interval there is no going back.
        if t <= self.maxt:
            return value_type
        return ValueType.NONE


@dataclass
class ChunkSeries:
    """A series whose samples come from chunks, bounded to [mint, maxt]."""

    labels: Labels
    chunks: list[ChunkMeta] = field(default_factory=list)
    mint: int = 0
    maxt: int = 0

    def iterator(self) -> NopIterator | BoundedSeriesIterator:
        iterators = [meta.chunk.iterator() for meta in self.chunks]
        # All chunks may have been trimmed away for lying outside the interval.
        if not iterators:
            return NopIterator()
        return BoundedSeriesIterator(ChunkSeriesIterator(iterators), self.mint, self.maxt)


class ChunkMetaIterator:
    """Iterates over chunk metas and can be reset for reuse."""

    def __init__(self, chunks: Iterable[ChunkMeta]) -> None:
        self.reset(chunks)

    def reset(self, chunks: Iterable[ChunkMeta]) -> None:
        self._it: Iterator[ChunkMeta] = iter(list(chunks))

    def __iter__(self) -> ChunkMetaIterator:
        return self

    def __next__(self) -> ChunkMeta:
        return next(self._it)


@dataclass
class StorageChunkSeries:
    """A series exposed as its chunks."""

    labels: Labels
    chunks: list[ChunkMeta] = field(default_factory=list)

    def iterator(self, reuse: Any = None) -> ChunkMetaIterator:
        if isinstance(reuse, ChunkMetaIterator):
            reuse.reset(self.chunks)
            return reuse
        return ChunkMetaIterator(self.chunks)