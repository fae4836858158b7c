"""A block: one time range of data, horizontally split into shards."""

from __future__ import annotations

import contextvars
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

from .limits import Quota, unlimited_quota
from .model import LabelHints, Labels, Matcher, SelectHints
from .notices import ERROR_TRUNCATED_RESPONSE, Annotations
from .seriesset import (
    ChunkSeriesSet,
    ConcatSeriesSet,
    LazySeriesSet,
    merge_chunk_series_sets,
    merge_series_sets,
)
from .tracing import tracer
from .util import sort_unique

_MAX_UINT64 = (1 << 64) - 1
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class BlockMeta:
    """Time range and schema version of a block."""

    mint: int
    maxt: int
    version: int = 0


@dataclass
class QuerySettings:
    """Limits and options that shards apply while answering queries."""

    replica_label_names: list[str] = field(default_factory=list)
    select_chunk_bytes_quota: Quota = field(default_factory=unlimited_quota)
    select_row_count_quota: Quota = field(default_factory=unlimited_quota)
    select_chunk_partition_max_range: int = _MAX_UINT64
    select_chunk_partition_max_gap: int = _MAX_UINT64
    select_chunk_partition_max_concurrency: int = 0
    select_honor_projection_hints: bool = False
    label_values_row_count_quota: Quota = field(default_factory=unlimited_quota)
    label_names_row_count_quota: Quota = field(default_factory=unlimited_quota)


class _ShardQuerier(Protocol):
    def label_values(
        self, name: str, hints: LabelHints, *matchers: Matcher
    ) -> tuple[list[str], Annotations]: ...

    def label_names(
        self, hints: LabelHints, *matchers: Matcher
    ) -> tuple[list[str], Annotations]: ...

    def select(self, sorted_: bool, hints: SelectHints, *matchers: Matcher) -> Any: ...

    def select_chunks(self, sorted_: bool, hints: SelectHints, *matchers: Matcher) -> Any: ...

    def close(self) -> None: ...


class _ShardQueryable(Protocol):
    def querier(self, mint: int, maxt: int) -> _ShardQuerier: ...


class _Shard(Protocol):
    def queryable(self, ext_labels: Labels, settings: QuerySettings) -> _ShardQueryable: ...


def _format_millis(ms: int) -> str:
    try:
        return (_EPOCH + timedelta(milliseconds=ms)).isoformat()
    except OverflowError:
        return str(ms)


class Block:
    """A block of data with its metadata, external labels and shards."""

    def __init__(self, meta: BlockMeta, ext_labels: Mapping[str, str], *shards: _Shard) -> None:
        self.meta = meta
        self.shards: tuple[_Shard, ...] = shards
        self.external_labels: dict[str, str] = dict(ext_labels)
        self.external_prom_labels = Labels.from_map(ext_labels)

    def timerange(self) -> tuple[int, int]:
        return self.meta.mint, self.meta.maxt

    def queryable(
        self, override_ext_labels: Labels | None, settings: QuerySettings | None = None
    ) -> BlockQueryable:
        """A queryable over all shards; non-empty ``override_ext_labels`` replace the block's."""
        if settings is None:
            settings = QuerySettings()
        ext_labels = self.external_prom_labels
        if override_ext_labels is not None and len(override_ext_labels) > 0:
            ext_labels = override_ext_labels
        return BlockQueryable([shard.queryable(ext_labels, settings) for shard in self.shards])


class BlockQueryable:
    """Creates queriers that span every shard of a block."""

    def __init__(self, shards: Sequence[_ShardQueryable]) -> None:
        self.shards = list(shards)

    def _shard_queriers(self, mint: int, maxt: int) -> list[_ShardQuerier]:
        queriers = []
        for shard in self.shards:
            try:
                queriers.append(shard.querier(mint, maxt))
            except Exception as err:
                raise RuntimeError(f"unable to get shard querier: {err}") from err
        return queriers

    def querier(self, mint: int, maxt: int) -> BlockQuerier:
        return BlockQuerier(mint, maxt, self._shard_queriers(mint, maxt))

    def chunk_querier(self, mint: int, maxt: int) -> BlockChunkQuerier:
        return BlockChunkQuerier(mint, maxt, self._shard_queriers(mint, maxt))


def _gather(
    calls: Sequence[Callable[[], tuple[list[str], Annotations]]], inner: str, outer: str
) -> tuple[list[str], Annotations]:
    values: list[str] = []
    annos = Annotations()
    if not calls:
        return values, annos
    first_error: Exception | None = None
    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        futures = [pool.submit(contextvars.copy_context().run, call) for call in calls]
        for future in futures:
            try:
                found, warns = future.result()
            except Exception as err:  # noqa: BLE001 - re-raised below
                if first_error is None:
                    first_error = err
                continue
            values.extend(found)
            annos.merge(warns)
    if first_error is not None:
        raise RuntimeError(f"{outer}: {inner}: {first_error}") from first_error
    return values, annos


def _limit_result(
    values: list[str], annos: Annotations, hints: LabelHints | None
) -> tuple[list[str], Annotations]:
    limit = hints.limit if hints is not None else 0
    result = sort_unique(values)
    if limit > 0 and len(result) > limit:
        result = result[:limit]
        annos.add(ERROR_TRUNCATED_RESPONSE)
    return result, annos


class BlockQuerier:
    """Answers queries by fanning out to the shards of one block."""

    def __init__(self, mint: int, maxt: int, shards: Sequence[_ShardQuerier]) -> None:
        self.mint = mint
        self.maxt = maxt
        self.shards = list(shards)

    def __enter__(self) -> BlockQuerier:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Close every shard querier, raising one error that names all failures."""
        errors: list[Exception] = []
        messages: list[str] = []
        for i, shard in enumerate(self.shards):
            try:
                shard.close()
            except Exception as err:  # noqa: BLE001 - collected and re-raised
                errors.append(err)
                messages.append(f"unable to close shard {i}: {err}")
        if errors:
            raise RuntimeError("\n".join(messages)) from errors[0]

    def label_values(
        self, name: str, hints: LabelHints | None = None, *args: Matcher
    ) -> tuple[list[str], Annotations]:
        """Sorted distinct values of ``name`` over all shards, with warnings."""
        hints = hints if hints is not None else LabelHints()
        calls = [
            (lambda s=shard: s.label_values(name, hints, *args)) for shard in self.shards
        ]
        values, annos = _gather(
            calls,
            "unable to query label values for shard",
            "unable to query label values",
        )
        return _limit_result(values, annos, hints)

    def label_names(
        self, hints: LabelHints | None = None, *args: Matcher
    ) -> tuple[list[str], Annotations]:
        """Sorted distinct label names over all shards, with warnings."""
        hints = hints if hints is not None else LabelHints()
        calls = [(lambda s=shard: s.label_names(hints, *args)) for shard in self.shards]
        values, annos = _gather(
            calls,
            "unable to query label names for shard",
            "unable to query label values",
        )
        return _limit_result(values, annos, hints)

    def select(
        self, sorted_: bool, hints: SelectHints | None = None, *args: Matcher
    ) -> LazySeriesSet:
        """Series matching ``args``, merged across shards and evaluated in the background."""
        return LazySeriesSet(self._select_fn, sorted_, hints or SelectHints(), args)

    def _span_attributes(self, span: Any, matchers: Sequence[Matcher]) -> None:
        span.set_attribute("sorted", True)
        span.set_attribute("matchers", [str(m) for m in matchers])
        span.set_attribute("block.shards", len(self.shards))

    def _select_fn(self, sorted_: bool, hints: SelectHints, *matchers: Matcher) -> Any:
        with tracer().start("Select Block") as span:
            self._span_attributes(span, matchers)
            span.set_attribute("block.mint", _format_millis(self.mint))
            span.set_attribute("block.maxt", _format_millis(self.maxt))
            # Always sorted, since the shard results are merged afterwards.
            sets = [shard.select(True, hints, *matchers) for shard in self.shards]
            if not sets:
                return ConcatSeriesSet()
            return merge_series_sets(sets, hints.limit)


class BlockChunkQuerier(BlockQuerier):
    """A block querier whose select returns series as chunks."""

    def select(
        self, sorted_: bool, hints: SelectHints | None = None, *args: Matcher
    ) -> LazySeriesSet:
        return LazySeriesSet(self._select_chunks_fn, sorted_, hints or SelectHints(), args)

    def _select_chunks_fn(self, sorted_: bool, hints: SelectHints, *matchers: Matcher) -> Any:
        with tracer().start("ChunkSelect Block") as span:
            self._span_attributes(span, matchers)
            sets = [shard.select_chunks(True, hints, *matchers) for shard in self.shards]
            if not sets:
                return ChunkSeriesSet([])
            if len(sets) == 1:
                return sets[0]
            return merge_chunk_series_sets(sets, hints.limit)