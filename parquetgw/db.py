"""A database of non-overlapping, day-aligned blocks, queried as one."""

from __future__ import annotations

import contextvars
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Protocol

from .block import Block, BlockChunkQuerier, BlockQuerier, QuerySettings
from .limits import Quota
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
from .util import intersection, intersects, sort_unique

_INT64_MAX = (1 << 63) - 1
_INT64_MIN = -(1 << 63)
_MAX_UINT64 = (1 << 64) - 1

# Blocks of this schema version or newer carry a labels-hash column, which
# is required to join series horizontally when projections are honoured.
SCHEMA_V2 = 2


class _Syncer(Protocol):
    def blocks(self) -> Sequence[Block]: ...


@dataclass
class BlockInfo:
    """The overall time range of all blocks that share external labels."""

    min_t: int
    max_t: int
    labels: dict[str, str] = field(default_factory=dict)


class DB:
    """Blocks supplied by a syncer, queried together."""

    def __init__(self, syncer: _Syncer, ext_labels: Labels | None = None) -> None:
        self._syncer = syncer
        self.override_ext_labels = ext_labels if ext_labels is not None else Labels()

    def timerange(self) -> tuple[int, int]:
        """Smallest start and largest end over all blocks."""
        mint, maxt = _INT64_MAX, _INT64_MIN
        for blk in self._syncer.blocks():
            bmint, bmaxt = blk.timerange()
            mint = min(mint, bmint)
            maxt = max(maxt, bmaxt)
        return mint, maxt

    def block_streams(self) -> dict[Labels, BlockInfo]:
        """Time ranges per distinct set of external labels."""
        streams: dict[Labels, BlockInfo] = {}
        for blk in self._syncer.blocks():
            bmint, bmaxt = blk.timerange()
            key = Labels.from_map(blk.external_labels)
            info = streams.get(key)
            if info is None:
                streams[key] = BlockInfo(bmint, bmaxt, dict(blk.external_labels))
            else:
                info.min_t = min(info.min_t, bmint)
                info.max_t = max(info.max_t, bmaxt)
        return streams

    def queryable(
        self,
        *,
        replica_labels: Sequence[str] = (),
        select_chunk_bytes_quota: int = 0,
        select_row_count_quota: int = 0,
        select_chunk_partition_max_range: int | None = None,
        select_chunk_partition_max_gap: int | None = None,
        select_chunk_partition_max_concurrency: int = 0,
        label_values_row_count_quota: int = 0,
        label_names_row_count_quota: int = 0,
        shard_count_quota: int = 0,
    ) -> DBQueryable:
        """A queryable over the current blocks.

        Replica labels are dropped from results after external labels were
        applied, so that replicas of an HA pair deduplicate into one view.
        Quotas of zero are unlimited; they are enforced over the lifetime of
        the returned queryable.
        """
        settings = QuerySettings(
            replica_label_names=list(replica_labels),
            select_chunk_bytes_quota=Quota(select_chunk_bytes_quota),
            select_row_count_quota=Quota(select_row_count_quota),
            select_chunk_partition_max_range=(
                _MAX_UINT64
                if select_chunk_partition_max_range is None
                else select_chunk_partition_max_range
            ),
            select_chunk_partition_max_gap=(
                _MAX_UINT64
                if select_chunk_partition_max_gap is None
                else select_chunk_partition_max_gap
            ),
            select_chunk_partition_max_concurrency=select_chunk_partition_max_concurrency,
            label_values_row_count_quota=Quota(label_values_row_count_quota),
            label_names_row_count_quota=Quota(label_names_row_count_quota),
        )
        return DBQueryable(
            list(self._syncer.blocks()),
            self.override_ext_labels,
            settings,
            Quota(shard_count_quota),
        )


class DBQueryable:
    """Creates queriers over the blocks that intersect a time range."""

    def __init__(
        self,
        blocks: Sequence[Block],
        ext_labels: Labels,
        settings: QuerySettings,
        shard_count_quota: Quota,
    ) -> None:
        self.blocks = list(blocks)
        self.ext_labels = ext_labels
        self.settings = settings
        self.shard_count_quota = shard_count_quota

    def _block_queriers(self, mint: int, maxt: int) -> list[BlockQuerier]:
        selected = [blk for blk in self.blocks if intersects(mint, maxt, *blk.timerange())]
        honor_projections = all(blk.meta.version >= SCHEMA_V2 for blk in selected)
        settings = QuerySettings(
            **{**vars(self.settings), "select_honor_projection_hints": honor_projections}
        )

        queriers: list[BlockQuerier] = []
        for blk in selected:
            try:
                self.shard_count_quota.reserve(len(blk.shards))
            except Exception as err:
                raise RuntimeError(f"would use too many shards: {err}") from err
            start, end = intersection(mint, maxt, *blk.timerange())
            try:
                queriers.append(blk.queryable(self.ext_labels, settings).querier(start, end))
            except Exception as err:
                raise RuntimeError(f"unable to get block querier: {err}") from err
        return queriers

    def querier(self, mint: int, maxt: int) -> DBQuerier:
        return DBQuerier(mint, maxt, self._block_queriers(mint, maxt))

    def chunk_querier(self, mint: int, maxt: int) -> DBChunkQuerier:
        return DBChunkQuerier(mint, maxt, self._block_queriers(mint, maxt))


def _fan_out(
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


def _truncate(
    values: list[str], annos: Annotations, hints: LabelHints
) -> tuple[list[str], Annotations]:
    result = sort_unique(values)
    if hints.limit > 0 and len(result) > hints.limit:
        result = result[: hints.limit]
        annos.add(ERROR_TRUNCATED_RESPONSE)
    return result, annos


class DBQuerier:
    """Answers queries by fanning out to block queriers."""

    def __init__(self, mint: int, maxt: int, blocks: Sequence[BlockQuerier]) -> None:
        self.mint = mint
        self.maxt = maxt
        self.blocks = list(blocks)

    def __enter__(self) -> DBQuerier:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Close every block querier, raising one error that names all failures."""
        errors: list[Exception] = []
        messages: list[str] = []
        for i, blk in enumerate(self.blocks):
            try:
                blk.close()
            except Exception as err:  # noqa: BLE001 - collected and re-raised
                errors.append(err)
                messages.append(f"unable to close block {i}: {err}")
        if errors:
            raise RuntimeError("\n".join(messages)) from errors[0]

    def label_values(
        self, name: str, hints: LabelHints | None = None, *args: Matcher
    ) -> tuple[list[str], Annotations]:
        """Sorted distinct values of ``name`` over all blocks, with warnings."""
        hints = hints if hints is not None else LabelHints()
        calls = [(lambda b=blk: b.label_values(name, hints, *args)) for blk in self.blocks]
        values, annos = _fan_out(
            calls, "unable to query label values for block", "unable to query label values"
        )
        return _truncate(values, annos, hints)

    def label_names(
        self, hints: LabelHints | None = None, *args: Matcher
    ) -> tuple[list[str], Annotations]:
        """Sorted distinct label names over all blocks, with warnings."""
        hints = hints if hints is not None else LabelHints()
        calls = [(lambda b=blk: b.label_names(hints, *args)) for blk in self.blocks]
        values, annos = _fan_out(
            calls, "unable to query label names for block", "unable to query label names"
        )
        return _truncate(values, annos, hints)

    def select(
        self, sorted_: bool, hints: SelectHints | None = None, *args: Matcher
    ) -> LazySeriesSet:
        """Series matching ``args`` from all blocks, evaluated in the background."""
        return LazySeriesSet(self._select_fn, sorted_, hints or SelectHints(), args)

    def _span_attributes(self, span: Any, sorted_: bool, matchers: Sequence[Matcher]) -> None:
        span.set_attribute("sorted", sorted_)
        span.set_attribute("matchers", [str(m) for m in matchers])
        span.set_attribute("block.shards", len(self.blocks))

    def _select_fn(self, sorted_: bool, hints: SelectHints, *matchers: Matcher) -> Any:
        with tracer().start("Select DB") as span:
            self._span_attributes(span, sorted_, matchers)
            # Merging several sets vertically needs each of them sorted.
            sorted_ = sorted_ or len(self.blocks) > 1
            sets = [blk.select(sorted_, hints, *matchers) for blk in self.blocks]
            if not sets:
                return ConcatSeriesSet()
            return merge_series_sets(sets, hints.limit)


class DBChunkQuerier(DBQuerier):
    """A database querier whose select returns series as chunks."""

    def select(
        self, sorted_: bool, hints: SelectHints | None = None, *args: Matcher
    ) -> LazySeriesSet:
        return LazySeriesSet(self._select_chunks_fn, sorted_, hints or SelectHints(), args)

    def _select_chunks_fn(self, sorted_: bool, hints: SelectHints, *matchers: Matcher) -> Any:
        with tracer().start("ChunkSelect DB") as span:
            self._span_attributes(span, sorted_, matchers)
            sorted_ = sorted_ or len(self.blocks) > 1
            sets = [
                BlockChunkQuerier(blk.mint, blk.maxt, blk.shards).select(
                    sorted_, hints, *matchers
                )
                for blk in self.blocks
            ]
            if not sets:
                return ChunkSeriesSet([])
            if len(sets) == 1:
                return sets[0]
            return merge_chunk_series_sets(sets, hints.limit)


def external_labels_of(blocks: Sequence[Block]) -> list[Mapping[str, str]]:
    """The external labels of each block, in order."""
    return [blk.external_labels for blk in blocks]