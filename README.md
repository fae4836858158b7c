# parquetgw

A query layer over time-partitioned blocks of series data. A database is a set
of non-overlapping blocks, each split into shards. Queries fan out across the
blocks and shards that overlap the requested time range, and the results are
merged, sorted and deduplicated. Label name and value lookups run across
shards and blocks in parallel threads; selects run in the background and are
waited for when the result is first used.

## Modules

- `parquetgw.db` — `DB`, the entry point. It is built from a syncer, any
  object with a `blocks()` method returning `Block`s, and optional override
  external `Labels`. `DB.queryable(...)` takes keyword options only:
  `replica_labels`, `select_chunk_bytes_quota`, `select_row_count_quota`,
  `select_chunk_partition_max_range`, `select_chunk_partition_max_gap`,
  `select_chunk_partition_max_concurrency`, `label_values_row_count_quota`,
  `label_names_row_count_quota` and `shard_count_quota`. Quotas of zero are
  unlimited. `DBQueryable.querier(mint, maxt)` and
  `DBQueryable.chunk_querier(mint, maxt)` return queriers with `select`,
  `label_names`, `label_values` and `close`; they are also context managers.
  `DB.timerange()` gives the overall time range and `DB.block_streams()` the
  time range per distinct set of external labels, as `BlockInfo`s.
- `parquetgw.block` — `Block`, `BlockMeta`, `QuerySettings`, and
  `BlockQueryable`, `BlockQuerier`, `BlockChunkQuerier`.
- `parquetgw.seriesset` — `LazySeriesSet`, `ConcatSeriesSet`,
  `WarningsSeriesSet`, `ChunkSeriesSet`, `ErrorSeriesSet`, and
  `merge_series_sets` / `merge_chunk_series_sets`. Merging groups series with
  equal labels: samples are chained (one sample per timestamp) or chunks
  concatenated. Iterating a set whose select failed raises the error.
- `parquetgw.iterators` — `SampleChunk`, `ChunkMeta`, and sample iterators:
  `ChunkSeriesIterator` chains chunks while skipping the overlap between
  adjacent ones, `BoundedSeriesIterator` restricts to `[mint, maxt]`.
  `ChunkSeries` and `StorageChunkSeries` expose a series as samples or chunks.
- `parquetgw.model` — `Labels`, `Matcher`, `MatchType`, `SelectHints`,
  `LabelHints`. Regular-expression matchers are fully anchored.
- `parquetgw.limits` — `Quota` and `Semaphore` (with `unlimited_quota()` and
  `unlimited_semaphore()`). Running past a quota raises
  `ResourceExhaustedError`; `is_resource_exhausted(err)` checks an error and
  its causes.
- `parquetgw.notices` — `Annotations` and the `QueryWarning` values a query
  can report: truncated results, and series or label values dropped after
  external labels were applied.
- `parquetgw.encoding` — the varint label-column index format
  (`encode_label_column_index`, `decode_label_column_index`) and zig-zag
  coding (`zigzag_encode`, `zigzag_decode`).
- `parquetgw.util` — UTC `Date`s, `split_into_dates`, `intersects`,
  `contains`, `intersection` and `sort_unique`.
- `parquetgw.metrics` — `Registry`, `GaugeVec`, `HistogramVec`,
  `exponential_buckets_range` and `register_metrics`.
- `parquetgw.tracing` — `tracer()`, `Tracer`, `Span` and `current_span()`,
  with spans nested per context.
- `parquetgw.errcapture` — `do(logger, doer, fmt, *args)` runs a cleanup
  callable and logs whatever it raises.

## Example

```python
from parquetgw.encoding import encode_label_column_index, decode_label_column_index
from parquetgw.util import split_into_dates

data = encode_label_column_index([3, 1, 2])
assert decode_label_column_index(data) == [1, 2, 3]

days = split_into_dates(0, 2 * 86_400_000)
print([str(d) for d in days])  # ['1970-01-01', '1970-01-02']
```

## What it does not do

The package reads no files and holds no storage of its own. Shards are
supplied by the caller: each must provide `queryable(ext_labels, settings)`,
returning an object whose `querier(mint, maxt)` answers `label_values`,
`label_names`, `select`, `select_chunks` and `close`. Likewise the syncer
that lists blocks is the caller's. There is no command-line program, no
server and no query-language engine.

## Development

```
pip install -e ".[test]"
pytest
```