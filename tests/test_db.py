import pytest

from parquetgw.block import Block, BlockMeta
from parquetgw.db import DB, BlockInfo, DBChunkQuerier
from parquetgw.iterators import ChunkMeta, ChunkSeries, SampleChunk, StorageChunkSeries, ValueType
from parquetgw.limits import is_resource_exhausted
from parquetgw.model import LabelHints, Labels, Matcher, MatchType, SelectHints
from parquetgw.notices import ERROR_TRUNCATED_RESPONSE, Annotations
from parquetgw.seriesset import ChunkSeriesSet, ConcatSeriesSet


class FakeShardQuerier:
    def __init__(self, shard, ext_labels, settings, mint, maxt):
        self.shard = shard
        self.ext_labels = ext_labels
        self.settings = settings
        self.mint = mint
        self.maxt = maxt

    def _series(self, matchers):
        out = []
        for lbls, samples in self.shard.series:
            merged = dict(lbls)
            merged.update(self.ext_labels.to_dict())
            for name in self.settings.replica_label_names:
                merged.pop(name, None)
            labels = Labels(merged)
            if all(m.matches(labels.get(m.name)) for m in matchers):
                out.append((labels, samples))
        return sorted(out, key=lambda p: p[0])

    def label_values(self, name, hints, *matchers):
        if self.shard.fail:
            raise ValueError("boom")
        vals = [lb.get(name) for lb, _ in self._series(matchers) if lb.get(name)]
        return vals, Annotations()

    def label_names(self, hints, *matchers):
        if self.shard.fail:
            raise ValueError("boom")
        return [n for lb, _ in self._series(matchers) for n, _ in lb], Annotations()

    def select(self, sorted_, hints, *matchers):
        return ConcatSeriesSet(
            *(
                ChunkSeries(lb, [ChunkMeta(SampleChunk(s))], self.mint, self.maxt)
                for lb, s in self._series(matchers)
            )
        )

    def select_chunks(self, sorted_, hints, *matchers):
        return ChunkSeriesSet(
            [StorageChunkSeries(lb, [ChunkMeta(SampleChunk(s))]) for lb, s in self._series(matchers)]
        )

    def close(self):
        if self.shard.fail_close:
            raise OSError("close failed")


class FakeShardQueryable:
    def __init__(self, shard, ext_labels, settings):
        self.shard = shard
        self.ext_labels = ext_labels
        self.settings = settings

    def querier(self, mint, maxt):
        self.shard.windows.append((mint, maxt))
        return FakeShardQuerier(self.shard, self.ext_labels, self.settings, mint, maxt)


class FakeShard:
    def __init__(self, series=(), fail=False, fail_close=False):
        self.series = list(series)
        self.fail = fail
        self.fail_close = fail_close
        self.windows = []
        self.settings = []

    def queryable(self, ext_labels, settings):
        self.settings.append(settings)
        return FakeShardQueryable(self, ext_labels, settings)


class FakeSyncer:
    def __init__(self, blocks):
        self._blocks = blocks

    def blocks(self):
        return list(self._blocks)


def collect(series_set):
    result = []
    for series in series_set:
        it = series.iterator()
        samples = []
        while it.next() is not ValueType.NONE:
            samples.append(it.at())
        result.append((series.labels, samples))
    return result


def make_db(*blocks, ext_labels=None):
    return DB(FakeSyncer(blocks), ext_labels=ext_labels)


def test_timerange_spans_all_blocks():
    db = make_db(Block(BlockMeta(100, 200), {}), Block(BlockMeta(50, 150), {}))
    assert db.timerange() == (50, 200)


def test_timerange_without_blocks_is_inverted_extremes():
    assert make_db().timerange() == ((1 << 63) - 1, -(1 << 63))


def test_block_streams_groups_by_external_labels():
    db = make_db(
        Block(BlockMeta(0, 10), {"a": "1"}),
        Block(BlockMeta(10, 20), {"a": "1"}),
        Block(BlockMeta(5, 7), {"a": "2"}),
    )
    streams = db.block_streams()
    assert streams[Labels({"a": "1"})] == BlockInfo(0, 20, {"a": "1"})
    assert streams[Labels({"a": "2"})] == BlockInfo(5, 7, {"a": "2"})
    assert len(streams) == 2


def test_querier_clips_to_intersecting_blocks():
    s1, s2 = FakeShard(), FakeShard()
    db = make_db(Block(BlockMeta(0, 100), {}, s1), Block(BlockMeta(200, 300), {}, s2))
    q = db.queryable().querier(50, 150)
    assert len(q.blocks) == 1
    assert s1.windows == [(50, 100)]
    assert s2.windows == []


def test_shard_count_quota_exhausted():
    db = make_db(
        Block(BlockMeta(0, 100), {}, FakeShard(), FakeShard()),
        Block(BlockMeta(100, 200), {}, FakeShard()),
    )
    with pytest.raises(RuntimeError) as info:
        db.queryable(shard_count_quota=2).querier(0, 200)
    assert "would use too many shards" in str(info.value)
    assert is_resource_exhausted(info.value)


@pytest.mark.parametrize("versions, expected", [((2, 2), True), ((1, 2), False)])
def test_projection_hints_require_v2_everywhere(versions, expected):
    shards = [FakeShard(), FakeShard()]
    db = make_db(
        *(Block(BlockMeta(0, 100, v), {}, s) for v, s in zip(versions, shards))
    )
    db.queryable().querier(0, 100)
    assert all(s.settings[0].select_honor_projection_hints is expected for s in shards)


def test_queryable_settings_passed_to_shards():
    shard = FakeShard()
    db = make_db(Block(BlockMeta(0, 100), {}, shard))
    db.queryable(replica_labels=["rep"], select_chunk_bytes_quota=1024).querier(0, 100)
    settings = shard.settings[0]
    assert settings.replica_label_names == ["rep"]
    assert settings.select_chunk_bytes_quota.limit == 1024
    assert settings.select_chunk_partition_max_range == (1 << 64) - 1


def test_label_names_sorted_unique_across_blocks():
    db = make_db(
        Block(BlockMeta(0, 100), {"ext": "test", "rep": "1"}, FakeShard([({"__name__": "foo", "bar": "baz"}, ())])),
        Block(BlockMeta(100, 200), {"ext": "test", "rep": "1"}, FakeShard([({"__name__": "abc", "def": "ghi"}, ())])),
    )
    q = db.queryable(replica_labels=["rep"]).querier(0, 200)
    names, warns = q.label_names(LabelHints())
    assert names == ["__name__", "bar", "def", "ext"]
    assert warns.as_errors() == []


def test_label_values_with_matcher_and_limit():
    series = [({"__name__": n}, ()) for n in ("c", "a", "b")]
    db = make_db(Block(BlockMeta(0, 100), {}, FakeShard(series)))
    q = db.queryable().querier(0, 100)
    values, _ = q.label_values("__name__", LabelHints())
    assert values == ["a", "b", "c"]
    limited, warns = q.label_values("__name__", LabelHints(limit=2))
    assert limited == ["a", "b"]
    assert warns.as_errors() == [ERROR_TRUNCATED_RESPONSE]
    matched, _ = q.label_values("__name__", LabelHints(), Matcher(MatchType.EQUAL, "__name__", "b"))
    assert matched == ["b"]


def test_label_values_error_propagates():
    db = make_db(Block(BlockMeta(0, 100), {}, FakeShard(fail=True)))
    q = db.queryable().querier(0, 100)
    with pytest.raises(RuntimeError, match="unable to query label values"):
        q.label_values("x", LabelHints())


def test_select_merges_blocks_and_applies_labels():
    db = make_db(
        Block(BlockMeta(0, 100), {"ext": "test"}, FakeShard([({"__name__": "foo"}, ((10, 1.0),))])),
        Block(BlockMeta(100, 200), {"ext": "test"}, FakeShard([({"__name__": "foo"}, ((150, 2.0),))])),
    )
    q = db.queryable().querier(0, 200)
    result = collect(q.select(False, SelectHints()))
    assert result == [(Labels({"__name__": "foo", "ext": "test"}), [(10, 1.0), (150, 2.0)])]


def test_select_sorted_and_filtered():
    series = [({"__name__": "b"}, ((1, 1.0),)), ({"__name__": "a"}, ((1, 1.0),))]
    db = make_db(Block(BlockMeta(0, 100), {}, FakeShard(series)))
    q = db.queryable().querier(0, 100)
    names = [lb.get("__name__") for lb, _ in collect(q.select(True, SelectHints()))]
    assert names == sorted(names)
    only = collect(q.select(True, SelectHints(), Matcher(MatchType.NOT_EQUAL, "__name__", "a")))
    assert [lb.get("__name__") for lb, _ in only] == ["b"]


def test_select_without_blocks_is_empty():
    q = make_db().queryable().querier(0, 100)
    assert list(q.select(True, SelectHints())) == []


def test_chunk_select_concatenates_chunks():
    db = make_db(
        Block(BlockMeta(0, 100), {}, FakeShard([({"__name__": "foo"}, ((10, 1.0),))])),
        Block(BlockMeta(100, 200), {}, FakeShard([({"__name__": "foo"}, ((150, 2.0),))])),
    )
    q = db.queryable().chunk_querier(0, 200)
    assert isinstance(q, DBChunkQuerier)
    series = list(q.select(True, SelectHints()))
    assert len(series) == 1
    chunks = list(series[0].iterator())
    assert [c.chunk.samples for c in chunks] == [((10, 1.0),), ((150, 2.0),)]


def test_override_ext_labels_replace_block_labels():
    shard = FakeShard([({"__name__": "foo"}, ((1, 1.0),))])
    db = make_db(Block(BlockMeta(0, 100), {"ext": "a"}, shard), ext_labels=Labels({"ext": "b"}))
    q = db.queryable().querier(0, 100)
    assert [lb for lb, _ in collect(q.select(True, SelectHints()))] == [
        Labels({"__name__": "foo", "ext": "b"})
    ]


def test_close_reports_failures():
    db = make_db(Block(BlockMeta(0, 100), {}, FakeShard(fail_close=True)))
    q = db.queryable().querier(0, 100)
    with pytest.raises(RuntimeError, match="unable to close block 0"):
        q.close()