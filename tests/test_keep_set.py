import asyncio

import pytest

from media_twins.errors import ExtensionCallbackError, ScanInterrupted
from media_twins.scan.cursor import ScanFilter
from media_twins.scan.keep_set import KeepHooks, KeepSet, KeepSetBuilder


@pytest.fixture
def hooks():
    return KeepHooks()


async def _gallery_page(store, value, key="gallery"):
    pid = await store.insert_post(title="Gallery", name="gallery", type="page", status="publish")
    await store.insert_meta(post_id=pid, key=key, value=value)
    return pid


class TestKeepSet:

    def test_dedup_and_falsy(self):
        ks = KeepSet([3, 3, 0, 5])
        assert ks.finalize() == frozenset({3, 5})

    def test_read_only_once_final(self):
        ks = KeepSet([1])
        ks.finalize()
        assert ks.finalized
        with pytest.raises(RuntimeError):
            ks.add([2])

    def test_views_match_final_set(self):
        ks = KeepSet([0, 3])
        ks.finalize()
        assert len(ks) == 1
        assert 0 not in ks
        assert 3 in ks
        assert list(ks) == [3]


class TestHooks:

    def test_order_and_normalization(self, hooks):
        hooks.register_keep_ids(lambda ids: ids + ["7", 0])
        hooks.register_keep_ids(lambda ids: [i for i in ids if i != 1])
        assert hooks.apply_keep_ids([1, 2]) == [2, 7]

    def test_keys_are_deduplicated(self, hooks):
        @hooks.register_keep_keys
        def thumbnails(keys):
            return keys + ["_thumbnail_id", "gallery", " "]
        assert hooks.apply_keep_keys(["gallery"]) == ["gallery", "_thumbnail_id"]

    def test_failure_is_wrapped(self, hooks):
        def broken(ids):
            raise KeyError("nope")
        hooks.register_keep_ids(broken)
        with pytest.raises(ExtensionCallbackError) as exc:
            hooks.apply_keep_ids([1])
        assert exc.value.hook == "keep_ids"
        assert isinstance(exc.value.__cause__, KeyError)


class TestKeepSetBuilder:

    @pytest.mark.asyncio
    async def test_seed_plus_referenced(self, store, hooks):
        await _gallery_page(store, "7912,8016")
        keep = await KeepSetBuilder(store, hooks=hooks).build([194], ["gallery"], ScanFilter(post_type="page"))
        assert keep == frozenset({194, 7912, 8016})

    @pytest.mark.asyncio
    async def test_serialized_and_scalar_values(self, store, hooks):
        await _gallery_page(store, 'a:2:{i:0;i:11;i:1;s:2:"12";}')
        await _gallery_page(store, "13", key="_thumbnail_id")
        await _gallery_page(store, "")
        await _gallery_page(store, "²")
        keep = await KeepSetBuilder(store, hooks=hooks, page_size=2).build(
            [], ["gallery", "_thumbnail_id"], ScanFilter(post_type="page")
        )
        assert keep == frozenset({11, 12, 13})

    @pytest.mark.asyncio
    async def test_scan_is_limited_by_filter(self, store, hooks):
        await _gallery_page(store, "5")
        post = await store.insert_post(title="Post", type="post", status="publish")
        await store.insert_meta(post_id=post, key="gallery", value="6")
        keep = await KeepSetBuilder(store, hooks=hooks).build([], ["gallery"], ScanFilter(post_type="post"))
        assert keep == frozenset({6})

    @pytest.mark.asyncio
    async def test_hooks_extend_seeds_and_keys(self, store, hooks):
        await _gallery_page(store, "21", key="_thumbnail_id")
        hooks.register_keep_ids(lambda ids: ids + [99])
        hooks.register_keep_keys(lambda keys: keys + ["_thumbnail_id"])
        keep = await KeepSetBuilder(store, hooks=hooks).build([1], [], ScanFilter())
        assert keep == frozenset({1, 99, 21})

    @pytest.mark.asyncio
    async def test_no_keys_means_seeds_only(self, store, hooks):
        await _gallery_page(store, "5")
        builder = KeepSetBuilder(store, hooks=hooks)
        keep = await builder.build(["3", 0, "", 3], [], ScanFilter())
        assert keep == frozenset({3})
        assert builder.scanned == 0

    @pytest.mark.asyncio
    async def test_accumulator_is_caller_owned(self, store, hooks):
        await _gallery_page(store, "8")
        ks = KeepSet([4])
        keep = await KeepSetBuilder(store, hooks=hooks).build([], ["gallery"], ScanFilter(), keep=ks)
        assert keep == frozenset({4, 8})
        assert ks.finalized

    @pytest.mark.asyncio
    async def test_interrupted_scan_raises(self, store, hooks):
        await _gallery_page(store, "8")
        stop = asyncio.Event()
        stop.set()
        with pytest.raises(ScanInterrupted):
            await KeepSetBuilder(store, hooks=hooks, stop=stop).build([1], ["gallery"], ScanFilter())

    @pytest.mark.asyncio
    async def test_hook_failure_aborts_before_scan(self, store, hooks):
        await _gallery_page(store, "8")
        hooks.register_keep_keys(lambda keys: 1 / 0)
        store.query_log.clear()
        with pytest.raises(ExtensionCallbackError):
            await KeepSetBuilder(store, hooks=hooks).build([1], ["gallery"], ScanFilter())
        assert store.query_log == []

    @pytest.mark.asyncio
    async def test_builders_do_not_share_callbacks(self, store, hooks):
        hooks.register_keep_ids(lambda ids: ids + [99])
        await KeepSetBuilder(store, hooks=hooks).build([1], [], ScanFilter())
        keep = await KeepSetBuilder(store).build([1], [], ScanFilter())
        assert keep == frozenset({1})
