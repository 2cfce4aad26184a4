from __future__ import annotations

from typing import Any, FrozenSet, Iterable, List, Optional, Sequence

from structlog import get_logger

from ..obs.metrics import METRICS
from ..scan.attributes import parse_attribute, to_ids
from ..storage.query import Condition
from ..storage.record_store import Record, RecordStore
from ..storage.redis_cache import RedisCache

log = get_logger()

# Twins made by the media duplication carry the original title or name plus a
# numbered suffix, sometimes repeated:
#   pexels-sonya-livshits-9828172 -> ...-9828172-2, ...-9828172-3, ...-9828172-2-2
#   basic_013 -> basic_013-6-jpg, basic_013-1-jpg-2
TWIN_COLUMNS = ("post_title", "post_name")


async def select_twin_ids(
    store: RecordStore, column: str, value: str, where: Sequence[Any] = ()
) -> List[int]:
    """Ids whose `column` starts with `value + "-"`. Both outcomes are only notices."""
    if not value:
        log.warning("twins_skipped", column=column, reason="empty value")
        return []
    pattern = f"{value}-%"
    ids = await store.select_ids([Condition.prefix(column, value), *where])
    if not ids:
        log.warning("twins_none", column=column, pattern=pattern)
        return []
    log.warning("twins_found", column=column, pattern=pattern, count=len(ids))
    await METRICS.inc("twins_found_total", len(ids))
    return ids


async def find_prefix_twins(
    store: RecordStore, record: Record, where: Sequence[Any] = ()
) -> List[int]:
    """Title-prefix matches, then name-prefix matches, de-duplicated. Never the record itself."""
    found: dict[int, None] = {}
    for column, value in zip(TWIN_COLUMNS, (record.title, record.name)):
        for i in await select_twin_ids(store, column, value, where):
            if i != record.id:
                found[i] = None
    return list(found)


async def _ids_for_guid(store: RecordStore, guid: str, cache: Optional[RedisCache]) -> List[int]:
    memo_key = f"guid:{guid}"
    if memo_key in store.memo:
        return store.memo[memo_key]
    ids = await cache.get_guid_ids(guid) if cache else None
    if ids is None:
        ids = await store.select_ids_by_guid(guid)
        if cache:
            await cache.set_guid_ids(guid, ids)
    store.memo[memo_key] = ids
    return ids


async def find_guid_twins(
    store: RecordStore,
    record: Record,
    key: str,
    *,
    protected: Iterable[int] = (),
    cache: Optional[RedisCache] = None,
) -> List[int]:
    """
    Ids sharing a guid with an attachment referenced under record.meta[key].

    Referenced ids are canonical and never returned, nor is anything in
    `protected` (typically every id referenced by any record in the run).
    """
    raw = record.meta.get(key)
    if raw is None:
        raw = (await store.fetch_meta([record.id], [key])).get(record.id, {}).get(key)
    referenced = to_ids(parse_attribute(raw).as_list())
    if not referenced:
        log.warning("guid_twins_no_refs", id=record.id, key=key)
        return []

    canonical: FrozenSet[int] = frozenset(referenced) | frozenset(protected)
    found: dict[int, None] = {}
    pairs = await store.fetch_guids(referenced)
    for guid in dict.fromkeys(g for _, g in pairs if g):
        ids = await _ids_for_guid(store, guid, cache)
        if len(ids) > 1:
            for i in ids:
                if i not in canonical:
                    found[i] = None

    if found:
        log.warning("guid_twins_found", id=record.id, key=key, count=len(found))
        await METRICS.inc("twins_found_total", len(found))
    else:
        log.warning("guid_twins_none", id=record.id, key=key, refs=len(referenced))
    return list(found)
