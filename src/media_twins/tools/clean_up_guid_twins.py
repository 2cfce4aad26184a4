from __future__ import annotations
import asyncio
from typing import Any, Iterable, Mapping, Optional
from structlog import get_logger
from ..errors import ConfigurationError
from ..storage.record_store import RecordStore
from ..storage.redis_cache import RedisCache
from ..scan.cursor import BatchCursor, ScanFilter
from ..scan.keep_set import KeepHooks, KeepSetBuilder
from ..dedup.twins import find_guid_twins
from ..dedup.deleter import CascadingDeleter, DeleteResult

log = get_logger()

async def clean_up_guid_twins_tool(
    *,
    store: RecordStore,
    key: str,
    keep_ids: Iterable[Any] = (),
    ids: Iterable[int] = (),
    filters: Optional[Mapping[str, Any]] = None,
    dry_run: bool = False,
    page_size: int = 500,
    concurrency: int = 4,
    hooks: Optional[KeepHooks] = None,
    stop: Optional[asyncio.Event] = None,
    cache: Optional[RedisCache] = None,
) -> dict:
    """
    For each post matching `filters`, delete attachments that share a guid with
    one referenced under meta `key`. Pass 1 protects every referenced id of
    every matching post, so one post's canonical image is never another's twin.
    """
    if not key:
        raise ConfigurationError("a meta key holding attachment ids is required")
    raw = dict(filters or {})
    ids = list(ids)
    if ids:
        raw["post__in"] = ids
    scan = ScanFilter.from_args(raw)

    builder = KeepSetBuilder(
        store, hooks=hooks, page_size=page_size, shrink=store.shrink_working_set, stop=stop
    )
    deleter = CascadingDeleter(store, max_chunk=page_size, concurrency=concurrency, cache=cache)
    cursor = BatchCursor(
        store, scan,
        page_size=page_size,
        meta_keys=[key],
        shrink=store.shrink_working_set,
        stop=stop,
        keyset=True,
    )

    purged: set[int] = set()
    total = DeleteResult()
    await store.start_bulk_operation()
    try:
        protected = await builder.build(keep_ids, [key], scan)
        async for batch in cursor.batches():
            for record in batch:
                if record.id in purged:
                    continue
                twins = [
                    i for i in await find_guid_twins(store, record, key, protected=protected, cache=cache)
                    if i not in purged
                ]
                if not twins:
                    continue
                total.merge(await deleter.delete_all(twins, dry_run=dry_run))
                purged.update(twins)
    finally:
        await store.end_bulk_operation()

    return {
        "scanned": cursor.total,
        "kept": len(protected),
        "purged": sorted(purged),
        "rows": total.rows,
        "statements": total.statements,
        "dry_run": dry_run,
        "interrupted": cursor.interrupted,
    }
