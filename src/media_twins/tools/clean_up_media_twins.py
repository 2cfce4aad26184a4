from __future__ import annotations
import asyncio
from typing import Any, Iterable, Mapping, Optional
from structlog import get_logger
from ..storage.record_store import RecordStore
from ..storage.redis_cache import RedisCache
from ..scan.cursor import BatchCursor, ScanFilter
from ..dedup.twins import find_prefix_twins
from ..dedup.deleter import CascadingDeleter, DeleteResult

log = get_logger()

async def clean_up_media_twins_tool(
    *,
    store: RecordStore,
    ids: Iterable[int] = (),
    filters: Optional[Mapping[str, Any]] = None,
    dry_run: bool = False,
    post_type: Optional[str] = "attachment",
    post_status: Optional[str] = "inherit",
    page_size: int = 500,
    concurrency: int = 4,
    start_offset: int = 0,
    stop: Optional[asyncio.Event] = None,
    cache: Optional[RedisCache] = None,
) -> dict:
    raw = dict(filters or {})
    ids = list(ids)
    if ids:
        raw["post__in"] = ids
    sf = ScanFilter.from_args(raw, post_type=post_type, post_status=post_status)
    deleter = CascadingDeleter(store, max_chunk=page_size, concurrency=concurrency, cache=cache)
    # rows deleted by id while scanning; pages must follow ids, not offsets
    cursor = BatchCursor(
        store, sf,
        page_size=page_size,
        shrink=store.shrink_working_set,
        stop=stop,
        keyset=True,
        start_offset=start_offset,
    )

    purged: set[int] = set()
    total = DeleteResult()
    await store.start_bulk_operation()
    try:
        async for batch in cursor.batches():
            for record in batch:
                if record.id in purged:
                    continue
                log.info("finding_twins", id=record.id, title=record.title)
                twins = [i for i in await find_prefix_twins(store, record) if i not in purged]
                if not twins:
                    continue
                total.merge(await deleter.delete_all(twins, dry_run=dry_run))
                purged.update(twins)
    finally:
        await store.end_bulk_operation()

    return {
        "scanned": cursor.total,
        "purged": sorted(purged),
        "rows": total.rows,
        "statements": total.statements,
        "dry_run": dry_run,
        "interrupted": cursor.interrupted,
    }
