from __future__ import annotations
import asyncio
from typing import Any, Iterable, Mapping, Optional
from structlog import get_logger
from ..storage.record_store import RecordStore
from ..storage.redis_cache import RedisCache
from ..scan.cursor import ScanFilter
from ..scan.keep_set import KeepHooks, KeepSetBuilder
from ..dedup.deleter import CascadingDeleter

log = get_logger()

async def clean_up_unreferenced_tool(
    *,
    store: RecordStore,
    keep_ids: Iterable[Any] = (),
    keep_keys: Iterable[str] = (),
    ids: Iterable[int] = (),
    filters: Optional[Mapping[str, Any]] = None,
    target_type: Optional[str] = "attachment",
    target_status: Optional[str] = "inherit",
    dry_run: bool = False,
    page_size: int = 500,
    concurrency: int = 4,
    hooks: Optional[KeepHooks] = None,
    stop: Optional[asyncio.Event] = None,
    cache: Optional[RedisCache] = None,
) -> dict:
    """
    Delete every `target_type` post that is neither a seed id nor referenced
    under one of the keep keys by a post matching `filters`.
    """
    target = ScanFilter(post_type=target_type, post_status=target_status)
    target.require_type()
    raw = dict(filters or {})
    ids = list(ids)
    if ids:
        raw["post__in"] = ids
    scan = ScanFilter.from_args(raw)

    builder = KeepSetBuilder(
        store, hooks=hooks, page_size=page_size, shrink=store.shrink_working_set, stop=stop
    )
    deleter = CascadingDeleter(store, max_chunk=page_size, concurrency=concurrency, cache=cache)

    await store.start_bulk_operation()
    try:
        keep = await builder.build(keep_ids, keep_keys, scan)
        # keep-set is final here; ScanInterrupted would have propagated
        doomed = await store.select_ids_excluding(keep, target.conditions())
        if not doomed:
            log.warning("nothing_to_delete", kept=len(keep), type=target_type)
        result = await deleter.delete_all(doomed, dry_run=dry_run)
    finally:
        await store.end_bulk_operation()

    return {
        "scanned": builder.scanned,
        "kept": len(keep),
        "purged": doomed,
        "rows": result.rows,
        "statements": result.statements,
        "dry_run": dry_run,
    }
