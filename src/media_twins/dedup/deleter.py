from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from structlog import get_logger

from ..obs.metrics import METRICS
from ..storage import query as q
from ..storage.query import Comparator, Condition
from ..storage.record_store import RecordStore
from ..storage.redis_cache import RedisCache

log = get_logger()

UNKNOWN = "?"  # dry-run placeholder for a row count
Rows = Union[int, str]


def chunked(ids: Sequence[int], size: int) -> Iterator[List[int]]:
    for i in range(0, len(ids), size):
        yield list(ids[i : i + size])


@dataclass
class DeleteResult:
    ids: List[int] = field(default_factory=list)
    rows: Dict[str, Rows] = field(default_factory=dict)
    statements: List[str] = field(default_factory=list)

    def merge(self, other: "DeleteResult") -> "DeleteResult":
        self.ids.extend(other.ids)
        self.statements.extend(other.statements)
        for table, n in other.rows.items():
            have = self.rows.get(table, 0)
            if UNKNOWN in (have, n):
                self.rows[table] = UNKNOWN
            else:
                self.rows[table] = int(have) + int(n)
        return self


class CascadingDeleter:
    """Deletes posts together with their translation rows and meta rows."""

    def __init__(
        self,
        store: RecordStore,
        *,
        max_chunk: int = 500,
        concurrency: int = 4,
        cache: Optional[RedisCache] = None,
    ) -> None:
        self.store = store
        self.max_chunk = max_chunk
        self.concurrency = max(1, concurrency)
        self.cache = cache

    def targets(self) -> List[Tuple[str, str]]:
        t = self.store.tables
        return [(t.posts, "ID"), (t.translations, "element_id"), (t.meta, "post_id")]

    async def delete(
        self,
        ids: Iterable[Union[int, str]],
        *,
        dry_run: bool = False,
        comparator: Comparator = Comparator.EQUALS,
    ) -> DeleteResult:
        """
        One chunk. `comparator=Comparator.LIKE` treats `ids` as patterns.
        Dry-run reports the statements and UNKNOWN row counts without executing.
        """
        ids = list(ids)
        if not ids:
            return DeleteResult()
        if len(ids) > self.max_chunk:
            raise ValueError(f"chunk of {len(ids)} ids exceeds max_chunk={self.max_chunk}")

        result = DeleteResult(ids=list(ids))
        t0 = time.perf_counter()
        for table, column in self.targets():
            stmt = q.delete(table, [Condition(column, comparator, tuple(ids))])
            if dry_run:
                sql = stmt.render()
                log.info("dry_run", sql=sql)
                result.statements.append(sql)
                result.rows[table] = UNKNOWN
                continue
            n = await self.store.execute(stmt)
            result.rows[table] = n
            await METRICS.inc(f"rows_deleted_total_{table}", n)
        if not dry_run:
            if self.cache:
                await self.cache.touch_last_write()
            await METRICS.observe_ms("delete_chunk", (time.perf_counter() - t0) * 1000.0)
        log.info("purged", count=len(ids), dry_run=dry_run, rows=result.rows)
        return result

    async def delete_all(self, ids: Sequence[int], *, dry_run: bool = False) -> DeleteResult:
        """
        Slice into chunks of max_chunk and delete them with bounded concurrency.
        On a failing chunk no further chunks start; the ones already running
        finish before the first error is raised.
        """
        sem = asyncio.Semaphore(self.concurrency)
        failed = asyncio.Event()

        async def run(chunk: List[int]) -> Optional[DeleteResult]:
            async with sem:
                if failed.is_set():
                    return None
                try:
                    return await self.delete(chunk, dry_run=dry_run)
                except Exception:
                    failed.set()
                    raise

        chunks = list(chunked(list(ids), self.max_chunk))
        results = await asyncio.gather(*(run(c) for c in chunks), return_exceptions=True)
        total = DeleteResult()
        errors = []
        for chunk, r in zip(chunks, results):
            if isinstance(r, BaseException):
                errors.append(r)
            elif r is None:
                log.warning("chunk_skipped", count=len(chunk))
            else:
                total.merge(r)
        if errors:
            log.error("delete_failed", chunks=len(chunks), failed=len(errors), rows=total.rows)
            raise errors[0]
        return total
