from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from structlog import get_logger

from ..errors import ConfigurationError
from ..obs.metrics import METRICS
from ..storage.query import Condition
from ..storage.record_store import Record, RecordStore

log = get_logger()

MULTI_VALUE_MARKER = "__"
_SPLIT_RE = re.compile(r"\s*,\s*")

# filter key -> posts column
_SCALAR_KEYS = {"post_type": "post_type", "post_status": "post_status", "post_mime_type": "post_mime_type"}


def explode_filters(raw: Mapping[str, Any]) -> Dict[str, Any]:
    """`post__in="1,2,3"` -> `post__in=["1", "2", "3"]`. Other values pass through."""
    out: Dict[str, Any] = {}
    for k, v in raw.items():
        if MULTI_VALUE_MARKER in k and isinstance(v, str):
            v = [p for p in _SPLIT_RE.split(v.strip()) if p]
        out[k] = v
    return out


def _int_list(key: str, values: Sequence[Any]) -> List[int]:
    try:
        return [int(v) for v in values]
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{key} expects integer ids, got {values!r}") from e


@dataclass
class ScanFilter:
    post_type: Optional[str] = None
    post_status: Optional[str] = None
    post_mime_type: Optional[str] = None
    post__in: List[int] = field(default_factory=list)
    post__not_in: List[int] = field(default_factory=list)
    post_name__in: List[str] = field(default_factory=list)

    @classmethod
    def from_args(cls, raw: Mapping[str, Any], **defaults: Any) -> "ScanFilter":
        args = {**{k: v for k, v in defaults.items() if v is not None}, **explode_filters(raw)}
        sf = cls()
        for k, v in args.items():
            if k in _SCALAR_KEYS:
                setattr(sf, k, None if v in ("", "any") else str(v))
            elif k in ("post__in", "post__not_in"):
                setattr(sf, k, _int_list(k, list(v)))
            elif k == "post_name__in":
                sf.post_name__in = [str(x) for x in v]
            else:
                raise ConfigurationError(f"unsupported filter: {k}")
        return sf

    @property
    def by_ids(self) -> bool:
        return bool(self.post__in or self.post__not_in)

    def require_type(self) -> str:
        if not self.post_type:
            raise ConfigurationError("a target post_type filter is required")
        return self.post_type

    def conditions(self) -> List[Any]:
        out: List[Any] = []
        for key, column in _SCALAR_KEYS.items():
            v = getattr(self, key)
            if v is not None:
                out.append(Condition.equals(column, [v]))
        if self.post__in:
            out.append(Condition.equals("ID", self.post__in))
        if self.post__not_in:
            out.append(Condition.not_equals("ID", self.post__not_in))
        if self.post_name__in:
            out.append(Condition.equals("post_name", self.post_name__in))
        return out


async def next_batch(
    store: RecordStore,
    scan_filter: ScanFilter,
    page_size: Optional[int],
    offset: int = 0,
    *,
    after_id: Optional[int] = None,
    meta_keys: Sequence[str] = (),
) -> Tuple[List[Record], int]:
    """One page of posts. `page_size=None` fetches everything matching in one go."""
    where = scan_filter.conditions()
    if after_id is not None:
        where.append(Condition.greater("ID", after_id))
        offset = 0
    items = await store.fetch_posts(where, limit=page_size, offset=offset, meta_keys=meta_keys)
    return items, len(items)


class BatchCursor:
    """
    Lazy, finite walk over the posts matching a filter, one page at a time.

    Offset pagination by default; `keyset=True` pages on `ID > last seen id`
    instead, for scans that delete rows while they run. Filters naming explicit
    ids are fetched in a single unpaginated batch.
    """

    def __init__(
        self,
        store: RecordStore,
        scan_filter: ScanFilter,
        *,
        page_size: int = 500,
        meta_keys: Sequence[str] = (),
        shrink: Optional[Callable[[], None]] = None,
        stop: Optional[asyncio.Event] = None,
        keyset: bool = False,
        start_offset: int = 0,
    ) -> None:
        if page_size <= 0:
            raise ConfigurationError("page_size must be positive")
        self.store = store
        self.scan_filter = scan_filter
        self.page_size = page_size
        self.meta_keys = list(meta_keys)
        self.shrink = shrink
        self.stop = stop
        self.keyset = keyset
        self.reset(start_offset)

    def reset(self, offset: int = 0) -> None:
        self.offset = offset
        self.last_id: Optional[int] = None
        self.total = 0
        self.batches_seen = 0
        self.interrupted = False

    async def batches(self) -> AsyncIterator[List[Record]]:
        page: Optional[int] = self.page_size
        if self.scan_filter.by_ids:
            log.warning("batching_disabled", reason="explicit id filter", ids=len(self.scan_filter.post__in))
            page = None
        while True:
            if self.stop is not None and self.stop.is_set():
                self.interrupted = True
                log.warning("scan_interrupted", total=self.total, offset=self.offset)
                break
            items, n = await next_batch(
                self.store,
                self.scan_filter,
                page,
                self.offset,
                after_id=self.last_id if self.keyset and page else None,
                meta_keys=self.meta_keys,
            )
            if not n:
                break
            self.batches_seen += 1
            self.total += n
            self.offset += n
            self.last_id = items[-1].id
            await METRICS.inc("batches_total")
            await METRICS.inc("records_scanned_total", n)
            log.info("batch", n=self.batches_seen, size=n, offset=self.offset)
            yield items
            if self.shrink is not None:
                self.shrink()
            if page is None or n < page:
                break
        log.info("scan_complete", total=self.total, batches=self.batches_seen)
