from __future__ import annotations

import asyncio
from typing import Any, Callable, FrozenSet, Iterable, Iterator, List, Optional, Sequence, Union

from structlog import get_logger

from ..errors import ExtensionCallbackError, ScanInterrupted
from ..storage.record_store import RecordStore
from .attributes import parse_attribute, to_ids
from .cursor import BatchCursor, ScanFilter

log = get_logger()

KeepIdsHook = Callable[[List[int]], Iterable[Any]]
KeepKeysHook = Callable[[List[str]], Iterable[str]]


class KeepSet:
    """Ids that must survive a run. Grows during the scan, read-only after finalize()."""

    def __init__(self, ids: Iterable[int] = ()) -> None:
        self._ids: set[int] = set()
        self._final: Optional[FrozenSet[int]] = None
        self.add(ids)

    def add(self, ids: Iterable[int]) -> None:
        if self._final is not None:
            raise RuntimeError("keep-set is finalized")
        self._ids.update(ids)

    def finalize(self) -> FrozenSet[int]:
        if self._final is None:
            self._final = frozenset(i for i in self._ids if i)
        return self._final

    @property
    def finalized(self) -> bool:
        return self._final is not None

    def _view(self) -> Union[set[int], FrozenSet[int]]:
        return self._ids if self._final is None else self._final

    def __contains__(self, i: object) -> bool:
        return i in self._view()

    def __len__(self) -> int:
        return len(self._view())

    def __iter__(self) -> Iterator[int]:
        return iter(self._view())


class KeepHooks:
    """Ordered callbacks that may extend the seed ids / seed keys of a run."""

    def __init__(self) -> None:
        self.keep_ids: List[KeepIdsHook] = []
        self.keep_keys: List[KeepKeysHook] = []

    def register_keep_ids(self, fn: KeepIdsHook) -> KeepIdsHook:
        self.keep_ids.append(fn)
        return fn

    def register_keep_keys(self, fn: KeepKeysHook) -> KeepKeysHook:
        self.keep_keys.append(fn)
        return fn

    @staticmethod
    def _apply(hook: str, callbacks: Sequence[Callable], value: list) -> list:
        for cb in callbacks:
            try:
                value = list(cb(list(value)))
            except Exception as e:
                raise ExtensionCallbackError(hook, cb, e) from e
        return value

    def apply_keep_ids(self, ids: Iterable[Any]) -> List[int]:
        return to_ids(str(i) for i in self._apply("keep_ids", self.keep_ids, list(ids)))

    def apply_keep_keys(self, keys: Iterable[str]) -> List[str]:
        out = self._apply("keep_keys", self.keep_keys, list(keys))
        return [k for k in dict.fromkeys(str(k).strip() for k in out) if k]


class KeepSetBuilder:
    def __init__(
        self,
        store: RecordStore,
        *,
        hooks: Optional[KeepHooks] = None,
        page_size: int = 500,
        shrink: Optional[Callable[[], None]] = None,
        stop: Optional[asyncio.Event] = None,
    ) -> None:
        self.store = store
        self.hooks = hooks if hooks is not None else KeepHooks()
        self.page_size = page_size
        self.shrink = shrink
        self.stop = stop
        self.scanned = 0

    async def build(
        self,
        seed_ids: Iterable[Any],
        seed_keys: Iterable[str],
        scan_filter: ScanFilter,
        keep: Optional[KeepSet] = None,
    ) -> FrozenSet[int]:
        """
        Seed ids (after the keep_ids hooks) plus every id referenced under any
        seed key (after the keep_keys hooks) by a record matching scan_filter.
        Raises ScanInterrupted if the scan is stopped before the last batch.
        """
        keep = keep if keep is not None else KeepSet()
        ids = self.hooks.apply_keep_ids(seed_ids)
        keys = self.hooks.apply_keep_keys(seed_keys)
        keep.add(ids)

        if not keys:
            log.warning("keep_set_no_keys", seeds=len(ids))
        else:
            cursor = BatchCursor(
                self.store,
                scan_filter,
                page_size=self.page_size,
                meta_keys=keys,
                shrink=self.shrink,
                stop=self.stop,
            )
            async for batch in cursor.batches():
                for record in batch:
                    for key in keys:
                        raw = record.meta.get(key)
                        if raw is not None:
                            keep.add(to_ids(parse_attribute(raw).as_list()))
            self.scanned += cursor.total
            if cursor.interrupted:
                raise ScanInterrupted(f"keep-set scan stopped after {cursor.total} records")

        final = keep.finalize()
        if not final:
            log.warning("keep_set_empty", keys=keys)
        log.info("keep_set_final", size=len(final), seeds=len(ids), keys=keys, scanned=self.scanned)
        return final
