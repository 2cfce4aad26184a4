from __future__ import annotations

import hashlib
import json
import time
from typing import List, Optional, Sequence

from redis.asyncio import Redis, from_url


class RedisCache:
    """
    Async Redis cache for guid -> post id lookups.
    Safe to disable by setting URL to 'disabled'.
    """

    def __init__(self, redis_url: str, *, namespace: str = "wp_", ttl: int = 3600) -> None:
        self.redis_url = redis_url
        self.namespace = namespace
        self.ttl = ttl
        self.client: Optional[Redis] = None
        self.enabled: bool = False

    # ---------- lifecycle ----------

    async def initialize(self) -> None:
        if self.redis_url.lower() == "disabled":
            self.enabled = False
            return
        self.client = from_url(self.redis_url, encoding="utf-8", decode_responses=True)
        try:
            pong = await self.client.ping()
            self.enabled = bool(pong)
        except Exception:
            self.enabled = False
            self.client = None

    async def close(self) -> None:
        if self.client:
            try:
                await self.client.aclose()
            finally:
                self.client = None
        self.enabled = False

    # ---------- keys ----------

    @staticmethod
    def _sha256(text: str) -> str:
        return hashlib.sha256(text.encode("utf-8")).hexdigest()

    def _lw_key(self) -> str:
        return f"mt:{self.namespace}:lw"  # last delete timestamp (seconds)

    async def _guid_key(self, guid: str) -> str:
        # last-write in the key: any delete orphans every older lookup
        lw = await self.last_write_ts()
        return f"mt:{self.namespace}:guid:{self._sha256(guid)}:{lw}"

    # ---------- guid lookups ----------

    async def get_guid_ids(self, guid: str) -> Optional[List[int]]:
        if not (self.enabled and self.client):
            return None
        v = await self.client.get(await self._guid_key(guid))
        return [int(i) for i in json.loads(v)] if v else None

    async def set_guid_ids(self, guid: str, ids: Sequence[int]) -> None:
        if not (self.enabled and self.client):
            return
        await self.client.setex(await self._guid_key(guid), self.ttl, json.dumps([int(i) for i in ids]))

    # ---------- invalidation ----------

    async def touch_last_write(self) -> None:
        if not (self.enabled and self.client):
            return
        now = time.time_ns()
        await self.client.set(self._lw_key(), str(now))

    async def last_write_ts(self) -> str:
        if not (self.enabled and self.client):
            return "0"
        v = await self.client.get(self._lw_key())
        return v or "0"
