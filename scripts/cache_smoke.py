import asyncio

from media_twins.config import settings
from media_twins.storage.redis_cache import RedisCache


async def main():
    cache = RedisCache(settings.redis_url, namespace=settings.table_prefix)
    await cache.initialize()
    print("enabled:", cache.enabled)
    if not cache.enabled:
        return

    await cache.set_guid_ids("https://example.test/a.jpg", [1, 2])
    print("cached:", await cache.get_guid_ids("https://example.test/a.jpg"))
    await cache.touch_last_write()
    print("after write:", await cache.get_guid_ids("https://example.test/a.jpg"))
    await cache.close()


if __name__ == "__main__":
    asyncio.run(main())
