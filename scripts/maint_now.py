import asyncio
from media_twins.storage.record_store import RecordStore
from media_twins.config import settings
from media_twins.tools.clean_up_media_twins import clean_up_media_twins_tool

async def main():
    db = RecordStore(settings.db_path, table_prefix=settings.table_prefix)
    await db.initialize()
    res = await clean_up_media_twins_tool(
        store=db,
        dry_run=True,
        post_type=settings.post_type,
        post_status=settings.post_status,
        page_size=settings.posts_per_page,
    )
    print("scanned", res["scanned"])
    print("would_purge", res["purged"])
    for s in res["statements"]:
        print(s)
    await db.close()

if __name__ == "__main__":
    asyncio.run(main())
