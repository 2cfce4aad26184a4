import asyncio

from media_twins.storage.record_store import RecordStore
from media_twins.storage.query import Condition

DB = "~/.media-twins/site.db"

async def main():
    db = RecordStore(DB)
    await db.initialize()

    # insert
    pid = await db.insert_post(title="smoke-photo", guid="https://example.test/smoke-photo.jpg")
    print("inserted", pid)

    # prefix select
    twin = await db.insert_post(title="smoke-photo-2", guid="https://example.test/smoke-photo.jpg")
    ids = await db.select_ids([Condition.prefix("post_title", "smoke-photo")])
    print("prefix matches:", ids)

    # guid lookup
    print("same guid:", await db.select_ids_by_guid("https://example.test/smoke-photo.jpg"))

    # complement
    rest = await db.select_ids_excluding([pid], [Condition.equals("post_title", ["smoke-photo", "smoke-photo-2"])])
    print("not kept:", rest, "expected", [twin])

    await db.close()

if __name__ == "__main__":
    asyncio.run(main())
