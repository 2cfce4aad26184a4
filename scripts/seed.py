import asyncio

from media_twins.storage.record_store import RecordStore

DB = "~/.media-twins/site.db"


async def main():
    db = RecordStore(DB)
    await db.initialize()

    # one original with three twins, each with a translation row and meta
    names = ["pexels-sonya-livshits-9828172"] + [
        f"pexels-sonya-livshits-9828172-{s}" for s in ("2", "3", "2-2")
    ]
    for n in names:
        pid = await db.insert_post(title=n, guid=f"https://example.test/{names[0]}.jpg")
        await db.insert_translation(element_id=pid, language_code="nl", trid=pid)
        await db.insert_meta(post_id=pid, key="_wp_attached_file", value=f"2023/01/{n}.jpg")
        print("inserted", pid, n)

    page = await db.insert_post(title="Gallery page", name="gallery-page", type="page", status="publish")
    await db.insert_meta(post_id=page, key="gallery", value="1")
    print("inserted page", page)

    await db.close()


if __name__ == "__main__":
    asyncio.run(main())
