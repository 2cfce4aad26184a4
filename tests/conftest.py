"""
Pytest configuration: a throwaway on-disk site database per test.
"""

import pytest
import pytest_asyncio

from media_twins.storage.record_store import RecordStore


@pytest_asyncio.fixture
async def store(tmp_path):
    s = RecordStore(str(tmp_path / "site.db"), log_queries=True)
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
def add_attachment(store):
    """Insert an attachment plus one translation row and one meta row."""
    async def _add(title, *, name=None, guid="", id=None, type="attachment", status="inherit", rows=True):
        pid = await store.insert_post(title=title, name=name or title, guid=guid, id=id, type=type, status=status)
        if rows:
            await store.insert_translation(element_id=pid, language_code="nl", trid=pid)
            await store.insert_meta(post_id=pid, key="_wp_attached_file", value=f"2023/01/{title}.jpg")
        return pid
    return _add


async def dependent_rows(store, ids):
    """(translation rows, meta rows) still pointing at ids."""
    from media_twins.storage.query import Condition
    t = store.tables
    return (
        await store.count_rows(t.translations, [Condition.equals("element_id", ids)]),
        await store.count_rows(t.meta, [Condition.equals("post_id", ids)]),
    )
