from __future__ import annotations

import os
import pathlib
import re
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple

import aiosqlite
from structlog import get_logger

from ..errors import ConfigurationError, StoreError
from . import query as q
from .query import Condition, NotInTable, Statement

log = get_logger()

_PREFIX_RE = re.compile(r"^[A-Za-z0-9_]*$")

PRAGMAS: list[str] = [
    "PRAGMA journal_mode=WAL;",
    "PRAGMA synchronous=NORMAL;",
    "PRAGMA temp_store=MEMORY;",
]

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS {posts} (
  ID INTEGER PRIMARY KEY,
  post_title TEXT NOT NULL DEFAULT '',
  post_name TEXT NOT NULL DEFAULT '',
  post_type TEXT NOT NULL DEFAULT 'post',
  post_status TEXT NOT NULL DEFAULT 'publish',
  post_mime_type TEXT NOT NULL DEFAULT '',
  guid TEXT NOT NULL DEFAULT ''
);

-- Rows written by the translation plugin. element_id points at {posts}.ID.
CREATE TABLE IF NOT EXISTS {translations} (
  translation_id INTEGER PRIMARY KEY,
  element_type TEXT NOT NULL DEFAULT 'post_attachment',
  element_id INTEGER,
  trid INTEGER NOT NULL DEFAULT 0,
  language_code TEXT NOT NULL DEFAULT '',
  source_language_code TEXT
);

CREATE TABLE IF NOT EXISTS {meta} (
  meta_id INTEGER PRIMARY KEY,
  post_id INTEGER NOT NULL DEFAULT 0,
  meta_key TEXT,
  meta_value TEXT
);

CREATE INDEX IF NOT EXISTS {posts}_type_status ON {posts}(post_type, post_status, ID);
CREATE INDEX IF NOT EXISTS {posts}_name ON {posts}(post_name);
CREATE INDEX IF NOT EXISTS {posts}_title ON {posts}(post_title);
CREATE INDEX IF NOT EXISTS {posts}_guid ON {posts}(guid);
CREATE INDEX IF NOT EXISTS {translations}_element ON {translations}(element_id);
CREATE INDEX IF NOT EXISTS {meta}_post_id ON {meta}(post_id);
CREATE INDEX IF NOT EXISTS {meta}_key ON {meta}(meta_key);
"""

KEEP_TABLE = "temp.keep_ids"


@dataclass(frozen=True)
class Tables:
    posts: str
    translations: str
    meta: str

    @classmethod
    def with_prefix(cls, prefix: str) -> "Tables":
        if not _PREFIX_RE.match(prefix):
            raise ConfigurationError(f"invalid table prefix: {prefix!r}")
        return cls(f"{prefix}posts", f"{prefix}icl_translations", f"{prefix}postmeta")


@dataclass
class Record:
    id: int
    title: str = ""
    name: str = ""
    type: str = ""
    status: str = ""
    guid: str = ""
    meta: Dict[str, str] = field(default_factory=dict)


POST_COLUMNS = ["ID", "post_title", "post_name", "post_type", "post_status", "guid"]


def _record(row: Any) -> Record:
    return Record(
        id=int(row["ID"]),
        title=row["post_title"],
        name=row["post_name"],
        type=row["post_type"],
        status=row["post_status"],
        guid=row["guid"],
    )


class RecordStore:
    """Parametrized selects and deletes over the posts, translations and meta tables."""

    def __init__(self, db_path: str, *, table_prefix: str = "wp_", log_queries: bool = False) -> None:
        self.db_path = os.path.expanduser(db_path)
        self.tables = Tables.with_prefix(table_prefix)
        self.log_queries = log_queries
        self.conn: Optional[aiosqlite.Connection] = None
        self.query_log: list[Statement] = []
        self.memo: dict[str, Any] = {}
        self.bulk = False

    async def initialize(self) -> None:
        pathlib.Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            self.conn = await aiosqlite.connect(self.db_path)
            self.conn.row_factory = aiosqlite.Row
            for p in PRAGMAS:
                await self.conn.execute(p)
            t = self.tables
            await self.conn.executescript(
                SCHEMA_SQL.format(posts=t.posts, translations=t.translations, meta=t.meta)
            )
            await self.conn.execute("CREATE TEMP TABLE IF NOT EXISTS keep_ids (id INTEGER PRIMARY KEY)")
            await self.conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"cannot open {self.db_path}: {e}") from e

    async def close(self) -> None:
        if self.conn:
            await self.conn.close()
            self.conn = None

    # ---------------- Bulk lifecycle ----------------

    async def _set_synchronous(self, level: str) -> None:
        # the safety level cannot change inside an open transaction
        assert self.conn is not None
        try:
            await self.conn.commit()
            await self.conn.execute(f"PRAGMA synchronous={level};")
        except sqlite3.Error as e:
            raise StoreError(f"cannot set synchronous={level}: {e}") from e

    async def start_bulk_operation(self) -> None:
        await self._set_synchronous("OFF")
        self.bulk = True
        log.info("bulk_start", db=self.db_path)

    async def end_bulk_operation(self) -> None:
        await self._set_synchronous("NORMAL")
        self.bulk = False
        self.shrink_working_set()
        log.info("bulk_end", db=self.db_path)

    def shrink_working_set(self) -> None:
        """Drop the query log and per-run lookup memo. Called between batches."""
        self.query_log.clear()
        self.memo.clear()

    # ---------------- Execution ----------------

    def _note(self, stmt: Statement) -> None:
        if self.log_queries:
            self.query_log.append(stmt)

    async def fetchall(self, stmt: Statement) -> list[aiosqlite.Row]:
        assert self.conn is not None
        self._note(stmt)
        try:
            cur = await self.conn.execute(stmt.sql, stmt.params)
            return list(await cur.fetchall())
        except sqlite3.Error as e:
            raise StoreError(f"select failed: {e} [{stmt.sql}]") from e

    async def execute(self, stmt: Statement) -> int:
        """Run a write statement and commit. Returns affected rows."""
        assert self.conn is not None
        self._note(stmt)
        try:
            cur = await self.conn.execute(stmt.sql, stmt.params)
            await self.conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"write failed: {e} [{stmt.sql}]") from e
        return cur.rowcount

    # ---------------- Reads ----------------

    async def fetch_posts(
        self,
        where: Sequence[Any],
        *,
        limit: Optional[int] = None,
        offset: int = 0,
        meta_keys: Sequence[str] = (),
    ) -> list[Record]:
        stmt = q.select(self.tables.posts, POST_COLUMNS, where, order_by="ID", limit=limit, offset=offset)
        records = [_record(r) for r in await self.fetchall(stmt)]
        if records and meta_keys:
            meta = await self.fetch_meta([r.id for r in records], meta_keys)
            for r in records:
                r.meta = meta.get(r.id, {})
        return records

    async def fetch_meta(self, ids: Sequence[int], keys: Sequence[str]) -> dict[int, dict[str, str]]:
        """First value per (post_id, meta_key), like a single-value meta read."""
        if not ids or not keys:
            return {}
        stmt = q.select(
            self.tables.meta,
            ["post_id", "meta_key", "meta_value"],
            [Condition.equals("post_id", ids), Condition.equals("meta_key", keys)],
            order_by="meta_id",
        )
        out: dict[int, dict[str, str]] = {}
        for r in await self.fetchall(stmt):
            out.setdefault(int(r["post_id"]), {}).setdefault(r["meta_key"], r["meta_value"])
        return out

    async def select_ids(self, where: Sequence[Any]) -> list[int]:
        stmt = q.select(self.tables.posts, ["ID"], where, order_by="ID")
        return [int(r["ID"]) for r in await self.fetchall(stmt)]

    async def fetch_guids(self, ids: Sequence[int]) -> list[Tuple[int, str]]:
        if not ids:
            return []
        stmt = q.select(self.tables.posts, ["ID", "guid"], [Condition.equals("ID", ids)], order_by="ID")
        return [(int(r["ID"]), r["guid"]) for r in await self.fetchall(stmt)]

    async def select_ids_by_guid(self, guid: str, where: Sequence[Any] = ()) -> list[int]:
        return await self.select_ids([Condition.equals("guid", [guid]), *where])

    async def select_ids_excluding(self, keep: Iterable[int], where: Sequence[Any]) -> list[int]:
        """Every post id matching `where` that is not in `keep`.

        The keep ids go through a temp table so the statement stays the same size
        however large the keep-set is.
        """
        assert self.conn is not None
        try:
            await self.conn.execute(f"DELETE FROM {KEEP_TABLE}")
            await self.conn.executemany(
                f"INSERT OR IGNORE INTO {KEEP_TABLE}(id) VALUES (?)", ((int(i),) for i in keep)
            )
            await self.conn.commit()
        except sqlite3.Error as e:
            raise StoreError(f"cannot load keep-set: {e}") from e
        return await self.select_ids([*where, NotInTable("ID", KEEP_TABLE, "id")])

    async def count_rows(self, table: str, where: Sequence[Any] = ()) -> int:
        w, params = q.where_clause(where)
        rows = await self.fetchall(Statement(f"SELECT COUNT(*) AS c FROM {q.ident(table)}{w}", params))
        return int(rows[0]["c"])

    # ---------------- Writes (fixtures / scripts) ----------------

    async def insert_post(
        self,
        *,
        title: str,
        name: str = "",
        type: str = "attachment",
        status: str = "inherit",
        guid: str = "",
        id: Optional[int] = None,
    ) -> int:
        assert self.conn is not None
        cur = await self.conn.execute(
            f"""
            INSERT INTO {self.tables.posts} (ID, post_title, post_name, post_type, post_status, guid)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (id, title, name or title, type, status, guid),
        )
        await self.conn.commit()
        return int(cur.lastrowid)

    async def insert_translation(self, *, element_id: int, language_code: str = "en", trid: int = 0) -> int:
        assert self.conn is not None
        cur = await self.conn.execute(
            f"INSERT INTO {self.tables.translations} (element_id, language_code, trid) VALUES (?, ?, ?)",
            (element_id, language_code, trid),
        )
        await self.conn.commit()
        return int(cur.lastrowid)

    async def insert_meta(self, *, post_id: int, key: str, value: str) -> int:
        assert self.conn is not None
        cur = await self.conn.execute(
            f"INSERT INTO {self.tables.meta} (post_id, meta_key, meta_value) VALUES (?, ?, ?)",
            (post_id, key, value),
        )
        await self.conn.commit()
        return int(cur.lastrowid)
