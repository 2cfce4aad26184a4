from __future__ import annotations
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional, Sequence, Tuple

from ..errors import ConfigurationError

_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_LIKE_SPECIALS = re.compile(r"([\\%_])")


def ident(name: str) -> str:
    """Validate a table/column name. Identifiers are never bound as parameters."""
    if not _IDENT_RE.match(name or ""):
        raise ConfigurationError(f"invalid SQL identifier: {name!r}")
    return name


def escape_like(value: str) -> str:
    return _LIKE_SPECIALS.sub(r"\\\1", value)


class Comparator(str, Enum):
    EQUALS = "="
    NOT_EQUALS = "<>"
    LIKE = "LIKE"
    GREATER = ">"


@dataclass(frozen=True)
class Condition:
    """`column <comparator> value` OR'ed over every value."""

    column: str
    comparator: Comparator
    values: Tuple[Any, ...]

    @classmethod
    def equals(cls, column: str, values: Iterable[Any]) -> "Condition":
        return cls(column, Comparator.EQUALS, tuple(values))

    @classmethod
    def not_equals(cls, column: str, values: Iterable[Any]) -> "Condition":
        return cls(column, Comparator.NOT_EQUALS, tuple(values))

    @classmethod
    def like(cls, column: str, patterns: Iterable[str]) -> "Condition":
        return cls(column, Comparator.LIKE, tuple(patterns))

    @classmethod
    def prefix(cls, column: str, value: str, sep: str = "-") -> "Condition":
        """Rows whose column starts with `value + sep`; LIKE wildcards in value are literal."""
        return cls.like(column, [escape_like(value + sep) + "%"])

    @classmethod
    def greater(cls, column: str, value: Any) -> "Condition":
        return cls(column, Comparator.GREATER, (value,))

    def sql(self) -> Tuple[str, Tuple[Any, ...]]:
        col = ident(self.column)
        n = len(self.values)
        if self.comparator is Comparator.LIKE:
            if not n:
                return "0", ()
            parts = [f"{col} LIKE ? ESCAPE '\\'" for _ in self.values]
            return "(" + " OR ".join(parts) + ")", self.values
        if self.comparator is Comparator.GREATER:
            return f"{col} > ?", self.values[:1]
        if self.comparator is Comparator.NOT_EQUALS:
            if not n:
                return "1", ()
            if n == 1:
                return f"{col} <> ?", self.values
            q = ",".join("?" for _ in self.values)
            return f"{col} NOT IN ({q})", self.values
        if not n:
            return "0", ()
        if n == 1:
            return f"{col} = ?", self.values
        q = ",".join("?" for _ in self.values)
        return f"{col} IN ({q})", self.values


@dataclass(frozen=True)
class NotInTable:
    """`column NOT IN (SELECT other_column FROM table)`; used for large exclusion sets."""

    column: str
    table: str
    other_column: str

    def sql(self) -> Tuple[str, Tuple[Any, ...]]:
        return (
            f"{ident(self.column)} NOT IN (SELECT {ident(self.other_column)} FROM {self.table})",
            (),
        )


@dataclass(frozen=True)
class Statement:
    sql: str
    params: Tuple[Any, ...] = ()

    def render(self) -> str:
        """Human-readable form with parameters inlined. Display only, never executed."""
        pieces = self.sql.split("?")
        if len(pieces) - 1 != len(self.params):
            return f"{self.sql} -- params={list(self.params)!r}"
        out = [pieces[0]]
        for p, tail in zip(self.params, pieces[1:]):
            if isinstance(p, (int, float)):
                out.append(str(p))
            else:
                out.append("'" + str(p).replace("'", "''") + "'")
            out.append(tail)
        return "".join(out)


def where_clause(conditions: Sequence[Any]) -> Tuple[str, Tuple[Any, ...]]:
    clauses: list[str] = []
    params: list[Any] = []
    for c in conditions:
        s, p = c.sql()
        clauses.append(s)
        params.extend(p)
    if not clauses:
        return "", ()
    return " WHERE " + " AND ".join(clauses), tuple(params)


def select(
    table: str,
    columns: Sequence[str],
    where: Sequence[Any] = (),
    *,
    order_by: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> Statement:
    cols = ", ".join(ident(c) for c in columns)
    w, params = where_clause(where)
    sql = f"SELECT {cols} FROM {ident(table)}{w}"
    if order_by:
        sql += f" ORDER BY {ident(order_by)} ASC"
    if limit is not None:
        sql += " LIMIT ?"
        params += (int(limit),)
        if offset:
            sql += " OFFSET ?"
            params += (int(offset),)
    return Statement(sql, params)


def delete(table: str, where: Sequence[Any]) -> Statement:
    w, params = where_clause(where)
    if not w:
        raise ValueError("refusing to build an unconditional DELETE")
    return Statement(f"DELETE FROM {ident(table)}{w}", params)
