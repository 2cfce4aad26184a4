from __future__ import annotations

import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Tuple, Union

from structlog import get_logger

log = get_logger()

_PHP_ARRAY_RE = re.compile(r"^a:\d+:\{(.*)\}$", re.S)
_PHP_TOKEN_RE = re.compile(r'[id]:(-?[\d.]+);|s:\d+:"(.*?)";|b:([01]);|N;', re.S)
_SPLIT_RE = re.compile(r"\s*,\s*")


class Kind(str, Enum):
    SCALAR = "scalar"
    LIST = "list"
    COMPOSITE = "composite"


@dataclass(frozen=True)
class Scalar:
    value: str
    kind: Kind = Kind.SCALAR

    def as_list(self) -> list[str]:
        return [self.value]


@dataclass(frozen=True)
class ListValue:
    """Delimited string, e.g. a gallery field holding `"7912,8016"`."""

    items: Tuple[str, ...]
    kind: Kind = Kind.LIST

    def as_list(self) -> list[str]:
        return list(self.items)


@dataclass(frozen=True)
class Composite:
    """Serialized array (PHP `serialize()` or JSON)."""

    items: Tuple[str, ...]
    kind: Kind = Kind.COMPOSITE

    def as_list(self) -> list[str]:
        return list(self.items)


AttributeValue = Union[Scalar, ListValue, Composite]


def _php_values(body: str) -> Tuple[str, ...]:
    # tokens alternate key, value; only flat arrays are supported
    toks = []
    for m in _PHP_TOKEN_RE.finditer(body):
        num, s, b = m.groups()
        toks.append(num if num is not None else s if s is not None else b if b is not None else "")
    return tuple(toks[1::2])


def _json_values(raw: str) -> Optional[Tuple[str, ...]]:
    try:
        data = json.loads(raw)
    except ValueError:
        return None
    if isinstance(data, dict):
        data = list(data.values())
    if not isinstance(data, list):
        return None
    return tuple("" if v is None else str(v) for v in data)


def parse_attribute(raw: Optional[str]) -> AttributeValue:
    """Tag a raw meta_value as scalar, delimited list or serialized composite."""
    text = (raw or "").strip()
    m = _PHP_ARRAY_RE.match(text)
    if m:
        return Composite(_php_values(m.group(1)))
    if text[:1] in ("[", "{"):
        items = _json_values(text)
        if items is not None:
            return Composite(items)
    if "," in text:
        return ListValue(tuple(_SPLIT_RE.split(text)))
    return Scalar(text)


def to_ids(values: Iterable[str]) -> list[int]:
    """Positive integer ids only; empty, zero and non-numeric entries are dropped."""
    out: list[int] = []
    for v in values:
        v = v.strip()
        if not (v.isascii() and v.isdigit()):
            if v:
                log.debug("attribute_not_an_id", value=v)
            continue
        i = int(v)
        if i:
            out.append(i)
    return out
