from __future__ import annotations

import itertools
import random
from dataclasses import dataclass

from bs4 import Tag

from .selectors import CORRELATION_ATTR

_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
_SUFFIX_LEN = 5


def _base36(n: int) -> str:
    if n <= 0:
        return "0"
    digits: list[str] = []
    while n:
        n, rem = divmod(n, 36)
        digits.append(_ALPHABET[rem])
    return "".join(reversed(digits))


class CorrelationIds:
    """
    Short per-process tokens: a base-36 counter followed by a random base-36 suffix.

    The counter makes tokens unique within the process; the suffix keeps tokens from
    different page sessions apart in shared logs.
    """

    def __init__(self, *, rng: random.Random | None = None) -> None:
        self._counter = itertools.count(1)
        self._rng = rng or random.Random()

    def next(self) -> str:
        suffix = "".join(self._rng.choice(_ALPHABET) for _ in range(_SUFFIX_LEN))
        return f"{_base36(next(self._counter))}{suffix}"


@dataclass
class PostAnnotation:
    correlation_id: str
    processed: bool = False
    has_ancestor: bool | None = None
    has_descendant: bool | None = None


class AnnotationTable:
    """
    Advisory per-post state, keyed by correlation id.

    The correlation id is the only thing written onto the host element. Everything here is
    a cache: a missing or stale entry must always be recoverable from the live page.
    """

    def __init__(self, ids: CorrelationIds | None = None) -> None:
        self._ids = ids or CorrelationIds()
        self._entries: dict[str, PostAnnotation] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def stamp(self, element: Tag) -> str:
        """Issue a fresh correlation id for the element, superseding any earlier one."""
        return self._new_entry(element).correlation_id

    def _new_entry(self, element: Tag) -> PostAnnotation:
        cid = self._ids.next()
        element[CORRELATION_ATTR] = cid
        entry = PostAnnotation(correlation_id=cid)
        self._entries[cid] = entry
        return entry

    def correlation_id(self, element: Tag) -> str | None:
        value = element.get(CORRELATION_ATTR)
        if isinstance(value, str) and value:
            return value
        return None

    def get(self, element: Tag) -> PostAnnotation | None:
        cid = self.correlation_id(element)
        if cid is None:
            return None
        return self._entries.get(cid)

    def is_processed(self, element: Tag) -> bool:
        entry = self.get(element)
        return entry is not None and entry.processed

    def mark_processed(self, element: Tag) -> None:
        entry = self.get(element)
        if entry is None:
            entry = self._new_entry(element)
        entry.processed = True

    def record_adjacency(self, element: Tag, *, has_ancestor: bool, has_descendant: bool) -> None:
        entry = self.get(element)
        if entry is None:
            return
        entry.has_ancestor = bool(has_ancestor)
        entry.has_descendant = bool(has_descendant)

    def has_descendant(self, element: Tag) -> bool:
        entry = self.get(element)
        return entry is not None and entry.has_descendant is True
