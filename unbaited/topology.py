from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from bs4 import Tag

from .annotations import AnnotationTable
from .config_schema import TopologyConfig
from .dom import FeedPage, closest_test_id, find_all_test_id, next_element_sibling, previous_element_sibling
from .extract import extract_author, extract_text
from .layout import is_transparent
from .selectors import FEED_CELL, POST, has_test_id


@dataclass(frozen=True)
class Adjacency:
    has_ancestor: bool = False
    has_descendant: bool = False


@dataclass(frozen=True)
class ThreadContext:
    has_ancestor: bool = False
    has_descendant: bool = False
    ancestor_chain_text: Sequence[str] = field(default_factory=tuple)


def format_thread_entry(label: str, author: str, text: str) -> str:
    return f"[{label} @{author}: {text}]"


def _post_in_cell(cell: Tag | None) -> Tag | None:
    if cell is None or not has_test_id(cell, FEED_CELL):
        return None
    found = find_all_test_id(cell, POST)
    return found[0] if found else None


class ThreadTopologyResolver:
    """
    Infers reply chains from feed-cell adjacency and the rendered connector line.

    Two consecutive feed cells are only a thread link when the visual connector says so.
    The connector test is layout-based and best effort: when a post cannot see its own
    "above" line, the previous post's cached "below" flag wins.
    """

    def __init__(
        self,
        page: FeedPage,
        annotations: AnnotationTable,
        *,
        config: TopologyConfig | None = None,
    ) -> None:
        self._page = page
        self._annotations = annotations
        self._cfg = config or TopologyConfig()

    # -- structure -----------------------------------------------------------

    def cell_of(self, post: Tag) -> Tag | None:
        return closest_test_id(post, FEED_CELL)

    def previous_post(self, post: Tag) -> Tag | None:
        cell = self.cell_of(post)
        if cell is None:
            return None
        return _post_in_cell(previous_element_sibling(cell))

    def next_post(self, post: Tag) -> Tag | None:
        cell = self.cell_of(post)
        if cell is None:
            return None
        return _post_in_cell(next_element_sibling(cell))

    # -- connectors ----------------------------------------------------------

    def detect_connectors(self, post: Tag) -> Adjacency:
        """Visual test only, no fallback."""
        cell = self.cell_of(post)
        if cell is None or not self._page.contains(cell):
            return Adjacency()

        layout = self._page.layout
        cell_rect = layout.rect(cell)
        post_rect = layout.rect(post)
        cfg = self._cfg

        above = False
        below = False
        for div in cell.find_all("div"):
            rect = layout.rect(div)
            if rect.width <= 0 or rect.height <= 0:
                continue
            if rect.width > cfg.connector_max_width_px:
                continue
            if rect.left > post_rect.left + cfg.avatar_column_px:
                continue
            if is_transparent(layout.background_color(div)):
                continue

            if rect.top <= cell_rect.top + cfg.top_tolerance_px and rect.height >= cfg.min_above_height_px:
                above = True
            if rect.bottom >= cell_rect.bottom - cfg.bottom_tolerance_px and rect.height >= cfg.min_below_height_px:
                below = True
            if above and below:
                break

        return Adjacency(has_ancestor=above, has_descendant=below)

    def detect_adjacency(self, post: Tag) -> Adjacency:
        detected = self.detect_connectors(post)
        if detected.has_ancestor or self.cell_of(post) is None:
            return detected

        prev = self.previous_post(post)
        if prev is not None and self._annotations.has_descendant(prev):
            return Adjacency(has_ancestor=True, has_descendant=detected.has_descendant)
        return detected

    def _links_downward(self, post: Tag) -> bool:
        if self._annotations.has_descendant(post):
            return True
        return self.detect_connectors(post).has_descendant

    def _linked(self, upper: Tag, lower: Tag) -> bool:
        """Same test for a link whichever end the walk starts from."""
        return self.detect_adjacency(lower).has_ancestor or self._links_downward(upper)

    # -- chains --------------------------------------------------------------

    def _walk_up(self, post: Tag) -> list[Tag]:
        """Linked ancestors, nearest first."""
        out: list[Tag] = []
        current = post
        while True:
            parent = self.previous_post(current)
            if parent is None or not self._linked(parent, current):
                break
            if any(p is parent for p in out):
                break
            out.append(parent)
            current = parent
        return out

    def _walk_down(self, post: Tag) -> list[Tag]:
        out: list[Tag] = []
        current = post
        while True:
            reply = self.next_post(current)
            if reply is None or not self._linked(current, reply):
                break
            if any(r is reply for r in out):
                break
            out.append(reply)
            current = reply
        return out

    def collect_ancestor_chain(self, post: Tag) -> list[str]:
        """Formatted ancestor posts, oldest first."""
        chain = []
        for ancestor in reversed(self._walk_up(post)):
            chain.append(format_thread_entry("Thread", extract_author(ancestor), extract_text(ancestor)))
        return chain

    def collect_full_thread(self, post: Tag) -> list[Tag]:
        """Every post of the thread in feed order, the origin included."""
        if self.cell_of(post) is None:
            return [post]
        ups = list(reversed(self._walk_up(post)))
        return ups + [post] + self._walk_down(post)

    def thread_context(self, post: Tag) -> ThreadContext:
        adjacency = self.detect_adjacency(post)
        chain: Sequence[str] = ()
        if adjacency.has_ancestor:
            chain = tuple(self.collect_ancestor_chain(post))
        return ThreadContext(
            has_ancestor=adjacency.has_ancestor,
            has_descendant=adjacency.has_descendant,
            ancestor_chain_text=chain,
        )
