"""
Live feed page model.

The host page is a BeautifulSoup tree that keeps changing underneath the core. Every change
goes through FeedPage so that mutation observers, intersection observers and layout stay in
step, the same way a browser notifies scripts about DOM and viewport changes.

Element identity is object identity: bs4 compares tags by markup, so never use `==` or `in`
on tags.
"""

from __future__ import annotations

import asyncio
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, Sequence

from bs4 import BeautifulSoup, Tag

from .errors import PageError
from .layout import InlineStyleLayout, Rect, format_inline_style, parse_inline_style
from .selectors import TEST_ID_ATTR


# ---------------------------------------------------------------------------
# Element helpers
# ---------------------------------------------------------------------------


def class_list(tag: Tag) -> list[str]:
    value = tag.get("class")
    if value is None:
        return []
    if isinstance(value, str):
        return value.split()
    return list(value)


def has_class(tag: Tag, name: str) -> bool:
    return name in class_list(tag)


def add_class(tag: Tag, *names: str) -> None:
    classes = class_list(tag)
    for name in names:
        if name not in classes:
            classes.append(name)
    tag["class"] = classes


def remove_class(tag: Tag, *names: str) -> None:
    classes = [c for c in class_list(tag) if c not in names]
    if classes:
        tag["class"] = classes
    elif tag.has_attr("class"):
        del tag["class"]


def get_style_property(tag: Tag, name: str) -> str | None:
    return parse_inline_style(tag.get("style")).get(name.casefold())


def set_style_property(tag: Tag, name: str, value: str) -> None:
    props = parse_inline_style(tag.get("style"))
    props[name.casefold()] = value
    tag["style"] = format_inline_style(props)


def remove_style_property(tag: Tag, name: str) -> None:
    props = parse_inline_style(tag.get("style"))
    if props.pop(name.casefold(), None) is None:
        return
    if props:
        tag["style"] = format_inline_style(props)
    elif tag.has_attr("style"):
        del tag["style"]


def closest(tag: Tag, predicate: Callable[[Tag], bool]) -> Tag | None:
    node: Tag | None = tag
    while node is not None and not isinstance(node, BeautifulSoup):
        if predicate(node):
            return node
        node = node.parent
    return None


def closest_test_id(tag: Tag, test_id: str) -> Tag | None:
    return closest(tag, lambda t: t.get(TEST_ID_ATTR) == test_id)


def find_all_test_id(tag: Tag, test_id: str) -> list[Tag]:
    """Depth-first search of the subtree, the element itself included."""
    out: list[Tag] = []
    if tag.get(TEST_ID_ATTR) == test_id:
        out.append(tag)
    out.extend(tag.find_all(attrs={TEST_ID_ATTR: test_id}))
    return out


def previous_element_sibling(tag: Tag) -> Tag | None:
    return tag.find_previous_sibling(True)


def next_element_sibling(tag: Tag) -> Tag | None:
    return tag.find_next_sibling(True)


def is_ancestor(ancestor: Tag, node: Tag) -> bool:
    current = node.parent
    while current is not None:
        if current is ancestor:
            return True
        current = current.parent
    return False


# ---------------------------------------------------------------------------
# Observers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MutationRecord:
    target: Tag
    added_nodes: tuple[Tag, ...] = ()
    removed_nodes: tuple[Tag, ...] = ()


MutationCallback = Callable[[Sequence[MutationRecord], "MutationObserver"], None]


class MutationObserver:
    """Child-list observer. Callbacks receive the records of one mutation call or batch."""

    def __init__(self, page: "FeedPage", callback: MutationCallback) -> None:
        self._page = page
        self._callback = callback
        self._targets: list[tuple[Tag, bool]] = []

    @property
    def connected(self) -> bool:
        return bool(self._targets)

    def observe(self, target: Tag, *, subtree: bool = True) -> None:
        if any(t is target for t, _ in self._targets):
            return
        self._targets.append((target, bool(subtree)))
        self._page._add_mutation_observer(self)

    def disconnect(self) -> None:
        self._targets.clear()
        self._page._remove_mutation_observer(self)

    def _wants(self, record: MutationRecord) -> bool:
        for target, subtree in self._targets:
            if record.target is target:
                return True
            if subtree and is_ancestor(target, record.target):
                return True
        return False

    def _deliver(self, records: Sequence[MutationRecord]) -> None:
        if not self._targets:
            return
        matching = [r for r in records if self._wants(r)]
        if matching:
            self._callback(matching, self)


@dataclass(frozen=True)
class IntersectionEntry:
    target: Tag
    is_intersecting: bool
    intersection_ratio: float
    bounding_rect: Rect


IntersectionCallback = Callable[[Sequence[IntersectionEntry], "IntersectionObserver"], None]


class IntersectionObserver:
    """
    Viewport visibility observer.

    A target counts as intersecting when at least `threshold` of its area lies inside the
    viewport grown by `root_margin` on every side. One entry is delivered when a target is
    first observed and one per transition afterwards. Targets that leave the document are
    dropped without an entry.
    """

    def __init__(
        self,
        page: "FeedPage",
        callback: IntersectionCallback,
        *,
        threshold: float = 0.0,
        root_margin: float = 0.0,
    ) -> None:
        if not (0.0 <= threshold <= 1.0):
            raise ValueError("threshold must be between 0 and 1")
        self._page = page
        self._callback = callback
        self.threshold = float(threshold)
        self.root_margin = float(root_margin)
        self._targets: dict[int, tuple[Tag, bool | None]] = {}

    def __len__(self) -> int:
        return len(self._targets)

    def is_observing(self, target: Tag) -> bool:
        entry = self._targets.get(id(target))
        return entry is not None and entry[0] is target

    def observe(self, target: Tag) -> bool:
        """Start observing; returns False when the target is already observed."""
        if self.is_observing(target):
            return False
        self._targets[id(target)] = (target, None)
        self._page._add_intersection_observer(self)
        self._evaluate([target])
        return True

    def unobserve(self, target: Tag) -> None:
        if self.is_observing(target):
            del self._targets[id(target)]

    def disconnect(self) -> None:
        self._targets.clear()
        self._page._remove_intersection_observer(self)

    def _check(self) -> None:
        self._evaluate([t for t, _ in list(self._targets.values())])

    def _evaluate(self, targets: Iterable[Tag]) -> None:
        entries: list[IntersectionEntry] = []
        for target in targets:
            current = self._targets.get(id(target))
            if current is None or current[0] is not target:
                continue

            if not self._page.contains(target):
                del self._targets[id(target)]
                continue

            ratio, rect = self._page.intersection_ratio(target, margin=self.root_margin)
            if self.threshold > 0:
                visible = ratio >= self.threshold
            else:
                visible = ratio > 0

            if current[1] is visible:
                continue
            self._targets[id(target)] = (target, visible)
            entries.append(
                IntersectionEntry(
                    target=target,
                    is_intersecting=visible,
                    intersection_ratio=ratio,
                    bounding_rect=rect,
                )
            )

        if entries:
            self._callback(entries, self)


# ---------------------------------------------------------------------------
# Page
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PageEvent:
    type: str
    target: Tag


EventListener = Callable[[PageEvent], None]
ScrollListener = Callable[[], None]
FrameCallback = Callable[[], None]


class FeedPage:
    def __init__(
        self,
        soup: BeautifulSoup,
        *,
        layout: InlineStyleLayout | None = None,
        viewport_width: float = 600.0,
        viewport_height: float = 900.0,
    ) -> None:
        self.soup = soup
        self.layout = layout or InlineStyleLayout(root_width=viewport_width)
        self._viewport_width = float(viewport_width)
        self._viewport_height = float(viewport_height)
        self._scroll_y = 0.0

        self._mutation_observers: list[MutationObserver] = []
        self._intersection_observers: list[IntersectionObserver] = []
        self._scroll_listeners: list[ScrollListener] = []
        self._listeners: dict[int, tuple[Tag, dict[str, list[EventListener]]]] = {}
        self._frame_callbacks: list[FrameCallback] = []
        self._frame_scheduled = False

        self._batch_depth = 0
        self._pending: list[MutationRecord] = []

    @classmethod
    def from_html(cls, html: str, **kwargs: object) -> "FeedPage":
        soup = BeautifulSoup(html or "", "html.parser")
        if soup.find(True) is None:
            raise PageError("Feed snapshot contains no elements")
        return cls(soup, **kwargs)  # type: ignore[arg-type]

    # -- queries -------------------------------------------------------------

    @property
    def body(self) -> Tag:
        return self.soup.body or self.soup

    def query(self, selector: str) -> Tag | None:
        return self.soup.select_one(selector)

    def query_all(self, selector: str) -> list[Tag]:
        return list(self.soup.select(selector))

    def contains(self, tag: Tag | None) -> bool:
        node = tag
        while node is not None:
            if node is self.soup:
                return True
            node = node.parent
        return False

    def create_element(self, name: str, *, attrs: dict[str, str] | None = None, text: str | None = None) -> Tag:
        tag = self.soup.new_tag(name, attrs=attrs or {})
        if text:
            tag.string = text
        return tag

    def html(self) -> str:
        return str(self.soup)

    # -- mutations -----------------------------------------------------------

    @contextmanager
    def batch(self) -> Iterator[None]:
        """Group several mutations into one observer delivery."""
        self._batch_depth += 1
        try:
            yield
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0:
                self._flush_mutations()

    def append(self, parent: Tag, node: Tag | str) -> Tag:
        tag = self._coerce_node(node)
        self._detach_for_move(tag)
        parent.append(tag)
        self._record(MutationRecord(target=parent, added_nodes=(tag,)))
        return tag

    def insert(self, parent: Tag, index: int, node: Tag | str) -> Tag:
        tag = self._coerce_node(node)
        self._detach_for_move(tag)
        parent.insert(index, tag)
        self._record(MutationRecord(target=parent, added_nodes=(tag,)))
        return tag

    def insert_before(self, reference: Tag, node: Tag | str) -> Tag:
        parent = reference.parent
        if parent is None:
            raise PageError("Cannot insert before a detached element")
        tag = self._coerce_node(node)
        self._detach_for_move(tag)
        reference.insert_before(tag)
        self._record(MutationRecord(target=parent, added_nodes=(tag,)))
        return tag

    def remove(self, node: Tag) -> None:
        parent = node.parent
        if parent is None:
            return
        node.extract()
        self._record(MutationRecord(target=parent, removed_nodes=(node,)))

    def wrap(self, node: Tag, wrapper: Tag) -> Tag:
        """Move `node` into `wrapper`, which takes its place in the tree."""
        with self.batch():
            self.insert_before(node, wrapper)
            self.append(wrapper, node)
        return wrapper

    def unwrap(self, wrapper: Tag) -> None:
        """Replace `wrapper` with its children."""
        parent = wrapper.parent
        if parent is None:
            return
        with self.batch():
            for child in [c for c in wrapper.children if isinstance(c, Tag)]:
                self.insert_before(wrapper, child)
            self.remove(wrapper)

    def restyle(self) -> None:
        """Class or inline-style change: relayout and recheck visibility, no mutation records."""
        self.layout.invalidate()
        if self._batch_depth == 0:
            self._check_intersections()

    def _coerce_node(self, node: Tag | str) -> Tag:
        if isinstance(node, Tag):
            return node
        fragment = BeautifulSoup(node or "", "html.parser")
        tags = [c for c in fragment.children if isinstance(c, Tag)]
        if len(tags) != 1:
            raise PageError("HTML fragment must contain exactly one top-level element")
        return tags[0].extract()

    def _detach_for_move(self, tag: Tag) -> None:
        if tag.parent is not None and self.contains(tag):
            self.remove(tag)

    def _record(self, record: MutationRecord) -> None:
        self.layout.invalidate()
        self._pending.append(record)
        if self._batch_depth == 0:
            self._flush_mutations()

    def _flush_mutations(self) -> None:
        records, self._pending = self._pending, []
        if not records:
            return

        if any(r.removed_nodes for r in records):
            self._prune_listeners()

        for observer in list(self._mutation_observers):
            observer._deliver(records)
        self._check_intersections()

    # -- observers -----------------------------------------------------------

    def _add_mutation_observer(self, observer: MutationObserver) -> None:
        if not any(o is observer for o in self._mutation_observers):
            self._mutation_observers.append(observer)

    def _remove_mutation_observer(self, observer: MutationObserver) -> None:
        self._mutation_observers = [o for o in self._mutation_observers if o is not observer]

    def _add_intersection_observer(self, observer: IntersectionObserver) -> None:
        if not any(o is observer for o in self._intersection_observers):
            self._intersection_observers.append(observer)

    def _remove_intersection_observer(self, observer: IntersectionObserver) -> None:
        self._intersection_observers = [o for o in self._intersection_observers if o is not observer]

    def _check_intersections(self) -> None:
        for observer in list(self._intersection_observers):
            observer._check()

    @property
    def mutation_observer_count(self) -> int:
        return len(self._mutation_observers)

    # -- viewport ------------------------------------------------------------

    @property
    def scroll_y(self) -> float:
        return self._scroll_y

    @property
    def document_height(self) -> float:
        return self.layout.rect(self.body).bottom

    def viewport_rect(self) -> Rect:
        """The visible area, in document coordinates."""
        return Rect(0.0, self._scroll_y, self._viewport_width, self._viewport_height)

    def bounding_client_rect(self, tag: Tag) -> Rect:
        """Element box relative to the viewport, like getBoundingClientRect()."""
        return self.layout.rect(tag).translated(0.0, -self._scroll_y)

    def intersection_ratio(self, tag: Tag, *, margin: float = 0.0) -> tuple[float, Rect]:
        rect = self.layout.rect(tag)
        if not self.layout.is_displayed(tag):
            return 0.0, rect
        overlap = rect.intersection(self.viewport_rect().expanded(margin))
        if overlap is None:
            return 0.0, rect
        if rect.area <= 0:
            return 1.0, rect
        return overlap.area / rect.area, rect

    def scroll_to(self, y: float) -> None:
        limit = max(0.0, self.document_height - self._viewport_height)
        self._scroll_y = min(max(0.0, float(y)), limit)
        for listener in list(self._scroll_listeners):
            listener()
        self._check_intersections()

    def scroll_by(self, dy: float) -> None:
        self.scroll_to(self._scroll_y + float(dy))

    def resize(self, width: float, height: float) -> None:
        self._viewport_width = float(width)
        self._viewport_height = float(height)
        self.layout.set_root_width(width)
        self._check_intersections()

    def add_scroll_listener(self, listener: ScrollListener) -> None:
        self._scroll_listeners.append(listener)

    def remove_scroll_listener(self, listener: ScrollListener) -> None:
        self._scroll_listeners = [fn for fn in self._scroll_listeners if fn is not listener]

    @property
    def scroll_listener_count(self) -> int:
        return len(self._scroll_listeners)

    # -- frames --------------------------------------------------------------

    def request_animation_frame(self, callback: FrameCallback) -> None:
        if any(cb == callback for cb in self._frame_callbacks):
            return
        self._frame_callbacks.append(callback)
        if self._frame_scheduled:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._frame_scheduled = True
        loop.call_soon(self.run_animation_frame)

    def run_animation_frame(self) -> int:
        self._frame_scheduled = False
        callbacks, self._frame_callbacks = self._frame_callbacks, []
        for callback in callbacks:
            callback()
        return len(callbacks)

    # -- events --------------------------------------------------------------

    def add_event_listener(self, tag: Tag, event_type: str, listener: EventListener) -> None:
        entry = self._listeners.get(id(tag))
        if entry is None or entry[0] is not tag:
            entry = (tag, {})
            self._listeners[id(tag)] = entry
        entry[1].setdefault(event_type, []).append(listener)

    def remove_event_listeners(self, tag: Tag) -> None:
        entry = self._listeners.get(id(tag))
        if entry is not None and entry[0] is tag:
            del self._listeners[id(tag)]

    def dispatch_event(self, tag: Tag, event_type: str) -> bool:
        entry = self._listeners.get(id(tag))
        if entry is None or entry[0] is not tag:
            return False
        handlers = list(entry[1].get(event_type, ()))
        event = PageEvent(type=event_type, target=tag)
        for handler in handlers:
            handler(event)
        return bool(handlers)

    def click(self, tag: Tag) -> bool:
        return self.dispatch_event(tag, "click")

    def _prune_listeners(self) -> None:
        for key, (tag, _) in list(self._listeners.items()):
            if not self.contains(tag):
                del self._listeners[key]
