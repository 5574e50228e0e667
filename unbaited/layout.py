from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from bs4 import BeautifulSoup, Tag

from .selectors import HIDDEN_CLASS

_PX_RE = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*(?:px)?\s*$", re.IGNORECASE)
_HEX_RE = re.compile(r"^#([0-9a-f]{3}|[0-9a-f]{6})$", re.IGNORECASE)
_NUM_RE = re.compile(r"-?\d+(?:\.\d+)?")

TRANSPARENT = "rgba(0, 0, 0, 0)"


@dataclass(frozen=True)
class Rect:
    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    @property
    def area(self) -> float:
        return max(0.0, self.width) * max(0.0, self.height)

    def expanded(self, margin: float) -> "Rect":
        m = float(margin)
        return Rect(self.left - m, self.top - m, self.width + 2 * m, self.height + 2 * m)

    def translated(self, dx: float, dy: float) -> "Rect":
        return Rect(self.left + dx, self.top + dy, self.width, self.height)

    def intersection(self, other: "Rect") -> "Rect | None":
        left = max(self.left, other.left)
        top = max(self.top, other.top)
        right = min(self.right, other.right)
        bottom = min(self.bottom, other.bottom)
        if right < left or bottom < top:
            return None
        return Rect(left, top, right - left, bottom - top)


def parse_inline_style(value: str | None) -> dict[str, str]:
    out: dict[str, str] = {}
    for decl in (value or "").split(";"):
        if ":" not in decl:
            continue
        name, _, val = decl.partition(":")
        key = name.strip().casefold()
        if key:
            out[key] = val.strip()
    return out


def format_inline_style(props: dict[str, str]) -> str:
    return "; ".join(f"{k}: {v}" for k, v in props.items())


def css_px(value: str | None) -> float | None:
    if value is None:
        return None
    m = _PX_RE.match(value)
    if not m:
        return None
    return float(m.group(1))


def parse_rgb(color: str | None) -> tuple[int, int, int, float] | None:
    """Parse rgb()/rgba()/#hex into (r, g, b, alpha)."""
    c = (color or "").strip().casefold()
    if not c:
        return None
    if c == "transparent":
        return (0, 0, 0, 0.0)

    hex_m = _HEX_RE.match(c)
    if hex_m:
        digits = hex_m.group(1)
        if len(digits) == 3:
            digits = "".join(ch * 2 for ch in digits)
        return (int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16), 1.0)

    if c.startswith("rgb"):
        nums = _NUM_RE.findall(c)
        if len(nums) < 3:
            return None
        alpha = float(nums[3]) if len(nums) >= 4 else 1.0
        return (int(float(nums[0])), int(float(nums[1])), int(float(nums[2])), alpha)

    return None


def is_transparent(color: str | None) -> bool:
    c = (color or "").strip()
    if not c:
        return True
    parsed = parse_rgb(c)
    if parsed is None:
        # Named colours and the like are painted.
        return False
    return parsed[3] <= 0.0


def is_dark_color(color: str | None) -> bool:
    parsed = parse_rgb(color)
    if parsed is None or parsed[3] <= 0.0:
        return False
    r, g, b, _ = parsed
    return (r + g + b) / 3 < 128


class InlineStyleLayout:
    """
    Minimal block-flow layout computed from inline styles.

    - `left`/`top` offset a box from its parent's origin; a box with explicit `top` is out of flow.
    - In-flow boxes stack vertically after their in-flow previous siblings.
    - Missing `width` fills the parent; missing `height` is the sum of in-flow children.
    - `display: none` and the hidden treatment class collapse a subtree to an empty box.

    Results are memoized until `invalidate()`; the page invalidates on every mutation.
    """

    def __init__(self, *, root_width: float = 600.0, hidden_classes: Iterable[str] = (HIDDEN_CLASS,)) -> None:
        self._root_width = float(root_width)
        self._hidden_classes = frozenset(hidden_classes)
        self._rects: dict[int, tuple[Tag, Rect]] = {}
        self._heights: dict[int, tuple[Tag, float]] = {}

    def invalidate(self) -> None:
        self._rects.clear()
        self._heights.clear()

    def set_root_width(self, width: float) -> None:
        self._root_width = float(width)
        self.invalidate()

    def rect(self, tag: Tag) -> Rect:
        cached = self._rects.get(id(tag))
        if cached is not None and cached[0] is tag:
            return cached[1]
        rect = self._compute_rect(tag)
        self._rects[id(tag)] = (tag, rect)
        return rect

    def background_color(self, tag: Tag) -> str:
        style = parse_inline_style(tag.get("style"))
        color = style.get("background-color") or style.get("background")
        return color or TRANSPARENT

    def is_displayed(self, tag: Tag) -> bool:
        node: Tag | None = tag
        while node is not None and not isinstance(node, BeautifulSoup):
            if self._collapses(node):
                return False
            node = node.parent
        return True

    def _collapses(self, tag: Tag) -> bool:
        style = parse_inline_style(tag.get("style"))
        if style.get("display", "").casefold() == "none":
            return True
        classes = tag.get("class") or []
        if isinstance(classes, str):
            classes = classes.split()
        return any(c in self._hidden_classes for c in classes)

    def _compute_rect(self, tag: Tag) -> Rect:
        parent = tag.parent
        if parent is None:
            return Rect(0.0, 0.0, self._root_width, self._height(tag))

        base = self.rect(parent)
        if not self.is_displayed(tag):
            return Rect(base.left, base.top, 0.0, 0.0)

        style = parse_inline_style(tag.get("style"))
        left = base.left + (css_px(style.get("left")) or 0.0)

        width = css_px(style.get("width"))
        if width is None:
            width = max(0.0, base.right - left)

        top_px = css_px(style.get("top"))
        if top_px is not None:
            top = base.top + top_px
        else:
            offset = 0.0
            for sib in tag.previous_siblings:
                if isinstance(sib, Tag) and self._in_flow(sib):
                    offset += self._height(sib)
            top = base.top + offset

        return Rect(left, top, width, self._height(tag))

    def _in_flow(self, tag: Tag) -> bool:
        if self._collapses(tag):
            return False
        return css_px(parse_inline_style(tag.get("style")).get("top")) is None

    def _height(self, tag: Tag) -> float:
        cached = self._heights.get(id(tag))
        if cached is not None and cached[0] is tag:
            return cached[1]

        if not isinstance(tag, BeautifulSoup) and self._collapses(tag):
            height = 0.0
        else:
            explicit = css_px(parse_inline_style(tag.get("style")).get("height"))
            if explicit is not None:
                height = max(0.0, explicit)
            else:
                height = sum(
                    self._height(child)
                    for child in tag.children
                    if isinstance(child, Tag) and self._in_flow(child)
                )

        self._heights[id(tag)] = (tag, height)
        return height
