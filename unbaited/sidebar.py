from __future__ import annotations

from typing import Sequence

from bs4 import Tag

from .dom import FeedPage, MutationObserver, MutationRecord, get_style_property, set_style_property
from .run_log import RunLogger
from .selectors import SIDEBAR, TEST_ID_ATTR

JUNK_SELECTORS: tuple[str, ...] = (
    '[data-testid="renew-subscription-module"]',
    '[aria-label="Subscribe to Premium"]',
    '[aria-label="Trending"]',
    '[aria-label="Who to follow"]',
)

UPSELL_WORDS: tuple[str, ...] = ("premium", "subscribe", "verified")

# Modules sit three divs below the sidebar column.
_MODULE_DEPTH = 3


def _module_container(sidebar: Tag, module: Tag) -> Tag | None:
    chain: list[Tag] = []
    node: Tag | None = module
    while node is not None and node is not sidebar:
        chain.append(node)
        node = node.parent
    if node is None:
        return None

    chain.reverse()
    if len(chain) >= _MODULE_DEPTH and all(t.name == "div" for t in chain[:_MODULE_DEPTH]):
        return chain[_MODULE_DEPTH - 1]

    fallback = module
    for _ in range(_MODULE_DEPTH):
        if fallback.parent is None:
            return None
        fallback = fallback.parent
    return fallback


class SidebarCleaner:
    """Hides upsell, trending and who-to-follow modules in the sidebar column."""

    def __init__(self, page: FeedPage, *, logger: RunLogger | None = None) -> None:
        self._page = page
        self._log = logger
        self._observer: MutationObserver | None = None

    def start(self) -> None:
        if self._observer is not None:
            return
        self.clean()
        self._observer = MutationObserver(self._page, self._on_mutations)
        self._observer.observe(self._page.body, subtree=True)

    def stop(self) -> None:
        if self._observer is not None:
            self._observer.disconnect()
            self._observer = None

    def clean(self) -> int:
        """Hide every junk module currently on the page; returns how many were newly hidden."""
        sidebar = self._page.query(f'[{TEST_ID_ATTR}="{SIDEBAR}"]')
        if sidebar is None:
            return 0

        targets: list[Tag] = []
        for selector in JUNK_SELECTORS:
            module = sidebar.select_one(selector)
            if module is None:
                continue
            container = _module_container(sidebar, module)
            if container is not None:
                targets.append(container)

        for aside in sidebar.select('aside, [role="complementary"]'):
            text = aside.get_text(" ", strip=True).casefold()
            if any(word in text for word in UPSELL_WORDS):
                targets.append(aside)

        hidden = 0
        for target in targets:
            if get_style_property(target, "display") == "none":
                continue
            set_style_property(target, "display", "none")
            hidden += 1

        if hidden:
            self._page.restyle()
            if self._log is not None:
                self._log.info("sidebar_cleaned", hidden=hidden)
        return hidden

    def _on_mutations(self, records: Sequence[MutationRecord], observer: MutationObserver) -> None:
        self.clean()
