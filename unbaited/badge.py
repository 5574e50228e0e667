from __future__ import annotations

from typing import Sequence

from bs4 import Tag

from .dom import FeedPage, MutationObserver, MutationRecord, set_style_property
from .layout import is_dark_color
from .selectors import BADGE_ANCHOR_ATTR, BADGE_CLASS
from .verdict_schema import Diagnostic

ERROR_CATEGORY = "error"

_LABELS = {
    "filtered": "✗ Filtered",
    "allowed": "✓ Allowed",
    "highlighted": "★ Highlighted",
    ERROR_CATEGORY: "! Error",
}

_OFFSET_TOP_PX = 8
_OFFSET_LEFT_PX = 12


def is_dark_mode(page: FeedPage) -> bool:
    return is_dark_color(page.layout.background_color(page.body))


def _decision_label(category: str) -> str:
    return category.upper()


def _diagnostic_author(diagnostic: Diagnostic) -> str:
    return str(diagnostic.inputs.get("author") or "")


def _diagnostic_text(diagnostic: Diagnostic) -> str:
    return str(diagnostic.inputs.get("text") or "")


def _diagnostic_images(diagnostic: Diagnostic) -> list[str]:
    images = diagnostic.inputs.get("images") or []
    return [str(i) for i in images]


def post_summary_text(category: str, reason: str, diagnostic: Diagnostic) -> str:
    """Short copyable summary: the post as sent plus the decision."""
    images = _diagnostic_images(diagnostic)
    images_section = f"\nImages: {len(images)}" if images else ""
    return (
        f"@{_diagnostic_author(diagnostic)}: {_diagnostic_text(diagnostic)}{images_section}"
        f"\n\nAI Decision: {_decision_label(category)} - \"{reason}\""
    )


def diagnostic_report_text(category: str, reason: str, diagnostic: Diagnostic) -> str:
    """Full copyable report: prompt, inputs and raw model output."""
    images = _diagnostic_images(diagnostic)
    if images:
        images_section = f"\nIMAGES SENT ({len(images)}):\n" + "\n".join(images) + "\n"
    else:
        images_section = "\nIMAGES SENT: none\n"

    lines = [
        f"FILTER DECISION: {_decision_label(category)}",
        f"REASON: {reason}",
        "",
        "PROMPT SENT:",
        diagnostic.prompt,
        "",
        "TWEET TEXT SENT:",
        f"@{_diagnostic_author(diagnostic)}: {_diagnostic_text(diagnostic)}",
        images_section,
        "MODEL RESPONSE:",
        diagnostic.raw_response,
    ]
    if diagnostic.model:
        lines.append(f"MODEL: {diagnostic.model}")
    return "\n".join(lines) + "\n"


class VerdictBadge:
    """
    Floating card next to a classified post.

    The card lives under <body>, not inside the post, so it follows the post through
    scroll listeners and removes itself once the post leaves the document.
    """

    def __init__(
        self,
        page: FeedPage,
        anchor: Tag,
        *,
        category: str,
        reason: str = "",
        diagnostic: Diagnostic | None = None,
    ) -> None:
        self._page = page
        self.anchor = anchor
        self.category = category
        self.reason = reason
        self.diagnostic = diagnostic
        self.card: Tag | None = None
        self._observer: MutationObserver | None = None

    @property
    def attached(self) -> bool:
        return self.card is not None

    @property
    def copy_post_text(self) -> str | None:
        if self.diagnostic is None:
            return None
        return post_summary_text(self.category, self.reason, self.diagnostic)

    @property
    def copy_debug_text(self) -> str | None:
        if self.diagnostic is None:
            return None
        return diagnostic_report_text(self.category, self.reason, self.diagnostic)

    def attach(self) -> bool:
        """Render the card. Returns False if the anchor already carries one or is detached."""
        if self.card is not None or self.anchor.has_attr(BADGE_ANCHOR_ATTR):
            return False
        if not self._page.contains(self.anchor):
            return False

        self.anchor[BADGE_ANCHOR_ATTR] = "true"
        self.card = self._build_card()
        self._update_position()
        self._page.append(self._page.body, self.card)

        self._page.add_scroll_listener(self._on_scroll)
        self._observer = MutationObserver(self._page, self._on_mutations)
        self._observer.observe(self._page.body, subtree=True)
        return True

    def dispose(self) -> None:
        if self._observer is not None:
            self._observer.disconnect()
            self._observer = None
        self._page.remove_scroll_listener(self._on_scroll)

        card, self.card = self.card, None
        if card is not None:
            self._page.remove(card)
            if self.anchor.has_attr(BADGE_ANCHOR_ATTR):
                del self.anchor[BADGE_ANCHOR_ATTR]

    def _build_card(self) -> Tag:
        classes = [BADGE_CLASS, self.category]
        if is_dark_mode(self._page):
            classes.append("dark")

        page = self._page
        card = page.create_element("div", attrs={"class": " ".join(classes)})
        card.append(page.create_element("div", attrs={"class": "unbaited-verdict-icon"}, text=_LABELS.get(self.category, self.category)))
        card.append(page.create_element("div", attrs={"class": "unbaited-verdict-reason"}, text=self.reason or "analyzed"))

        if self.diagnostic is not None:
            buttons = page.create_element("div", attrs={"style": "display: flex; gap: 4px"})
            copy_post = page.create_element("button", attrs={"class": "unbaited-copy-debug", "title": "Copy post + AI decision"}, text="📝 Post")
            copy_debug = page.create_element("button", attrs={"class": "unbaited-copy-debug", "title": "Copy full debug info"}, text="🔧 Debug")
            copy_post["data-copy"] = self.copy_post_text or ""
            copy_debug["data-copy"] = self.copy_debug_text or ""
            buttons.append(copy_post)
            buttons.append(copy_debug)
            card.append(buttons)
        return card

    def _update_position(self) -> None:
        if self.card is None:
            return
        rect = self._page.bounding_client_rect(self.anchor)
        set_style_property(self.card, "position", "fixed")
        set_style_property(self.card, "top", f"{rect.top + _OFFSET_TOP_PX:g}px")
        set_style_property(self.card, "left", f"{rect.right + _OFFSET_LEFT_PX:g}px")

    def _on_scroll(self) -> None:
        self._page.request_animation_frame(self._update_position)

    def _on_mutations(self, records: Sequence[MutationRecord], observer: MutationObserver) -> None:
        if not self._page.contains(self.anchor):
            self.dispose()
