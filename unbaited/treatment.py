"""
Suppressive treatments applied to post elements.

Every operation is idempotent and keyed on the classes it adds, so a reset can find all
treated posts by marker alone.
"""

from __future__ import annotations

from enum import Enum

from bs4 import Tag

from .dom import FeedPage, add_class, class_list, has_class, remove_class, remove_style_property, set_style_property
from .selectors import (
    BADGE_ANCHOR_ATTR,
    CONTAINER_CLASS,
    CONTROLS_CLASS,
    HIDDEN_CLASS,
    REASONS_CLASS,
    SHOW_BUTTON_CLASS,
    TREATED_CLASS,
)

BLUR_FILTER = "blur(20px)"
THREAD_REASON = "part of filtered thread"


class TreatmentState(str, Enum):
    UNTREATED = "untreated"
    BLURRED = "blurred"
    HIDDEN = "hidden"
    BADGE_ONLY = "badge_only"


def treatment_state(post: Tag) -> TreatmentState:
    classes = class_list(post)
    if HIDDEN_CLASS in classes:
        return TreatmentState.HIDDEN
    if TREATED_CLASS in classes:
        return TreatmentState.BLURRED
    if post.has_attr(BADGE_ANCHOR_ATTR):
        return TreatmentState.BADGE_ONLY
    return TreatmentState.UNTREATED


def is_treated(post: Tag) -> bool:
    return treatment_state(post) in (TreatmentState.BLURRED, TreatmentState.HIDDEN)


def container_of(post: Tag) -> Tag | None:
    parent = post.parent
    if isinstance(parent, Tag) and has_class(parent, CONTAINER_CLASS):
        return parent
    return None


def controls_of(post: Tag) -> Tag | None:
    container = container_of(post)
    if container is None:
        return None
    for child in container.find_all(True, recursive=False):
        if has_class(child, CONTROLS_CLASS):
            return child
    return None


def apply_blur(page: FeedPage, post: Tag, reason: str = "") -> bool:
    """Blur the post behind a reveal control. Returns False when it was already treated."""
    if is_treated(post):
        return False

    controls = page.create_element("div", attrs={"class": CONTROLS_CLASS})
    button = page.create_element("button", attrs={"class": SHOW_BUTTON_CLASS}, text="Show")
    controls.append(button)
    if reason:
        controls.append(page.create_element("div", attrs={"class": REASONS_CLASS}, text=reason))

    with page.batch():
        container = container_of(post)
        if container is None:
            container = page.wrap(post, page.create_element("div", attrs={"class": CONTAINER_CLASS}))
        page.append(container, controls)
        add_class(post, TREATED_CLASS)
        set_style_property(post, "filter", BLUR_FILTER)

    page.add_event_listener(button, "click", lambda event: reveal(page, post))
    return True


def hide(page: FeedPage, post: Tag) -> bool:
    if is_treated(post):
        return False
    add_class(post, TREATED_CLASS, HIDDEN_CLASS)
    page.restyle()
    return True


def reveal(page: FeedPage, post: Tag) -> bool:
    """Undo a blur in place; the container stays until the next reset."""
    if treatment_state(post) is not TreatmentState.BLURRED:
        return False
    controls = controls_of(post)
    remove_style_property(post, "filter")
    remove_class(post, TREATED_CLASS)
    if controls is not None:
        page.remove(controls)
    else:
        page.restyle()
    return True


def strip_treatment(page: FeedPage, post: Tag) -> bool:
    """Remove treatment classes and blur from one post. Controls and containers are left alone."""
    if not is_treated(post):
        return False
    remove_class(post, TREATED_CLASS, HIDDEN_CLASS)
    remove_style_property(post, "filter")
    page.restyle()
    return True
