"""Semantic markers of the host page and the classes/attributes the core adds to it."""

from __future__ import annotations

TEST_ID_ATTR = "data-testid"

# Host page markers (data-testid values).
FEED_CELL = "cellInnerDiv"
POST = "tweet"
POST_TEXT = "tweetText"
BYLINE = "User-Name"
PHOTO = "tweetPhoto"
VIDEO = "videoPlayer"
ARTICLE_COVER = "article-cover-image"
LINK_CARD = "card.wrapper"
SIDEBAR = "sidebarColumn"

METRIC_TEST_IDS: dict[str, str] = {
    "reply": "replies",
    "retweet": "reposts",
    "like": "likes",
    "analytics": "views",
}

POST_SELECTOR = f'[{TEST_ID_ATTR}="{POST}"]'
FEED_CELL_SELECTOR = f'[{TEST_ID_ATTR}="{FEED_CELL}"]'

# Core-owned annotations and UI.
CORRELATION_ATTR = "data-unbaited-id"
BADGE_ANCHOR_ATTR = "data-unbaited-anchor"

TREATED_CLASS = "unbaited-tweet"
HIDDEN_CLASS = "hidden-tweet"
CONTAINER_CLASS = "unbaited-tweet-container"
CONTROLS_CLASS = "unbaited-controls"
SHOW_BUTTON_CLASS = "unbaited-show-tweet-button"
REASONS_CLASS = "unbaited-reasons"
BADGE_CLASS = "unbaited-verdict-card"


def has_test_id(tag: object, test_id: str) -> bool:
    get = getattr(tag, "get", None)
    if get is None or getattr(tag, "name", None) is None:
        return False
    return get(TEST_ID_ATTR) == test_id
