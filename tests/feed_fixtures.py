from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from unbaited.dom import FeedPage

CELL_HEIGHT = 200

_CONNECTOR_COLOR = "rgb(51, 54, 57)"


@dataclass(frozen=True)
class PostSpec:
    author: str = "alice"
    text: str = ""
    images: Sequence[str] = ()
    connector_above: bool = False
    connector_below: bool = False
    height: int = CELL_HEIGHT
    extra_html: str = ""


def connector_html(*, above: bool, height: int = CELL_HEIGHT) -> str:
    if above:
        top, size = 0, 12
    else:
        top, size = 60, height - 60
    return (
        f'<div class="connector" style="position: absolute; top: {top}px; left: 30px; width: 2px; '
        f'height: {size}px; background-color: {_CONNECTOR_COLOR}"></div>'
    )


def post_html(spec: PostSpec) -> str:
    parts: list[str] = []
    if spec.connector_above:
        parts.append(connector_html(above=True, height=spec.height))
    parts.append(
        f'<div data-testid="User-Name"><span>{spec.author}</span><span>@{spec.author}</span>'
        f'<span>·</span><time datetime="2025-06-01T10:00:00.000Z">1h</time></div>'
    )
    if spec.text:
        parts.append(f'<div data-testid="tweetText"><span>{spec.text}</span></div>')
    if spec.images:
        imgs = "".join(f'<img src="{src}">' for src in spec.images)
        parts.append(f'<div data-testid="tweetPhoto">{imgs}</div>')
    parts.append(spec.extra_html)
    if spec.connector_below:
        parts.append(connector_html(above=False, height=spec.height))
    return f'<article data-testid="tweet" style="height: {spec.height}px">{"".join(parts)}</article>'


def cell_html(spec: PostSpec) -> str:
    return f'<div data-testid="cellInnerDiv">{post_html(spec)}</div>'


def feed_html(specs: Sequence[PostSpec], *, body_style: str = "background-color: rgb(255, 255, 255)") -> str:
    cells = "".join(cell_html(s) for s in specs)
    return f'<html><body style="{body_style}"><main id="feed">{cells}</main></body></html>'


def make_page(specs: Sequence[PostSpec], *, viewport_height: float = 900.0, **kwargs: str) -> FeedPage:
    return FeedPage.from_html(feed_html(specs, **kwargs), viewport_height=viewport_height)


def thread_specs() -> list[PostSpec]:
    """An unrelated post, then a three-post thread A <- B <- C, then another unrelated post."""
    return [
        PostSpec(author="zed", text="Unrelated post before the thread"),
        PostSpec(author="anna", text="Thread opener about formatting", connector_below=True),
        PostSpec(author="ben", text="Hot take: ratio this", connector_above=True, connector_below=True),
        PostSpec(author="cleo", text="Final reply in the thread", connector_above=True),
        PostSpec(author="yan", text="Unrelated post after the thread"),
    ]


def posts(page: FeedPage) -> list:
    return page.query_all('[data-testid="tweet"]')
