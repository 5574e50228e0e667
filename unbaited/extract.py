from __future__ import annotations

import re
from typing import Iterable, Sequence
from urllib.parse import urlsplit

from bs4 import Tag

from .annotations import AnnotationTable
from .content import ContentRecord, EngagementMetrics, MediaRefs
from .dom import find_all_test_id
from .selectors import (
    ARTICLE_COVER,
    BYLINE,
    LINK_CARD,
    METRIC_TEST_IDS,
    PHOTO,
    POST_TEXT,
    VIDEO,
)

_IMAGE_FORMAT_RE = re.compile(r"\?format=\w+&name=\w+")
_HIGH_RES_QUERY = "?format=jpg&name=large"
_BYLINE_SPLIT_RE = re.compile(r"[·\n]")


def collapse_whitespace(text: str) -> str:
    return " ".join((text or "").split())


def _dedupe(values: Iterable[str]) -> tuple[str, ...]:
    out: list[str] = []
    seen: set[str] = set()
    for v in values:
        if v and v not in seen:
            seen.add(v)
            out.append(v)
    return tuple(out)


def _text_of(tag: Tag) -> str:
    return collapse_whitespace(tag.get_text(" ", strip=True))


def high_res_image_url(src: str) -> str:
    return _IMAGE_FORMAT_RE.sub(_HIGH_RES_QUERY, src, count=1)


def first_byline_segment(byline_text: str) -> str:
    for part in _BYLINE_SPLIT_RE.split(byline_text or ""):
        segment = part.strip()
        if segment:
            return segment
    return ""


def is_external_link(href: str, own_domains: Sequence[str]) -> bool:
    if not href.startswith("https://"):
        return False
    try:
        host = (urlsplit(href).hostname or "").casefold()
    except ValueError:
        return False
    if not host:
        return False
    for domain in own_domains:
        if host == domain or host.endswith("." + domain):
            return False
    return True


def extract_text(post: Tag) -> str:
    parts = [_text_of(el) for el in find_all_test_id(post, POST_TEXT)]
    return collapse_whitespace(" ".join(p for p in parts if p))


def extract_author(post: Tag) -> str:
    bylines = find_all_test_id(post, BYLINE)
    joined = "\n".join(el.get_text("\n", strip=True) for el in bylines)
    return first_byline_segment(joined)


def extract_images(post: Tag) -> tuple[str, ...]:
    urls: list[str] = []
    for container in find_all_test_id(post, PHOTO):
        for img in container.find_all("img"):
            src = (img.get("src") or "").strip()
            if not src or "profile" in src:
                continue
            urls.append(high_res_image_url(src))
    return _dedupe(urls)


def extract_videos(post: Tag) -> tuple[str, ...]:
    urls: list[str] = []
    for container in find_all_test_id(post, VIDEO):
        for el in container.find_all(["video", "source"]):
            src = (el.get("src") or "").strip()
            if src:
                urls.append(src)
    return _dedupe(urls)


def extract_external_links(post: Tag, own_domains: Sequence[str]) -> tuple[str, ...]:
    hrefs = ((a.get("href") or "").strip() for a in post.find_all("a"))
    return _dedupe(h for h in hrefs if is_external_link(h, own_domains))


def extract_article_text(post: Tag) -> str:
    covers = find_all_test_id(post, ARTICLE_COVER)
    if not covers:
        return ""
    parts = [_text_of(sib) for sib in covers[0].find_next_siblings(True)]
    return collapse_whitespace(" ".join(p for p in parts if p))


def extract_card_text(post: Tag) -> str:
    cards = find_all_test_id(post, LINK_CARD)
    if not cards:
        return ""
    return _text_of(cards[0])


def extract_timestamp(post: Tag) -> str:
    time_el = post.find("time")
    if time_el is None:
        return ""
    value = time_el.get("datetime")
    return value.strip() if isinstance(value, str) else ""


def extract_metrics(post: Tag) -> EngagementMetrics:
    values: dict[str, str] = {}
    for test_id, key in METRIC_TEST_IDS.items():
        found = find_all_test_id(post, test_id)
        if not found:
            continue
        value = _text_of(found[0])
        if value:
            values[key] = value
    return EngagementMetrics(**values)


class ContentExtractor:
    """
    Turns a post element into a ContentRecord.

    Sub-regions are located by their semantic markers anywhere in the subtree; nothing
    depends on DOM depth. Stamping the correlation id is the only change made to the page.
    """

    def __init__(self, annotations: AnnotationTable, *, own_domains: Sequence[str] = ("twitter.com", "x.com")) -> None:
        self._annotations = annotations
        self._own_domains = tuple(d.casefold() for d in own_domains)

    def extract(self, post: Tag) -> ContentRecord:
        cid = self._annotations.stamp(post)
        return ContentRecord(
            correlation_id=cid,
            text=extract_text(post),
            author=extract_author(post),
            media=MediaRefs(images=extract_images(post), videos=extract_videos(post)),
            external_links=extract_external_links(post, self._own_domains),
            timestamp=extract_timestamp(post),
            metrics=extract_metrics(post),
            article_text=extract_article_text(post),
            card_text=extract_card_text(post),
        )
