from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence


@dataclass(frozen=True)
class MediaRefs:
    images: Sequence[str] = ()
    videos: Sequence[str] = ()


@dataclass(frozen=True)
class EngagementMetrics:
    """Counters as rendered by the host page ("1.2K", "0", ...)."""

    replies: str = "0"
    reposts: str = "0"
    likes: str = "0"
    views: str = "0"


@dataclass(frozen=True)
class ContentRecord:
    """
    Snapshot of one post taken at first visibility.

    Never mutated; a later extraction of the same element produces a new record with a new
    correlation id. Missing parts are empty strings/tuples, never None.
    """

    correlation_id: str
    text: str = ""
    author: str = ""
    media: MediaRefs = field(default_factory=MediaRefs)
    external_links: Sequence[str] = ()
    timestamp: str = ""
    metrics: EngagementMetrics = field(default_factory=EngagementMetrics)
    article_text: str = ""
    card_text: str = ""

    @property
    def images(self) -> Sequence[str]:
        return self.media.images

    @property
    def videos(self) -> Sequence[str]:
        return self.media.videos

    @property
    def article_or_card_text(self) -> str:
        return " ".join(t for t in (self.article_text, self.card_text) if t)

    @property
    def has_classifiable_content(self) -> bool:
        return bool(self.text) or bool(self.media.images)

    def to_payload(self) -> dict[str, Any]:
        return {
            "correlation_id": self.correlation_id,
            "text": self.text,
            "author": self.author,
            "images": list(self.media.images),
            "videos": list(self.media.videos),
            "external_links": list(self.external_links),
            "timestamp": self.timestamp,
            "metrics": {
                "replies": self.metrics.replies,
                "reposts": self.metrics.reposts,
                "likes": self.metrics.likes,
                "views": self.metrics.views,
            },
            "article_text": self.article_text,
            "card_text": self.card_text,
        }
