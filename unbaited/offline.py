from __future__ import annotations

import re
from typing import Sequence

from .errors import ClassifierError
from .verdict_schema import AnalyzeRequest, AnalyzeResponse, Diagnostic

_FILTER_PATTERNS: tuple[str, ...] = (
    r"agree or disagree",
    r"hot take",
    r"ratio",
    r"elections?",
    r"vote",
    r"ugh",
    r"vibes",
)
_HIGHLIGHT_PATTERNS: tuple[str, ...] = (
    r"debate",
    r"paradigms?",
    r"research",
    r"tradeoffs?",
)

_FILTER_RE = re.compile(r"\b(" + "|".join(_FILTER_PATTERNS) + r")\b", re.IGNORECASE)
_HIGHLIGHT_RE = re.compile(r"\b(" + "|".join(_HIGHLIGHT_PATTERNS) + r")\b", re.IGNORECASE)

_REPLY_MARKER = "[Reply @"

_OFFLINE_PROMPT = "offline keyword classifier"


def _cell(post_html: str, *, height: int = 200) -> str:
    return (
        f'<div data-testid="cellInnerDiv">'
        f'<article data-testid="tweet" style="height: {height}px">{post_html}</article>'
        f"</div>"
    )


def _byline(name: str, handle: str, iso: str) -> str:
    return (
        f'<div data-testid="User-Name"><span>{name}</span><span>@{handle}</span>'
        f'<span>·</span><time datetime="{iso}">2h</time></div>'
    )


def _metrics(replies: str, reposts: str, likes: str, views: str) -> str:
    return (
        '<div role="group">'
        f'<button data-testid="reply"><span>{replies}</span></button>'
        f'<button data-testid="retweet"><span>{reposts}</span></button>'
        f'<button data-testid="like"><span>{likes}</span></button>'
        f'<a data-testid="analytics" href="/status/1/analytics"><span>{views}</span></a>'
        "</div>"
    )


_CONNECTOR_ABOVE = (
    '<div style="position: absolute; top: 0px; left: 30px; width: 2px; height: 12px; '
    'background-color: rgb(51, 54, 57)"></div>'
)
_CONNECTOR_BELOW = (
    '<div style="position: absolute; top: 60px; left: 30px; width: 2px; height: 140px; '
    'background-color: rgb(51, 54, 57)"></div>'
)

_SIDEBAR = (
    '<div data-testid="sidebarColumn" style="top: 0px; left: 620px; width: 350px">'
    '<div><div><div><div aria-label="Subscribe to Premium"><span>Subscribe to Premium</span></div></div></div></div>'
    '<div><div><div><div aria-label="Trending"><span>What is happening</span></div></div></div></div>'
    '<div><div><div><div aria-label="Who to follow"><span>Who to follow</span></div></div></div></div>'
    '<aside role="complementary"><span>Get verified today</span></aside>'
    '<div><div><div><nav aria-label="Footer"><span>Terms of Service</span></nav></div></div></div>'
    "</div>"
)

SAMPLE_FEED_HTML = (
    '<html><head><title>Home</title></head>'
    '<body style="background-color: rgb(0, 0, 0)">'
    '<main><div aria-label="Timeline: Your Home Timeline">'
    + _cell(
        _byline("Alice", "alice", "2025-06-01T10:00:00.000Z")
        + '<div data-testid="tweetText"><span>Shipped a small open source profiler for async Python code.</span></div>'
        + '<div data-testid="card.wrapper"><a href="https://blog.example.com/async-profiler">'
        + "Profiling asyncio in production blog.example.com</a></div>"
        + _metrics("4", "12", "98", "5.1K")
    )
    + _cell(
        _byline("Bob", "bob", "2025-06-01T10:05:00.000Z")
        + '<div data-testid="tweetText"><span>Hot take: tabs are better than spaces. Agree or disagree?</span></div>'
        + _metrics("310", "45", "120", "40K")
        + _CONNECTOR_BELOW
    )
    + _cell(
        _CONNECTOR_ABOVE
        + _byline("Carol", "carol", "2025-06-01T10:07:00.000Z")
        + '<div data-testid="tweetText"><span>Honestly this whole argument comes up every week.</span></div>'
        + _metrics("2", "0", "11", "900")
        + _CONNECTOR_BELOW
    )
    + _cell(
        _CONNECTOR_ABOVE
        + _byline("Dave", "dave", "2025-06-01T10:09:00.000Z")
        + '<div data-testid="tweetText"><span>Formatters made the whole question a non-issue anyway.</span></div>'
        + _metrics("1", "0", "7", "450")
    )
    + _cell(
        _byline("Erin", "erin", "2025-06-01T11:00:00.000Z")
        + '<div data-testid="tweetPhoto">'
        + '<img src="https://pbs.twimg.com/media/sunset?format=png&amp;name=small" alt="Image"></div>'
        + _metrics("0", "1", "30", "1.2K")
    )
    + _cell(
        _byline("Frank", "frank", "2025-06-01T11:30:00.000Z")
        + _metrics("0", "0", "0", "12")
    )
    + _cell(
        _byline("Gina", "gina", "2025-06-01T12:00:00.000Z")
        + '<div data-testid="tweetText"><span>Open debate: are agent paradigms replacing retrieval pipelines?</span></div>'
        + _metrics("56", "20", "300", "22K")
    )
    + _cell(
        _byline("Hank", "hank", "2025-06-01T12:30:00.000Z")
        + '<div data-testid="tweetText"><span>Election day! Go vote for the only candidate who gets it.</span></div>'
        + _metrics("800", "200", "1.5K", "90K")
    )
    + "</div></main>"
    + _SIDEBAR
    + "</body></html>"
)


def _reply_segment(text: str) -> str:
    """The post's own text when earlier thread posts were prepended to it."""
    idx = text.rfind(_REPLY_MARKER)
    if idx < 0:
        return text
    segment = text[idx + len(_REPLY_MARKER):]
    _, _, body = segment.partition(": ")
    return body


class OfflinePostClassifier:
    """
    Deterministic keyword classifier for offline replay and tests.

    Only the post's own text is judged, never the thread context around it. Requests whose
    text contains one of `fail_on` raise ClassifierError, to exercise the failure path.
    """

    def __init__(self, *, fail_on: Sequence[str] = ()) -> None:
        self._fail_on = tuple(s.casefold() for s in fail_on if s)
        self.requests: list[AnalyzeRequest] = []

    def analyze(self, request: AnalyzeRequest) -> AnalyzeResponse:
        self.requests.append(request)
        own = _reply_segment(request.text)

        if any(token in own.casefold() for token in self._fail_on):
            raise ClassifierError(f"Offline classifier refused post {request.correlation_id}")

        filtered = _FILTER_RE.search(own)
        highlighted = _HIGHLIGHT_RE.search(own)
        if filtered is not None:
            category, reason = "filtered", f"matched filter keyword '{filtered.group(1).lower()}'"
        elif highlighted is not None:
            category, reason = "highlighted", f"matched highlight keyword '{highlighted.group(1).lower()}'"
        else:
            category, reason = "allowed", "no filter keywords"

        return AnalyzeResponse(
            correlation_id=request.correlation_id,
            category=category,
            reason=reason,
            diagnostic=Diagnostic(
                prompt=_OFFLINE_PROMPT,
                raw_response=f'{{"reason": "{reason}", "verdict": "{category}"}}',
                inputs={"text": request.text, "author": request.author or "", "images": list(request.images[:1])},
                model="offline",
            ),
        )
