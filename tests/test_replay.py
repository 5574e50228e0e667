from __future__ import annotations

import io
import json
import unittest

from unbaited.config_schema import AppConfig
from unbaited.dom import FeedPage, get_style_property
from unbaited.offline import SAMPLE_FEED_HTML, OfflinePostClassifier
from unbaited.replay import run_replay
from unbaited.run_log import RunLogger
from unbaited.selectors import CONTAINER_CLASS, HIDDEN_CLASS, TREATED_CLASS
from unbaited.verdict_schema import AnalyzeRequest

from tests.feed_fixtures import PostSpec, feed_html


def _authors(page: FeedPage, selector: str) -> list[str]:
    out: list[str] = []
    for post in page.query_all(selector):
        byline = post.select_one('[data-testid="User-Name"] span')
        out.append(byline.get_text() if byline is not None else "")
    return out


def _is_hidden(tag) -> bool:
    node = tag
    while node is not None and node.name != "body":
        if get_style_property(node, "display") == "none":
            return True
        node = node.parent
    return False


class TestOfflineClassifier(unittest.TestCase):
    def test_judges_only_the_reply_segment(self) -> None:
        classifier = OfflinePostClassifier()
        response = classifier.analyze(
            AnalyzeRequest(
                text="[Thread @Bob: Hot take: agree or disagree?] [Reply @Carol: formatters settle it]",
                correlation_id="1abcde",
            )
        )
        self.assertEqual(response.category, "allowed")

        response = classifier.analyze(AnalyzeRequest(text="Open debate on paradigms", correlation_id="1abcdf"))
        self.assertEqual(response.category, "highlighted")
        self.assertEqual(response.reason, "matched highlight keyword 'debate'")


class TestReplay(unittest.TestCase):
    def test_sample_feed_blur_mode(self) -> None:
        stream = io.StringIO()
        classifier = OfflinePostClassifier()

        result = run_replay(AppConfig(), SAMPLE_FEED_HTML, classifier, logger=RunLogger(stream=stream))

        self.assertEqual(result.posts_seen, 8)
        self.assertEqual(result.dispatched, 7)
        self.assertEqual(result.filtered, 2)
        self.assertEqual(result.treated, 4)
        self.assertEqual(result.errors, 0)
        self.assertEqual(len(classifier.requests), 7)

        page = FeedPage.from_html(result.html)
        self.assertEqual(_authors(page, f".{TREATED_CLASS}"), ["Bob", "Carol", "Dave", "Hank"])
        self.assertEqual(len(page.query_all(f".{CONTAINER_CLASS}")), 4)
        self.assertEqual(len(page.query_all(".unbaited-verdict-card")), 7)
        self.assertEqual(len(page.query_all(".unbaited-verdict-card.dark")), 7)
        self.assertTrue(_is_hidden(page.query('[aria-label="Trending"]')))

        events = [json.loads(ln)["event"] for ln in stream.getvalue().splitlines()]
        self.assertEqual(events.count("post_dispatched"), 7)
        self.assertEqual(events.count("post_skipped_empty"), 1)
        self.assertEqual(events.count("verdict_applied"), 7)
        self.assertEqual(events[-1], "replay_completed")

        carol = next(r for r in classifier.requests if r.author == "Carol")
        self.assertTrue(carol.text.startswith("[Thread @Bob: Hot take"))

    def test_hide_mode(self) -> None:
        cfg = AppConfig.model_validate({"filter": {"display_mode": "hide"}})

        result = run_replay(cfg, SAMPLE_FEED_HTML, OfflinePostClassifier())

        page = FeedPage.from_html(result.html)
        self.assertEqual(result.treated, 4)
        self.assertEqual(_authors(page, f".{HIDDEN_CLASS}"), ["Bob", "Carol", "Dave", "Hank"])
        self.assertEqual(page.query_all(f".{CONTAINER_CLASS}"), [])

    def test_disabled_filter_leaves_page_untouched(self) -> None:
        cfg = AppConfig.model_validate({"filter": {"enabled": False}})
        classifier = OfflinePostClassifier()

        result = run_replay(cfg, SAMPLE_FEED_HTML, classifier)

        self.assertEqual(result.dispatched, 7)
        self.assertEqual(classifier.requests, [])
        self.assertEqual(result.treated, 0)
        self.assertEqual(result.verdicts, {})

    def test_classifier_failures_become_error_badges(self) -> None:
        html = feed_html(
            [
                PostSpec(author="ok", text="A neat tip about profilers"),
                PostSpec(author="bad", text="this one breaks the classifier"),
            ]
        )

        result = run_replay(AppConfig(), html, OfflinePostClassifier(fail_on=("breaks",)))

        self.assertEqual(result.errors, 1)
        self.assertEqual(result.treated, 0)
        page = FeedPage.from_html(result.html)
        self.assertEqual(len(page.query_all(".unbaited-verdict-card.error")), 1)


if __name__ == "__main__":
    unittest.main()
