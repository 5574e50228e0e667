from __future__ import annotations

import random
import unittest

from unbaited.annotations import AnnotationTable, CorrelationIds
from unbaited.dom import FeedPage
from unbaited.extract import (
    ContentExtractor,
    first_byline_segment,
    high_res_image_url,
    is_external_link,
)
from unbaited.selectors import CORRELATION_ATTR


_POST = """\
<html><body><div data-testid="cellInnerDiv"><article data-testid="tweet">
  <div data-testid="User-Name"><span>Ada Lovelace</span><span>@ada</span><span>·</span>
    <a href="/ada/status/1"><time datetime="2025-06-01T09:30:00.000Z">3h</time></a></div>
  <img src="https://pbs.twimg.com/profile_images/1/ada_normal.jpg">
  <div data-testid="tweetText"><span>Notes on   the analytical</span>
    <a href="https://t.co/abc">engine</a></div>
  <div data-testid="tweetPhoto"><img src="https://pbs.twimg.com/media/one?format=png&amp;name=small"></div>
  <div data-testid="tweetPhoto"><img src="https://pbs.twimg.com/media/one?format=png&amp;name=small"></div>
  <div data-testid="videoPlayer"><video src="https://video.twimg.com/v.mp4"></video></div>
  <div data-testid="card.wrapper"><a href="https://example.org/notes">Sketch of the engine example.org</a></div>
  <a href="https://x.com/ada">profile</a>
  <a href="http://insecure.example.com/">plain http</a>
  <div role="group">
    <button data-testid="reply"><span>12</span></button>
    <button data-testid="retweet"><span>3</span></button>
    <button data-testid="like"><span>1.2K</span></button>
    <a data-testid="analytics" href="/analytics"><span>40K</span></a>
  </div>
</article></div></body></html>
"""

_ARTICLE_POST = """\
<html><body><article data-testid="tweet">
  <div data-testid="User-Name"><span>Bo</span></div>
  <div><div data-testid="article-cover-image"><img src="https://pbs.twimg.com/media/cover"></div>
  <div>The long read</div><div>Chapter one</div></div>
</article></body></html>
"""


class TestHelpers(unittest.TestCase):
    def test_high_res_image_url(self) -> None:
        self.assertEqual(
            high_res_image_url("https://pbs.twimg.com/media/x?format=webp&name=360x360"),
            "https://pbs.twimg.com/media/x?format=jpg&name=large",
        )
        self.assertEqual(high_res_image_url("https://pbs.twimg.com/media/x"), "https://pbs.twimg.com/media/x")

    def test_first_byline_segment(self) -> None:
        self.assertEqual(first_byline_segment("Ada\n@ada\n·\n3h"), "Ada")
        self.assertEqual(first_byline_segment("  · Ada"), "Ada")
        self.assertEqual(first_byline_segment(""), "")

    def test_is_external_link(self) -> None:
        own = ("twitter.com", "x.com")
        self.assertTrue(is_external_link("https://example.org/a", own))
        self.assertFalse(is_external_link("https://x.com/ada", own))
        self.assertFalse(is_external_link("https://mobile.twitter.com/ada", own))
        self.assertFalse(is_external_link("http://example.org/a", own))
        self.assertFalse(is_external_link("/relative", own))


class TestContentExtractor(unittest.TestCase):
    def test_extracts_every_field(self) -> None:
        page = FeedPage.from_html(_POST)
        post = page.query('[data-testid="tweet"]')
        annotations = AnnotationTable()

        record = ContentExtractor(annotations).extract(post)

        self.assertEqual(record.text, "Notes on the analytical engine")
        self.assertEqual(record.author, "Ada Lovelace")
        self.assertEqual(list(record.images), ["https://pbs.twimg.com/media/one?format=jpg&name=large"])
        self.assertEqual(list(record.videos), ["https://video.twimg.com/v.mp4"])
        self.assertIn("https://example.org/notes", record.external_links)
        self.assertIn("https://t.co/abc", record.external_links)
        self.assertNotIn("https://x.com/ada", record.external_links)
        self.assertEqual(record.timestamp, "2025-06-01T09:30:00.000Z")
        self.assertEqual(record.metrics.replies, "12")
        self.assertEqual(record.metrics.reposts, "3")
        self.assertEqual(record.metrics.likes, "1.2K")
        self.assertEqual(record.metrics.views, "40K")
        self.assertEqual(record.card_text, "Sketch of the engine example.org")
        self.assertEqual(record.article_text, "")
        self.assertTrue(record.has_classifiable_content)

        self.assertEqual(post[CORRELATION_ATTR], record.correlation_id)
        self.assertIsNotNone(annotations.get(post))

    def test_article_text_follows_cover(self) -> None:
        page = FeedPage.from_html(_ARTICLE_POST)
        record = ContentExtractor(AnnotationTable()).extract(page.query('[data-testid="tweet"]'))

        self.assertEqual(record.article_text, "The long read Chapter one")
        self.assertEqual(record.text, "")
        self.assertEqual(list(record.images), [])
        self.assertFalse(record.has_classifiable_content)
        self.assertEqual(record.metrics.likes, "0")

    def test_reextraction_issues_a_new_id(self) -> None:
        page = FeedPage.from_html(_POST)
        post = page.query('[data-testid="tweet"]')
        extractor = ContentExtractor(AnnotationTable())

        first = extractor.extract(post)
        second = extractor.extract(post)

        self.assertNotEqual(first.correlation_id, second.correlation_id)
        self.assertEqual(post[CORRELATION_ATTR], second.correlation_id)
        self.assertEqual(first.text, second.text)


class TestAnnotations(unittest.TestCase):
    def test_correlation_ids_are_unique_and_short(self) -> None:
        ids = CorrelationIds(rng=random.Random(7))
        tokens = [ids.next() for _ in range(200)]

        self.assertEqual(len(set(tokens)), 200)
        self.assertTrue(all(t.isalnum() and t == t.lower() for t in tokens))
        self.assertTrue(tokens[0].startswith("1"))
        self.assertEqual(len(tokens[0]), 6)

    def test_processed_mark_and_adjacency_cache(self) -> None:
        page = FeedPage.from_html(_POST)
        post = page.query('[data-testid="tweet"]')
        table = AnnotationTable()

        self.assertFalse(table.is_processed(post))
        table.mark_processed(post)
        self.assertTrue(table.is_processed(post))
        self.assertFalse(table.has_descendant(post))

        table.record_adjacency(post, has_ancestor=False, has_descendant=True)
        self.assertTrue(table.has_descendant(post))
        self.assertEqual(len(table), 1)

    def test_mark_processed_keeps_existing_stamp(self) -> None:
        page = FeedPage.from_html(_POST)
        post = page.query('[data-testid="tweet"]')
        table = AnnotationTable()

        cid = table.stamp(post)
        table.mark_processed(post)

        self.assertEqual(post[CORRELATION_ATTR], cid)
        self.assertTrue(table.is_processed(post))
        self.assertEqual(len(table), 1)

        fresh = page.query('[data-testid="User-Name"]')
        table.mark_processed(fresh)
        self.assertTrue(fresh.has_attr(CORRELATION_ATTR))
        self.assertEqual(table.get(fresh).correlation_id, fresh[CORRELATION_ATTR])
        self.assertTrue(table.is_processed(fresh))


if __name__ == "__main__":
    unittest.main()
