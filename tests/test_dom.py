from __future__ import annotations

import unittest

from unbaited.dom import FeedPage, IntersectionObserver, MutationObserver, add_class, class_list, remove_class
from unbaited.errors import PageError
from unbaited.layout import Rect, is_dark_color, is_transparent, parse_rgb


_PAGE = """\
<html><body>
<div id="a" style="height: 300px"></div>
<div id="b" style="height: 300px"><div id="b1" style="position: absolute; top: 10px; left: 20px; width: 4px; height: 50px"></div></div>
<div id="c" style="height: 600px"></div>
</body></html>
"""


class TestLayout(unittest.TestCase):
    def test_block_flow_and_absolute_children(self) -> None:
        page = FeedPage.from_html(_PAGE)
        a, b, b1, c = (page.query(f"#{i}") for i in ("a", "b", "b1", "c"))

        self.assertEqual(page.layout.rect(a), Rect(0.0, 0.0, 600.0, 300.0))
        self.assertEqual(page.layout.rect(b).top, 300.0)
        self.assertEqual(page.layout.rect(b1), Rect(20.0, 310.0, 4.0, 50.0))
        self.assertEqual(page.layout.rect(c).top, 600.0)
        self.assertEqual(page.document_height, 1200.0)

    def test_display_none_collapses_and_reflows(self) -> None:
        page = FeedPage.from_html(_PAGE)
        a, c = page.query("#a"), page.query("#c")
        a["style"] = "height: 300px; display: none"
        page.restyle()

        self.assertFalse(page.layout.is_displayed(a))
        self.assertEqual(page.layout.rect(c).top, 300.0)

    def test_colors(self) -> None:
        self.assertEqual(parse_rgb("rgba(1, 2, 3, 0.5)"), (1, 2, 3, 0.5))
        self.assertEqual(parse_rgb("#fff"), (255, 255, 255, 1.0))
        self.assertTrue(is_transparent("rgba(0, 0, 0, 0)"))
        self.assertTrue(is_transparent(""))
        self.assertFalse(is_transparent("red"))
        self.assertTrue(is_dark_color("rgb(21, 32, 43)"))
        self.assertFalse(is_dark_color("rgb(255, 255, 255)"))


class TestElementHelpers(unittest.TestCase):
    def test_class_helpers_accept_string_class_attribute(self) -> None:
        page = FeedPage.from_html("<div></div>")
        tag = page.create_element("div", attrs={"class": "one two"})

        self.assertEqual(class_list(tag), ["one", "two"])
        add_class(tag, "three", "one")
        self.assertEqual(class_list(tag), ["one", "two", "three"])
        remove_class(tag, "one", "two", "three")
        self.assertFalse(tag.has_attr("class"))

    def test_from_html_rejects_empty_snapshot(self) -> None:
        with self.assertRaises(PageError):
            FeedPage.from_html("   ")


class TestObservers(unittest.TestCase):
    def test_mutation_observer_receives_batched_records(self) -> None:
        page = FeedPage.from_html(_PAGE)
        seen: list[int] = []
        observer = MutationObserver(page, lambda records, obs: seen.append(len(records)))
        observer.observe(page.body)

        with page.batch():
            page.append(page.body, "<div id='d1'></div>")
            page.append(page.body, "<div id='d2'></div>")
        page.remove(page.query("#d1"))

        self.assertEqual(seen, [2, 1])

        observer.disconnect()
        page.append(page.body, "<div></div>")
        self.assertEqual(seen, [2, 1])
        self.assertEqual(page.mutation_observer_count, 0)

    def test_intersection_observer_reports_transitions_only(self) -> None:
        page = FeedPage.from_html(_PAGE, viewport_height=400.0)
        c = page.query("#c")
        entries: list[tuple[str, bool]] = []
        observer = IntersectionObserver(
            page,
            lambda batch, obs: entries.extend((e.target["id"], e.is_intersecting) for e in batch),
            threshold=0.3,
            root_margin=0.0,
        )

        self.assertTrue(observer.observe(c))
        self.assertFalse(observer.observe(c))
        self.assertEqual(entries, [("c", False)])

        page.scroll_to(300)
        self.assertEqual(entries, [("c", False)])

        page.scroll_to(700)
        self.assertEqual(entries, [("c", False), ("c", True)])

        page.scroll_to(710)
        self.assertEqual(len(entries), 2)

        page.remove(c)
        self.assertFalse(observer.is_observing(c))

    def test_root_margin_extends_viewport(self) -> None:
        page = FeedPage.from_html(_PAGE, viewport_height=250.0)
        b = page.query("#b")
        hits: list[bool] = []
        observer = IntersectionObserver(page, lambda batch, obs: hits.extend(e.is_intersecting for e in batch), threshold=0.3, root_margin=100.0)
        observer.observe(b)

        # Viewport plus margin reaches y=350, i.e. 50 of b's 300px.
        self.assertEqual(hits, [False])
        page.scroll_to(50)
        self.assertEqual(hits, [False, True])


class TestFramesAndEvents(unittest.TestCase):
    def test_animation_frames_are_deduplicated(self) -> None:
        page = FeedPage.from_html(_PAGE)
        calls: list[int] = []

        def cb() -> None:
            calls.append(1)

        page.request_animation_frame(cb)
        page.request_animation_frame(cb)
        self.assertEqual(page.run_animation_frame(), 1)
        self.assertEqual(calls, [1])
        self.assertEqual(page.run_animation_frame(), 0)

    def test_listeners_are_dropped_with_their_element(self) -> None:
        page = FeedPage.from_html(_PAGE)
        button = page.append(page.body, "<button>Show</button>")
        clicks: list[str] = []
        page.add_event_listener(button, "click", lambda event: clicks.append(event.type))

        self.assertTrue(page.click(button))
        page.remove(button)
        self.assertFalse(page.click(button))
        self.assertEqual(clicks, ["click"])

    def test_wrap_and_unwrap_keep_element_identity(self) -> None:
        page = FeedPage.from_html(_PAGE)
        a = page.query("#a")
        wrapper = page.wrap(a, page.create_element("div", attrs={"class": "box"}))

        self.assertIs(a.parent, wrapper)
        page.unwrap(wrapper)
        self.assertIs(a.parent, page.body)
        self.assertIsNone(page.query(".box"))


if __name__ == "__main__":
    unittest.main()
