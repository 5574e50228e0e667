from __future__ import annotations

from typing import Sequence

from bs4 import Tag

from .annotations import AnnotationTable
from .config_schema import ObserverConfig, TopologyConfig
from .content import ContentRecord
from .dom import FeedPage, IntersectionEntry, IntersectionObserver, MutationObserver, MutationRecord, find_all_test_id
from .extract import ContentExtractor
from .messages import MessageBus, NewPostMessage, PostContent
from .run_log import RunLogger
from .selectors import POST
from .topology import ThreadContext, ThreadTopologyResolver, format_thread_entry


def build_contextual_text(record: ContentRecord, context: ThreadContext) -> str:
    """Own text, prefixed by the reply chain when there is one, then article/card text."""
    if context.has_ancestor and context.ancestor_chain_text:
        parts = list(context.ancestor_chain_text)
        parts.append(format_thread_entry("Reply", record.author, record.text))
        text = " ".join(parts)
    else:
        text = record.text

    if record.article_text:
        text = f"{text} [Article: {record.article_text}]".strip()
    if record.card_text:
        text = f"{text} [Card: {record.card_text}]".strip()
    return text


class VisibilityDispatcher:
    """
    Sends each post to classification once, when it first becomes visible.

    Two observers feed it: an insertion watcher that registers new posts, and a
    visibility watcher that fires the dispatch. The processed mark is set before the
    message is built so a second visibility event can never dispatch the same element.
    """

    def __init__(
        self,
        page: FeedPage,
        bus: MessageBus,
        annotations: AnnotationTable,
        *,
        extractor: ContentExtractor | None = None,
        topology: ThreadTopologyResolver | None = None,
        observer_config: ObserverConfig | None = None,
        topology_config: TopologyConfig | None = None,
        feed_root_selector: str = "body",
        logger: RunLogger | None = None,
    ) -> None:
        self._page = page
        self._bus = bus
        self._annotations = annotations
        self._extractor = extractor or ContentExtractor(annotations)
        self._topology = topology or ThreadTopologyResolver(page, annotations, config=topology_config)
        self._observer_cfg = observer_config or ObserverConfig()
        self._feed_root_selector = feed_root_selector
        self._log = logger

        self._insertions: MutationObserver | None = None
        self._visibility: IntersectionObserver | None = None
        self.dispatched = 0

    @property
    def running(self) -> bool:
        return self._visibility is not None

    def start(self) -> None:
        if self.running:
            return
        root = self._page.query(self._feed_root_selector) or self._page.body

        self._visibility = IntersectionObserver(
            self._page,
            self._on_visibility,
            threshold=self._observer_cfg.threshold,
            root_margin=self._observer_cfg.root_margin_px,
        )
        self._insertions = MutationObserver(self._page, self._on_insertions)
        self._insertions.observe(root, subtree=True)

        for post in find_all_test_id(root, POST):
            self.register(post)

    def stop(self) -> None:
        if self._insertions is not None:
            self._insertions.disconnect()
            self._insertions = None
        if self._visibility is not None:
            self._visibility.disconnect()
            self._visibility = None

    def register(self, post: Tag) -> bool:
        if self._visibility is None or self._annotations.is_processed(post):
            return False
        return self._visibility.observe(post)

    def _on_insertions(self, records: Sequence[MutationRecord], observer: MutationObserver) -> None:
        for record in records:
            for node in record.added_nodes:
                for post in find_all_test_id(node, POST):
                    self.register(post)

    def _on_visibility(self, entries: Sequence[IntersectionEntry], observer: IntersectionObserver) -> None:
        for entry in entries:
            if not entry.is_intersecting:
                continue
            post = entry.target
            if not self._annotations.is_processed(post):
                self.dispatch(post)
            observer.unobserve(post)

    def dispatch(self, post: Tag) -> NewPostMessage | None:
        """Extract, annotate and send one post. Returns the message, or None when skipped."""
        record = self._extractor.extract(post)
        self._annotations.mark_processed(post)

        context = self._topology.thread_context(post)
        self._annotations.record_adjacency(
            post,
            has_ancestor=context.has_ancestor,
            has_descendant=context.has_descendant,
        )

        if not record.has_classifiable_content:
            if self._log is not None:
                self._log.info("post_skipped_empty", correlation_id=record.correlation_id)
            return None

        message = NewPostMessage(
            correlation_id=record.correlation_id,
            content=PostContent.from_record(record, contextual_text=build_contextual_text(record, context)),
            is_reply=context.has_ancestor,
            has_descendant=context.has_descendant,
        )
        self._bus.send(message)
        self.dispatched += 1

        if self._log is not None:
            self._log.info(
                "post_dispatched",
                correlation_id=record.correlation_id,
                author=record.author,
                is_reply=context.has_ancestor,
                has_descendant=context.has_descendant,
                thread_depth=len(context.ancestor_chain_text),
                images=len(record.images),
            )
        return message
