from __future__ import annotations

from bs4 import Tag

from .annotations import AnnotationTable
from .badge import ERROR_CATEGORY, VerdictBadge
from .config_schema import DisplayMode, TopologyConfig
from .dom import FeedPage
from .messages import AnalysisResultMessage
from .run_log import RunLogger
from .selectors import CORRELATION_ATTR
from .settings import SettingsStore
from .topology import ThreadTopologyResolver
from .treatment import THREAD_REASON, apply_blur, hide
from .verdict_schema import AnalyzeError, Diagnostic


class VerdictApplicationEngine:
    """
    Turns classification results into visible changes on the page.

    A verdict is matched to its post by correlation id only; if the element is gone the
    verdict is dropped. Filtering always covers the whole visible thread so a reply is
    never left on screen without its parent, or the other way round.
    """

    def __init__(
        self,
        page: FeedPage,
        settings: SettingsStore,
        annotations: AnnotationTable,
        *,
        topology: ThreadTopologyResolver | None = None,
        topology_config: TopologyConfig | None = None,
        logger: RunLogger | None = None,
    ) -> None:
        self._page = page
        self._settings = settings
        self._topology = topology or ThreadTopologyResolver(page, annotations, config=topology_config)
        self._log = logger
        self._badges: dict[str, VerdictBadge] = {}

    @property
    def badges(self) -> list[VerdictBadge]:
        self._prune_badges()
        return list(self._badges.values())

    def find_post(self, correlation_id: str) -> Tag | None:
        if not correlation_id:
            return None
        return self._page.query(f'[{CORRELATION_ATTR}="{correlation_id}"]')

    def on_analysis_result(self, message: AnalysisResultMessage) -> None:
        outcome = message.to_outcome()
        if isinstance(outcome, AnalyzeError):
            self.on_error(outcome.correlation_id, outcome.error_message)
            return
        self.on_verdict(
            outcome.correlation_id,
            outcome.category,
            outcome.reason,
            diagnostic=outcome.diagnostic,
        )

    def on_verdict(
        self,
        correlation_id: str,
        category: str,
        reason: str = "",
        diagnostic: Diagnostic | None = None,
    ) -> int:
        """Badge the post and, for `filtered`, treat its thread. Returns how many posts were treated."""
        post = self._live_post(correlation_id)
        if post is None:
            return 0

        if not self._settings.is_enabled():
            if self._log is not None:
                self._log.info("verdict_ignored_disabled", correlation_id=correlation_id, category=category)
            return 0

        # Connectors disappear once a post is hidden, so the thread is resolved up front.
        thread = self._topology.collect_full_thread(post) if category == "filtered" else []

        self._add_badge(correlation_id, post, category=category, reason=reason, diagnostic=diagnostic)

        treated = 0
        mode = self._settings.display_mode()
        for member in thread:
            member_reason = reason if member is post else THREAD_REASON
            if self._treat(member, mode, member_reason):
                treated += 1

        if self._log is not None:
            self._log.info(
                "verdict_applied",
                correlation_id=correlation_id,
                category=category,
                reason=reason,
                display_mode=mode,
                thread_size=len(thread),
                treated=treated,
            )
        return treated

    def on_error(self, correlation_id: str, error_message: str) -> None:
        if self._log is not None:
            self._log.warning("verdict_failed", correlation_id=correlation_id, error=error_message)

        post = self._live_post(correlation_id)
        if post is None or not self._settings.is_enabled():
            return
        self._add_badge(correlation_id, post, category=ERROR_CATEGORY, reason=error_message)

    def dispose_badges(self) -> int:
        badges = list(self._badges.values())
        self._badges.clear()
        for badge in badges:
            badge.dispose()
        return len(badges)

    def _live_post(self, correlation_id: str) -> Tag | None:
        post = self.find_post(correlation_id)
        if post is None and self._log is not None:
            self._log.info("verdict_dropped_stale", correlation_id=correlation_id)
        return post

    def _treat(self, post: Tag, mode: DisplayMode, reason: str) -> bool:
        if mode == "hide":
            return hide(self._page, post)
        return apply_blur(self._page, post, reason)

    def _add_badge(
        self,
        correlation_id: str,
        post: Tag,
        *,
        category: str,
        reason: str,
        diagnostic: Diagnostic | None = None,
    ) -> VerdictBadge | None:
        self._prune_badges()
        if correlation_id in self._badges:
            return None
        badge = VerdictBadge(self._page, post, category=category, reason=reason, diagnostic=diagnostic)
        if not badge.attach():
            return None
        self._badges[correlation_id] = badge
        return badge

    def _prune_badges(self) -> None:
        for cid, badge in list(self._badges.items()):
            if not badge.attached:
                del self._badges[cid]
