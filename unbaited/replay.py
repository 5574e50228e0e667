from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from .classifier import PostClassifier
from .config_schema import AppConfig
from .content_script import FeedFilter
from .dom import FeedPage
from .messages import ANALYSIS_RESULT, AnalysisResultMessage, MessageBus
from .run_log import RunLogger
from .selectors import POST_SELECTOR, TREATED_CLASS
from .settings import SettingsStore
from .worker import ClassificationWorker

_ERROR_VERDICT = "error"


@dataclass(frozen=True)
class ReplayResult:
    posts_seen: int
    dispatched: int
    treated: int
    html: str
    verdicts: dict[str, str] = field(default_factory=dict)

    @property
    def filtered(self) -> int:
        return sum(1 for v in self.verdicts.values() if v == "filtered")

    @property
    def errors(self) -> int:
        return sum(1 for v in self.verdicts.values() if v == _ERROR_VERDICT)


async def replay_feed(
    config: AppConfig,
    html: str,
    classifier: PostClassifier,
    *,
    step_px: float | None = None,
    settings: SettingsStore | None = None,
    logger: RunLogger | None = None,
) -> ReplayResult:
    """
    Run the whole pipeline over a saved feed snapshot, scrolling it from top to bottom.

    Every scroll step is followed by a full drain of the bus, so verdicts for the posts that
    became visible are applied before the next step.
    """
    page = FeedPage.from_html(
        html,
        viewport_width=config.viewport.width,
        viewport_height=config.viewport.height,
    )
    store = settings or SettingsStore.from_config(config)
    bus = MessageBus(logger=logger)

    verdicts: dict[str, str] = {}

    def _record(message: AnalysisResultMessage) -> None:
        verdicts[message.correlation_id] = message.category or _ERROR_VERDICT

    bus.subscribe(ANALYSIS_RESULT, _record)

    worker = ClassificationWorker(bus, store, classifier, logger=logger)
    feed = FeedFilter(page, store, bus, config=config, logger=logger)
    worker.start()
    feed.start()

    step = float(step_px) if step_px else config.viewport.height / 2
    if step <= 0:
        raise ValueError("step_px must be positive")

    try:
        await bus.drain()
        while True:
            before = page.scroll_y
            page.scroll_by(step)
            await bus.drain()
            if page.scroll_y <= before:
                break
        page.run_animation_frame()
    finally:
        feed.stop()
        worker.stop()

    result = ReplayResult(
        posts_seen=len(page.query_all(POST_SELECTOR)),
        dispatched=feed.dispatcher.dispatched,
        treated=len(page.query_all(f".{TREATED_CLASS}")),
        html=page.html(),
        verdicts=verdicts,
    )
    if logger is not None:
        logger.info(
            "replay_completed",
            posts_seen=result.posts_seen,
            dispatched=result.dispatched,
            filtered=result.filtered,
            treated=result.treated,
            errors=result.errors,
        )
    return result


def run_replay(
    config: AppConfig,
    html: str,
    classifier: PostClassifier,
    *,
    step_px: float | None = None,
    settings: SettingsStore | None = None,
    logger: RunLogger | None = None,
) -> ReplayResult:
    return asyncio.run(
        replay_feed(config, html, classifier, step_px=step_px, settings=settings, logger=logger)
    )
