from __future__ import annotations

from typing import Callable

from .annotations import AnnotationTable
from .config_schema import AppConfig
from .dispatcher import VisibilityDispatcher
from .dom import FeedPage
from .engine import VerdictApplicationEngine
from .extract import ContentExtractor
from .messages import ANALYSIS_RESULT, TOGGLE_EXTENSION, AnalysisResultMessage, MessageBus, ToggleMessage
from .reset import ToggleResetController
from .run_log import RunLogger
from .settings import SettingsStore
from .sidebar import SidebarCleaner
from .topology import ThreadTopologyResolver


class FeedFilter:
    """
    Page-side half of the filter: everything that runs against the live feed.

    Owns one annotation table shared by extraction, topology, dispatch and verdict
    application, and listens on the bus for verdicts and toggle changes.
    """

    def __init__(
        self,
        page: FeedPage,
        settings: SettingsStore,
        bus: MessageBus,
        *,
        config: AppConfig | None = None,
        annotations: AnnotationTable | None = None,
        logger: RunLogger | None = None,
    ) -> None:
        cfg = config or AppConfig()
        self.page = page
        self.settings = settings
        self.bus = bus
        self.annotations = annotations or AnnotationTable()
        self._log = logger

        self.topology = ThreadTopologyResolver(page, self.annotations, config=cfg.topology)
        self.dispatcher = VisibilityDispatcher(
            page,
            bus,
            self.annotations,
            extractor=ContentExtractor(self.annotations, own_domains=cfg.site.own_domains),
            topology=self.topology,
            observer_config=cfg.observer,
            feed_root_selector=cfg.site.feed_root_selector,
            logger=logger,
        )
        self.engine = VerdictApplicationEngine(
            page,
            settings,
            self.annotations,
            topology=self.topology,
            logger=logger,
        )
        self.reset = ToggleResetController(page, settings, engine=self.engine, logger=logger)
        self.sidebar = SidebarCleaner(page, logger=logger) if cfg.site.hide_sidebar_junk else None

        self._subscriptions: list[Callable[[], None]] = []

    @property
    def running(self) -> bool:
        return bool(self._subscriptions)

    def start(self) -> None:
        if self.running:
            return
        self._subscriptions = [
            self.bus.subscribe(ANALYSIS_RESULT, self._on_analysis_result),
            self.bus.subscribe(TOGGLE_EXTENSION, self._on_toggle),
        ]
        if self.sidebar is not None:
            self.sidebar.start()
        self.dispatcher.start()
        if self._log is not None:
            self._log.info("feed_filter_started", enabled=self.settings.is_enabled())

    def stop(self) -> None:
        for unsubscribe in self._subscriptions:
            unsubscribe()
        self._subscriptions = []
        self.dispatcher.stop()
        if self.sidebar is not None:
            self.sidebar.stop()

    def _on_analysis_result(self, message: AnalysisResultMessage) -> None:
        self.engine.on_analysis_result(message)

    def _on_toggle(self, message: ToggleMessage) -> None:
        self.reset.on_toggle(message.is_enabled)
