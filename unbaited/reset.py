from __future__ import annotations

from dataclasses import dataclass

from .dom import FeedPage
from .engine import VerdictApplicationEngine
from .run_log import RunLogger
from .selectors import CONTAINER_CLASS, CONTROLS_CLASS, TREATED_CLASS
from .settings import SettingsStore
from .treatment import strip_treatment


@dataclass(frozen=True)
class ResetSummary:
    treated: int = 0
    controls: int = 0
    containers: int = 0
    badges: int = 0


class ToggleResetController:
    """Applies the enable/disable toggle; disabling sweeps every treatment off the page by marker."""

    def __init__(
        self,
        page: FeedPage,
        settings: SettingsStore,
        *,
        engine: VerdictApplicationEngine | None = None,
        logger: RunLogger | None = None,
    ) -> None:
        self._page = page
        self._settings = settings
        self._engine = engine
        self._log = logger

    def on_toggle(self, is_enabled: bool) -> ResetSummary | None:
        self._settings.set_enabled(is_enabled)
        if is_enabled:
            return None
        return self.on_disable()

    def on_disable(self) -> ResetSummary:
        page = self._page
        with page.batch():
            treated = 0
            for post in page.query_all(f".{TREATED_CLASS}"):
                if strip_treatment(page, post):
                    treated += 1

            controls = page.query_all(f".{CONTROLS_CLASS}")
            for block in controls:
                page.remove(block)

            containers = page.query_all(f".{CONTAINER_CLASS}")
            for container in containers:
                page.unwrap(container)

        badges = self._engine.dispose_badges() if self._engine is not None else 0
        page.restyle()

        summary = ResetSummary(
            treated=treated,
            controls=len(controls),
            containers=len(containers),
            badges=badges,
        )
        if self._log is not None:
            self._log.info(
                "treatments_reset",
                treated=summary.treated,
                controls=summary.controls,
                containers=summary.containers,
                badges=summary.badges,
            )
        return summary
