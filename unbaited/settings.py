from __future__ import annotations

from dataclasses import dataclass, replace
from threading import Lock

from .config_schema import AppConfig, DisplayMode


@dataclass(frozen=True)
class FilterSettings:
    enabled: bool
    display_mode: DisplayMode
    filter_criteria: str


class SettingsStore:
    """
    Process-wide view of the user's preferences.

    Seeded from the config; only the toggle message and the replay tooling write to it.
    Readers always get an immutable snapshot.
    """

    def __init__(self, initial: FilterSettings) -> None:
        self._current = initial
        self._lock = Lock()

    @classmethod
    def from_config(cls, config: AppConfig) -> "SettingsStore":
        return cls(
            FilterSettings(
                enabled=config.filter.enabled,
                display_mode=config.filter.display_mode,
                filter_criteria=config.criteria.filter,
            )
        )

    def snapshot(self) -> FilterSettings:
        with self._lock:
            return self._current

    def is_enabled(self) -> bool:
        return self.snapshot().enabled

    def display_mode(self) -> DisplayMode:
        return self.snapshot().display_mode

    def set_enabled(self, enabled: bool) -> None:
        with self._lock:
            self._current = replace(self._current, enabled=bool(enabled))

    def set_display_mode(self, mode: DisplayMode) -> None:
        if mode not in ("blur", "hide"):
            raise ValueError(f"unknown display mode: {mode!r}")
        with self._lock:
            self._current = replace(self._current, display_mode=mode)
