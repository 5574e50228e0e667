from __future__ import annotations


class ConfigError(RuntimeError):
    """Raised when configuration is missing or invalid."""


class ClassifierError(RuntimeError):
    """Raised when a classification call or its structured parse fails."""


class PageError(RuntimeError):
    """Raised when a feed snapshot cannot be loaded into a page."""
