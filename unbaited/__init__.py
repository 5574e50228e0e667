from __future__ import annotations

from .config import config_sha256, load_config, resolve_runtime_secrets
from .config_schema import AppConfig
from .content_script import FeedFilter
from .dom import FeedPage
from .errors import ClassifierError, ConfigError, PageError
from .replay import ReplayResult, run_replay

__all__ = [
    "AppConfig",
    "ClassifierError",
    "ConfigError",
    "FeedFilter",
    "FeedPage",
    "PageError",
    "ReplayResult",
    "config_sha256",
    "load_config",
    "resolve_runtime_secrets",
    "run_replay",
]
