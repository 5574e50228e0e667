from __future__ import annotations

import hashlib
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

import yaml
from pydantic import ValidationError

from .config_schema import AppConfig
from .errors import ConfigError


@dataclass(frozen=True)
class RuntimeSecrets:
    classifier_api_key: str


def parse_config(raw_text: str, *, source: str = "<string>") -> AppConfig:
    """Validate YAML text into an AppConfig. An empty document yields all defaults."""
    try:
        data = yaml.safe_load(raw_text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML in {source}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Top-level YAML in {source} must be a mapping")

    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(_format_pydantic_errors(e, source)) from e


def load_config(path: str | Path) -> AppConfig:
    """
    Load the filter's YAML config file.

    Raises ConfigError with a readable validation message on failure.
    """
    p = Path(path)
    if not p.is_file():
        raise ConfigError(f"Config file not found: {p}")

    try:
        raw_text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read config file: {p}") from e

    return parse_config(raw_text, source=str(p))


def resolve_runtime_secrets(
    config: AppConfig, *, environ: Mapping[str, str] | None = None
) -> RuntimeSecrets:
    """
    Read the classifier API key from the environment variable named in the config.

    Only the online classifier needs this; offline replays never call it.
    """
    env = os.environ if environ is None else environ

    key_env = config.classifier.api_key_env
    value = (env.get(key_env) or "").strip()
    if not value:
        raise ConfigError(f"Missing required environment variables: {key_env}")

    return RuntimeSecrets(classifier_api_key=value)


def config_sha256(config: AppConfig) -> str:
    """
    Compute a stable SHA-256 hash of the config values, logged with every replay.
    """
    payload = json.dumps(
        config.model_dump(mode="json"),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


def _format_pydantic_errors(err: ValidationError, source: str) -> str:
    lines: list[str] = [f"Invalid configuration in {source}:"]
    for item in err.errors():
        loc = ".".join(str(part) for part in item.get("loc", [])) or "<root>"
        msg = item.get("msg", "invalid value")
        lines.append(f"- {loc}: {msg}")
    return "\n".join(lines)
