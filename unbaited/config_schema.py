from __future__ import annotations

import re
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator

from .prompts import (
    DEFAULT_ALLOW_CRITERIA,
    DEFAULT_FILTER_CRITERIA,
    DEFAULT_HIGHLIGHT_CRITERIA,
)

_ENV_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

DisplayMode = Literal["blur", "hide"]

_DEFAULT_CRITERIA = {
    "filter": DEFAULT_FILTER_CRITERIA,
    "allow": DEFAULT_ALLOW_CRITERIA,
    "highlight": DEFAULT_HIGHLIGHT_CRITERIA,
}


def _normalize_domain_list(values: list[str]) -> list[str]:
    out: list[str] = []
    seen: set[str] = set()

    for item in values:
        domain = (item or "").strip().casefold().lstrip(".")
        if domain.startswith("www."):
            domain = domain[4:]
        if not domain or domain in seen:
            continue
        seen.add(domain)
        out.append(domain)

    if not out:
        raise ValueError("must contain at least one domain")
    return out


def _validate_env_var_name(value: str) -> str:
    name = (value or "").strip()
    if not _ENV_NAME_RE.fullmatch(name):
        raise ValueError("must be a valid environment variable name")
    return name


PositiveInt = Annotated[int, Field(ge=1)]
NonNegativeFloat = Annotated[float, Field(ge=0.0)]
PositiveFloat = Annotated[float, Field(gt=0.0)]


class FilterConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    enabled: bool = True
    display_mode: DisplayMode = "blur"


class CriteriaConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    filter: str = DEFAULT_FILTER_CRITERIA
    allow: str = DEFAULT_ALLOW_CRITERIA
    highlight: str = DEFAULT_HIGHLIGHT_CRITERIA

    @field_validator("filter", "allow", "highlight")
    @classmethod
    def _strip_block(cls, v: str, info: ValidationInfo) -> str:
        text = (v or "").strip()
        return text or _DEFAULT_CRITERIA[info.field_name]


class ClassifierConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    api_key_env: str = "GROQ_API_KEY"
    base_url: str | None = "https://api.groq.com/openai/v1"
    model_primary: str = "meta-llama/llama-4-scout-17b-16e-instruct"
    model_fallback: str = "llama-3.3-70b-versatile"
    temperature: float = Field(0.0, ge=0.0, le=2.0)
    max_output_tokens: PositiveInt = 100
    send_images: bool = True

    @field_validator("api_key_env")
    @classmethod
    def _api_key_env_must_be_valid(cls, v: str) -> str:
        return _validate_env_var_name(v)


class RetrySettings(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    max_attempts: PositiveInt = 5
    base_delay_seconds: NonNegativeFloat = 1.0
    max_delay_seconds: NonNegativeFloat = 8.0
    jitter_ratio: float = Field(0.0, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _max_must_cover_base(self) -> "RetrySettings":
        if self.max_delay_seconds < self.base_delay_seconds:
            raise ValueError("max_delay_seconds must be >= base_delay_seconds")
        return self


class ObserverConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    threshold: float = Field(0.3, ge=0.0, le=1.0)
    root_margin_px: NonNegativeFloat = 100.0


class TopologyConfig(BaseModel):
    """Thresholds for the visual thread-connector heuristic, in CSS pixels."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    connector_max_width_px: PositiveFloat = 10.0
    avatar_column_px: NonNegativeFloat = 100.0
    top_tolerance_px: NonNegativeFloat = 25.0
    min_above_height_px: NonNegativeFloat = 2.0
    bottom_tolerance_px: NonNegativeFloat = 15.0
    min_below_height_px: NonNegativeFloat = 15.0


class SiteConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    own_domains: list[str] = Field(default_factory=lambda: ["twitter.com", "x.com"])
    feed_root_selector: str = "body"
    hide_sidebar_junk: bool = True

    @field_validator("own_domains")
    @classmethod
    def _normalize_domains(cls, v: list[str]) -> list[str]:
        return _normalize_domain_list(v)

    @field_validator("feed_root_selector")
    @classmethod
    def _selector_must_be_set(cls, v: str) -> str:
        sel = (v or "").strip()
        if not sel:
            raise ValueError("must be a non-empty CSS selector")
        return sel


class ViewportConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    width: PositiveFloat = 600.0
    height: PositiveFloat = 900.0


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    filter: FilterConfig = Field(default_factory=FilterConfig)
    criteria: CriteriaConfig = Field(default_factory=CriteriaConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    observer: ObserverConfig = Field(default_factory=ObserverConfig)
    topology: TopologyConfig = Field(default_factory=TopologyConfig)
    site: SiteConfig = Field(default_factory=SiteConfig)
    viewport: ViewportConfig = Field(default_factory=ViewportConfig)
