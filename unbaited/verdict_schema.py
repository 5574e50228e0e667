from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

Category = Literal["filtered", "allowed", "highlighted"]


class ClassifierDecision(BaseModel):
    """The JSON object the model is asked to return."""

    # Models occasionally add keys of their own; only these two matter.
    model_config = ConfigDict(extra="ignore", frozen=True)

    reason: str = ""
    verdict: Category

    @field_validator("verdict", mode="before")
    @classmethod
    def _normalize_verdict(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().casefold()
        return v

    @field_validator("reason", mode="before")
    @classmethod
    def _normalize_reason(cls, v: Any) -> Any:
        if v is None:
            return ""
        if isinstance(v, str):
            return v.strip()
        return v


class Diagnostic(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    prompt: str
    raw_response: str
    inputs: dict[str, Any] = Field(default_factory=dict)
    model: str | None = None


class AnalyzeRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    text: str
    correlation_id: str = Field(min_length=1)
    author: str | None = None
    images: list[str] = Field(default_factory=list)
    criteria: str | None = None


class AnalyzeResponse(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    correlation_id: str
    category: Category
    reason: str = ""
    diagnostic: Diagnostic | None = None


class AnalyzeError(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    correlation_id: str
    error_message: str


class Verdict(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    correlation_id: str
    category: Category
    reason: str = ""
    diagnostic: Diagnostic | None = None
