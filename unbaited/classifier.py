from __future__ import annotations

from typing import Any, Protocol

from openai import OpenAI

from .config_schema import ClassifierConfig, CriteriaConfig
from .errors import ClassifierError
from .openai_retry import is_retryable_openai_exception
from .prompts import construct_full_prompt, resolve_criteria
from .retry import OnRetryFn, RetryConfig, SleepFn, call_with_retries
from .verdict_schema import AnalyzeRequest, AnalyzeResponse, ClassifierDecision, Diagnostic

_IMAGE_ONLY_PROMPT = "Analyze this post image:"


class _CompletionsAPI(Protocol):
    def create(self, **kwargs: Any) -> Any: ...


class _ChatAPI(Protocol):
    completions: _CompletionsAPI


class _OpenAIClient(Protocol):
    chat: _ChatAPI


class PostClassifier(Protocol):
    def analyze(self, request: AnalyzeRequest) -> AnalyzeResponse: ...


def post_with_author(text: str, author: str | None) -> str:
    who = (author or "").strip()
    return f"@{who}: {text}" if who else text


def _extract_message_text(completion: Any) -> str:
    choices = getattr(completion, "choices", None) or []
    if not choices:
        raise ClassifierError("Classifier response did not include any choices")
    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None)
    if not isinstance(content, str) or not content.strip():
        raise ClassifierError("Classifier response did not include message content")
    return content.strip()


class OpenAIPostClassifier:
    """
    One-post-per-call classifier against an OpenAI-compatible Chat Completions endpoint.

    The response is requested as a JSON object and validated into a ClassifierDecision.
    If the primary model's output cannot be parsed, the call is repeated once on the
    fallback model. Transient HTTP failures are retried before any of that.
    """

    def __init__(
        self,
        api_key: str,
        *,
        classifier_cfg: ClassifierConfig,
        criteria: CriteriaConfig | None = None,
        retry: RetryConfig | None = None,
        client: _OpenAIClient | None = None,
        on_retry: OnRetryFn | None = None,
        sleep_fn: SleepFn | None = None,
    ) -> None:
        key = (api_key or "").strip()
        if not key and client is None:
            raise ValueError("api_key must be a non-empty string")

        self._cfg = classifier_cfg
        self._criteria = criteria or CriteriaConfig()
        self._retry = retry or RetryConfig()
        self._on_retry = on_retry
        self._sleep_fn = sleep_fn
        # Client-level retries are disabled; call_with_retries owns the policy.
        self._client: _OpenAIClient = client or OpenAI(api_key=key, base_url=classifier_cfg.base_url, max_retries=0)

    def _fallback_model(self) -> str | None:
        primary = self._cfg.model_primary.strip()
        fallback = (self._cfg.model_fallback or "").strip()
        if not fallback or fallback == primary:
            return None
        return fallback

    def build_prompt(self, request: AnalyzeRequest) -> str:
        return construct_full_prompt(
            resolve_criteria(request.criteria, self._criteria.filter),
            self._criteria.allow,
            self._criteria.highlight,
        )

    def _images_to_send(self, request: AnalyzeRequest) -> list[str]:
        if not self._cfg.send_images or not request.images:
            return []
        return [request.images[0]]

    def _user_content(self, request: AnalyzeRequest, images: list[str]) -> str | list[dict[str, Any]]:
        text = post_with_author(request.text, request.author)
        if not images:
            return text
        parts: list[dict[str, Any]] = [{"type": "text", "text": text or _IMAGE_ONLY_PROMPT}]
        for url in images:
            parts.append({"type": "image_url", "image_url": {"url": url}})
        return parts

    def _call_raw(
        self,
        *,
        model: str,
        system_prompt: str,
        user_content: str | list[dict[str, Any]],
        correlation_id: str,
    ) -> str:
        def _do_call() -> Any:
            return self._client.chat.completions.create(
                model=model,
                temperature=self._cfg.temperature,
                max_tokens=self._cfg.max_output_tokens,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_content},
                ],
                response_format={"type": "json_object"},
            )

        try:
            completion = call_with_retries(
                _do_call,
                cfg=self._retry,
                is_retryable=is_retryable_openai_exception,
                operation=f"chat.completions.create:{model}",
                on_retry=self._on_retry,
                sleep_fn=self._sleep_fn,
                correlation_id=correlation_id,
            )
        except Exception as e:
            raise ClassifierError(f"Classifier call failed ({model}): {e}") from e

        return _extract_message_text(completion)

    def _parse_decision(self, raw: str, *, model: str) -> ClassifierDecision:
        try:
            return ClassifierDecision.model_validate_json(raw)
        except Exception as e:
            raise ClassifierError(f"Failed to parse classifier output ({model}): {e}") from e

    def analyze(self, request: AnalyzeRequest) -> AnalyzeResponse:
        primary = self._cfg.model_primary.strip()
        if not primary:
            raise ValueError("classifier_cfg.model_primary must be non-empty")

        system_prompt = self.build_prompt(request)
        images = self._images_to_send(request)
        user_content = self._user_content(request, images)

        model = primary
        raw = self._call_raw(
            model=model,
            system_prompt=system_prompt,
            user_content=user_content,
            correlation_id=request.correlation_id,
        )
        try:
            decision = self._parse_decision(raw, model=model)
        except ClassifierError:
            fallback = self._fallback_model()
            if fallback is None:
                raise
            model = fallback
            raw = self._call_raw(
                model=model,
                system_prompt=system_prompt,
                user_content=user_content,
                correlation_id=request.correlation_id,
            )
            decision = self._parse_decision(raw, model=model)

        return AnalyzeResponse(
            correlation_id=request.correlation_id,
            category=decision.verdict,
            reason=decision.reason,
            diagnostic=Diagnostic(
                prompt=system_prompt,
                raw_response=raw,
                inputs={"text": request.text, "author": request.author or "", "images": images},
                model=model,
            ),
        )
