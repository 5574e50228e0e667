from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from .config_schema import RetrySettings

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """
    Exponential backoff policy for classifier calls.

    - max_attempts includes the first call (5 => 1 call + 4 retries).
    - Delays double from base_delay_seconds and are capped at max_delay_seconds.
    - jitter_ratio scales each delay by a factor in [1-jitter, 1+jitter].
    - A server Retry-After hint wins over the computed delay, capped by retry_after_cap_seconds
      (0 disables the cap).
    """

    max_attempts: int = 5
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 8.0
    jitter_ratio: float = 0.0
    retry_after_cap_seconds: float = 60.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay_seconds < 0 or self.max_delay_seconds < 0:
            raise ValueError("delays must be >= 0")
        if self.max_delay_seconds < self.base_delay_seconds:
            raise ValueError("max_delay_seconds must be >= base_delay_seconds")
        if not (0.0 <= self.jitter_ratio <= 1.0):
            raise ValueError("jitter_ratio must be between 0 and 1")
        if self.retry_after_cap_seconds < 0:
            raise ValueError("retry_after_cap_seconds must be >= 0")

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> "RetryConfig":
        return cls(
            max_attempts=settings.max_attempts,
            base_delay_seconds=settings.base_delay_seconds,
            max_delay_seconds=settings.max_delay_seconds,
            jitter_ratio=settings.jitter_ratio,
        )

    def backoff_seconds(self, failure_attempt: int) -> float:
        """Delay after the n-th failed attempt (1-based), before jitter."""
        exponent = max(0, int(failure_attempt) - 1)
        return min(self.max_delay_seconds, self.base_delay_seconds * (2**exponent))


@dataclass(frozen=True)
class RetryEvent:
    operation: str
    failure_attempt: int
    max_attempts: int
    delay_seconds: float
    retry_after_seconds: float | None
    reason: str | None
    error_type: str
    error_message: str
    correlation_id: str | None = None

    @property
    def next_attempt(self) -> int:
        return self.failure_attempt + 1


IsRetryableFn = Callable[[BaseException], tuple[bool, float | None, str | None]]
OnRetryFn = Callable[[RetryEvent], None]
SleepFn = Callable[[float], None]


def _jittered(delay: float, cfg: RetryConfig) -> float:
    if delay <= 0 or cfg.jitter_ratio <= 0:
        return max(0.0, delay)
    return max(0.0, delay * random.uniform(1.0 - cfg.jitter_ratio, 1.0 + cfg.jitter_ratio))


def _capped_retry_after(value: float | None, cfg: RetryConfig) -> float | None:
    if value is None or value < 0:
        return None
    if cfg.retry_after_cap_seconds > 0:
        return min(float(value), cfg.retry_after_cap_seconds)
    return float(value)


def call_with_retries(
    fn: Callable[[], T],
    *,
    cfg: RetryConfig,
    is_retryable: IsRetryableFn,
    operation: str,
    on_retry: OnRetryFn | None = None,
    sleep_fn: SleepFn | None = None,
    correlation_id: str | None = None,
) -> T:
    """
    Call fn(), retrying failures that `is_retryable` accepts until attempts run out.

    The last exception is re-raised unchanged so callers can translate it.
    """
    op = (operation or "").strip() or "operation"
    sleep = sleep_fn or time.sleep

    attempt = 0
    while True:
        attempt += 1
        try:
            return fn()
        except Exception as exc:
            retryable, retry_after, reason = is_retryable(exc)
            if not retryable or attempt >= cfg.max_attempts:
                raise

            hint = _capped_retry_after(retry_after, cfg)
            delay = cfg.backoff_seconds(attempt)
            if hint is not None:
                delay = max(delay, hint)
            delay = _jittered(delay, cfg)

            if on_retry is not None:
                on_retry(
                    RetryEvent(
                        operation=op,
                        failure_attempt=attempt,
                        max_attempts=cfg.max_attempts,
                        delay_seconds=delay,
                        retry_after_seconds=hint,
                        reason=reason,
                        error_type=type(exc).__name__,
                        error_message=(str(exc) or "").strip(),
                        correlation_id=correlation_id,
                    )
                )
            if delay > 0:
                sleep(delay)
