"""
Runtime messages between the page side and the classification worker, and the bus that
carries them.

Delivery is always asynchronous: `send()` only queues, and the queue is pumped on the next
turn of the running event loop (or by `drain()` / `pump()`). A failing handler is logged and
never affects other handlers or other messages.
"""

from __future__ import annotations

import asyncio
import inspect
from collections import defaultdict, deque
from typing import Any, Callable, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from .content import ContentRecord
from .run_log import RunLogger
from .verdict_schema import AnalyzeError, Category, Diagnostic, Verdict

NEW_POST = "new_post"
ANALYSIS_RESULT = "analysis_result"
TOGGLE_EXTENSION = "toggle_extension"


class PostContent(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    text: str
    own_text: str = ""
    author: str = ""
    images: list[str] = Field(default_factory=list)
    videos: list[str] = Field(default_factory=list)
    external_links: list[str] = Field(default_factory=list)
    timestamp: str = ""
    metrics: dict[str, str] = Field(default_factory=dict)
    article_text: str = ""
    card_text: str = ""

    @classmethod
    def from_record(cls, record: ContentRecord, *, contextual_text: str) -> "PostContent":
        payload = record.to_payload()
        return cls(
            text=contextual_text,
            own_text=record.text,
            author=payload["author"],
            images=payload["images"],
            videos=payload["videos"],
            external_links=payload["external_links"],
            timestamp=payload["timestamp"],
            metrics=payload["metrics"],
            article_text=payload["article_text"],
            card_text=payload["card_text"],
        )


class NewPostMessage(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    action: Literal["new_post"] = NEW_POST
    correlation_id: str
    content: PostContent
    is_reply: bool = False
    has_descendant: bool = False


class AnalysisResultMessage(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    action: Literal["analysis_result"] = ANALYSIS_RESULT
    correlation_id: str
    category: Category | None = None
    reason: str = ""
    diagnostic: Diagnostic | None = None
    error: str | None = None

    @classmethod
    def from_outcome(cls, outcome: Verdict | AnalyzeError) -> "AnalysisResultMessage":
        if isinstance(outcome, AnalyzeError):
            return cls(correlation_id=outcome.correlation_id, error=outcome.error_message)
        return cls(
            correlation_id=outcome.correlation_id,
            category=outcome.category,
            reason=outcome.reason,
            diagnostic=outcome.diagnostic,
        )

    def to_outcome(self) -> Verdict | AnalyzeError:
        if self.error is not None:
            return AnalyzeError(correlation_id=self.correlation_id, error_message=self.error)
        if self.category is None:
            return AnalyzeError(correlation_id=self.correlation_id, error_message="classifier returned no category")
        return Verdict(
            correlation_id=self.correlation_id,
            category=self.category,
            reason=self.reason,
            diagnostic=self.diagnostic,
        )


class ToggleMessage(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    action: Literal["toggle_extension"] = TOGGLE_EXTENSION
    is_enabled: bool


Message = Union[NewPostMessage, AnalysisResultMessage, ToggleMessage]
Handler = Callable[[Any], Any]


class MessageBus:
    def __init__(self, *, logger: RunLogger | None = None) -> None:
        self._log = logger
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        self._queue: deque[Message] = deque()
        self._tasks: set[asyncio.Future[Any]] = set()
        self._pump_scheduled = False

    @property
    def pending(self) -> int:
        return len(self._queue) + len(self._tasks)

    def subscribe(self, action: str, handler: Handler) -> Callable[[], None]:
        self._handlers[action].append(handler)

        def _unsubscribe() -> None:
            self._handlers[action] = [h for h in self._handlers[action] if h is not handler]

        return _unsubscribe

    def send(self, message: Message) -> None:
        self._queue.append(message)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if not self._pump_scheduled:
            self._pump_scheduled = True
            loop.call_soon(self.pump)

    def pump(self) -> int:
        """Deliver every queued message; returns how many were delivered."""
        self._pump_scheduled = False
        delivered = 0
        while self._queue:
            message = self._queue.popleft()
            delivered += 1
            for handler in list(self._handlers.get(message.action, ())):
                self._invoke(handler, message)
        return delivered

    async def drain(self) -> None:
        """Wait until no message is queued and no handler is still running."""
        while True:
            self.pump()
            if self._tasks:
                await asyncio.wait(list(self._tasks))
                continue
            await asyncio.sleep(0)
            if not self._queue and not self._tasks:
                return

    def _invoke(self, handler: Handler, message: Message) -> None:
        try:
            result = handler(message)
        except Exception as e:
            self._handler_failed(e, message)
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(lambda t, m=message: self._task_done(t, m))

    def _task_done(self, task: asyncio.Future[Any], message: Message) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._handler_failed(exc, message)

    def _handler_failed(self, exc: BaseException, message: Message) -> None:
        if self._log is None:
            return
        self._log.exception(
            "handler_failed",
            exc=exc,
            correlation_id=getattr(message, "correlation_id", None),
            action=message.action,
        )
