from __future__ import annotations

import asyncio
from typing import Callable

from .classifier import PostClassifier
from .messages import NEW_POST, AnalysisResultMessage, MessageBus, NewPostMessage
from .run_log import RunLogger
from .settings import SettingsStore
from .verdict_schema import AnalyzeError, AnalyzeRequest, Verdict


class ClassificationWorker:
    """
    Background side of the pipeline: turns `new_post` messages into `analysis_result` ones.

    The classifier is blocking, so each call runs in a worker thread. Every dispatched post
    gets exactly one result message unless the filter was disabled when it arrived.
    """

    def __init__(
        self,
        bus: MessageBus,
        settings: SettingsStore,
        classifier: PostClassifier,
        *,
        logger: RunLogger | None = None,
    ) -> None:
        self._bus = bus
        self._settings = settings
        self._classifier = classifier
        self._log = logger
        self._unsubscribe: Callable[[], None] | None = None
        self.completed = 0
        self.failed = 0

    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self._bus.subscribe(NEW_POST, self.handle)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def build_request(self, message: NewPostMessage) -> AnalyzeRequest:
        content = message.content
        return AnalyzeRequest(
            text=content.text,
            correlation_id=message.correlation_id,
            author=content.author or None,
            images=list(content.images),
            criteria=self._settings.snapshot().filter_criteria,
        )

    async def handle(self, message: NewPostMessage) -> AnalysisResultMessage | None:
        cid = message.correlation_id
        if not self._settings.is_enabled():
            if self._log is not None:
                self._log.info("post_dropped_disabled", correlation_id=cid)
            return None

        request = self.build_request(message)
        try:
            response = await asyncio.to_thread(self._classifier.analyze, request)
        except Exception as e:
            self.failed += 1
            if self._log is not None:
                self._log.exception("classifier_failed", exc=e, correlation_id=cid)
            outcome: Verdict | AnalyzeError = AnalyzeError(correlation_id=cid, error_message=str(e) or type(e).__name__)
        else:
            self.completed += 1
            if self._log is not None:
                self._log.info(
                    "post_classified",
                    correlation_id=cid,
                    category=response.category,
                    reason=response.reason,
                    model=response.diagnostic.model if response.diagnostic is not None else None,
                )
            outcome = Verdict(
                correlation_id=cid,
                category=response.category,
                reason=response.reason,
                diagnostic=response.diagnostic,
            )

        result = AnalysisResultMessage.from_outcome(outcome)
        self._bus.send(result)
        return result
