from __future__ import annotations

import unittest
from typing import Any

from unbaited.classifier import OpenAIPostClassifier, post_with_author
from unbaited.config_schema import ClassifierConfig, CriteriaConfig
from unbaited.errors import ClassifierError
from unbaited.prompts import DEFAULT_FILTER_CRITERIA
from unbaited.retry import RetryConfig, RetryEvent
from unbaited.verdict_schema import AnalyzeRequest


class _FakeMessage:
    def __init__(self, content: str) -> None:
        self.content = content


class _FakeChoice:
    def __init__(self, content: str) -> None:
        self.message = _FakeMessage(content)


class _FakeCompletion:
    def __init__(self, content: str) -> None:
        self.choices = [_FakeChoice(content)]


class _FakeCompletions:
    def __init__(self, outcomes: list[Any]) -> None:
        self._outcomes = list(outcomes)
        self.calls: list[dict[str, Any]] = []

    def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if not self._outcomes:
            raise AssertionError("Fake client received more calls than expected")
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return _FakeCompletion(outcome)


class _FakeChat:
    def __init__(self, outcomes: list[Any]) -> None:
        self.completions = _FakeCompletions(outcomes)


class _FakeClient:
    def __init__(self, outcomes: Any) -> None:
        self.chat = _FakeChat(outcomes if isinstance(outcomes, list) else [outcomes])

    @property
    def calls(self) -> list[dict[str, Any]]:
        return self.chat.completions.calls


class _Unavailable(Exception):
    status_code = 503


_FILTERED = '{"reason": "engagement bait asking followers to pick a side", "verdict": "filtered"}'
_HIGHLIGHTED = '{"reason": "thoughtful debate about AI product design", "verdict": "Highlighted", "extra": 1}'


def _classifier(client: _FakeClient, **overrides: Any) -> OpenAIPostClassifier:
    cfg = ClassifierConfig(model_primary="primary-model", model_fallback="fallback-model", **overrides)
    return OpenAIPostClassifier(
        "gsk-test",
        classifier_cfg=cfg,
        client=client,  # type: ignore[arg-type]
        retry=RetryConfig(max_attempts=3, base_delay_seconds=0.5, max_delay_seconds=1.0),
        sleep_fn=lambda s: None,
    )


class TestOpenAIPostClassifier(unittest.TestCase):
    def test_sends_json_object_request(self) -> None:
        fake = _FakeClient(_FILTERED)
        classifier = _classifier(fake, max_output_tokens=100, temperature=0.0)

        response = classifier.analyze(AnalyzeRequest(text="Agree or disagree?", correlation_id="1abcde", author="ben"))

        self.assertEqual(response.correlation_id, "1abcde")
        self.assertEqual(response.category, "filtered")
        self.assertEqual(response.reason, "engagement bait asking followers to pick a side")

        call = fake.calls[0]
        self.assertEqual(call["model"], "primary-model")
        self.assertEqual(call["temperature"], 0.0)
        self.assertEqual(call["max_tokens"], 100)
        self.assertEqual(call["response_format"], {"type": "json_object"})
        system, user = call["messages"]
        self.assertEqual(system["role"], "system")
        self.assertIn("FILTER these posts:", system["content"])
        self.assertIn(DEFAULT_FILTER_CRITERIA, system["content"])
        self.assertEqual(user, {"role": "user", "content": "@ben: Agree or disagree?"})

        diagnostic = response.diagnostic
        assert diagnostic is not None
        self.assertEqual(diagnostic.prompt, system["content"])
        self.assertEqual(diagnostic.raw_response, _FILTERED)
        self.assertEqual(diagnostic.inputs, {"text": "Agree or disagree?", "author": "ben", "images": []})
        self.assertEqual(diagnostic.model, "primary-model")

    def test_first_image_is_sent_as_multimodal_content(self) -> None:
        fake = _FakeClient(_HIGHLIGHTED)
        classifier = _classifier(fake)

        response = classifier.analyze(
            AnalyzeRequest(
                text="",
                correlation_id="1abcde",
                images=["https://pbs.twimg.com/media/a", "https://pbs.twimg.com/media/b"],
            )
        )

        self.assertEqual(response.category, "highlighted")
        user = fake.calls[0]["messages"][1]["content"]
        self.assertEqual(
            user,
            [
                {"type": "text", "text": "Analyze this post image:"},
                {"type": "image_url", "image_url": {"url": "https://pbs.twimg.com/media/a"}},
            ],
        )
        assert response.diagnostic is not None
        self.assertEqual(response.diagnostic.inputs["images"], ["https://pbs.twimg.com/media/a"])

    def test_images_can_be_disabled(self) -> None:
        fake = _FakeClient(_FILTERED)
        classifier = _classifier(fake, send_images=False)

        classifier.analyze(AnalyzeRequest(text="look", correlation_id="1abcde", images=["https://pbs.twimg.com/media/a"]))

        self.assertEqual(fake.calls[0]["messages"][1]["content"], "look")

    def test_custom_criteria_replace_filter_block(self) -> None:
        fake = _FakeClient(_FILTERED)
        classifier = _classifier(fake)

        classifier.analyze(AnalyzeRequest(text="x", correlation_id="1abcde", criteria="- Anything about crypto"))

        prompt = fake.calls[0]["messages"][0]["content"]
        self.assertIn("FILTER these posts:\n- Anything about crypto\n", prompt)
        self.assertNotIn(DEFAULT_FILTER_CRITERIA, prompt)

    def test_parse_failure_escalates_to_fallback_model(self) -> None:
        fake = _FakeClient(["not json at all", _FILTERED])
        classifier = _classifier(fake)

        response = classifier.analyze(AnalyzeRequest(text="Agree?", correlation_id="1abcde"))

        self.assertEqual(response.category, "filtered")
        self.assertEqual([c["model"] for c in fake.calls], ["primary-model", "fallback-model"])
        assert response.diagnostic is not None
        self.assertEqual(response.diagnostic.model, "fallback-model")

    def test_unknown_verdict_fails_after_fallback(self) -> None:
        bad = '{"reason": "?", "verdict": "spam"}'
        fake = _FakeClient([bad, bad])
        classifier = _classifier(fake)

        with self.assertRaises(ClassifierError):
            classifier.analyze(AnalyzeRequest(text="x", correlation_id="1abcde"))
        self.assertEqual(len(fake.calls), 2)

    def test_transient_errors_are_retried(self) -> None:
        fake = _FakeClient([_Unavailable("upstream"), _FILTERED])
        events: list[RetryEvent] = []
        classifier = OpenAIPostClassifier(
            "gsk-test",
            classifier_cfg=ClassifierConfig(),
            client=fake,  # type: ignore[arg-type]
            on_retry=events.append,
            sleep_fn=lambda s: None,
        )

        response = classifier.analyze(AnalyzeRequest(text="x", correlation_id="1retry"))

        self.assertEqual(response.category, "filtered")
        self.assertEqual(len(fake.calls), 2)
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].reason, "http_503")
        self.assertEqual(events[0].correlation_id, "1retry")

    def test_exhausted_retries_raise_classifier_error(self) -> None:
        fake = _FakeClient([_Unavailable("a"), _Unavailable("b"), _Unavailable("c")])
        classifier = _classifier(fake)

        with self.assertRaises(ClassifierError) as ctx:
            classifier.analyze(AnalyzeRequest(text="x", correlation_id="1abcde"))
        self.assertIn("primary-model", str(ctx.exception))
        self.assertEqual(len(fake.calls), 3)

    def test_requires_api_key_without_client(self) -> None:
        with self.assertRaises(ValueError):
            OpenAIPostClassifier("  ", classifier_cfg=ClassifierConfig(), criteria=CriteriaConfig())


class TestPostWithAuthor(unittest.TestCase):
    def test_prefix(self) -> None:
        self.assertEqual(post_with_author("hi", "ada"), "@ada: hi")
        self.assertEqual(post_with_author("hi", " "), "hi")
        self.assertEqual(post_with_author("hi", None), "hi")


if __name__ == "__main__":
    unittest.main()
