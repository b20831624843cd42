import threading
import unittest

from support import OPENAI_KEY, FakeClock, ScriptedAdapter

from image_gen_api.core.backoff import RetryPolicy
from image_gen_api.core.contracts import (
    Cancelled,
    ErrorKind,
    GenerationRequest,
    Pending,
    Retryable,
    Succeeded,
    Terminal,
)
from image_gen_api.core.orchestrator import GenerationOrchestrator, OrchestratorState


def _request(prompt="a red fox", **kwargs):
    return GenerationRequest(prompt=prompt, provider_id="openai", model="gpt-image-1", **kwargs)


def _adapter(*script, api_key=OPENAI_KEY):
    return ScriptedAdapter(api_key, "gpt-image-1", script=list(script))


class OrchestratorTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FakeClock()

    def orchestrator(self, **policy_kwargs):
        policy_kwargs.setdefault("deadline", None)
        return GenerationOrchestrator(RetryPolicy(**policy_kwargs), sleep=self.clock.sleep, clock=self.clock)


class TestValidation(OrchestratorTestCase):
    def test_blank_prompts_fail_without_network(self) -> None:
        for prompt in ("", "   ", "\n\t"):
            adapter = _adapter(Succeeded(url="https://example/img.png"))
            report = self.orchestrator().run(_request(prompt), adapter)
            self.assertEqual(report.state, OrchestratorState.FAILED)
            self.assertIsInstance(report.outcome, Terminal)
            self.assertEqual(report.outcome.kind, ErrorKind.VALIDATION)
            self.assertEqual(report.outcome.code, "invalid_prompt")
            self.assertEqual(adapter.calls, [])
            self.assertEqual(report.attempts, 0)

    def test_missing_adapter_is_invalid_provider(self) -> None:
        report = self.orchestrator().run(_request(), None)
        self.assertEqual(report.outcome.code, "invalid_provider")

    def test_malformed_credential_fails_fast(self) -> None:
        adapter = _adapter(Succeeded(url="https://example/img.png"), api_key="not-a-key")
        report = self.orchestrator().run(_request(), adapter)
        self.assertEqual(report.outcome.code, "invalid_api_key_format")
        self.assertEqual(adapter.calls, [])

    def test_missing_credential(self) -> None:
        adapter = _adapter(Succeeded(url="https://example/img.png"), api_key="")
        report = self.orchestrator().run(_request(), adapter)
        self.assertEqual(report.outcome.code, "invalid_api_key")

    def test_unknown_model(self) -> None:
        adapter = _adapter(Succeeded(url="https://example/img.png"))
        request = GenerationRequest(prompt="fox", provider_id="openai", model="dall-e-9")
        report = self.orchestrator().run(request, adapter)
        self.assertEqual(report.outcome.code, "invalid_model")
        self.assertEqual(adapter.calls, [])

    def test_image_to_image_requires_capable_model(self) -> None:
        adapter = ScriptedAdapter(OPENAI_KEY, "dall-e-3", script=[Succeeded(url="https://example/img.png")])
        request = GenerationRequest(
            prompt="fox",
            provider_id="openai",
            model="dall-e-3",
            source_image_url="https://example/src.png",
        )
        report = self.orchestrator().run(request, adapter)
        self.assertEqual(report.outcome.code, "invalid_parameter")
        self.assertEqual(adapter.calls, [])


class TestStateMachine(OrchestratorTestCase):
    def test_first_call_success_has_no_retries(self) -> None:
        adapter = _adapter(Succeeded(url="https://example/img.png"))
        report = self.orchestrator().run(_request(), adapter)
        self.assertTrue(report.succeeded)
        self.assertEqual(report.outcome.url, "https://example/img.png")
        self.assertEqual(report.attempts, 1)
        self.assertEqual(report.retries, 0)
        self.assertEqual(self.clock.sleeps, [])

    def test_pending_polls_same_handle(self) -> None:
        adapter = _adapter(Pending("abc"))
        report = self.orchestrator(max_polls=5).run(_request(), adapter)
        self.assertEqual(adapter.calls[0], ("request", "a red fox"))
        self.assertEqual(adapter.calls[1:], [("poll", "abc")] * 5)
        self.assertEqual(report.state, OrchestratorState.FAILED)
        self.assertEqual(report.outcome.code, "timeout")
        self.assertEqual(report.prediction_id, "abc")

    def test_pending_twice_then_success(self) -> None:
        adapter = _adapter(Pending("abc"), Pending("abc"), Succeeded(url="https://example/out.webp"))
        report = self.orchestrator().run(_request(), adapter)
        self.assertTrue(report.succeeded)
        self.assertEqual(adapter.calls, [("request", "a red fox"), ("poll", "abc"), ("poll", "abc")])
        self.assertEqual(report.attempts, 3)
        self.assertEqual(report.outcome.prediction_id, "abc")

    def test_moderation_is_not_retried(self) -> None:
        adapter = _adapter(Terminal(ErrorKind.CONTENT_MODERATION, "flagged"))
        report = self.orchestrator().run(_request(), adapter)
        self.assertEqual(len(adapter.calls), 1)
        self.assertEqual(report.outcome.kind, ErrorKind.CONTENT_MODERATION)
        self.assertEqual(self.clock.sleeps, [])

    def test_success_on_nth_attempt(self) -> None:
        for n in (1, 2, 4, 7):
            self.clock = FakeClock()
            script = [Retryable(f"boom {i}") for i in range(n - 1)] + [Succeeded(url="https://example/img.png")]
            adapter = _adapter(*script)
            report = self.orchestrator(max_retries=10).run(_request(), adapter)
            self.assertTrue(report.succeeded)
            self.assertEqual(report.attempts, n)
            self.assertEqual(len(adapter.calls), n)

    def test_always_retryable_exhausts_budget(self) -> None:
        adapter = _adapter(Retryable("upstream 503"))
        report = self.orchestrator(max_retries=4).run(_request(), adapter)
        self.assertEqual(report.state, OrchestratorState.FAILED)
        self.assertEqual(report.attempts, 4)
        self.assertEqual(len(adapter.calls), 4)
        self.assertEqual(report.outcome.code, "api_error")
        self.assertIn("Failed after 4 attempts", report.outcome.message)
        self.assertIn("upstream 503", report.outcome.message)
        self.assertEqual(report.last_error, "upstream 503")

    def test_exhausted_message_counts_status_checks(self) -> None:
        adapter = _adapter(Pending("p1"), Pending("p1"), Retryable("upstream 503"))
        report = self.orchestrator(max_retries=2).run(_request(), adapter)
        self.assertEqual(report.attempts, 4)
        self.assertEqual(report.retries, 2)
        self.assertIn("Failed after 4 attempts", report.outcome.message)

    def test_failed_prediction_is_resubmitted(self) -> None:
        adapter = _adapter(
            Pending("p1"),
            Retryable("Generation failed: CUDA OOM", discard_handle=True),
            Succeeded(url="https://example/img.png"),
        )
        report = self.orchestrator().run(_request(), adapter)
        self.assertTrue(report.succeeded)
        self.assertEqual([call[0] for call in adapter.calls], ["request", "poll", "request"])

    def test_transient_poll_failure_keeps_handle(self) -> None:
        adapter = _adapter(Pending("p1"), Retryable("timeout", ErrorKind.TRANSPORT), Succeeded(url="https://x/y.png"))
        self.orchestrator().run(_request(), adapter)
        self.assertEqual(adapter.calls[-1], ("poll", "p1"))

    def test_unexpected_outcome_raises(self) -> None:
        adapter = _adapter("not an outcome")
        with self.assertRaises(TypeError):
            self.orchestrator().run(_request(), adapter)


class TestBackoff(OrchestratorTestCase):
    def test_delays_non_decreasing_and_capped(self) -> None:
        adapter = _adapter(Retryable("flaky"))
        report = self.orchestrator(max_retries=12, base_delay=1.0, factor=1.5, max_delay=4.0).run(_request(), adapter)
        delays = self.clock.sleeps
        self.assertEqual(delays, report.delays)
        self.assertEqual(len(delays), 11)
        self.assertEqual(delays[0], 1.0)
        for earlier, later in zip(delays, delays[1:]):
            self.assertLessEqual(earlier, later)
        self.assertTrue(all(delay <= 4.0 for delay in delays))
        self.assertEqual(delays[-1], 4.0)

    def test_pending_grows_delay(self) -> None:
        adapter = _adapter(Pending("abc"), Pending("abc"), Pending("abc"), Succeeded(url="https://x/y.png"))
        self.orchestrator(base_delay=2.0, factor=1.5, max_delay=20.0).run(_request(), adapter)
        self.assertEqual(self.clock.sleeps, [2.0, 3.0, 4.5])

    def test_policy_schedule(self) -> None:
        policy = RetryPolicy(base_delay=3.0, factor=1.5, max_delay=20.0)
        schedule = policy.delays()
        self.assertEqual([next(schedule) for _ in range(7)], [3.0, 4.5, 6.75, 10.125, 15.1875, 20.0, 20.0])

    def test_policy_rejects_shrinking_factor(self) -> None:
        with self.assertRaises(ValueError):
            RetryPolicy(factor=0.5)
        with self.assertRaises(ValueError):
            RetryPolicy(max_retries=0)


class TestDeadlineAndCancellation(OrchestratorTestCase):
    def test_deadline_stops_loop(self) -> None:
        adapter = _adapter(Retryable("still down"))
        report = self.orchestrator(max_retries=100, base_delay=10.0, max_delay=10.0, deadline=35.0).run(
            _request(), adapter
        )
        self.assertEqual(report.outcome.code, "timeout")
        self.assertIn("still down", report.outcome.message)
        self.assertLessEqual(sum(self.clock.sleeps), 35.0)
        self.assertEqual(len(adapter.calls), 4)

    def test_cancel_before_start(self) -> None:
        event = threading.Event()
        event.set()
        adapter = _adapter(Succeeded(url="https://x/y.png"))
        report = self.orchestrator().run(_request(), adapter, cancel_event=event)
        self.assertIsInstance(report.outcome, Cancelled)
        self.assertEqual(report.state, OrchestratorState.CANCELLED)
        self.assertEqual(adapter.calls, [])

    def test_cancel_during_wait(self) -> None:
        event = threading.Event()
        adapter = _adapter(Pending("abc"))

        def sleep(seconds: float) -> None:
            event.set()

        orchestrator = GenerationOrchestrator(RetryPolicy(deadline=None), sleep=sleep, clock=self.clock)
        report = orchestrator.run(_request(), adapter, cancel_event=event)
        self.assertIsInstance(report.outcome, Cancelled)
        self.assertEqual(len(adapter.calls), 1)

    def test_cancel_event_interrupts_real_wait(self) -> None:
        event = threading.Event()
        adapter = _adapter(Pending("abc"))
        timer = threading.Timer(0.05, event.set)
        timer.start()
        try:
            orchestrator = GenerationOrchestrator(RetryPolicy(base_delay=30.0, max_delay=30.0, deadline=None))
            report = orchestrator.run(_request(), adapter, cancel_event=event)
        finally:
            timer.cancel()
        self.assertIsInstance(report.outcome, Cancelled)


if __name__ == "__main__":
    unittest.main()
