"""Request/retry/poll loop around a single provider adapter.

One run drives an adapter through

    INIT -> REQUESTING -> SUCCEEDED
                       -> POLLING -> (status check) ...
                       -> RETRY_WAIT -> REQUESTING ...
                       -> FAILED

Pending outcomes keep the prediction handle so later attempts poll it instead
of submitting a fresh generation. Retryable outcomes consume the retry budget;
pending outcomes only count against ``max_polls``. Terminal outcomes end the
run immediately. Every wait uses the same multiplicative backoff, and the
whole loop is bounded by the policy deadline when one is set.
"""

from __future__ import annotations

import enum
import logging
import threading
import time
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, List, Optional, cast

from .backoff import RetryPolicy
from .contracts import (
    Cancelled,
    Clock,
    ErrorKind,
    GenerationOutcome,
    GenerationRequest,
    Pending,
    Retryable,
    Sleeper,
    Succeeded,
    Terminal,
)

if TYPE_CHECKING:
    from image_gen_api.providers.base import ProviderAdapter

logger = logging.getLogger(__name__)


class OrchestratorState(str, enum.Enum):
    INIT = "init"
    REQUESTING = "requesting"
    POLLING = "polling"
    RETRY_WAIT = "retry_wait"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class OrchestrationReport:
    outcome: GenerationOutcome
    state: OrchestratorState
    attempts: int = 0
    retries: int = 0
    polls: int = 0
    prediction_id: Optional[str] = None
    last_error: Optional[str] = None
    delays: List[float] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.state is OrchestratorState.SUCCEEDED


def validate_request(request: GenerationRequest, adapter: Optional["ProviderAdapter"]) -> Optional[Terminal]:
    """Checks that need no network access; any failure is terminal."""
    if not request.prompt or not request.prompt.strip():
        return Terminal(ErrorKind.VALIDATION, "Prompt cannot be empty", code="invalid_prompt")
    if adapter is None:
        return Terminal(ErrorKind.VALIDATION, f"Invalid provider: {request.provider_id}", code="invalid_provider")
    if not request.model:
        return Terminal(
            ErrorKind.VALIDATION,
            f"No model set or provider not supported: {request.provider_id}",
            code="invalid_model",
        )
    if request.model not in adapter.available_models():
        return Terminal(
            ErrorKind.VALIDATION,
            f"Model '{request.model}' is not available for provider {request.provider_id}",
            code="invalid_model",
        )
    if not adapter.api_key:
        return Terminal(ErrorKind.VALIDATION, "API key is not set", code="invalid_api_key")
    if not adapter.validate_credential_format():
        return Terminal(ErrorKind.VALIDATION, "API key format is invalid", code="invalid_api_key_format")
    if request.is_image_to_image and not adapter.supports_image_to_image():
        return Terminal(
            ErrorKind.VALIDATION,
            f"Model '{request.model}' does not support image-to-image generation",
            code="invalid_parameter",
        )
    return None


class GenerationOrchestrator:
    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        *,
        sleep: Optional[Sleeper] = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._clock = clock

    def _wait(self, delay: float, cancel_event: Optional[threading.Event]) -> bool:
        """Sleep for ``delay`` seconds; returns True when cancelled meanwhile."""
        if self._sleep is not None:
            self._sleep(delay)
            return bool(cancel_event is not None and cancel_event.is_set())
        if cancel_event is not None:
            return cancel_event.wait(delay)
        time.sleep(delay)
        return False

    def run(
        self,
        request: GenerationRequest,
        adapter: Optional["ProviderAdapter"],
        *,
        cancel_event: Optional[threading.Event] = None,
    ) -> OrchestrationReport:
        policy = self.policy
        started = self._clock()
        report = OrchestrationReport(outcome=Cancelled(), state=OrchestratorState.INIT)

        def finish(outcome: GenerationOutcome, state: OrchestratorState) -> OrchestrationReport:
            if isinstance(outcome, Succeeded) and outcome.prediction_id is None and report.prediction_id:
                outcome = replace(outcome, prediction_id=report.prediction_id)
            report.outcome = outcome
            report.state = state
            report.elapsed = self._clock() - started
            if state is OrchestratorState.FAILED:
                logger.warning(
                    "Generation with %s failed after %d attempt(s): %s",
                    request.provider_id,
                    report.attempts,
                    getattr(outcome, "message", outcome),
                )
            return report

        invalid = validate_request(request, adapter)
        if invalid is not None:
            return finish(invalid, OrchestratorState.FAILED)
        adapter = cast("ProviderAdapter", adapter)

        handle: Optional[str] = None
        schedule = policy.delays()
        delay = next(schedule)
        while True:
            if cancel_event is not None and cancel_event.is_set():
                return finish(Cancelled(), OrchestratorState.CANCELLED)

            report.attempts += 1
            if handle:
                report.state = OrchestratorState.POLLING
                logger.info("Attempt %d - checking %s prediction %s", report.attempts, request.provider_id, handle)
                outcome = adapter.check_pending_status(handle)
            else:
                report.state = OrchestratorState.REQUESTING
                logger.info("Attempt %d - making %s API request", report.attempts, request.provider_id)
                outcome = adapter.request(request)

            if isinstance(outcome, Succeeded):
                return finish(outcome, OrchestratorState.SUCCEEDED)
            if isinstance(outcome, Terminal):
                return finish(outcome, OrchestratorState.FAILED)
            if isinstance(outcome, Cancelled):
                return finish(outcome, OrchestratorState.CANCELLED)
            if isinstance(outcome, Pending):
                handle = outcome.handle
                report.prediction_id = outcome.handle
                report.polls += 1
                if report.polls > policy.max_polls:
                    return finish(
                        Terminal(
                            ErrorKind.TRANSIENT_PROVIDER,
                            f"Image still processing after {policy.max_polls} status checks",
                            code="timeout",
                        ),
                        OrchestratorState.FAILED,
                    )
                report.state = OrchestratorState.POLLING
            elif isinstance(outcome, Retryable):
                report.retries += 1
                report.last_error = outcome.reason
                if outcome.discard_handle:
                    handle = None
                logger.info("Attempt %d failed: %s", report.attempts, outcome.reason)
                if report.retries >= policy.max_retries:
                    return finish(
                        Terminal(
                            outcome.kind,
                            f"Failed after {report.attempts} attempts: {outcome.reason}",
                            code="api_error",
                        ),
                        OrchestratorState.FAILED,
                    )
                report.state = OrchestratorState.RETRY_WAIT
            else:
                raise TypeError(f"Adapter returned an unexpected outcome: {outcome!r}")

            if policy.deadline is not None and self._clock() - started + delay > policy.deadline:
                message = f"Generation did not finish within {policy.deadline:g}s"
                if report.last_error:
                    message = f"{message}: {report.last_error}"
                return finish(
                    Terminal(ErrorKind.TRANSIENT_PROVIDER, message, code="timeout"),
                    OrchestratorState.FAILED,
                )
            report.delays.append(delay)
            if self._wait(delay, cancel_event):
                return finish(Cancelled(), OrchestratorState.CANCELLED)
            delay = next(schedule)
