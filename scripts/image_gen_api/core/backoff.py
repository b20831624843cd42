"""Retry budget and backoff schedule for the generation loop."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Optional


DEFAULT_MAX_RETRIES = 15
DEFAULT_BASE_DELAY = 3.0
DEFAULT_MAX_DELAY = 20.0
DEFAULT_FACTOR = 1.5
DEFAULT_MAX_POLLS = 60
DEFAULT_DEADLINE = 300.0


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay: float = DEFAULT_BASE_DELAY
    max_delay: float = DEFAULT_MAX_DELAY
    factor: float = DEFAULT_FACTOR
    max_polls: int = DEFAULT_MAX_POLLS
    deadline: Optional[float] = DEFAULT_DEADLINE

    def __post_init__(self) -> None:
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")
        if self.factor < 1.0:
            raise ValueError("factor must be >= 1.0 so delays never shrink")
        if self.max_polls < 0:
            raise ValueError("max_polls must be non-negative")
        if self.deadline is not None and self.deadline <= 0:
            raise ValueError("deadline must be positive when set")

    def initial_delay(self) -> float:
        return min(self.base_delay, self.max_delay)

    def next_delay(self, delay: float) -> float:
        return min(delay * self.factor, self.max_delay)

    def delays(self) -> Iterator[float]:
        """Endless schedule of waits: base, base*factor, ... capped at max_delay."""
        delay = self.initial_delay()
        while True:
            yield delay
            delay = self.next_delay(delay)
