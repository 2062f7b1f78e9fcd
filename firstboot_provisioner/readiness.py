from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from .models import ReadinessState, WaitOutcome

logger = logging.getLogger(__name__)

ReadinessCheck = Callable[[], ReadinessState]


@dataclass(frozen=True)
class BackoffPolicy:
    """Bounded retry policy.

    The delay between attempt k and k+1 is min(base * factor**(k-1), cap);
    factor=2 doubles, factor=1 is a fixed interval.
    """

    max_attempts: int
    base_delay_s: float
    cap_s: float
    factor: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay_s < 0 or self.cap_s < 0:
            raise ValueError("delays must be >= 0")
        if self.factor < 1:
            raise ValueError("factor must be >= 1")

    def delay(self, attempt: int) -> float:
        return min(self.base_delay_s * (self.factor ** (attempt - 1)), self.cap_s)

    @classmethod
    def fixed(cls, max_attempts: int, interval_s: float) -> "BackoffPolicy":
        return cls(max_attempts=max_attempts, base_delay_s=interval_s, cap_s=interval_s, factor=1.0)


def all_of(*checks: ReadinessCheck) -> ReadinessCheck:
    """Combine checks; the first not-ready state is reported."""

    def check() -> ReadinessState:
        reasons = []
        for c in checks:
            state = c()
            if not state.ready:
                return state
            reasons.append(state.reason)
        return ReadinessState(True, "; ".join(reasons))

    return check


class ReadinessProber:
    def __init__(
        self,
        check: ReadinessCheck,
        policy: BackoffPolicy,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.check = check
        self.policy = policy
        self._sleep = sleep

    def probe(self) -> ReadinessState:
        try:
            return self.check()
        except Exception as e:
            logger.info("Readiness probe raised %s: %s", type(e).__name__, e)
            return ReadinessState(False, f"probe error: {e}")

    def wait_until_ready(self) -> WaitOutcome:
        """Probe up to max_attempts times. Timing out is not an error."""

        attempts = self.policy.max_attempts
        for attempt in range(1, attempts + 1):
            state = self.probe()
            if state.ready:
                logger.info("Ready after %d attempt(s): %s", attempt, state.reason)
                return WaitOutcome.READY
            if attempt == attempts:
                logger.info("Not ready after %d attempt(s): %s", attempt, state.reason)
                break
            delay = self.policy.delay(attempt)
            logger.info("Not ready (%s), attempt %d/%d, retrying in %.0fs", state.reason, attempt, attempts, delay)
            self._sleep(delay)
        return WaitOutcome.TIMED_OUT
