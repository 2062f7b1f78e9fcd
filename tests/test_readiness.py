from __future__ import annotations

from typing import List

import pytest

from firstboot_provisioner.models import ReadinessState, WaitOutcome
from firstboot_provisioner.readiness import BackoffPolicy, ReadinessProber, all_of


class _CountingCheck:
    def __init__(self, ready_on: int = 0) -> None:
        self.calls = 0
        self.ready_on = ready_on

    def __call__(self) -> ReadinessState:
        self.calls += 1
        if self.ready_on and self.calls >= self.ready_on:
            return ReadinessState(True, "up")
        return ReadinessState(False, "down")


def test_timeout_after_exactly_max_attempts_with_capped_doubling() -> None:
    check = _CountingCheck()
    delays: List[float] = []
    policy = BackoffPolicy(max_attempts=8, base_delay_s=2, cap_s=60, factor=2)
    prober = ReadinessProber(check, policy, sleep=delays.append)

    assert prober.wait_until_ready() is WaitOutcome.TIMED_OUT
    assert check.calls == 8
    # One sleep between consecutive probes, none after the last.
    assert delays == [2, 4, 8, 16, 32, 60, 60]
    assert delays == [min(2 * 2 ** (k - 1), 60) for k in range(1, 8)]


def test_network_policy_defaults_cap_at_sixty() -> None:
    policy = BackoffPolicy(max_attempts=30, base_delay_s=2, cap_s=60, factor=2)
    assert policy.delay(1) == 2
    assert policy.delay(5) == 32
    assert policy.delay(6) == 60
    assert policy.delay(29) == 60


def test_fixed_policy_uses_constant_interval() -> None:
    check = _CountingCheck()
    delays: List[float] = []
    prober = ReadinessProber(check, BackoffPolicy.fixed(12, 10), sleep=delays.append)

    assert prober.wait_until_ready() is WaitOutcome.TIMED_OUT
    assert check.calls == 12
    assert delays == [10] * 11


def test_ready_stops_probing() -> None:
    check = _CountingCheck(ready_on=3)
    delays: List[float] = []
    prober = ReadinessProber(check, BackoffPolicy(max_attempts=10, base_delay_s=1, cap_s=5), sleep=delays.append)

    assert prober.wait_until_ready() is WaitOutcome.READY
    assert check.calls == 3
    assert delays == [1, 2]


def test_probe_converts_exceptions_to_not_ready() -> None:
    def boom() -> ReadinessState:
        raise OSError("bus gone")

    prober = ReadinessProber(boom, BackoffPolicy.fixed(1, 0), sleep=lambda _: None)
    state = prober.probe()
    assert not state.ready
    assert "bus gone" in state.reason


def test_all_of_reports_first_failing_check() -> None:
    up = lambda: ReadinessState(True, "network reachable")  # noqa: E731
    down = lambda: ReadinessState(False, "no session bus address")  # noqa: E731

    assert all_of(up, down)().reason == "no session bus address"
    combined = all_of(up, up)()
    assert combined.ready
    assert combined.reason == "network reachable; network reachable"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_attempts": 0, "base_delay_s": 1, "cap_s": 1},
        {"max_attempts": 1, "base_delay_s": -1, "cap_s": 1},
        {"max_attempts": 1, "base_delay_s": 1, "cap_s": 1, "factor": 0.5},
    ],
)
def test_policy_rejects_invalid_values(kwargs) -> None:
    with pytest.raises(ValueError):
        BackoffPolicy(**kwargs)
