import asyncio

import pytest

from scriptroom.agent.retry import RetryPolicy, RetryState
from scriptroom.errors import PermanentProviderError, TransientProviderError


class _Sleeps:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def _operation(*results):
    queue = list(results)
    calls = {"n": 0}

    async def op():
        calls["n"] += 1
        item = queue.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    return op, calls


def test_succeeds_first_try():
    sleeps = _Sleeps()
    op, calls = _operation("ok")
    outcome = asyncio.run(RetryPolicy(sleep=sleeps).run(op))
    assert outcome.state is RetryState.SUCCEEDED
    assert outcome.value == "ok"
    assert outcome.attempts == 1
    assert sleeps.delays == []


def test_transient_then_success():
    sleeps = _Sleeps()
    op, calls = _operation(TransientProviderError("429"), "ok")
    outcome = asyncio.run(RetryPolicy(sleep=sleeps).run(op))
    assert outcome.state is RetryState.SUCCEEDED
    assert outcome.attempts == 2
    assert sleeps.delays == [2.0]


def test_three_transient_failures_degrade_after_two_delays():
    sleeps = _Sleeps()
    op, calls = _operation(*(TransientProviderError("rate limited") for _ in range(3)))
    outcome = asyncio.run(RetryPolicy(max_attempts=3, base_delay=2.0, sleep=sleeps).run(op))
    assert outcome.state is RetryState.DEGRADED
    assert calls["n"] == 3
    assert sleeps.delays == [2.0, 4.0]
    assert outcome.delays == [2.0, 4.0]
    assert isinstance(outcome.error, TransientProviderError)


def test_permanent_failure_stops_immediately():
    sleeps = _Sleeps()
    op, calls = _operation(PermanentProviderError("bad request"), "never")
    outcome = asyncio.run(RetryPolicy(sleep=sleeps).run(op))
    assert outcome.state is RetryState.FAILED
    assert calls["n"] == 1
    assert sleeps.delays == []


def test_unclassified_error_is_not_retried():
    sleeps = _Sleeps()
    op, calls = _operation(TransientProviderError("429"), KeyError("boom"))
    outcome = asyncio.run(RetryPolicy(sleep=sleeps).run(op))
    assert outcome.state is RetryState.FAILED
    assert outcome.attempts == 2
    assert sleeps.delays == [2.0]


@pytest.mark.parametrize(
    "attempt,error,expected",
    [
        (1, None, RetryState.SUCCEEDED),
        (1, TransientProviderError("x"), RetryState.ATTEMPTING),
        (3, TransientProviderError("x"), RetryState.DEGRADED),
        (1, PermanentProviderError("x"), RetryState.FAILED),
    ],
)
def test_transitions(attempt, error, expected):
    assert RetryPolicy(max_attempts=3).next_state(attempt, error) is expected


def test_rejects_zero_attempts():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)


def test_backoff_is_base_to_the_attempt_number():
    sleeps = _Sleeps()
    op, calls = _operation(*(TransientProviderError("429") for _ in range(4)))
    outcome = asyncio.run(RetryPolicy(max_attempts=4, base_delay=3.0, sleep=sleeps).run(op))
    assert outcome.state is RetryState.DEGRADED
    assert outcome.attempts == 4
    assert sleeps.delays == [3.0, 9.0, 27.0]


def test_single_attempt_degrades_without_sleeping():
    sleeps = _Sleeps()
    op, calls = _operation(TransientProviderError("429"))
    outcome = asyncio.run(RetryPolicy(max_attempts=1, sleep=sleeps).run(op))
    assert outcome.state is RetryState.DEGRADED
    assert sleeps.delays == []


def test_cancellation_is_not_swallowed():
    async def op():
        raise asyncio.CancelledError()

    with pytest.raises(asyncio.CancelledError):
        asyncio.run(RetryPolicy(sleep=_Sleeps()).run(op))
