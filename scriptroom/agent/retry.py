import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, List, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from scriptroom.errors import TransientProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_EXHAUSTED = object()


class RetryState(str, Enum):
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    DEGRADED = "degraded"  # transient failures exhausted every attempt
    FAILED = "failed"  # non-transient failure, no retry


@dataclass
class RetryOutcome(Generic[T]):
    state: RetryState
    value: Optional[T] = None
    error: Optional[BaseException] = None
    attempts: int = 0
    delays: List[float] = field(default_factory=list)


class RetryPolicy:
    """
    Attempt/delay state machine for the first model call of a cycle.

    ATTEMPTING(n) moves to SUCCEEDED on a value, to FAILED on any non-transient
    error, and on a transient error either waits ``base_delay ** n`` seconds and
    goes to ATTEMPTING(n+1) or, when n == max_attempts, to DEGRADED.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 2.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._sleep = sleep

    def next_state(self, attempt: int, error: Optional[BaseException]) -> RetryState:
        if error is None:
            return RetryState.SUCCEEDED
        if not isinstance(error, TransientProviderError):
            return RetryState.FAILED
        if attempt >= self.max_attempts:
            return RetryState.DEGRADED
        return RetryState.ATTEMPTING

    async def run(self, operation: Callable[[], Awaitable[T]]) -> RetryOutcome[T]:
        outcome: RetryOutcome[T] = RetryOutcome(state=RetryState.ATTEMPTING)

        async def attempt() -> T:
            outcome.attempts += 1
            return await operation()

        async def sleep(delay: float) -> None:
            logger.warning(f"Rate limit hit, retrying in {delay}s (attempt {outcome.attempts}/{self.max_attempts})")
            outcome.delays.append(delay)
            await self._sleep(delay)

        def exhausted(state: RetryCallState) -> Any:
            outcome.error = state.outcome.exception()
            return _EXHAUSTED

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            # multiplier * exp_base ** (n - 1) == base_delay ** n
            wait=wait_exponential(multiplier=self.base_delay, exp_base=self.base_delay),
            retry=retry_if_exception_type(TransientProviderError),
            sleep=sleep,
            retry_error_callback=exhausted,
        )
        try:
            value = await retrying(attempt)
        except Exception as e:
            outcome.error = e
        else:
            if value is not _EXHAUSTED:
                outcome.value = value

        outcome.state = self.next_state(outcome.attempts, outcome.error)
        if outcome.state is RetryState.DEGRADED:
            logger.warning(f"Max retries reached after {outcome.attempts} attempts: {outcome.error}")
        elif outcome.state is RetryState.FAILED:
            logger.error(f"Model call failed (not retried): {outcome.error!r}")
        return outcome
