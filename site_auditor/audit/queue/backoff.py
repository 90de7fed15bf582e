"""Retry policy with capped exponential backoff and full jitter.

Errors are classified by a pure function into transient or fatal; transient
failures are retried with a delay drawn from ``[base, cap]`` where the cap
doubles per attempt up to a ceiling, unless the error text carries an
explicit server-suggested wait.
"""

import asyncio
import logging
import random
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar('T')

DEFAULT_MAX_DELAY_MS = 60000

TRANSIENT_MARKERS = (
    '503',
    '429',
    '500',
    'overloaded',
    'quota',
    'resource_exhausted',
    'unavailable',
    'timeout',
    'timed out',
    'internal error',
    'fetch failed',
    'epipe',
    'econnreset',
    'connection reset',
)

_SERVER_DELAY_PATTERNS = (
    re.compile(r'retry in (\d+(?:\.\d+)?)s', re.IGNORECASE),
    re.compile(r'retry-after.*?(\d+(?:\.\d+)?)', re.IGNORECASE),
)


class ErrorClass(Enum):
    """Retry classification of an error."""
    TRANSIENT = "transient"
    FATAL = "fatal"


class AttemptOutcome(Enum):
    """What the retry loop does after a failed attempt."""
    RETRY = "retry"
    GIVE_UP_FATAL = "give_up_fatal"
    GIVE_UP_EXHAUSTED = "give_up_exhausted"


@dataclass
class RetryState:
    """Per-invocation retry bookkeeping; never shared between operations."""
    attempt: int = 0
    last_delay_ms: Optional[float] = None


def error_text(error: BaseException) -> str:
    """Message used for classification, falling back to the type name."""
    text = str(error)
    return text if text else type(error).__name__


def classify_error(error: BaseException) -> ErrorClass:
    """Classify an error as transient or fatal from its type and message."""
    if isinstance(error, (asyncio.TimeoutError, ConnectionError)):
        return ErrorClass.TRANSIENT
    text = error_text(error).lower()
    if any(marker in text for marker in TRANSIENT_MARKERS):
        return ErrorClass.TRANSIENT
    return ErrorClass.FATAL


def parse_server_delay(message: str) -> Optional[float]:
    """Extract a server-suggested wait in milliseconds, if present."""
    for pattern in _SERVER_DELAY_PATTERNS:
        match = pattern.search(message or '')
        if match:
            return float(match.group(1)) * 1000
    return None


def compute_delay(
    attempt: int,
    base_delay_ms: float,
    max_delay_ms: float = DEFAULT_MAX_DELAY_MS,
    rng: Optional[random.Random] = None
) -> float:
    """Full-jitter delay with a floor of ``base_delay_ms``.

    Args:
        attempt: 1-based number of the attempt that just failed
        base_delay_ms: Base delay and lower bound
        max_delay_ms: Ceiling for the exponential cap
        rng: Random source (module random when omitted)

    Returns:
        Delay in milliseconds within ``[base_delay_ms, max(cap, base_delay_ms)]``
    """
    draw = (rng or random).random
    cap = min(max_delay_ms, base_delay_ms * (2 ** (attempt - 1)))
    delay = float(int(draw() * cap))
    if delay < base_delay_ms:
        delay = base_delay_ms + draw() * 1000
    return min(delay, max(cap, base_delay_ms))


async def _sleep_ms(delay_ms: float) -> None:
    await asyncio.sleep(delay_ms / 1000)


class RetryPolicy:
    """Re-executes an async operation on transient failures."""

    def __init__(
        self,
        max_attempts: int = 10,
        base_delay_ms: float = 2000,
        max_delay_ms: float = DEFAULT_MAX_DELAY_MS,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        rng: Optional[random.Random] = None,
        classifier: Callable[[BaseException], ErrorClass] = classify_error
    ):
        """Initialize retry policy.

        Args:
            max_attempts: Retries allowed after the first invocation
            base_delay_ms: Base backoff delay
            max_delay_ms: Ceiling for the backoff cap
            sleep: Awaitable taking a delay in milliseconds
            rng: Random source for jitter
            classifier: Error classification function
        """
        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms
        self.max_delay_ms = max_delay_ms
        self._sleep = sleep or _sleep_ms
        self._rng = rng
        self._classifier = classifier

    def decide(self, state: RetryState, error: BaseException) -> AttemptOutcome:
        """Decide the next step after ``state.attempt`` failed with ``error``."""
        if self._classifier(error) is ErrorClass.FATAL:
            return AttemptOutcome.GIVE_UP_FATAL
        if state.attempt > self.max_attempts:
            return AttemptOutcome.GIVE_UP_EXHAUSTED
        return AttemptOutcome.RETRY

    def next_delay(self, state: RetryState, error: BaseException) -> float:
        server_delay = parse_server_delay(error_text(error))
        if server_delay is not None:
            return server_delay + 1000
        return compute_delay(state.attempt, self.base_delay_ms, self.max_delay_ms, self._rng)

    async def run(self, operation: Callable[[], Awaitable[T]], name: str = "operation") -> T:
        """Invoke ``operation`` until it succeeds or the policy gives up.

        At most ``max_attempts + 1`` invocations are made; attempts never
        overlap.

        Raises:
            The last error raised by ``operation``
        """
        state = RetryState()
        while True:
            state.attempt += 1
            try:
                return await operation()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                outcome = self.decide(state, e)
                message = error_text(e)
                if outcome is not AttemptOutcome.RETRY:
                    logger.error(
                        f"{name} failed permanently on attempt {state.attempt} "
                        f"({outcome.value}): {message[:300]}"
                    )
                    raise

                delay = self.next_delay(state, e)
                state.last_delay_ms = delay
                logger.warning(
                    f"{name} failed (attempt {state.attempt}/{self.max_attempts}), "
                    f"retrying in {delay / 1000:.2f}s: {message[:150]}"
                )
                await self._sleep(delay)
