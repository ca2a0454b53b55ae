"""
Reliability Utilities.

Includes Circuit Breaker pattern and bounded retry for best-effort side effects.
"""

import time
import asyncio
import logging
from typing import Awaitable, Callable, Any, Tuple, Type

logger = logging.getLogger(__name__)


class CircuitOpenError(Exception):
    pass


class CircuitBreaker:
    """
    Simple Circuit Breaker implementation.
    If 'failure_threshold' failures occur within 'reset_timeout',
    the circuit opens and rejects calls for 'reset_timeout' seconds.
    """
    def __init__(self, failure_threshold: int = 5, reset_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.failures = 0
        self.last_failure_time = 0
        self.state = "CLOSED"  # CLOSED, OPEN, HALF_OPEN

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        if self.state == "OPEN":
            if time.time() - self.last_failure_time > self.reset_timeout:
                self.state = "HALF_OPEN"
            else:
                raise CircuitOpenError("Circuit is OPEN")

        try:
            result = await func(*args, **kwargs)
            if self.state == "HALF_OPEN":
                self.reset_state()
            return result
        except Exception:
            self.record_failure()
            raise

    def record_failure(self):
        self.failures += 1
        self.last_failure_time = time.time()
        if self.failures >= self.failure_threshold:
            self.state = "OPEN"

    def reset_state(self):
        self.failures = 0
        self.state = "CLOSED"


async def retry_async(
    func: Callable[[], Awaitable[Any]],
    attempts: int = 3,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    base_delay: float = 0.0,
) -> Any:
    """
    Await `func` up to `attempts` times, retrying only on `retry_on` errors.

    Delay doubles after each failed attempt. The last error is re-raised.
    """
    for attempt in range(1, attempts + 1):
        try:
            return await func()
        except retry_on as exc:
            if attempt >= attempts:
                raise
            logger.warning(
                "Attempt %d/%d failed: %s: %s", attempt, attempts, type(exc).__name__, exc
            )
            if base_delay:
                await asyncio.sleep(base_delay * 2 ** (attempt - 1))


# Global instance for meeting provider calls
meeting_circuit_breaker = CircuitBreaker(failure_threshold=5, reset_timeout=60)
