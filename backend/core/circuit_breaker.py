"""Per-service circuit breaker registry.

State machine per service key:

    CLOSED --(failure_threshold consecutive failures)--> OPEN
    OPEN --(reset_timeout elapsed, next call)--> HALF_OPEN (one trial call)
    HALF_OPEN --success--> CLOSED (failures reset to 0)
    HALF_OPEN --failure--> OPEN (timer restarted)

All reads and writes of a service's state go through ``_transition`` under
one lock, so concurrent callers (threads or asyncio tasks) never interleave a
read-modify-write. The wrapped operation itself runs outside the lock.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Awaitable, Callable, TypeVar

from core.errors import BreakerOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_FAILURE_THRESHOLD = 5
DEFAULT_RESET_TIMEOUT = 60.0  # seconds


class BreakerState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class _Event(str, Enum):
    BEFORE_CALL = "before_call"
    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"


@dataclass
class _ServiceState:
    state: BreakerState = BreakerState.CLOSED
    consecutive_failures: int = 0
    next_retry_at: float = 0.0  # clock() seconds
    trial_in_flight: bool = False


@dataclass(frozen=True)
class BreakerStatus:
    """Read-only snapshot of one service's breaker."""

    state: BreakerState
    consecutive_failures: int
    next_retry_at: float | None


class CircuitBreaker:
    """Owned registry of breaker state keyed by service name."""

    def __init__(
        self,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        reset_timeout: float = DEFAULT_RESET_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self._states: dict[str, _ServiceState] = {}
        self._lock = threading.Lock()

    async def execute(
        self,
        service_key: str,
        operation: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Run ``operation`` through the breaker for ``service_key``.

        Raises:
            BreakerOpenError: circuit is open (or a half-open trial is already
                running); ``operation`` is not invoked
            Exception: whatever ``operation`` raised, after recording the failure
        """
        self._transition(service_key, _Event.BEFORE_CALL)
        try:
            result = await operation()
        except asyncio.CancelledError:
            self._transition(service_key, _Event.CANCELLED)
            raise
        except Exception:
            self._transition(service_key, _Event.FAILURE)
            raise
        self._transition(service_key, _Event.SUCCESS)
        return result

    def status(self, service_key: str) -> BreakerStatus:
        with self._lock:
            st = self._states.get(service_key)
            if st is None:
                return BreakerStatus(BreakerState.CLOSED, 0, None)
            return BreakerStatus(
                state=st.state,
                consecutive_failures=st.consecutive_failures,
                next_retry_at=st.next_retry_at if st.state != BreakerState.CLOSED else None,
            )

    def reset(self, service_key: str) -> None:
        """Force a service back to CLOSED."""
        with self._lock:
            self._states.pop(service_key, None)

    def _transition(self, service_key: str, event: _Event) -> None:
        """The only place breaker state is read and mutated."""
        with self._lock:
            st = self._states.get(service_key)
            if st is None:
                st = self._states[service_key] = _ServiceState()
            now = self._clock()

            if event == _Event.BEFORE_CALL:
                if st.state == BreakerState.OPEN:
                    if now < st.next_retry_at:
                        raise self._open_error(service_key, st.next_retry_at - now)
                    st.state = BreakerState.HALF_OPEN
                    st.trial_in_flight = True
                    logger.info(f"Circuit for {service_key} half-open, allowing trial call")
                elif st.state == BreakerState.HALF_OPEN:
                    if st.trial_in_flight:
                        raise self._open_error(service_key, 0.0)
                    st.trial_in_flight = True

            elif event == _Event.SUCCESS:
                if st.state != BreakerState.CLOSED:
                    logger.info(f"Circuit for {service_key} closed")
                st.state = BreakerState.CLOSED
                st.consecutive_failures = 0
                st.trial_in_flight = False

            elif event == _Event.FAILURE:
                st.consecutive_failures += 1
                was_trial = st.state == BreakerState.HALF_OPEN
                st.trial_in_flight = False
                if was_trial or st.consecutive_failures >= self.failure_threshold:
                    st.state = BreakerState.OPEN
                    st.next_retry_at = now + self.reset_timeout
                    logger.warning(
                        f"Circuit for {service_key} opened after "
                        f"{st.consecutive_failures} consecutive failures"
                    )

            elif event == _Event.CANCELLED:
                # A cancelled trial neither closes nor re-opens the circuit
                st.trial_in_flight = False

    @staticmethod
    def _open_error(service_key: str, remaining: float) -> BreakerOpenError:
        retry_at = datetime.now(timezone.utc) + timedelta(seconds=max(remaining, 0.0))
        return BreakerOpenError(service_key, retry_at)
