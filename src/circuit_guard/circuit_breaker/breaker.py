"""Core circuit breaker implementation."""

import sys
import threading
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import ParamSpec, Self, TypeVar

from circuit_guard.circuit_breaker.exceptions import (
    CircuitArgumentError,
    CircuitOpenError,
)
from circuit_guard.circuit_breaker.metrics import StateChangeCallback
from circuit_guard.circuit_breaker.state import BreakerMetrics, CircuitState
from circuit_guard.logging import (
    StructuredLogger,
    get_logger,
    log_exception,
    log_info,
    log_warning,
)

T = TypeVar("T")
P = ParamSpec("P")


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _require_positive_int(field_name: str, value: object) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise CircuitArgumentError(f"{field_name} must be an integer")
    if value <= 0:
        raise CircuitArgumentError(f"{field_name} must be greater than 0")


class _StateGuard:
    """Serialize check-then-act sections when the GIL is disabled.

    With the GIL enabled the event loop already runs each section without
    interleaving, so no lock is taken.
    """

    def __init__(self) -> None:
        is_gil_enabled = getattr(sys, "_is_gil_enabled", None)
        self._gil_enabled = True if is_gil_enabled is None else bool(is_gil_enabled())
        self._thread_lock: threading.Lock | None = None
        if not self._gil_enabled:
            self._thread_lock = threading.Lock()

    @contextmanager
    def hold(self) -> Iterator[None]:
        if self._thread_lock is None:
            yield
            return
        with self._thread_lock:
            yield


@dataclass(frozen=True, slots=True)
class _Transition:
    old: CircuitState
    new: CircuitState
    error: BaseException | None


@dataclass(slots=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration values.

    Attributes:
        failure_threshold: Failures required while ``CLOSED`` before opening.
        success_threshold: Successes required while ``HALF_OPEN`` before
            closing again.
        duration_of_break_ms: Milliseconds after the last failure before an
            ``OPEN`` breaker lets a probe call through.
    """

    failure_threshold: int = 5
    success_threshold: int = 2
    duration_of_break_ms: int = 30_000

    def __post_init__(self) -> None:
        _require_positive_int("failure_threshold", self.failure_threshold)
        _require_positive_int("success_threshold", self.success_threshold)
        _require_positive_int("duration_of_break_ms", self.duration_of_break_ms)

    @property
    def duration_of_break(self) -> timedelta:
        return timedelta(milliseconds=self.duration_of_break_ms)


class CircuitBreaker:
    """Stateful gate around a dangerous async operation.

    ``CLOSED`` lets calls through and counts failures. Once
    ``failure_threshold`` failures accumulate the breaker turns ``OPEN`` and
    rejects calls with ``CircuitOpenError`` without invoking the operation.
    The first call made ``duration_of_break_ms`` after the last failure moves
    the breaker to ``HALF_OPEN``; from there ``success_threshold`` successes
    close it and a single failure opens it again.

    Recovery is checked lazily on each call; there is no background timer.
    """

    def __init__(
        self,
        name: str = "default",
        *,
        config: CircuitBreakerConfig | None = None,
        on_state_change: StateChangeCallback | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        """Build a circuit breaker.

        Args:
            name: Breaker name used in log events.
            config: Breaker behavior configuration. Defaults to
                ``CircuitBreakerConfig()``.
            on_state_change: Optional observer called once per transition.
            logger: Structured logger. Defaults to a structlog logger.
        """
        self.name = name
        self.config = CircuitBreakerConfig() if config is None else config
        self._on_state_change = on_state_change
        self._logger = get_logger(__name__) if logger is None else logger
        self._guard = _StateGuard()

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_error: BaseException | None = None
        self._last_failure_time: datetime | None = None
        self._last_state_change_time = _utcnow()

        self._total_calls = 0
        self._successful_calls = 0
        self._failed_calls = 0
        self._rejected_calls = 0

    def on_state_change(self, callback: StateChangeCallback | None) -> Self:
        """Register (or clear) the transition observer and return ``self``."""
        self._on_state_change = callback
        return self

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def success_count(self) -> int:
        return self._success_count

    @property
    def last_error(self) -> BaseException | None:
        return self._last_error

    @property
    def last_failure_time(self) -> datetime | None:
        return self._last_failure_time

    @property
    def last_state_change_time(self) -> datetime:
        return self._last_state_change_time

    @property
    def metrics(self) -> BreakerMetrics:
        """Snapshot of cumulative counters and timing bookkeeping."""
        with self._guard.hold():
            return BreakerMetrics(
                total_calls=self._total_calls,
                successful_calls=self._successful_calls,
                failed_calls=self._failed_calls,
                rejected_calls=self._rejected_calls,
                current_state=self._state,
                last_failure_time=self._last_failure_time,
                last_state_change_time=self._last_state_change_time,
            )

    def _transition(
        self, new: CircuitState, error: BaseException | None = None
    ) -> _Transition | None:
        old = self._state
        if old == new:
            return None
        self._state = new
        self._last_state_change_time = _utcnow()
        return _Transition(old=old, new=new, error=error)

    def _notify(self, transition: _Transition | None) -> None:
        if transition is None:
            return

        fields: dict[str, object] = {
            "breaker": self.name,
            "old_state": transition.old.value,
            "new_state": transition.new.value,
        }
        if transition.error is not None:
            fields["error"] = str(transition.error)
            fields["error_type"] = type(transition.error).__name__
        if transition.new == CircuitState.OPEN:
            log_warning(self._logger, "circuit_breaker.state_changed", **fields)
        else:
            log_info(self._logger, "circuit_breaker.state_changed", **fields)

        callback = self._on_state_change
        if callback is None:
            return
        try:
            callback(transition.new, transition.error)
        except Exception:
            log_exception(
                self._logger,
                "circuit_breaker.observer_failed",
                breaker=self.name,
                new_state=transition.new.value,
            )

    def _recovery_due(self, now: datetime) -> bool:
        if self._last_failure_time is None:
            return True
        return now >= self._last_failure_time + self.config.duration_of_break

    def _admit(self) -> None:
        """Apply the recovery probe check and the open gate for one call."""
        with self._guard.hold():
            transition = None
            if self._state == CircuitState.OPEN and self._recovery_due(_utcnow()):
                transition = self._transition(CircuitState.HALF_OPEN)
                self._success_count = 0

            self._total_calls += 1
            rejection = None
            if self._state == CircuitState.OPEN:
                self._rejected_calls += 1
                rejection = CircuitOpenError(self._last_error)

        self._notify(transition)
        if rejection is not None:
            log_info(self._logger, "circuit_breaker.call_rejected", breaker=self.name)
            raise rejection

    def _record_success(self) -> None:
        with self._guard.hold():
            self._successful_calls += 1
            transition = None
            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                if self._success_count >= self.config.success_threshold:
                    transition = self._transition(CircuitState.CLOSED)
                    self._failure_count = 0
                    self._success_count = 0
                    self._last_error = None

        self._notify(transition)

    def _record_failure(self, exc: Exception) -> None:
        with self._guard.hold():
            self._failed_calls += 1
            self._last_error = exc
            self._last_failure_time = _utcnow()
            transition = None
            if self._state == CircuitState.CLOSED:
                self._failure_count += 1
                if self._failure_count >= self.config.failure_threshold:
                    transition = self._transition(CircuitState.OPEN, exc)
                    self._failure_count = 0
            elif self._state == CircuitState.HALF_OPEN:
                transition = self._transition(CircuitState.OPEN, exc)
                self._failure_count = 0
                self._success_count = 0

        self._notify(transition)

    def _record_interrupted(self) -> None:
        with self._guard.hold():
            self._failed_calls += 1

    async def execute(
        self,
        operation: Callable[P, Awaitable[T]],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        """Invoke an async callable under circuit breaker protection.

        Args:
            operation: Dangerous async callable to execute. It is invoked at
                most once per call.
            *args: Positional arguments forwarded to ``operation``.
            **kwargs: Keyword arguments forwarded to ``operation``.

        Returns:
            The result of ``operation``, unchanged.

        Raises:
            CircuitOpenError: When the circuit is open and the call is rejected.
            Exception: The original exception from ``operation``, unchanged.
                Cancellation and other ``BaseException``s also propagate; they
                count in ``failed_calls`` but never move the state machine.
        """
        self._admit()

        try:
            result = await operation(*args, **kwargs)
        except Exception as exc:
            self._record_failure(exc)
            raise
        except BaseException:
            self._record_interrupted()
            log_info(
                self._logger, "circuit_breaker.call_interrupted", breaker=self.name
            )
            raise
        else:
            self._record_success()
            return result
