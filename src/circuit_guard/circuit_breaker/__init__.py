"""Framework-agnostic async circuit breaker.

This package implements the circuit breaker pattern from *Release It!*.

Key behavior notes:
  - State lives in one ``CircuitBreaker`` instance and is never shared across
    processes.
  - The ``OPEN`` to ``HALF_OPEN`` recovery probe is lazy: it is evaluated on the
    next call once ``duration_of_break_ms`` has passed since the last failure.
  - ``HALF_OPEN`` tolerates no failure; ``success_threshold`` successes close
    the circuit again.
  - Every error raised by the protected operation counts as a failure and is
    re-raised unchanged. Only rejections produce ``CircuitOpenError``.
"""

from circuit_guard.circuit_breaker.breaker import CircuitBreaker, CircuitBreakerConfig
from circuit_guard.circuit_breaker.decorators import (
    circuit_breaker,
    with_circuit_breaker,
)
from circuit_guard.circuit_breaker.exceptions import (
    CircuitArgumentError,
    CircuitBreakerError,
    CircuitOpenError,
)
from circuit_guard.circuit_breaker.metrics import StateChangeCallback
from circuit_guard.circuit_breaker.state import BreakerMetrics, CircuitState

__all__ = [
    "BreakerMetrics",
    "CircuitArgumentError",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitOpenError",
    "CircuitState",
    "StateChangeCallback",
    "circuit_breaker",
    "with_circuit_breaker",
]
