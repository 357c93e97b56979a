"""Observability hooks for circuit breakers."""

from typing import Protocol

from circuit_guard.circuit_breaker.state import CircuitState


class StateChangeCallback(Protocol):
    """Observer invoked synchronously once per actual state transition.

    Notes:
        ``error`` is the failure that triggered the transition when the new
        state is ``OPEN``, and ``None`` for every other transition.
    """

    def __call__(self, state: CircuitState, error: BaseException | None) -> None:
        """Handle a circuit state transition."""
