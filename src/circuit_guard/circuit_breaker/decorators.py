"""Adapters that put one shared breaker in front of an async callable."""

import functools
import inspect
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

from circuit_guard.circuit_breaker.breaker import CircuitBreaker, CircuitBreakerConfig
from circuit_guard.circuit_breaker.exceptions import CircuitArgumentError
from circuit_guard.circuit_breaker.metrics import StateChangeCallback
from circuit_guard.logging import StructuredLogger

T = TypeVar("T")
P = ParamSpec("P")


def _callable_name(func: Callable[..., object]) -> str:
    callable_name = getattr(func, "__qualname__", None)
    if callable_name is None:
        callable_name = getattr(func, "__name__", None)
    if callable_name is None:
        callable_name = func.__class__.__qualname__
    return str(callable_name)


def _awaiting(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
    """Adapt ``func`` so a non-awaitable return value is reported as misuse."""

    async def _call(*args: P.args, **kwargs: P.kwargs) -> T:
        outcome = func(*args, **kwargs)
        if not inspect.isawaitable(outcome):
            raise CircuitArgumentError(
                f"{_callable_name(func)} returned {type(outcome).__name__}, "
                "expected an awaitable"
            )
        return await outcome

    return _call


def with_circuit_breaker(
    func: Callable[P, Awaitable[T]],
    config: CircuitBreakerConfig | None = None,
    *,
    name: str | None = None,
    on_state_change: StateChangeCallback | None = None,
    logger: StructuredLogger | None = None,
) -> Callable[P, Awaitable[T]]:
    """Return ``func`` gated by a breaker shared across all of its calls.

    The returned coroutine function keeps the signature and metadata of
    ``func``. The breaker is exposed as its ``circuit_breaker`` attribute.
    ``func`` may be an ``async def`` function or any callable returning an
    awaitable.

    Args:
        func: Callable returning an awaitable, to protect.
        config: Breaker configuration. Defaults to ``CircuitBreakerConfig()``.
        name: Breaker name. Defaults to the qualified name of ``func``.
        on_state_change: Optional observer called once per transition.
        logger: Structured logger handed to the breaker.

    Raises:
        CircuitArgumentError: When ``func`` is not callable. A call whose
            ``func`` returns something other than an awaitable fails with
            ``CircuitArgumentError`` and counts as a breaker failure.
    """
    if not callable(func):
        raise CircuitArgumentError(f"{func!r} must be callable to be protected")

    breaker = CircuitBreaker(
        _callable_name(func) if name is None else name,
        config=config,
        on_state_change=on_state_change,
        logger=logger,
    )

    operation = func if inspect.iscoroutinefunction(func) else _awaiting(func)

    @functools.wraps(func)
    async def _guarded(*args: P.args, **kwargs: P.kwargs) -> T:
        return await breaker.execute(operation, *args, **kwargs)

    _guarded.circuit_breaker = breaker  # type: ignore[attr-defined]
    return _guarded


def circuit_breaker(
    config: CircuitBreakerConfig | None = None,
    *,
    name: str | None = None,
    on_state_change: StateChangeCallback | None = None,
    logger: StructuredLogger | None = None,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorate an async function or method with a circuit breaker.

    The breaker is created once, when the decorator is applied. For methods
    this means every instance of the class shares the same breaker.
    """

    def _decorate(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        return with_circuit_breaker(
            func,
            config,
            name=name,
            on_state_change=on_state_change,
            logger=logger,
        )

    return _decorate
