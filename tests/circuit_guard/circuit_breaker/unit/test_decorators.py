import asyncio
import inspect
from collections.abc import Awaitable

import pytest

from circuit_guard.circuit_breaker import (
    CircuitArgumentError,
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitOpenError,
    CircuitState,
    circuit_breaker,
    with_circuit_breaker,
)
from tests.circuit_guard.support.fakes import FakeLogger, RecordingObserver

pytestmark = pytest.mark.asyncio

_CONFIG = CircuitBreakerConfig(
    failure_threshold=2,
    success_threshold=1,
    duration_of_break_ms=100,
)


def _make_service_class() -> type:
    class _DecoratedService:
        def __init__(self) -> None:
            self.call_count = 0
            self.should_fail = False

        @circuit_breaker(_CONFIG, logger=FakeLogger())
        async def perform_operation(self, data: str) -> str:
            """Pretend to call a remote dependency."""
            self.call_count += 1
            if self.should_fail:
                raise RuntimeError(f"Decorated operation failed for: {data}")
            return f"Decorated success: {data} (call #{self.call_count})"

    return _DecoratedService


async def test_with_circuit_breaker_preserves_calling_convention(
    fake_logger: FakeLogger,
) -> None:
    async def fetch(user_id: int, *, verbose: bool = False) -> dict[str, object]:
        """Fetch a user."""
        return {"id": user_id, "verbose": verbose}

    guarded = with_circuit_breaker(fetch, _CONFIG, logger=fake_logger)

    assert await guarded(7, verbose=True) == {"id": 7, "verbose": True}
    assert guarded.__name__ == "fetch"
    assert guarded.__doc__ == "Fetch a user."
    assert inspect.iscoroutinefunction(guarded)


async def test_with_circuit_breaker_shares_one_breaker_across_calls(
    fake_logger: FakeLogger,
) -> None:
    calls = 0

    async def flaky() -> None:
        nonlocal calls
        calls += 1
        raise ConnectionError("refused")

    guarded = with_circuit_breaker(flaky, _CONFIG, logger=fake_logger)
    breaker = guarded.circuit_breaker  # type: ignore[attr-defined]

    assert isinstance(breaker, CircuitBreaker)
    for _ in range(2):
        with pytest.raises(ConnectionError):
            await guarded()
    with pytest.raises(CircuitOpenError):
        await guarded()

    assert calls == 2
    assert breaker.state == CircuitState.OPEN
    assert breaker.metrics.total_calls == 3


async def test_with_circuit_breaker_names_breaker_after_function(
    fake_logger: FakeLogger,
) -> None:
    async def lookup() -> str:
        return "ok"

    default_named = with_circuit_breaker(lookup, logger=fake_logger)
    custom_named = with_circuit_breaker(lookup, name="geo", logger=fake_logger)

    assert default_named.circuit_breaker.name.endswith("lookup")  # type: ignore[attr-defined]
    assert custom_named.circuit_breaker.name == "geo"  # type: ignore[attr-defined]
    assert default_named.circuit_breaker.config == CircuitBreakerConfig()  # type: ignore[attr-defined]


async def test_with_circuit_breaker_forwards_observer(
    fake_logger: FakeLogger, observer: RecordingObserver
) -> None:
    async def down() -> None:
        raise RuntimeError("down")

    guarded = with_circuit_breaker(
        down, _CONFIG, on_state_change=observer, logger=fake_logger
    )
    for _ in range(2):
        with pytest.raises(RuntimeError):
            await guarded()

    assert observer.states == [CircuitState.OPEN]


async def test_with_circuit_breaker_accepts_async_callable_instance(
    fake_logger: FakeLogger,
) -> None:
    class _AsyncCallable:
        async def __call__(self) -> str:
            return "ok"

    guarded = with_circuit_breaker(_AsyncCallable(), logger=fake_logger)

    assert await guarded() == "ok"
    assert guarded.circuit_breaker.name.endswith("<locals>._AsyncCallable")  # type: ignore[attr-defined]


async def test_with_circuit_breaker_accepts_function_returning_awaitable(
    fake_logger: FakeLogger,
) -> None:
    async def _lookup(key: str) -> str:
        return f"value:{key}"

    def lookup(key: str) -> Awaitable[str]:
        return _lookup(key)

    guarded = with_circuit_breaker(lookup, _CONFIG, logger=fake_logger)

    assert inspect.iscoroutinefunction(guarded)
    assert await guarded("a") == "value:a"
    assert guarded.circuit_breaker.metrics.successful_calls == 1  # type: ignore[attr-defined]


async def test_with_circuit_breaker_counts_non_awaitable_result_as_failure(
    fake_logger: FakeLogger,
) -> None:
    def not_async() -> str:
        return "nope"

    guarded = with_circuit_breaker(not_async, _CONFIG, logger=fake_logger)  # type: ignore[arg-type]

    with pytest.raises(CircuitArgumentError, match="expected an awaitable"):
        await guarded()
    assert guarded.circuit_breaker.metrics.failed_calls == 1  # type: ignore[attr-defined]


async def test_with_circuit_breaker_rejects_non_callable() -> None:
    with pytest.raises(CircuitArgumentError, match="must be callable"):
        with_circuit_breaker("not-a-function")  # type: ignore[arg-type]


async def test_method_decorator_passes_results_and_errors_through() -> None:
    service = _make_service_class()()

    result = await service.perform_operation("test-data")
    assert result == "Decorated success: test-data (call #1)"
    assert service.call_count == 1

    service.should_fail = True
    with pytest.raises(RuntimeError, match="Decorated operation failed for: failing-test"):
        await service.perform_operation("failing-test")


async def test_method_decorator_shares_breaker_across_instances() -> None:
    service_class = _make_service_class()
    breaker = service_class.perform_operation.circuit_breaker
    first = service_class()
    second = service_class()
    first.should_fail = True
    second.should_fail = True

    with pytest.raises(RuntimeError):
        await first.perform_operation("a")
    with pytest.raises(RuntimeError):
        await second.perform_operation("b")
    with pytest.raises(CircuitOpenError):
        await first.perform_operation("c")

    assert first.call_count == 1
    assert second.call_count == 1
    assert breaker.metrics.total_calls == 3

    await asyncio.sleep(0.15)
    second.should_fail = False
    assert await second.perform_operation("d") == "Decorated success: d (call #2)"
    assert breaker.state == CircuitState.CLOSED
