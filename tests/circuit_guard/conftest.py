from __future__ import annotations

import pytest

import circuit_guard.circuit_breaker.breaker as breaker_mod
from tests.circuit_guard.support.fakes import (
    CountingOperation,
    FakeClock,
    FakeLogger,
    RecordingObserver,
)


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def fake_clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    """Drive breaker timestamps from a manually advanced clock."""
    clock = FakeClock()
    monkeypatch.setattr(breaker_mod, "_utcnow", clock.now)
    return clock


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def operation() -> CountingOperation:
    return CountingOperation()
