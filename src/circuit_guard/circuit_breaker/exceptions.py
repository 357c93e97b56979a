"""Circuit breaker exceptions.

Callers can distinguish between:
  - Invalid breaker configuration (``CircuitArgumentError``).
  - A call being rejected because the circuit is open (``CircuitOpenError``).

Errors raised by the protected operation itself are never wrapped.
"""

_NO_CAUSE_MESSAGE = "Service is not available"


class CircuitBreakerError(Exception):
    """Base exception for the circuit breaker package.

    Attributes:
        cause: Underlying error that explains this one, if any.
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause
        self.__cause__ = cause

    @property
    def message(self) -> str:
        return str(self)

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-friendly description, including the cause chain."""
        cause = self.cause
        if cause is None:
            cause_payload: dict[str, object] | None = None
        elif isinstance(cause, CircuitBreakerError):
            cause_payload = cause.to_dict()
        else:
            cause_payload = {"name": type(cause).__name__, "message": str(cause)}
        return {
            "name": type(self).__name__,
            "message": self.message,
            "cause": cause_payload,
        }


class CircuitArgumentError(CircuitBreakerError, ValueError):
    """Raised when a breaker is configured with invalid values."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class CircuitOpenError(CircuitBreakerError):
    """Raised when a call is rejected because the circuit is open.

    The failure that last tripped the breaker is kept as ``cause`` so callers
    can tell "service is circuit-broken" apart from "service call failed".
    """

    def __init__(self, cause: BaseException | None = None) -> None:
        """Initialize a circuit-open exception payload.

        Args:
            cause: Most recent operation failure seen by the breaker.
        """
        reason = _NO_CAUSE_MESSAGE if cause is None else str(cause)
        super().__init__(f"Circuit breaker is open caused by: {reason}", cause)
