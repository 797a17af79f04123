"""Circuit breaker exceptions.

Callers can distinguish between:
  - A call being rejected because the circuit is open.
  - A call exceeding its deadline.
Any other exception raised by ``CircuitBreaker.run`` is the command's own.
"""


class CircuitBreakerError(Exception):
    """Base exception for the circuit breaker package."""


class CircuitOpenError(CircuitBreakerError):
    """Raised when a call is rejected because the circuit is open.

    Attributes:
        breaker_name: Name of the breaker rejecting the call.
    """

    def __init__(self, breaker_name: str) -> None:
        self.breaker_name = breaker_name
        super().__init__(f"circuit_open: {breaker_name}")


class CircuitTimeoutError(CircuitBreakerError):
    """Raised when a command does not settle before its deadline.

    Attributes:
        breaker_name: Name of the breaker that timed the call out.
        timeout: Deadline in seconds that was exceeded.
    """

    def __init__(self, breaker_name: str, timeout: float) -> None:
        """Initialize a timeout exception payload.

        Args:
            breaker_name: Breaker running the call.
            timeout: Deadline in seconds applied to the call.
        """
        self.breaker_name = breaker_name
        self.timeout = timeout
        super().__init__(f"circuit_timeout: {breaker_name} timeout={timeout:g}s")


class CommandFailedError(Exception):
    """Failure reported through a callback-style command without an exception.

    Attributes:
        reason: Value passed to the failure callback, possibly ``None``.
    """

    def __init__(self, reason: object = None) -> None:
        self.reason = reason
        super().__init__(f"command_failed: {reason!r}")
