"""Errors raised by fleet operations.

Every operation fails fast: the first error aborts it and propagates to the
caller. Only the CLI decides how an error maps to an exit status.
"""


class FleetError(Exception):
    """Base class for all errors raised by this package."""


class ResolutionError(FleetError):
    """A cluster, scaling group, instance or tag could not be found."""


class InvariantViolation(FleetError):
    """An AWS response contradicted an assumption the operation relies on."""


class APIError(FleetError):
    """A call to an AWS API failed.

    Args:
        operation: Name of the API operation, e.g. ``DescribeServices``.
        code: AWS error code, or the exception class name for client-side errors.
        message: Human readable error message.
        retryable: Whether repeating the call may succeed.
    """

    def __init__(
        self, operation: str, code: str, message: str, *, retryable: bool = False
    ):
        self.operation = operation
        self.code = code
        self.message = message
        self.retryable = retryable
        super().__init__(f"{operation} failed ({code}): {message}")


class FleetTimeoutError(FleetError, TimeoutError):
    """A polling loop did not reach its goal before its deadline."""


class OperationCancelled(FleetError):
    """The run context was cancelled while an operation was waiting."""
