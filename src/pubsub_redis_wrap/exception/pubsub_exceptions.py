"""Custom exceptions for the pub/sub facade.

All custom exceptions inherit from PubSubException for consistent error handling.
"""

from typing import Any, Dict, Optional


class PubSubException(Exception):
    """Base exception for all pub/sub facade errors."""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        """Initialize pub/sub exception.

        Args:
            message: Human-readable error message
            code: Error code for programmatic handling
            details: Additional error context
        """
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)


class InvalidArgumentError(PubSubException):
    """A required argument is missing or has an unsupported type."""

    def __init__(self, message: str, argument: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if argument:
            details["argument"] = argument

        super().__init__(
            message=message,
            code="INVALID_ARGUMENT",
            details=details,
            **kwargs,
        )


class TransportError(PubSubException):
    """Redis was unreachable or rejected a command."""

    def __init__(self, message: str, command: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if command:
            details["command"] = command

        super().__init__(
            message=message,
            code="TRANSPORT_ERROR",
            details=details,
            **kwargs,
        )


class ClientClosedError(PubSubException):
    """Operation attempted on a facade that has been closed."""

    def __init__(self, message: str = "Pub/sub client is closed", **kwargs):
        super().__init__(message=message, code="CLIENT_CLOSED", **kwargs)
