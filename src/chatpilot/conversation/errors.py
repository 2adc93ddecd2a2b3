"""
Exception hierarchy for chatpilot conversations.

Every failure that ends a completion cycle or a function dispatch is raised as
a subclass of ``ChatError`` so callers can catch the whole family at once, or
single out ``Aborted`` to skip user-facing error UI after an intentional
``stop()``.
"""

from __future__ import annotations


class ChatError(Exception):
    """Base exception for all chatpilot errors."""


class TransportError(ChatError):
    """Raised when the completion service cannot be reached or fails mid-stream.

    Attributes:
        status_code: HTTP status code from the service, or ``None`` when the
            failure happened below the HTTP layer.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedStreamError(TransportError):
    """Raised when a streamed frame cannot be parsed."""


class Aborted(ChatError):
    """Raised when a cycle ends because ``stop()`` was called."""

    def __init__(self, message: str = "Completion request aborted") -> None:
        super().__init__(message)


class FunctionCallError(ChatError):
    """Base exception for failures while dispatching a function call.

    Attributes:
        function_name: Name of the entry point the model asked for.
    """

    def __init__(self, message: str, function_name: str) -> None:
        super().__init__(message)
        self.function_name = function_name


class ArgumentParseError(FunctionCallError):
    """Raised when function-call arguments are not a JSON object."""


class InvocationError(FunctionCallError):
    """Raised when an entry point's implementation fails."""
