"""
Exception hierarchy for the Skincrib merchant client.
"""

from typing import Any, Optional


class SkincribError(Exception):
    """Base exception for all Skincrib client errors."""
    pass


class ConfigurationError(SkincribError):
    """Missing or invalid client configuration."""
    pass


class ValidationError(SkincribError):
    """A caller-supplied argument is missing or malformed.

    Raised before anything is sent to the server.
    """
    pass


class NotAuthenticatedError(SkincribError):
    """Operation attempted before a successful authenticate() call."""

    def __init__(self, message: str = "You must authenticate to the websocket first."):
        super().__init__(message)


class AuthenticationError(SkincribError):
    """The server rejected the API key."""
    pass


class RemoteOperationError(SkincribError):
    """The server answered a request with an error."""

    def __init__(self, message: str, event: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.event = event


class RequestTimeoutError(RemoteOperationError):
    """No acknowledgement arrived for a request within its timeout."""
    pass


class TransportError(SkincribError):
    """The underlying socket channel failed."""
    pass


def error_message(error: Any) -> str:
    """Extract a human-readable message from a server error payload."""
    if isinstance(error, dict):
        return str(error.get("message") or error.get("error") or error)
    message = getattr(error, "message", None)
    if message:
        return str(message)
    return str(error)
