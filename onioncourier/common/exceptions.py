"""
Custom exceptions for the onion courier.
"""

from __future__ import annotations


class CourierError(Exception):
    """Base class for all onion courier errors."""


class ValidationError(CourierError):
    """Exception for request-level failures."""

    def __init__(self, message: str, status_code: int = 403) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthorizationError(ValidationError):
    """Exception for requests made without an authenticated session."""

    def __init__(self, message: str = "authentication required") -> None:
        super().__init__(message, 401)


class PathTraversalError(ValidationError):
    """Exception for paths resolving outside the file root."""

    def __init__(self, message: str = "path escapes file root") -> None:
        super().__init__(message, 403)


class MissingParameterError(ValidationError):
    """Exception for requests missing a required parameter."""

    def __init__(self, name: str) -> None:
        super().__init__(f"missing parameter: {name}", 400)


class NotFoundError(ValidationError):
    """Exception for entries that do not exist in the file store."""

    def __init__(self, message: str) -> None:
        super().__init__(message, 404)


class ConfigurationError(CourierError):
    """Missing or invalid startup configuration."""


class TransportError(CourierError):
    """The onion transport could not provide or release an endpoint."""


class NotificationError(CourierError):
    """The mail relay could not be used for a notification."""


class DecryptionError(CourierError):
    """A ciphertext could not be decoded or authenticated."""


class KeyDerivationError(CourierError):
    """The cycle key could not be derived from the password."""
