"""Application-level exception types for rcsx."""

from __future__ import annotations


class RcsxError(Exception):
    """Base exception for rcsx."""


class ConfigurationError(RcsxError):
    """Raised when settings are missing or inconsistent."""


class StructuralError(RcsxError):
    """Raised when a payload is not an object or has the wrong root shape."""


class FormatError(RcsxError):
    """Raised when no known message or event schema matches a payload."""


class UnknownFormatError(FormatError):
    """Raised by the schema detector when a payload matches no wire format."""

    def __init__(self, message: str = "Unknown message format") -> None:
        super().__init__(message)


class FieldValidationError(RcsxError):
    """Raised when one or more fields violate a presence, type or enum rule."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__(errors[0] if errors else "Validation failed")
        self.errors = list(errors)


class UnsupportedMessageType(RcsxError):
    """Raised when a message has no canonical mapping."""


class AdaptationFailed(RcsxError):
    """Raised when wire to canonical conversion fails."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Message adaptation failed: {reason}")
        self.reason = reason


class NoHandlerError(RcsxError):
    """Raised when an event type has no registered handler."""

    def __init__(self, event_type: str) -> None:
        super().__init__(f"No handler found for event type: {event_type}")
        self.event_type = event_type


class ForwardingError(RcsxError):
    """Raised when one endpoint exhausts its forwarding attempts."""

    def __init__(self, url: str, attempts: int, reason: str) -> None:
        super().__init__(f"Failed to forward to {url} after {attempts} attempts: {reason}")
        self.url = url
        self.attempts = attempts
        self.reason = reason


class SchemaNotFoundError(NoHandlerError):
    """Raised when no event model exists for an event type."""
