"""Custom exceptions for the lookup domain."""


class NorskLookupError(Exception):
    """Base exception for this project."""


class ConfigError(NorskLookupError):
    """Raised when runtime configuration is invalid."""


class ValidationError(NorskLookupError):
    """Raised when input fails local format rules before any network call."""


class TransportError(NorskLookupError):
    """Raised when a lookup request fails on the wire or returns garbage."""


class ServiceUnavailable(NorskLookupError):
    """Raised when a provider signals a degraded state and manual entry should be offered."""


class CheckoutError(NorskLookupError):
    """Raised when the payment provider hand-off fails."""
