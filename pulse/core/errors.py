"""
Error Taxonomy

Exceptions shared by the SDK and the trace service.

Instrumentation failures (SDK side) are logged and swallowed; ingestion API
failures (service side) are always surfaced to the caller as an HTTP status.
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional


class PulseError(Exception):
    """Base Pulse error."""
    status_code = 500

    def to_response(self) -> Dict[str, Any]:
        return {"error": str(self)}


class ConfigurationError(PulseError):
    """Invalid SDK or service configuration. Raised before any instrumentation starts."""
    status_code = 500


class ValidationError(PulseError):
    """Malformed trace batch or query parameters."""
    status_code = 400

    def __init__(self, message: str, details: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.details = details or []

    def to_response(self) -> Dict[str, Any]:
        return {"error": str(self), "details": self.details}


class AuthenticationError(PulseError):
    """Missing or invalid API key."""
    status_code = 401


class NotFoundError(PulseError):
    """Unknown trace or session."""
    status_code = 404


class ServiceUnavailableError(PulseError):
    """A feature that is not configured on this deployment."""
    status_code = 503


class TransportError(PulseError):
    """Network failure or non-2xx response from the collector."""
    status_code = 502

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.response_status = status_code


__all__ = [
    "PulseError",
    "ConfigurationError",
    "ValidationError",
    "AuthenticationError",
    "NotFoundError",
    "ServiceUnavailableError",
    "TransportError",
]
