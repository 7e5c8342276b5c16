"""Connector exceptions for error handling.

Raw Crowd failures are classified exactly once, in ``CrowdClient``, into the
classes below. Everything above the client lets them propagate unchanged.
"""
from __future__ import annotations
from typing import Optional


class ConnectorError(Exception):
    """Base exception for all connector operations.

    Attributes:
        message: Original error message (kept for diagnostics)
        status: HTTP status used when the error is surfaced over the API
    """

    status = 500
    error = "Connector Error"

    def __init__(self, message: str = "", cause: Optional[BaseException] = None):
        self.message = message or (str(cause) if cause else self.error)
        self.cause = cause
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert to the JSON error body returned by the HTTP API."""
        return {"error": self.error, "message": self.message}


class UnknownUidError(ConnectorError):
    """Identifier or name resolves to nothing on the remote side."""

    status = 404
    error = "Not Found"


class AlreadyExistsError(ConnectorError):
    """Create collides with an existing object."""

    status = 409
    error = "Already Exists"


class PermissionDeniedError(ConnectorError):
    """Remote authorization rejected the call."""

    status = 403
    error = "Permission Denied"


class InvalidAttributeValueError(ConnectorError):
    """Remote validation (or the schema) rejected field values."""

    status = 400
    error = "Invalid Attribute Value"


class ConnectorIOError(ConnectorError):
    """Network failure, timeout, or unclassified remote failure."""

    status = 502
    error = "Connector IO Error"


class ConnectionFailedError(ConnectorIOError):
    """Crowd rejected the application credentials."""

    error = "Connection Failed"


class ConfigurationError(ConnectorError):
    """Connector configuration is missing or invalid."""

    status = 500
    error = "Configuration Error"


class CrowdAPIError(Exception):
    """HTTP error body returned by the Crowd REST API.

    Attributes:
        status_code: HTTP status code
        reason: Crowd error reason (e.g. USER_NOT_FOUND)
        message: Error message from response
        endpoint: API endpoint that failed
    """

    def __init__(self, status_code: int, reason: str, message: str, endpoint: str):
        self.status_code = status_code
        self.reason = reason
        self.message = message
        self.endpoint = endpoint
        super().__init__(f"[{status_code}] {endpoint}: {reason} {message}".rstrip())


NOT_FOUND_REASONS = {"USER_NOT_FOUND", "GROUP_NOT_FOUND", "MEMBERSHIP_NOT_FOUND"}
ALREADY_EXISTS_REASONS = {"INVALID_USER", "INVALID_GROUP", "MEMBERSHIP_ALREADY_EXISTS"}
PERMISSION_REASONS = {"APPLICATION_PERMISSION_DENIED"}
AUTHENTICATION_REASONS = {"INVALID_CREDENTIAL", "APPLICATION_ACCESS_DENIED", "INVALID_SSO_TOKEN"}


def classify(error: CrowdAPIError) -> ConnectorError:
    """Map a Crowd API error onto the connector error taxonomy."""
    message = error.message or str(error)
    if error.reason in NOT_FOUND_REASONS:
        return UnknownUidError(message, error)
    if error.reason in ALREADY_EXISTS_REASONS:
        return AlreadyExistsError(message, error)
    if error.reason in PERMISSION_REASONS or error.status_code == 403:
        return PermissionDeniedError(message, error)
    if error.reason in AUTHENTICATION_REASONS or error.status_code == 401:
        return ConnectionFailedError(message, error)
    if error.status_code == 404:
        return UnknownUidError(message, error)
    if error.status_code == 400:
        return InvalidAttributeValueError(message, error)
    return ConnectorIOError(message, error)
