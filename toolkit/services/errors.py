"""Error taxonomy shared by the sync and renewal services.

Every error carries a stable ``kind`` that API clients can branch on and the
HTTP status used when it escapes a request handler.
"""

from __future__ import annotations


class ToolkitError(Exception):
    kind = "error"
    status_code = 500
    retryable = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ToolkitError):
    """Malformed input that no retry will fix."""

    kind = "validation_error"
    status_code = 422


class NotFoundError(ToolkitError):
    kind = "not_found"
    status_code = 404


class AuthorizationError(ToolkitError):
    """The actor's role does not permit the requested action."""

    kind = "authorization_error"
    status_code = 403


class ConflictError(ToolkitError):
    kind = "conflict"
    status_code = 409


class StaleStateError(ConflictError):
    """A concurrent writer changed the record after the caller read it."""

    kind = "stale_state"
    retryable = True


class InvalidTransitionError(ToolkitError):
    """The record's current state does not allow the requested action."""

    kind = "invalid_state"
    status_code = 409


class TransientIOError(ToolkitError):
    kind = "transient_io"
    status_code = 503
    retryable = True


class ExternalStoreError(TransientIOError):
    """The spreadsheet store could not be read or written."""


class SummaryGenerationError(TransientIOError):
    """The summary service failed or is not configured."""


class DataIntegrityError(ToolkitError):
    """Stored data violates an expected invariant and needs manual review."""

    kind = "data_integrity"
    status_code = 409
