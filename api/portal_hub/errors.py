# portal_hub/errors.py
"""
Typed service errors.

Services raise these; the HTTP layer renders them as
``{"error": code, "message": ...}`` with the matching status.
"""
from __future__ import annotations


class PortalError(Exception):
    """Base class for errors that are safe to show to the caller."""

    code = "internal"
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.code

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class InvalidArgument(PortalError):
    code = "invalid-argument"
    status_code = 400


class NotFound(PortalError):
    code = "not-found"
    status_code = 404


class PermissionDenied(PortalError):
    code = "permission-denied"
    status_code = 403


class FailedPrecondition(PortalError):
    code = "failed-precondition"
    status_code = 412


class Conflict(PortalError):
    """Transaction contention that outlived the retry budget."""
    code = "conflict"
    status_code = 409


class Internal(PortalError):
    code = "internal"
    status_code = 500
