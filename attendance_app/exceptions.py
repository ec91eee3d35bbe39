"""Error taxonomy shared by the HTTP routes and the realtime hub.

Each class carries the message that is shown to the caller, so routes can
turn it into an error envelope and the hub into an ``ERROR`` event without
re-wording it.
"""
from __future__ import annotations


class AttendanceError(Exception):
    """Base class for every error surfaced to a caller."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AuthenticationError(AttendanceError):
    """Missing, malformed or expired credential."""

    status_code = 401


class ForbiddenError(AttendanceError):
    """Wrong role, or not the owner of the resource."""

    status_code = 403


class NotFoundError(AttendanceError):
    status_code = 404


class InvalidStateError(AttendanceError):
    """The operation needs an active attendance session and there is none."""

    status_code = 409


class PersistenceError(AttendanceError):
    """The backing store rejected or failed a write."""

    status_code = 503


class ProtocolError(AttendanceError):
    """Malformed or unknown realtime message."""
