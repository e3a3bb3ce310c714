"""
Error Taxonomy Module - QR Attendance Session System

Every expected, caller-recoverable outcome of the session lifecycle has its own
exception class. Each one carries a stable ``error_type`` code, a default
human-readable message and the HTTP status the web layer answers with.

Storage failures and programming errors are deliberately NOT part of this
hierarchy; they propagate as ordinary exceptions and are reported as an opaque
``system_error``.
"""

from typing import Any, Dict, Optional


class AttendanceError(Exception):
    """Base class for expected attendance-session failures."""

    error_type = 'attendance_error'
    default_message = 'The request could not be completed'
    http_status = 400

    def __init__(self, message: Optional[str] = None, **details):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Render the failure in the result-dict shape used across the app."""
        result = {
            'success': False,
            'message': self.message,
            'error_type': self.error_type
        }
        if self.details:
            result.update(self.details)
        return result


class MalformedPayload(AttendanceError):
    error_type = 'malformed_payload'
    default_message = 'Token payload does not match the expected format'


class InvalidDuration(AttendanceError):
    error_type = 'invalid_duration'
    default_message = 'Session duration is out of the allowed range'


class InvalidScope(AttendanceError):
    error_type = 'invalid_scope'
    default_message = 'Class, subject or session type is invalid'


class DuplicateCode(AttendanceError):
    error_type = 'duplicate_code'
    default_message = 'A session with this code already exists'
    http_status = 500


class NotFound(AttendanceError):
    error_type = 'not_found'
    default_message = 'Session not found'
    http_status = 404


class SessionNotFound(NotFound):
    error_type = 'session_not_found'
    default_message = 'QR code does not belong to any issued session'


class Forbidden(AttendanceError):
    error_type = 'forbidden'
    default_message = 'You are not allowed to manage this session'
    http_status = 403


class AlreadyTerminal(AttendanceError):
    error_type = 'already_terminal'
    default_message = 'Session is already cancelled or expired'
    http_status = 409


class SessionCancelled(AttendanceError):
    error_type = 'session_cancelled'
    default_message = 'This attendance session was cancelled'
    http_status = 410


class SessionExpired(AttendanceError):
    error_type = 'session_expired'
    default_message = 'QR code has expired'
    http_status = 410


class SessionNotYetValid(AttendanceError):
    error_type = 'session_not_yet_valid'
    default_message = 'QR code is not valid yet'
    http_status = 425


class NotEnrolled(AttendanceError):
    error_type = 'not_enrolled'
    default_message = 'You are not enrolled in this class and subject'
    http_status = 403


class DuplicateScan(AttendanceError):
    error_type = 'duplicate_scan'
    default_message = 'Attendance already marked for this session'
    http_status = 409


class InvalidToken(AttendanceError):
    error_type = 'invalid_token'
    default_message = 'Invalid QR code'


ERROR_CLASSES = (
    MalformedPayload, InvalidDuration, InvalidScope, DuplicateCode, NotFound,
    SessionNotFound, Forbidden, AlreadyTerminal, SessionCancelled, SessionExpired,
    SessionNotYetValid, NotEnrolled, DuplicateScan, InvalidToken
)

HTTP_STATUS_BY_ERROR_TYPE = {cls.error_type: cls.http_status for cls in ERROR_CLASSES}


def http_status_for(error_type: str) -> int:
    """HTTP status for a failure's error_type; unknown types are internal errors."""
    return HTTP_STATUS_BY_ERROR_TYPE.get(error_type, 500)
