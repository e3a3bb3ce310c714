"""
Scan Validator Module - QR Attendance Session System

Decides whether a student's scan is accepted. Every attempt moves through
Received -> Decoded -> Resolved -> Authorized -> Committed; each step has its
own failure exit and exactly one outcome is produced per attempt.

The payload is checked twice: it must decode, and it must agree with the
session stored under its code. All temporal decisions use the server clock
and the stored window, never the timestamps carried in the payload.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from qr_attendance.modules.attendance_ledger import RecordOutcome
from qr_attendance.modules.errors import (
    DuplicateScan,
    InvalidToken,
    MalformedPayload,
    NotEnrolled,
    NotFound,
    SessionCancelled,
    SessionExpired,
    SessionNotFound,
    SessionNotYetValid,
)
from qr_attendance.modules.session_store import Session, SessionStatus
from qr_attendance.modules.token_codec import DecodedToken


@dataclass
class ScanResult:
    """Confirmation returned for an accepted scan."""
    student_id: str
    session: Session
    marked_at: datetime


def _same_id(left, right) -> bool:
    return str(left) == str(right)


def _matches_session(token: DecodedToken, session: Session) -> bool:
    return (
        _same_id(token.issuer_id, session.issuer_id)
        and _same_id(token.scope_key.class_id, session.scope_key.class_id)
        and _same_id(token.scope_key.subject_id, session.scope_key.subject_id)
        and token.scope_key.session_type == session.scope_key.session_type
        and token.timestamp == session.issued_at
        and token.valid_until == session.valid_until
    )


class ScanValidator:
    """State machine that turns a submitted token into one attendance outcome."""

    def __init__(self, codec, store, ledger, enrollment, clock):
        self.codec = codec
        self.store = store
        self.ledger = ledger
        self.enrollment = enrollment
        self.clock = clock
        self.logger = logging.getLogger(__name__)

    def validate(self, student_id, token) -> ScanResult:
        """
        Process one scan attempt.

        Args:
            student_id: Authenticated student identity
            token (str): Payload read from the QR code

        Returns:
            ScanResult: The committed attendance

        Raises:
            InvalidToken, SessionNotFound, SessionCancelled, SessionExpired,
            SessionNotYetValid, NotEnrolled, DuplicateScan
        """
        # Decode
        try:
            decoded = self.codec.decode(token)
        except MalformedPayload as e:
            raise InvalidToken(f"Invalid QR code: {e.message}")

        # Resolve
        try:
            session = self.store.get_by_code(decoded.code)
        except NotFound:
            raise SessionNotFound()
        if not _matches_session(decoded, session):
            raise InvalidToken('QR code does not match the issued session')

        # Authorize
        now = self.clock.now()
        status = session.status_at(now)
        if status is SessionStatus.CANCELLED:
            raise SessionCancelled()
        if status is SessionStatus.EXPIRED:
            raise SessionExpired()
        if now < session.issued_at:
            raise SessionNotYetValid()
        if not self.enrollment.is_enrolled(student_id, session.scope_key):
            raise NotEnrolled()

        # Commit
        outcome = self.ledger.record(student_id, session.code, now)
        if outcome is RecordOutcome.ALREADY_EXISTS:
            raise DuplicateScan()

        self.logger.info(f"Student {student_id} marked present for session {session.code}")
        return ScanResult(student_id=str(student_id), session=session, marked_at=now)
