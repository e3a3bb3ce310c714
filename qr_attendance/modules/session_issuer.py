"""
Session Issuer Module - QR Attendance Session System

Creates new attendance sessions for teachers and admins: validates the
requested window, stamps it with the server clock, encodes the QR payload and
persists the session.
"""

import logging
from datetime import timedelta
from typing import Iterable

from qr_attendance.modules.clock import truncate_to_millis
from qr_attendance.modules.errors import DuplicateCode, InvalidDuration, InvalidScope
from qr_attendance.modules.session_store import Session
from qr_attendance.modules.token_codec import ScopeKey, is_identifier


class SessionIssuer:
    """Issues time-bounded QR attendance sessions."""

    def __init__(self, codec, store, clock, min_duration: int = 1,
                 max_duration: int = 60,
                 session_types: Iterable[str] = ('lecture',)):
        """
        Args:
            codec: TokenCodec instance
            store: SessionStore instance
            clock: Clock used for issued_at
            min_duration (int): Shortest allowed window in minutes
            max_duration (int): Longest allowed window in minutes
            session_types: Accepted session types
        """
        self.codec = codec
        self.store = store
        self.clock = clock
        self.min_duration = min_duration
        self.max_duration = max_duration
        self.session_types = tuple(session_types)
        self.logger = logging.getLogger(__name__)

    def _validate(self, issuer_id, scope_key: ScopeKey, duration_minutes) -> None:
        if (isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int)
                or not self.min_duration <= duration_minutes <= self.max_duration):
            raise InvalidDuration(
                f"Duration must be between {self.min_duration} and "
                f"{self.max_duration} minutes"
            )
        if not is_identifier(issuer_id):
            raise InvalidScope('Issuer id is invalid')
        if not is_identifier(scope_key.class_id) or not is_identifier(scope_key.subject_id):
            raise InvalidScope('Class and subject ids are required')
        if scope_key.session_type not in self.session_types:
            raise InvalidScope(
                f"Session type must be one of: {', '.join(self.session_types)}"
            )

    def issue(self, issuer_id, scope_key: ScopeKey, duration_minutes: int) -> Session:
        """
        Issue a new session valid for ``duration_minutes`` from now.

        Args:
            issuer_id: Identity of the teacher/admin
            scope_key (ScopeKey): What the session takes attendance for
            duration_minutes (int): Length of the validity window

        Returns:
            Session: The stored session

        Raises:
            InvalidDuration, InvalidScope, DuplicateCode
        """
        self._validate(issuer_id, scope_key, duration_minutes)

        issued_at = truncate_to_millis(self.clock.now())
        valid_until = issued_at + timedelta(minutes=duration_minutes)

        code, payload = self.codec.encode(scope_key, issuer_id, issued_at, valid_until)
        session = Session(
            code=code,
            issuer_id=str(issuer_id),
            scope_key=scope_key,
            issued_at=issued_at,
            valid_until=valid_until,
            payload=payload
        )

        try:
            self.store.create(session)
        except DuplicateCode:
            # One fresh code; a second collision means the random source is broken
            self.logger.warning(f"Session code collision on {code}, regenerating once")
            session.code, session.payload = self.codec.encode(
                scope_key, issuer_id, issued_at, valid_until
            )
            self.store.create(session)

        self.logger.info(
            f"Session {session.code} issued by {issuer_id} for class {scope_key.class_id}, "
            f"subject {scope_key.subject_id} ({scope_key.session_type}) "
            f"valid until {valid_until.isoformat()}"
        )
        return session
