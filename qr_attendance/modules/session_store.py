"""
Session Store Module - QR Attendance Session System

Durable record of every issued attendance session, keyed by session code.
The store is the single source of truth for a session's window and for
cancellation. A session's observable status is derived at read time from the
stored row and the current clock; nothing ever writes "expired".

Features:
- Session creation with duplicate-code protection
- Lookup by code
- Issuer/admin cancellation with idempotent semantics
- Active-session and paginated history projections
"""

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Tuple

from qr_attendance.modules.errors import AlreadyTerminal, DuplicateCode, Forbidden, NotFound
from qr_attendance.modules.token_codec import ScopeKey

STORED_ACTIVE = 'active'
STORED_CANCELLED = 'cancelled'


class SessionStatus(str, Enum):
    ACTIVE = 'active'
    EXPIRED = 'expired'
    CANCELLED = 'cancelled'


class CancelOutcome(str, Enum):
    CANCELLED = 'cancelled'
    ALREADY_CANCELLED = 'already_cancelled'
    ALREADY_EXPIRED = 'already_expired'


@dataclass
class Session:
    """One issued QR attendance window."""
    code: str
    issuer_id: str
    scope_key: ScopeKey
    issued_at: datetime
    valid_until: datetime
    payload: str
    cancelled: bool = False
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None

    def status_at(self, now: datetime) -> SessionStatus:
        if self.cancelled:
            return SessionStatus.CANCELLED
        if now >= self.valid_until:
            return SessionStatus.EXPIRED
        return SessionStatus.ACTIVE

    def remaining_seconds(self, now: datetime) -> int:
        if self.status_at(now) is not SessionStatus.ACTIVE:
            return 0
        return max(0, int((self.valid_until - now).total_seconds()))


def to_db_time(moment: datetime) -> str:
    """Fixed-width UTC text, so SQL string comparison is chronological."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec='microseconds')


def from_db_time(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


class SessionStore:
    """SQLite-backed store of attendance sessions."""

    def __init__(self, database_manager, clock):
        """
        Args:
            database_manager: Database manager instance
            clock: Object with a ``now()`` method returning aware datetimes
        """
        self.db = database_manager
        self.clock = clock
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def _row_to_session(row) -> Session:
        return Session(
            code=row['code'],
            issuer_id=row['issuer_id'],
            scope_key=ScopeKey(row['class_id'], row['subject_id'], row['session_type']),
            issued_at=from_db_time(row['issued_at']),
            valid_until=from_db_time(row['valid_until']),
            payload=row['payload'],
            cancelled=row['status'] == STORED_CANCELLED,
            cancelled_at=from_db_time(row['cancelled_at']),
            cancelled_by=row['cancelled_by']
        )

    def create(self, session: Session) -> None:
        """
        Insert a newly issued session.

        Raises:
            DuplicateCode: If a session with the same code already exists
        """
        try:
            self.db.execute_update(
                """INSERT INTO qr_sessions (code, issuer_id, class_id, subject_id, session_type,
                                            issued_at, valid_until, status, payload)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (session.code, str(session.issuer_id),
                 str(session.scope_key.class_id), str(session.scope_key.subject_id),
                 session.scope_key.session_type,
                 to_db_time(session.issued_at), to_db_time(session.valid_until),
                 STORED_ACTIVE, session.payload)
            )
        except sqlite3.IntegrityError as e:
            # the primary key is the only constraint a well-formed session can hit
            if 'qr_sessions.code' in str(e):
                raise DuplicateCode(code=session.code)
            raise

    def get_by_code(self, code: str) -> Session:
        """
        Look up a session by its code.

        Raises:
            NotFound: If no session carries this code
        """
        row = self.db.execute_query(
            "SELECT * FROM qr_sessions WHERE code = ?",
            (code,),
            fetch_all=False
        )
        if row is None:
            raise NotFound()
        return self._row_to_session(row)

    def cancel(self, code: str, by_issuer_id, is_admin: bool = False,
               strict: bool = False) -> CancelOutcome:
        """
        Cancel an active session.

        Cancelling a session that is already cancelled or already expired
        succeeds without writing anything, unless ``strict`` is set.

        Args:
            code (str): Session code
            by_issuer_id: Identity requesting the cancellation
            is_admin (bool): Whether the requester has admin privileges
            strict (bool): Raise AlreadyTerminal instead of succeeding on
                terminal sessions

        Returns:
            CancelOutcome: What the call did

        Raises:
            NotFound, Forbidden, AlreadyTerminal
        """
        session = self.get_by_code(code)
        if not is_admin and str(by_issuer_id) != session.issuer_id:
            raise Forbidden()

        now = self.clock.now()
        status = session.status_at(now)
        if status is SessionStatus.CANCELLED:
            if strict:
                raise AlreadyTerminal('Session is already cancelled')
            return CancelOutcome.ALREADY_CANCELLED
        if status is SessionStatus.EXPIRED:
            if strict:
                raise AlreadyTerminal('Session has already expired')
            return CancelOutcome.ALREADY_EXPIRED

        updated = self.db.execute_update(
            """UPDATE qr_sessions
               SET status = ?, cancelled_at = ?, cancelled_by = ?
               WHERE code = ? AND status = ?""",
            (STORED_CANCELLED, to_db_time(now), str(by_issuer_id), code, STORED_ACTIVE)
        )
        if updated == 0:
            # a concurrent cancel got there first
            if strict:
                raise AlreadyTerminal('Session is already cancelled')
            return CancelOutcome.ALREADY_CANCELLED
        return CancelOutcome.CANCELLED

    def list_active(self, issuer_id=None) -> List[Session]:
        """Sessions that are neither cancelled nor expired, newest first."""
        query = "SELECT * FROM qr_sessions WHERE status = ? AND valid_until > ?"
        params = [STORED_ACTIVE, to_db_time(self.clock.now())]
        if issuer_id is not None:
            query += " AND issuer_id = ?"
            params.append(str(issuer_id))
        query += " ORDER BY issued_at DESC"
        return [self._row_to_session(row) for row in self.db.execute_query(query, tuple(params))]

    def list_history(self, issuer_id=None, page: int = 1,
                     per_page: int = 20) -> Tuple[List[Session], int]:
        """
        All sessions of an issuer (or of everyone), newest first.

        Args:
            issuer_id: Issuer to filter on, or None for every issuer
            page (int): 1-based page number
            per_page (int): Page size

        Returns:
            Tuple[List[Session], int]: Sessions on the page and the total count
        """
        page = max(1, page)
        per_page = max(1, per_page)

        where, params = "", []
        if issuer_id is not None:
            where = " WHERE issuer_id = ?"
            params.append(str(issuer_id))

        total = self.db.execute_query(
            "SELECT COUNT(*) AS total FROM qr_sessions" + where,
            tuple(params),
            fetch_all=False
        )['total']
        rows = self.db.execute_query(
            "SELECT * FROM qr_sessions" + where + " ORDER BY issued_at DESC, code LIMIT ? OFFSET ?",
            tuple(params + [per_page, (page - 1) * per_page])
        )
        return [self._row_to_session(row) for row in rows], total
