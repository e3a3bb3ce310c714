"""
Attendance Ledger Module - QR Attendance Session System

Append-only record of which students were marked present in which session.
Each (student, session) key is written at most once. The guarantee comes from
the table's primary key: ``record`` is a single conditional insert, so two
simultaneous scans, even from different server processes, resolve to exactly
one CREATED and the rest ALREADY_EXISTS.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterator, Optional

from qr_attendance.modules.session_store import from_db_time, to_db_time

STATUS_PRESENT = 'present'


class RecordOutcome(str, Enum):
    CREATED = 'created'
    ALREADY_EXISTS = 'already_exists'


@dataclass
class AttendanceRecord:
    """Data class for attendance record structure."""
    student_id: str
    session_code: str
    marked_at: datetime
    status: str


class AttendanceLedger:
    """Storage-backed, insert-if-absent attendance records."""

    def __init__(self, database_manager):
        self.db = database_manager
        self.logger = logging.getLogger(__name__)

    @staticmethod
    def _row_to_record(row) -> AttendanceRecord:
        return AttendanceRecord(
            student_id=row['student_id'],
            session_code=row['session_code'],
            marked_at=from_db_time(row['marked_at']),
            status=row['status']
        )

    def record(self, student_id, session_code: str, marked_at: datetime) -> RecordOutcome:
        """
        Mark a student present for a session unless already marked.

        Args:
            student_id: Student identity
            session_code (str): Session code
            marked_at (datetime): Time of the scan

        Returns:
            RecordOutcome: CREATED for the first caller, ALREADY_EXISTS otherwise
        """
        inserted = self.db.execute_update(
            """INSERT INTO attendance_records (student_id, session_code, marked_at, status)
               VALUES (?, ?, ?, ?)
               ON CONFLICT (student_id, session_code) DO NOTHING""",
            (str(student_id), session_code, to_db_time(marked_at), STATUS_PRESENT)
        )
        if inserted == 1:
            return RecordOutcome.CREATED
        return RecordOutcome.ALREADY_EXISTS

    def get(self, student_id, session_code: str) -> Optional[AttendanceRecord]:
        row = self.db.execute_query(
            "SELECT * FROM attendance_records WHERE student_id = ? AND session_code = ?",
            (str(student_id), session_code),
            fetch_all=False
        )
        return self._row_to_record(row) if row else None

    def records(self, session_code: Optional[str] = None,
                student_id=None) -> Iterator[AttendanceRecord]:
        """
        Raw record stream, oldest first, optionally filtered.

        Aggregation (counts, percentages) belongs to reporting and is not
        computed here.
        """
        query = "SELECT * FROM attendance_records"
        clauses, params = [], []
        if session_code is not None:
            clauses.append("session_code = ?")
            params.append(session_code)
        if student_id is not None:
            clauses.append("student_id = ?")
            params.append(str(student_id))
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY marked_at, student_id"

        for row in self.db.execute_query(query, tuple(params)):
            yield self._row_to_record(row)

    def count_for_session(self, session_code: str) -> int:
        result = self.db.execute_query(
            "SELECT COUNT(*) AS total FROM attendance_records WHERE session_code = ?",
            (session_code,),
            fetch_all=False
        )
        return result['total']
