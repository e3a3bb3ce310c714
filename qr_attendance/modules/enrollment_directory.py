"""
Enrollment Directory Module - QR Attendance Session System

Answers whether a student belongs to the class and subject a session covers.
Enrollment is maintained by the student administration flows; this module
only reads it, plus a small write helper used for seeding.
"""

import logging

from qr_attendance.modules.token_codec import ScopeKey


class EnrollmentDirectory:
    """Enrollment lookups backed by the ``enrollments`` table."""

    def __init__(self, database_manager):
        self.db = database_manager
        self.logger = logging.getLogger(__name__)

    def is_enrolled(self, student_id, scope_key: ScopeKey) -> bool:
        # session type does not affect enrollment
        row = self.db.execute_query(
            """SELECT 1 FROM enrollments
               WHERE student_id = ? AND class_id = ? AND subject_id = ?""",
            (str(student_id), str(scope_key.class_id), str(scope_key.subject_id)),
            fetch_all=False
        )
        return row is not None

    def enroll(self, student_id, class_id, subject_id) -> bool:
        """
        Enroll a student in a class/subject pair.

        Returns:
            bool: True if a new enrollment was added
        """
        added = self.db.execute_update(
            """INSERT INTO enrollments (student_id, class_id, subject_id)
               VALUES (?, ?, ?)
               ON CONFLICT (student_id, class_id, subject_id) DO NOTHING""",
            (str(student_id), str(class_id), str(subject_id))
        )
        if added:
            self.logger.info(f"Enrolled student {student_id} in class {class_id}, subject {subject_id}")
        return added == 1
