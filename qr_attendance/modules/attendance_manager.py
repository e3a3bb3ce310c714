"""
Attendance Manager Module - QR Attendance Session System

This module is the entry point other parts of the application use for QR
attendance sessions. It wires the codec, store, issuer, ledger and validator
together and exposes the operations the web layer calls:

- issue_session: create a session and render its QR code
- cancel_session: cancel a session (issuer or admin)
- list_active_sessions / list_session_history: session projections
- get_session_attendance: raw attendance records of one session
- submit_scan: mark a student present

Every operation returns a result dict. Expected failures come back as
``{'success': False, 'message': ..., 'error_type': ...}`` and are logged at
INFO. Unexpected failures are logged as errors and reported as an opaque
``system_error`` without internal detail.
"""

import logging
from typing import Any, Dict, List, Optional

from qr_attendance.modules.attendance_ledger import AttendanceLedger
from qr_attendance.modules.clock import SystemClock
from qr_attendance.modules.enrollment_directory import EnrollmentDirectory
from qr_attendance.modules.errors import AttendanceError, Forbidden
from qr_attendance.modules.qr_generator import QRGenerator
from qr_attendance.modules.scan_validator import ScanValidator
from qr_attendance.modules.session_issuer import SessionIssuer
from qr_attendance.modules.session_store import CancelOutcome, Session, SessionStore
from qr_attendance.modules.token_codec import ScopeKey, TokenCodec

SYSTEM_ERROR = {
    'success': False,
    'message': 'An internal error occurred, please try again later',
    'error_type': 'system_error'
}

CANCEL_MESSAGES = {
    CancelOutcome.CANCELLED: 'Session cancelled',
    CancelOutcome.ALREADY_CANCELLED: 'Session was already cancelled',
    CancelOutcome.ALREADY_EXPIRED: 'Session had already expired'
}


class AttendanceManager:
    """
    Facade over the QR attendance session lifecycle.
    """

    def __init__(self, database_manager, config_class, clock=None,
                 enrollment=None, qr_generator=None):
        """
        Initialize the attendance manager and its components.

        Args:
            database_manager: Database manager instance
            config_class: Configuration class providing session limits
            clock: Clock with a ``now()`` method; defaults to the system clock
            enrollment: Enrollment directory; defaults to the database-backed one
            qr_generator: QR image renderer; defaults to one built from config
        """
        self.db = database_manager
        self.config = config_class
        self.clock = clock or SystemClock()
        self.logger = logging.getLogger(__name__)

        self.codec = TokenCodec()
        self.store = SessionStore(database_manager, self.clock)
        self.ledger = AttendanceLedger(database_manager)
        self.enrollment = enrollment or EnrollmentDirectory(database_manager)
        self.qr_generator = qr_generator or QRGenerator.from_config(config_class)
        self.issuer = SessionIssuer(
            self.codec,
            self.store,
            self.clock,
            min_duration=config_class.SESSION_MIN_DURATION_MINUTES,
            max_duration=config_class.SESSION_MAX_DURATION_MINUTES,
            session_types=config_class.SESSION_TYPES
        )
        self.validator = ScanValidator(
            self.codec, self.store, self.ledger, self.enrollment, self.clock
        )

    def _failure(self, operation: str, error: AttendanceError) -> Dict[str, Any]:
        self.logger.info(f"{operation} rejected: {error.error_type} ({error.message})")
        return error.to_dict()

    def _system_failure(self, operation: str, error: Exception) -> Dict[str, Any]:
        self.logger.error(f"{operation} failed: {str(error)}", exc_info=True)
        return dict(SYSTEM_ERROR)

    def _session_view(self, session: Session, include_qr: bool = False) -> Dict[str, Any]:
        now = self.clock.now()
        view = {
            'code': session.code,
            'payload': session.payload,
            'issuer_id': session.issuer_id,
            'class_id': str(session.scope_key.class_id),
            'subject_id': str(session.scope_key.subject_id),
            'session_type': session.scope_key.session_type,
            'issued_at': session.issued_at.isoformat(),
            'valid_until': session.valid_until.isoformat(),
            'status': session.status_at(now).value,
            'remaining_seconds': session.remaining_seconds(now),
            'attendance_count': self.ledger.count_for_session(session.code)
        }
        if session.cancelled_at is not None:
            view['cancelled_at'] = session.cancelled_at.isoformat()
        if include_qr:
            caption = None
            if self.config.QR_CODE_CAPTION:
                caption = [
                    f"Class {session.scope_key.class_id} / Subject {session.scope_key.subject_id}",
                    f"{session.scope_key.session_type.title()} - valid until "
                    f"{session.valid_until.strftime('%H:%M:%S')} UTC"
                ]
            qr_image = self.qr_generator.generate_session_qr_code(session.payload, caption)
            view['qr_image'] = qr_image['data_url']
        return view

    def issue_session(self, issuer_id, class_id, subject_id,
                      session_type: Optional[str] = None,
                      duration_minutes: Optional[int] = None) -> Dict[str, Any]:
        """
        Issue a new QR attendance session.

        Args:
            issuer_id: Teacher/admin identity
            class_id: Class the session covers
            subject_id: Subject the session covers
            session_type (str): Session type, defaults to the configured one
            duration_minutes (int): Validity window, defaults to the configured one

        Returns:
            Dict[str, Any]: Session view including the QR image, or a failure
        """
        if session_type is None:
            session_type = self.config.SESSION_DEFAULT_TYPE
        if duration_minutes is None:
            duration_minutes = self.config.SESSION_DEFAULT_DURATION_MINUTES

        try:
            session = self.issuer.issue(
                issuer_id, ScopeKey(class_id, subject_id, session_type), duration_minutes
            )
            return {
                'success': True,
                'message': 'Attendance session created',
                'session': self._session_view(session, include_qr=True)
            }
        except AttendanceError as e:
            return self._failure('Issue session', e)
        except Exception as e:
            return self._system_failure('Issue session', e)

    def cancel_session(self, code: str, issuer_id, is_admin: bool = False) -> Dict[str, Any]:
        """
        Cancel a session. Repeated cancels and cancels of expired sessions succeed.

        Args:
            code (str): Session code
            issuer_id: Identity requesting the cancellation
            is_admin (bool): Whether the requester is an admin

        Returns:
            Dict[str, Any]: Cancellation result
        """
        try:
            outcome = self.store.cancel(code, issuer_id, is_admin=is_admin)
            if outcome is CancelOutcome.CANCELLED:
                self.logger.info(f"Session {code} cancelled by {issuer_id}")
            return {
                'success': True,
                'message': CANCEL_MESSAGES[outcome],
                'outcome': outcome.value,
                'code': code
            }
        except AttendanceError as e:
            return self._failure('Cancel session', e)
        except Exception as e:
            return self._system_failure('Cancel session', e)

    def list_active_sessions(self, issuer_id=None) -> Dict[str, Any]:
        """List sessions currently accepting scans; ``None`` lists every issuer."""
        try:
            sessions = self.store.list_active(issuer_id)
            return {
                'success': True,
                'sessions': [self._session_view(session) for session in sessions]
            }
        except Exception as e:
            return self._system_failure('List active sessions', e)

    def list_session_history(self, issuer_id=None, page: int = 1,
                             per_page: Optional[int] = None) -> Dict[str, Any]:
        """
        Paginated history of sessions, newest first.

        Args:
            issuer_id: Issuer to filter on, or None for every issuer
            page (int): 1-based page number
            per_page (int): Page size, capped by HISTORY_MAX_PAGE_SIZE

        Returns:
            Dict[str, Any]: Sessions plus pagination details
        """
        if per_page is None:
            per_page = self.config.HISTORY_PAGE_SIZE
        per_page = max(1, min(per_page, self.config.HISTORY_MAX_PAGE_SIZE))
        page = max(1, page)

        try:
            sessions, total = self.store.list_history(issuer_id, page, per_page)
            return {
                'success': True,
                'sessions': [self._session_view(session) for session in sessions],
                'pagination': {
                    'page': page,
                    'per_page': per_page,
                    'total': total,
                    'pages': (total + per_page - 1) // per_page
                }
            }
        except Exception as e:
            return self._system_failure('List session history', e)

    def get_session_attendance(self, code: str, issuer_id,
                               is_admin: bool = False) -> Dict[str, Any]:
        """
        Raw attendance records of one session, visible to its issuer or an admin.

        Returns:
            Dict[str, Any]: Session view plus its records
        """
        try:
            session = self.store.get_by_code(code)
            if not is_admin and str(issuer_id) != session.issuer_id:
                raise Forbidden('You can only view attendance for your own sessions')

            records: List[Dict[str, Any]] = [
                {
                    'student_id': record.student_id,
                    'marked_at': record.marked_at.isoformat(),
                    'status': record.status
                }
                for record in self.ledger.records(session_code=code)
            ]
            return {
                'success': True,
                'session': self._session_view(session),
                'records': records
            }
        except AttendanceError as e:
            return self._failure('Session attendance', e)
        except Exception as e:
            return self._system_failure('Session attendance', e)

    def submit_scan(self, student_id, token) -> Dict[str, Any]:
        """
        Process a student's scan of a session QR code.

        Args:
            student_id: Authenticated student identity
            token (str): Payload read from the QR code

        Returns:
            Dict[str, Any]: ``status`` is ``success``, ``duplicate_scan`` or
            another error type, with a human-readable ``message``
        """
        try:
            result = self.validator.validate(student_id, token)
            session = result.session
            return {
                'success': True,
                'status': 'success',
                'message': 'Attendance marked successfully',
                'attendance': {
                    'student_id': result.student_id,
                    'session_code': session.code,
                    'class_id': str(session.scope_key.class_id),
                    'subject_id': str(session.scope_key.subject_id),
                    'session_type': session.scope_key.session_type,
                    'marked_at': result.marked_at.isoformat(),
                    'status': 'present'
                }
            }
        except AttendanceError as e:
            failure = self._failure(f"Scan by {student_id}", e)
            failure['status'] = e.error_type
            return failure
        except Exception as e:
            failure = self._system_failure(f"Scan by {student_id}", e)
            failure['status'] = failure['error_type']
            return failure
