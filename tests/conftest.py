from datetime import datetime, timedelta, timezone

import pytest

from qr_attendance import create_app
from qr_attendance.config import TestingConfig
from qr_attendance.modules.attendance_ledger import AttendanceLedger
from qr_attendance.modules.attendance_manager import AttendanceManager
from qr_attendance.modules.database_manager import DatabaseManager
from qr_attendance.modules.enrollment_directory import EnrollmentDirectory
from qr_attendance.modules.session_issuer import SessionIssuer
from qr_attendance.modules.session_store import SessionStore
from qr_attendance.modules.token_codec import ScopeKey, TokenCodec

T0 = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)
LECTURE = ScopeKey(7, 3, 'lecture')


class FixedClock:
    """Clock that only moves when a test moves it."""

    def __init__(self, start):
        self.current = start

    def now(self):
        return self.current

    def advance(self, **delta):
        self.current += timedelta(**delta)

    def set(self, moment):
        self.current = moment


@pytest.fixture
def clock():
    return FixedClock(T0)


@pytest.fixture
def db(tmp_path):
    manager = DatabaseManager(tmp_path / "attendance.db")
    yield manager
    manager.close_connection()


@pytest.fixture
def codec():
    return TokenCodec()


@pytest.fixture
def store(db, clock):
    return SessionStore(db, clock)


@pytest.fixture
def ledger(db):
    return AttendanceLedger(db)


@pytest.fixture
def enrollment(db):
    return EnrollmentDirectory(db)


@pytest.fixture
def issuer(codec, store, clock):
    return SessionIssuer(
        codec, store, clock,
        min_duration=TestingConfig.SESSION_MIN_DURATION_MINUTES,
        max_duration=TestingConfig.SESSION_MAX_DURATION_MINUTES,
        session_types=TestingConfig.SESSION_TYPES
    )


@pytest.fixture
def manager(db, clock):
    return AttendanceManager(db, TestingConfig, clock=clock)


@pytest.fixture
def app(tmp_path, clock):
    flask_app = create_app(TestingConfig, database_path=tmp_path / "app.db", clock=clock)
    yield flask_app
    flask_app.extensions['db_manager'].close_connection()


@pytest.fixture
def client(app):
    return app.test_client()


def login(client, user_id, user_type):
    with client.session_transaction() as sess:
        sess['user_id'] = user_id
        sess['user_type'] = user_type
