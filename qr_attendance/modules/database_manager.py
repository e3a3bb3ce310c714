"""
Database Manager Module - QR Attendance Session System

This module handles all database operations for the attendance session system.
It owns the SQLite connections, creates the schema and offers small helpers for
queries, updates and transactions. Each thread gets its own connection, and the
database runs in WAL mode with a busy timeout so concurrent requests serialize
their writes inside SQLite rather than in the application.

Features:
- Thread-local SQLite connection management
- Schema creation (sessions, attendance records, enrollments)
- Uniqueness constraints that back the attendance ledger
- Transaction support
- Error handling and logging
"""

import sqlite3
import logging
import os
import threading
from contextlib import contextmanager

from qr_attendance.config import DatabaseConfig


class DatabaseManager:
    """
    Database management class for the QR attendance session system.
    Handles connection management, schema creation and data manipulation
    with proper error handling and transaction support.
    """

    def __init__(self, db_path):
        """
        Initialize the database manager with the specified database path.

        Args:
            db_path (str): Path to the SQLite database file
        """
        self.db_path = str(db_path)
        self.logger = logging.getLogger(__name__)
        self._local = threading.local()

        # Ensure database directory exists
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        self.initialize_database()
        self.close_connection()

    def _connect(self):
        connection = sqlite3.connect(
            self.db_path,
            check_same_thread=DatabaseConfig.CHECK_SAME_THREAD,
            timeout=DatabaseConfig.TIMEOUT
        )
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON")
        connection.execute(f"PRAGMA journal_mode = {DatabaseConfig.JOURNAL_MODE}")
        connection.execute(f"PRAGMA synchronous = {DatabaseConfig.SYNCHRONOUS}")
        connection.execute(f"PRAGMA busy_timeout = {int(DatabaseConfig.TIMEOUT * 1000)}")
        return connection

    @contextmanager
    def get_connection(self):
        """
        Context manager for database connections.
        Provides thread-local connections for thread safety.

        Yields:
            sqlite3.Connection: Database connection object
        """
        if not hasattr(self._local, 'connection'):
            self._local.connection = self._connect()

        try:
            yield self._local.connection
        except Exception as e:
            self._local.connection.rollback()
            self.logger.debug(f"Database operation rolled back: {str(e)}")
            raise

    def initialize_database(self):
        """
        Create all tables and indexes used by the session system.
        This method is idempotent and can be called multiple times safely.
        """
        try:
            with self.get_connection() as conn:
                cursor = conn.cursor()

                # Issued QR sessions; status only ever moves active -> cancelled
                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS qr_sessions (
                        code VARCHAR(80) PRIMARY KEY,
                        issuer_id TEXT NOT NULL,
                        class_id TEXT NOT NULL,
                        subject_id TEXT NOT NULL,
                        session_type VARCHAR(20) NOT NULL,
                        issued_at TEXT NOT NULL,
                        valid_until TEXT NOT NULL,
                        status VARCHAR(20) NOT NULL DEFAULT 'active',
                        payload TEXT NOT NULL,
                        cancelled_at TEXT,
                        cancelled_by TEXT,
                        CHECK (valid_until > issued_at),
                        CHECK (status IN ('active', 'cancelled'))
                    )
                """)

                # One row per (student, session); the key is the ledger's guarantee
                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS attendance_records (
                        student_id TEXT NOT NULL,
                        session_code VARCHAR(80) NOT NULL,
                        marked_at TEXT NOT NULL,
                        status VARCHAR(20) NOT NULL DEFAULT 'present',
                        PRIMARY KEY (student_id, session_code),
                        FOREIGN KEY (session_code) REFERENCES qr_sessions(code)
                    )
                """)

                cursor.execute("""
                    CREATE TABLE IF NOT EXISTS enrollments (
                        student_id TEXT NOT NULL,
                        class_id TEXT NOT NULL,
                        subject_id TEXT NOT NULL,
                        enrolled_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        PRIMARY KEY (student_id, class_id, subject_id)
                    )
                """)

                cursor.execute("CREATE INDEX IF NOT EXISTS idx_sessions_issuer ON qr_sessions(issuer_id, issued_at)")
                cursor.execute("CREATE INDEX IF NOT EXISTS idx_sessions_valid_until ON qr_sessions(valid_until)")
                cursor.execute("CREATE INDEX IF NOT EXISTS idx_records_session ON attendance_records(session_code)")

                conn.commit()
                self.logger.info("Database initialized successfully")

        except Exception as e:
            self.logger.error(f"Failed to initialize database: {str(e)}")
            raise

    def execute_query(self, query, params=None, fetch_all=True):
        """
        Execute a SELECT query and return results.

        Args:
            query (str): SQL query string
            params (tuple): Query parameters
            fetch_all (bool): Whether to fetch all results or just one

        Returns:
            list or dict: Query results
        """
        with self.get_connection() as conn:
            cursor = conn.cursor()
            try:
                cursor.execute(query, params or ())

                if fetch_all:
                    return [dict(row) for row in cursor.fetchall()]
                result = cursor.fetchone()
                return dict(result) if result else None
            finally:
                # an unfinished SELECT would keep its read snapshot open
                cursor.close()

    def execute_update(self, query, params=None):
        """
        Execute an INSERT, UPDATE, or DELETE query in its own transaction.

        Args:
            query (str): SQL query string
            params (tuple): Query parameters

        Returns:
            int: Number of affected rows
        """
        with self.transaction() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params or ())
            return cursor.rowcount

    @contextmanager
    def transaction(self):
        """
        Context manager for database transactions with automatic rollback on error.

        Yields:
            sqlite3.Connection: Database connection within transaction
        """
        with self.get_connection() as conn:
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def close_connection(self):
        """Close the calling thread's connection; the next query reopens one."""
        connection = getattr(self._local, 'connection', None)
        if connection is None:
            return
        del self._local.connection
        try:
            connection.close()
        except sqlite3.Error as e:
            self.logger.warning(f"Error closing connection: {str(e)}")
