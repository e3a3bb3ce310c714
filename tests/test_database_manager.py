import sqlite3
import threading

from qr_attendance.modules.database_manager import DatabaseManager

from conftest import login


def _record_connections(db, monkeypatch):
    opened = []
    connect = db._connect

    def recording_connect():
        connection = connect()
        opened.append(connection)
        return connection

    monkeypatch.setattr(db, "_connect", recording_connect)
    return opened


def _is_closed(connection):
    try:
        connection.execute("SELECT 1")
    except sqlite3.ProgrammingError:
        return True
    return False


def test_close_connection_releases_and_reopens(db, monkeypatch):
    opened = _record_connections(db, monkeypatch)

    assert db.execute_query("SELECT 1 AS one", fetch_all=False) == {"one": 1}
    db.close_connection()
    assert db.execute_query("SELECT 1 AS one", fetch_all=False) == {"one": 1}

    assert len(opened) == 2
    assert _is_closed(opened[0])
    assert not _is_closed(opened[1])


def test_close_connection_without_one_is_a_noop(db):
    db.close_connection()
    db.close_connection()


def test_requests_on_short_lived_threads_close_their_connections(app, monkeypatch):
    db = app.extensions["db_manager"]
    opened = _record_connections(db, monkeypatch)
    statuses = []

    def one_request():
        client = app.test_client()
        login(client, "teacher-1", "teacher")
        statuses.append(client.get("/api/sessions/active").status_code)

    threads = [threading.Thread(target=one_request) for _ in range(30)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert statuses == [200] * 30
    assert len(opened) == 30
    assert all(_is_closed(connection) for connection in opened)


def test_constructor_leaves_no_connection_open(tmp_path):
    manager = DatabaseManager(tmp_path / "fresh.db")

    assert getattr(manager._local, "connection", None) is None
    assert manager.execute_query("SELECT 1 AS one") == [{"one": 1}]
    manager.close_connection()
