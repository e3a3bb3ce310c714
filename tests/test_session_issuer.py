from datetime import datetime, timedelta, timezone

import pytest

from qr_attendance.modules.errors import DuplicateCode, InvalidDuration, InvalidScope
from qr_attendance.modules.session_issuer import SessionIssuer
from qr_attendance.modules.token_codec import ScopeKey, TokenCodec

from conftest import LECTURE, T0


class ScriptedCodec(TokenCodec):
    """Codec that hands out a fixed sequence of codes."""

    def __init__(self, codes):
        self.codes = iter(codes)

    def generate_code(self, issued_at):
        return next(self.codes)


@pytest.mark.parametrize("duration", [1, 10, 59, 60])
def test_window_matches_requested_duration(issuer, store, duration):
    session = issuer.issue("teacher-1", LECTURE, duration)

    assert session.issued_at == T0
    assert session.valid_until - session.issued_at == timedelta(minutes=duration)
    stored = store.get_by_code(session.code)
    assert stored.valid_until - stored.issued_at == timedelta(minutes=duration)


def test_every_issue_gets_a_new_code(issuer):
    codes = [issuer.issue("teacher-1", LECTURE, 10).code for _ in range(50)]
    assert len(set(codes)) == 50


@pytest.mark.parametrize("duration", [0, 61, -5, 1000, "10", 10.5, None, True])
def test_out_of_range_durations_are_rejected(issuer, store, duration):
    with pytest.raises(InvalidDuration):
        issuer.issue("teacher-1", LECTURE, duration)
    assert store.list_history()[1] == 0


@pytest.mark.parametrize(
    "issuer_id,scope_key",
    [
        ("teacher-1", ScopeKey(7, 3, "party")),
        ("teacher-1", ScopeKey(7, 3, "")),
        ("teacher-1", ScopeKey(None, 3, "lecture")),
        ("teacher-1", ScopeKey(7, " ", "lecture")),
        ("", LECTURE),
    ],
)
def test_invalid_scope_is_rejected(issuer, issuer_id, scope_key):
    with pytest.raises(InvalidScope):
        issuer.issue(issuer_id, scope_key, 10)


def test_issue_time_is_truncated_to_milliseconds(issuer, clock):
    clock.set(datetime(2026, 3, 2, 9, 0, 0, 123456, tzinfo=timezone.utc))

    session = issuer.issue("teacher-1", LECTURE, 10)

    assert session.issued_at.microsecond == 123000


def test_payload_embeds_the_session_fields(issuer, codec):
    session = issuer.issue("teacher-1", LECTURE, 10)

    decoded = codec.decode(session.payload)

    assert decoded.code == session.code
    assert decoded.scope_key == LECTURE
    assert decoded.issuer_id == "teacher-1"
    assert decoded.valid_until == session.valid_until


def test_code_collision_is_retried_once(store, clock):
    issuer = SessionIssuer(ScriptedCodec(["ATT_1_dup", "ATT_1_dup", "ATT_1_fresh"]), store, clock)
    issuer.issue("teacher-1", LECTURE, 10)

    session = issuer.issue("teacher-1", LECTURE, 10)

    assert session.code == "ATT_1_fresh"
    assert '"code":"ATT_1_fresh"' in session.payload
    assert store.get_by_code("ATT_1_fresh").issuer_id == "teacher-1"


def test_second_collision_surfaces(store, clock):
    issuer = SessionIssuer(ScriptedCodec(["ATT_1_dup"] * 3), store, clock)
    issuer.issue("teacher-1", LECTURE, 10)

    with pytest.raises(DuplicateCode):
        issuer.issue("teacher-1", LECTURE, 10)
