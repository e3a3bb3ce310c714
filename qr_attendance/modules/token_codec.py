"""
Token Codec Module - QR Attendance Session System

Encodes and decodes the payload that is embedded in a session's QR code.
The payload is a compact JSON object that repeats the session fields so a
display or scanner can show them without a lookup. The authoritative copy of
every field lives in the session store; the payload is never trusted on its own.

Session codes combine a millisecond timestamp with 128 random bits from the
``secrets`` module, so they cannot be guessed or enumerated.
"""

import json
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Tuple, Union

from qr_attendance.modules.errors import MalformedPayload

PAYLOAD_TYPE = 'ATTENDANCE'
CODE_PREFIX = 'ATT'
CODE_RANDOM_BYTES = 16

PAYLOAD_FIELDS = frozenset({
    'type', 'code', 'classId', 'subjectId', 'sessionType',
    'issuerId', 'timestamp', 'validUntil'
})

Identifier = Union[int, str]


@dataclass(frozen=True)
class ScopeKey:
    """What a session takes attendance for."""
    class_id: Identifier
    subject_id: Identifier
    session_type: str


@dataclass(frozen=True)
class DecodedToken:
    """Fields recovered from a QR payload."""
    type: str
    scope_key: ScopeKey
    issuer_id: Identifier
    timestamp: datetime
    valid_until: datetime
    code: str


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def is_identifier(value: Any) -> bool:
    # bool is an int subclass and never a valid id
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, str) and value.strip() != ''


def _parse_timestamp(value: Any, field: str) -> datetime:
    if not isinstance(value, str):
        raise MalformedPayload(f'Field {field} must be an ISO-8601 string')
    try:
        moment = datetime.fromisoformat(value)
    except ValueError:
        raise MalformedPayload(f'Field {field} is not a valid timestamp')
    if moment.tzinfo is None:
        raise MalformedPayload(f'Field {field} must carry a UTC offset')
    try:
        return moment.astimezone(timezone.utc)
    except (ValueError, OverflowError):
        raise MalformedPayload(f'Field {field} is out of range')


class TokenCodec:
    """Stateless encoder/decoder for session QR payloads."""

    def generate_code(self, issued_at: datetime) -> str:
        """
        Generate an unguessable session code.

        Args:
            issued_at (datetime): Issue time, used for the readable prefix

        Returns:
            str: Code of the form ``ATT_<epoch-ms>_<random hex>``
        """
        millis = int(_as_utc(issued_at).timestamp() * 1000)
        return f"{CODE_PREFIX}_{millis}_{secrets.token_hex(CODE_RANDOM_BYTES)}"

    def encode(self, scope_key: ScopeKey, issuer_id: Identifier,
               issued_at: datetime, valid_until: datetime) -> Tuple[str, str]:
        """
        Create a fresh session code and the payload that embeds it.

        Args:
            scope_key (ScopeKey): Class, subject and session type
            issuer_id: Identity of the issuing teacher
            issued_at (datetime): Start of the validity window
            valid_until (datetime): End of the validity window

        Returns:
            Tuple[str, str]: ``(code, payload)``
        """
        code = self.generate_code(issued_at)
        return code, self.build_payload(code, scope_key, issuer_id, issued_at, valid_until)

    def build_payload(self, code: str, scope_key: ScopeKey, issuer_id: Identifier,
                      issued_at: datetime, valid_until: datetime) -> str:
        """Serialise the session fields under an existing code."""
        payload = {
            'type': PAYLOAD_TYPE,
            'code': code,
            'classId': scope_key.class_id,
            'subjectId': scope_key.subject_id,
            'sessionType': scope_key.session_type,
            'issuerId': issuer_id,
            'timestamp': _as_utc(issued_at).isoformat(),
            'validUntil': _as_utc(valid_until).isoformat()
        }
        return json.dumps(payload, sort_keys=True, separators=(',', ':'))

    def decode(self, payload: Any) -> DecodedToken:
        """
        Parse and strictly validate a QR payload.

        Args:
            payload (str): Raw payload string as read from the QR code

        Returns:
            DecodedToken: Decoded fields

        Raises:
            MalformedPayload: If the payload does not match the schema exactly
        """
        if not isinstance(payload, str):
            raise MalformedPayload('Payload must be a string')

        try:
            data: Dict[str, Any] = json.loads(payload)
        except (ValueError, RecursionError):
            raise MalformedPayload('Payload is not valid JSON')

        if not isinstance(data, dict):
            raise MalformedPayload('Payload must be a JSON object')

        missing = PAYLOAD_FIELDS - data.keys()
        if missing:
            raise MalformedPayload(f"Missing required field: {sorted(missing)[0]}")
        unexpected = data.keys() - PAYLOAD_FIELDS
        if unexpected:
            raise MalformedPayload(f"Unexpected field: {sorted(unexpected)[0]}")

        if data['type'] != PAYLOAD_TYPE:
            raise MalformedPayload('Invalid QR code type')

        code = data['code']
        if not isinstance(code, str) or not code.startswith(f'{CODE_PREFIX}_'):
            raise MalformedPayload('Field code is invalid')

        for field in ('classId', 'subjectId', 'issuerId'):
            if not is_identifier(data[field]):
                raise MalformedPayload(f'Field {field} must be a string or integer id')

        session_type = data['sessionType']
        if not isinstance(session_type, str) or not session_type:
            raise MalformedPayload('Field sessionType must be a non-empty string')

        issued_at = _parse_timestamp(data['timestamp'], 'timestamp')
        valid_until = _parse_timestamp(data['validUntil'], 'validUntil')
        if valid_until <= issued_at:
            raise MalformedPayload('validUntil must be later than timestamp')

        return DecodedToken(
            type=data['type'],
            scope_key=ScopeKey(data['classId'], data['subjectId'], session_type),
            issuer_id=data['issuerId'],
            timestamp=issued_at,
            valid_until=valid_until,
            code=code
        )
