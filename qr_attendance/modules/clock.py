"""Wall-clock sources used for every temporal decision."""

from datetime import datetime, timezone


class SystemClock:
    """Clock backed by the server's UTC wall time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def truncate_to_millis(moment: datetime) -> datetime:
    """Drop sub-millisecond precision so stored and displayed times agree."""
    return moment.replace(microsecond=(moment.microsecond // 1000) * 1000)
