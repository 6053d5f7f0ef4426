import re
from datetime import datetime, timezone


BACKUP_TIMESTAMP_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})T(\d{2})-(\d{2})-(\d{2})-(\d{3})Z(?:-\d+)?$"
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso_timestamp(now: datetime | None = None) -> str:
    """
    UTC ISO-8601 with millisecond precision and a trailing Z,
    e.g. 2025-03-01T10:15:30.123Z
    """
    now = now or utc_now()
    return (
        now.astimezone(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def backup_timestamp(now: datetime | None = None) -> str:
    """
    Filename-safe variant of iso_timestamp: 2025-03-01T10-15-30-123Z.
    Lexicographic order == chronological order.
    """
    return re.sub(r"[:.]", "-", iso_timestamp(now))


def parse_backup_timestamp(value: str) -> datetime | None:
    match = BACKUP_TIMESTAMP_RE.match(value or "")
    if not match:
        return None

    year, month, day, hour, minute, second, millis = (int(g) for g in match.groups())
    return datetime(
        year, month, day, hour, minute, second, millis * 1000, tzinfo=timezone.utc
    )


def human_date(value: str) -> str:
    parsed = parse_backup_timestamp(value)
    if not parsed:
        return value
    return parsed.strftime("%Y-%m-%d %H:%M:%S UTC")
