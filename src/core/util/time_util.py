from datetime import date, datetime, timezone, tzinfo
from zoneinfo import ZoneInfo

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def resolve_timezone(tz_name: str | None) -> tzinfo:
    """Return the named IANA zone, or the host's local zone when no name is given."""
    if tz_name:
        return ZoneInfo(tz_name)
    return datetime.now().astimezone().tzinfo  # type: ignore[return-value]


def ensure_aware(ts: datetime, tz: tzinfo) -> datetime:
    """Attach `tz` to a naive datetime (taken as wall-clock time in `tz`); aware values pass through."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=tz)
    return ts


def to_local(ts: datetime, tz: tzinfo) -> datetime:
    return ensure_aware(ts, tz).astimezone(tz)


def parse_timestamp(text: str) -> datetime | None:
    """
    Parse an ISO-8601 timestamp as written by `format_timestamp`.
    Naive values are taken as UTC. Returns None when the text is not a timestamp.
    """
    try:
        ts = datetime.fromisoformat(text.strip())
    except ValueError:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def format_timestamp(ts: datetime) -> str:
    """Round-trippable ISO-8601 text (offset included for aware values)."""
    return ts.isoformat()


def week_of_year(day: date, first_weekday: int) -> int:
    """
    Week number where week 1 starts on January 1 and each later week starts on
    `first_weekday` (ISO numbering, 1=Monday .. 7=Sunday).
    """
    jan1 = date(day.year, 1, 1)
    offset = (jan1.isoweekday() - first_weekday) % 7
    return (day.timetuple().tm_yday - 1 + offset) // 7 + 1
