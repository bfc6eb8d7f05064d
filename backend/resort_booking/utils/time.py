from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

RESORT_TZ = ZoneInfo("Europe/Minsk")
MINUTES_PER_DAY = 24 * 60


def resort_now(tz: ZoneInfo = RESORT_TZ) -> datetime:
    return datetime.now(timezone.utc).astimezone(tz)


def to_resort_local(dt: datetime, tz: ZoneInfo = RESORT_TZ) -> datetime:
    if dt.tzinfo is None:
        raise ValueError("datetime must be timezone-aware")
    return dt.astimezone(tz)


def to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    """Inverse of to_minutes; 24:00 is clamped to 23:59 since `time` cannot express it."""
    if minutes >= MINUTES_PER_DAY:
        return time(23, 59)
    return time(minutes // 60, minutes % 60)


def local_date_and_minute(now: datetime, tz: ZoneInfo = RESORT_TZ) -> tuple[date, int]:
    local = to_resort_local(now, tz)
    return local.date(), local.hour * 60 + local.minute


def utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)
