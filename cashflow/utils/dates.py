from datetime import datetime, timezone
import calendar


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so every ledger instant is comparable."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def clamp_day_to_month(year: int, month: int, day: int) -> int:
    max_day = calendar.monthrange(year, month)[1]
    return min(day, max_day)


def add_months(d: datetime, n: int) -> datetime:
    """Add n months to d, clamping the day to the month end (Jan 31 + 1 -> Feb 28)."""
    month = d.month - 1 + n
    year = d.year + month // 12
    month = month % 12 + 1
    day = clamp_day_to_month(year, month, d.day)
    return d.replace(year=year, month=month, day=day)


def is_same_day(a: datetime, b: datetime) -> bool:
    return a.date() == b.date()
