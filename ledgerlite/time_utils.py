import os
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_TIMEZONE = "Africa/Lagos"

_LOCAL_TZ = None


def _resolve_local_tz():
    global _LOCAL_TZ
    if _LOCAL_TZ is not None:
        return _LOCAL_TZ
    tz_name = os.environ.get("APP_TIMEZONE") or os.environ.get("TZ") or DEFAULT_TIMEZONE
    try:
        _LOCAL_TZ = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        _LOCAL_TZ = datetime.now().astimezone().tzinfo
    return _LOCAL_TZ


def local_now():
    return datetime.now(_resolve_local_tz()).replace(tzinfo=None)


def local_today():
    return local_now().date()


def parse_date(value):
    """``YYYY-MM-DD`` (or a full ISO timestamp) to a date; None when blank or invalid."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return datetime.strptime(text[:10], "%Y-%m-%d").date()
    except ValueError:
        return None


def parse_month(value):
    """``YYYY-MM`` to the first and last day of that month."""
    try:
        start = datetime.strptime(str(value).strip(), "%Y-%m").date()
    except ValueError:
        return None
    next_month = (start.replace(day=28) + timedelta(days=4)).replace(day=1)
    return start, next_month - timedelta(days=1)


def month_start(day):
    return day.replace(day=1)


def add_months(day, months):
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    return date(year, month_index % 12 + 1, 1)
