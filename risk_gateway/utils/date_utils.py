"""Date manipulation utilities"""

from datetime import datetime, timedelta, timezone

from risk_gateway.domain.models import TimeWindow

_ROLLING_WINDOWS = {
    TimeWindow.HOURLY: timedelta(hours=1),
    TimeWindow.WEEKLY: timedelta(days=7),
    TimeWindow.MONTHLY: timedelta(days=30),
}


def as_utc(moment: datetime) -> datetime:
    """Aware UTC datetime; naive values are taken to already be UTC"""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def start_of_day(moment: datetime) -> datetime:
    """Midnight (UTC) of the day containing `moment`"""
    return as_utc(moment).replace(hour=0, minute=0, second=0, microsecond=0)


def window_start(window: TimeWindow, now: datetime) -> datetime:
    """Inclusive lower bound of `window` ending at `now`

    DAILY is calendar-aligned (entries since midnight); the others roll.
    """
    if window == TimeWindow.DAILY:
        return start_of_day(now)
    return now - _ROLLING_WINDOWS[window]


def to_epoch_millis(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def from_epoch_millis(millis: int) -> datetime:
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
