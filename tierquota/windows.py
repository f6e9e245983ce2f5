"""Fixed accounting windows for quota enforcement.

All three windows are derived from a single instant in the quota timezone,
so the current hour always falls inside today and today always falls inside
the current month.
"""
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Callable, NamedTuple, Optional
from zoneinfo import ZoneInfo

from tierquota.config import settings


class Period(str, Enum):
    HOURLY = "hourly"
    DAILY = "daily"
    MONTHLY = "monthly"


# Evaluation order: narrowest window first
PERIODS = (Period.HOURLY, Period.DAILY, Period.MONTHLY)


class Bucket(NamedTuple):
    """Ledger coordinates for one hour of usage."""
    date: date
    hour: int


def quota_timezone() -> ZoneInfo:
    return ZoneInfo(settings.quota_timezone)


def local_now() -> datetime:
    return datetime.now(tz=quota_timezone())


Clock = Callable[[], datetime]


def localize(moment: datetime) -> datetime:
    """Express *moment* in the quota timezone. Naive values are taken as already local."""
    tz = quota_timezone()
    if moment.tzinfo is None:
        return moment.replace(tzinfo=tz)
    return moment.astimezone(tz)


def current_bucket(moment: datetime) -> Bucket:
    local = localize(moment)
    return Bucket(date=local.date(), hour=local.hour)


def month_start(day: date) -> date:
    return day.replace(day=1)


def next_month_start(day: date) -> date:
    if day.month == 12:
        return date(day.year + 1, 1, 1)
    return date(day.year, day.month + 1, 1)


def resets_at(period: Period, moment: datetime) -> datetime:
    """When the window containing *moment* rolls over.

    Next top of hour for hourly, next midnight for daily, first of next
    month for monthly. Result is timezone-aware in the quota timezone.
    """
    local = localize(moment)
    period = Period(period)
    if period is Period.HOURLY:
        top = local.replace(minute=0, second=0, microsecond=0)
        return top + timedelta(hours=1)
    if period is Period.DAILY:
        nxt = local.date() + timedelta(days=1)
        return datetime(nxt.year, nxt.month, nxt.day, tzinfo=local.tzinfo)
    nxt = next_month_start(local.date())
    return datetime(nxt.year, nxt.month, nxt.day, tzinfo=local.tzinfo)


def seconds_until_reset(period: Period, moment: datetime) -> int:
    local = localize(moment)
    return max(0, int((resets_at(period, local) - local).total_seconds()))


def format_duration(seconds: int) -> str:
    """Human readable countdown, e.g. ``3h12m``. Never shorter than ``1m``."""
    days, rem = divmod(max(0, int(seconds)), 86400)
    hours, rem = divmod(rem, 3600)
    minutes = rem // 60
    if days:
        return f"{days}d{hours}h"
    if hours:
        return f"{hours}h{minutes}m"
    return f"{max(minutes, 1)}m"


def format_reset(period: Period, moment: datetime) -> str:
    return format_duration(seconds_until_reset(period, moment))


def format_until(target: datetime, moment: datetime) -> str:
    """Countdown from *moment* to an already computed reset instant."""
    return format_duration((localize(target) - localize(moment)).total_seconds())


def first_violation(usage: dict, limits: dict) -> Optional[Period]:
    """Return the narrowest window whose usage has reached its limit."""
    for period in PERIODS:
        if usage[period.value] >= limits[period.value]:
            return period
    return None
